"""
Landslide Detector — Focal Filter
==================================
Flags pixels surrounded by chronically low vegetation.

1. ``m1 = 1`` where ``0 < index < ndvi_threshold``, else 0 (nodata → 0).
2. Mean of ``m1`` over a ``k × k`` window centred on each pixel; near
   the raster edge the window is filled by repeating the border pixels.
3. Output is 1 where the windowed mean is ``>= coverage_threshold``.

The resulting mask is used by the cleanup stage to rescue small detections
that sit in a low-vegetation neighbourhood.
"""

from __future__ import annotations

import logging

import numpy as np
from scipy.ndimage import uniform_filter

from landslide_detector.grid import RasterGrid
from landslide_detector.masks import as_mask
from shared.python.validators import Validators

logger = logging.getLogger("landslide_detector.focal")

# uniform_filter accumulates running sums; round away their float noise
# before comparing against the coverage threshold.
_MEAN_DECIMALS = 10


def focal_mask(
    index: RasterGrid,
    ndvi_threshold: float = 0.3,
    coverage_threshold: float = 0.3,
    kernel_size: int = 3,
) -> RasterGrid:
    """Build the low-vegetation context mask from a vegetation index raster.

    Args:
        index: Vegetation index raster (typically pre-event NDVI).
        ndvi_threshold: Upper bound ``nt`` of the low-vegetation class.
        coverage_threshold: Minimum windowed fraction ``kp``.
        kernel_size: Odd window edge length in pixels.

    Returns:
        A 0/1 mask named ``"focal_mask"``.

    Raises:
        ConfigurationError: If *kernel_size* is not a positive odd integer
            or *coverage_threshold* is outside ``(0, 1]``.
    """
    Validators.assert_odd_kernel(kernel_size)
    Validators.assert_in_range(
        coverage_threshold, "coverage_threshold", 0.0, 1.0, low_inclusive=False
    )

    values = index.values()
    with np.errstate(invalid="ignore"):
        low = (values > 0) & (values < ndvi_threshold)

    window_mean = uniform_filter(
        low.astype(np.float64), size=kernel_size, mode="nearest"
    )
    flagged = np.round(window_mean, _MEAN_DECIMALS) >= coverage_threshold

    logger.info(
        "Focal filter (k=%d, nt=%g, kp=%g): %d pixel(s) flagged.",
        kernel_size,
        ndvi_threshold,
        coverage_threshold,
        int(flagged.sum()),
    )
    return as_mask(index, flagged, "focal_mask")
