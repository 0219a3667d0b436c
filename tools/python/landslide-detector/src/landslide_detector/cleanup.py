"""
Landslide Detector — Morphological Cleanup
===========================================
Connected-region area filtering of the detection mask.

The cleanup behaviour is chosen once, when the pipeline is configured:

* :class:`NoCleanup` — the detection mask is the final mask.
* :class:`SieveWithRescue` — two sieve passes with a rescue step:

  1. Pass A sieves the detection with a small fixed threshold
     (5 pixels) to find the regions a normal sieve would keep.
  2. Rescue keeps a detected pixel when it survives pass A **or** lies
     in the focal low-vegetation mask.
  3. Pass B sieves the rescued raster with the minimum-area threshold.
     Only pixels inside the pass-A raster take the pass-B result;
     rescued pixels outside it are left untouched.

Sieving uses :func:`rasterio.features.sieve` (GDAL sieve filter): regions
smaller than the threshold are merged into their largest neighbour.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt
from rasterio.features import sieve

from landslide_detector.grid import RasterGrid, assert_aligned
from landslide_detector.masks import MASK_NODATA, as_mask, is_set, rescue_combine
from shared.python.exceptions import ConfigurationError

logger = logging.getLogger("landslide_detector.cleanup")

RESCUE_SIEVE_PIXELS: int = 5


class CleanupPolicy(ABC):
    """Strategy turning the raw detection mask into the final mask."""

    @abstractmethod
    def apply(self, detection: RasterGrid, focal: RasterGrid | None = None) -> RasterGrid:
        """Return the final landslide mask for *detection*."""

    @staticmethod
    def _finish(detection: RasterGrid, final: npt.NDArray) -> RasterGrid:
        data = np.where(detection.valid_mask(), final, MASK_NODATA)
        return as_mask(detection, data, "landslide_mask")


@dataclass(frozen=True)
class NoCleanup(CleanupPolicy):
    """Keep the detection mask as is (minimum area of 0)."""

    def apply(self, detection: RasterGrid, focal: RasterGrid | None = None) -> RasterGrid:
        logger.info("Minimum area is 0; skipping sieve cleanup.")
        return self._finish(detection, is_set(detection))


@dataclass(frozen=True)
class SieveWithRescue(CleanupPolicy):
    """Two-pass sieve that rescues small detections in low-vegetation context.

    Attributes:
        min_area_pixels: Minimum region size (pixels) kept by pass B.
        rescue_pixels: Region size threshold of pass A.
        connectivity: Pixel connectivity used by both passes (4 or 8).
    """

    min_area_pixels: int
    rescue_pixels: int = RESCUE_SIEVE_PIXELS
    connectivity: int = 4

    def __post_init__(self) -> None:
        if self.min_area_pixels < 1:
            raise ConfigurationError("min_area_pixels", self.min_area_pixels, "must be >= 1")
        if self.rescue_pixels < 1:
            raise ConfigurationError("rescue_pixels", self.rescue_pixels, "must be >= 1")
        if self.connectivity not in (4, 8):
            raise ConfigurationError("connectivity", self.connectivity, "must be 4 or 8")

    def apply(self, detection: RasterGrid, focal: RasterGrid | None = None) -> RasterGrid:
        if focal is not None:
            assert_aligned(detection, focal)

        binary = is_set(detection).astype(np.uint8)

        # Pass A
        reference = sieve(binary, size=self.rescue_pixels, connectivity=self.connectivity)
        reference_grid = as_mask(detection, reference == 1, "rescue_sieve")

        rescued = is_set(rescue_combine(detection, reference_grid, focal)).astype(np.uint8)

        # Pass B
        sieved = sieve(
            rescued,
            size=self.min_area_pixels,
            connectivity=self.connectivity,
        )
        final = np.where(reference == 1, sieved, rescued)

        logger.info(
            "Sieve cleanup (min %d px): %d detected, %d after pass A, "
            "%d after rescue, %d final pixel(s).",
            self.min_area_pixels,
            int(binary.sum()),
            int((reference == 1).sum()),
            int(rescued.sum()),
            int((final == 1).sum()),
        )
        return self._finish(detection, final == 1)
