"""
Landslide Detector — Mask Algebra
==================================
Builds and combines binary masks.

A mask is a uint8 :class:`~landslide_detector.grid.RasterGrid` whose
pixels are ``1`` (in the set), ``0`` (excluded) or :data:`MASK_NODATA`
(unknown / outside the processing extent).  Masks compose by logical AND.

Functions:
    and_combine       1 only where every input is 1 and none is nodata.
    rescue_combine    (A ∧ B) ∨ (A ∧ C) on the pixels equal to 1.
    apply_extent      Set pixels outside an extent mask to nodata.
    validity_mask     1 where every input raster holds a valid value.
    water_mask        0 where post-event NDWI exceeds a threshold.
    artificial_mask   0 within a distance buffer of artificial surfaces.
    threshold_mask    1 where the physical value exceeds a threshold.
    slope_mask        1 where slope exceeds a threshold and change is flagged.
"""

from __future__ import annotations

import logging

import numpy as np
import numpy.typing as npt
from scipy.ndimage import distance_transform_edt

from landslide_detector.grid import RasterGrid, assert_aligned
from shared.python.exceptions import InputValidationError

logger = logging.getLogger("landslide_detector.masks")

MASK_NODATA: int = 255
MASK_DTYPE = np.uint8


def as_mask(template: RasterGrid, selected: npt.ArrayLike, name: str) -> RasterGrid:
    """Wrap a boolean or 0/1/255 array as a mask grid on *template*'s grid."""
    return template.with_data(
        np.asarray(selected).astype(MASK_DTYPE),
        nodata=MASK_NODATA,
        scale=1.0,
        name=name,
    )


def is_set(mask: RasterGrid) -> npt.NDArray[np.bool_]:
    """``True`` where *mask* equals 1 and is not nodata."""
    return (mask.data == 1) & mask.valid_mask()


# ---------------------------------------------------------------------------
# Combination policies
# ---------------------------------------------------------------------------


def and_combine(*masks: RasterGrid, name: str = "and_mask") -> RasterGrid:
    """AND-combine masks pixel-wise.

    Output is 1 only where every input equals 1 and no input is nodata
    there; 0 everywhere else.

    Raises:
        InputValidationError: If no mask is given.
        GridAlignmentError: If the masks are not aligned.
    """
    if not masks:
        raise InputValidationError("and_combine needs at least one mask.")
    assert_aligned(*masks)
    combined = np.ones(masks[0].shape, dtype=bool)
    for mask in masks:
        combined &= is_set(mask)
    return as_mask(masks[0], combined, name)


def rescue_combine(
    primary: RasterGrid,
    secondary: RasterGrid,
    rescue: RasterGrid | None = None,
    *,
    name: str = "rescued_mask",
) -> RasterGrid:
    """Keep primary pixels confirmed by *secondary* or by *rescue*.

    Output is ``(A==1 ∧ B==1) ∨ (A==1 ∧ C==1)``; without *rescue* it
    reduces to ``A==1 ∧ B==1``.
    """
    grids = [primary, secondary] + ([rescue] if rescue is not None else [])
    assert_aligned(*grids)
    confirmed = is_set(secondary)
    if rescue is not None:
        confirmed |= is_set(rescue)
    return as_mask(primary, is_set(primary) & confirmed, name)


def apply_extent(mask: RasterGrid, extent: RasterGrid, *, name: str | None = None) -> RasterGrid:
    """Mark pixels of *mask* outside *extent* as nodata."""
    assert_aligned(mask, extent)
    data = np.where(is_set(extent), mask.data, MASK_NODATA)
    return as_mask(mask, data, name or mask.name)


# ---------------------------------------------------------------------------
# Mask builders
# ---------------------------------------------------------------------------


def validity_mask(*grids: RasterGrid, name: str = "validity_mask") -> RasterGrid:
    """1 where every grid holds a valid (non-nodata) value, else 0."""
    if not grids:
        raise InputValidationError("validity_mask needs at least one raster.")
    assert_aligned(*grids)
    valid = np.ones(grids[0].shape, dtype=bool)
    for grid in grids:
        valid &= grid.valid_mask()
    return as_mask(grids[0], valid, name)


def water_mask(ndwi: RasterGrid, threshold: float = 0.1) -> RasterGrid:
    """Exclude open water: 0 where NDWI > *threshold*, 1 elsewhere.

    Pixels where NDWI is nodata become mask nodata.
    """
    values = ndwi.values()
    with np.errstate(invalid="ignore"):
        wet = values > threshold
    data = np.where(ndwi.valid_mask(), np.where(wet, 0, 1), MASK_NODATA)
    logger.debug("Water mask: %d pixel(s) excluded.", int(wet.sum()))
    return as_mask(ndwi, data, "water_mask")


def artificial_mask(
    artificial: RasterGrid,
    buffer_factor: float = 1.5,
) -> RasterGrid | None:
    """Exclude artificial surfaces and a ground-distance buffer around them.

    A pixel is 0 when its Euclidean ground distance to the nearest
    artificial pixel (value 1) is at most ``buffer_factor × resolution``,
    1 otherwise.

    Returns:
        The exclusion mask, or ``None`` when *artificial* contains no
        pixel valued 1.  The degenerate case is logged as a warning and
        the layer is skipped.
    """
    source = is_set(artificial)
    if not source.any():
        logger.warning(
            "Artificial surface raster '%s' has no pixel valued 1; "
            "skipping artificial surface exclusion.",
            artificial.name,
        )
        return None

    px, py = artificial.pixel_size
    distance = distance_transform_edt(~source, sampling=(py, px))
    buffer_distance = buffer_factor * artificial.resolution
    excluded = distance <= buffer_distance
    logger.debug(
        "Artificial mask: buffer %.3f map units, %d pixel(s) excluded.",
        buffer_distance,
        int(excluded.sum()),
    )
    return as_mask(artificial, np.where(excluded, 0, 1), "artificial_mask")


def threshold_mask(
    grid: RasterGrid,
    threshold: float,
    *,
    name: str | None = None,
    use_scale: bool = True,
) -> RasterGrid:
    """1 where the value of *grid* exceeds *threshold*, else 0.

    With ``use_scale=False`` the stored values are compared, ignoring the
    grid's scale factor.  Pixels where *grid* is nodata become mask nodata.
    """
    if use_scale:
        values = grid.values()
    else:
        values = np.where(grid.valid_mask(), grid.data, np.nan)
    with np.errstate(invalid="ignore"):
        above = values > threshold
    data = np.where(grid.valid_mask(), above, MASK_NODATA)
    return as_mask(grid, data, name or f"{grid.name}_gt_{threshold:g}")


def slope_mask(
    slope: RasterGrid,
    change: RasterGrid,
    threshold: float = 3.0,
) -> RasterGrid:
    """1 where slope > *threshold* degrees and *change* equals 1, else 0."""
    assert_aligned(slope, change)
    values = slope.values()
    with np.errstate(invalid="ignore"):
        steep = values > threshold
    return as_mask(slope, steep & is_set(change), "slope_mask")
