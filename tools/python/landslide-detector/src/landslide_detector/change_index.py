"""
Landslide Detector — Change Index
==================================
Relative difference vegetation index (RdNDVI) between a pre-event and a
post-event vegetation-index raster.

Formula, per pixel, with ``a = pre * scale_pre`` and ``b = post * scale_post``::

    RdNDVI = (a - b) / 0.0001           if a == 0
    RdNDVI = (a - b) / sqrt(|a|)        otherwise

The index is kept two ways.  :func:`compute_rdndvi_index` returns the
unrounded float64 index, which the change threshold and the zonal scoring
read.  :func:`compute_rdndvi` returns the stored form: the index rounded to
the nearest integer, as int32 with a declared scale factor of 0.0001 and
nodata -32768.  The ``a == 0`` branch only avoids the division by zero; it
makes the index discontinuous at ``a = 0`` and is kept as is.

Usage::

    from landslide_detector.change_index import compute_rdndvi_index, encode_rdndvi

    index = compute_rdndvi_index(pre_ndvi, post_ndvi)
    rdndvi = encode_rdndvi(index)
    rdndvi.values()     # physical values (stored integers * 0.0001)
"""

from __future__ import annotations

import logging

import numpy as np
import numpy.typing as npt

from landslide_detector.grid import RasterGrid, map_blocks, nodata_mask

logger = logging.getLogger("landslide_detector.change_index")

RDNDVI_NODATA: int = -32768
RDNDVI_SCALE: float = 0.0001
SINGULAR_DENOMINATOR: float = 0.0001

_INT32 = np.iinfo(np.int32)


def rdndvi_index_kernel(
    pre: npt.NDArray,
    post: npt.NDArray,
    *,
    pre_nodata: float | None = None,
    post_nodata: float | None = None,
    scale_pre: float = 1.0,
    scale_post: float = 1.0,
) -> npt.NDArray[np.float64]:
    """Compute unrounded RdNDVI values for one block of pixels.

    Pixels that are nodata in either input, or not finite after
    scaling, are NaN.
    """
    a = pre.astype(np.float64) * scale_pre
    b = post.astype(np.float64) * scale_post

    invalid = nodata_mask(pre, pre_nodata) | nodata_mask(post, post_nodata)
    invalid |= ~np.isfinite(a) | ~np.isfinite(b)

    denominator = np.where(a == 0, SINGULAR_DENOMINATOR, np.sqrt(np.abs(a)))
    with np.errstate(invalid="ignore", divide="ignore", over="ignore"):
        index = (a - b) / denominator

    invalid |= ~np.isfinite(index)
    return np.where(invalid, np.nan, index)


def encode_index(index: npt.NDArray) -> npt.NDArray[np.int32]:
    """Round float index values into the int32 storage encoding.

    NaN becomes :data:`RDNDVI_NODATA`.
    """
    invalid = np.isnan(index)
    # Valid results stay inside int32 and never equal the nodata sentinel.
    encoded = np.clip(np.rint(np.where(invalid, 0.0, index)), _INT32.min, _INT32.max)
    encoded[encoded == RDNDVI_NODATA] = RDNDVI_NODATA + 1
    return np.where(invalid, RDNDVI_NODATA, encoded).astype(np.int32)


def rdndvi_kernel(
    pre: npt.NDArray,
    post: npt.NDArray,
    *,
    pre_nodata: float | None = None,
    post_nodata: float | None = None,
    scale_pre: float = 1.0,
    scale_post: float = 1.0,
) -> npt.NDArray[np.int32]:
    """Compute encoded RdNDVI values for one block of pixels."""
    return encode_index(
        rdndvi_index_kernel(
            pre,
            post,
            pre_nodata=pre_nodata,
            post_nodata=post_nodata,
            scale_pre=scale_pre,
            scale_post=scale_post,
        )
    )


def compute_rdndvi_index(
    pre: RasterGrid,
    post: RasterGrid,
    *,
    scale_pre: float | None = None,
    scale_post: float | None = None,
    block_size: int = 512,
    workers: int = 1,
) -> RasterGrid:
    """Compute the unrounded RdNDVI index from two aligned index rasters.

    Args:
        pre: Pre-event vegetation index raster.
        post: Post-event vegetation index raster.
        scale_pre: Scale applied to *pre*; defaults to ``pre.scale``.
        scale_post: Scale applied to *post*; defaults to ``post.scale``.
        block_size: Tile edge length in pixels.
        workers: Number of tile worker threads.

    Returns:
        A float64 :class:`RasterGrid` named ``"rdndvi_index"`` holding the
        index in formula units (NaN marks nodata).  Its declared scale is
        :data:`RDNDVI_SCALE`, so :meth:`RasterGrid.values` matches the
        decoded stored raster up to rounding.

    Raises:
        GridAlignmentError: If *pre* and *post* are not aligned.
    """
    sp = pre.scale if scale_pre is None else scale_pre
    sq = post.scale if scale_post is None else scale_post
    logger.info("Computing RdNDVI (scale_pre=%g, scale_post=%g)...", sp, sq)

    def _kernel(pre_block: npt.NDArray, post_block: npt.NDArray) -> npt.NDArray:
        return rdndvi_index_kernel(
            pre_block,
            post_block,
            pre_nodata=pre.nodata,
            post_nodata=post.nodata,
            scale_pre=sp,
            scale_post=sq,
        )

    index = map_blocks(
        _kernel, pre, post, dtype=np.float64, block_size=block_size, workers=workers
    )
    result = pre.with_data(index, scale=RDNDVI_SCALE, name="rdndvi_index")
    logger.debug(
        "RdNDVI: %d valid pixel(s) of %d.",
        int(result.valid_mask().sum()),
        index.size,
    )
    return result


def encode_rdndvi(index: RasterGrid) -> RasterGrid:
    """Turn an unrounded index grid into the stored int32 RdNDVI raster.

    Returns:
        An int32 :class:`RasterGrid` named ``"rdndvi"`` with scale
        :data:`RDNDVI_SCALE` and nodata :data:`RDNDVI_NODATA`.
    """
    return index.with_data(
        encode_index(index.data), nodata=RDNDVI_NODATA, scale=RDNDVI_SCALE, name="rdndvi"
    )


def compute_rdndvi(
    pre: RasterGrid,
    post: RasterGrid,
    *,
    scale_pre: float | None = None,
    scale_post: float | None = None,
    block_size: int = 512,
    workers: int = 1,
) -> RasterGrid:
    """Compute the stored RdNDVI raster from two aligned index rasters.

    Same arguments as :func:`compute_rdndvi_index`; the result is the
    :func:`encode_rdndvi` form.

    Raises:
        GridAlignmentError: If *pre* and *post* are not aligned.
    """
    return encode_rdndvi(
        compute_rdndvi_index(
            pre,
            post,
            scale_pre=scale_pre,
            scale_post=scale_post,
            block_size=block_size,
            workers=workers,
        )
    )
