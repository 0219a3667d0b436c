"""
Landslide Detector — Raster Grid
=================================
Immutable in-memory raster used by every algebra stage.

A :class:`RasterGrid` couples a 2-D pixel array with its affine
georeference, CRS, nodata sentinel and linear scale factor.  Stages never
modify a grid in place: each one returns a new grid built with
:meth:`RasterGrid.with_data`, so an intermediate can be held and inspected
while later stages run.

Classes:
    RasterGrid      2-D raster with georeference, nodata and scale.

Functions:
    assert_aligned  Raise unless all grids share shape, transform and CRS.
    iter_blocks     Yield row/column slices tiling a raster.
    map_blocks      Evaluate a pixel-local function tile by tile.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Iterator

import numpy as np
import numpy.typing as npt
from rasterio.crs import CRS
from rasterio.transform import Affine

from shared.python.exceptions import GridAlignmentError, RasterError

logger = logging.getLogger("landslide_detector.grid")

_TRANSFORM_TOLERANCE = 1e-9

Block = tuple[slice, slice]


@dataclass(frozen=True, eq=False)
class RasterGrid:
    """A single-band raster held in memory.

    Attributes:
        data: 2-D pixel array.  Stored as a read-only view.
        transform: Affine georeference (pixel → map coordinates).
        crs: Coordinate reference system, or ``None`` if undefined.
        nodata: Nodata sentinel, or ``None`` when every pixel is valid.
        scale: Linear factor turning stored values into physical values.
        name: Label used in log messages and error reports.
    """

    data: npt.NDArray
    transform: Affine
    crs: CRS | None = None
    nodata: float | None = None
    scale: float = 1.0
    name: str = "raster"

    def __post_init__(self) -> None:
        array = np.asarray(self.data)
        if array.ndim != 2:
            raise RasterError(
                f"Raster '{self.name}' must be 2-D, got shape {array.shape}."
            )
        view = array.view()
        view.setflags(write=False)
        object.__setattr__(self, "data", view)

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def shape(self) -> tuple[int, int]:
        return (self.height, self.width)

    @property
    def dtype(self) -> np.dtype:
        return self.data.dtype

    @property
    def pixel_size(self) -> tuple[float, float]:
        """Absolute ``(x, y)`` pixel size in CRS units."""
        return (abs(self.transform.a), abs(self.transform.e))

    @property
    def resolution(self) -> float:
        """Ground resolution along x, used for distance buffers."""
        return self.pixel_size[0]

    @property
    def pixel_area(self) -> float:
        px, py = self.pixel_size
        return px * py

    # ------------------------------------------------------------------
    # Pixel access
    # ------------------------------------------------------------------

    def valid_mask(self) -> npt.NDArray[np.bool_]:
        """Boolean array, ``True`` where the pixel holds a valid value."""
        return nodata_mask(self.data, self.nodata, invert=True)

    def values(self) -> npt.NDArray[np.float64]:
        """Physical values as float64 with nodata pixels set to NaN."""
        out = self.data.astype(np.float64) * self.scale
        out[~self.valid_mask()] = np.nan
        return out

    def with_data(
        self,
        data: npt.ArrayLike,
        *,
        nodata: float | None = None,
        scale: float = 1.0,
        name: str | None = None,
    ) -> RasterGrid:
        """Return a new grid on the same georeference holding *data*.

        Raises:
            GridAlignmentError: If *data* does not have this grid's shape.
        """
        array = np.asarray(data)
        if array.shape != self.shape:
            raise GridAlignmentError(
                self.name, name or "derived", f"shape {self.shape} != {array.shape}"
            )
        return RasterGrid(
            data=array,
            transform=self.transform,
            crs=self.crs,
            nodata=nodata,
            scale=scale,
            name=name or self.name,
        )

    # ------------------------------------------------------------------
    # Alignment
    # ------------------------------------------------------------------

    def alignment_issue(self, other: RasterGrid) -> str | None:
        """Describe how *other* differs from this grid, or ``None``."""
        if self.shape != other.shape:
            return f"shape {self.shape} != {other.shape}"
        if not self.transform.almost_equals(other.transform, precision=_TRANSFORM_TOLERANCE):
            return f"transform {tuple(self.transform)[:6]} != {tuple(other.transform)[:6]}"
        if (self.crs is None) != (other.crs is None) or (
            self.crs is not None and self.crs != other.crs
        ):
            return f"CRS {self.crs} != {other.crs}"
        return None

    def same_grid(self, other: RasterGrid) -> bool:
        return self.alignment_issue(other) is None

    def __repr__(self) -> str:
        return (
            f"RasterGrid(name={self.name!r}, shape={self.shape}, "
            f"dtype={self.dtype}, nodata={self.nodata!r}, scale={self.scale!r})"
        )


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------


def nodata_mask(
    data: npt.NDArray,
    nodata: float | None,
    *,
    invert: bool = False,
) -> npt.NDArray[np.bool_]:
    """Flag pixels equal to *nodata* (or NaN for floating-point data).

    Args:
        data: Pixel array.
        nodata: Sentinel value; ``None`` means only NaN is missing.
        invert: Return the valid-pixel mask instead.
    """
    missing = np.zeros(data.shape, dtype=bool)
    if np.issubdtype(data.dtype, np.floating):
        missing |= np.isnan(data)
    if nodata is not None and not np.isnan(nodata):
        missing |= data == nodata
    return ~missing if invert else missing


def assert_aligned(*grids: RasterGrid) -> None:
    """Raise unless every grid shares the first grid's geometry.

    Raises:
        GridAlignmentError: On the first grid that differs.
    """
    if not grids:
        return
    reference = grids[0]
    for grid in grids[1:]:
        issue = reference.alignment_issue(grid)
        if issue is not None:
            raise GridAlignmentError(reference.name, grid.name, issue)


def iter_blocks(height: int, width: int, block_size: int) -> Iterator[Block]:
    """Yield ``(rows, cols)`` slices covering a ``height × width`` raster."""
    for row in range(0, height, block_size):
        for col in range(0, width, block_size):
            yield (
                slice(row, min(row + block_size, height)),
                slice(col, min(col + block_size, width)),
            )


def map_blocks(
    func: Callable[..., npt.NDArray],
    *grids: RasterGrid,
    dtype: npt.DTypeLike,
    block_size: int = 512,
    workers: int = 1,
) -> npt.NDArray:
    """Evaluate a pixel-local *func* over aligned grids, one tile at a time.

    *func* receives the raw data of each grid for one tile and must
    return an array of the tile's shape.  Tiles are written into a fresh
    output array, so the result does not depend on the tiling.  With
    ``workers > 1`` tiles are evaluated on a thread pool bounded by the
    number of available CPUs.

    Raises:
        GridAlignmentError: If the grids do not share one geometry.
    """
    assert_aligned(*grids)
    height, width = grids[0].shape
    out = np.empty((height, width), dtype=dtype)
    blocks = list(iter_blocks(height, width, max(int(block_size), 1)))

    def _run_block(block: Block) -> None:
        rows, cols = block
        out[rows, cols] = func(*(grid.data[rows, cols] for grid in grids))

    max_workers = min(max(int(workers), 1), os.cpu_count() or 1)
    if max_workers > 1 and len(blocks) > 1:
        logger.debug("Evaluating %d tile(s) on %d worker(s).", len(blocks), max_workers)
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            for future in [pool.submit(_run_block, block) for block in blocks]:
                future.result()
    else:
        for block in blocks:
            _run_block(block)
    return out
