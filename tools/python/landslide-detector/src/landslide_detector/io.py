"""
Landslide Detector — Raster and Vector I/O
===========================================
Thin adapters between files and the in-memory types used by the
detection stages.

Functions:
    read_raster      GeoTIFF band → :class:`RasterGrid`.
    read_header      Grid geometry only (no pixel data) for early checks.
    write_raster     :class:`RasterGrid` → LZW-compressed GeoTIFF.
    read_polygons    Vector file → GeoDataFrame.
    list_layers      Layer names of a vector file.
    write_polygons   GeoDataFrame → GeoPackage layer.
    rasterize_aoi    AOI polygons → 0/1 mask on a reference grid.
"""

from __future__ import annotations

import logging
from pathlib import Path

import geopandas as gpd
import numpy as np
import rasterio
from rasterio.features import rasterize

from landslide_detector.grid import RasterGrid
from landslide_detector.masks import as_mask
from shared.python.exceptions import OutputWriteError, RasterError
from shared.python.validators import Validators

logger = logging.getLogger("landslide_detector.io")

RASTER_EXTENSIONS = [".tif", ".tiff", ".img", ".vrt"]
VECTOR_EXTENSIONS = [".gpkg", ".geojson", ".json", ".shp"]


def read_raster(
    path: Path,
    *,
    scale: float | None = None,
    band: int = 1,
    name: str | None = None,
) -> RasterGrid:
    """Read one band of a raster file.

    Args:
        path: Raster file path.
        scale: Linear scale factor; defaults to the band's stored scale.
        band: 1-based band index.
        name: Label for the grid; defaults to the file stem.

    Raises:
        RasterError: If the file cannot be opened by rasterio.
        BandIndexError: If *band* does not exist.
    """
    path = Path(path)
    try:
        with rasterio.open(path) as src:
            Validators.assert_band_index_valid(band, src.count)
            data = src.read(band)
            stored_scale = src.scales[band - 1] if src.scales else 1.0
            grid = RasterGrid(
                data=data,
                transform=src.transform,
                crs=src.crs,
                nodata=src.nodata,
                scale=float(stored_scale if scale is None else scale),
                name=name or path.stem,
            )
    except rasterio.errors.RasterioIOError as exc:
        raise RasterError(f"Could not open raster '{path}': {exc}") from exc

    logger.debug("Read %r from %s", grid, path.name)
    return grid


def read_header(path: Path, *, name: str | None = None) -> RasterGrid:
    """Return a grid carrying *path*'s geometry with a placeholder array.

    Used to check alignment before any pixel data is read.
    """
    path = Path(path)
    try:
        with rasterio.open(path) as src:
            placeholder = np.broadcast_to(np.zeros(1, dtype=np.uint8), (src.height, src.width))
            return RasterGrid(
                data=placeholder,
                transform=src.transform,
                crs=src.crs,
                nodata=src.nodata,
                name=name or path.stem,
            )
    except rasterio.errors.RasterioIOError as exc:
        raise RasterError(f"Could not open raster '{path}': {exc}") from exc


def write_raster(grid: RasterGrid, path: Path) -> Path:
    """Write *grid* as a single-band GeoTIFF, storing its scale factor.

    Raises:
        OutputWriteError: If the file cannot be written.
    """
    path = Path(path)
    profile = {
        "driver": "GTiff",
        "height": grid.height,
        "width": grid.width,
        "count": 1,
        "dtype": str(grid.dtype),
        "crs": grid.crs,
        "transform": grid.transform,
        "nodata": grid.nodata,
        "compress": "lzw",
    }
    try:
        with rasterio.open(path, "w", **profile) as dst:
            dst.write(grid.data, 1)
            if grid.scale != 1.0:
                dst.scales = (grid.scale,)
            dst.update_tags(layer=grid.name)
    except (OSError, rasterio.errors.RasterioIOError) as exc:
        raise OutputWriteError(str(path), str(exc)) from exc

    logger.debug("Wrote %r to %s", grid, path.name)
    return path


def read_polygons(path: Path, layer: str | None = None) -> gpd.GeoDataFrame:
    """Read a polygon layer from any OGR vector format.

    Raises:
        InputValidationError: If *path* does not exist.
    """
    Validators.assert_file_exists(Path(path))
    return gpd.read_file(path, layer=layer)


def list_layers(path: Path) -> list[str]:
    """Names of the layers in a vector file, in file order.

    Raises:
        InputValidationError: If *path* does not exist.
    """
    Validators.assert_file_exists(Path(path))
    return [str(name) for name in gpd.list_layers(path)["name"]]


def write_polygons(gdf: gpd.GeoDataFrame, path: Path, layer: str) -> Path:
    """Write *gdf* to a GeoPackage layer named *layer*.

    Raises:
        OutputWriteError: If the file cannot be written.
    """
    path = Path(path)
    try:
        gdf.to_file(path, layer=layer, driver="GPKG")
    except (OSError, RuntimeError, ValueError) as exc:
        raise OutputWriteError(str(path), str(exc)) from exc

    logger.info("Wrote %d polygon(s) to %s (layer '%s')", len(gdf), path.name, layer)
    return path


def rasterize_aoi(aoi: gpd.GeoDataFrame, reference: RasterGrid) -> RasterGrid:
    """Burn AOI polygons into a 0/1 mask on *reference*'s grid.

    Polygons are reprojected to the reference CRS when both CRSs are known.
    """
    if aoi.crs is not None and reference.crs is not None:
        aoi = aoi.to_crs(reference.crs.to_wkt())
    geoms = [(geom, 1) for geom in aoi.geometry if geom is not None and not geom.is_empty]
    if not geoms:
        inside = np.zeros(reference.shape, dtype=np.uint8)
    else:
        inside = rasterize(
            geoms,
            out_shape=reference.shape,
            transform=reference.transform,
            fill=0,
            dtype=np.uint8,
        )
    logger.debug("AOI covers %d pixel(s).", int(inside.sum()))
    return as_mask(reference, inside, "aoi_mask")
