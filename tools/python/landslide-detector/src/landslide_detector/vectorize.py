"""
Landslide Detector — Vectorisation
===================================
Turns the final binary mask into polygon features, one per maximal
4-connected region of value 1, via :func:`rasterio.features.shapes`.
"""

from __future__ import annotations

import logging

import geopandas as gpd
import numpy as np
from rasterio.features import shapes
from shapely.geometry import shape

from landslide_detector.grid import RasterGrid
from landslide_detector.masks import is_set

logger = logging.getLogger("landslide_detector.vectorize")

DEFAULT_LAYER = "landslides"


def empty_layer(crs: object = None) -> gpd.GeoDataFrame:
    """Return an empty polygon layer carrying *crs*."""
    return gpd.GeoDataFrame({"geometry": gpd.GeoSeries([], crs=crs)}, geometry="geometry", crs=crs)


def polygonize(mask: RasterGrid) -> gpd.GeoDataFrame:
    """Polygonise the pixels of *mask* equal to 1.

    Returns:
        A GeoDataFrame with a geometry column only, in the mask's CRS.
        Regions touching only diagonally become separate polygons.
    """
    selected = is_set(mask)
    if not selected.any():
        logger.info("Final mask is empty; no polygons generated.")
        return empty_layer(mask.crs)

    binary = selected.astype(np.uint8)
    geometries = [
        shape(geom)
        for geom, value in shapes(binary, mask=selected, connectivity=4, transform=mask.transform)
        if value == 1
    ]
    logger.info("Vectorised %d polygon(s).", len(geometries))
    return gpd.GeoDataFrame({"geometry": geometries}, geometry="geometry", crs=mask.crs)
