"""
Landslide Detector — Confidence Scorer
=======================================
Zonal statistics and confidence scoring of detected landslide polygons.

Scoring is a two-phase contract because ``N_RdNDVI`` is normalised with
the minimum and maximum RdNDVI over the *whole* polygon set:

1. :meth:`ConfidenceScorer.collect` computes AREA, slope and elevation
   statistics, AWER and raw RdNDVI for every polygon, returning a
   :class:`ZonalTable`.
2. :meth:`ConfidenceScorer.score` derives ``N_RdNDVI`` and
   ``CONFIDENCE`` from a complete table.

Confidence formula::

    CONFIDENCE = (W_AREA·AreaTerm + W_SLOPE·SlopeTerm
                  + W_AWER·AWERTerm + W_RdNDVI·N_RdNDVI) / ΣW

    AreaTerm  = 1.0950 − (0.095 + 0.9032·exp(−exp(−1.4058·(ln AREA − ln 6947.7772))))
    SlopeTerm = 0.9979470 / (1 + exp(−0.7859512·(Slope_mean − 10.9374365)))
    AWERTerm  = tanh(√(0.1 + AWER))
    N_RdNDVI  = min(1, 3·tanh(√((RdNDVI − min) / (max − min))))

Undefined results are never exported as NaN: a polygon without valid
pixels under one of the rasters is dropped (and reported in
:attr:`ZonalTable.dropped`) or raises :class:`ZonalStatisticsError`,
depending on ``empty_zone_policy``; a set whose RdNDVI values are all
equal gets ``N_RdNDVI = 0``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Literal

import geopandas as gpd
import numpy as np
import numpy.typing as npt
from pyproj import CRS as ProjCRS
from rasterio.features import geometry_mask
from rasterio.transform import Affine
from shapely.geometry import mapping
from shapely.geometry.base import BaseGeometry

from landslide_detector.config import Weights
from landslide_detector.grid import RasterGrid
from shared.python.exceptions import ConfigurationError, GridAlignmentError, ZonalStatisticsError

logger = logging.getLogger("landslide_detector.confidence")

EmptyZonePolicy = Literal["drop", "raise"]
EMPTY_ZONE_POLICIES: tuple[str, ...] = ("drop", "raise")

SLOPE_EXTRA_FIELDS = ["Slope_std", "Slope_min", "Slope_max", "Slope_median"]
ELEVATION_FIELDS = ["Elevation_min", "Elevation_max", "Elevation_range"]
ELEVATION_EXTRA_FIELDS = ["Elevation_mean", "Elevation_std"]

# Gompertz area term
_AREA_REFERENCE = 6947.7772
_AREA_RATE = 1.4058
_AREA_SPAN = 0.9032
_AREA_OFFSET = 0.095
_AREA_CEILING = 1.0950

# Logistic slope term
_SLOPE_ASYMPTOTE = 0.9979470
_SLOPE_RATE = 0.7859512
_SLOPE_MIDPOINT = 10.9374365

_AWER_OFFSET = 0.1
_RDNDVI_GAIN = 3.0


# ---------------------------------------------------------------------------
# Scoring terms
# ---------------------------------------------------------------------------


def area_term(area: npt.ArrayLike) -> npt.NDArray[np.float64]:
    """Gompertz-type curve in log-area; 1.0 for tiny areas, ~0.097 for huge ones."""
    a = np.asarray(area, dtype=np.float64)
    with np.errstate(over="ignore"):
        gompertz = np.exp(-np.exp(-_AREA_RATE * (np.log(a) - np.log(_AREA_REFERENCE))))
    return _AREA_CEILING - (_AREA_OFFSET + _AREA_SPAN * gompertz)


def slope_term(slope_mean: npt.ArrayLike) -> npt.NDArray[np.float64]:
    """Logistic curve in mean slope with its midpoint near 10.94 degrees."""
    s = np.asarray(slope_mean, dtype=np.float64)
    with np.errstate(over="ignore"):
        return _SLOPE_ASYMPTOTE / (1.0 + np.exp(-_SLOPE_RATE * (s - _SLOPE_MIDPOINT)))


def awer_term(awer: npt.ArrayLike) -> npt.NDArray[np.float64]:
    return np.tanh(np.sqrt(_AWER_OFFSET + np.asarray(awer, dtype=np.float64)))


def normalize_rdndvi(rdndvi: npt.ArrayLike) -> npt.NDArray[np.float64]:
    """Normalise per-polygon RdNDVI across the whole polygon set.

    Returns zeros (with a warning) when every value is equal, since the
    min/max normalisation is undefined there.
    """
    values = np.asarray(rdndvi, dtype=np.float64)
    if values.size == 0:
        return values
    low, high = float(values.min()), float(values.max())
    if high == low:
        logger.warning(
            "All %d polygon(s) share RdNDVI=%g; N_RdNDVI set to 0.", values.size, low
        )
        return np.zeros_like(values)
    normalised = np.tanh(np.sqrt((values - low) / (high - low))) * _RDNDVI_GAIN
    return np.minimum(normalised, 1.0)


def combine_confidence(
    area: npt.ArrayLike,
    slope_mean: npt.ArrayLike,
    awer: npt.ArrayLike,
    n_rdndvi: npt.ArrayLike,
    weights: Weights | None = None,
) -> npt.NDArray[np.float64]:
    """Weighted mean of the four scoring terms."""
    w = weights or Weights()
    total = (
        w.area * area_term(area)
        + w.slope * slope_term(slope_mean)
        + w.awer * awer_term(awer)
        + w.rdndvi * np.asarray(n_rdndvi, dtype=np.float64)
    )
    return total / w.total


# ---------------------------------------------------------------------------
# Zonal extraction
# ---------------------------------------------------------------------------


def zone_values(
    values: npt.NDArray[np.float64],
    transform: Affine,
    geom: BaseGeometry,
) -> npt.NDArray[np.float64]:
    """Return the non-NaN values of pixels whose centres fall inside *geom*.

    Only the window covering the polygon's bounds is rasterised.
    """
    height, width = values.shape
    minx, miny, maxx, maxy = geom.bounds
    inverse = ~transform
    corners = [inverse * (x, y) for x, y in ((minx, miny), (minx, maxy), (maxx, miny), (maxx, maxy))]
    cols = [c for c, _ in corners]
    rows = [r for _, r in corners]
    col0, col1 = max(int(np.floor(min(cols))), 0), min(int(np.ceil(max(cols))), width)
    row0, row1 = max(int(np.floor(min(rows))), 0), min(int(np.ceil(max(rows))), height)
    if col0 >= col1 or row0 >= row1:
        return np.array([], dtype=np.float64)

    window = values[row0:row1, col0:col1]
    inside = ~geometry_mask(
        [mapping(geom)],
        out_shape=window.shape,
        transform=transform * Affine.translation(col0, row0),
        all_touched=False,
    )
    pixels = window[inside]
    return pixels[~np.isnan(pixels)]


def _sample_std(pixels: npt.NDArray[np.float64]) -> float:
    return float(np.std(pixels, ddof=1)) if pixels.size > 1 else 0.0


# ---------------------------------------------------------------------------
# Scorer
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DroppedPolygon:
    """A polygon excluded from scoring, with the reason."""

    feature_id: object
    reason: str


@dataclass
class ZonalTable:
    """Phase-1 output: per-polygon statistics for the complete set.

    Attributes:
        features: Polygons that have every statistic defined, with the
            AREA, slope, elevation, AWER and RdNDVI columns.
        dropped: Polygons excluded under the ``"drop"`` policy.
    """

    features: gpd.GeoDataFrame
    dropped: list[DroppedPolygon] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.features)


class ConfidenceScorer:
    """Compute zonal statistics and confidence values for landslide polygons.

    Args:
        slope: Slope raster in degrees.
        dem: Elevation raster.
        rdndvi: RdNDVI change raster.
        weights: Scoring weights; all 1.0 by default.
        extra_fields: Also export Slope_std/min/max/median, the elevation
            fields and raw RdNDVI.
        empty_zone_policy: ``"drop"`` excludes polygons with no valid
            pixels under a raster, ``"raise"`` aborts the run.

    Example::

        scorer = ConfidenceScorer(slope, dem, rdndvi)
        scored = scorer.run(polygons)
    """

    def __init__(
        self,
        slope: RasterGrid,
        dem: RasterGrid,
        rdndvi: RasterGrid,
        *,
        weights: Weights | None = None,
        extra_fields: bool = False,
        empty_zone_policy: EmptyZonePolicy = "drop",
    ) -> None:
        if empty_zone_policy not in EMPTY_ZONE_POLICIES:
            raise ConfigurationError(
                "empty_zone_policy", empty_zone_policy, f"must be one of {EMPTY_ZONE_POLICIES}"
            )
        self.slope = slope
        self.dem = dem
        self.rdndvi = rdndvi
        self.weights = weights or Weights()
        self.extra_fields = extra_fields
        self.empty_zone_policy = empty_zone_policy
        self._values: dict[int, npt.NDArray[np.float64]] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self, polygons: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
        """Collect statistics for *polygons* and score them."""
        table = self.collect(polygons)
        return self.score(table)

    def collect(self, polygons: gpd.GeoDataFrame) -> ZonalTable:
        """Phase 1: per-polygon statistics for the whole polygon set.

        Raises:
            GridAlignmentError: If the polygons' CRS differs from a raster's.
            ZonalStatisticsError: Under the ``"raise"`` policy, for the
                first polygon with an undefined statistic.
        """
        for grid in (self.slope, self.dem, self.rdndvi):
            self._check_crs(polygons, grid)

        records: list[dict[str, float]] = []
        kept: list[object] = []
        dropped: list[DroppedPolygon] = []

        for feature_id, geom in zip(polygons.index, polygons.geometry):
            try:
                records.append(self._zone_record(feature_id, geom))
            except ZonalStatisticsError as exc:
                if self.empty_zone_policy == "raise":
                    raise
                logger.warning("Dropping polygon %r: %s", feature_id, exc.message)
                dropped.append(DroppedPolygon(feature_id, exc.message))
                continue
            kept.append(feature_id)

        features = polygons.loc[kept].copy()
        for column in self._phase_one_columns():
            features[column] = [record[column] for record in records]

        logger.info(
            "Zonal statistics: %d polygon(s) kept, %d dropped.", len(kept), len(dropped)
        )
        return ZonalTable(features=features, dropped=dropped)

    def score(self, table: ZonalTable) -> gpd.GeoDataFrame:
        """Phase 2: normalise RdNDVI over the set and compute CONFIDENCE."""
        scored = table.features.copy()
        scored["N_RdNDVI"] = normalize_rdndvi(scored["RdNDVI"].to_numpy())
        scored["CONFIDENCE"] = combine_confidence(
            scored["AREA"].to_numpy(),
            scored["Slope_mean"].to_numpy(),
            scored["AWER"].to_numpy(),
            scored["N_RdNDVI"].to_numpy(),
            self.weights,
        )

        bad = ~np.isfinite(scored["CONFIDENCE"].to_numpy(dtype=np.float64))
        if bad.any():
            feature_id = scored.index[np.argmax(bad)]
            raise ZonalStatisticsError(feature_id, "CONFIDENCE", "non-finite confidence value")

        if not self.extra_fields:
            scored = scored.drop(columns=ELEVATION_FIELDS + ["RdNDVI"])

        if len(scored):
            logger.info(
                "Scored %d polygon(s): CONFIDENCE min=%.3f mean=%.3f max=%.3f",
                len(scored),
                float(scored["CONFIDENCE"].min()),
                float(scored["CONFIDENCE"].mean()),
                float(scored["CONFIDENCE"].max()),
            )
        return scored

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _phase_one_columns(self) -> list[str]:
        columns = ["AREA", "Slope_mean"]
        if self.extra_fields:
            columns += SLOPE_EXTRA_FIELDS
        columns += ELEVATION_FIELDS
        if self.extra_fields:
            columns += ELEVATION_EXTRA_FIELDS
        columns += ["AWER", "RdNDVI"]
        return columns

    def _grid_values(self, grid: RasterGrid) -> npt.NDArray[np.float64]:
        key = id(grid)
        if key not in self._values:
            self._values[key] = grid.values()
        return self._values[key]

    def _pixels(self, feature_id: object, geom: BaseGeometry, grid: RasterGrid, label: str) -> npt.NDArray[np.float64]:
        pixels = zone_values(self._grid_values(grid), grid.transform, geom)
        if pixels.size == 0:
            raise ZonalStatisticsError(feature_id, label, "no valid pixels under polygon")
        return pixels

    def _zone_record(self, feature_id: object, geom: BaseGeometry | None) -> dict[str, float]:
        if geom is None or geom.is_empty:
            raise ZonalStatisticsError(feature_id, "geometry", "empty geometry")
        area = float(geom.area)
        if not area > 0:
            raise ZonalStatisticsError(feature_id, "AREA", "polygon has zero area")

        record: dict[str, float] = {"AREA": area}

        slope = self._pixels(feature_id, geom, self.slope, "Slope")
        record["Slope_mean"] = float(np.mean(slope))
        if self.extra_fields:
            record["Slope_std"] = _sample_std(slope)
            record["Slope_min"] = float(np.min(slope))
            record["Slope_max"] = float(np.max(slope))
            record["Slope_median"] = float(np.median(slope))

        elevation = self._pixels(feature_id, geom, self.dem, "Elevation")
        record["Elevation_min"] = float(np.min(elevation))
        record["Elevation_max"] = float(np.max(elevation))
        record["Elevation_range"] = record["Elevation_max"] - record["Elevation_min"]
        if self.extra_fields:
            record["Elevation_mean"] = float(np.mean(elevation))
            record["Elevation_std"] = _sample_std(elevation)

        record["AWER"] = record["Elevation_range"] / np.sqrt(area)

        rdndvi = self._pixels(feature_id, geom, self.rdndvi, "RdNDVI")
        record["RdNDVI"] = float(np.mean(rdndvi))
        return record

    @staticmethod
    def _check_crs(polygons: gpd.GeoDataFrame, grid: RasterGrid) -> None:
        if polygons.crs is None or grid.crs is None:
            return
        grid_crs = ProjCRS.from_user_input(grid.crs.to_wkt())
        if not polygons.crs.equals(grid_crs, ignore_axis_order=True):
            raise GridAlignmentError(grid.name, "polygons", f"CRS {grid.crs} != {polygons.crs}")
