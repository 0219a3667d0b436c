"""
Tests — Confidence Scorer
==========================
Unit tests for the scoring terms and
:class:`~landslide_detector.confidence.ConfidenceScorer`.

All rasters are 10 × 10 with 10 m pixels, so a polygon snapped to the
pixel grid covers exactly the pixels whose centres it contains.
"""

from __future__ import annotations

import logging
import math
from pathlib import Path

import geopandas as gpd
import numpy as np
import pytest
from rasterio.crs import CRS
from rasterio.transform import from_origin
from shapely.geometry import box

from landslide_detector.config import Weights
from landslide_detector.confidence import (
    ConfidenceScorer,
    area_term,
    awer_term,
    combine_confidence,
    normalize_rdndvi,
    slope_term,
    zone_values,
)
from landslide_detector.grid import RasterGrid
from landslide_detector.io import write_polygons
from shared.python.exceptions import ConfigurationError, GridAlignmentError, ZonalStatisticsError

_TRANSFORM = from_origin(0.0, 100.0, 10.0, 10.0)
_CRS = CRS.from_epsg(32633)

# rows 2-3, cols 2-4 -> 6 pixels, 600 m²
_POLY_A = box(20, 60, 50, 80)
# rows 6-7, cols 6-7 -> 4 pixels, 400 m²
_POLY_B = box(60, 20, 80, 40)


def _grid(data, *, nodata=None, scale=1.0, name="raster") -> RasterGrid:
    return RasterGrid(np.asarray(data), _TRANSFORM, _CRS, nodata, scale, name)


def _rasters() -> tuple[RasterGrid, RasterGrid, RasterGrid]:
    slope = _grid(np.arange(100, dtype=np.float64).reshape(10, 10), name="slope")
    rows = np.repeat(np.arange(10, dtype=np.float64)[:, None], 10, axis=1)
    dem = _grid(100.0 + rows * 10.0, nodata=-9999.0, name="dem")
    rdndvi_data = np.full((10, 10), 3000, dtype=np.int32)
    rdndvi_data[:, 5:] = 1000
    rdndvi = _grid(rdndvi_data, nodata=-32768, scale=0.0001, name="rdndvi")
    return slope, dem, rdndvi


def _polygons(*geoms, crs="EPSG:32633") -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame(
        {"id": list(range(1, len(geoms) + 1))}, geometry=list(geoms), crs=crs
    )


# ---------------------------------------------------------------------------
# Scoring terms
# ---------------------------------------------------------------------------


class TestScoringTerms:
    def test_area_term_is_non_increasing(self) -> None:
        values = area_term(np.logspace(0, 8, 200))
        assert (np.diff(values) <= 1e-12).all()
        assert values[0] == pytest.approx(1.0, abs=1e-3)
        assert values[-1] == pytest.approx(1.095 - 0.095 - 0.9032, abs=1e-3)

    def test_area_term_at_reference_area(self) -> None:
        expected = 1.0950 - (0.095 + 0.9032 * math.exp(-1.0))
        assert area_term(6947.7772) == pytest.approx(expected)

    def test_slope_term_is_increasing(self) -> None:
        values = slope_term(np.linspace(0, 40, 200))
        assert (np.diff(values) > 0).all()
        assert slope_term(10.9374365) == pytest.approx(0.9979470 / 2)

    def test_awer_term(self) -> None:
        assert awer_term(0.0) == pytest.approx(math.tanh(math.sqrt(0.1)))
        values = awer_term(np.linspace(0, 50, 100))
        assert (np.diff(values) >= 0).all()

    def test_normalize_rdndvi(self) -> None:
        n = normalize_rdndvi([0.0, 0.01, 1.0])
        assert n[0] == 0.0
        assert n[1] == pytest.approx(3 * math.tanh(0.1))
        assert n[2] == 1.0

    def test_normalize_equal_values_gives_zero(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="landslide_detector.confidence"):
            n = normalize_rdndvi([0.3, 0.3, 0.3])
        assert n.tolist() == [0.0, 0.0, 0.0]
        assert "N_RdNDVI set to 0" in caplog.text

    def test_combine_confidence_default_weights(self) -> None:
        expected = (
            area_term(600.0) + slope_term(20.0) + awer_term(0.5) + 0.25
        ) / 4
        assert combine_confidence(600.0, 20.0, 0.5, 0.25) == pytest.approx(expected)

    def test_combine_confidence_single_weight(self) -> None:
        weights = Weights(area=1.0, slope=0.0, awer=0.0, rdndvi=0.0)
        assert combine_confidence(600.0, 20.0, 0.5, 0.25, weights) == pytest.approx(
            area_term(600.0)
        )


# ---------------------------------------------------------------------------
# Zonal extraction
# ---------------------------------------------------------------------------


class TestZoneValues:
    def test_cell_centres_inside_polygon(self) -> None:
        slope, _, _ = _rasters()
        values = zone_values(slope.values(), slope.transform, _POLY_A)
        assert sorted(values.tolist()) == [22.0, 23.0, 24.0, 32.0, 33.0, 34.0]

    def test_polygon_partly_outside_raster(self) -> None:
        slope, _, _ = _rasters()
        values = zone_values(slope.values(), slope.transform, box(-20, 60, 20, 80))
        assert sorted(values.tolist()) == [20.0, 21.0, 30.0, 31.0]

    def test_polygon_outside_raster(self) -> None:
        slope, _, _ = _rasters()
        assert zone_values(slope.values(), slope.transform, box(200, 200, 220, 220)).size == 0

    def test_nodata_pixels_skipped(self) -> None:
        data = np.ones((10, 10))
        data[2, 2] = -9999
        grid = _grid(data, nodata=-9999)
        assert zone_values(grid.values(), grid.transform, _POLY_A).size == 5


# ---------------------------------------------------------------------------
# ConfidenceScorer
# ---------------------------------------------------------------------------


class TestConfidenceScorer:
    def test_phase_one_statistics(self) -> None:
        scorer = ConfidenceScorer(*_rasters(), extra_fields=True)
        table = scorer.collect(_polygons(_POLY_A, _POLY_B))
        row = table.features.iloc[0]

        assert row["AREA"] == pytest.approx(600.0)
        assert row["Slope_mean"] == pytest.approx(28.0)
        assert row["Slope_min"] == 22.0
        assert row["Slope_max"] == 34.0
        assert row["Slope_median"] == pytest.approx(28.0)
        assert row["Slope_std"] == pytest.approx(math.sqrt(154.0 / 5))
        assert row["Elevation_min"] == 120.0
        assert row["Elevation_max"] == 130.0
        assert row["Elevation_range"] == 10.0
        assert row["Elevation_mean"] == pytest.approx(125.0)
        assert row["AWER"] == pytest.approx(10.0 / math.sqrt(600.0))
        assert row["RdNDVI"] == pytest.approx(0.3)
        assert table.features.iloc[1]["RdNDVI"] == pytest.approx(0.1)

    def test_scores_use_whole_set_normalisation(self) -> None:
        scored = ConfidenceScorer(*_rasters()).run(_polygons(_POLY_A, _POLY_B))
        assert scored["N_RdNDVI"].tolist() == [1.0, 0.0]

        expected = combine_confidence(
            scored["AREA"].to_numpy(),
            scored["Slope_mean"].to_numpy(),
            scored["AWER"].to_numpy(),
            np.array([1.0, 0.0]),
        )
        np.testing.assert_allclose(scored["CONFIDENCE"].to_numpy(), expected)

    def test_single_polygon_gets_zero_n_rdndvi(self) -> None:
        scored = ConfidenceScorer(*_rasters()).run(_polygons(_POLY_A))
        assert scored["N_RdNDVI"].tolist() == [0.0]
        assert np.isfinite(scored["CONFIDENCE"]).all()

    def test_default_columns(self) -> None:
        scored = ConfidenceScorer(*_rasters()).run(_polygons(_POLY_A, _POLY_B))
        assert list(scored.columns) == [
            "id", "geometry", "AREA", "Slope_mean", "AWER", "N_RdNDVI", "CONFIDENCE",
        ]

    def test_extra_columns(self) -> None:
        scored = ConfidenceScorer(*_rasters(), extra_fields=True).run(
            _polygons(_POLY_A, _POLY_B)
        )
        assert list(scored.columns) == [
            "id", "geometry", "AREA",
            "Slope_mean", "Slope_std", "Slope_min", "Slope_max", "Slope_median",
            "Elevation_min", "Elevation_max", "Elevation_range",
            "Elevation_mean", "Elevation_std",
            "AWER", "RdNDVI", "N_RdNDVI", "CONFIDENCE",
        ]

    def test_single_pixel_zone_has_zero_std(self) -> None:
        scorer = ConfidenceScorer(*_rasters(), extra_fields=True)
        table = scorer.collect(_polygons(box(20, 70, 30, 80)))
        assert table.features.iloc[0]["Slope_std"] == 0.0
        assert table.features.iloc[0]["Elevation_std"] == 0.0

    def test_no_nan_in_output(self) -> None:
        scored = ConfidenceScorer(*_rasters(), extra_fields=True).run(
            _polygons(_POLY_A, _POLY_B, box(20, 70, 30, 80))
        )
        numeric = scored.drop(columns=["geometry"]).to_numpy(dtype=np.float64)
        assert np.isfinite(numeric).all()


class TestEmptyZones:
    def test_drop_policy_reports_polygon(self, caplog: pytest.LogCaptureFixture) -> None:
        tiny = box(21, 61, 24, 64)  # contains no pixel centre
        scorer = ConfidenceScorer(*_rasters(), empty_zone_policy="drop")
        with caplog.at_level(logging.WARNING, logger="landslide_detector.confidence"):
            table = scorer.collect(_polygons(_POLY_A, tiny, _POLY_B))

        assert len(table) == 2
        assert [d.feature_id for d in table.dropped] == [1]
        assert "no valid pixels" in table.dropped[0].reason
        assert "Dropping polygon" in caplog.text

    def test_drop_when_dem_is_nodata(self) -> None:
        slope, dem, rdndvi = _rasters()
        dem_data = dem.data.copy()
        dem_data[6:8, 6:8] = -9999.0
        scorer = ConfidenceScorer(slope, dem.with_data(dem_data, nodata=-9999.0), rdndvi)
        scored = scorer.run(_polygons(_POLY_A, _POLY_B))
        assert scored["id"].tolist() == [1]

    def test_raise_policy(self) -> None:
        scorer = ConfidenceScorer(*_rasters(), empty_zone_policy="raise")
        with pytest.raises(ZonalStatisticsError, match="no valid pixels"):
            scorer.collect(_polygons(box(200, 200, 220, 220)))

    def test_unknown_policy(self) -> None:
        with pytest.raises(ConfigurationError):
            ConfidenceScorer(*_rasters(), empty_zone_policy="skip")  # type: ignore[arg-type]

    def test_empty_layer(self) -> None:
        scored = ConfidenceScorer(*_rasters()).run(_polygons())
        assert len(scored) == 0
        assert "CONFIDENCE" in scored.columns


class TestCrsAndExport:
    def test_crs_mismatch_raises(self) -> None:
        polygons = _polygons(_POLY_A).set_crs("EPSG:4326", allow_override=True)
        with pytest.raises(GridAlignmentError):
            ConfidenceScorer(*_rasters()).collect(polygons)

    def test_geopackage_round_trip(self, tmp_path: Path) -> None:
        scored = ConfidenceScorer(*_rasters(), extra_fields=True).run(
            _polygons(_POLY_A, _POLY_B)
        )
        path = write_polygons(scored, tmp_path / "scored.gpkg", "landslides")
        reread = gpd.read_file(path, layer="landslides")

        assert len(reread) == 2
        for column in ["AREA", "Slope_mean", "AWER", "N_RdNDVI", "CONFIDENCE"]:
            np.testing.assert_allclose(
                reread[column].to_numpy(), scored[column].to_numpy(), rtol=0, atol=1e-9
            )
