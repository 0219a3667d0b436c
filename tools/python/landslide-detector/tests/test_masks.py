"""
Tests — Mask Algebra
=====================
Unit tests for the mask builders and combination policies in
:mod:`landslide_detector.masks`.
"""

from __future__ import annotations

import logging

import numpy as np
import pytest
from rasterio.crs import CRS
from rasterio.transform import from_origin

from landslide_detector.grid import RasterGrid
from landslide_detector.masks import (
    MASK_NODATA,
    and_combine,
    apply_extent,
    artificial_mask,
    rescue_combine,
    slope_mask,
    threshold_mask,
    validity_mask,
    water_mask,
)
from shared.python.exceptions import GridAlignmentError, InputValidationError

_TRANSFORM = from_origin(0.0, 70.0, 10.0, 10.0)
_CRS = CRS.from_epsg(32633)


def _grid(data, *, nodata=None, scale=1.0, name="raster") -> RasterGrid:
    return RasterGrid(np.asarray(data), _TRANSFORM, _CRS, nodata, scale, name)


def _mask(data, name="mask") -> RasterGrid:
    return _grid(np.asarray(data, dtype=np.uint8), nodata=MASK_NODATA, name=name)


def _random_mask(rng: np.random.Generator, name: str = "mask") -> RasterGrid:
    return _mask(rng.choice([0, 1, MASK_NODATA], size=(6, 7)), name)


# ---------------------------------------------------------------------------
# Combination policies
# ---------------------------------------------------------------------------


class TestAndCombine:
    def test_truth_table(self) -> None:
        a = _mask([[1, 1, 0, 1]])
        b = _mask([[1, 0, 0, MASK_NODATA]])
        assert and_combine(a, b).data.tolist() == [[1, 0, 0, 0]]

    def test_idempotent(self) -> None:
        rng = np.random.default_rng(3)
        m = _random_mask(rng)
        once = and_combine(m)
        np.testing.assert_array_equal(and_combine(m, m).data, once.data)
        np.testing.assert_array_equal(and_combine(once, once).data, once.data)

    def test_output_values_are_binary(self) -> None:
        rng = np.random.default_rng(5)
        out = and_combine(_random_mask(rng), _random_mask(rng), _random_mask(rng))
        assert set(np.unique(out.data)) <= {0, 1}
        assert out.dtype == np.uint8
        assert out.nodata == MASK_NODATA

    def test_requires_a_mask(self) -> None:
        with pytest.raises(InputValidationError):
            and_combine()

    def test_rejects_misaligned(self) -> None:
        other = RasterGrid(np.ones((1, 4), dtype=np.uint8), from_origin(5.0, 70.0, 10.0, 10.0), _CRS)
        with pytest.raises(GridAlignmentError):
            and_combine(_mask([[1, 1, 1, 1]]), other)


class TestRescueCombine:
    def test_with_rescue(self) -> None:
        a = _mask([[1, 1, 1, 0]])
        b = _mask([[1, 0, 0, 1]])
        c = _mask([[0, 1, 0, 1]])
        assert rescue_combine(a, b, c).data.tolist() == [[1, 1, 0, 0]]

    def test_without_rescue(self) -> None:
        a = _mask([[1, 1, 1, 0]])
        b = _mask([[1, 0, 0, 1]])
        assert rescue_combine(a, b).data.tolist() == [[1, 0, 0, 0]]

    def test_nodata_never_selected(self) -> None:
        a = _mask([[MASK_NODATA, 1]])
        b = _mask([[1, MASK_NODATA]])
        c = _mask([[1, MASK_NODATA]])
        assert rescue_combine(a, b, c).data.tolist() == [[0, 0]]


class TestApplyExtent:
    def test_outside_extent_becomes_nodata(self) -> None:
        mask = _mask([[1, 0, 1]], name="detection")
        extent = _mask([[1, 1, 0]])
        out = apply_extent(mask, extent)
        assert out.data.tolist() == [[1, 0, MASK_NODATA]]
        assert out.name == "detection"

    def test_values_stay_in_mask_domain(self) -> None:
        rng = np.random.default_rng(9)
        out = apply_extent(_random_mask(rng), _random_mask(rng))
        assert set(np.unique(out.data)) <= {0, 1, MASK_NODATA}


# ---------------------------------------------------------------------------
# Mask builders
# ---------------------------------------------------------------------------


class TestValidityMask:
    def test_any_nodata_invalidates(self) -> None:
        a = _grid([[0.1, -9999, 0.3]], nodata=-9999)
        b = _grid([[0.2, 0.2, np.nan]])
        assert validity_mask(a, b).data.tolist() == [[1, 0, 0]]


class TestWaterMask:
    def test_threshold_and_nodata(self) -> None:
        ndwi = _grid([[0.05, 0.1, 0.2, -9999]], nodata=-9999)
        out = water_mask(ndwi, threshold=0.1)
        assert out.data.tolist() == [[1, 1, 0, MASK_NODATA]]
        assert out.name == "water_mask"

    def test_uses_scaled_values(self) -> None:
        ndwi = _grid(np.array([[500, 2000]], dtype=np.int16), scale=0.0001)
        assert water_mask(ndwi).data.tolist() == [[1, 0]]


class TestThresholdMask:
    def test_strictly_greater(self) -> None:
        rdndvi = _grid(
            np.array([[2500, 1500, -32768]], dtype=np.int32), nodata=-32768, scale=0.0001
        )
        out = threshold_mask(rdndvi, 0.2, name="change_mask")
        assert out.data.tolist() == [[1, 0, MASK_NODATA]]
        assert out.name == "change_mask"

    def test_stored_values_ignore_scale(self) -> None:
        rdndvi = _grid(np.array([[1, 0, -32768]], dtype=np.int32), nodata=-32768, scale=0.0001)
        out = threshold_mask(rdndvi, 0.2, use_scale=False)
        assert out.data.tolist() == [[1, 0, MASK_NODATA]]


class TestSlopeMask:
    def test_requires_slope_and_change(self) -> None:
        slope = _grid([[2.0, 4.0, 4.0, 3.0]])
        change = _mask([[1, 1, 0, 1]])
        out = slope_mask(slope, change, threshold=3.0)
        assert out.data.tolist() == [[0, 1, 0, 0]]
        assert out.name == "slope_mask"


class TestArtificialMask:
    def test_buffer_of_one_and_a_half_pixels(self) -> None:
        data = np.zeros((7, 7), dtype=np.uint8)
        data[3, 3] = 1
        out = artificial_mask(_grid(data, name="artificial"), buffer_factor=1.5)
        assert out is not None
        expected = np.ones((7, 7), dtype=np.uint8)
        # 10 m and 14.1 m neighbours fall inside the 15 m buffer; 20 m does not.
        expected[2:5, 2:5] = 0
        np.testing.assert_array_equal(out.data, expected)

    def test_larger_buffer(self) -> None:
        data = np.zeros((7, 7), dtype=np.uint8)
        data[3, 3] = 1
        out = artificial_mask(_grid(data), buffer_factor=2.0)
        assert out is not None
        assert out.data[3, 1] == 0
        assert out.data[3, 0] == 1
        assert out.data[1, 1] == 1

    def test_degenerate_input_is_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="landslide_detector.masks"):
            out = artificial_mask(_grid(np.zeros((4, 4), dtype=np.uint8), name="artificial"))
        assert out is None
        assert "no pixel valued 1" in caplog.text
