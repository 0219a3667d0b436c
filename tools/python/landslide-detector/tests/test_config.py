"""
Tests — Configuration
======================
Unit tests for :class:`~landslide_detector.config.DetectorConfig` and
:class:`~landslide_detector.config.Weights`.
"""

from __future__ import annotations

import pytest

from landslide_detector.cleanup import NoCleanup, SieveWithRescue
from landslide_detector.config import DetectorConfig, Weights
from shared.python.exceptions import ConfigurationError


class TestDetectorConfig:
    def test_defaults(self) -> None:
        config = DetectorConfig()
        assert config.kernel_size == 3
        assert config.ndvi_threshold == 0.3
        assert config.coverage_threshold == 0.3
        assert config.rdndvi_threshold == 0.2
        assert config.min_area == 0.0
        assert config.water_threshold == 0.1
        assert config.slope_threshold == 3.0
        assert config.artificial_buffer_factor == 1.5
        assert config.rescue_sieve_pixels == 5
        assert config.empty_zone_policy == "drop"
        assert config.weights == Weights()

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"kernel_size": 4},
            {"kernel_size": 0},
            {"kernel_size": 2.5},
            {"min_area": -1.0},
            {"coverage_threshold": 0.0},
            {"coverage_threshold": 1.2},
            {"connectivity": 6},
            {"empty_zone_policy": "ignore"},
            {"workers": 0},
        ],
    )
    def test_rejects_invalid_values(self, kwargs: dict) -> None:
        with pytest.raises(ConfigurationError):
            DetectorConfig(**kwargs)

    def test_zero_min_area_skips_cleanup(self) -> None:
        assert isinstance(DetectorConfig().cleanup_policy(pixel_area=100.0), NoCleanup)

    def test_min_area_selects_sieve(self) -> None:
        policy = DetectorConfig(min_area=500.0).cleanup_policy(pixel_area=100.0)
        assert policy == SieveWithRescue(min_area_pixels=5, rescue_pixels=5, connectivity=4)

    @pytest.mark.parametrize(
        "min_area,pixel_area,expected",
        [
            (500.0, 100.0, 5),
            (501.0, 100.0, 6),
            (50.0, 100.0, 1),
            (1.1, 0.1, 11),
        ],
    )
    def test_min_area_pixels(self, min_area: float, pixel_area: float, expected: int) -> None:
        assert DetectorConfig(min_area=min_area).min_area_pixels(pixel_area) == expected


class TestWeights:
    def test_total(self) -> None:
        assert Weights(area=2.0, slope=1.0, awer=0.5, rdndvi=0.5).total == 4.0

    def test_rejects_negative_weight(self) -> None:
        with pytest.raises(ConfigurationError):
            Weights(slope=-1.0)

    def test_rejects_all_zero(self) -> None:
        with pytest.raises(ConfigurationError):
            Weights(area=0.0, slope=0.0, awer=0.0, rdndvi=0.0)
