"""
Landslide Detector — Configuration
===================================
One explicit configuration bundle passed to every stage.

Classes:
    Weights          Confidence scoring weights (all 1.0 by default).
    DetectorConfig   All detection and scoring parameters with defaults.

Usage::

    from landslide_detector.config import DetectorConfig

    config = DetectorConfig(min_area=500.0, kernel_size=5)
    policy = config.cleanup_policy(pixel_area=100.0)   # SieveWithRescue(5)
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Literal

from landslide_detector.cleanup import (
    RESCUE_SIEVE_PIXELS,
    CleanupPolicy,
    NoCleanup,
    SieveWithRescue,
)
from shared.python.exceptions import ConfigurationError
from shared.python.validators import Validators


@dataclass(frozen=True)
class Weights:
    """Weights of the four confidence terms.

    Attributes:
        area: Weight of the area term.
        slope: Weight of the mean-slope term.
        awer: Weight of the area-weighted elevation range term.
        rdndvi: Weight of the normalised RdNDVI term.
    """

    area: float = 1.0
    slope: float = 1.0
    awer: float = 1.0
    rdndvi: float = 1.0

    def __post_init__(self) -> None:
        for name in ("area", "slope", "awer", "rdndvi"):
            Validators.assert_in_range(getattr(self, name), f"weights.{name}", 0.0)
        if self.total <= 0:
            raise ConfigurationError("weights", self, "at least one weight must be positive")

    @property
    def total(self) -> float:
        return self.area + self.slope + self.awer + self.rdndvi


@dataclass(frozen=True)
class DetectorConfig:
    """Configuration for :func:`~landslide_detector.pipeline.detect`.

    Attributes:
        kernel_size: Odd focal window size in pixels.
        ndvi_threshold: Upper NDVI bound ``nt`` of the low-vegetation class.
        coverage_threshold: Minimum focal coverage ``kp``.
        rdndvi_threshold: Unrounded RdNDVI index value (before the output
            scale factor) a pixel must exceed to count as vegetation loss.
        min_area: Minimum landslide area in CRS units squared; ``0``
            disables sieve cleanup.
        water_threshold: Post-event NDWI above which pixels are water.
        slope_threshold: Slope (degrees) a pixel must exceed.
        artificial_buffer_factor: Buffer around artificial surfaces, in
            multiples of the pixel resolution.
        rescue_sieve_pixels: Region size threshold of the first sieve pass.
        connectivity: Pixel connectivity of the sieve passes.
        block_size: Tile edge length for pixel-local algebra.
        workers: Thread count for tiled algebra.
        extra_fields: Export additional zonal statistics.
        empty_zone_policy: ``"drop"`` or ``"raise"`` for polygons with no
            valid pixels under a raster.
        weights: Confidence scoring weights.
    """

    kernel_size: int = 3
    ndvi_threshold: float = 0.3
    coverage_threshold: float = 0.3
    rdndvi_threshold: float = 0.2
    min_area: float = 0.0
    water_threshold: float = 0.1
    slope_threshold: float = 3.0
    artificial_buffer_factor: float = 1.5
    rescue_sieve_pixels: int = RESCUE_SIEVE_PIXELS
    connectivity: int = 4
    block_size: int = 512
    workers: int = 1
    extra_fields: bool = False
    empty_zone_policy: Literal["drop", "raise"] = "drop"
    weights: Weights = field(default_factory=Weights)

    def __post_init__(self) -> None:
        Validators.assert_odd_kernel(self.kernel_size)
        Validators.assert_in_range(
            self.coverage_threshold, "coverage_threshold", 0.0, 1.0, low_inclusive=False
        )
        Validators.assert_in_range(self.min_area, "min_area", 0.0)
        Validators.assert_in_range(self.artificial_buffer_factor, "artificial_buffer_factor", 0.0)
        Validators.assert_in_range(self.rescue_sieve_pixels, "rescue_sieve_pixels", 1)
        Validators.assert_in_range(self.block_size, "block_size", 1)
        Validators.assert_in_range(self.workers, "workers", 1)
        if self.connectivity not in (4, 8):
            raise ConfigurationError("connectivity", self.connectivity, "must be 4 or 8")
        if self.empty_zone_policy not in ("drop", "raise"):
            raise ConfigurationError(
                "empty_zone_policy", self.empty_zone_policy, "must be 'drop' or 'raise'"
            )

    def min_area_pixels(self, pixel_area: float) -> int:
        """Minimum area as a pixel count: ``ceil(min_area / pixel_area)``, at least 1."""
        if pixel_area <= 0:
            raise ConfigurationError("pixel_area", pixel_area, "must be > 0")
        # 1.1 / 0.1 == 11.000000000000002
        return max(1, math.ceil(round(self.min_area / pixel_area, 9)))

    def cleanup_policy(self, pixel_area: float) -> CleanupPolicy:
        """Select the cleanup variant for a grid with the given pixel area."""
        if self.min_area == 0:
            return NoCleanup()
        return SieveWithRescue(
            min_area_pixels=self.min_area_pixels(pixel_area),
            rescue_pixels=self.rescue_sieve_pixels,
            connectivity=self.connectivity,
        )
