"""
Landslide Detector — Custom Exception Hierarchy
================================================
Every stage of the detector raises exceptions from this module so callers
can catch them at the right level of granularity.

Hierarchy::

    LandslideDetectorError               ← catch-all base
    ├── InputValidationError             ← bad files, missing parameters
    │   └── ConfigurationError           ← invalid parameter values
    ├── RasterError                      ← rasterio / numpy raster issues
    │   ├── BandIndexError               ← requested band does not exist
    │   └── GridAlignmentError           ← inputs do not share one grid
    ├── ZonalStatisticsError             ← undefined per-polygon statistic
    └── OutputWriteError                 ← cannot write to output path

Usage::

    from shared.python.exceptions import ConfigurationError

    raise ConfigurationError("kernel_size", 4, "must be an odd integer")
"""

from __future__ import annotations


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


class LandslideDetectorError(Exception):
    """Base exception for the landslide detector.

    Catch this to handle any detector error without caring about the
    exact subtype.

    Args:
        message: Human-readable description of the error.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message: str = message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


class InputValidationError(LandslideDetectorError):
    """Raised when the detector's inputs fail pre-processing validation.

    This is the parent class for more specific input problems.
    """


class ConfigurationError(InputValidationError):
    """Raised when a processing parameter has an unusable value.

    Configuration errors are detected before any raster is read.

    Args:
        parameter: Name of the offending parameter (e.g. ``"kernel_size"``).
        value: The rejected value.
        reason: Short explanation of the constraint that was violated.

    Example::

        raise ConfigurationError("kernel_size", 4, "must be an odd integer")
    """

    def __init__(self, parameter: str, value: object, reason: str) -> None:
        super().__init__(f"Invalid value {value!r} for '{parameter}': {reason}")
        self.parameter: str = parameter
        self.value: object = value
        self.reason: str = reason


# ---------------------------------------------------------------------------
# Raster
# ---------------------------------------------------------------------------


class RasterError(LandslideDetectorError):
    """Raised for general raster processing failures (rasterio / numpy).

    Subclass this for more specific raster errors.
    """


class BandIndexError(RasterError):
    """Raised when a requested raster band index does not exist.

    Args:
        band_index: The 1-based band number that was requested.
        total_bands: Total number of bands in the raster file.
    """

    def __init__(self, band_index: int, total_bands: int) -> None:
        super().__init__(
            f"Band {band_index} does not exist. "
            f"This raster has {total_bands} band(s) (1-indexed)."
        )
        self.band_index: int = band_index
        self.total_bands: int = total_bands


class GridAlignmentError(RasterError):
    """Raised when rasters combined pixel-wise do not share one grid.

    The detector never reprojects or resamples; inputs must already be
    aligned to a common extent, pixel size and CRS.

    Args:
        label_a: Name of the reference raster.
        label_b: Name of the raster that does not match.
        detail: What differs (shape, transform or CRS).

    Example::

        raise GridAlignmentError("pre_ndvi", "slope", "shape (10, 10) != (12, 10)")
    """

    def __init__(self, label_a: str, label_b: str, detail: str) -> None:
        super().__init__(
            f"Raster '{label_b}' is not aligned with '{label_a}': {detail}. "
            "All inputs must share width, height, georeference and CRS."
        )
        self.label_a: str = label_a
        self.label_b: str = label_b
        self.detail: str = detail


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


class ZonalStatisticsError(LandslideDetectorError):
    """Raised when a per-polygon statistic has no defined value.

    Args:
        feature_id: Index label of the polygon in its feature collection.
        layer: Name of the raster (or attribute) the statistic was taken on.
        reason: Short explanation, e.g. ``"no valid pixels under polygon"``.
    """

    def __init__(self, feature_id: object, layer: str, reason: str) -> None:
        super().__init__(f"Polygon {feature_id!r}, {layer}: {reason}")
        self.feature_id: object = feature_id
        self.layer: str = layer
        self.reason: str = reason


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


class OutputWriteError(LandslideDetectorError):
    """Raised when the detector cannot write its output to disk.

    Args:
        output_path: String representation of the path that failed.
        reason: Underlying OS or library error message.
    """

    def __init__(self, output_path: str, reason: str) -> None:
        super().__init__(
            f"Failed to write output to '{output_path}': {reason}"
        )
        self.output_path: str = output_path
        self.reason: str = reason
