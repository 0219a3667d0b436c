"""
Landslide Detector — Shared Python Package
===========================================
Re-exports the base tool class, exception hierarchy, and validator
utilities so the detector modules can import from a single location::

    from shared.python import GeoTool, Validators
    from shared.python.exceptions import GridAlignmentError
"""

from shared.python.base_tool import GeoTool
from shared.python.exceptions import (
    BandIndexError,
    ConfigurationError,
    GridAlignmentError,
    InputValidationError,
    LandslideDetectorError,
    OutputWriteError,
    RasterError,
    ZonalStatisticsError,
)
from shared.python.validators import Validators

__all__ = [
    "GeoTool",
    "Validators",
    "LandslideDetectorError",
    "InputValidationError",
    "ConfigurationError",
    "RasterError",
    "BandIndexError",
    "GridAlignmentError",
    "ZonalStatisticsError",
    "OutputWriteError",
]
