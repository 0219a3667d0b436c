"""
Landslide Detector
==================
Detects landslides by change detection between pre-event and post-event
vegetation-index rasters and scores each detected polygon with a
confidence value.

Public API::

    from landslide_detector import DetectorConfig, LandslideDetector, detect
"""

from landslide_detector.config import DetectorConfig, Weights
from landslide_detector.confidence import ConfidenceScorer
from landslide_detector.grid import RasterGrid
from landslide_detector.pipeline import (
    ConfidenceTool,
    DetectionInputs,
    DetectionResult,
    LandslideDetector,
    detect,
)

__all__ = [
    "ConfidenceScorer",
    "ConfidenceTool",
    "DetectionInputs",
    "DetectionResult",
    "DetectorConfig",
    "LandslideDetector",
    "RasterGrid",
    "Weights",
    "detect",
]
__version__ = "1.0.0"
