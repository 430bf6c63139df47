"""
Faceplate Control Detector

Heuristic detection of knobs, lamps, buttons and switches on photographed
equipment faceplates.
"""

__version__ = "0.3.0"

from faceplate_detect.config import Config, ConfigError, load_config
from faceplate_detect.models import CancelToken, ControlDraft, ControlKind, DetectionCancelled, PixelBuffer, Rect
from faceplate_detect.pipeline import DetectionPipeline, DetectionResult, PipelineError, detect

__all__ = [
    "CancelToken",
    "Config",
    "ConfigError",
    "ControlDraft",
    "ControlKind",
    "DetectionCancelled",
    "DetectionPipeline",
    "DetectionResult",
    "PipelineError",
    "PixelBuffer",
    "Rect",
    "detect",
    "load_config",
]
