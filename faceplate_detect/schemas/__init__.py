"""
Schemas Package

Pydantic models for config files and detection reports.
"""

from .config_schemas import DetectorConfigFile
from .detection_schemas import DetectionReport, DraftModel, RectModel

__all__ = [
    # Config
    "DetectorConfigFile",
    # Reports
    "DetectionReport",
    "DraftModel",
    "RectModel",
]
