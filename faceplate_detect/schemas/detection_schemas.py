"""
Detection Report Schemas

Pydantic models for the JSON report written by the CLI.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RectModel(BaseModel):
    """Integral rectangle (source pixels, top-left origin)"""

    x: int = Field(..., description="Left edge")
    y: int = Field(..., description="Top edge")
    width: int = Field(..., description="Width", ge=0)
    height: int = Field(..., description="Height", ge=0)


class DraftModel(BaseModel):
    """Single control draft"""

    id: str = Field(..., description="Opaque draft identifier")
    kind: str = Field(..., description="Control kind (knob, light, litButton, ...)")
    label: str = Field(..., description="Default label, e.g. 'Knob 3'")
    rect: RectModel
    center: List[float] = Field(..., description="Center (x, y)", min_length=2, max_length=2)
    radius: Optional[float] = Field(None, description="Radius for circular controls", ge=0.0)
    confidence: float = Field(..., description="Detector confidence (0-1)", ge=0.0, le=1.0)

    @classmethod
    def from_draft(cls, draft: Any) -> "DraftModel":
        """ControlDraft → DraftModel"""
        x, y, w, h = draft.rect.to_xywh()
        return cls(
            id=draft.id,
            kind=draft.kind.value,
            label=draft.label,
            rect=RectModel(x=x, y=y, width=w, height=h),
            center=[round(float(draft.center[0]), 2), round(float(draft.center[1]), 2)],
            radius=None if draft.radius is None else round(float(draft.radius), 2),
            confidence=round(float(draft.confidence), 4),
        )


class DetectionReport(BaseModel):
    """Per-image detection report"""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "image_path": "panels/amp_front.jpg",
                "width": 1600,
                "height": 480,
                "processing_time_ms": 182.4,
                "counts": {"knob": 8, "light": 2},
                "bands": [[96.0, 210.0], [280.0, 400.0]],
                "drafts": [],
            }
        }
    )

    image_path: Optional[str] = Field(None, description="Source image path")
    width: int = Field(..., description="Image width (px)", ge=0)
    height: int = Field(..., description="Image height (px)", ge=0)
    processing_time_ms: float = Field(..., description="Detection time (ms)", ge=0.0)
    created_at: datetime = Field(default_factory=datetime.now, description="Report timestamp")
    counts: Dict[str, int] = Field(default_factory=dict, description="Draft count per kind")
    bands: List[List[float]] = Field(default_factory=list, description="Bands (full-resolution rows)")
    drafts: List[DraftModel] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: Any) -> "DetectionReport":
        """DetectionResult → DetectionReport"""
        return cls(
            image_path=None if result.image_path is None else str(result.image_path),
            width=result.width,
            height=result.height,
            processing_time_ms=round(result.processing_time_ms, 2),
            created_at=result.timestamp,
            counts=result.counts_by_kind,
            bands=[[round(lo, 1), round(hi, 1)] for lo, hi in result.bands_px],
            drafts=[DraftModel.from_draft(d) for d in result.drafts],
        )
