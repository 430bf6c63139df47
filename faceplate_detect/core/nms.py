"""
NMS / Deduplicator (same kind only)
"""

from __future__ import annotations

import math
from typing import List

from faceplate_detect.models import ControlDraft, Rect

IOU_THRESHOLD = 0.60
CENTER_TOL_MIN = 6.0
CENTER_TOL_FRAC = 0.35


def iou(a: Rect, b: Rect) -> float:
    inter = a.intersection(b)
    if inter is None:
        return 0.0
    i_area = inter.width * inter.height
    u_area = a.width * a.height + b.width * b.height - i_area
    return 0.0 if u_area <= 0 else i_area / u_area


def non_max_suppression(drafts: List[ControlDraft], iou_threshold: float = IOU_THRESHOLD) -> List[ControlDraft]:
    """Highest confidence first; drop same-kind drafts overlapping a kept one by IoU > threshold."""
    kept: List[ControlDraft] = []
    for d in sorted(drafts, key=lambda d: d.confidence, reverse=True):
        if not any(k.kind is d.kind and iou(k.rect, d.rect) > iou_threshold for k in kept):
            kept.append(d)
    return kept


def dedupe_by_center(drafts: List[ControlDraft]) -> List[ControlDraft]:
    """Drop same-kind drafts whose centers lie within max(6, 0.35·min(r0, r1)) of a kept one."""
    kept: List[ControlDraft] = []
    for d in sorted(drafts, key=lambda d: d.confidence, reverse=True):
        duplicate = False
        for k in kept:
            if k.kind is not d.kind:
                continue
            tol = max(CENTER_TOL_MIN, min(k.radius or 0.0, d.radius or 0.0) * CENTER_TOL_FRAC)
            if math.hypot(k.center[0] - d.center[0], k.center[1] - d.center[1]) < tol:
                duplicate = True
                break
        if not duplicate:
            kept.append(d)
    return kept
