from __future__ import annotations

from dataclasses import replace
from typing import List

from faceplate_detect.models import ControlDraft, Rect

MIN_SIDE_PX = 3


def clamp_drafts_to_image(drafts: List[ControlDraft], width: float, height: float) -> List[ControlDraft]:
    """
    Clamp rects and centers into [0, width) × [0, height).

    Drafts whose clamped rect is narrower or shorter than 3 px are dropped.
    """
    out: List[ControlDraft] = []
    for d in drafts:
        r = d.rect
        # normalize negative sizes
        x0, x1 = sorted((r.x, r.max_x))
        y0, y1 = sorted((r.y, r.max_y))

        x = max(0.0, x0)
        y = max(0.0, y0)
        w = max(0.0, min(x1 - x, width - x))
        h = max(0.0, min(y1 - y, height - y))
        if w < MIN_SIDE_PX or h < MIN_SIDE_PX:
            continue

        rect = Rect(x, y, w, h).integral()
        center = (
            min(max(d.center[0], 0.0), max(0.0, width - 1)),
            min(max(d.center[1], 0.0), max(0.0, height - 1)),
        )
        out.append(replace(d, rect=rect, center=center))
    return out
