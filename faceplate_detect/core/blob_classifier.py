"""
Blob Classifier

연결 성분(blob)을 knob / light / button / multiSwitch 로 분류.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional

from faceplate_detect.core.bands import band_height_near, in_bands, near_any_band_center
from faceplate_detect.core.sampling import refine_center, ring_mean_luma
from faceplate_detect.models import Blob, ControlDraft, ControlKind, DetectionContext, Rect

logger = logging.getLogger(__name__)

EDGE_TOUCH_PX = 2
ELONGATED_ASPECT = 2.2
KNOB_MAX_ASPECT = 1.25
SWITCH_MIN_ASPECT = 1.8

FLUSH_CONTRAST = 0.03  # buttons/switches may sit flush with the panel
RAISED_CONTRAST = 0.06

BASE_CONFIDENCE = {
    ControlKind.KNOB: 0.62,
    ControlKind.CONCENTRIC_KNOB: 0.64,
    ControlKind.LIGHT: 0.55,
    ControlKind.BUTTON: 0.58,
    ControlKind.MULTI_SWITCH: 0.56,
}
DEFAULT_CONFIDENCE = 0.50


def roundness(blob: Blob) -> float:
    """
    Circle-area agreement damped by corner fill.

    min(πr², A) / max(πr², A) with r = ½·min(w, h) and A the hole-filled area, times
    (1 − corner fill). A square matches πr² at π/4 but fills its corners, so it scores ~0.
    """
    r = 0.5 * min(blob.width, blob.height)
    round_area = math.pi * r * r
    area = float(blob.filled_area)
    hi = max(round_area, area)
    if hi <= 0:
        return 0.0
    ratio = min(1.0, max(0.0, min(round_area, area) / hi))
    return ratio * (1.0 - min(1.0, max(0.0, blob.corner_fill)))


def classify_blob(blob: Blob, knob_min: float, knob_max: float, led_max: float,
                  roundness_tolerance: float) -> ControlKind:
    diameter = float(min(blob.width, blob.height))
    is_round = roundness(blob) > (1.0 - roundness_tolerance)
    if diameter <= led_max and is_round:
        return ControlKind.LIGHT
    if knob_min <= diameter <= knob_max and is_round and blob.aspect < KNOB_MAX_ASPECT:
        return ControlKind.KNOB
    if blob.aspect >= SWITCH_MIN_ASPECT:
        return ControlKind.MULTI_SWITCH
    return ControlKind.BUTTON


def default_blob_label(kind: ControlKind) -> str:
    return "Knob" if kind.is_knob_like else kind.value.capitalize()


def _draft_from_blob(ctx: DetectionContext, blob: Blob) -> Optional[ControlDraft]:
    cfg = ctx.config

    # 1. Panel edge artifacts and specks
    touches = blob.y <= EDGE_TOUCH_PX or blob.max_y >= ctx.scaled_h - EDGE_TOUCH_PX
    if touches and blob.aspect >= ELONGATED_ASPECT:
        return None
    if blob.width * blob.height < cfg.area_min_px:
        return None

    # 2. Classify
    kind = classify_blob(
        blob,
        cfg.knob_min_diameter_px,
        cfg.knob_max_diameter_px,
        cfg.led_max_diameter_px,
        cfg.rect_roundness_tolerance,
    )

    # 3. Luma contrast gate
    up_c = (blob.mid_x * ctx.up_x, blob.mid_y * ctx.up_y)
    up_r = 0.5 * min(blob.width * ctx.up_x, blob.height * ctx.up_y)
    inner = ring_mean_luma(ctx.luma, up_c, 0.0, up_r * 0.60)
    outer = ring_mean_luma(ctx.luma, up_c, up_r * 1.05, up_r * 1.40)
    threshold = FLUSH_CONTRAST if kind in (ControlKind.BUTTON, ControlKind.MULTI_SWITCH) else RAISED_CONTRAST
    if abs(outer - inner) < threshold:
        return None

    # 4. Band gates
    y_scaled = blob.mid_y
    limit = cfg.limit_search_to_bands
    if not (in_bands(y_scaled, ctx.bands_scaled, ctx.gate_top_scaled, ctx.gate_bot_scaled, limit)
            and near_any_band_center(y_scaled, ctx.bands_scaled, limit)):
        return None

    # 5. Buttons and switches keep their own extent
    if kind in (ControlKind.BUTTON, ControlKind.MULTI_SWITCH):
        rect = Rect(blob.x * ctx.up_x, blob.y * ctx.up_y, blob.width * ctx.up_x, blob.height * ctx.up_y)
        return ControlDraft(
            kind=kind,
            rect=rect.integral(),
            center=up_c,
            radius=None,
            label=default_blob_label(kind),
            confidence=BASE_CONFIDENCE.get(kind, DEFAULT_CONFIDENCE),
        )

    # 6. Round controls: refine, cap radius by band height
    b_h = band_height_near(y_scaled, ctx.bands_scaled, ctx.gate_top_scaled, ctx.gate_bot_scaled)
    r_clamp = min(up_r, 0.33 * b_h * ctx.max_up)
    up_c, up_r = refine_center(ctx.luma, up_c, r_clamp)
    final_r = min(up_r / ctx.max_up, 0.36 * b_h) * ctx.max_up

    return ControlDraft(
        kind=kind,
        rect=Rect.around(up_c, final_r).integral(),
        center=up_c,
        radius=final_r,
        label=default_blob_label(kind),
        confidence=BASE_CONFIDENCE.get(kind, DEFAULT_CONFIDENCE),
    )


def blob_pass(ctx: DetectionContext) -> List[ControlDraft]:
    """Classify every labeled blob into a draft (working blobs → full-res drafts)."""
    drafts: List[ControlDraft] = []
    for blob in ctx.blobs:
        draft = _draft_from_blob(ctx, blob)
        if draft is not None:
            drafts.append(draft)
    logger.debug(f"Blob pass: {len(ctx.blobs)} blobs → {len(drafts)} drafts")
    return drafts
