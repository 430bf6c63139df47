"""
Promoter

- button + 내부 light → Lit Button
- 동심원 두 개 → Concentric Knob (같은 중심의 knob 중복 흡수)
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import List, Set

from faceplate_detect.core.nms import iou
from faceplate_detect.models import ControlDraft, ControlKind

logger = logging.getLogger(__name__)

LIT_INSET_FRAC = 0.18
LIT_CONFIDENCE = 0.70
CONCENTRIC_MIN_RATIO = 0.35
CONCENTRIC_MAX_RATIO = 0.70
CONCENTRIC_CONFIDENCE = 0.80
DUPLICATE_IOU = 0.60


def promote_lit_buttons(drafts: List[ControlDraft]) -> List[ControlDraft]:
    """
    A button whose 18%-inset rect contains light centers absorbs those lights.

    Returns:
        New list; the promoted button becomes kind litButton labeled "Lit Button"
    """
    if not drafts:
        return drafts
    out = list(drafts)
    absorbed: Set[str] = set()

    for i, d in enumerate(out):
        if d.kind is not ControlKind.BUTTON:
            continue
        inner = d.rect.inset(d.rect.width * LIT_INSET_FRAC, d.rect.height * LIT_INSET_FRAC)
        # 같은 LED를 여러 pass가 찾을 수 있으므로 inset 안의 light는 모두 흡수
        lights = [o for o in out if o.kind is ControlKind.LIGHT and o.id not in absorbed and inner.contains(o.center)]
        if not lights:
            continue
        absorbed.update(o.id for o in lights)
        out[i] = replace(
            d,
            kind=ControlKind.LIT_BUTTON,
            label="Lit Button",
            confidence=max(d.confidence, LIT_CONFIDENCE),
        )
        logger.debug(f"Promote: button+light ⇒ Lit Button @ ({d.center[0]:.0f}, {d.center[1]:.0f})")

    return [d for d in out if d.id not in absorbed]


def promote_concentric_knobs(drafts: List[ControlDraft]) -> List[ControlDraft]:
    """
    Two radius-bearing drafts sharing a center (within max(6, 0.35·R)) with an inner/outer
    radius ratio in [0.35, 0.70] become one concentricKnob; the inner one is dropped.
    Each draft pairs with at most one partner.
    """
    circular = [i for i, d in enumerate(drafts) if d.radius is not None]
    if len(circular) < 2:
        return drafts

    out = list(drafts)
    removed: Set[int] = set()
    paired: Set[int] = set()

    for i in circular:
        if i in removed or i in paired:
            continue
        r_i = out[i].radius
        ci = out[i].center
        tol = max(6.0, r_i * 0.35)

        for j in circular:
            if j == i or j in removed or j in paired:
                continue
            cj = out[j].center
            if math.hypot(cj[0] - ci[0], cj[1] - ci[1]) > tol:
                continue
            outer, inner = (i, j) if r_i >= out[j].radius else (j, i)
            ratio = out[inner].radius / max(1.0, out[outer].radius)
            if CONCENTRIC_MIN_RATIO <= ratio <= CONCENTRIC_MAX_RATIO:
                out[outer] = replace(
                    out[outer],
                    kind=ControlKind.CONCENTRIC_KNOB,
                    label="Concentric",
                    confidence=max(out[outer].confidence, CONCENTRIC_CONFIDENCE),
                )
                removed.add(inner)
                paired.add(outer)
                logger.debug(f"Promote: concentric pair ⇒ Concentric (ratio={ratio:.2f})")
                break

    return [d for k, d in enumerate(out) if k not in removed]


def absorb_concentric_duplicates(drafts: List[ControlDraft]) -> List[ControlDraft]:
    """
    Drop knob circles that repeat a concentric knob: center within max(6, 0.35·R) of it,
    or rect IoU above 0.60.
    """
    concentric = [d for d in drafts if d.kind is ControlKind.CONCENTRIC_KNOB and d.radius is not None]
    if not concentric:
        return drafts

    def repeats(d: ControlDraft) -> bool:
        for c in concentric:
            tol = max(6.0, c.radius * 0.35)
            if math.hypot(d.center[0] - c.center[0], d.center[1] - c.center[1]) <= tol:
                return True
            if iou(d.rect, c.rect) > DUPLICATE_IOU:
                return True
        return False

    out = [d for d in drafts if not (d.kind is ControlKind.KNOB and repeats(d))]
    if len(out) < len(drafts):
        logger.debug(f"Promote: {len(drafts) - len(out)} knob(s) absorbed by concentric knobs")
    return out


def promote(drafts: List[ControlDraft]) -> List[ControlDraft]:
    """Lit buttons first, then concentric pairs and their leftover duplicates."""
    drafts = promote_lit_buttons(drafts)
    drafts = promote_concentric_knobs(drafts)
    return absorb_concentric_duplicates(drafts)
