"""
Label Assigner

"Knob 1", "Knob 2", ... 형식의 기본 라벨 부여 (행 우선, 열 다음).
"""

from __future__ import annotations

from dataclasses import replace
from functools import cmp_to_key
from typing import List

from faceplate_detect.models import ControlDraft, ControlKind

ROW_TOLERANCE_PX = 16.0
GENERIC_LABELS = frozenset({"", "knob", "lamp", "light", "button", "switch"})

BASE_NAMES = {
    ControlKind.KNOB: "Knob",
    ControlKind.STEPPED_KNOB: "Knob",
    ControlKind.CONCENTRIC_KNOB: "Knob",
    ControlKind.LIGHT: "Lamp",
    ControlKind.BUTTON: "Button",
    ControlKind.LIT_BUTTON: "Button",
    ControlKind.MULTI_SWITCH: "Switch",
}


def base_name(kind: ControlKind) -> str:
    return BASE_NAMES[kind]


def is_generic_label(label: str) -> bool:
    return label.strip().lower() in GENERIC_LABELS


def _reading_order(a: ControlDraft, b: ControlDraft) -> int:
    if abs(a.center[1] - b.center[1]) > ROW_TOLERANCE_PX:
        return -1 if a.center[1] < b.center[1] else 1
    if a.center[0] == b.center[0]:
        return 0
    return -1 if a.center[0] < b.center[0] else 1


def assign_default_labels(drafts: List[ControlDraft]) -> List[ControlDraft]:
    """
    Per kind, number drafts in reading order. Only generic or empty labels are
    replaced; the ordinal still counts drafts that keep their own label.

    Example:
        "Knob" at x=10 and "Knob" at x=50 in the same row become "Knob 1", "Knob 2".
    """
    out = list(drafts)
    for kind in ControlKind:
        idxs = [i for i, d in enumerate(out) if d.kind is kind]
        idxs.sort(key=cmp_to_key(lambda i, j: _reading_order(out[i], out[j])))
        base = base_name(kind)
        for n, i in enumerate(idxs, start=1):
            if is_generic_label(out[i].label):
                out[i] = replace(out[i], label=f"{base} {n}")
    return out
