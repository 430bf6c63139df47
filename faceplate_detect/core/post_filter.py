"""
Post Filter

Learned knob floor and column validity pruning.
"""

from __future__ import annotations

import logging
from typing import List

from faceplate_detect.models import ControlDraft, ControlKind

logger = logging.getLogger(__name__)

FLOOR_MIN_SAMPLES = 5
FLOOR_APPLY_SAMPLES = 8
FLOOR_FRACTION = 0.45
KNOB_COLUMN_FRACTION = 0.85


def median_upper(values: List[float]) -> float:
    """Upper median (element n//2 of the sorted list)."""
    s = sorted(values)
    return s[len(s) // 2]


def knob_diameters(drafts: List[ControlDraft]) -> List[float]:
    return sorted(d.radius * 2.0 for d in drafts if d.kind is ControlKind.KNOB and d.radius is not None)


def dynamic_knob_floor(diameters: List[float], knob_min: float) -> float:
    """
    max(knob_min, 0.45 × median of the upper half) with ≥ 5 samples, else knob_min.

    Example:
        >>> dynamic_knob_floor([10, 60, 60, 60, 60], 28.0)
        28.0
        >>> dynamic_knob_floor([80, 80, 100, 100, 100], 28.0)
        45.0
    """
    if len(diameters) < FLOOR_MIN_SAMPLES:
        return knob_min
    s = sorted(diameters)
    top_half = s[len(s) // 2:]
    return max(knob_min, top_half[len(top_half) // 2] * FLOOR_FRACTION)


def column_gap(xs: List[float], src_w: float) -> float:
    """First gap after dropping the smallest third; max(18, 2% width) without gaps."""
    gaps = sorted(b - a for a, b in zip(xs, xs[1:]))
    rest = gaps[len(gaps) // 3:]
    if rest:
        return rest[0]
    return max(18.0, src_w * 0.02)


def _keep_column(column: List[ControlDraft], floor: float) -> bool:
    diameters: List[float] = []
    lights = buttons = switches = concentric = 0
    for d in column:
        if d.kind is ControlKind.LIGHT:
            lights += 1
        elif d.kind is ControlKind.CONCENTRIC_KNOB:
            concentric += 1
            if d.radius is not None:
                diameters.append(d.radius * 2.0)
        elif d.kind is ControlKind.KNOB:
            if d.radius is not None:
                diameters.append(d.radius * 2.0)
        elif d.kind in (ControlKind.BUTTON, ControlKind.LIT_BUTTON):
            buttons += 1
        elif d.kind is ControlKind.MULTI_SWITCH:
            switches += 1

    med = median_upper(diameters) if diameters else 0.0
    return (
        lights >= 2
        or med >= floor * KNOB_COLUMN_FRACTION
        or concentric > 0
        or bool(diameters)
        or buttons >= 1
        or switches >= 1
    )


def post_filter(drafts: List[ControlDraft], knob_min: float, src_w: float) -> List[ControlDraft]:
    """
    1. Drop knobs under the learned floor (only with ≥ 8 knob samples).
    2. Cluster all drafts into x-columns; a column without control evidence loses its
       non-light members.
    """
    if not drafts:
        return drafts

    # 1. Dynamic knob floor
    ds = knob_diameters(drafts)
    floor = dynamic_knob_floor(ds, knob_min)
    keep = list(drafts)
    if len(ds) >= FLOOR_APPLY_SAMPLES:
        keep = [
            d for d in keep
            if not (d.kind is ControlKind.KNOB and d.radius is not None and d.radius * 2.0 < floor)
        ]
        logger.debug(f"Post filter: knob floor {floor:.1f}px, {len(drafts) - len(keep)} dropped")
    if not keep:
        return keep

    # 2. Column clustering on x
    order = sorted(range(len(keep)), key=lambda k: keep[k].center[0])
    xs = [keep[k].center[0] for k in order]
    x_tol = max(8.0, column_gap(xs, src_w) * 0.33)

    columns: List[List[int]] = []
    for k in order:
        if columns and abs(keep[k].center[0] - keep[columns[-1][-1]].center[0]) <= x_tol:
            columns[-1].append(k)
        else:
            columns.append([k])

    bad = set()
    for col in columns:
        if not _keep_column([keep[k] for k in col], floor):
            bad.update(k for k in col if keep[k].kind is not ControlKind.LIGHT)

    if bad:
        logger.debug(f"Post filter: pruned {len(bad)} drafts from weak columns")
    return [d for k, d in enumerate(keep) if k not in bad]
