"""
Column Merger & Cross-Band Reconciler

같은 band 안의 중복 knob 병합, 두 band 사이 x 열(column) 정렬.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Dict, List, Sequence, Tuple

from faceplate_detect.core.bands import band_index_for_scaled_y
from faceplate_detect.core.post_filter import median_upper
from faceplate_detect.models import ControlDraft, ControlKind, Rect

logger = logging.getLogger(__name__)

DEFAULT_MEDIAN_DIAMETER = 28.0
DEFAULT_GRID_GAP = 48.0
INERTIA = 0.7


def _group_knobs_by_band(drafts: Sequence[ControlDraft], bands: Sequence[Tuple[float, float]],
                         up_y: float) -> Dict[int, List[ControlDraft]]:
    groups: Dict[int, List[ControlDraft]] = {}
    for d in drafts:
        if d.kind is ControlKind.KNOB:
            idx = band_index_for_scaled_y(d.center[1] / up_y, list(bands))
            groups.setdefault(idx, []).append(d)
    return groups


def _gaps(xs: List[float]) -> List[float]:
    return [b - a for a, b in zip(xs, xs[1:])]


def column_tolerance(items: List[ControlDraft]) -> float:
    """min(max(8, 0.45·medDia), max(8, min(0.6·q25Gap, 0.5·medGap)))"""
    diameters = [(d.radius or 0.0) * 2.0 for d in items]
    median_dia = median_upper(diameters) if diameters else DEFAULT_MEDIAN_DIAMETER

    gaps = sorted(_gaps(sorted(d.center[0] for d in items)))
    if gaps:
        med_gap = gaps[len(gaps) // 2]
        q25_gap = gaps[max(0, min(len(gaps) - 1, math.floor(0.25 * (len(gaps) - 1))))]
    else:
        med_gap = max(36.0, median_dia * 1.2)
        q25_gap = med_gap

    tol_from_dia = max(8.0, median_dia * 0.45)
    tol_from_gap = max(8.0, min(q25_gap * 0.60, med_gap * 0.50))
    return min(tol_from_dia, tol_from_gap)


def merge_per_band(drafts: List[ControlDraft], bands: Sequence[Tuple[float, float]],
                   up_y: float) -> List[ControlDraft]:
    """
    Per band, cluster knobs by x and keep the best of each cluster
    (confidence, then radius). Non-knob drafts pass through.
    """
    merged = [d for d in drafts if d.kind is not ControlKind.KNOB]
    groups = _group_knobs_by_band(drafts, bands, up_y)

    for band_idx in sorted(groups):
        items = groups[band_idx]
        x_tol = column_tolerance(items)

        clusters: List[List[ControlDraft]] = []
        last_x = -math.inf
        for d in sorted(items, key=lambda d: d.center[0]):
            if abs(d.center[0] - last_x) > x_tol:
                clusters.append([d])
                last_x = d.center[0]
            else:
                clusters[-1].append(d)
                last_x = last_x * INERTIA + d.center[0] * (1.0 - INERTIA)

        for cluster in clusters:
            merged.append(max(cluster, key=lambda d: (d.confidence, d.radius or 0.0)))

        logger.debug(f"Band {band_idx}: kept {len(clusters)} of {len(items)} knobs (xTol≈{x_tol:.0f})")

    return merged


def build_column_grid(xs: List[float]) -> Tuple[List[float], float]:
    """
    Merge sorted x positions into shared column seeds.

    Returns:
        (grid seeds, merge tolerance)
    """
    xs = sorted(xs)
    gaps = sorted(_gaps(xs))
    med_gap = gaps[len(gaps) // 2] if gaps else DEFAULT_GRID_GAP
    merge_tol = max(10.0, med_gap * 0.45)

    grid: List[float] = []
    for x in xs:
        if grid and abs(x - grid[-1]) <= merge_tol:
            grid[-1] = (grid[-1] + x) * 0.5
        else:
            grid.append(x)
    return grid, merge_tol


def _snap(d: ControlDraft, grid: List[float], snap_tol: float, max_shift: float) -> ControlDraft:
    x = d.center[0]
    best = min(grid, key=lambda g: abs(x - g))
    target = best if abs(x - best) <= snap_tol else x
    dx = max(-max_shift, min(max_shift, target - x))
    if abs(dx) < 0.5:
        return d

    center = (x + dx, d.center[1])
    if d.radius is not None:
        rect = Rect.around(center, d.radius).integral()
    else:
        rect = d.rect.offset(dx)
    return replace(d, center=center, rect=rect)


def reconcile_columns(drafts: List[ControlDraft], bands: Sequence[Tuple[float, float]],
                      up_y: float, max_shift: float) -> List[ControlDraft]:
    """Nudge knobs of bands 0 and 1 toward a shared column grid (|nudge| ≤ max_shift)."""
    groups = _group_knobs_by_band(drafts, bands, up_y)
    top, bottom = groups.get(0, []), groups.get(1, [])
    if not top or not bottom:
        return drafts

    grid, merge_tol = build_column_grid([d.center[0] for d in top + bottom])
    snap_tol = max(max_shift * 1.5, merge_tol)

    snapped_ids = {d.id for d in top + bottom}
    others = [d for d in drafts if d.id not in snapped_ids]
    snapped = [_snap(d, grid, snap_tol, max_shift) for d in top + bottom]
    logger.debug(f"Reconcile: {len(grid)} column seeds, max shift {max_shift:.0f}px")
    return others + snapped
