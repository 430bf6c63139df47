"""
Band Detector

마스크의 행별 엣지 밀도로 컨트롤 행(band)을 0~2개 찾는다.
All coordinates are working-resolution rows, top-left origin.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

import numpy as np
from scipy import ndimage

from faceplate_detect.models import DetectionContext

logger = logging.getLogger(__name__)

Band = Tuple[float, float]

MAX_BANDS = 2
SMOOTH_RADIUS = 3
# Empirical: a gap this empty between two peaks means a single-row device.
GAP_FILL_MERGE = 0.05
# Two peaks whose valley keeps this share of the weaker peak are the top and
# bottom rims of one row.
VALLEY_MERGE = 0.50
CENTRAL_LO = 0.30
CENTRAL_HI = 0.70


def _upper_median(values: np.ndarray) -> int:
    s = np.sort(values)
    return int(s[len(s) // 2])


def _box_smooth(a: np.ndarray, r: int) -> np.ndarray:
    """
    Mean over [i-r, i+r], window truncated at both ends.

    Every position sums its own window, so equal neighbourhoods give equal values.
    """
    r = max(1, r)
    a = np.asarray(a, dtype=np.float64)
    if a.size == 0:
        return a
    kernel = np.ones(2 * r + 1)
    sums = ndimage.correlate1d(a, kernel, mode="constant", cval=0.0)
    counts = ndimage.correlate1d(np.ones_like(a), kernel, mode="constant", cval=0.0)
    return sums / counts


def _interior(m: np.ndarray) -> Optional[Tuple[int, int, int, int]]:
    """
    Plate interior from per-column first/last set rows.

    Returns:
        (y_top, y_bot, y_min, y_max) or None when the interior is too short
    """
    h = m.shape[0]
    has = m.any(axis=0)
    tops = np.argmax(m, axis=0)
    bots = h - 1 - np.argmax(m[::-1], axis=0)
    valid = has & (bots > tops)
    if not valid.any():
        return None

    y_top = _upper_median(tops[valid])
    y_bot = _upper_median(bots[valid])
    if y_bot - y_top < max(24, h // 6):
        return None

    interior_h = y_bot - y_top
    shrink = max(4, int(interior_h * 0.06))
    y_min = max(0, y_top + shrink)
    y_max = min(h - 1, y_bot - shrink)
    if y_max <= y_min:
        return None
    return y_top, y_bot, y_min, y_max


def row_profile(mask: np.ndarray) -> Optional[Tuple[int, np.ndarray]]:
    """
    Smoothed row edge density inside the plate interior.

    Returns:
        (y_min, profile) where profile[i] belongs to row y_min + i, or None
    """
    if mask is None or mask.size == 0:
        return None
    m = mask > 0
    interior = _interior(m)
    if interior is None:
        return None
    _, _, y_min, y_max = interior
    hist = m[y_min:y_max + 1].sum(axis=1).astype(np.float64)
    smoothed = _box_smooth(_box_smooth(hist, SMOOTH_RADIUS), SMOOTH_RADIUS)
    return y_min, smoothed


def _make_disjoint(b0: Band, b1: Band) -> Tuple[Band, Band]:
    if b0[1] > b1[0]:
        trim = int(b0[1] - b1[0]) // 2 + 1
        b0 = (float(int(b0[0])), float(int(b0[1]) - trim))
        b1 = (float(int(b1[0]) + trim), float(int(b1[1])))
    return b0, b1


def row_bands(mask: np.ndarray) -> List[Band]:
    """
    Up to two non-overlapping horizontal bands of the interest mask.

    Peaks of the smoothed row density become bands; two bands with an almost empty
    gap, or with a valley that never drops below half the weaker peak, merge into one
    tall band, and central or crowded peaks fall back to the interior quartiles.

    Args:
        mask: (H, W) binary interest mask (working resolution)

    Returns:
        List of (lo, hi) closed row ranges, at most two, sorted top-down
    """
    if mask is None or mask.size == 0:
        return []
    m = mask > 0
    h = m.shape[0]

    # 1. Plate interior
    interior = _interior(m)
    if interior is None:
        return []
    y_top, y_bot, y_min, y_max = interior
    interior_h = y_bot - y_top

    # 2. Row density + smoothing
    hist = m[y_min:y_max + 1].sum(axis=1).astype(np.float64)
    sm = _box_smooth(_box_smooth(hist, SMOOTH_RADIUS), SMOOTH_RADIUS)

    # 3. Peak picking with NMS
    candidates: List[Tuple[int, float]] = []
    if y_max - y_min >= 3:
        for i in range(1, len(sm) - 2):
            if sm[i] > sm[i - 1] and sm[i] > sm[i + 1]:
                candidates.append((y_min + i, float(sm[i])))
    candidates.sort(key=lambda p: p[1], reverse=True)

    min_sep = max(6, int(interior_h * 0.22))
    nms_r = max(3, int(interior_h * 0.12))

    peaks: List[int] = []
    blocked = np.zeros(h, dtype=bool)
    for y, _ in candidates:
        if blocked[y]:
            continue
        peaks.append(y)
        blocked[max(y_min, y - nms_r):min(y_max, y + nms_r) + 1] = True
        if len(peaks) == MAX_BANDS:
            break

    # 4. Peaks → disjoint bands
    def make_band(center: int, half_h: int) -> Band:
        a = max(y_min, center - half_h)
        b = min(y_max, center + half_h)
        return float(a), float(max(a + 1, b))

    half = max(14, int(interior_h * 0.13))
    bands: List[Band] = []
    if len(peaks) >= 2:
        peaks.sort()
        bands = list(_make_disjoint(make_band(peaks[0], half), make_band(peaks[1], half)))
    elif len(peaks) == 1:
        bands = [make_band(peaks[0], half)]

    # 5. Single-row device: merge across a sparse gap, or across a shallow valley
    if len(bands) == 2:
        gap_start, gap_end = int(bands[0][1]), int(bands[1][0])
        i0, i1 = peaks[0] - y_min, peaks[1] - y_min
        valley = float(sm[i0:i1 + 1].min())
        valley_ratio = valley / max(1e-9, min(float(sm[i0]), float(sm[i1])))
        gap_fill = 1.0
        if gap_end > gap_start:
            gap = m[gap_start:gap_end + 1]
            gap_fill = float(gap.sum()) / max(1, gap.size)
        logger.debug(
            f"row_bands: gap y={gap_start}..{gap_end} fill={gap_fill * 100:.1f}% "
            f"valley={valley_ratio:.2f}"
        )
        if gap_fill < GAP_FILL_MERGE or valley_ratio >= VALLEY_MERGE:
            c0 = (bands[0][0] + bands[0][1]) * 0.5
            c1 = (bands[1][0] + bands[1][1]) * 0.5
            expanded = max(half, int(interior_h * 0.35))
            bands = [make_band(int((c0 + c1) * 0.5), expanded)]

    # 6. Quartile fallback
    def frac(y: float) -> float:
        return (y - y_min) / max(1, y_max - y_min)

    need_fallback = len(bands) == 0
    if len(bands) == 2:
        c0 = (bands[0][0] + bands[0][1]) * 0.5
        c1 = (bands[1][0] + bands[1][1]) * 0.5
        f0, f1 = frac(c0), frac(c1)
        central = CENTRAL_LO < f0 < CENTRAL_HI and CENTRAL_LO < f1 < CENTRAL_HI
        need_fallback = central or abs(c1 - c0) < min_sep

    if need_fallback:
        c_top = y_min + int((y_max - y_min) * 0.25)
        c_bot = y_min + int((y_max - y_min) * 0.75)
        bands = list(_make_disjoint(make_band(c_top, half), make_band(c_bot, half)))

    for i, (lo, hi) in enumerate(bands):
        logger.debug(f"row_bands: band[{i}] = {lo:.0f}..{hi:.0f} (h={int(hi - lo)})")
    return bands[:MAX_BANDS]


def compute_gates(bands: List[Band], scaled_h: int) -> Tuple[float, float]:
    """Outer limits of all bands, or the whole image height without bands."""
    if not bands:
        return 0.0, float(scaled_h - 1)
    return min(b[0] for b in bands), max(b[1] for b in bands)


def band_centers_and_halves(bands: List[Band]) -> Tuple[List[float], List[float]]:
    centers = [(lo + hi) * 0.5 for lo, hi in bands]
    halves = [(hi - lo) * 0.5 for lo, hi in bands]
    return centers, halves


def in_bands(y: float, bands: List[Band], gate_top: float, gate_bot: float, limit: bool) -> bool:
    if not limit:
        return True
    if not bands:
        return gate_top <= y <= gate_bot
    return any(lo <= y <= hi for lo, hi in bands)


def near_any_band_center(y: float, bands: List[Band], limit: bool) -> bool:
    if not limit or not bands:
        return True
    # 단일 행 장치는 허용 폭을 넓힘
    tol_factor = 1.5 if len(bands) == 1 else 0.80
    centers, halves = band_centers_and_halves(bands)
    return any(abs(y - c) <= max(10.0, tol_factor * hh + 4.0) for c, hh in zip(centers, halves))


def band_height_near(y: float, bands: List[Band], gate_top: float, gate_bot: float) -> float:
    for lo, hi in bands:
        if lo <= y <= hi:
            return hi - lo
    return max(24.0, gate_bot - gate_top) * 0.5


def band_index_for_scaled_y(y: float, bands: List[Band]) -> int:
    """Index of the band whose center is nearest to ``y``; -1 without bands."""
    best, best_d = -1, float("inf")
    for i, (lo, hi) in enumerate(bands):
        d = abs(y - (lo + hi) * 0.5)
        if d < best_d:
            best, best_d = i, d
    return best


def compute_bands(ctx: DetectionContext) -> None:
    ctx.bands_scaled = row_bands(ctx.mask)
    ctx.gate_top_scaled, ctx.gate_bot_scaled = compute_gates(ctx.bands_scaled, ctx.scaled_h)
    logger.debug(
        f"Bands: {len(ctx.bands_scaled)} "
        f"gate={ctx.gate_top_scaled:.0f}..{ctx.gate_bot_scaled:.0f}"
    )
