"""
Luma/RGB ring sampling on the full-resolution source.
"""

from __future__ import annotations

from typing import Sequence, Tuple

import numpy as np

from faceplate_detect.models import Point

RING_RAYS = 32
RGB_RAYS = 24
RGB_RADIUS_FRAC = 0.45

_RING_ANGLES = np.arange(RING_RAYS) * (2.0 * np.pi / RING_RAYS)
_RGB_ANGLES = np.arange(RGB_RAYS) * (2.0 * np.pi / RGB_RAYS)


def round_half_up(v: np.ndarray) -> np.ndarray:
    return np.floor(np.asarray(v) + 0.5).astype(np.int64)


def ring_mean_luma_many(luma: np.ndarray, centers: np.ndarray, r0: float, r1: float) -> np.ndarray:
    """
    Mean luma on the ring [r0, r1] for many centers at once.

    Each of the 32 rays is sampled at r0 and at 0.6·r0 + 0.4·r1. Samples on the
    outermost pixel frame are skipped; a center with no valid sample reads 1.0.

    Args:
        luma: (H, W) float plane in 0..1
        centers: (N, 2) array of (x, y)
        r0, r1: inner/outer ring radius (px)

    Returns:
        (N,) float64 array
    """
    h, w = luma.shape[:2]
    c = np.asarray(centers, dtype=np.float64).reshape(-1, 2)
    radii = np.array([r0, 0.6 * r0 + 0.4 * r1], dtype=np.float64)

    xs = c[:, 0, None, None] + radii[None, :, None] * np.cos(_RING_ANGLES)[None, None, :]
    ys = c[:, 1, None, None] + radii[None, :, None] * np.sin(_RING_ANGLES)[None, None, :]
    xi, yi = round_half_up(xs), round_half_up(ys)
    valid = (xi > 0) & (yi > 0) & (xi < w - 1) & (yi < h - 1)

    vals = luma[np.clip(yi, 0, max(0, h - 1)), np.clip(xi, 0, max(0, w - 1))].astype(np.float64)
    vals = np.where(valid, vals, 0.0)
    count = valid.sum(axis=(1, 2))
    total = vals.sum(axis=(1, 2))
    return np.where(count > 0, total / np.maximum(count, 1), 1.0)


def ring_mean_luma(luma: np.ndarray, center: Point, r0: float, r1: float) -> float:
    return float(ring_mean_luma_many(luma, np.array([center]), r0, r1)[0])


def mean_rgb(pixels: np.ndarray, center: Point, radius: float) -> Tuple[float, float, float]:
    """평균 RGB (0..1) - 반지름 0.45 지점 24개 샘플. 샘플이 없으면 (0, 0, 0)."""
    h, w = pixels.shape[:2]
    rr = max(1.0, radius) * RGB_RADIUS_FRAC
    xi = round_half_up(center[0] + rr * np.cos(_RGB_ANGLES))
    yi = round_half_up(center[1] + rr * np.sin(_RGB_ANGLES))
    valid = (xi > 0) & (yi > 0) & (xi < w) & (yi < h)
    if not valid.any():
        return 0.0, 0.0, 0.0
    rgb = pixels[yi[valid], xi[valid], :3].astype(np.float64) / 255.0
    r, g, b = rgb.mean(axis=0)
    return float(r), float(g), float(b)


def _search_offsets(search: int) -> np.ndarray:
    """Window offsets ordered nearest-first (ties: row, then column)."""
    offsets = [(dx, dy) for dy in range(-search, search + 1) for dx in range(-search, search + 1)]
    offsets.sort(key=lambda o: (o[0] * o[0] + o[1] * o[1], o[1], o[0]))
    return np.array(offsets, dtype=np.float64)


def refine_center(luma: np.ndarray, center: Point, r_clamp: float) -> Tuple[Point, float]:
    """
    Small local search maximizing |outer ring luma − inner disk luma|.

    The nearest offset wins ties, so an already centered control stays put.

    Returns:
        (refined center, radius estimate max(4, 0.9·r_clamp))
    """
    radius = max(4.0, r_clamp * 0.90)
    r_inner = max(4.0, r_clamp * 0.60)
    r_outer = max(r_inner + 1.0, r_clamp * 1.10)
    search = max(2, int(r_clamp * 0.15))

    candidates = np.asarray(center, dtype=np.float64)[None, :] + _search_offsets(search)
    inner = ring_mean_luma_many(luma, candidates, 0.0, r_inner)
    outer = ring_mean_luma_many(luma, candidates, r_outer, r_outer * 1.35)
    best = int(np.argmax(np.abs(outer - inner)))
    return (float(candidates[best, 0]), float(candidates[best, 1])), radius


def ring_profile(luma: np.ndarray, center: Point, radius: float,
                 bands: Sequence[Tuple[float, float]]) -> Tuple[float, ...]:
    """Mean luma for several (r0_frac, r1_frac) rings scaled by ``radius``."""
    return tuple(ring_mean_luma(luma, center, radius * a, radius * b) for a, b in bands)
