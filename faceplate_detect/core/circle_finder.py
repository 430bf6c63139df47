"""
Circle Finder

Hough 방식의 원 검출기 (그래디언트 법선 방향 투표).
Returns circles in the pixel space of the image it was given (after its own optional
downscale to ``max_side``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import cv2
import numpy as np
from scipy import ndimage

from faceplate_detect.models import CircleCandidate
from faceplate_detect.utils.image_utils import luma, resize_keep_aspect

logger = logging.getLogger(__name__)

CONTRAST_BOOST = 1.05
BLUR_SIGMA = 1.6

# Ring quality acceptance
QUALITY_SAMPLES = 36
QUALITY_SECTORS = 12
MIN_COVERAGE = 0.38
MIN_OUTWARD = 0.28
MIN_HITS = 8

# 12% of the accumulator peak at vote fraction 0.32
ACCEPT_SCALE = 0.375
NAIVE_ACCEPT = 0.10
NAIVE_DIRECTIONS = 12
GRID_ACCEPT = 0.40
GRID_MIN_HIT_FRAC = 0.40


@dataclass
class CircleFinderConfig:
    """원 검출 파라미터"""

    max_side: int = 900
    min_radius: float = 8.0
    max_radius: float = 64.0
    radius_step: float = 2.0
    vote_threshold_fraction: float = 0.32
    max_results: int = 96
    nms_radius: float = 12.0
    enable_naive_angle_fallback: bool = True


@dataclass
class _Gradients:
    gx: np.ndarray
    gy: np.ndarray
    mag: np.ndarray  # normalized 0..1
    thr: float

    @property
    def shape(self) -> Tuple[int, int]:
        return self.mag.shape


def _round_away(v) -> np.ndarray:
    """Round half away from zero."""
    v = np.asarray(v, dtype=np.float64)
    return (np.sign(v) * np.floor(np.abs(v) + 0.5)).astype(np.int64)


def _percentile(a: np.ndarray, p: float) -> float:
    n = a.size
    if n == 0:
        return 0.0
    k = max(0, min(n - 1, int((n - 1) * p)))
    return float(np.partition(a.ravel(), k)[k])


def _gradients(image: np.ndarray) -> _Gradients:
    gray = luma(image)
    gray = np.clip((gray - 0.5) * CONTRAST_BOOST + 0.5, 0.0, 1.0).astype(np.float32)
    blurred = cv2.GaussianBlur(gray, (0, 0), BLUR_SIGMA)
    gx = cv2.Sobel(blurred, cv2.CV_32F, 1, 0, ksize=3)
    gy = cv2.Sobel(blurred, cv2.CV_32F, 0, 1, ksize=3)
    mag = np.hypot(gx, gy)
    lo, hi = float(mag.min()), float(mag.max())
    mag = (mag - lo) / max(1e-6, hi - lo)
    thr = max(0.10, _percentile(mag, 0.25))
    return _Gradients(gx=gx, gy=gy, mag=mag, thr=thr)


def _radius_range(cfg: CircleFinderConfig) -> Tuple[int, int, int]:
    r_min = int(_round_away(cfg.min_radius))
    r_max = int(_round_away(cfg.max_radius))
    r_step = max(1, int(_round_away(cfg.radius_step)))
    return r_min, r_max, r_step


def _vote(acc: np.ndarray, cx: np.ndarray, cy: np.ndarray, w: int, h: int) -> None:
    ok = (cx > 1) & (cy > 1) & (cx < w - 2) & (cy < h - 2)
    acc += np.bincount(cy[ok] * w + cx[ok], minlength=w * h).reshape(h, w)


def _edge_pixels(grad: _Gradients) -> Tuple[np.ndarray, np.ndarray]:
    h, w = grad.shape
    strong = np.zeros((h, w), dtype=bool)
    strong[1:h - 1, 1:w - 1] = grad.mag[1:h - 1, 1:w - 1] >= grad.thr
    ys, xs = np.nonzero(strong)
    return xs, ys


def _peaks(acc: np.ndarray, accept: int, margin: int = 1) -> List[Tuple[int, int]]:
    """3×3 local maxima ≥ accept, raster order, ``margin`` px away from the border."""
    h, w = acc.shape
    local_max = ndimage.maximum_filter(acc, size=3, mode="constant", cval=0)
    hit = (acc >= accept) & (acc == local_max)
    region = np.zeros_like(hit)
    region[margin:h - margin, margin:w - margin] = True
    ys, xs = np.nonzero(hit & region)
    return list(zip(xs.tolist(), ys.tolist()))


def _quality_many(grad: _Gradients, centers: np.ndarray, r: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Ring quality for many centers at one radius.

    Returns:
        (sector coverage 0..1, outward fraction 0..1, hit count) per center
    """
    h, w = grad.shape
    c = np.asarray(centers, dtype=np.float64).reshape(-1, 2)
    ang = np.arange(QUALITY_SAMPLES) * (2.0 * np.pi / QUALITY_SAMPLES)
    sx = _round_away(c[:, 0, None] + r * np.cos(ang)[None, :])
    sy = _round_away(c[:, 1, None] + r * np.sin(ang)[None, :])
    valid = (sx > 1) & (sy > 1) & (sx < w - 2) & (sy < h - 2)
    sxc, syc = np.clip(sx, 0, w - 1), np.clip(sy, 0, h - 1)

    hit = valid & (grad.mag[syc, sxc] >= grad.thr)
    total = hit.sum(axis=1)

    per_sector = QUALITY_SAMPLES // QUALITY_SECTORS
    covered = hit.reshape(-1, QUALITY_SECTORS, per_sector).any(axis=2).sum(axis=1) / QUALITY_SECTORS

    gx, gy = grad.gx[syc, sxc], grad.gy[syc, sxc]
    glen = np.maximum(1e-5, np.hypot(gx, gy))
    rx, ry = sx - c[:, 0, None], sy - c[:, 1, None]
    rlen = np.maximum(1e-5, np.hypot(rx, ry))
    dot = (gx / glen) * (rx / rlen) + (gy / glen) * (ry / rlen)
    outward_hits = (hit & (np.abs(dot) > 0.4)).sum(axis=1)
    outward = np.where(total > 0, outward_hits / np.maximum(total, 1), 0.0)
    return covered, outward, total


def _accept_quality(grad: _Gradients, center: Tuple[float, float], r: int) -> bool:
    cov, out, hits = _quality_many(grad, np.array([center]), r)
    return cov[0] >= MIN_COVERAGE and out[0] >= MIN_OUTWARD and hits[0] >= MIN_HITS


def _estimate_radius(grad: _Gradients, center: Tuple[int, int], r_min: int, r_max: int) -> int:
    """Radius whose 12-point ring hits the most strong edges (mag > 0.2)."""
    if r_max < r_min:
        return r_min
    h, w = grad.shape
    radii = np.arange(r_min, r_max + 1)
    ang = np.arange(12) * (2.0 * np.pi / 12)
    sx = _round_away(center[0] + radii[:, None] * np.cos(ang)[None, :])
    sy = _round_away(center[1] + radii[:, None] * np.sin(ang)[None, :])
    valid = (sx > 1) & (sy > 1) & (sx < w - 2) & (sy < h - 2)
    m = grad.mag[np.clip(sy, 0, h - 1), np.clip(sx, 0, w - 1)]
    hits = (valid & (m > 0.2)).sum(axis=1)
    return int(radii[int(np.argmax(hits))])


def _refine_center(grad: _Gradients, center: Tuple[int, int], r: int) -> Tuple[float, float]:
    """Best cov·0.75 + out·0.25 in a ±max(1, 0.1·r) window."""
    h, w = grad.shape
    d = max(1, int(_round_away(r * 0.10)))
    base_x, base_y = int(_round_away(center[0])), int(_round_away(center[1]))
    cand = np.array(
        [(base_x + dx, base_y + dy) for dy in range(-d, d + 1) for dx in range(-d, d + 1)],
        dtype=np.int64,
    )
    ok = (cand[:, 0] > 1) & (cand[:, 1] > 1) & (cand[:, 0] < w - 2) & (cand[:, 1] < h - 2)
    cand = cand[ok]
    if len(cand) == 0:
        return float(center[0]), float(center[1])
    cov, out, _ = _quality_many(grad, cand, r)
    best = int(np.argmax(cov * 0.75 + out * 0.25))
    return float(cand[best, 0]), float(cand[best, 1])


def _circles_from_accumulator(grad: _Gradients, acc: np.ndarray, accept: int,
                              r_min: int, r_max: int) -> List[CircleCandidate]:
    found: List[CircleCandidate] = []
    for x, y in _peaks(acc, accept):
        best_r = _estimate_radius(grad, (x, y), r_min, r_max)
        refined = _refine_center(grad, (x, y), best_r)
        if _accept_quality(grad, refined, best_r):
            found.append(CircleCandidate(center=refined, radius=float(best_r), score=float(acc[y, x])))
    return found


def _directed_votes(grad: _Gradients, r_min: int, r_max: int, r_step: int) -> np.ndarray:
    h, w = grad.shape
    acc = np.zeros((h, w), dtype=np.int64)
    xs, ys = _edge_pixels(grad)
    gxv, gyv = grad.gx[ys, xs].astype(np.float64), grad.gy[ys, xs].astype(np.float64)
    length = np.sqrt(gxv * gxv + gyv * gyv)
    keep = length >= 1e-5
    xs, ys, gxv, gyv, length = xs[keep], ys[keep], gxv[keep], gyv[keep], length[keep]
    nx, ny = gxv / length, gyv / length

    for r in range(r_min, r_max + 1, r_step):
        # inward, then outward along the normal
        _vote(acc, _round_away(xs - r * nx), _round_away(ys - r * ny), w, h)
        _vote(acc, _round_away(xs + r * nx), _round_away(ys + r * ny), w, h)
    return np.minimum(acc, np.iinfo(np.uint16).max)


def _naive_angle_votes(grad: _Gradients, r_min: int, r_max: int, r_step: int) -> np.ndarray:
    h, w = grad.shape
    acc = np.zeros((h, w), dtype=np.int64)
    xs, ys = _edge_pixels(grad)
    ang = np.arange(NAIVE_DIRECTIONS) * (2.0 * np.pi / NAIVE_DIRECTIONS)
    for r in range(r_min, r_max + 1, r_step):
        for ca, sa in zip(np.cos(ang), np.sin(ang)):
            _vote(acc, _round_away(xs - r * ca), _round_away(ys - r * sa), w, h)
    return np.minimum(acc, np.iinfo(np.uint16).max)


def _ring_offsets(r: int) -> Tuple[np.ndarray, np.ndarray]:
    ang = np.arange(QUALITY_SAMPLES) * (2.0 * np.pi / QUALITY_SAMPLES)
    return _round_away(r * np.cos(ang)), _round_away(r * np.sin(ang))


def _grid_sampler(grad: _Gradients, r_min: int, r_max: int, r_step: int) -> List[CircleCandidate]:
    """Center-grid ring sampler. Needs no gradient direction, only magnitude."""
    h, w = grad.shape
    mag = grad.mag
    loose = max(0.06, _percentile(mag, 0.08))
    short = min(w, h)
    step = max(3, short // 120 if short % 120 == 0 else short // 80)

    cys = np.arange(r_max + 2, h - r_max - 3 + 1, step)
    cxs = np.arange(r_max + 2, w - r_max - 3 + 1, step)
    if len(cys) == 0 or len(cxs) == 0 or r_max < r_min:
        return []

    gy_, gx_ = np.meshgrid(cys, cxs, indexing="ij")
    best_hits = np.zeros(gy_.shape, dtype=np.int64)
    for r in range(r_min, r_max + 1, r_step):
        dx, dy = _ring_offsets(r)
        hits = (mag[gy_[..., None] + dy, gx_[..., None] + dx] >= loose).sum(axis=2)
        best_hits = np.maximum(best_hits, hits)

    acc = np.zeros((h, w), dtype=np.int64)
    vote = best_hits >= int(GRID_MIN_HIT_FRAC * QUALITY_SAMPLES)
    acc[gy_[vote], gx_[vote]] += best_hits[vote]
    max_acc = int(acc.max())
    if max_acc <= 0:
        return []

    accept = max(2, int(max_acc * GRID_ACCEPT))
    found: List[CircleCandidate] = []
    for x, y in _peaks(acc, accept, margin=r_max + 2):
        radii = list(range(r_min, r_max + 1))
        counts = []
        for r in radii:
            dx, dy = _ring_offsets(r)
            counts.append(int((mag[y + dy, x + dx] >= loose).sum()))
        best_r = radii[int(np.argmax(counts))]
        if _accept_quality(grad, (x, y), best_r):
            found.append(CircleCandidate(center=(float(x), float(y)), radius=float(best_r), score=float(acc[y, x])))
    return found


def nms_circles(circles: List[CircleCandidate], radius: float) -> List[CircleCandidate]:
    """점수 내림차순, 중심 거리 < radius 인 후보 제거."""
    remaining = sorted(circles, key=lambda c: c.score, reverse=True)
    kept: List[CircleCandidate] = []
    while remaining:
        c = remaining.pop(0)
        kept.append(c)
        remaining = [
            o for o in remaining
            if np.hypot(o.center[0] - c.center[0], o.center[1] - c.center[1]) >= radius
        ]
    return kept


def find_circles(image: np.ndarray, cfg: Optional[CircleFinderConfig] = None) -> List[CircleCandidate]:
    """
    Find circle candidates in an RGBA image.

    Args:
        image: (H, W, 4) uint8 RGBA
        cfg: CircleFinderConfig (default if None)

    Returns:
        Circles (center, radius, vote score) after NMS, capped at max_results
    """
    cfg = cfg or CircleFinderConfig()
    if image is None or image.size == 0:
        return []

    # 1. Downscale
    img = resize_keep_aspect(image, cfg.max_side, cfg.max_side)
    h, w = img.shape[:2]
    if w < 5 or h < 5:
        return []

    # 2. Gradients
    grad = _gradients(img)
    r_min, r_max, r_step = _radius_range(cfg)

    # 3. Directed voting along the gradient normal
    acc = _directed_votes(grad, r_min, r_max, r_step)
    max_acc = int(acc.max())
    if max_acc == 0:
        return []

    accept = max(2, int(max_acc * cfg.vote_threshold_fraction * ACCEPT_SCALE))
    raw = _circles_from_accumulator(grad, acc, accept, r_min, r_max)
    logger.debug(f"CircleFinder: {w}x{h}, r={r_min}..{r_max}/{r_step}, accept={accept}, raw={len(raw)}")

    # 4. Fallbacks
    if not raw and cfg.enable_naive_angle_fallback:
        acc2 = _naive_angle_votes(grad, r_min, r_max, r_step)
        max_acc2 = int(acc2.max())
        if max_acc2 > 0:
            raw2 = _circles_from_accumulator(grad, acc2, max(2, int(max_acc2 * NAIVE_ACCEPT)), r_min, r_max)
            if raw2:
                logger.debug(f"CircleFinder: angle fallback found {len(raw2)}")
                return nms_circles(raw2, cfg.nms_radius)[:cfg.max_results]

    if not raw:
        grid = _grid_sampler(grad, r_min, r_max, r_step)
        if grid:
            logger.debug(f"CircleFinder: grid fallback found {len(grid)}")
            return nms_circles(grid, cfg.nms_radius)[:cfg.max_results]

    # 5. NMS + cap
    return nms_circles(raw, cfg.nms_radius)[:cfg.max_results]
