"""
Radial edge scorer + LED / printed glyph classifier.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from faceplate_detect.config import Config
from faceplate_detect.core.sampling import mean_rgb, round_half_up
from faceplate_detect.models import Point

logger = logging.getLogger(__name__)

RIM_SAMPLES = 64
GRAD_MAG_FLOOR = 0.015
AGREE_MIN = 0.55

LED_COLOR_MAX_MIN = 0.38
LED_COLOR_SPREAD_MIN = 0.10
LED_CORE_POP = 0.06

GLYPH_MAX_DIAMETER = 68.0
GLYPH_INNER_OUTER_CLOSE = 0.030

# (diameter upper bound, coverage increment, alignment increment)
SIZE_TIERS = (
    (24.0, 0.16, 0.08),
    (36.0, 0.09, 0.05),
    (48.0, 0.04, 0.02),
    (60.0, 0.02, 0.01),
)

_RIM_ANGLES = np.arange(RIM_SAMPLES) * (2.0 * np.pi / RIM_SAMPLES)


@dataclass(frozen=True)
class RadialScore:
    coverage: float
    alignment: float


def _luma_at(luma: np.ndarray, xi: np.ndarray, yi: np.ndarray) -> np.ndarray:
    """Luma lookup that reads 0 on and beyond the outermost pixel frame."""
    h, w = luma.shape
    inside = (xi > 0) & (yi > 0) & (xi < w - 1) & (yi < h - 1)
    vals = luma[np.clip(yi, 0, h - 1), np.clip(xi, 0, w - 1)].astype(np.float64)
    return np.where(inside, vals, 0.0)


def radial_edge_score(luma: np.ndarray, center: Point, radius: float) -> RadialScore:
    """
    Rim coverage/alignment of the luma gradient around a circle.

    A rim sample covers when the central-difference gradient is at least 0.015 and its
    direction agrees with the radial unit vector by |cos| ≥ 0.55. Coverage is the
    covered fraction of 64 samples, alignment the mean agreement of covered samples.
    """
    if radius < 4:
        return RadialScore(0.0, 0.0)

    h, w = luma.shape
    ux, uy = np.cos(_RIM_ANGLES), np.sin(_RIM_ANGLES)
    xi = round_half_up(center[0] + radius * ux)
    yi = round_half_up(center[1] + radius * uy)
    inside = (xi > 0) & (yi > 0) & (xi < w - 1) & (yi < h - 1)

    gx = _luma_at(luma, xi + 1, yi) - _luma_at(luma, xi - 1, yi)
    gy = _luma_at(luma, xi, yi + 1) - _luma_at(luma, xi, yi - 1)
    mag = np.hypot(gx, gy)

    usable = inside & (mag >= 1e-6)
    safe = np.where(usable, mag, 1.0)
    agree = np.abs(gx / safe * ux + gy / safe * uy)
    covered = usable & (mag >= GRAD_MAG_FLOOR) & (agree >= AGREE_MIN)

    n = int(covered.sum())
    coverage = n / RIM_SAMPLES
    alignment = float(agree[covered].sum() / n) if n > 0 else 0.0
    return RadialScore(coverage, alignment)


def radial_thresholds(config: Config, diameter: float, contrast: float) -> Tuple[float, float]:
    """
    Size-tiered (coverage, alignment) thresholds.

    Small circles need stronger evidence since printed marks are small.
    """
    cov = config.cov_base
    ali = config.ali_base
    for bound, d_cov, d_ali in SIZE_TIERS:
        if diameter < bound:
            cov += d_cov
            ali += d_ali
            break
    if contrast < 0.05:
        cov -= 0.03
        ali -= 0.02
    if diameter > 90:
        cov -= 0.02
    return cov, ali


def passes_radial(score: RadialScore, config: Config, diameter: float, contrast: float) -> bool:
    cov, ali = radial_thresholds(config, diameter, contrast)
    return score.coverage >= cov and score.alignment >= ali


def is_likely_led(inner: float, ring: float, outer: float, diameter: float, config: Config) -> bool:
    """Lit core: small circle whose center outshines its surroundings."""
    if diameter > config.led_max_diameter_px:
        return False
    return inner - min(ring, outer) >= LED_CORE_POP


def is_likely_led_color(pixels: np.ndarray, center: Point, radius: float) -> bool:
    """Bright and chromatic inner ring. No size cap."""
    r, g, b = mean_rgb(pixels, center, radius)
    hi, lo = max(r, g, b), min(r, g, b)
    return hi >= LED_COLOR_MAX_MIN and hi - lo >= LED_COLOR_SPREAD_MIN


def is_likely_printed_glyph(inner: float, ring: float, outer: float, diameter: float,
                            ring_gain_cut: float) -> bool:
    """
    Printed "0"/tick ring: small, rim brighter than both sides, inner ≈ outer.

    Example:
        >>> is_likely_printed_glyph(0.5, 0.9, 0.5, 16.0, 0.07)
        True
        >>> is_likely_printed_glyph(0.9, 0.9, 0.2, 40.0, 0.07)
        False
    """
    if diameter > GLYPH_MAX_DIAMETER:
        return False
    ring_gain = ring - max(inner, outer)
    return ring_gain >= ring_gain_cut and abs(inner - outer) <= GLYPH_INNER_OUTER_CLOSE
