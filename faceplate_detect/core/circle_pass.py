"""
Circle passes

- circle_pass: per-band Hough search, radial verification, LED/glyph split, rescue
- relaxed_circle_pass: full-image search when too few knobs were found
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Tuple

from faceplate_detect.core.bands import band_height_near, in_bands, near_any_band_center
from faceplate_detect.core.circle_finder import CircleFinderConfig, find_circles
from faceplate_detect.core.radial import (
    is_likely_led,
    is_likely_led_color,
    is_likely_printed_glyph,
    passes_radial,
    radial_edge_score,
)
from faceplate_detect.core.sampling import refine_center, ring_mean_luma, ring_profile
from faceplate_detect.models import ControlDraft, ControlKind, DetectionContext, Point, Rect

logger = logging.getLogger(__name__)

# (r0, r1) as fractions of the circle radius
INNER_RING = (0.0, 0.55)
RIM_RING = (0.90, 1.15)
OUTER_RING = (1.05, 1.40)

RESCUE_MIN_DIAMETER = 24.0
MAX_RESCUE = 8
MIN_LIGHT_DIAMETER = 8.0

RELAXED_MIN_KNOBS = 6
RELAXED_CONTRAST = 0.045
RELAXED_BAND_R_FRAC = 0.36


def _radius_limits(ctx: DetectionContext) -> Tuple[float, float]:
    ref = max(80.0, float(min(ctx.scaled_h, ctx.scaled_w)))
    return max(8.0, ref * 0.08), min(120.0, ref * 0.22)


def _clamped_geometry(ctx: DetectionContext, center: Point, radius: float) -> Optional[Tuple[Rect, Point]]:
    """Rect intersected with the image (None if < 3 px) and the clamped center."""
    image = Rect(0.0, 0.0, float(ctx.src_w), float(ctx.src_h))
    clamped = Rect.around(center, radius).intersection(image)
    if clamped is None or clamped.width < 3 or clamped.height < 3:
        return None
    cx = min(max(center[0], 0.0), ctx.src_w - 1.0)
    cy = min(max(center[1], 0.0), ctx.src_h - 1.0)
    return clamped.integral(), (cx, cy)


def size_clamp(drafts: List[ControlDraft], lo_frac: float, hi_frac: float,
               enable_spread: float) -> List[ControlDraft]:
    """
    Drop diameters far from the band median, but only when the band's sizes are
    already tight (p90/p10 ≤ enable_spread).
    """
    if not drafts:
        return drafts
    ds = sorted((d.radius or 0.0) * 2.0 for d in drafts)
    n = len(ds)
    p10 = ds[max(0, math.floor(0.10 * (n - 1)))]
    p90 = ds[min(n - 1, math.floor(0.90 * (n - 1)))]
    spread = p90 / p10 if p10 > 0 else 1.0
    if spread > enable_spread:
        return drafts

    med = ds[n // 2]
    lo, hi = med * lo_frac, med * hi_frac
    return [d for d in drafts if d.radius is not None and lo <= d.radius * 2.0 <= hi]


def want_per_band(ctx: DetectionContext) -> int:
    cfg = ctx.config
    return max(cfg.want_per_band_base, math.ceil(ctx.scaled_w / 1000.0) * cfg.want_per_band_per_1000px)


def circle_pass(ctx: DetectionContext) -> List[ControlDraft]:
    """
    Per-band circle search.

    Each band's padded strip goes through the circle finder; candidates are gated to
    the bands, bounded by the knob diameter range, checked for contrast, rejected as
    printed glyphs, split into LED and knob, and verified by the radial edge score.
    Near misses may be rescued when a band comes out sparse.
    """
    cfg = ctx.config
    r_min, r_max = _radius_limits(ctx)
    finder_cfg = CircleFinderConfig(
        max_side=cfg.downscale_max,
        min_radius=r_min,
        max_radius=r_max,
        radius_step=4,
        vote_threshold_fraction=0.32,
        max_results=64,
        nms_radius=18,
    )
    limit = cfg.limit_search_to_bands
    out: List[ControlDraft] = []

    for band_idx, (lo, hi) in enumerate(ctx.bands_scaled):
        ctx.check_cancelled(f"circle pass band {band_idx}")

        # 1. Padded strip
        band_h = max(1.0, hi - lo)
        pad = max(2.0, band_h * cfg.band_pad_frac)
        crop_y = max(0.0, math.floor(lo - pad))
        crop_h = min(ctx.scaled_h - crop_y, math.ceil(band_h + 2.0 * pad))
        y0, y1 = int(crop_y), int(math.ceil(crop_y + crop_h))
        strip = ctx.working_rgba[y0:y1]
        if strip.shape[0] == 0:
            continue

        circles = find_circles(strip, finder_cfg)
        logger.debug(f"Band {band_idx}: circle finder returned {len(circles)} (crop y={y0}..{y1})")

        band_drafts: List[ControlDraft] = []
        rejected: List[Tuple[float, ControlDraft]] = []

        for c in circles:
            # 2. Gates
            cy_scaled = c.center[1] + y0
            if not (in_bands(cy_scaled, ctx.bands_scaled, ctx.gate_top_scaled, ctx.gate_bot_scaled, limit)
                    and near_any_band_center(cy_scaled, ctx.bands_scaled, limit)):
                continue

            up_c = (c.center[0] * ctx.up_x, cy_scaled * ctx.up_y)
            b_h = band_height_near(cy_scaled, ctx.bands_scaled, ctx.gate_top_scaled, ctx.gate_bot_scaled)
            r_scaled = min(c.radius, cfg.band_max_r_frac * b_h)
            up_r = r_scaled * ctx.max_up
            diameter = up_r * 2.0
            if not cfg.knob_min_diameter_px <= diameter <= cfg.knob_max_diameter_px:
                continue

            # 3. Center refinement + contrast floor
            up_c, _ = refine_center(ctx.luma, up_c, up_r)
            inner = rim = outer = contrast = 0.0
            if up_r > 4:
                inner, rim, outer = ring_profile(ctx.luma, up_c, up_r, (INNER_RING, RIM_RING, OUTER_RING))
                contrast = abs(outer - inner)
                if contrast < cfg.contrast_floor:
                    continue

            # 4. Radial agreement, glyph rejection, LED split
            score = radial_edge_score(ctx.luma, up_c, up_r)
            pass_radial = passes_radial(score, cfg, diameter, contrast)

            if is_likely_printed_glyph(inner, rim, outer, diameter, cfg.ring_ink_cut_small):
                continue

            is_led = (is_likely_led_color(ctx.source.pixels, up_c, up_r)
                      or is_likely_led(inner, rim, outer, diameter, cfg))
            kind = ControlKind.LIGHT if is_led else ControlKind.KNOB

            geometry = _clamped_geometry(ctx, up_c, up_r)
            if geometry is None:
                continue
            rect, center = geometry
            draft = ControlDraft(
                kind=kind,
                rect=rect,
                center=center,
                radius=up_r,
                label="Light" if is_led else "Knob",
                confidence=0.70 if is_led else 0.72,
            )

            if pass_radial and not (kind is ControlKind.LIGHT and diameter < MIN_LIGHT_DIAMETER):
                band_drafts.append(draft)
            elif diameter >= RESCUE_MIN_DIAMETER:
                rescue = max(0.0, score.coverage) * max(0.0, score.alignment) * max(0.5, min(1.5, contrast * 12))
                rejected.append((rescue, draft))

        # 5. Size consistency, then rescue
        band_drafts = size_clamp(band_drafts, cfg.size_clamp_lo, cfg.size_clamp_hi, cfg.size_clamp_enable_spread)

        want = want_per_band(ctx)
        if len(band_drafts) < want and rejected:
            need = min(want - len(band_drafts), MAX_RESCUE)
            rejected.sort(key=lambda item: item[0], reverse=True)
            band_drafts.extend(d for _, d in rejected[:need])

        logger.debug(f"Band {band_idx}: kept {len(band_drafts)} (want≈{want}, near misses {len(rejected)})")
        out.extend(band_drafts)

    return out


def _overlaps_existing(center: Point, radius: float, current: List[ControlDraft]) -> bool:
    """True when the circle overlaps a radius-bearing draft or sits inside another draft's rect."""
    for d in current:
        if d.radius is None:
            if d.rect.contains(center):
                return True
            continue
        if math.hypot(d.center[0] - center[0], d.center[1] - center[1]) < radius + d.radius:
            return True
    return False


def relaxed_circle_pass(ctx: DetectionContext, current: List[ControlDraft]) -> List[ControlDraft]:
    """
    Full-image circle search for sparse results.

    Runs when fewer than six knobs exist and either band limiting is on or nothing
    was found at all. A circle survives only when its estimated radius lies above the
    search floor, it overlaps no existing draft, and it passes the contrast, printed
    glyph and radial checks at its measured radius.
    """
    cfg = ctx.config
    knob_count = sum(1 for d in current if d.kind is ControlKind.KNOB)
    if not (knob_count < RELAXED_MIN_KNOBS and (cfg.limit_search_to_bands or not current)):
        return []

    logger.debug(f"Relaxed pass: only {knob_count} knobs, scanning full image")
    r_min, r_max = _radius_limits(ctx)
    finder_cfg = CircleFinderConfig(
        max_side=cfg.downscale_max,
        min_radius=r_min,
        max_radius=r_max,
        radius_step=2,
        vote_threshold_fraction=0.22,
        max_results=128,
        nms_radius=12,
    )
    circles = find_circles(ctx.working_rgba, finder_cfg)
    ctx.check_cancelled("relaxed circle pass")

    # search floor as the finder rounds it; an estimate there means a smaller circle
    floor_r = math.floor(r_min + 0.5)
    b_h = max(24.0, ctx.gate_bot_scaled - ctx.gate_top_scaled) * 0.5
    out: List[ControlDraft] = []
    for c in circles:
        if not ctx.gate_top_scaled <= c.center[1] <= ctx.gate_bot_scaled:
            continue
        if c.radius <= floor_r:
            continue

        # 1. Measured size, then the band cap
        measured_r = c.radius * ctx.max_up
        diameter = measured_r * 2.0
        if not cfg.knob_min_diameter_px <= diameter <= cfg.knob_max_diameter_px:
            continue
        up_r = min(c.radius, RELAXED_BAND_R_FRAC * b_h) * ctx.max_up

        up_c = (c.center[0] * ctx.up_x, c.center[1] * ctx.up_y)
        up_c, _ = refine_center(ctx.luma, up_c, up_r)
        if _overlaps_existing(up_c, up_r, current + out):
            continue

        # 2. Contrast
        contrast = 0.0
        if up_r > 6:
            inner = ring_mean_luma(ctx.luma, up_c, 0.0, up_r * 0.60)
            outer = ring_mean_luma(ctx.luma, up_c, up_r * 1.05, up_r * 1.40)
            contrast = abs(outer - inner)
            if contrast < RELAXED_CONTRAST:
                continue

        # 3. Printed glyph at the measured rim, then radial agreement
        inner, rim, outer = ring_profile(ctx.luma, up_c, measured_r, (INNER_RING, RIM_RING, OUTER_RING))
        if is_likely_printed_glyph(inner, rim, outer, diameter, cfg.ring_ink_cut_small):
            continue
        score = radial_edge_score(ctx.luma, up_c, up_r)
        if not passes_radial(score, cfg, up_r * 2.0, contrast):
            continue

        geometry = _clamped_geometry(ctx, up_c, up_r)
        if geometry is None:
            continue
        rect, center = geometry
        out.append(ControlDraft(
            kind=ControlKind.KNOB,
            rect=rect,
            center=center,
            radius=up_r,
            label="Knob",
            confidence=0.55,
        ))

    logger.debug(f"Relaxed pass: {len(circles)} circles → {len(out)} knobs")
    return out
