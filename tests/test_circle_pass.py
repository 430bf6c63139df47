import numpy as np
import pytest

from faceplate_detect.config import Config
from faceplate_detect.core.circle_pass import _overlaps_existing, relaxed_circle_pass, size_clamp, want_per_band
from faceplate_detect.models import ControlKind, PixelBuffer, Rect
from faceplate_detect.pipeline import build_context


def _context(width, height, config=None):
    source = PixelBuffer.from_bgr(np.zeros((height, width, 3), dtype=np.uint8))
    return build_context(source, config or Config())


# Test Case 1: band 내 크기 이상치 제거
def test_size_clamp_drops_outliers_when_tight(make_draft):
    drafts = [make_draft(center=(50 * i, 50), radius=r) for i, r in enumerate([20, 20, 21, 21, 22, 13])]
    # p10/p90: 26 / 42 → spread 1.62 > 1.45 이므로 그대로
    assert size_clamp(drafts, 0.60, 1.40, 1.45) == drafts

    radii = [20] * 10 + [40]
    drafts = [make_draft(center=(50 * i, 50), radius=r) for i, r in enumerate(radii)]
    # p90이 median과 같아 spread 1.0 → median 40의 1.40배(56) 초과인 80 제거
    result = size_clamp(drafts, 0.60, 1.40, 1.45)
    assert len(result) == 10
    assert all(d.radius == 20 for d in result)


def test_size_clamp_empty():
    assert size_clamp([], 0.6, 1.4, 1.45) == []


# Test Case 2: band당 목표 후보 수
def test_want_per_band_uses_base_for_narrow_images():
    assert want_per_band(_context(640, 120)) == 6


def test_want_per_band_scales_with_width():
    ctx = _context(2400, 100, Config(downscale_max=2400))
    assert ctx.scaled_w == 2400
    assert want_per_band(ctx) == 9


# Test Case 3: relaxed pass 실행 조건
def test_relaxed_pass_skipped_with_enough_knobs(make_draft):
    ctx = _context(320, 240)
    knobs = [make_draft(center=(40 * i + 20, 100), radius=15.0) for i in range(6)]
    assert relaxed_circle_pass(ctx, knobs) == []


def test_relaxed_pass_skipped_without_band_limit(make_draft):
    ctx = _context(320, 240, Config(limit_search_to_bands=False))
    current = [make_draft(ControlKind.LIGHT, center=(50, 50), radius=5.0)]
    assert relaxed_circle_pass(ctx, current) == []


@pytest.mark.parametrize("limit", [True, False])
def test_relaxed_pass_on_blank_image(limit):
    ctx = _context(320, 240, Config(limit_search_to_bands=limit))
    assert relaxed_circle_pass(ctx, []) == []


# Test Case 4: relaxed pass 중복 판정
def test_overlaps_existing_circle(make_draft):
    knob = make_draft(center=(100, 100), radius=20.0)
    assert _overlaps_existing((130, 100), 12.0, [knob])
    assert not _overlaps_existing((140, 100), 12.0, [knob])


def test_overlaps_existing_rect_without_radius(make_draft):
    button = make_draft(ControlKind.BUTTON, center=(50, 50), radius=None, rect=Rect(25, 25, 50, 50))
    assert _overlaps_existing((60, 40), 30.0, [button])
    assert not _overlaps_existing((120, 50), 10.0, [button])


def test_overlaps_existing_empty():
    assert not _overlaps_existing((10, 10), 5.0, [])
