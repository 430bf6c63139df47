import cv2
import numpy as np
import pytest

from faceplate_detect.config import Config
from faceplate_detect.core.radial import (
    RadialScore,
    is_likely_led,
    is_likely_led_color,
    is_likely_printed_glyph,
    passes_radial,
    radial_edge_score,
    radial_thresholds,
)
from faceplate_detect.core.sampling import mean_rgb, refine_center, ring_mean_luma, ring_profile
from faceplate_detect.models import PixelBuffer
from faceplate_detect.utils.image_utils import luma

# ================================================================
# Ring sampling 테스트
# ================================================================


@pytest.fixture
def disk_luma():
    """검정 바탕, 중심 (100, 100) 반지름 30 흰 원의 luma 평면"""
    img = np.zeros((200, 200, 3), dtype=np.uint8)
    cv2.circle(img, (100, 100), 30, (255, 255, 255), -1)
    return luma(PixelBuffer.from_bgr(img).pixels)


def test_ring_mean_luma_inside_and_outside(disk_luma):
    assert np.isclose(ring_mean_luma(disk_luma, (100, 100), 0.0, 18.0), 1.0, atol=1e-5)
    assert np.isclose(ring_mean_luma(disk_luma, (100, 100), 35.0, 45.0), 0.0, atol=1e-5)


def test_ring_mean_luma_without_samples_reads_one():
    plane = np.zeros((10, 10), dtype=np.float32)
    assert ring_mean_luma(plane, (500.0, 500.0), 1.0, 2.0) == 1.0


def test_mean_rgb():
    img = np.zeros((50, 50, 3), dtype=np.uint8)
    img[:] = (0, 255, 0)  # BGR green
    r, g, b = mean_rgb(PixelBuffer.from_bgr(img).pixels, (25, 25), 10)
    assert (r, b) == (0.0, 0.0)
    assert np.isclose(g, 1.0)
    assert mean_rgb(PixelBuffer.from_bgr(img).pixels, (-100, -100), 5) == (0.0, 0.0, 0.0)


# Test Case 1: 중심 보정은 이미 맞는 중심을 유지
def test_refine_center_keeps_centered(disk_luma):
    center, radius = refine_center(disk_luma, (100.0, 100.0), 30.0)
    assert center == (100.0, 100.0)
    assert np.isclose(radius, 27.0)


def test_refine_center_moves_toward_disk(disk_luma):
    center, _ = refine_center(disk_luma, (103.0, 98.0), 30.0)
    assert np.hypot(center[0] - 100.0, center[1] - 100.0) < np.hypot(3.0, 2.0)


def test_refine_center_minimum_radius(disk_luma):
    _, radius = refine_center(disk_luma, (100.0, 100.0), 2.0)
    assert radius == 4.0


def test_ring_profile(disk_luma):
    inner, rim, outer = ring_profile(disk_luma, (100, 100), 30.0, ((0.0, 0.55), (0.90, 1.15), (1.05, 1.40)))
    assert inner > 0.99
    assert outer < 0.5
    assert inner >= rim > outer


# ================================================================
# RadialEdgeScorer 테스트
# ================================================================


# Test Case 2: 실제 원 테두리는 높은 coverage/alignment
def test_radial_edge_score_on_disk(disk_luma):
    score = radial_edge_score(disk_luma, (100, 100), 30.0)
    assert score.coverage >= 0.6
    assert score.alignment >= 0.7


def test_radial_edge_score_flat_and_tiny():
    flat = np.full((100, 100), 0.5, dtype=np.float32)
    assert radial_edge_score(flat, (50, 50), 20.0) == RadialScore(0.0, 0.0)
    assert radial_edge_score(flat, (50, 50), 3.0) == RadialScore(0.0, 0.0)


def test_radial_thresholds_size_tiers():
    config = Config()
    cov, ali = radial_thresholds(config, 20.0, 0.2)
    assert np.isclose(cov, 0.22 + 0.16) and np.isclose(ali, 0.54 + 0.08)
    cov, ali = radial_thresholds(config, 50.0, 0.2)
    assert np.isclose(cov, 0.22 + 0.02) and np.isclose(ali, 0.54 + 0.01)
    cov, ali = radial_thresholds(config, 100.0, 0.01)
    assert np.isclose(cov, 0.22 - 0.03 - 0.02) and np.isclose(ali, 0.54 - 0.02)


def test_passes_radial():
    config = Config()
    assert passes_radial(RadialScore(0.5, 0.8), config, 60.0, 0.2)
    assert not passes_radial(RadialScore(0.2, 0.8), config, 60.0, 0.2)
    assert not passes_radial(RadialScore(0.5, 0.5), config, 60.0, 0.2)


# ================================================================
# LED / printed glyph 테스트
# ================================================================


def test_is_likely_led_core_pop():
    config = Config()
    assert is_likely_led(0.9, 0.5, 0.6, 20.0, config)
    assert not is_likely_led(0.9, 0.5, 0.6, 40.0, config)  # > led_max_diameter_px
    assert not is_likely_led(0.55, 0.5, 0.6, 20.0, config)


def test_is_likely_led_color():
    green = np.zeros((40, 40, 3), dtype=np.uint8)
    cv2.circle(green, (20, 20), 10, (0, 255, 0), -1)
    assert is_likely_led_color(PixelBuffer.from_bgr(green).pixels, (20, 20), 10)

    gray = np.full((40, 40, 3), 200, dtype=np.uint8)
    assert not is_likely_led_color(PixelBuffer.from_bgr(gray).pixels, (20, 20), 10)


def test_is_likely_printed_glyph():
    assert is_likely_printed_glyph(0.5, 0.9, 0.5, 16.0, 0.07)
    assert not is_likely_printed_glyph(0.5, 0.9, 0.5, 80.0, 0.07)  # too large
    assert not is_likely_printed_glyph(0.5, 0.55, 0.5, 16.0, 0.07)  # weak rim
    assert not is_likely_printed_glyph(0.9, 0.9, 0.2, 40.0, 0.07)
