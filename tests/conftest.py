import json
from pathlib import Path

import cv2
import numpy as np
import pytest

from faceplate_detect.models import PixelBuffer


@pytest.fixture
def tmp_json(tmp_path: Path):
    def _make(data, name="sample.json"):
        path = tmp_path / name
        path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
        return path

    return _make


@pytest.fixture
def sample_image():
    # 100x100 BGR 검정 바탕
    return np.zeros((100, 100, 3), dtype=np.uint8)


@pytest.fixture
def black_image():
    """Scenario A: 완전 검정 이미지"""
    return np.zeros((240, 320, 3), dtype=np.uint8)


@pytest.fixture
def knob_row_image():
    """Scenario B: 검정 바탕 위 지름 40px 흰 원 6개 (한 줄)"""
    img = np.zeros((320, 640, 3), dtype=np.uint8)
    for i in range(6):
        cv2.circle(img, (80 + 96 * i, 160), 20, (255, 255, 255), -1)
    return img


@pytest.fixture
def knob_row_centers():
    return [(80.0 + 96.0 * i, 160.0) for i in range(6)]


@pytest.fixture
def concentric_image():
    """Scenario C: 지름 60px 흰 원 + 같은 중심의 지름 30px 흰 원 (사이에 어두운 틈)"""
    img = np.zeros((400, 400, 3), dtype=np.uint8)
    cv2.circle(img, (200, 200), 30, (255, 255, 255), -1)
    cv2.circle(img, (200, 200), 22, (0, 0, 0), -1)  # 두 원의 경계를 남기는 틈
    cv2.circle(img, (200, 200), 15, (255, 255, 255), -1)
    return img


@pytest.fixture
def lit_button_image():
    """Scenario D: 회색 패널, 50px 어두운 사각 버튼 안에 지름 20px 녹색 LED"""
    img = np.full((160, 240, 3), 160, dtype=np.uint8)
    cx, cy = 120, 80
    cv2.rectangle(img, (cx - 25, cy - 25), (cx + 25, cy + 25), (30, 30, 30), -1)
    cv2.circle(img, (cx, cy), 10, (0, 255, 0), -1)
    return img


@pytest.fixture
def printed_ring_image():
    """Scenario E: 중간 회색 위 지름 16px 밝은 인쇄 링"""
    img = np.full((200, 200, 3), 128, dtype=np.uint8)
    cv2.circle(img, (100, 100), 8, (230, 230, 230), 2)
    return img


@pytest.fixture
def to_buffer():
    """BGR 배열 → PixelBuffer"""
    return PixelBuffer.from_bgr


@pytest.fixture
def make_draft():
    """ControlDraft 생성 헬퍼 (radius가 있으면 rect는 중심 기준 정사각형)"""
    from faceplate_detect.models import ControlDraft, ControlKind, Rect

    def _make(kind=ControlKind.KNOB, center=(50.0, 50.0), radius=20.0, rect=None, label="", confidence=0.6):
        if rect is None:
            rect = Rect.around(center, radius if radius is not None else 10.0).integral()
        return ControlDraft(
            kind=kind,
            rect=rect,
            center=(float(center[0]), float(center[1])),
            radius=radius,
            label=label,
            confidence=confidence,
        )

    return _make
