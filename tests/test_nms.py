import pytest

from faceplate_detect.core.nms import dedupe_by_center, iou, non_max_suppression
from faceplate_detect.models import ControlKind, Rect


# Test Case 1: IoU
def test_iou():
    a = Rect(0, 0, 10, 10)
    assert iou(a, a) == 1.0
    assert iou(a, Rect(20, 20, 10, 10)) == 0.0
    assert iou(a, Rect(5, 0, 10, 10)) == pytest.approx(1 / 3)


def test_iou_of_empty_rects():
    assert iou(Rect(0, 0, 0, 0), Rect(0, 0, 0, 0)) == 0.0


# Test Case 2: NMS (같은 kind만)
def test_nms_keeps_highest_confidence(make_draft):
    low = make_draft(center=(50, 50), radius=20.0, confidence=0.6)
    high = make_draft(center=(52, 50), radius=20.0, confidence=0.9)

    assert non_max_suppression([low, high]) == [high]


def test_nms_ignores_other_kinds(make_draft):
    knob = make_draft(ControlKind.KNOB, center=(50, 50), radius=20.0, confidence=0.6)
    light = make_draft(ControlKind.LIGHT, center=(50, 50), radius=20.0, confidence=0.5)

    assert non_max_suppression([knob, light]) == [knob, light]


def test_nms_threshold_is_strict(make_draft):
    # IoU = 1/3
    a = make_draft(radius=None, rect=Rect(0, 0, 10, 10), confidence=0.9)
    b = make_draft(radius=None, rect=Rect(5, 0, 10, 10), confidence=0.8)
    assert len(non_max_suppression([a, b], iou_threshold=1 / 3)) == 2
    assert len(non_max_suppression([a, b], iou_threshold=0.3)) == 1


def test_nms_output_sorted_by_confidence(make_draft):
    drafts = [make_draft(center=(100 * i, 50), confidence=c) for i, c in enumerate([0.5, 0.9, 0.7])]
    assert [d.confidence for d in non_max_suppression(drafts)] == [0.9, 0.7, 0.5]


# Test Case 3: 중심 거리 중복 제거
def test_dedupe_by_center(make_draft):
    # tol = max(6, 0.35·20) = 7
    a = make_draft(center=(50, 50), radius=20.0, confidence=0.9)
    near = make_draft(center=(55, 50), radius=20.0, confidence=0.6)
    far = make_draft(center=(60, 50), radius=20.0, confidence=0.6)

    assert dedupe_by_center([a, near]) == [a]
    assert dedupe_by_center([a, far]) == [a, far]


def test_dedupe_by_center_same_kind_only(make_draft):
    knob = make_draft(ControlKind.KNOB, center=(50, 50), radius=20.0, confidence=0.9)
    light = make_draft(ControlKind.LIGHT, center=(50, 50), radius=5.0, confidence=0.5)
    assert dedupe_by_center([knob, light]) == [knob, light]


def test_dedupe_without_radius_uses_minimum_tolerance(make_draft):
    a = make_draft(ControlKind.BUTTON, center=(50, 50), radius=None, confidence=0.9)
    near = make_draft(ControlKind.BUTTON, center=(55, 50), radius=None, confidence=0.6)
    far = make_draft(ControlKind.BUTTON, center=(57, 50), radius=None, confidence=0.6)

    assert dedupe_by_center([a, near]) == [a]
    assert dedupe_by_center([a, far]) == [a, far]
