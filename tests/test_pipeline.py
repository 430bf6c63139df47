"""
Detection pipeline 통합 테스트

합성 패널 이미지(검정 바탕 knob 줄, 동심원, LED 버튼, 인쇄 링)로
detect() 전체 흐름과 DetectionPipeline 파일/배치 처리를 확인.
"""

import csv

import numpy as np
import pytest

from faceplate_detect import CancelToken, Config, ControlKind, DetectionCancelled, detect
from faceplate_detect.core.nms import iou
from faceplate_detect.models import PixelBuffer
from faceplate_detect.pipeline import DetectionPipeline, DetectionResult, PipelineError, run_detection
from faceplate_detect.utils.file_io import FileIO


@pytest.fixture
def pipeline():
    return DetectionPipeline(Config())


@pytest.fixture
def image_files(tmp_path, knob_row_image, black_image):
    """배치 테스트용 PNG 파일 (knob 줄, 검정)"""
    file_io = FileIO()
    knobs = tmp_path / "knobs.png"
    black = tmp_path / "black.png"
    file_io.save_image(knobs, knob_row_image)
    file_io.save_image(black, black_image)
    return knobs, black


def _assert_draft_invariants(drafts, width, height):
    for d in drafts:
        r = d.rect
        assert 0 <= r.x and 0 <= r.y
        assert r.max_x <= width and r.max_y <= height
        assert r.width >= 3 and r.height >= 3
        for value in (r.x, r.y, r.width, r.height):
            assert float(value).is_integer()
        assert 0.0 <= d.confidence <= 1.0


# ================================================================
# detect() 시나리오
# ================================================================


# Test Case 1: 빈 입력
def test_detect_none_and_empty():
    assert detect(None) == []
    assert detect(PixelBuffer.from_bgr(np.zeros((0, 0, 3), dtype=np.uint8))) == []


def test_run_detection_empty_has_no_context():
    drafts, ctx = run_detection(None)
    assert drafts == [] and ctx is None


# Test Case 2: 검정 이미지 → 후보 없음
def test_detect_black_image(black_image, to_buffer):
    assert detect(to_buffer(black_image), Config()) == []


# Test Case 3: knob 6개 한 줄
def test_detect_knob_row(knob_row_image, knob_row_centers, to_buffer):
    drafts = detect(to_buffer(knob_row_image), Config())

    knobs = sorted((d for d in drafts if d.kind is ControlKind.KNOB), key=lambda d: d.center[0])
    assert len(knobs) == 6
    assert [d.label for d in knobs] == [f"Knob {i}" for i in range(1, 7)]
    for d, (cx, cy) in zip(knobs, knob_row_centers):
        assert abs(d.center[0] - cx) <= 3 and abs(d.center[1] - cy) <= 3
        assert d.radius == pytest.approx(20.0, abs=6.0)
    assert all(d.confidence >= 0.5 for d in knobs)
    _assert_draft_invariants(drafts, 640, 320)


# Test Case 4: 동심원 → Concentric 1개
def test_detect_concentric_knob(concentric_image, to_buffer):
    drafts = detect(to_buffer(concentric_image), Config())

    concentric = [d for d in drafts if d.kind is ControlKind.CONCENTRIC_KNOB]
    assert len(concentric) == 1
    assert not any(d.kind is ControlKind.KNOB for d in drafts)
    assert np.hypot(concentric[0].center[0] - 200, concentric[0].center[1] - 200) <= 4.0
    _assert_draft_invariants(drafts, 400, 400)


def test_concentric_knob_has_no_overlapping_circles(concentric_image, to_buffer):
    # 바깥 원의 호로 만든 원 후보가 knob으로 추가되면 안 됨
    drafts = detect(to_buffer(concentric_image), Config())

    circles = [d for d in drafts if d.radius is not None]
    for i, a in enumerate(circles):
        for b in circles[i + 1:]:
            assert np.hypot(a.center[0] - b.center[0], a.center[1] - b.center[1]) >= a.radius + b.radius


# Test Case 5: LED가 들어간 버튼 → Lit Button
def test_detect_lit_button(lit_button_image, to_buffer):
    drafts = detect(to_buffer(lit_button_image), Config())

    lit = [d for d in drafts if d.kind is ControlKind.LIT_BUTTON]
    assert len(lit) == 1
    assert lit[0].label == "Lit Button"
    assert lit[0].rect.contains((120, 80))
    assert not any(d.kind is ControlKind.LIGHT for d in drafts)


def test_lit_button_keeps_button_extent(lit_button_image, to_buffer):
    # 50px 사각 버튼 → rect도 버튼 크기 (엣지 폭만큼의 여유 허용)
    lit = [d for d in detect(to_buffer(lit_button_image), Config()) if d.kind is ControlKind.LIT_BUTTON]

    assert len(lit) == 1
    assert lit[0].rect.width == pytest.approx(51, abs=6)
    assert lit[0].rect.height == pytest.approx(51, abs=6)
    assert np.hypot(lit[0].center[0] - 120, lit[0].center[1] - 80) <= 3.0


# Test Case 6: 작은 인쇄 링은 knob/LED가 아님
def test_detect_printed_ring_is_ignored(printed_ring_image, to_buffer):
    drafts = detect(to_buffer(printed_ring_image), Config())
    assert not any(d.kind in (ControlKind.KNOB, ControlKind.LIGHT) for d in drafts)


def test_printed_ring_adds_no_relaxed_knobs(printed_ring_image, to_buffer):
    # 작은 링 주변에서 탐색 하한 반지름으로 잡힌 원은 버림
    drafts, ctx = run_detection(to_buffer(printed_ring_image), Config())
    assert ctx is not None
    assert drafts == []


# Test Case 7: 감도를 올리면 후보 수가 줄지 않음
@pytest.mark.parametrize("low,high", [(0.3, 0.9), (0.0, 1.0)])
def test_higher_sensitivity_finds_no_fewer_controls(knob_row_image, to_buffer, low, high):
    source = to_buffer(knob_row_image)

    low_drafts = detect(source, Config.from_sensitivity(low))
    high_drafts = detect(source, Config.from_sensitivity(high))

    assert len(high_drafts) >= len(low_drafts)
    assert len([d for d in high_drafts if d.kind is ControlKind.KNOB]) == 6


# ================================================================
# 불변 조건
# ================================================================


def test_detect_is_deterministic(knob_row_image, to_buffer):
    source = to_buffer(knob_row_image)
    assert detect(source, Config()) == detect(source, Config())


@pytest.mark.parametrize("sensitivity", [0.0, 0.5, 1.0])
def test_same_kind_drafts_do_not_overlap(knob_row_image, to_buffer, sensitivity):
    drafts = detect(to_buffer(knob_row_image), Config.from_sensitivity(sensitivity))

    for i, a in enumerate(drafts):
        for b in drafts[i + 1:]:
            if a.kind is b.kind:
                assert iou(a.rect, b.rect) <= 0.60
    _assert_draft_invariants(drafts, 640, 320)


def test_detect_does_not_modify_input(knob_row_image, to_buffer):
    source = to_buffer(knob_row_image)
    before = source.pixels.copy()
    detect(source, Config())
    assert np.array_equal(source.pixels, before)


def test_detect_cancelled(knob_row_image, to_buffer):
    token = CancelToken()
    token.cancel()
    with pytest.raises(DetectionCancelled):
        detect(to_buffer(knob_row_image), Config(), cancel_token=token)


def test_run_detection_returns_context(knob_row_image, to_buffer):
    drafts, ctx = run_detection(to_buffer(knob_row_image), Config())
    assert ctx is not None
    assert ctx.src_w == 640 and ctx.src_h == 320
    # 판 외곽선이 없는 한 줄: 내부 높이(≈40px)가 max(24, h//6)보다 낮아 band 없음 → 전체 높이가 gate
    assert ctx.bands_scaled == []
    assert (ctx.gate_top_scaled, ctx.gate_bot_scaled) == (0.0, 319.0)


# ================================================================
# DetectionPipeline
# ================================================================


def test_process_image(pipeline, knob_row_image):
    result = pipeline.process_image(knob_row_image)

    assert isinstance(result, DetectionResult)
    assert (result.width, result.height) == (640, 320)
    assert result.counts_by_kind.get("knob") == 6
    assert result.image is None
    assert result.processing_time_ms >= 0
    assert result.bands_px == []


def test_process_image_keeps_image(knob_row_image):
    result = DetectionPipeline(Config(), keep_images=True).process_image(knob_row_image)
    assert result.image is knob_row_image


def test_process_image_rejects_bad_array(pipeline):
    with pytest.raises(PipelineError):
        pipeline.process_image(np.zeros((10, 10, 3), dtype=np.float32))


def test_process_file(pipeline, image_files):
    knobs, _ = image_files
    result = pipeline.process(knobs)
    assert result.image_path == knobs
    assert len(result.drafts) >= 6


def test_process_missing_file(pipeline, tmp_path):
    with pytest.raises(PipelineError, match="Failed to load image"):
        pipeline.process(tmp_path / "missing.png")


# Test Case 7: 배치 처리
def test_process_batch_continues_on_error(pipeline, image_files, tmp_path):
    knobs, black = image_files
    paths = [knobs, tmp_path / "missing.png", black]

    results = pipeline.process_batch(paths, continue_on_error=True)

    assert [r.image_path for r in results] == [knobs, black]
    assert results[1].drafts == []


def test_process_batch_stop_on_error(pipeline, image_files, tmp_path):
    knobs, _ = image_files
    with pytest.raises(PipelineError):
        pipeline.process_batch([tmp_path / "missing.png", knobs], continue_on_error=False)


def test_process_batch_parallel_keeps_order(pipeline, image_files):
    knobs, black = image_files
    results = pipeline.process_batch([black, knobs, black], parallel=True, max_workers=2)
    assert [r.image_path for r in results] == [black, knobs, black]


def test_process_batch_writes_csv(pipeline, image_files, tmp_path):
    knobs, black = image_files
    output = tmp_path / "out" / "summary.csv"

    pipeline.process_batch([knobs, black], output_csv=output)

    with open(output, newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    assert len(rows) == 2
    assert rows[0]["image_path"] == str(knobs)
    assert rows[0]["knob"] == "6"
    assert rows[1]["drafts"] == "0"
    assert set(k.value for k in ControlKind) <= set(rows[0])
