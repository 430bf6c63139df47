"""
Detection Pipeline Module

전처리 → band 검출 → blob/circle pass → promotion → 필터 → 병합 → 라벨
순서로 단계를 연결하는 컨트롤 검출 파이프라인.
"""

import gc
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np

from faceplate_detect.config import Config
from faceplate_detect.core.bands import compute_bands
from faceplate_detect.core.blob_classifier import blob_pass
from faceplate_detect.core.circle_pass import circle_pass, relaxed_circle_pass
from faceplate_detect.core.column_merge import merge_per_band, reconcile_columns
from faceplate_detect.core.geometry import clamp_drafts_to_image
from faceplate_detect.core.labels import assign_default_labels
from faceplate_detect.core.nms import dedupe_by_center, non_max_suppression
from faceplate_detect.core.post_filter import post_filter
from faceplate_detect.core.preprocess import preprocess, working_image
from faceplate_detect.core.promote import promote
from faceplate_detect.models import (
    CancelToken,
    ControlDraft,
    ControlKind,
    DetectionCancelled,
    DetectionContext,
    PixelBuffer,
)
from faceplate_detect.utils.file_io import FileIO, ensure_dir
from faceplate_detect.utils.image_utils import ImageValidationError, luma

logger = logging.getLogger(__name__)


class PipelineError(Exception):
    """파이프라인 실행 중 발생하는 예외"""
    pass


def build_context(source: PixelBuffer, config: Config,
                  cancel_token: Optional[CancelToken] = None) -> DetectionContext:
    """Fresh per-run working state (never shared between runs)."""
    working, up_x, up_y = working_image(source, config.downscale_max)
    return DetectionContext(
        source=source,
        config=config,
        luma=luma(source.pixels),
        working_rgba=working,
        up_x=up_x,
        up_y=up_y,
        cancel_token=cancel_token,
    )


def run_detection(
    image: Optional[PixelBuffer],
    config: Optional[Config] = None,
    cancel_token: Optional[CancelToken] = None,
) -> Tuple[List[ControlDraft], Optional[DetectionContext]]:
    """
    Run every stage and return the drafts together with the working context.

    Returns:
        (drafts, context); context is None for empty input

    Raises:
        DetectionCancelled: cancel_token가 설정된 경우
    """
    if image is None or image.is_empty:
        return [], None
    config = config or Config()
    ctx = build_context(image, config, cancel_token)

    # 1. Preprocess (downscale + edges + percentile mask + components)
    logger.debug("Step 1: Preprocessing")
    preprocess(ctx)
    ctx.check_cancelled("preprocess")

    # 2. Bands & gates
    logger.debug("Step 2: Detecting bands")
    compute_bands(ctx)
    ctx.check_cancelled("bands")

    # 3. Blob pass
    logger.debug("Step 3: Blob pass")
    drafts = blob_pass(ctx)
    ctx.check_cancelled("blob pass")

    # 4. Per-band circle pass
    if config.enable_circle_pass:
        logger.debug("Step 4: Circle pass")
        drafts += circle_pass(ctx)
        ctx.check_cancelled("circle pass")

    # 5. Relaxed full-image pass when sparse
    logger.debug("Step 5: Relaxed circle pass")
    drafts += relaxed_circle_pass(ctx, drafts)
    ctx.check_cancelled("relaxed pass")

    # 6. Promotions (before filtering so compound drafts filter as one)
    logger.debug("Step 6: Promotions")
    drafts = promote(drafts)

    # 7. Post filters
    logger.debug("Step 7: Post filters")
    drafts = post_filter(drafts, config.knob_min_diameter_px, float(ctx.src_w))

    # 8. NMS + center dedupe
    logger.debug("Step 8: NMS")
    drafts = non_max_suppression(drafts)
    drafts = dedupe_by_center(drafts)
    ctx.check_cancelled("filtering")

    # 9. Per-band column merge, cross-band grid snap, clamp
    logger.debug("Step 9: Column merge")
    drafts = merge_per_band(drafts, ctx.bands_scaled, ctx.up_y)
    drafts = reconcile_columns(drafts, ctx.bands_scaled, ctx.up_y, config.max_grid_snap_shift_px)
    drafts = clamp_drafts_to_image(drafts, float(ctx.src_w), float(ctx.src_h))

    # 10. Default labels
    logger.debug("Step 10: Labels")
    drafts = assign_default_labels(drafts)
    ctx.check_cancelled("labels")

    return drafts, ctx


def detect(
    image: Optional[PixelBuffer],
    config: Optional[Config] = None,
    cancel_token: Optional[CancelToken] = None,
) -> List[ControlDraft]:
    """
    Propose faceplate controls in a decoded image.

    Args:
        image: RGBA pixel buffer (None or zero-area yields [])
        config: thresholds (``Config()`` if None)
        cancel_token: optional cooperative cancellation flag

    Returns:
        Drafts with integral rects inside the image, confidence in [0, 1]
    """
    drafts, _ = run_detection(image, config, cancel_token)
    return drafts


@dataclass
class DetectionResult:
    """단일 이미지 검출 결과"""

    image_path: Optional[Path]
    width: int
    height: int
    drafts: List[ControlDraft]
    processing_time_ms: float
    timestamp: datetime = field(default_factory=datetime.now)
    image: Optional[np.ndarray] = field(default=None, repr=False)
    context: Optional[DetectionContext] = field(default=None, repr=False)

    @property
    def counts_by_kind(self) -> Dict[str, int]:
        return dict(Counter(d.kind.value for d in self.drafts))

    @property
    def bands_px(self) -> List[Tuple[float, float]]:
        """Bands in full-resolution rows."""
        if self.context is None:
            return []
        return [(lo * self.context.up_y, hi * self.context.up_y) for lo, hi in self.context.bands_scaled]


class DetectionPipeline:
    """
    파일 단위 검출 파이프라인.

    FileIO(이미지 로드) → PixelBuffer → detect() 순서로 실행하고 결과를 DetectionResult로 반환.
    """

    def __init__(self, config: Optional[Config] = None, keep_images: bool = False):
        """
        Args:
            config: 검출 설정 (기본값 사용 시 None)
            keep_images: 결과에 원본 이미지를 포함할지 여부 (overlay 저장용)
        """
        self.config = config or Config()
        self.keep_images = keep_images
        self.file_io = FileIO()
        logger.info("DetectionPipeline initialized")

    def process_image(self, image: np.ndarray, image_path: Optional[Path] = None,
                      cancel_token: Optional[CancelToken] = None) -> DetectionResult:
        """
        OpenCV 이미지(BGR/BGRA/gray) 처리.

        Raises:
            PipelineError: 이미지 배열이 올바르지 않은 경우
        """
        start_time = datetime.now()
        try:
            source = PixelBuffer.from_bgr(image)
        except ImageValidationError as e:
            raise PipelineError(f"Invalid image array: {e}") from e

        drafts, ctx = run_detection(source, self.config, cancel_token)
        processing_time = (datetime.now() - start_time).total_seconds() * 1000  # ms

        result = DetectionResult(
            image_path=image_path,
            width=source.width,
            height=source.height,
            drafts=drafts,
            processing_time_ms=processing_time,
            image=image if self.keep_images else None,
            context=ctx,
        )
        logger.info(
            f"Detection complete: {len(drafts)} drafts {result.counts_by_kind}, "
            f"time={processing_time:.1f}ms"
        )
        return result

    def process(self, image_path, cancel_token: Optional[CancelToken] = None) -> DetectionResult:
        """
        단일 이미지 파일 처리.

        Raises:
            PipelineError: 이미지를 읽을 수 없는 경우
            DetectionCancelled: 취소된 경우
        """
        image_path = Path(image_path)
        logger.info(f"Processing image: {image_path}")

        image = self.file_io.load_image(image_path)
        if image is None:
            raise PipelineError(f"Failed to load image: {image_path}")
        return self.process_image(image, image_path, cancel_token)

    def process_batch(
        self,
        image_paths: List[Path],
        continue_on_error: bool = True,
        parallel: bool = False,
        max_workers: int = 4,
        cancel_token: Optional[CancelToken] = None,
        output_csv: Optional[Path] = None,
    ) -> List[DetectionResult]:
        """
        배치 처리 (옵션으로 병렬 처리 지원).

        Args:
            image_paths: 입력 이미지 경로 리스트
            continue_on_error: 오류 발생 시 계속 진행 여부
            parallel: 병렬 처리 사용 여부 (기본값: False)
            max_workers: 병렬 처리 시 최대 워커 수 (기본값: 4)
            cancel_token: 배치 전체에 대한 취소 토큰
            output_csv: 결과 CSV 저장 경로 (선택)

        Returns:
            List[DetectionResult]: 입력 순서대로 정렬된 성공 결과
        """
        logger.info(f"Batch processing {len(image_paths)} images (parallel={parallel})")

        results: Dict[int, DetectionResult] = {}
        errors = []

        if parallel and len(image_paths) > 1:
            from concurrent.futures import ThreadPoolExecutor, as_completed

            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                future_to_index = {
                    executor.submit(self.process, path, cancel_token): i
                    for i, path in enumerate(image_paths)
                }
                for done, future in enumerate(as_completed(future_to_index), start=1):
                    i = future_to_index[future]
                    logger.info(f"Processed {done}/{len(image_paths)}: {image_paths[i]}")
                    try:
                        results[i] = future.result()
                    except PipelineError as e:
                        logger.warning(f"Error processing {image_paths[i]}: {e}")
                        errors.append((image_paths[i], str(e)))
                        if not continue_on_error:
                            raise
        else:
            for i, image_path in enumerate(image_paths):
                logger.info(f"Processing {i + 1}/{len(image_paths)}: {image_path}")
                try:
                    results[i] = self.process(image_path, cancel_token)
                except PipelineError as e:
                    logger.warning(f"Error processing {image_path}: {e}")
                    errors.append((image_path, str(e)))
                    if not continue_on_error:
                        raise

                # 메모리 정리 (10개마다)
                if (i + 1) % 10 == 0:
                    gc.collect()

        logger.info(f"Batch processing complete: {len(results)} succeeded, {len(errors)} failed")
        ordered = [results[i] for i in sorted(results)]

        if output_csv:
            self.save_results_csv(ordered, Path(output_csv))

        return ordered

    def save_results_csv(self, results: List[DetectionResult], output_path: Path):
        """
        결과를 CSV 파일로 저장 (이미지당 1행, kind별 개수 포함).

        Args:
            results: 검출 결과 리스트
            output_path: 출력 CSV 경로
        """
        import csv

        output_path = Path(output_path)
        ensure_dir(output_path.parent)
        kinds = [k.value for k in ControlKind]

        with open(output_path, 'w', newline='', encoding='utf-8') as f:
            writer = csv.writer(f)

            # 헤더
            writer.writerow(['image_path', 'timestamp', 'width', 'height', 'drafts', *kinds, 'processing_time_ms'])

            # 데이터
            for result in results:
                counts = result.counts_by_kind
                writer.writerow([
                    str(result.image_path) if result.image_path else '',
                    result.timestamp.isoformat(),
                    result.width,
                    result.height,
                    len(result.drafts),
                    *[counts.get(k, 0) for k in kinds],
                    f"{result.processing_time_ms:.1f}",
                ])

        logger.info(f"Results saved to {output_path}")


__all__ = [
    "DetectionCancelled",
    "DetectionPipeline",
    "DetectionResult",
    "PipelineError",
    "build_context",
    "detect",
    "run_detection",
]
