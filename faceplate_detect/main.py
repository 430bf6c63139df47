"""
Main CLI Entry Point

패널(faceplate) 이미지에서 컨트롤 후보를 검출하는 CLI 프로그램.
"""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

from faceplate_detect.config import Config, ConfigError, load_config
from faceplate_detect.pipeline import DetectionPipeline, PipelineError
from faceplate_detect.schemas.detection_schemas import DetectionReport
from faceplate_detect.utils.file_io import list_images, write_json
from faceplate_detect.visualizer import DraftVisualizer, VisualizerConfig, draft_summary


# 로깅 설정
def setup_logging(debug: bool = False):
    """로깅 설정"""
    level = logging.DEBUG if debug else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(
        fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))

    logging.basicConfig(
        level=level,
        handlers=[handler],
        force=True  # 기존 핸들러 제거
    )


def build_config(args) -> Config:
    """
    CLI 인자로부터 Config 생성.

    우선순위: --config 파일 > --sensitivity 프리셋 > 기본값, 이후 on/off 플래그 적용.
    """
    if getattr(args, 'config', None):
        config = load_config(Path(args.config))
    elif getattr(args, 'sensitivity', None) is not None:
        config = Config.from_sensitivity(args.sensitivity)
    else:
        config = Config()

    if getattr(args, 'no_band_limit', False):
        config = config.toggling(limit_search_to_bands=False)
    if getattr(args, 'no_circle_pass', False):
        config = replace(config, enable_circle_pass=False)
    return config


def process_single_image(args):
    """단일 이미지 처리"""
    logger = logging.getLogger(__name__)

    config = build_config(args)
    want_overlay = bool(args.overlay)
    pipeline = DetectionPipeline(config, keep_images=want_overlay)

    result = pipeline.process(args.image)

    # 결과 출력
    print("\n" + "=" * 60)
    print("  Detection Result")
    print("=" * 60)
    print(f"  Image:    {args.image} ({result.width}x{result.height})")
    print(f"  Drafts:   {len(result.drafts)}")
    print(f"  Bands:    {[(round(a), round(b)) for a, b in result.bands_px]}")
    print(f"  Time:     {result.processing_time_ms:.1f} ms")
    print()
    for line in draft_summary(result.drafts):
        print(f"    {line}")
    print("=" * 60 + "\n")

    # JSON 저장 (옵션)
    if args.output:
        report = DetectionReport.from_result(result)
        write_json(report.model_dump(mode='json'), Path(args.output))
        logger.info(f"Result saved to {args.output}")

    visualizer: Optional[DraftVisualizer] = None
    if want_overlay or args.profile:
        visualizer = DraftVisualizer(VisualizerConfig(show_confidence=args.debug))

    # 시각화 (옵션)
    if want_overlay:
        overlay = visualizer.draw_drafts(result.image, result.drafts, result.bands_px)
        visualizer.save_visualization(overlay, Path(args.overlay))
        logger.info(f"Overlay saved to {args.overlay}")

    if args.profile and result.context is not None:
        fig = visualizer.visualize_band_profile(result.context.mask, result.context.bands_scaled)
        visualizer.save_visualization(fig, Path(args.profile))
        logger.info(f"Row profile saved to {args.profile}")

    return 0


def process_batch(args):
    """배치 처리"""
    logger = logging.getLogger(__name__)

    batch_dir = Path(args.batch)
    if not batch_dir.exists():
        logger.error(f"Batch directory not found: {batch_dir}")
        return 1

    image_paths = list_images(batch_dir, args.pattern)
    if not image_paths:
        logger.error(f"No images found in {batch_dir}")
        return 1

    logger.info(f"Found {len(image_paths)} images in {batch_dir}")

    config = build_config(args)
    pipeline = DetectionPipeline(config)

    results = pipeline.process_batch(
        image_paths,
        continue_on_error=args.continue_on_error,
        parallel=args.parallel,
        max_workers=args.max_workers,
        output_csv=Path(args.output) if args.output else None,
    )

    total_drafts = sum(len(r.drafts) for r in results)

    print("\n" + "=" * 60)
    print("  Batch Detection Summary")
    print("=" * 60)
    print(f"  Total images:  {len(image_paths)}")
    print(f"  Processed:     {len(results)}")
    print(f"  Failed:        {len(image_paths) - len(results)}")
    print(f"  Drafts:        {total_drafts}")
    if args.output:
        print(f"  Results saved: {args.output}")

    if args.dashboard and results:
        visualizer = DraftVisualizer(VisualizerConfig())
        fig = visualizer.visualize_batch_summary(results)
        visualizer.save_visualization(fig, Path(args.dashboard))
        logger.info(f"Dashboard saved to {args.dashboard}")
        print(f"  Dashboard:     {args.dashboard}")

    print("=" * 60 + "\n")

    return 0 if len(results) == len(image_paths) else 1


def _add_config_arguments(parser: argparse.ArgumentParser):
    parser.add_argument('--sensitivity', type=float, help='Sensitivity preset 0..1 (higher = more recall)')
    parser.add_argument('--config', help='Detector config JSON file')
    parser.add_argument('--no-band-limit', action='store_true', help='Search the whole image, not just row bands')
    parser.add_argument('--no-circle-pass', action='store_true', help='Skip the per-band circle pass')


def main(argv=None):
    """메인 함수"""
    parser = argparse.ArgumentParser(
        description='Faceplate Control Detector',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    # ========== detect 명령어 (단일 이미지) ==========
    detect_parser = subparsers.add_parser(
        'detect',
        help='Detect controls in a single image',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  faceplate-detect detect --image panel.jpg
  faceplate-detect detect --image panel.jpg --sensitivity 0.8 --output out/panel.json --overlay out/panel.png
        '''
    )
    detect_parser.add_argument('--image', required=True, help='Image file path')
    _add_config_arguments(detect_parser)
    detect_parser.add_argument('--output', help='Output JSON report path')
    detect_parser.add_argument('--overlay', help='Overlay image output path')
    detect_parser.add_argument('--profile', help='Row profile chart output path')

    # ========== batch 명령어 (배치 처리) ==========
    batch_parser = subparsers.add_parser(
        'batch',
        help='Detect controls in a directory of images',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  faceplate-detect batch --batch panels/ --output results/summary.csv
  faceplate-detect batch --batch panels/ --pattern "*.png" --parallel --dashboard results/dashboard.png
        '''
    )
    batch_parser.add_argument('--batch', required=True, help='Batch directory path')
    batch_parser.add_argument('--pattern', default='*.*', help='Glob pattern inside the batch directory')
    _add_config_arguments(batch_parser)
    batch_parser.add_argument('--output', help='Output CSV file path')
    batch_parser.add_argument('--stop-on-error', dest='continue_on_error', action='store_false',
                              help='Abort the batch on the first failing image')
    batch_parser.add_argument('--parallel', action='store_true', help='Process images in a thread pool')
    batch_parser.add_argument('--max-workers', type=int, default=4, help='Thread pool size')
    batch_parser.add_argument('--dashboard', help='Batch dashboard output path (PNG or PDF)')

    args = parser.parse_args(argv)

    # 로깅 설정
    setup_logging(args.debug)
    logger = logging.getLogger(__name__)

    if not args.command:
        parser.print_help()
        return 0

    try:
        if args.command == 'detect':
            return process_single_image(args)
        elif args.command == 'batch':
            return process_batch(args)
        return 0

    except ConfigError as e:
        logger.error(f"Config error: {e}")
        return 1

    except PipelineError as e:
        logger.error(f"Pipeline error: {e}")
        return 2

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130


if __name__ == '__main__':
    sys.exit(main())
