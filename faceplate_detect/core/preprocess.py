"""
Preprocessor

다운스케일 → 엣지 강조 → 백분위 마스크 → 연결 성분.
"""

from __future__ import annotations

import logging
from typing import Tuple

import cv2
import numpy as np

from faceplate_detect.core.components import label_components
from faceplate_detect.models import DetectionContext, PixelBuffer
from faceplate_detect.utils.image_utils import luma, resize_keep_aspect

logger = logging.getLogger(__name__)

CONTRAST_BOOST = 1.05
EDGE_BLUR_SIGMA = 0.6


def working_image(source: PixelBuffer, downscale_max: int) -> Tuple[np.ndarray, float, float]:
    """
    Downscale so the longer side is at most ``downscale_max``.

    Returns:
        (working RGBA, up_x, up_y) where up_* map working px to source px
    """
    scaled = resize_keep_aspect(source.pixels, downscale_max, downscale_max)
    sh, sw = scaled.shape[:2]
    up_x = source.width / max(1, sw)
    up_y = source.height / max(1, sh)
    return scaled, up_x, up_y


def edge_image(rgba: np.ndarray) -> np.ndarray:
    """Contrast-boosted, blurred Sobel magnitude scaled to 0..255 (uint8)."""
    gray = luma(rgba) * 255.0
    gray = np.clip((gray - 127.5) * CONTRAST_BOOST + 127.5, 0.0, 255.0).astype(np.float32)
    blurred = cv2.GaussianBlur(gray, (0, 0), EDGE_BLUR_SIGMA)
    gx = cv2.Sobel(blurred, cv2.CV_32F, 1, 0, ksize=3)
    gy = cv2.Sobel(blurred, cv2.CV_32F, 0, 1, ksize=3)
    mag = cv2.magnitude(gx, gy)

    peak = float(mag.max()) if mag.size else 0.0
    if peak <= 0.0:
        return np.zeros(mag.shape, dtype=np.uint8)
    return np.clip(mag * (255.0 / peak), 0.0, 255.0).astype(np.uint8)


def percentile_mask(edges: np.ndarray, keep_top_fraction: float) -> np.ndarray:
    """
    Keep the brightest ``keep_top_fraction`` of edge energy.

    The cutoff is the first histogram bin whose cumulative count reaches
    N * (1 - keep_top_fraction); zero energy is never kept.
    """
    if edges.size == 0:
        return np.zeros(edges.shape, dtype=bool)
    hist = np.bincount(edges.ravel(), minlength=256)
    target = int(edges.size * (1.0 - keep_top_fraction))
    cumulative = np.cumsum(hist)
    cutoff = int(np.argmax(cumulative >= target))
    cutoff = max(cutoff, 1)
    return edges >= cutoff


def preprocess(ctx: DetectionContext) -> None:
    """Fill ``edges``, ``mask`` and ``blobs`` of the context."""
    ctx.edges = edge_image(ctx.working_rgba)
    ctx.mask = percentile_mask(ctx.edges, ctx.config.keep_top_fraction)
    ctx.blobs = label_components(ctx.mask)
    logger.debug(
        f"Preprocess: working {ctx.scaled_w}x{ctx.scaled_h}, "
        f"mask {int(ctx.mask.sum())} px, {len(ctx.blobs)} blobs"
    )
