"""
유틸: 이미지 배열 보조 함수 모음.
"""

from __future__ import annotations

import cv2
import numpy as np

# Rec.709 luma weights
LUMA_WEIGHTS = (0.2126, 0.7152, 0.0722)


class ImageValidationError(ValueError):
    """이미지 유효성 오류"""


def _validate_image(image: np.ndarray, name: str = "image", allow_gray: bool = False) -> None:
    if not isinstance(image, np.ndarray):
        raise ImageValidationError(f"{name} must be numpy.ndarray")
    if image.dtype != np.uint8:
        raise ImageValidationError(f"{name} must have dtype uint8")
    if allow_gray and image.ndim == 2:
        return
    if image.ndim != 3 or image.shape[2] not in (3, 4):
        raise ImageValidationError(f"{name} must have 3 or 4 channels (H, W, C)")


def to_rgba(image: np.ndarray) -> np.ndarray:
    """OpenCV gray/BGR/BGRA 배열을 RGBA 배열로 변환."""
    _validate_image(image, allow_gray=True)
    if image.size == 0:
        return np.zeros((image.shape[0], image.shape[1], 4), dtype=np.uint8)
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2RGBA)
    if image.shape[2] == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2RGBA)
    return cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)


def rgba_to_bgr(image: np.ndarray) -> np.ndarray:
    """RGBA 이미지를 BGR로 변환."""
    _validate_image(image)
    return cv2.cvtColor(image, cv2.COLOR_RGBA2BGR)


def luma(rgba: np.ndarray) -> np.ndarray:
    """RGBA(uint8) → 0..1 float32 luma plane."""
    _validate_image(rgba)
    rgb = rgba[..., :3].astype(np.float32)
    wr, wg, wb = LUMA_WEIGHTS
    return (rgb[..., 0] * wr + rgb[..., 1] * wg + rgb[..., 2] * wb) / 255.0


def resize_keep_aspect(
    image: np.ndarray,
    max_width: int,
    max_height: int,
    interpolation: int = cv2.INTER_AREA,
) -> np.ndarray:
    """
    종횡비를 유지하면서 최대 가로/세로 크기 이내로 리사이즈.
    """
    _validate_image(image)
    h, w = image.shape[:2]
    if w <= max_width and h <= max_height:
        return image.copy()
    scale = min(max_width / w, max_height / h)
    new_w, new_h = max(1, int(w * scale)), max(1, int(h * scale))
    return cv2.resize(image, (new_w, new_h), interpolation=interpolation)
