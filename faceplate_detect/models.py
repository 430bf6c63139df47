"""
Detection data model

파이프라인 전 단계가 공유하는 타입: ControlKind, Rect, ControlDraft, Blob,
CircleCandidate, PixelBuffer, DetectionContext, CancelToken.
"""

from __future__ import annotations

import math
import threading
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np

from faceplate_detect.config import Config
from faceplate_detect.utils.image_utils import ImageValidationError, to_rgba

Point = Tuple[float, float]


class ControlKind(str, Enum):
    """Closed set of control kinds a draft can carry."""

    KNOB = "knob"
    STEPPED_KNOB = "steppedKnob"
    MULTI_SWITCH = "multiSwitch"
    BUTTON = "button"
    LIGHT = "light"
    LIT_BUTTON = "litButton"
    CONCENTRIC_KNOB = "concentricKnob"

    @property
    def is_knob_like(self) -> bool:
        return self in (ControlKind.KNOB, ControlKind.STEPPED_KNOB, ControlKind.CONCENTRIC_KNOB)


class DetectionCancelled(Exception):
    """취소 토큰이 설정되어 실행이 중단됨"""
    pass


class CancelToken:
    """
    Cooperative cancellation flag.

    A caller re-running detection (e.g. after a sensitivity change) sets the token of the
    stale run; the pipeline checks it between stages and between bands.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, where: str = "") -> None:
        if self._event.is_set():
            raise DetectionCancelled(f"Detection cancelled{' during ' + where if where else ''}")


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle, top-left origin, pixel units."""

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def around(cls, center: Point, radius: float) -> "Rect":
        return cls(center[0] - radius, center[1] - radius, radius * 2, radius * 2)

    @property
    def max_x(self) -> float:
        return self.x + self.width

    @property
    def max_y(self) -> float:
        return self.y + self.height

    @property
    def mid_x(self) -> float:
        return self.x + self.width * 0.5

    @property
    def mid_y(self) -> float:
        return self.y + self.height * 0.5

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    def integral(self) -> "Rect":
        """Smallest rect with integer coordinates that contains this one."""
        x0, y0 = math.floor(self.x), math.floor(self.y)
        x1, y1 = math.ceil(self.max_x), math.ceil(self.max_y)
        return Rect(float(x0), float(y0), float(x1 - x0), float(y1 - y0))

    def intersection(self, other: "Rect") -> Optional["Rect"]:
        x0, y0 = max(self.x, other.x), max(self.y, other.y)
        x1, y1 = min(self.max_x, other.max_x), min(self.max_y, other.max_y)
        if x1 < x0 or y1 < y0:
            return None
        return Rect(x0, y0, x1 - x0, y1 - y0)

    def inset(self, dx: float, dy: float) -> "Rect":
        return Rect(self.x + dx, self.y + dy, self.width - 2 * dx, self.height - 2 * dy)

    def offset(self, dx: float, dy: float = 0.0) -> "Rect":
        return Rect(self.x + dx, self.y + dy, self.width, self.height)

    def contains(self, point: Point) -> bool:
        px, py = point
        return self.x <= px < self.max_x and self.y <= py < self.max_y

    def to_xywh(self) -> Tuple[int, int, int, int]:
        return int(round(self.x)), int(round(self.y)), int(round(self.width)), int(round(self.height))


@dataclass
class ControlDraft:
    """A proposed control: the only entity that leaves the pipeline."""

    kind: ControlKind
    rect: Rect
    center: Point
    radius: Optional[float]
    label: str
    confidence: float
    id: str = field(default_factory=lambda: uuid.uuid4().hex, compare=False)

    @property
    def diameter(self) -> float:
        return (self.radius or 0.0) * 2.0


@dataclass(frozen=True)
class Blob:
    """Connected region of the interest mask (working resolution)."""

    x: int
    y: int
    width: int
    height: int
    area: int
    filled_area: int
    # bbox 내접 타원 바깥(모서리) 영역 중 채워진 비율: 원판 ≈ 0, 사각형 ≈ 1
    corner_fill: float = 0.0

    @property
    def mid_x(self) -> float:
        return self.x + self.width * 0.5

    @property
    def mid_y(self) -> float:
        return self.y + self.height * 0.5

    @property
    def max_y(self) -> int:
        return self.y + self.height

    @property
    def aspect(self) -> float:
        return max(self.width, self.height) / max(1.0, min(self.width, self.height))


@dataclass(frozen=True)
class CircleCandidate:
    center: Point
    radius: float
    score: float


@dataclass(frozen=True)
class PixelBuffer:
    """
    Read-only RGBA8 view over a decoded image.

    Args:
        pixels: (H, W, 4) uint8 array in RGBA order.
    """

    pixels: np.ndarray

    def __post_init__(self):
        if not isinstance(self.pixels, np.ndarray) or self.pixels.ndim != 3 or self.pixels.shape[2] != 4:
            raise ImageValidationError("PixelBuffer expects an (H, W, 4) RGBA array")
        if self.pixels.dtype != np.uint8:
            raise ImageValidationError("PixelBuffer expects dtype uint8")

    @classmethod
    def from_bgr(cls, image: np.ndarray) -> "PixelBuffer":
        """OpenCV 이미지(gray/BGR/BGRA)를 RGBA 버퍼로 변환."""
        return cls(to_rgba(image))

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0


@dataclass
class DetectionContext:
    """
    Working state of a single detect() run. Never shared between runs.

    Coordinates suffixed ``_scaled`` live in the downscaled working image; drafts live
    in full-resolution source pixels. ``up_x``/``up_y`` map working to source.
    """

    source: PixelBuffer
    config: Config
    luma: np.ndarray
    working_rgba: np.ndarray
    up_x: float
    up_y: float
    cancel_token: Optional[CancelToken] = None
    edges: Optional[np.ndarray] = None
    mask: Optional[np.ndarray] = None
    blobs: List[Blob] = field(default_factory=list)
    bands_scaled: List[Tuple[float, float]] = field(default_factory=list)
    gate_top_scaled: float = 0.0
    gate_bot_scaled: float = 0.0

    @property
    def src_w(self) -> int:
        return self.source.width

    @property
    def src_h(self) -> int:
        return self.source.height

    @property
    def scaled_w(self) -> int:
        return int(self.working_rgba.shape[1])

    @property
    def scaled_h(self) -> int:
        return int(self.working_rgba.shape[0])

    @property
    def max_up(self) -> float:
        return max(self.up_x, self.up_y)

    def check_cancelled(self, where: str = "") -> None:
        if self.cancel_token is not None:
            self.cancel_token.raise_if_cancelled(where)
