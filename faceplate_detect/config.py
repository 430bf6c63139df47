"""
Detector configuration

Immutable threshold set for one detection run, plus the sensitivity slider preset.
"""

import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path

from pydantic import ValidationError

from faceplate_detect.schemas.config_schemas import DetectorConfigFile
from faceplate_detect.utils.file_io import read_json

logger = logging.getLogger(__name__)

SENSITIVITY_GAMMA = 0.85


class ConfigError(ValueError):
    """설정 파일 오류"""
    pass


def _lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


@dataclass(frozen=True)
class Config:
    # --- global guards (full-resolution px unless noted) ---
    downscale_max: int = 720
    knob_min_diameter_px: float = 28.0
    knob_max_diameter_px: float = 200.0
    limit_search_to_bands: bool = True
    enable_circle_pass: bool = True

    # --- blob pass ---
    area_min_px: float = 18 * 18  # working px²
    led_max_diameter_px: float = 36.0
    rect_roundness_tolerance: float = 0.28
    keep_top_fraction: float = 0.06

    # --- circle pass (slider driven) ---
    band_pad_frac: float = 0.18
    band_max_r_frac: float = 0.40
    cov_base: float = 0.22
    ali_base: float = 0.54
    contrast_floor: float = 0.024
    ring_ink_cut_small: float = 0.070  # higher = fewer glyph rejections
    size_clamp_lo: float = 0.60
    size_clamp_hi: float = 1.40
    size_clamp_enable_spread: float = 1.45
    want_per_band_base: int = 6
    want_per_band_per_1000px: int = 3

    # --- cross-band column reconcile ---
    max_grid_snap_shift_px: float = 18.0

    @classmethod
    def from_sensitivity(cls, sensitivity: float) -> "Config":
        """
        슬라이더 값(0..1)을 전체 임계값 세트로 변환.

        Higher sensitivity means more recall: looser radial thresholds, more rescues,
        wider knob diameter bounds.

        Example:
            >>> Config.from_sensitivity(0.0).cov_base
            0.32
            >>> Config.from_sensitivity(1.0).want_per_band_base
            8
        """
        s = max(0.0, min(1.0, float(sensitivity)))
        t = s ** SENSITIVITY_GAMMA

        return cls(
            band_pad_frac=_lerp(0.12, 0.24, t),
            band_max_r_frac=_lerp(0.34, 0.44, t),
            cov_base=_lerp(0.32, 0.18, t),
            ali_base=_lerp(0.64, 0.50, t),
            contrast_floor=_lerp(0.032, 0.020, t),
            ring_ink_cut_small=_lerp(0.055, 0.085, t),
            size_clamp_lo=_lerp(0.70, 0.55, t),
            size_clamp_hi=_lerp(1.30, 1.55, t),
            size_clamp_enable_spread=_lerp(1.35, 1.55, t),
            want_per_band_base=int(round(_lerp(4.0, 8.0, t))),
            want_per_band_per_1000px=int(round(_lerp(2.0, 5.0, t))),
            max_grid_snap_shift_px=_lerp(10.0, 24.0, t),
            knob_min_diameter_px=_lerp(30.0, 26.0, t),
            knob_max_diameter_px=_lerp(180.0, 210.0, t),
        )

    def toggling(self, limit_search_to_bands: bool) -> "Config":
        return replace(self, limit_search_to_bands=limit_search_to_bands)

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def config_from_dict(data: dict) -> Config:
    """
    Build a Config from a parsed config-file dict.

    Raises:
        ConfigError: 스키마 검증 실패 시
    """
    try:
        parsed = DetectorConfigFile.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid detector config: {e}") from e

    base = Config.from_sensitivity(parsed.sensitivity) if parsed.sensitivity is not None else Config()
    overrides = parsed.overrides()
    if overrides:
        logger.debug(f"Config overrides: {sorted(overrides)}")
    return replace(base, **overrides)


def load_config(path: Path) -> Config:
    """JSON 설정 파일 로드."""
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        data = read_json(path)
    except ValueError as e:
        raise ConfigError(f"Config file is not valid JSON: {path}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must contain a JSON object: {path}")
    return config_from_dict(data)
