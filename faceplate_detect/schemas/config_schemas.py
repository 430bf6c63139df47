"""
Config File Schemas

Pydantic model for JSON detector configuration files.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class DetectorConfigFile(BaseModel):
    """
    Detector configuration file

    ``sensitivity`` selects the slider preset; any other field overrides the preset value.
    Unknown keys are rejected so typos do not silently fall back to defaults.
    """

    model_config = ConfigDict(extra="forbid")

    sensitivity: Optional[float] = Field(default=None, description="Slider preset (0=strict, 1=loose)", ge=0.0, le=1.0)

    # Global guards
    downscale_max: Optional[int] = Field(default=None, description="Longest side of the working image", ge=64, le=4096)
    knob_min_diameter_px: Optional[float] = Field(default=None, description="Smallest knob diameter (full px)", ge=1.0)
    knob_max_diameter_px: Optional[float] = Field(default=None, description="Largest knob diameter (full px)", ge=1.0)
    limit_search_to_bands: Optional[bool] = Field(default=None, description="Gate detections to row bands")
    enable_circle_pass: Optional[bool] = Field(default=None, description="Run the per-band circle pass")

    # Blob pass
    area_min_px: Optional[float] = Field(default=None, description="Minimum blob bbox area (working px²)", ge=0.0)
    led_max_diameter_px: Optional[float] = Field(default=None, description="Largest LED diameter (full px)", ge=1.0)
    rect_roundness_tolerance: Optional[float] = Field(default=None, description="1 - roundness tolerance", ge=0.0, le=1.0)
    keep_top_fraction: Optional[float] = Field(default=None, description="Fraction of edge energy kept", gt=0.0, le=1.0)

    # Circle pass
    band_pad_frac: Optional[float] = Field(default=None, description="Band crop padding fraction", ge=0.0, le=1.0)
    band_max_r_frac: Optional[float] = Field(default=None, description="Max radius / band height", gt=0.0, le=1.0)
    cov_base: Optional[float] = Field(default=None, description="Radial coverage base threshold", ge=0.0, le=1.0)
    ali_base: Optional[float] = Field(default=None, description="Radial alignment base threshold", ge=0.0, le=1.0)
    contrast_floor: Optional[float] = Field(default=None, description="Inner/outer luma contrast floor", ge=0.0, le=1.0)
    ring_ink_cut_small: Optional[float] = Field(default=None, description="Printed ring luma gain cut", ge=0.0, le=1.0)
    size_clamp_lo: Optional[float] = Field(default=None, description="Lower size clamp (× median)", gt=0.0, le=1.0)
    size_clamp_hi: Optional[float] = Field(default=None, description="Upper size clamp (× median)", ge=1.0)
    size_clamp_enable_spread: Optional[float] = Field(default=None, description="p90/p10 spread enabling clamp", ge=1.0)
    want_per_band_base: Optional[int] = Field(default=None, description="Expected controls per band", ge=0)
    want_per_band_per_1000px: Optional[int] = Field(default=None, description="Expected controls per 1000px", ge=0)

    # Cross-band alignment
    max_grid_snap_shift_px: Optional[float] = Field(default=None, description="Max column snap nudge (px)", ge=0.0)

    @model_validator(mode="after")
    def check_knob_bounds(self):
        lo, hi = self.knob_min_diameter_px, self.knob_max_diameter_px
        if lo is not None and hi is not None and lo > hi:
            raise ValueError("knob_min_diameter_px must not exceed knob_max_diameter_px")
        return self

    def overrides(self) -> dict:
        """Explicitly set fields except the preset selector."""
        return self.model_dump(exclude_none=True, exclude={"sensitivity"})
