"""
Detection Visualizer

Overlay drawing for detected control drafts and the row-profile chart used to
debug band detection.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import cv2
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from faceplate_detect.core.bands import row_profile
from faceplate_detect.models import ControlDraft, ControlKind
from faceplate_detect.utils.file_io import ensure_dir
from faceplate_detect.utils.image_utils import rgba_to_bgr


def _default_kind_colors() -> Dict[ControlKind, Tuple[int, int, int]]:
    # BGR
    return {
        ControlKind.KNOB: (0, 200, 0),
        ControlKind.STEPPED_KNOB: (0, 160, 80),
        ControlKind.CONCENTRIC_KNOB: (200, 160, 0),
        ControlKind.LIGHT: (0, 220, 255),
        ControlKind.LIT_BUTTON: (0, 140, 255),
        ControlKind.BUTTON: (255, 80, 80),
        ControlKind.MULTI_SWITCH: (200, 0, 200),
    }


@dataclass
class VisualizerConfig:
    """Visualizer configuration"""

    # Overlay
    line_thickness: int = 2
    kind_colors: Dict[ControlKind, Tuple[int, int, int]] = field(default_factory=_default_kind_colors)
    label_font_scale: float = 0.45
    label_thickness: int = 1
    show_labels: bool = True
    show_confidence: bool = False
    show_bands: bool = True
    band_color: Tuple[int, int, int] = (180, 180, 180)  # BGR: light gray

    # Profile chart
    profile_figure_size: Tuple[int, int] = (6, 8)
    profile_dpi: int = 100

    # Batch summary
    summary_figure_size: Tuple[int, int] = (12, 5)
    summary_dpi: int = 100


class VisualizationError(Exception):
    """Base exception for visualization errors"""

    pass


class DraftVisualizer:
    """
    Draws detection drafts on a BGR image and renders band diagnostics.
    """

    def __init__(self, config: Optional[VisualizerConfig] = None):
        self.config = config or VisualizerConfig()

    def draw_drafts(
        self,
        image: np.ndarray,
        drafts: Sequence[ControlDraft],
        bands_px: Sequence[Tuple[float, float]] = (),
    ) -> np.ndarray:
        """
        Draw drafts (circle for radius-bearing kinds, rectangle otherwise) and labels.

        Args:
            image: Input image (BGR, or RGBA PixelBuffer pixels)
            drafts: Drafts in source pixel coordinates
            bands_px: Optional bands (full-resolution rows) drawn as horizontal guides

        Returns:
            Overlaid image (BGR, np.ndarray)
        """
        if isinstance(image, np.ndarray) and image.ndim == 3 and image.shape[2] == 4:
            image = rgba_to_bgr(image)  # PixelBuffer.pixels
        if not isinstance(image, np.ndarray) or image.ndim != 3 or image.shape[2] != 3:
            raise VisualizationError("draw_drafts expects a BGR image (H, W, 3) or RGBA pixels")

        overlay = image.copy()
        w = overlay.shape[1]

        if self.config.show_bands:
            for y0, y1 in bands_px:
                cv2.line(overlay, (0, int(y0)), (w - 1, int(y0)), self.config.band_color, 1, cv2.LINE_AA)
                cv2.line(overlay, (0, int(y1)), (w - 1, int(y1)), self.config.band_color, 1, cv2.LINE_AA)

        for d in drafts:
            color = self.config.kind_colors.get(d.kind, (255, 255, 255))
            if d.radius is not None:
                center = (int(round(d.center[0])), int(round(d.center[1])))
                cv2.circle(overlay, center, max(1, int(round(d.radius))), color, self.config.line_thickness, cv2.LINE_AA)
            else:
                x, y, rw, rh = d.rect.to_xywh()
                cv2.rectangle(overlay, (x, y), (x + rw, y + rh), color, self.config.line_thickness)

            if self.config.show_labels:
                self._draw_label(overlay, d, color)

        return overlay

    def _draw_label(self, image: np.ndarray, draft: ControlDraft, color: Tuple[int, int, int]):
        text = draft.label
        if self.config.show_confidence:
            text = f"{text} ({draft.confidence:.2f})"

        font = cv2.FONT_HERSHEY_SIMPLEX
        (text_w, text_h), baseline = cv2.getTextSize(text, font, self.config.label_font_scale, self.config.label_thickness)
        x, y, _, _ = draft.rect.to_xywh()
        y = max(text_h + 2, y - 4)

        cv2.rectangle(image, (x, y - text_h - 2), (x + text_w + 2, y + baseline), (0, 0, 0), -1)
        cv2.putText(
            image,
            text,
            (x + 1, y),
            font,
            self.config.label_font_scale,
            color,
            self.config.label_thickness,
            cv2.LINE_AA,
        )

    def visualize_band_profile(
        self,
        mask: np.ndarray,
        bands_scaled: Sequence[Tuple[float, float]],
    ) -> plt.Figure:
        """
        Row edge-density profile of the interest mask with detected bands shaded.

        Args:
            mask: Working-resolution interest mask
            bands_scaled: Bands in working-image rows

        Returns:
            matplotlib Figure
        """
        fig, ax = plt.subplots(1, 1, figsize=self.config.profile_figure_size, dpi=self.config.profile_dpi)

        profile = row_profile(mask)
        if profile is None:
            ax.text(0.5, 0.5, "No plate interior", ha="center", va="center", transform=ax.transAxes)
        else:
            y_min, values = profile
            rows = np.arange(y_min, y_min + len(values))
            ax.plot(values, rows, color="steelblue", linewidth=1.5, label="Smoothed density")
            for i, (y0, y1) in enumerate(bands_scaled):
                ax.axhspan(y0, y1, alpha=0.2, color="orange", label="Band" if i == 0 else None)
            ax.legend(loc="lower right", fontsize=8)

        ax.invert_yaxis()
        ax.set_xlabel("Edge pixels per row")
        ax.set_ylabel("Row (working px)")
        ax.set_title("Row Profile")
        ax.grid(True, alpha=0.3)

        plt.tight_layout()
        return fig

    def visualize_batch_summary(self, results: List[Any]) -> plt.Figure:  # List[DetectionResult]
        """
        Batch dashboard: stacked draft counts per image and processing time.

        Args:
            results: List of detection results

        Returns:
            matplotlib Figure
        """
        fig, axes = plt.subplots(1, 2, figsize=self.config.summary_figure_size, dpi=self.config.summary_dpi)

        names = [Path(r.image_path).name if r.image_path else f"#{i}" for i, r in enumerate(results)]
        df = pd.DataFrame([r.counts_by_kind for r in results], index=names).fillna(0).astype(int)
        df = df.reindex(columns=[k.value for k in ControlKind if k.value in df.columns])

        # Plot 1: Draft counts per image (stacked bar)
        ax = axes[0]
        if df.empty or df.shape[1] == 0:
            ax.text(0.5, 0.5, "No drafts", ha="center", va="center", transform=ax.transAxes)
        else:
            df.plot(kind="bar", stacked=True, ax=ax, colormap="tab10")
            ax.legend(loc="upper right", fontsize=8)
        ax.set_title(f"Drafts per Image\n(Total: {int(df.values.sum()) if not df.empty else 0})")
        ax.set_xlabel("Image")
        ax.set_ylabel("Count")
        ax.grid(True, axis="y", alpha=0.3)

        # Plot 2: Processing time
        ax = axes[1]
        times = pd.Series([r.processing_time_ms for r in results], index=names)
        if not times.empty:
            times.plot(kind="bar", ax=ax, color="steelblue")
            ax.axhline(times.mean(), color="red", linestyle="--", linewidth=1, label=f"Mean {times.mean():.0f}ms")
            ax.legend(loc="upper right", fontsize=8)
        ax.set_title("Processing Time")
        ax.set_xlabel("Image")
        ax.set_ylabel("ms")
        ax.grid(True, axis="y", alpha=0.3)

        plt.tight_layout()
        return fig

    def save_visualization(self, image: Union[np.ndarray, plt.Figure], output_path: Path):
        """
        Save visualization to file

        Args:
            image: Image (BGR) or Figure to save
            output_path: Output file path
        """
        output_path = Path(output_path)
        ensure_dir(output_path.parent)

        if isinstance(image, np.ndarray):
            if not cv2.imwrite(str(output_path), image):
                raise VisualizationError(f"Could not write image: {output_path}")
        elif isinstance(image, plt.Figure):
            image.savefig(output_path, dpi=self.config.profile_dpi, bbox_inches="tight")
            plt.close(image)
        else:
            raise VisualizationError(f"Unsupported image type: {type(image)}")


def draft_summary(drafts: Sequence[ControlDraft]) -> List[str]:
    """One line per draft, in list order (for CLI printing)."""
    lines = []
    for d in drafts:
        x, y, w, h = d.rect.to_xywh()
        radius = f" r={d.radius:.1f}" if d.radius is not None else ""
        lines.append(f"{d.label:<16} {d.kind.value:<15} rect=({x},{y},{w},{h}){radius} conf={d.confidence:.2f}")
    return lines
