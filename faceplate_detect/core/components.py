from __future__ import annotations

import logging
from typing import List

import cv2
import numpy as np
from scipy import ndimage

from faceplate_detect.models import Blob

logger = logging.getLogger(__name__)


def corner_fill(region: np.ndarray) -> float:
    """
    Filled share of the bbox area outside its inscribed ellipse.

    Args:
        region: (h, w) bool region cropped to its bounding box

    Returns:
        0..1; a disk scores near 0, a square 1. Boxes without corner pixels score 0.
    """
    h, w = region.shape
    yy, xx = np.mgrid[0:h, 0:w]
    nx = (xx + 0.5 - w * 0.5) / (w * 0.5)
    ny = (yy + 0.5 - h * 0.5) / (h * 0.5)
    outside = nx * nx + ny * ny > 1.0
    n = int(outside.sum())
    if n == 0:
        return 0.0
    return float(region[outside].sum()) / n


def label_components(mask: np.ndarray) -> List[Blob]:
    """
    Label 4-connected regions of a binary mask.

    Blobs come out in raster order of each region's first pixel (top-to-bottom,
    left-to-right), so a given mask always yields the same list.

    Args:
        mask: (H, W) bool or uint8 mask, nonzero = interest

    Returns:
        List of Blob with bbox, pixel count, hole-filled area and corner fill
    """
    if mask is None or mask.size == 0 or not mask.any():
        return []

    binary = (mask > 0).astype(np.uint8)
    num, labels, stats, _ = cv2.connectedComponentsWithStats(binary, connectivity=4)
    if num <= 1:
        return []

    # Label ids are renumbered by first raster index for a stable order.
    ids, first_index = np.unique(labels.ravel(), return_index=True)
    order = ids[np.argsort(first_index, kind="stable")]
    slices = ndimage.find_objects(labels)

    blobs: List[Blob] = []
    for lab in order:
        if lab == 0:
            continue
        x, y, w, h, area = (int(v) for v in stats[lab, :5])
        region = labels[slices[lab - 1]] == lab
        # 링 형태 엣지의 내부를 채운 면적 (roundness 계산용)
        filled = ndimage.binary_fill_holes(region)
        blobs.append(Blob(
            x=x, y=y, width=w, height=h, area=area,
            filled_area=int(filled.sum()),
            corner_fill=corner_fill(filled),
        ))

    logger.debug(f"Labeled {len(blobs)} components")
    return blobs
