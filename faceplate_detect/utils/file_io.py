import json
import logging
from pathlib import Path
from typing import Any, List, Optional

import cv2
import numpy as np

logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg", ".bmp", ".tif", ".tiff", ".webp")


class FileIO:
    def load_image(self, filepath: Path) -> Optional[np.ndarray]:
        filepath = Path(filepath)
        if not filepath.exists():
            return None
        try:
            # np.fromfile + imdecode로 비ASCII 경로에서도 로딩 안정화
            data = np.fromfile(str(filepath), dtype=np.uint8)
            if data.size == 0:
                return None
            return cv2.imdecode(data, cv2.IMREAD_COLOR)
        except (OSError, cv2.error) as e:
            logger.warning(f"Could not decode image {filepath}: {e}")
            return None

    def save_image(self, filepath: Path, image: np.ndarray) -> None:
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)
        ok, encoded = cv2.imencode(filepath.suffix or ".png", image)
        if not ok:
            raise OSError(f"Could not encode image for {filepath}")
        encoded.tofile(str(filepath))


def ensure_dir(path: Path) -> Path:
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def list_files(path: Path, pattern: str = "*.*") -> List[Path]:
    return sorted(Path(path).glob(pattern))


def list_images(path: Path, pattern: str = "*.*") -> List[Path]:
    return [p for p in list_files(path, pattern) if p.suffix.lower() in IMAGE_SUFFIXES]


def read_json(filepath: Path) -> dict:
    filepath = Path(filepath)
    if filepath.exists():
        with open(filepath, "r", encoding="utf-8") as f:
            return json.load(f)
    return {}


def write_json(data: Any, filepath: Path):
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    with open(filepath, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=4, ensure_ascii=False)
