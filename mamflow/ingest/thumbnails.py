from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple

import cv2  # type: ignore


@dataclass(slots=True)
class ThumbnailInfo:
    path: Path
    width_px: int
    height_px: int


def thumbnail_command(ffmpeg_path: str, source: str, output: Path, width: int, height: int) -> List[str]:
    """Single representative frame, scaled to the fixed target resolution."""
    return [
        ffmpeg_path,
        "-nostdin",
        "-v",
        "error",
        "-i",
        source,
        "-vf",
        f"thumbnail,scale={width}:{height}",
        "-frames:v",
        "1",
        "-q:v",
        "2",
        "-y",
        str(output),
    ]


def measure_thumbnail(image_path: Path) -> ThumbnailInfo:
    width, height = _image_dimensions(image_path)
    return ThumbnailInfo(path=image_path, width_px=width, height_px=height)


def _image_dimensions(image_path: Path) -> Tuple[int, int]:
    if not image_path.exists():
        raise RuntimeError(f"Thumbnail was not written to {image_path}")
    image = cv2.imread(str(image_path))
    if image is None:
        raise RuntimeError(f"Failed to read generated thumbnail at {image_path}")
    height, width = image.shape[:2]
    return width, height


__all__ = ["ThumbnailInfo", "measure_thumbnail", "thumbnail_command"]
