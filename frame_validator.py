"""Counts the frames a session actually left on disk."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional

from models import FrameValidation

try:
    from PIL import Image
except Exception:  # pragma: no cover
    Image = None  # type: ignore

logger = logging.getLogger(__name__)

FRAME_PATTERN = re.compile(r"^frame_\d{6}\.(jpg|png)$")
SEGMENT_SECONDS = 6
SEGMENT_FPS = 30


class DiskFrameValidator:
    def validate(self, session_folder: Path) -> FrameValidation:
        session_folder = Path(session_folder)
        if not session_folder.is_dir():
            logger.warning("Session folder does not exist: %s", session_folder)
            return FrameValidation(valid_frame_count=0)

        jpg: list[Path] = []
        png: list[Path] = []
        segments = 0
        for path in session_folder.iterdir():
            match = FRAME_PATTERN.match(path.name)
            if match:
                if not self._non_empty(path):
                    continue
                (jpg if match.group(1) == "jpg" else png).append(path)
            elif path.suffix == ".ts":
                segments += 1

        frames = jpg or png
        if frames:
            frames.sort()
            return FrameValidation(
                valid_frame_count=len(frames),
                dimensions=self._dimensions(frames[0]),
                frame_format="jpeg" if frames is jpg else "png",
            )
        if segments:
            return FrameValidation(
                valid_frame_count=segments * SEGMENT_SECONDS * SEGMENT_FPS,
                frame_format="hls",
            )
        return FrameValidation(valid_frame_count=0)

    @staticmethod
    def _non_empty(path: Path) -> bool:
        try:
            return path.stat().st_size > 0
        except OSError:
            return False

    @staticmethod
    def _dimensions(path: Path) -> Optional[tuple[int, int]]:
        if Image is None:
            return None
        try:
            with Image.open(path) as image:
                return image.size
        except Exception as exc:
            logger.warning("Could not read frame %s: %s", path.name, exc)
            return None
