"""Timelapse screen capture engine."""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from queue import Empty, Full, Queue
from typing import Any, Optional

from errors import StartFailure

try:
    from PIL import ImageGrab
except Exception:  # pragma: no cover
    ImageGrab = None  # type: ignore

logger = logging.getLogger(__name__)

# preset -> (scale, jpeg quality)
QUALITY_PRESETS = {
    "low": (0.65, 65),
    "medium": (0.8, 75),
    "high": (1.0, 85),
}
QUALITY_LEVELS = ["low", "medium", "high"]
HIGH_PRESSURE = 0.6
LOW_PRESSURE = 0.2
QUALITY_COOLDOWN_S = 5.0
START_ATTEMPTS = 3


def frame_name(index: int) -> str:
    return f"frame_{index:06d}.jpg"


class ScreenCaptureEngine:
    """Grabs the screen on a fixed interval and writes numbered JPEG frames.

    A grabber thread queues images; a writer thread saves them. Frames that
    do not fit in the queue are dropped and counted. Queue pressure steps
    the quality preset down, and back up once the writer catches up.
    """

    def __init__(
        self,
        interval_s: float = 1.0,
        queue_maxsize: int = 10,
        base_quality: str = "high",
    ) -> None:
        self.interval_s = interval_s
        self._queue: Queue[tuple[int, Any] | None] = Queue(maxsize=queue_maxsize)
        self._base_quality = base_quality if base_quality in QUALITY_PRESETS else "high"
        self._quality = self._base_quality
        self._last_quality_change = 0.0
        self._lock = threading.Lock()
        self._running = False
        self._paused = threading.Event()
        self._stop_event = threading.Event()
        self._grab_thread: Optional[threading.Thread] = None
        self._write_thread: Optional[threading.Thread] = None
        self._session_folder: Optional[Path] = None
        self._source_id = ""
        self._next_index = 0
        self._frames_written = 0
        self.dropped_frames = 0

    @property
    def frame_count(self) -> int:
        return self._frames_written

    @property
    def queue_size(self) -> int:
        return self._queue.qsize()

    @property
    def quality(self) -> str:
        return self._quality

    def start(self, session_folder: Path, source_id: str) -> None:
        with self._lock:
            if self._running:
                return
            if ImageGrab is None:
                raise StartFailure("Pillow is not installed")
            if not source_id:
                raise StartFailure("No capture source selected")
            session_folder.mkdir(parents=True, exist_ok=True)
            self._session_folder = session_folder
            self._source_id = source_id
            self._queue = Queue(maxsize=self._queue.maxsize)
            self._next_index = 0
            self._frames_written = 0
            self.dropped_frames = 0
            self._quality = self._base_quality

            first = None
            for _ in range(START_ATTEMPTS):
                first = self._grab()
                if first is not None:
                    break
                time.sleep(0.5)
            if first is None:
                raise StartFailure("Failed to capture from selected source")

            self._save(self._take_index(), first)
            self._stop_event.clear()
            self._paused.clear()
            self._running = True
            self._write_thread = threading.Thread(target=self._write_loop, name="capture-writer", daemon=True)
            self._grab_thread = threading.Thread(target=self._grab_loop, name="capture-grabber", daemon=True)
            self._write_thread.start()
            self._grab_thread.start()
        logger.info("Capture started in %s (source %s)", session_folder, source_id)

    def pause(self) -> None:
        self._paused.set()

    def resume(self, source_id: str) -> None:
        if source_id:
            self._source_id = source_id
        self._paused.clear()

    def stop(self) -> int:
        with self._lock:
            if not self._running:
                return self._frames_written
            self._running = False
            self._stop_event.set()
            grabber, writer = self._grab_thread, self._write_thread
            self._grab_thread = self._write_thread = None
        if grabber is not None:
            grabber.join()
        self._queue.put(None)
        if writer is not None:
            writer.join()
        logger.info("Capture stopped: %d frames, %d dropped", self._frames_written, self.dropped_frames)
        return self._frames_written

    def _take_index(self) -> int:
        self._next_index += 1
        return self._next_index

    def _grab(self) -> Any:
        try:
            # multi-monitor sources are reported as "screen:all"
            return ImageGrab.grab(all_screens=self._source_id == "screen:all")
        except Exception as exc:
            logger.warning("Screen grab failed: %s", exc)
            return None

    def _grab_loop(self) -> None:
        while not self._stop_event.wait(self.interval_s):
            if self._paused.is_set():
                continue
            image = self._grab()
            if image is None:
                continue
            try:
                self._queue.put_nowait((self._take_index(), image))
            except Full:
                self._next_index -= 1
                self.dropped_frames += 1
            self._adapt_quality()

    def _write_loop(self) -> None:
        while True:
            try:
                item = self._queue.get(timeout=1.0)
            except Empty:
                continue
            if item is None:
                return
            index, image = item
            self._save(index, image)

    def _save(self, index: int, image: Any) -> None:
        assert self._session_folder is not None
        scale, jpeg_quality = QUALITY_PRESETS[self._quality]
        try:
            if scale < 1.0:
                width, height = image.size
                image = image.resize((max(1, int(width * scale)), max(1, int(height * scale))))
            image.convert("RGB").save(self._session_folder / frame_name(index), "JPEG", quality=jpeg_quality)
            self._frames_written += 1
        except Exception as exc:
            logger.error("Failed to save frame %d: %s", index, exc)

    def _adapt_quality(self) -> None:
        now = time.monotonic()
        if now - self._last_quality_change < QUALITY_COOLDOWN_S:
            return
        pressure = self._queue.qsize() / max(1, self._queue.maxsize)
        level = QUALITY_LEVELS.index(self._quality)
        base = QUALITY_LEVELS.index(self._base_quality)
        if pressure >= HIGH_PRESSURE and level > 0:
            self._quality = QUALITY_LEVELS[level - 1]
        elif pressure <= LOW_PRESSURE and level < base:
            self._quality = QUALITY_LEVELS[level + 1]
        else:
            return
        self._last_quality_change = now
        logger.info("Capture quality adjusted to %s (queue pressure %.2f)", self._quality, pressure)
