"""Clipboard monitor that infers paste events from clipboard changes."""

from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from models import PasteEvent, now_ms

try:
    import pyperclip
except Exception:  # pragma: no cover
    pyperclip = None  # type: ignore

logger = logging.getLogger(__name__)

LARGE_PASTE_THRESHOLD = 100
MIN_RECORDED_LENGTH = 10
MAX_CLIPBOARD_LENGTH = 100_000
FINGERPRINT_CHARS = 1000


@dataclass
class ClipboardStats:
    total_events: int
    large_events: int
    total_size: int
    average_size: int


def _fingerprint(content: str) -> str:
    if not content:
        return ""
    digest = hashlib.sha1(content[:FINGERPRINT_CHARS].encode("utf-8", "replace")).hexdigest()
    return f"{digest}_{len(content)}"


class ClipboardMonitor:
    """Records size and time of clipboard changes, never the content."""

    def __init__(
        self,
        poll_interval_s: Optional[float] = 1.0,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._poll_interval_s = poll_interval_s
        self._clock = clock
        self._lock = threading.Lock()
        self._events: list[PasteEvent] = []
        self._last_fingerprint = ""
        self._active = False
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def active(self) -> bool:
        return self._active

    def start(self) -> None:
        with self._lock:
            if self._active:
                return
            self._active = True
            self._events = []
        self._last_fingerprint = _fingerprint(self._read_clipboard() or "")
        if pyperclip is None:
            logger.warning("pyperclip is not installed, clipboard polling disabled")
            return
        if self._poll_interval_s is None:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="clipboard-monitor", daemon=True)
        self._thread.start()
        logger.info("Clipboard monitoring started")

    def stop(self) -> list[PasteEvent]:
        with self._lock:
            if not self._active:
                return self.get_paste_events()
            self._active = False
        self._stop_event.set()
        thread = self._thread
        self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2.0)
        logger.info("Clipboard monitoring stopped, %d paste events", len(self._events))
        return self.get_paste_events()

    def check(self) -> None:
        if not self._active:
            return
        content = self._read_clipboard()
        if not content or len(content) > MAX_CLIPBOARD_LENGTH:
            return
        fingerprint = _fingerprint(content)
        if fingerprint == self._last_fingerprint:
            return
        self._last_fingerprint = fingerprint
        if len(content) > MIN_RECORDED_LENGTH:
            self._append(len(content))
            logger.debug("Potential paste detected: %d chars", len(content))

    def record_paste(self, approximate_size: int) -> None:
        if not self._active:
            return
        self._append(approximate_size)

    def update_last_paste_frame(self, frame_index: int) -> None:
        with self._lock:
            if self._events and self._events[-1].frame_index is None:
                self._events[-1].frame_index = frame_index

    def get_paste_events(self) -> list[PasteEvent]:
        with self._lock:
            return [PasteEvent(e.timestamp, e.approximate_size, e.frame_index) for e in self._events]

    def get_stats(self) -> ClipboardStats:
        with self._lock:
            total = len(self._events)
            large = sum(1 for e in self._events if e.approximate_size > LARGE_PASTE_THRESHOLD)
            size = sum(e.approximate_size for e in self._events)
        return ClipboardStats(
            total_events=total,
            large_events=large,
            total_size=size,
            average_size=round(size / total) if total else 0,
        )

    def _append(self, size: int) -> None:
        with self._lock:
            self._events.append(PasteEvent(timestamp=self._clock(), approximate_size=size))

    def _read_clipboard(self) -> Optional[str]:
        if pyperclip is None:
            return None
        try:
            return pyperclip.paste()
        except Exception as exc:
            logger.debug("Clipboard read failed: %s", exc)
            return None

    def _run(self) -> None:
        assert self._poll_interval_s is not None
        while not self._stop_event.wait(self._poll_interval_s):
            try:
                self.check()
            except Exception:
                logger.exception("Clipboard check failed")
