"""Session metrics collection with disk persistence.

The aggregator keeps the latest keyboard, clipboard and activity figures for
the running session and writes them to ``metrics.json`` in the session
folder, so a crash loses at most one flush interval of data.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Callable, Iterable, Optional

from models import ActivityStats, KeyboardStats, PasteEvent, VerificationOutput, now_ms

logger = logging.getLogger(__name__)

METRICS_FILE = "metrics.json"
METRICS_VERSION = 1

SUSPICIOUS_WPM_THRESHOLD = 200
EXCESSIVE_PASTE_RATIO = 0.3
NATURAL_TYPING_MIN_BURSTS = 3
LARGE_PASTE_THRESHOLD = 100


class MetricsAggregator:
    def __init__(self, flush_interval_s: float = 30.0, clock: Callable[[], int] = now_ms) -> None:
        self._flush_interval_ms = int(flush_interval_s * 1000)
        self._clock = clock
        self._session_folder: Optional[Path] = None
        self._session_id = ""
        self._start_time: Optional[int] = None
        self._end_time: Optional[int] = None
        self._last_flush: Optional[int] = None
        self._active = False
        self._reset_inputs()

    @property
    def active(self) -> bool:
        return self._active

    @property
    def session_folder(self) -> Optional[Path]:
        return self._session_folder

    def _reset_inputs(self) -> None:
        self._keyboard = KeyboardStats()
        self._paste_events: list[PasteEvent] = []
        self._activity: Optional[ActivityStats] = None
        self._verification: Optional[VerificationOutput] = None

    def start(self, session_folder: Path, session_id: str) -> None:
        self._session_folder = Path(session_folder)
        self._session_id = session_id
        self._start_time = self._clock()
        self._end_time = None
        self._last_flush = self._start_time
        self._active = True
        self._reset_inputs()
        logger.info("Metrics collection started for %s", session_id)

    def stop(self, verification: Optional[VerificationOutput] = None) -> Optional[dict]:
        if not self._active:
            return None
        self._active = False
        self._end_time = self._clock()
        self._verification = verification
        return self.flush()

    def update_keyboard(self, stats: KeyboardStats) -> None:
        if self._active:
            self._keyboard = stats

    def update_clipboard(self, events: Iterable[PasteEvent]) -> None:
        if self._active:
            self._paste_events = list(events)

    def update_activity(self, stats: ActivityStats) -> None:
        if self._active:
            self._activity = stats

    def maybe_flush(self) -> Optional[dict]:
        now = self._clock()
        if not self._active or self._last_flush is None or now - self._last_flush < self._flush_interval_ms:
            return None
        return self.flush()

    def flush(self) -> Optional[dict]:
        if self._session_folder is None:
            return None
        metrics = self.build()
        path = self._session_folder / METRICS_FILE
        try:
            path.write_text(json.dumps(metrics, indent=2), encoding="utf-8")
        except OSError as exc:
            logger.error("Failed to write metrics file %s: %s", path, exc)
            return None
        self._last_flush = metrics["lastUpdated"]
        logger.debug("Metrics flushed to %s", path)
        return metrics

    def build(self) -> dict:
        now = self._clock()
        end = self._end_time or now
        total_duration = (end - self._start_time) / 1000 if self._start_time else 0.0
        keyboard = self._keyboard
        pasted = sum(e.approximate_size for e in self._paste_events)
        metrics = {
            "version": METRICS_VERSION,
            "sessionId": self._session_id,
            "startTime": self._start_time or 0,
            "endTime": self._end_time,
            "lastUpdated": now,
            "input": {
                "keyboard": keyboard.keyboard_dict(),
                "mouse": keyboard.mouse_dict(),
                "clipboard": {
                    "pasteEventCount": len(self._paste_events),
                    "totalPastedCharacters": pasted,
                    "largePasteCount": sum(
                        1 for e in self._paste_events if e.approximate_size > LARGE_PASTE_THRESHOLD
                    ),
                    "pasteTimestamps": [e.timestamp for e in self._paste_events],
                    "pasteEvents": [e.to_dict() for e in self._paste_events],
                },
                "totalInputEvents": keyboard.total_input_events,
                "sessionDuration": round(total_duration),
                "lastActivityTime": keyboard.last_activity_time,
            },
            "activity": self._build_activity(total_duration, pasted),
        }
        if self._verification is not None:
            metrics["verification"] = self._verification.to_dict()
        return metrics

    def _build_activity(self, total_duration: float, pasted_chars: int) -> dict:
        keyboard = self._keyboard
        if self._activity is not None:
            active_duration = float(self._activity.active_duration)
            idle_periods = [p.to_dict() for p in self._activity.idle_periods]
        else:
            active_duration = float(keyboard.keyboard_active_time)
            idle_periods = []
        active_duration = min(active_duration, total_duration)
        idle_duration = total_duration - active_duration
        ratio = active_duration / total_duration if total_duration > 0 else 0.0

        active_minutes = active_duration / 60

        def per_minute(count: int) -> int:
            return round(count / active_minutes) if active_minutes > 0 else 0

        natural_typing = keyboard.typing_burst_count >= NATURAL_TYPING_MIN_BURSTS
        suspicious_wpm = keyboard.peak_wpm > SUSPICIOUS_WPM_THRESHOLD
        total_chars = keyboard.estimated_keystrokes + pasted_chars
        excessive_pasting = total_chars > 100 and pasted_chars / total_chars > EXCESSIVE_PASTE_RATIO

        score = 100
        if ratio < 0.2 and total_duration > 600:
            score -= 20
        if suspicious_wpm:
            score -= 15
        if excessive_pasting:
            score -= 20
        if natural_typing:
            score += 10

        return {
            "totalDuration": round(total_duration),
            "activeDuration": round(active_duration),
            "idleDuration": round(idle_duration),
            "activityRatio": round(ratio, 2),
            "idlePeriods": idle_periods,
            "keystrokesPerMinute": per_minute(keyboard.estimated_keystrokes),
            "clicksPerMinute": per_minute(keyboard.mouse_clicks),
            "inputEventsPerMinute": per_minute(keyboard.total_input_events),
            "hasNaturalTypingPattern": natural_typing,
            "hasSuspiciousWPM": suspicious_wpm,
            "hasExcessivePasting": excessive_pasting,
            "activityScore": max(0, min(100, score)),
        }

    @staticmethod
    def load_from_disk(session_folder: Path) -> Optional[dict]:
        path = Path(session_folder) / METRICS_FILE
        try:
            metrics = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.warning("Failed to load metrics file %s: %s", path, exc)
            return None
        if not isinstance(metrics, dict):
            logger.warning("Ignoring malformed metrics file %s", path)
            return None
        if metrics.get("version") != METRICS_VERSION:
            logger.warning("Metrics version mismatch in %s: %r", path, metrics.get("version"))
        return metrics
