"""Keyboard and mouse activity tracking.

Counts keystrokes, clicks and scrolls reported by the global input hook,
groups keystrokes into typing bursts and estimates words per minute.
Only timing is recorded, never key identities.
"""

from __future__ import annotations

import logging
import math
import threading
from typing import Callable, Optional

from config import TrackerSettings
from interfaces import InputHook
from models import InputEvent, InputKind, KeyboardStats, TypingBurst, now_ms

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[dict], None]
InputCallback = Callable[[InputEvent], None]


class KeyboardActivityTracker:
    def __init__(
        self,
        hook: Optional[InputHook] = None,
        on_update: Optional[UpdateCallback] = None,
        on_input: Optional[InputCallback] = None,
        settings: Optional[TrackerSettings] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._hook = hook
        self._on_update = on_update
        self._on_input = on_input
        self._settings = settings or TrackerSettings()
        self._clock = clock
        self._lock = threading.RLock()
        self._active = False
        self.reset()

    @property
    def active(self) -> bool:
        return self._active

    @property
    def bursts(self) -> list[TypingBurst]:
        with self._lock:
            return list(self._bursts)

    @property
    def current_burst_start(self) -> Optional[int]:
        return self._current_burst_start

    @property
    def current_burst_keystrokes(self) -> int:
        return self._current_burst_keystrokes

    def set_update_listener(self, on_update: Optional[UpdateCallback]) -> None:
        self._on_update = on_update

    def set_input_listener(self, on_input: Optional[InputCallback]) -> None:
        self._on_input = on_input

    def reset(self) -> None:
        with self._lock:
            self._keystrokes = 0
            self._active_time_ms = 0
            self._last_keystroke_time: Optional[int] = None
            self._bursts: list[TypingBurst] = []
            self._current_burst_start: Optional[int] = None
            self._current_burst_keystrokes = 0
            self._words_typed = 0.0
            self._peak_wpm = 0
            self._average_wpm = 0
            self._mouse_clicks = 0
            self._mouse_distance = 0.0
            self._last_pointer: Optional[tuple[float, float]] = None
            self._scroll_events = 0
            self._total_input_events = 0
            self._shortcut_estimate = 0
            self._start_time: Optional[int] = None
            self._last_activity_time: Optional[int] = None
            self._last_live_update: Optional[int] = None

    def start(self) -> bool:
        """Begin tracking. Returns False when the hook could not be started.

        A failed hook leaves the tracker inactive; callers keep working
        without keyboard stats.
        """
        with self._lock:
            if self._active:
                return True
            self.reset()
            self._start_time = self._clock()
            self._active = True
        if self._hook is None:
            return True
        try:
            self._hook.start(self.handle_event)
        except Exception as exc:
            logger.warning("Keyboard tracking disabled: %s", exc)
            with self._lock:
                self._active = False
            return False
        logger.info("Keyboard tracking started")
        return True

    def stop(self) -> KeyboardStats:
        with self._lock:
            if not self._active:
                return self.get_stats()
            self._active = False
        if self._hook is not None:
            try:
                self._hook.stop()
            except Exception as exc:
                logger.warning("Error stopping input hook: %s", exc)
        with self._lock:
            self._close_current_burst()
            self._calculate_final_wpm()
            stats = self.get_stats()
        logger.info(
            "Keyboard tracking stopped: %d keystrokes, %d bursts",
            stats.estimated_keystrokes,
            stats.typing_burst_count,
        )
        return stats

    def handle_event(self, event: InputEvent) -> None:
        if not self._active:
            return
        timestamp = event.timestamp_ms or self._clock()
        with self._lock:
            if event.kind == InputKind.MOUSE_MOVE:
                self._track_pointer(event)
            else:
                self._total_input_events += 1
                self._last_activity_time = timestamp
                if event.kind == InputKind.KEY_DOWN:
                    self.record_keystroke(timestamp)
                elif event.kind == InputKind.MOUSE_DOWN:
                    self._mouse_clicks += 1
                elif event.kind == InputKind.WHEEL:
                    self._scroll_events += 1
        if self._on_input is not None:
            self._on_input(event)

    def record_keystroke(self, timestamp: int) -> None:
        s = self._settings
        with self._lock:
            if self._last_keystroke_time is None:
                gap = s.burst_gap_ms + 1
            else:
                gap = timestamp - self._last_keystroke_time

            self._keystrokes += 1
            self._active_time_ms += s.keystroke_active_ms

            if gap <= s.burst_gap_ms:
                if self._current_burst_start is None:
                    self._current_burst_start = self._last_keystroke_time
                self._current_burst_keystrokes += 1
            else:
                self._close_current_burst()
                self._current_burst_start = timestamp
                self._current_burst_keystrokes = 1

            # chorded shortcuts land in quick succession
            if s.shortcut_gap_min_ms < gap < s.shortcut_gap_max_ms:
                self._shortcut_estimate += 1

            self._last_keystroke_time = timestamp

            if (
                self._last_live_update is None
                or timestamp - self._last_live_update > s.live_update_interval_ms
            ):
                self._update_live_stats(timestamp)
                self._last_live_update = timestamp

    @staticmethod
    def calculate_wpm(keystrokes: int, duration_ms: float, chars_per_word: int = 5, min_duration_ms: int = 1000) -> int:
        if duration_ms < min_duration_ms:
            return 0
        minutes = duration_ms / 60000
        words = keystrokes / chars_per_word
        return _round_half_up(words / minutes)

    def get_stats(self) -> KeyboardStats:
        with self._lock:
            now = self._clock()
            session_duration = (now - self._start_time) / 1000 if self._start_time else 0
            intensity = 0.0
            if self._active_time_ms > 0:
                intensity = _round_half_up(self._keystrokes / (self._active_time_ms / 60000) * 10) / 10
            return KeyboardStats(
                estimated_keystrokes=self._keystrokes,
                keyboard_active_time=_round_half_up(self._active_time_ms / 1000),
                estimated_words_typed=_round_half_up(self._words_typed),
                typing_burst_count=len(self._bursts),
                average_wpm=self._average_wpm,
                peak_wpm=self._peak_wpm,
                shortcut_estimate=self._shortcut_estimate,
                mouse_clicks=self._mouse_clicks,
                mouse_distance=_round_half_up(self._mouse_distance),
                scroll_events=self._scroll_events,
                total_input_events=self._total_input_events,
                session_duration=_round_half_up(session_duration),
                last_activity_time=self._last_activity_time,
                typing_intensity=intensity,
            )

    def get_activity_score(self) -> int:
        stats = self.get_stats()
        score = 100

        if stats.session_duration > 600:
            expected_min_keystrokes = stats.session_duration * 0.5
            if stats.estimated_keystrokes < expected_min_keystrokes * 0.3:
                score -= 20

        if stats.typing_burst_count > 0:
            score += min(10, stats.typing_burst_count)

        if stats.peak_wpm > self._settings.peak_wpm_cap:
            score -= 15

        return max(0, min(100, score))

    def _wpm(self, keystrokes: int, duration_ms: float) -> int:
        s = self._settings
        return self.calculate_wpm(keystrokes, duration_ms, s.chars_per_word, s.min_wpm_duration_ms)

    def _close_current_burst(self) -> None:
        s = self._settings
        start = self._current_burst_start
        if start is not None and self._current_burst_keystrokes >= s.min_burst_keystrokes:
            end = self._last_keystroke_time if self._last_keystroke_time is not None else start
            duration = end - start
            if duration > 0:
                self._bursts.append(
                    TypingBurst(
                        start=start,
                        end=end,
                        duration=duration,
                        keystrokes=self._current_burst_keystrokes,
                        wpm=self._wpm(self._current_burst_keystrokes, duration),
                    )
                )
                self._words_typed += self._current_burst_keystrokes / s.chars_per_word
        self._current_burst_start = None
        self._current_burst_keystrokes = 0

    def _calculate_final_wpm(self) -> None:
        total_weighted = 0.0
        total_duration = 0
        for burst in self._bursts:
            total_weighted += burst.wpm * burst.duration
            total_duration += burst.duration
        self._average_wpm = _round_half_up(total_weighted / total_duration) if total_duration > 0 else 0
        self._words_typed = self._keystrokes / self._settings.chars_per_word

    def _update_live_stats(self, now: int) -> None:
        s = self._settings
        start = self._current_burst_start
        if start is not None and self._current_burst_keystrokes > s.min_burst_keystrokes:
            duration = now - start
            if duration > s.live_wpm_min_duration_ms:
                wpm = self._wpm(self._current_burst_keystrokes, duration)
                if self._peak_wpm < wpm < s.peak_wpm_cap:
                    self._peak_wpm = wpm
        self._notify(
            {
                "estimatedKeystrokes": self._keystrokes,
                "currentBurstKeystrokes": self._current_burst_keystrokes,
                "peakWPM": self._peak_wpm,
                "mouseClicks": self._mouse_clicks,
                "scrollEvents": self._scroll_events,
            }
        )

    def _track_pointer(self, event: InputEvent) -> None:
        if event.x is None or event.y is None:
            return
        if self._last_pointer is not None:
            self._mouse_distance += math.hypot(event.x - self._last_pointer[0], event.y - self._last_pointer[1])
        self._last_pointer = (event.x, event.y)

    def _notify(self, payload: dict) -> None:
        if self._on_update is None:
            return
        try:
            self._on_update(payload)
        except Exception:
            logger.exception("Activity update listener failed")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))
