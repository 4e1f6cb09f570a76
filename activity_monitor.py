"""Idle detection and active-time accounting for a recording session."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from models import ActivityStats, IdlePeriod, InputEvent, InputKind, now_ms

logger = logging.getLogger(__name__)

MIN_MOUSE_MOVEMENT = 5


class ActivityMonitor:
    """Splits session time into active time and idle periods.

    Input events refresh the last-activity time. ``check`` runs on a fixed
    interval: after ``idle_threshold_s`` without input an idle period is
    opened at the last input, and it is closed by the first check that sees
    new input. Paused time is recorded as idle.

    ``pointer`` is an optional position source polled on every check, so
    idle detection keeps working without the input listeners. When neither
    listeners nor a pointer source are available no idle periods are opened.
    """

    def __init__(
        self,
        idle_threshold_s: float = 30.0,
        check_interval_s: float = 1.0,
        run_timer: bool = True,
        clock: Callable[[], int] = now_ms,
        pointer: Optional[Callable[[], Optional[tuple[float, float]]]] = None,
    ) -> None:
        self._idle_threshold_ms = int(idle_threshold_s * 1000)
        self._check_interval_s = check_interval_s
        self._run_timer = run_timer
        self._clock = clock
        self._pointer = pointer
        self._input_available = True
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._active = False
        self.reset()

    @property
    def active(self) -> bool:
        return self._active

    def reset(self) -> None:
        self._paused = False
        self._start_time: Optional[int] = None
        self._last_input_time: Optional[int] = None
        self._last_active_time: Optional[int] = None
        self._active_duration_s = 0.0
        self._idle_periods: list[IdlePeriod] = []
        self._current_idle_start: Optional[int] = None
        self._last_pointer: Optional[tuple[float, float]] = None

    def start(self) -> None:
        with self._lock:
            if self._active:
                return
            self.reset()
            now = self._clock()
            self._start_time = now
            self._last_input_time = now
            self._last_active_time = now
            self._active = True
        if self._run_timer:
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._run, name="activity-monitor", daemon=True)
            self._thread.start()
        logger.info("Activity monitoring started")

    def stop(self) -> ActivityStats:
        with self._lock:
            if not self._active:
                return self._build_stats(self._clock())
            self._active = False
            now = self._clock()
            self._close_idle_period(now)
            stats = self._build_stats(now)
        self._stop_event.set()
        thread = self._thread
        self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2.0)
        logger.info("Activity monitoring stopped, %d idle periods", stats.idle_count)
        return stats

    def pause(self) -> None:
        with self._lock:
            self._paused = True
            if self._current_idle_start is None:
                self._current_idle_start = self._clock()

    def resume(self) -> None:
        with self._lock:
            now = self._clock()
            self._paused = False
            self._close_idle_period(now)
            self._last_active_time = now
            self._last_input_time = now

    def set_input_available(self, available: bool) -> None:
        with self._lock:
            self._input_available = available
        if not available:
            logger.warning("Input listeners unavailable, idle detection %s",
                           "uses pointer polling" if self._pointer is not None else "disabled")

    def note_input(self, event: InputEvent) -> None:
        if not self._active:
            return
        with self._lock:
            if event.kind == InputKind.MOUSE_MOVE:
                if not self._pointer_moved(event.x, event.y):
                    return
            self._last_input_time = event.timestamp_ms or self._clock()

    def check(self) -> None:
        position = self._poll_pointer() if self._active and not self._paused else None
        with self._lock:
            if not self._active or self._paused:
                return
            now = self._clock()
            if position is not None and self._pointer_moved(*position):
                self._last_input_time = now
            if not self._input_available and self._pointer is None:
                self._last_input_time = now
            last_input = self._last_input_time if self._last_input_time is not None else now
            if now - last_input >= self._idle_threshold_ms:
                if self._current_idle_start is None:
                    self._current_idle_start = last_input
                    logger.debug("Idle period started at %d", last_input)
                return

            if self._current_idle_start is not None:
                self._close_idle_period(now)
            if self._last_active_time is not None and now - self._last_active_time < self._idle_threshold_ms:
                self._active_duration_s += self._check_interval_s
            self._last_active_time = now

    def is_idle(self) -> bool:
        return self._current_idle_start is not None

    def get_stats(self) -> ActivityStats:
        with self._lock:
            return self._build_stats(self._clock())

    def _close_idle_period(self, now: int) -> None:
        start = self._current_idle_start
        if start is None:
            return
        self._idle_periods.append(IdlePeriod(start=start, end=now, duration=(now - start) / 1000))
        self._current_idle_start = None

    def _build_stats(self, now: int) -> ActivityStats:
        total = (now - self._start_time) / 1000 if self._start_time is not None else 0.0
        active = self._active_duration_s
        if self._current_idle_start is None and self._last_active_time is not None and not self._paused:
            since_check = (now - self._last_active_time) / 1000
            if since_check * 1000 < self._idle_threshold_ms:
                active += since_check
        active = max(0.0, min(active, total))
        return ActivityStats(
            total_duration=round(total),
            active_duration=round(active),
            idle_periods=[IdlePeriod(p.start, p.end, round(p.duration)) for p in self._idle_periods],
            idle_count=len(self._idle_periods),
            is_currently_idle=self._current_idle_start is not None,
            is_paused=self._paused,
        )

    def _poll_pointer(self) -> Optional[tuple[float, float]]:
        if self._pointer is None:
            return None
        try:
            return self._pointer()
        except Exception:
            logger.exception("Pointer polling failed")
            return None

    def _pointer_moved(self, x: Optional[float], y: Optional[float]) -> bool:
        if x is None or y is None:
            return False
        previous = self._last_pointer
        if previous is None:
            self._last_pointer = (x, y)
            return False
        moved = abs(x - previous[0]) > MIN_MOUSE_MOVEMENT or abs(y - previous[1]) > MIN_MOUSE_MOVEMENT
        if moved:
            self._last_pointer = (x, y)
        return moved

    def _run(self) -> None:
        while not self._stop_event.wait(self._check_interval_s):
            try:
                self.check()
            except Exception:
                logger.exception("Activity check failed")
