from __future__ import annotations

from errors import HookUnavailable
from keyboard_tracker import KeyboardActivityTracker
from models import InputEvent, InputKind


class FakeClock:
    def __init__(self, now: int = 0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


class FakeHook:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.on_event = None
        self.stopped = False

    def start(self, on_event) -> None:  # noqa: ANN001
        if self.error is not None:
            raise self.error
        self.on_event = on_event

    def stop(self) -> None:
        self.stopped = True

    def emit(self, event: InputEvent) -> None:
        assert self.on_event is not None
        self.on_event(event)


def _typed(tracker: KeyboardActivityTracker, timestamps: list[int]) -> None:
    for ts in timestamps:
        tracker.record_keystroke(ts)


def test_calculate_wpm() -> None:
    assert KeyboardActivityTracker.calculate_wpm(10, 60_000) == 2
    assert KeyboardActivityTracker.calculate_wpm(50, 60_000) == 10
    assert KeyboardActivityTracker.calculate_wpm(10, 999) == 0


def test_short_burst_is_not_recorded() -> None:
    tracker = KeyboardActivityTracker(clock=FakeClock())
    tracker.start()

    _typed(tracker, [0, 500, 1000])
    assert tracker.current_burst_start == 0
    assert tracker.current_burst_keystrokes == 3

    tracker.record_keystroke(4000)

    assert tracker.bursts == []
    assert tracker.current_burst_start == 4000
    assert tracker.current_burst_keystrokes == 1


def test_burst_recorded_after_gap() -> None:
    tracker = KeyboardActivityTracker(clock=FakeClock())
    tracker.start()

    _typed(tracker, [1000, 1300, 1600, 1900, 2200, 2500])
    tracker.record_keystroke(10_000)

    bursts = tracker.bursts
    assert len(bursts) == 1
    assert bursts[0].start == 1000
    assert bursts[0].end == 2500
    assert bursts[0].duration == 1500
    assert bursts[0].keystrokes == 6
    assert bursts[0].wpm == 48


def test_stop_closes_burst_and_weights_average() -> None:
    clock = FakeClock(now=0)
    tracker = KeyboardActivityTracker(clock=clock)
    tracker.start()

    # 10 keystrokes over 3s (40 wpm) and 10 over 1.5s (80 wpm)
    _typed(tracker, [1000 + i * 333 for i in range(9)] + [4000])
    _typed(tracker, [10_000 + i * 166 for i in range(9)] + [11_500])
    clock.now = 12_000
    stats = tracker.stop()

    assert stats.typing_burst_count == 2
    assert [b.wpm for b in tracker.bursts] == [40, 80]
    assert stats.average_wpm == 53
    assert stats.estimated_keystrokes == 20
    assert stats.estimated_words_typed == 4
    assert stats.keyboard_active_time == 4
    assert tracker.current_burst_start is None


def test_shortcut_estimate_counts_quick_pairs() -> None:
    tracker = KeyboardActivityTracker(clock=FakeClock())
    tracker.start()

    _typed(tracker, [0, 50, 1000, 1010, 3000, 3200])

    assert tracker.get_stats().shortcut_estimate == 1


def test_peak_wpm_tracks_live_bursts() -> None:
    tracker = KeyboardActivityTracker(clock=FakeClock())
    tracker.start()

    # one keystroke every 200ms; live updates fire at 0, 2200 and 4400
    _typed(tracker, [i * 200 for i in range(30)])

    assert tracker.get_stats().peak_wpm == 65


def test_handle_event_counts_input_kinds() -> None:
    clock = FakeClock(now=5_000)
    seen: list[InputEvent] = []
    tracker = KeyboardActivityTracker(clock=clock, on_input=seen.append)
    tracker.start()

    tracker.handle_event(InputEvent(kind=InputKind.KEY_DOWN, timestamp_ms=5_000))
    tracker.handle_event(InputEvent(kind=InputKind.MOUSE_DOWN, timestamp_ms=5_100))
    tracker.handle_event(InputEvent(kind=InputKind.WHEEL, timestamp_ms=5_200))
    tracker.handle_event(InputEvent(kind=InputKind.MOUSE_MOVE, x=0, y=0))
    tracker.handle_event(InputEvent(kind=InputKind.MOUSE_MOVE, x=3, y=4))

    stats = tracker.get_stats()
    assert stats.estimated_keystrokes == 1
    assert stats.mouse_clicks == 1
    assert stats.scroll_events == 1
    assert stats.mouse_distance == 5
    assert stats.total_input_events == 3
    assert stats.last_activity_time == 5_200
    assert len(seen) == 5


def test_events_ignored_when_inactive() -> None:
    tracker = KeyboardActivityTracker(clock=FakeClock())

    tracker.handle_event(InputEvent(kind=InputKind.KEY_DOWN, timestamp_ms=1))

    assert tracker.get_stats().total_input_events == 0


def test_hook_failure_degrades_to_inactive() -> None:
    hook = FakeHook(error=HookUnavailable())
    tracker = KeyboardActivityTracker(hook=hook, clock=FakeClock())

    assert tracker.start() is False
    assert tracker.active is False
    assert tracker.stop().estimated_keystrokes == 0


def test_hook_events_flow_into_tracker() -> None:
    hook = FakeHook()
    updates: list[dict] = []
    tracker = KeyboardActivityTracker(hook=hook, on_update=updates.append, clock=FakeClock())

    assert tracker.start() is True
    hook.emit(InputEvent(kind=InputKind.KEY_DOWN, timestamp_ms=100))
    tracker.stop()

    assert hook.stopped is True
    assert updates[0]["estimatedKeystrokes"] == 1


def test_listener_errors_do_not_break_tracking() -> None:
    def boom(_: dict) -> None:
        raise RuntimeError("listener failed")

    tracker = KeyboardActivityTracker(on_update=boom, clock=FakeClock())
    tracker.start()
    tracker.record_keystroke(100)

    assert tracker.get_stats().estimated_keystrokes == 1


def test_activity_score() -> None:
    clock = FakeClock(now=0)
    tracker = KeyboardActivityTracker(clock=clock)
    tracker.start()
    assert tracker.get_activity_score() == 100

    # 20 minutes with almost no typing
    clock.now = 1_200_000
    _typed(tracker, [1000, 1100])
    assert tracker.get_activity_score() == 80
