from __future__ import annotations

from types import SimpleNamespace

import pytest

import clipboard_monitor
from clipboard_monitor import ClipboardMonitor


class FakeClipboard:
    def __init__(self, content: str = "") -> None:
        self.content = content
        self.error: Exception | None = None

    def paste(self) -> str:
        if self.error is not None:
            raise self.error
        return self.content


@pytest.fixture
def clipboard(monkeypatch: pytest.MonkeyPatch) -> FakeClipboard:
    fake = FakeClipboard("already there")
    monkeypatch.setattr(clipboard_monitor, "pyperclip", SimpleNamespace(paste=fake.paste))
    return fake


def _monitor() -> ClipboardMonitor:
    return ClipboardMonitor(poll_interval_s=None, clock=lambda: 42)


def test_changed_content_records_paste(clipboard: FakeClipboard) -> None:
    monitor = _monitor()
    monitor.start()

    monitor.check()
    assert monitor.get_paste_events() == []

    clipboard.content = "x" * 1200
    monitor.check()
    monitor.check()

    events = monitor.get_paste_events()
    assert len(events) == 1
    assert events[0].approximate_size == 1200
    assert events[0].timestamp == 42


def test_short_and_huge_content_is_ignored(clipboard: FakeClipboard) -> None:
    monitor = _monitor()
    monitor.start()

    clipboard.content = "short"
    monitor.check()
    clipboard.content = "y" * 100_001
    monitor.check()

    assert monitor.get_paste_events() == []


def test_same_prefix_different_length_is_new_content(clipboard: FakeClipboard) -> None:
    monitor = _monitor()
    monitor.start()

    clipboard.content = "a" * 1500
    monitor.check()
    clipboard.content = "a" * 1600
    monitor.check()

    assert [e.approximate_size for e in monitor.get_paste_events()] == [1500, 1600]


def test_read_errors_are_swallowed(clipboard: FakeClipboard) -> None:
    monitor = _monitor()
    monitor.start()

    clipboard.error = RuntimeError("no clipboard")
    monitor.check()

    assert monitor.get_paste_events() == []


def test_record_paste_only_while_active(clipboard: FakeClipboard) -> None:
    monitor = _monitor()
    monitor.record_paste(500)
    assert monitor.get_paste_events() == []

    monitor.start()
    monitor.record_paste(500)
    monitor.record_paste(50)
    monitor.update_last_paste_frame(17)
    events = monitor.stop()
    monitor.record_paste(900)

    assert [e.approximate_size for e in events] == [500, 50]
    assert events[-1].frame_index == 17
    assert len(monitor.get_paste_events()) == 2


def test_stats(clipboard: FakeClipboard) -> None:
    monitor = _monitor()
    monitor.start()
    for size in (20, 150, 400):
        monitor.record_paste(size)

    stats = monitor.get_stats()

    assert stats.total_events == 3
    assert stats.large_events == 2
    assert stats.total_size == 570
    assert stats.average_size == 190


def test_missing_pyperclip_disables_polling(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(clipboard_monitor, "pyperclip", None)
    monitor = ClipboardMonitor(poll_interval_s=0.01)

    monitor.start()
    monitor.check()

    assert monitor.active is True
    assert monitor.stop() == []
