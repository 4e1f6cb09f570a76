from __future__ import annotations

import time
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from PIL import Image

from capture import ScreenCaptureEngine, frame_name
from errors import StartFailure


def _grabber(image: Image.Image | None = None) -> MagicMock:
    grab = MagicMock()
    grab.grab.return_value = image if image is not None else Image.new("RGB", (80, 60), color=(200, 0, 0))
    return grab


def test_frame_name() -> None:
    assert frame_name(1) == "frame_000001.jpg"
    assert frame_name(123456) == "frame_123456.jpg"


def test_start_saves_first_frame_and_stop_returns_count(tmp_path: Path) -> None:
    grab = _grabber()
    with patch("capture.ImageGrab", grab):
        engine = ScreenCaptureEngine(interval_s=60)
        engine.start(tmp_path / "session", "screen:0")
        total = engine.stop()

    assert total == 1
    assert (tmp_path / "session" / "frame_000001.jpg").stat().st_size > 0
    grab.grab.assert_called_with(all_screens=False)
    assert engine.stop() == 1


def test_all_screens_source(tmp_path: Path) -> None:
    grab = _grabber()
    with patch("capture.ImageGrab", grab):
        engine = ScreenCaptureEngine(interval_s=60)
        engine.start(tmp_path, "screen:all")
        engine.stop()

    grab.grab.assert_called_with(all_screens=True)


def test_start_fails_when_grab_never_succeeds(tmp_path: Path) -> None:
    grab = MagicMock()
    grab.grab.side_effect = OSError("no display")
    with patch("capture.ImageGrab", grab), patch("capture.time.sleep"):
        engine = ScreenCaptureEngine()
        with pytest.raises(StartFailure):
            engine.start(tmp_path, "screen:0")

    assert grab.grab.call_count == 3
    assert engine.frame_count == 0


def test_start_requires_source(tmp_path: Path) -> None:
    with patch("capture.ImageGrab", _grabber()):
        with pytest.raises(StartFailure):
            ScreenCaptureEngine().start(tmp_path, "")


def test_start_requires_pillow(tmp_path: Path) -> None:
    with patch("capture.ImageGrab", None):
        with pytest.raises(StartFailure):
            ScreenCaptureEngine().start(tmp_path, "screen:0")


def test_grabber_writes_frames_until_stopped(tmp_path: Path) -> None:
    with patch("capture.ImageGrab", _grabber()):
        engine = ScreenCaptureEngine(interval_s=0.01)
        engine.start(tmp_path, "screen:0")
        engine.pause()
        engine.resume("screen:0")
        deadline = 200
        while engine.frame_count < 3 and deadline:
            deadline -= 1
            time.sleep(0.01)
        total = engine.stop()

    assert total >= 3
    assert len(list(tmp_path.glob("frame_*.jpg"))) == total


def test_quality_adapts_to_queue_pressure() -> None:
    engine = ScreenCaptureEngine(queue_maxsize=10)
    for index in range(7):
        engine._queue.put_nowait((index, None))

    engine._adapt_quality()
    assert engine.quality == "medium"

    # cooldown holds the preset
    engine._adapt_quality()
    assert engine.quality == "medium"

    while not engine._queue.empty():
        engine._queue.get_nowait()
    engine._last_quality_change -= 10
    engine._adapt_quality()
    assert engine.quality == "high"
