from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from errors import HookUnavailable
from input_hook import PynputInputHook, PynputPointer
from models import InputEvent, InputKind


def _patched_pynput():  # noqa: ANN202
    keyboard = MagicMock()
    mouse = MagicMock()
    return patch.multiple("input_hook", keyboard=keyboard, mouse=mouse), keyboard, mouse


def test_events_are_forwarded() -> None:
    patcher, keyboard, mouse = _patched_pynput()
    events: list[InputEvent] = []
    with patcher:
        hook = PynputInputHook()
        hook.start(events.append)

        on_press = keyboard.Listener.call_args.kwargs["on_press"]
        mouse_kwargs = mouse.Listener.call_args.kwargs
        on_press("a")
        mouse_kwargs["on_click"](10, 20, "left", True)
        mouse_kwargs["on_click"](10, 20, "left", False)
        mouse_kwargs["on_scroll"](10, 20, 0, -1)
        mouse_kwargs["on_move"](15, 25)

    assert [e.kind for e in events] == [
        InputKind.KEY_DOWN,
        InputKind.MOUSE_DOWN,
        InputKind.WHEEL,
        InputKind.MOUSE_MOVE,
    ]
    assert (events[1].x, events[1].y) == (10, 20)
    assert all(e.timestamp_ms > 0 for e in events)


def test_start_is_idempotent_and_stop_releases_listeners() -> None:
    patcher, keyboard, mouse = _patched_pynput()
    with patcher:
        hook = PynputInputHook()
        hook.start(lambda e: None)
        hook.start(lambda e: None)
        assert hook.running is True
        assert keyboard.Listener.call_count == 1

        hook.stop()
        hook.stop()

    assert hook.running is False
    keyboard.Listener.return_value.stop.assert_called_once()
    mouse.Listener.return_value.stop.assert_called_once()


def test_mouse_moves_can_be_disabled() -> None:
    patcher, _, mouse = _patched_pynput()
    with patcher:
        PynputInputHook(track_mouse_moves=False).start(lambda e: None)

    assert mouse.Listener.call_args.kwargs["on_move"] is None


def test_listener_failure_raises_hook_unavailable() -> None:
    patcher, keyboard, _ = _patched_pynput()
    keyboard.Listener.return_value.start.side_effect = OSError("no display")
    with patcher:
        hook = PynputInputHook()
        with pytest.raises(HookUnavailable):
            hook.start(lambda e: None)

    assert hook.running is False


def test_missing_pynput_raises_hook_unavailable() -> None:
    with patch.multiple("input_hook", keyboard=None, mouse=None):
        with pytest.raises(HookUnavailable):
            PynputInputHook().start(lambda e: None)


def test_consumer_errors_do_not_escape() -> None:
    patcher, keyboard, _ = _patched_pynput()

    def boom(event: InputEvent) -> None:
        raise RuntimeError("consumer failed")

    with patcher:
        PynputInputHook().start(boom)
        keyboard.Listener.call_args.kwargs["on_press"]("a")


def test_pointer_reads_controller_position() -> None:
    mouse = MagicMock()
    mouse.Controller.return_value.position = (120, 45)
    with patch("input_hook.mouse", mouse):
        pointer = PynputPointer()
        assert pointer() == (120.0, 45.0)
        assert pointer() == (120.0, 45.0)

    mouse.Controller.assert_called_once()


def test_pointer_disables_itself_on_failure() -> None:
    mouse = MagicMock()
    mouse.Controller.side_effect = OSError("no display")
    with patch("input_hook.mouse", mouse):
        pointer = PynputPointer()
        assert pointer() is None
        assert pointer() is None

    mouse.Controller.assert_called_once()


def test_pointer_without_pynput() -> None:
    with patch("input_hook.mouse", None):
        assert PynputPointer()() is None
