"""Global keyboard/mouse input hook based on pynput."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from errors import HookUnavailable
from models import InputEvent, InputKind, now_ms

try:
    from pynput import keyboard, mouse
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore
    mouse = None  # type: ignore

logger = logging.getLogger(__name__)


class PynputInputHook:
    """Forwards keydown, mousedown, wheel and move events to one callback.

    Only event kinds and pointer positions leave the hook; key identities
    are never reported.
    """

    def __init__(self, track_mouse_moves: bool = True) -> None:
        self._track_mouse_moves = track_mouse_moves
        self._keyboard_listener: Optional[object] = None
        self._mouse_listener: Optional[object] = None
        self._on_event: Optional[Callable[[InputEvent], None]] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._keyboard_listener is not None

    def start(self, on_event: Callable[[InputEvent], None]) -> None:
        if keyboard is None or mouse is None:
            raise HookUnavailable("pynput is not installed")
        with self._lock:
            if self._keyboard_listener is not None:
                return
            self._on_event = on_event
            try:
                self._keyboard_listener = keyboard.Listener(on_press=self._on_press)
                self._keyboard_listener.start()
                self._mouse_listener = mouse.Listener(
                    on_click=self._on_click,
                    on_scroll=self._on_scroll,
                    on_move=self._on_move if self._track_mouse_moves else None,
                )
                self._mouse_listener.start()
            except Exception as exc:
                self._stop_listeners()
                raise HookUnavailable(f"input listener failed to start: {exc}") from exc
        logger.info("Global input hook started")

    def stop(self) -> None:
        with self._lock:
            if self._keyboard_listener is None:
                return
            self._stop_listeners()
        logger.info("Global input hook stopped")

    def _stop_listeners(self) -> None:
        for listener in (self._keyboard_listener, self._mouse_listener):
            if listener is None:
                continue
            try:
                listener.stop()
            except Exception as exc:
                logger.warning("Error stopping input listener: %s", exc)
        self._keyboard_listener = None
        self._mouse_listener = None
        self._on_event = None

    def _emit(self, event: InputEvent) -> None:
        callback = self._on_event
        if callback is None:
            return
        try:
            callback(event)
        except Exception:
            # a raising consumer would kill the listener thread
            logger.exception("Input event consumer failed")

    def _on_press(self, key: object) -> None:
        self._emit(InputEvent(kind=InputKind.KEY_DOWN, timestamp_ms=now_ms()))

    def _on_click(self, x: float, y: float, button: object, pressed: bool) -> None:
        if pressed:
            self._emit(InputEvent(kind=InputKind.MOUSE_DOWN, timestamp_ms=now_ms(), x=x, y=y))

    def _on_scroll(self, x: float, y: float, dx: float, dy: float) -> None:
        self._emit(InputEvent(kind=InputKind.WHEEL, timestamp_ms=now_ms(), x=x, y=y))

    def _on_move(self, x: float, y: float) -> None:
        self._emit(InputEvent(kind=InputKind.MOUSE_MOVE, timestamp_ms=now_ms(), x=x, y=y))


class PynputPointer:
    """Reads the current pointer position; returns None when unavailable.

    Used for idle detection independently of the global listeners.
    """

    def __init__(self) -> None:
        self._controller: Optional[object] = None
        self._disabled = mouse is None

    def __call__(self) -> Optional[tuple[float, float]]:
        if self._disabled:
            return None
        try:
            if self._controller is None:
                self._controller = mouse.Controller()
            x, y = self._controller.position
        except Exception as exc:
            logger.warning("Pointer polling disabled: %s", exc)
            self._disabled = True
            return None
        return float(x), float(y)
