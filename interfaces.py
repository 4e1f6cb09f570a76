"""Protocol interfaces used by RecordingSessionManager."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Protocol

from models import FrameValidation, InputEvent, RecoverableSession, SessionState


class InputHook(Protocol):
    def start(self, on_event: Callable[[InputEvent], None]) -> None: ...

    def stop(self) -> None: ...


class CaptureEngine(Protocol):
    @property
    def frame_count(self) -> int: ...

    @property
    def queue_size(self) -> int: ...

    @property
    def dropped_frames(self) -> int: ...

    @property
    def quality(self) -> str: ...

    def start(self, session_folder: Path, source_id: str) -> None: ...

    def pause(self) -> None: ...

    def resume(self, source_id: str) -> None: ...

    def stop(self) -> int: ...


class FrameValidator(Protocol):
    def validate(self, session_folder: Path) -> FrameValidation: ...


class KeyValueStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class SessionObserver(Protocol):
    def on_state_changed(self, from_state: SessionState, to_state: SessionState) -> None: ...

    def on_activity_update(self, stats: dict) -> None: ...

    def on_heartbeat(self, snapshot: RecoverableSession) -> None: ...
