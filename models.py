"""Core data models for the app."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from errors import RecoverySnapshotCorrupt


def now_ms() -> int:
    return int(time.time() * 1000)


class SessionState(str, Enum):
    IDLE = "IDLE"
    RECORDING = "RECORDING"
    PAUSED = "PAUSED"
    STOPPING = "STOPPING"
    STOPPED = "STOPPED"


class InputKind(str, Enum):
    KEY_DOWN = "keydown"
    MOUSE_DOWN = "mousedown"
    WHEEL = "wheel"
    MOUSE_MOVE = "mousemove"


class PasteTier(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    VERY_LARGE = "very_large"


@dataclass
class InputEvent:
    kind: InputKind
    timestamp_ms: int = 0
    x: Optional[float] = None
    y: Optional[float] = None


@dataclass
class RecordingState:
    status: SessionState = SessionState.IDLE
    session_id: Optional[str] = None
    session_folder: Optional[str] = None
    source_id: Optional[str] = None
    start_time: Optional[int] = None
    frame_count: int = 0
    queue_size: int = 0
    dropped_frames: int = 0
    adaptive_quality: str = "high"


@dataclass
class RecoverableSession:
    session_folder: str
    source_id: str
    start_time: int
    frame_count: int
    is_active: bool
    last_heartbeat: int

    def to_dict(self) -> dict:
        return {
            "sessionFolder": self.session_folder,
            "sourceId": self.source_id,
            "startTime": self.start_time,
            "frameCount": self.frame_count,
            "isActive": self.is_active,
            "lastHeartbeat": self.last_heartbeat,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "RecoverableSession":
        if not isinstance(data, dict):
            raise RecoverySnapshotCorrupt(f"snapshot is {type(data).__name__}, not an object")
        try:
            folder = data["sessionFolder"]
            source_id = data.get("sourceId") or ""
            start_time = data["startTime"]
            frame_count = data.get("frameCount", 0)
            is_active = data["isActive"]
            last_heartbeat = data.get("lastHeartbeat", start_time)
        except KeyError as exc:
            raise RecoverySnapshotCorrupt(f"snapshot is missing {exc}") from exc
        if not isinstance(folder, str) or not folder:
            raise RecoverySnapshotCorrupt("snapshot has no session folder")
        if not isinstance(source_id, str) or not isinstance(is_active, bool):
            raise RecoverySnapshotCorrupt("snapshot has invalid field types")
        for value in (start_time, frame_count, last_heartbeat):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise RecoverySnapshotCorrupt("snapshot has non-numeric counters")
        return cls(
            session_folder=folder,
            source_id=source_id,
            start_time=int(start_time),
            frame_count=int(frame_count),
            is_active=is_active,
            last_heartbeat=int(last_heartbeat),
        )


@dataclass
class TypingBurst:
    start: int
    end: int
    duration: int
    keystrokes: int
    wpm: int


@dataclass
class KeyboardStats:
    estimated_keystrokes: int = 0
    keyboard_active_time: int = 0  # seconds
    estimated_words_typed: int = 0
    typing_burst_count: int = 0
    average_wpm: int = 0
    peak_wpm: int = 0
    shortcut_estimate: int = 0
    mouse_clicks: int = 0
    mouse_distance: int = 0
    scroll_events: int = 0
    total_input_events: int = 0
    session_duration: int = 0  # seconds
    last_activity_time: Optional[int] = None
    typing_intensity: float = 0.0  # keystrokes per active minute

    def keyboard_dict(self) -> dict:
        return {
            "estimatedKeystrokes": self.estimated_keystrokes,
            "keyboardActiveTime": self.keyboard_active_time,
            "estimatedWordsTyped": self.estimated_words_typed,
            "typingBurstCount": self.typing_burst_count,
            "averageWPM": self.average_wpm,
            "peakWPM": self.peak_wpm,
            "shortcutEstimate": self.shortcut_estimate,
            "typingIntensity": self.typing_intensity,
        }

    def mouse_dict(self) -> dict:
        return {
            "mouseClicks": self.mouse_clicks,
            "mouseDistance": self.mouse_distance,
            "scrollEvents": self.scroll_events,
        }


@dataclass
class PasteEvent:
    timestamp: int
    approximate_size: int
    frame_index: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "approximateSize": self.approximate_size,
            "frameIndex": self.frame_index,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PasteEvent":
        return cls(
            timestamp=int(data.get("timestamp", 0)),
            approximate_size=int(data.get("approximateSize", 0)),
            frame_index=data.get("frameIndex"),
        )


@dataclass
class IdlePeriod:
    start: int
    end: int
    duration: float  # seconds

    def to_dict(self) -> dict:
        return {"start": self.start, "end": self.end, "duration": self.duration}

    @classmethod
    def from_dict(cls, data: dict) -> "IdlePeriod":
        return cls(
            start=int(data.get("start", 0)),
            end=int(data.get("end", 0)),
            duration=float(data.get("duration", 0)),
        )


@dataclass
class ActivityStats:
    total_duration: int = 0
    active_duration: int = 0
    idle_periods: list[IdlePeriod] = field(default_factory=list)
    idle_count: int = 0
    is_currently_idle: bool = False
    is_paused: bool = False


@dataclass
class FrameValidation:
    valid_frame_count: int
    dimensions: Optional[tuple[int, int]] = None
    frame_format: Optional[str] = None


@dataclass
class VerificationInput:
    total_duration: float
    active_duration: float
    frame_count: int
    paste_events: list[PasteEvent] = field(default_factory=list)
    idle_periods: list[IdlePeriod] = field(default_factory=list)


@dataclass(frozen=True)
class VerificationFactors:
    paste_score: int
    activity_score: int
    consistency_score: int
    duration_score: int


@dataclass(frozen=True)
class VerificationOutput:
    score: int
    is_verified: bool
    factors: VerificationFactors
    flags: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "isVerified": self.is_verified,
            "factors": {
                "pasteScore": self.factors.paste_score,
                "activityScore": self.factors.activity_score,
                "consistencyScore": self.factors.consistency_score,
                "durationScore": self.factors.duration_score,
            },
            "flags": list(self.flags),
        }


@dataclass
class StartResult:
    success: bool
    session_id: Optional[str] = None
    session_folder: Optional[str] = None
    error: Optional[str] = None


@dataclass
class PauseResult:
    success: bool
    paused: bool = False
    error: Optional[str] = None


@dataclass
class ResumeResult:
    success: bool
    resumed: bool = False
    error: Optional[str] = None


@dataclass
class StopResult:
    success: bool
    session_folder: Optional[str] = None
    total_frames: int = 0
    verification: Optional[VerificationOutput] = None
    duration: int = 0
    active_duration: int = 0
    keyboard_stats: Optional[KeyboardStats] = None
    paste_events: list[PasteEvent] = field(default_factory=list)
    timed_out: bool = False
    error: Optional[str] = None


@dataclass
class StepOutcome:
    name: str
    ok: bool
    error: Optional[str] = None


@dataclass
class EmergencyStopResult:
    success: bool
    session_folder: Optional[str] = None
    total_frames: int = 0
    failed_steps: list[str] = field(default_factory=list)


@dataclass
class RecoverResult:
    success: bool
    session_folder: Optional[str] = None
    total_frames: int = 0
    dimensions: Optional[tuple[int, int]] = None
    verification: Optional[VerificationOutput] = None
    error: Optional[str] = None
