"""Shared error codes, user-facing messages and session exceptions."""

from __future__ import annotations

STATE_CONFLICT = "STATE_CONFLICT"
NOT_ACTIVE = "NOT_ACTIVE"
START_FAILED = "START_FAILED"
STOP_TIMEOUT = "STOP_TIMEOUT"
HOOK_UNAVAILABLE = "HOOK_UNAVAILABLE"
RECOVERY_SNAPSHOT_CORRUPT = "RECOVERY_SNAPSHOT_CORRUPT"
RECOVERY_NOT_FOUND = "RECOVERY_NOT_FOUND"
NO_FRAMES = "NO_FRAMES"

ERROR_MESSAGES = {
    STATE_CONFLICT: "A recording session is already in progress.",
    NOT_ACTIVE: "Recording not active",
    START_FAILED: "Failed to capture from selected source.",
    STOP_TIMEOUT: "Capture teardown timed out.",
    HOOK_UNAVAILABLE: "Global input hook is unavailable.",
    RECOVERY_SNAPSHOT_CORRUPT: "Saved session state is unreadable.",
    RECOVERY_NOT_FOUND: "Session not found or folder mismatch.",
    NO_FRAMES: "No frames found in session folder.",
}


class SessionError(Exception):
    code = ""

    def __init__(self, message: str = "") -> None:
        super().__init__(message or ERROR_MESSAGES.get(self.code, self.code))


class StateConflictError(SessionError):
    code = STATE_CONFLICT


class StartFailure(SessionError):
    code = START_FAILED


class StopTimeout(SessionError):
    code = STOP_TIMEOUT


class HookUnavailable(SessionError):
    code = HOOK_UNAVAILABLE


class RecoverySnapshotCorrupt(SessionError):
    code = RECOVERY_SNAPSHOT_CORRUPT
