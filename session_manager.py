"""State-machine based recording session orchestration."""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Optional

from activity_monitor import ActivityMonitor
from clipboard_monitor import ClipboardMonitor
from config import Settings
from errors import (
    ERROR_MESSAGES,
    NO_FRAMES,
    NOT_ACTIVE,
    RECOVERY_NOT_FOUND,
    StartFailure,
    StateConflictError,
    StopTimeout,
)
from interfaces import CaptureEngine, FrameValidator, KeyValueStore, SessionObserver
from keyboard_tracker import KeyboardActivityTracker
from metrics import MetricsAggregator
from models import (
    ActivityStats,
    EmergencyStopResult,
    IdlePeriod,
    PasteEvent,
    PauseResult,
    RecordingState,
    RecoverResult,
    RecoverableSession,
    RecoverySnapshotCorrupt,
    ResumeResult,
    SessionState,
    StartResult,
    StepOutcome,
    StopResult,
    VerificationInput,
    VerificationOutput,
    now_ms,
)
from verification import calculate_verification

logger = logging.getLogger(__name__)

RECOVERY_KEY = "session"

_TRANSITIONS = {
    SessionState.IDLE: {SessionState.RECORDING},
    SessionState.RECORDING: {SessionState.PAUSED, SessionState.STOPPING, SessionState.STOPPED},
    SessionState.PAUSED: {SessionState.RECORDING, SessionState.STOPPING, SessionState.STOPPED},
    SessionState.STOPPING: {SessionState.STOPPED},
    SessionState.STOPPED: {SessionState.IDLE},
}

_ACTIVE_STATES = (SessionState.RECORDING, SessionState.PAUSED)


def _call_with_timeout(fn: Callable[[], Any], timeout_s: float, name: str) -> Any:
    done = threading.Event()
    outcome: dict[str, Any] = {}

    def target() -> None:
        try:
            outcome["value"] = fn()
        except BaseException as exc:  # re-raised in the caller's thread
            outcome["error"] = exc
        finally:
            done.set()

    threading.Thread(target=target, name=name, daemon=True).start()
    if not done.wait(timeout=timeout_s):
        raise StopTimeout(f"{name} did not finish within {timeout_s:g}s")
    if "error" in outcome:
        raise outcome["error"]
    return outcome.get("value")


class RecordingSessionManager:
    """Owns the lifecycle of one recording session at a time.

    Every public operation returns a result value; failures inside the
    collaborators are logged and reported through ``error`` fields.
    """

    def __init__(
        self,
        capture: CaptureEngine,
        store: KeyValueStore,
        validator: FrameValidator,
        tracker: KeyboardActivityTracker,
        clipboard: ClipboardMonitor,
        activity: ActivityMonitor,
        metrics: Optional[MetricsAggregator] = None,
        observer: Optional[SessionObserver] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._capture = capture
        self._store = store
        self._validator = validator
        self._tracker = tracker
        self._clipboard = clipboard
        self._activity = activity
        self._settings = settings or Settings()
        self._metrics = metrics or MetricsAggregator(
            flush_interval_s=self._settings.session.metrics_flush_interval_s, clock=clock
        )
        self._observer = observer
        self._clock = clock

        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._data = RecordingState()
        self._heartbeat_stop: Optional[threading.Event] = None

        self._tracker.set_input_listener(self._activity.note_input)
        self._tracker.set_update_listener(self._on_activity_update)

    @property
    def state(self) -> SessionState:
        return self._state

    def get_state(self) -> RecordingState:
        with self._lock:
            data = replace(self._data, status=self._state)
        if self._state in _ACTIVE_STATES:
            data.frame_count = self._capture_attr("frame_count", data.frame_count)
            data.queue_size = self._capture_attr("queue_size", data.queue_size)
            data.dropped_frames = self._capture_attr("dropped_frames", data.dropped_frames)
            data.adaptive_quality = self._capture_attr("quality", data.adaptive_quality)
        return data

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, source_id: str) -> StartResult:
        with self._lock:
            try:
                self._require(SessionState.IDLE)
            except StateConflictError as exc:
                return StartResult(success=False, error=str(exc))

            start_time = self._clock()
            session_id = f"{self._settings.session.session_prefix}_{start_time}"
            folder = Path(self._settings.session.output_dir) / session_id
            try:
                if not source_id:
                    raise StartFailure("No capture source selected")
                folder.mkdir(parents=True, exist_ok=True)
                self._capture.start(folder, source_id)
            except Exception as exc:
                logger.error("Failed to start recording: %s", exc)
                self._remove_empty_folder(folder)
                return StartResult(success=False, error=str(exc) or ERROR_MESSAGES[StartFailure.code])

            self._data = RecordingState(
                status=SessionState.RECORDING,
                session_id=session_id,
                session_folder=str(folder),
                source_id=source_id,
                start_time=start_time,
            )
            self._metrics.start(folder, session_id)
            self._run_step("activity monitor", self._activity.start)
            self._run_step("clipboard monitor", self._clipboard.start)
            tracking = self._tracker.start()
            if not tracking:
                logger.warning("Recording without keyboard statistics")
            self._activity.set_input_available(tracking)
            self._transition(SessionState.RECORDING)
            self._persist_snapshot(self._snapshot())
        self._start_heartbeat()
        logger.info("Recording started: %s (source %s)", folder, source_id)
        return StartResult(success=True, session_id=session_id, session_folder=str(folder))

    def pause(self) -> PauseResult:
        with self._lock:
            if self._state != SessionState.RECORDING:
                return PauseResult(success=False, error=ERROR_MESSAGES[NOT_ACTIVE])
            try:
                self._capture.pause()
            except Exception as exc:
                logger.error("Failed to pause capture: %s", exc)
                return PauseResult(success=False, error=str(exc))
            self._activity.pause()
            self._transition(SessionState.PAUSED)
        logger.info("Recording paused")
        return PauseResult(success=True, paused=True)

    def resume(self, source_id: Optional[str] = None) -> ResumeResult:
        with self._lock:
            if self._state != SessionState.PAUSED:
                return ResumeResult(success=False, error=ERROR_MESSAGES[NOT_ACTIVE])
            source = source_id or self._data.source_id or ""
            try:
                self._capture.resume(source)
            except Exception as exc:
                logger.error("Failed to resume capture: %s", exc)
                return ResumeResult(success=False, error=str(exc))
            self._data.source_id = source
            self._activity.resume()
            self._transition(SessionState.RECORDING)
        logger.info("Recording resumed")
        return ResumeResult(success=True, resumed=True)

    def stop(self) -> StopResult:
        """Stop the session and verify it.

        Always returns a usable result once a session was active: teardown
        failures and a capture engine that does not stop in time degrade the
        summary instead of failing the call.
        """
        with self._lock:
            if self._state not in _ACTIVE_STATES:
                return StopResult(success=False, error=ERROR_MESSAGES[NOT_ACTIVE])
            self._transition(SessionState.STOPPING)
            session_id = self._data.session_id
            folder = self._data.session_folder
            start_time = self._data.start_time or self._clock()
        self._stop_heartbeat()

        errors: list[str] = []
        timed_out = False

        outcome, keyboard_stats = self._run_step("keyboard tracker", self._tracker.stop)
        self._collect_error(outcome, errors)
        outcome, paste_events = self._run_step("clipboard monitor", self._clipboard.stop)
        self._collect_error(outcome, errors)
        outcome, activity_stats = self._run_step("activity monitor", self._activity.stop)
        self._collect_error(outcome, errors)

        total_frames = self._capture_attr("frame_count", 0)
        try:
            total_frames = _call_with_timeout(
                self._capture.stop, self._settings.session.stop_timeout_s, "capture-teardown"
            )
        except StopTimeout as exc:
            timed_out = True
            errors.append(str(exc))
            logger.warning("Forcing session reset: %s", exc)
            total_frames = self._capture_attr("frame_count", total_frames)
        except Exception as exc:
            errors.append(str(exc))
            logger.error("Capture teardown failed: %s", exc)
            total_frames = self._capture_attr("frame_count", total_frames)

        paste_events = paste_events or []
        if activity_stats is None:
            elapsed = max(0, round((self._clock() - start_time) / 1000))
            activity_stats = ActivityStats(total_duration=elapsed)

        verification: Optional[VerificationOutput] = None
        try:
            verification = calculate_verification(
                VerificationInput(
                    total_duration=activity_stats.total_duration,
                    active_duration=activity_stats.active_duration,
                    frame_count=total_frames or 0,
                    paste_events=paste_events,
                    idle_periods=activity_stats.idle_periods,
                ),
                self._settings.verification,
            )
        except Exception as exc:
            errors.append(str(exc))
            logger.exception("Verification failed")

        self._write_final_metrics(keyboard_stats, paste_events, activity_stats, verification)
        self._finalize(session_id)

        logger.info(
            "Recording stopped: %s frames, score %s",
            total_frames,
            verification.score if verification else "n/a",
        )
        return StopResult(
            success=True,
            session_folder=folder,
            total_frames=total_frames or 0,
            verification=verification,
            duration=activity_stats.total_duration,
            active_duration=activity_stats.active_duration,
            keyboard_stats=keyboard_stats,
            paste_events=paste_events,
            timed_out=timed_out,
            error="; ".join(errors) or None,
        )

    def emergency_stop(self) -> EmergencyStopResult:
        """Tear everything down and return to Idle, whatever fails on the way."""
        with self._lock:
            if self._state == SessionState.IDLE:
                return EmergencyStopResult(success=True)
            folder = self._data.session_folder
        self._stop_heartbeat()

        outcomes = [
            self._run_step("activity monitor", self._activity.stop)[0],
            self._run_step("keyboard tracker", self._tracker.stop)[0],
            self._run_step("clipboard monitor", self._clipboard.stop)[0],
            self._run_step(
                "capture engine",
                lambda: _call_with_timeout(
                    self._capture.stop, self._settings.session.stop_timeout_s, "capture-emergency-teardown"
                ),
            )[0],
            self._run_step("metrics", self._metrics.stop)[0],
            self._run_step("recovery snapshot", self._clear_recovery)[0],
        ]
        total_frames = self._capture_attr("frame_count", 0)

        with self._lock:
            if self._state in _ACTIVE_STATES:
                self._transition(SessionState.STOPPED)
            self._reset_to_idle()

        failed = [o.name for o in outcomes if not o.ok]
        if failed:
            logger.warning("Emergency stop finished with failed steps: %s", ", ".join(failed))
        else:
            logger.info("Emergency stop finished")
        return EmergencyStopResult(success=True, session_folder=folder, total_frames=total_frames, failed_steps=failed)

    def shutdown(self) -> None:
        if self._state != SessionState.IDLE:
            self.emergency_stop()

    def get_activity_score(self) -> int:
        return self._tracker.get_activity_score()

    # ------------------------------------------------------------------
    # Crash recovery
    # ------------------------------------------------------------------

    def heartbeat(self) -> Optional[RecoverableSession]:
        with self._lock:
            if self._state not in _ACTIVE_STATES:
                return None
            snapshot = self._snapshot()
            self._persist_snapshot(snapshot)
        try:
            self._metrics.update_keyboard(self._tracker.get_stats())
            self._metrics.update_clipboard(self._clipboard.get_paste_events())
            self._metrics.update_activity(self._activity.get_stats())
            self._metrics.maybe_flush()
        except Exception as exc:
            logger.warning("Failed to update session metrics: %s", exc)
        if self._observer is not None:
            try:
                self._observer.on_heartbeat(snapshot)
            except Exception:
                logger.exception("Heartbeat observer failed")
        return snapshot

    def get_recoverable_session(self) -> Optional[RecoverableSession]:
        with self._lock:
            if self._state != SessionState.IDLE:
                return None
        try:
            raw = self._store.get(RECOVERY_KEY)
        except Exception as exc:
            logger.warning("Could not read saved session state: %s", exc)
            return None
        if raw is None:
            return None
        try:
            snapshot = RecoverableSession.from_dict(raw)
        except RecoverySnapshotCorrupt as exc:
            logger.warning("Discarding unreadable session snapshot: %s", exc)
            self._run_step("recovery snapshot", self._clear_recovery)
            return None
        if not snapshot.is_active:
            return None
        return snapshot

    def recover(self, session_folder: str) -> RecoverResult:
        with self._lock:
            if self._state != SessionState.IDLE:
                return RecoverResult(success=False, error=ERROR_MESSAGES[StateConflictError.code])
        try:
            snapshot = self.get_recoverable_session()
            if snapshot is None or Path(snapshot.session_folder) != Path(session_folder):
                return RecoverResult(success=False, error=ERROR_MESSAGES[RECOVERY_NOT_FOUND])

            validation = self._validator.validate(Path(session_folder))
            if validation.valid_frame_count <= 0:
                logger.warning("No frames found in %s", session_folder)
                return RecoverResult(success=False, session_folder=session_folder, error=ERROR_MESSAGES[NO_FRAMES])
            if validation.valid_frame_count != snapshot.frame_count:
                logger.info(
                    "Recovered frame count %d differs from saved %d",
                    validation.valid_frame_count,
                    snapshot.frame_count,
                )
            verification = self._verify_recovered(Path(session_folder), validation.valid_frame_count)
            logger.info("Session recovered: %s (%d frames)", session_folder, validation.valid_frame_count)
            return RecoverResult(
                success=True,
                session_folder=session_folder,
                total_frames=validation.valid_frame_count,
                dimensions=validation.dimensions,
                verification=verification,
            )
        except Exception as exc:
            logger.exception("Session recovery failed")
            return RecoverResult(success=False, session_folder=session_folder, error=str(exc))
        finally:
            self._run_step("recovery snapshot", self._clear_recovery)

    def discard_recovery(self) -> bool:
        with self._lock:
            if self._state != SessionState.IDLE:
                return False
        outcome, _ = self._run_step("recovery snapshot", self._clear_recovery)
        logger.info("Recovery data discarded")
        return outcome.ok

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require(self, *states: SessionState) -> None:
        if self._state not in states:
            raise StateConflictError()

    def _transition(self, to_state: SessionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        if to_state not in _TRANSITIONS[from_state]:
            raise StateConflictError(f"Illegal transition {from_state.value} -> {to_state.value}")
        self._state = to_state
        self._data.status = to_state
        self._notify_state(from_state, to_state)

    def _reset_to_idle(self) -> None:
        from_state = self._state
        self._state = SessionState.IDLE
        self._data = RecordingState()
        if from_state != SessionState.IDLE:
            self._notify_state(from_state, SessionState.IDLE)

    def _finalize(self, session_id: Optional[str]) -> None:
        with self._lock:
            if self._data.session_id != session_id or self._state != SessionState.STOPPING:
                # an emergency stop already reset this session
                return
            self._run_step("recovery snapshot", self._clear_recovery)
            self._transition(SessionState.STOPPED)
            self._reset_to_idle()

    def _snapshot(self) -> RecoverableSession:
        frame_count = self._capture_attr("frame_count", self._data.frame_count)
        self._data.frame_count = frame_count
        return RecoverableSession(
            session_folder=self._data.session_folder or "",
            source_id=self._data.source_id or "",
            start_time=self._data.start_time or 0,
            frame_count=frame_count,
            is_active=True,
            last_heartbeat=self._clock(),
        )

    def _persist_snapshot(self, snapshot: RecoverableSession) -> None:
        try:
            self._store.set(RECOVERY_KEY, snapshot.to_dict())
            logger.debug("Session snapshot saved (%d frames)", snapshot.frame_count)
        except Exception as exc:
            logger.warning("Failed to persist session snapshot: %s", exc)

    def _clear_recovery(self) -> None:
        self._store.delete(RECOVERY_KEY)

    def _start_heartbeat(self) -> None:
        self._stop_heartbeat()
        stop_event = threading.Event()
        self._heartbeat_stop = stop_event
        threading.Thread(
            target=self._heartbeat_loop,
            args=(stop_event,),
            name="session-heartbeat",
            daemon=True,
        ).start()

    def _stop_heartbeat(self) -> None:
        stop_event = self._heartbeat_stop
        self._heartbeat_stop = None
        if stop_event is not None:
            stop_event.set()

    def _heartbeat_loop(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self._settings.session.heartbeat_interval_s):
            try:
                self.heartbeat()
            except Exception:
                logger.exception("Heartbeat failed")

    def _verify_recovered(self, folder: Path, frame_count: int) -> Optional[VerificationOutput]:
        metrics = self._metrics.load_from_disk(folder)
        if metrics is None:
            return None
        try:
            activity = metrics.get("activity") or {}
            clipboard = (metrics.get("input") or {}).get("clipboard") or {}
            data = VerificationInput(
                total_duration=float(activity.get("totalDuration", 0)),
                active_duration=float(activity.get("activeDuration", 0)),
                frame_count=frame_count,
                paste_events=[PasteEvent.from_dict(e) for e in clipboard.get("pasteEvents", [])],
                idle_periods=[IdlePeriod.from_dict(p) for p in activity.get("idlePeriods", [])],
            )
        except (AttributeError, TypeError, ValueError) as exc:
            logger.warning("Saved metrics for %s are unusable: %s", folder, exc)
            return None
        return calculate_verification(data, self._settings.verification)

    def _write_final_metrics(
        self,
        keyboard_stats: Any,
        paste_events: list[PasteEvent],
        activity_stats: ActivityStats,
        verification: Optional[VerificationOutput],
    ) -> None:
        try:
            if keyboard_stats is not None:
                self._metrics.update_keyboard(keyboard_stats)
            self._metrics.update_clipboard(paste_events)
            self._metrics.update_activity(activity_stats)
            self._metrics.stop(verification)
        except Exception as exc:
            logger.error("Failed to write final metrics: %s", exc)

    def _run_step(self, name: str, fn: Callable[[], Any]) -> tuple[StepOutcome, Any]:
        try:
            return StepOutcome(name=name, ok=True), fn()
        except Exception as exc:
            logger.error("%s step failed: %s", name, exc)
            return StepOutcome(name=name, ok=False, error=str(exc)), None

    @staticmethod
    def _collect_error(outcome: StepOutcome, errors: list[str]) -> None:
        if not outcome.ok:
            errors.append(f"{outcome.name}: {outcome.error}")

    def _capture_attr(self, name: str, default: Any) -> Any:
        try:
            return getattr(self._capture, name)
        except Exception:
            return default

    @staticmethod
    def _remove_empty_folder(folder: Path) -> None:
        try:
            folder.rmdir()
        except OSError:
            pass

    def _on_activity_update(self, stats: dict) -> None:
        if self._observer is not None:
            try:
                self._observer.on_activity_update(stats)
            except Exception:
                logger.exception("Activity observer failed")

    def _notify_state(self, from_state: SessionState, to_state: SessionState) -> None:
        if self._observer is not None:
            try:
                self._observer.on_state_changed(from_state, to_state)
            except Exception:
                logger.exception("State observer failed")
