"""Application entrypoint."""

from __future__ import annotations

import logging
import os
import sys
import threading

from activity_monitor import ActivityMonitor
from capture import ScreenCaptureEngine
from clipboard_monitor import ClipboardMonitor
from config import CONFIG_DIR, JsonConfigStore, load_settings
from frame_validator import DiskFrameValidator
from input_hook import PynputInputHook, PynputPointer
from keyboard_tracker import KeyboardActivityTracker
from models import RecoverableSession, SessionState, StopResult
from session_manager import RecordingSessionManager
from verification import format_active_duration, format_total_duration, paste_summary

try:
    from PySide6.QtCore import QObject, Signal, QSize
    from PySide6.QtGui import QAction, QIcon, QPixmap, QPainter, QColor, QBrush
    from PySide6.QtWidgets import QApplication, QMenu, QMessageBox, QSystemTrayIcon
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

logger = logging.getLogger(__name__)

APP_NAME = "Worklapse"


def _create_icon(color: str = "#888888", size: int = 22) -> QIcon:
    """Generate a simple circular tray icon with the given color."""
    pixmap = QPixmap(QSize(size, size))
    pixmap.fill(QColor(0, 0, 0, 0))
    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing, True)
    painter.setBrush(QBrush(QColor(color)))
    painter.setPen(QColor(color))
    painter.drawEllipse(2, 2, size - 4, size - 4)
    painter.end()
    return QIcon(pixmap)


ICON_IDLE = "#888888"      # grey
ICON_RECORDING = "#FF4444"  # red
ICON_PAUSED = "#FFBB33"    # amber
ICON_BUSY = "#FF8800"      # orange

STATE_LABELS = {
    SessionState.IDLE.value: ("Ready", ICON_IDLE),
    SessionState.RECORDING.value: ("Recording...", ICON_RECORDING),
    SessionState.PAUSED.value: ("Paused", ICON_PAUSED),
    SessionState.STOPPING.value: ("Finishing session...", ICON_BUSY),
    SessionState.STOPPED.value: ("Finishing session...", ICON_BUSY),
}


def _summary_text(result: StopResult) -> str:
    lines = [
        format_total_duration(result.duration),
        format_active_duration(result.active_duration),
        f"{result.total_frames} frames",
        paste_summary(result.paste_events),
    ]
    if result.verification is not None:
        status = "Verified" if result.verification.is_verified else "Not verified"
        lines.append(f"{status} (score {result.verification.score})")
        lines.extend(result.verification.flags)
    if result.error:
        lines.append(f"Warning: {result.error}")
    return "\n".join(lines)


class UIBridge(QObject):
    state_signal = Signal(str, str)  # from_state, to_state
    activity_signal = Signal(int)  # peak WPM
    message_signal = Signal(str, str)  # title, text


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.app.setQuitOnLastWindowClosed(False)
        self.config_store = JsonConfigStore()
        settings = load_settings(self.config_store)

        self.ui = UIBridge()
        self.ui.state_signal.connect(self._on_state_change_ui)
        self.ui.activity_signal.connect(self._on_activity_ui)
        self.ui.message_signal.connect(self._on_message_ui)

        self.manager = RecordingSessionManager(
            capture=ScreenCaptureEngine(interval_s=settings.session.capture_interval_s),
            store=JsonConfigStore(path=CONFIG_DIR / "session-recovery.json"),
            validator=DiskFrameValidator(),
            tracker=KeyboardActivityTracker(hook=PynputInputHook(), settings=settings.tracker),
            clipboard=ClipboardMonitor(),
            activity=ActivityMonitor(
                idle_threshold_s=settings.session.idle_threshold_s,
                check_interval_s=settings.session.activity_check_interval_s,
                pointer=PynputPointer(),
            ),
            observer=self,
            settings=settings,
        )

        self.tray = QSystemTrayIcon()
        self.tray.setIcon(_create_icon(ICON_IDLE))
        self.tray.setToolTip(f"{APP_NAME} - Ready")
        self._setup_menu()
        self._update_actions(SessionState.IDLE.value)
        self.tray.show()

    def _setup_menu(self) -> None:
        menu = QMenu()

        self.start_action = QAction("Start Recording", menu)
        self.start_action.triggered.connect(self._start)
        menu.addAction(self.start_action)

        self.pause_action = QAction("Pause", menu)
        self.pause_action.triggered.connect(self._pause)
        menu.addAction(self.pause_action)

        self.resume_action = QAction("Resume", menu)
        self.resume_action.triggered.connect(self._resume)
        menu.addAction(self.resume_action)

        self.stop_action = QAction("Stop Recording", menu)
        self.stop_action.triggered.connect(self._stop)
        menu.addAction(self.stop_action)

        menu.addSeparator()
        self.emergency_action = QAction("Emergency Stop", menu)
        self.emergency_action.triggered.connect(self._emergency_stop)
        menu.addAction(self.emergency_action)

        menu.addSeparator()
        quit_action = QAction("Quit", menu)
        quit_action.triggered.connect(self.quit)
        menu.addAction(quit_action)

        self.tray.setContextMenu(menu)

    def _update_actions(self, state: str) -> None:
        self.start_action.setEnabled(state == SessionState.IDLE.value)
        self.pause_action.setEnabled(state == SessionState.RECORDING.value)
        self.resume_action.setEnabled(state == SessionState.PAUSED.value)
        self.stop_action.setEnabled(state in (SessionState.RECORDING.value, SessionState.PAUSED.value))
        self.emergency_action.setEnabled(state != SessionState.IDLE.value)

    # ------------------------------------------------------------------
    # Menu handlers
    # ------------------------------------------------------------------

    def _start(self) -> None:
        result = self.manager.start(self.config_store.get_source_id())
        if not result.success:
            QMessageBox.warning(None, APP_NAME, f"Could not start recording: {result.error}")

    def _pause(self) -> None:
        result = self.manager.pause()
        if not result.success:
            QMessageBox.warning(None, APP_NAME, result.error or "Could not pause")

    def _resume(self) -> None:
        result = self.manager.resume(self.config_store.get_source_id())
        if not result.success:
            QMessageBox.warning(None, APP_NAME, result.error or "Could not resume")

    def _stop(self) -> None:
        # stop waits for the capture writer, keep it off the Qt main thread
        threading.Thread(target=self._stop_worker, name="session-stop", daemon=True).start()

    def _stop_worker(self) -> None:
        result = self.manager.stop()
        if result.success:
            self.ui.message_signal.emit("Session saved", _summary_text(result))
        else:
            self.ui.message_signal.emit(APP_NAME, result.error or "Could not stop recording")

    def _emergency_stop(self) -> None:
        threading.Thread(target=self._emergency_stop_worker, name="session-emergency-stop", daemon=True).start()

    def _emergency_stop_worker(self) -> None:
        result = self.manager.emergency_stop()
        if result.failed_steps:
            self.ui.message_signal.emit(
                APP_NAME,
                "Recording stopped, but some steps failed:\n" + "\n".join(result.failed_steps),
            )

    # ------------------------------------------------------------------
    # Session observer (called from worker threads, emit signals for UI thread)
    # ------------------------------------------------------------------

    def on_state_changed(self, from_state: SessionState, to_state: SessionState) -> None:
        self.ui.state_signal.emit(from_state.value, to_state.value)

    def on_activity_update(self, stats: dict) -> None:
        self.ui.activity_signal.emit(int(stats.get("peakWPM", 0)))

    def on_heartbeat(self, snapshot: RecoverableSession) -> None:
        logger.debug("Heartbeat: %d frames", snapshot.frame_count)

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _on_state_change_ui(self, from_state: str, to_state: str) -> None:
        label, color = STATE_LABELS.get(to_state, ("Ready", ICON_IDLE))
        self.tray.setIcon(_create_icon(color))
        self.tray.setToolTip(f"{APP_NAME} - {label}")
        self._update_actions(to_state)

    def _on_activity_ui(self, wpm: int) -> None:
        if self.manager.state == SessionState.RECORDING:
            self.tray.setToolTip(f"{APP_NAME} - Recording... (peak {wpm} WPM)")

    def _on_message_ui(self, title: str, text: str) -> None:
        QMessageBox.information(None, title, text)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _offer_recovery(self) -> None:
        snapshot = self.manager.get_recoverable_session()
        if snapshot is None:
            return
        answer = QMessageBox.question(
            None,
            APP_NAME,
            "A previous recording did not finish cleanly "
            f"({snapshot.frame_count} frames in {snapshot.session_folder}).\n"
            "Recover it?",
        )
        if answer != QMessageBox.Yes:
            self.manager.discard_recovery()
            return
        result = self.manager.recover(snapshot.session_folder)
        if result.success:
            text = f"Recovered {result.total_frames} frames."
            if result.verification is not None:
                text += f"\nVerification score: {result.verification.score}"
            QMessageBox.information(None, APP_NAME, text)
        else:
            QMessageBox.warning(None, APP_NAME, f"Recovery failed: {result.error}")

    def run(self) -> int:
        self._offer_recovery()
        return self.app.exec()

    def quit(self) -> None:
        self.manager.shutdown()
        self.app.quit()


def main() -> int:
    logging.basicConfig(
        level=os.environ.get("WORKLAPSE_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
