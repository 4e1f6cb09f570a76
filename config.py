"""JSON-based key-value store and tunable settings."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "worklapse"

T = TypeVar("T")


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or CONFIG_DIR / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str, default: Any = None) -> Any:
        return self._read_all().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def delete(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)

    def get_source_id(self) -> str:
        return str(self.get("source_id", "screen:0"))

    def set_source_id(self, source_id: str) -> None:
        self.set("source_id", source_id)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as exc:
            logger.warning("Ignoring unreadable store %s: %s", self._path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self._path)


@dataclass(frozen=True)
class TrackerSettings:
    burst_gap_ms: int = 2000
    min_burst_keystrokes: int = 5
    chars_per_word: int = 5
    peak_wpm_cap: int = 200
    min_wpm_duration_ms: int = 1000
    live_wpm_min_duration_ms: int = 2000
    shortcut_gap_min_ms: int = 20
    shortcut_gap_max_ms: int = 150
    live_update_interval_ms: int = 2000
    keystroke_active_ms: int = 200


@dataclass(frozen=True)
class VerificationSettings:
    threshold: int = 70
    paste_small: int = 50
    paste_medium: int = 300
    paste_large: int = 1000
    penalty_small: int = 0
    penalty_medium: int = 1
    penalty_large: int = 5
    penalty_very_large: int = 15
    min_activity_ratio: float = 0.3
    max_large_pastes: int = 3
    max_very_large_pastes: int = 1
    paste_weight: float = 0.4
    activity_weight: float = 0.3
    consistency_weight: float = 0.2
    duration_weight: float = 0.1


@dataclass(frozen=True)
class SessionSettings:
    heartbeat_interval_s: float = 5.0
    stop_timeout_s: float = 10.0
    idle_threshold_s: float = 30.0
    activity_check_interval_s: float = 1.0
    metrics_flush_interval_s: float = 30.0
    capture_interval_s: float = 1.0
    session_prefix: str = "worklapse"
    output_dir: str = str(Path.home() / "worklapse" / "sessions")


@dataclass(frozen=True)
class Settings:
    tracker: TrackerSettings = field(default_factory=TrackerSettings)
    verification: VerificationSettings = field(default_factory=VerificationSettings)
    session: SessionSettings = field(default_factory=SessionSettings)


def _apply_overrides(base: T, overrides: Any) -> T:
    if not isinstance(overrides, dict):
        return base
    known = {f.name for f in fields(base)}  # type: ignore[arg-type]
    accepted = {}
    for key, value in overrides.items():
        if key not in known:
            logger.warning("Unknown setting %r ignored", key)
            continue
        current = getattr(base, key)
        if isinstance(current, float) and isinstance(value, int) and not isinstance(value, bool):
            value = float(value)
        if isinstance(value, bool) or not isinstance(value, type(current)):
            logger.warning("Setting %r has invalid value %r", key, value)
            continue
        accepted[key] = value
    return replace(base, **accepted)


def load_settings(store: JsonConfigStore) -> Settings:
    return Settings(
        tracker=_apply_overrides(TrackerSettings(), store.get("tracker")),
        verification=_apply_overrides(VerificationSettings(), store.get("verification")),
        session=_apply_overrides(SessionSettings(), store.get("session")),
    )
