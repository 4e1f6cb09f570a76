from __future__ import annotations

from pathlib import Path

from config import JsonConfigStore, SessionSettings, TrackerSettings, VerificationSettings, load_settings


def test_config_read_write(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    store = JsonConfigStore(path=path)

    assert store.get_source_id() == "screen:0"
    assert store.get("session") is None

    store.set_source_id("screen:all")
    store.set("session", {"sessionFolder": "/tmp/x", "isActive": True})

    reloaded = JsonConfigStore(path=path)
    assert reloaded.get_source_id() == "screen:all"
    assert reloaded.get("session") == {"sessionFolder": "/tmp/x", "isActive": True}

    reloaded.delete("session")
    reloaded.delete("missing")
    assert JsonConfigStore(path=path).get("session", "gone") == "gone"
    assert not path.with_suffix(".json.tmp").exists()


def test_config_invalid_json_fallback(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{invalid", encoding="utf-8")

    store = JsonConfigStore(path=path)
    assert store.get_source_id() == "screen:0"
    assert store.get("session") is None

    store.set("session", {"isActive": False})
    assert store.get("session") == {"isActive": False}


def test_non_object_json_reads_as_empty(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("[1, 2, 3]", encoding="utf-8")

    assert JsonConfigStore(path=path).get("source_id") is None


def test_load_settings_defaults(tmp_path: Path) -> None:
    settings = load_settings(JsonConfigStore(path=tmp_path / "config.json"))

    assert settings.tracker == TrackerSettings()
    assert settings.verification.threshold == 70
    assert settings.verification.max_large_pastes == 3
    assert settings.session.heartbeat_interval_s == 5.0
    assert settings.session.stop_timeout_s == 10.0


def test_load_settings_overrides(tmp_path: Path) -> None:
    store = JsonConfigStore(path=tmp_path / "config.json")
    store.set("verification", {"threshold": 80, "min_activity_ratio": 1, "bogus": 3})
    store.set("session", {"idle_threshold_s": 60, "session_prefix": 5})
    store.set("tracker", "not a section")

    settings = load_settings(store)

    assert settings.verification == VerificationSettings(threshold=80, min_activity_ratio=1.0)
    assert settings.session.idle_threshold_s == 60.0
    assert settings.session.session_prefix == SessionSettings().session_prefix
    assert settings.tracker == TrackerSettings()


def test_boolean_is_not_a_number(tmp_path: Path) -> None:
    store = JsonConfigStore(path=tmp_path / "config.json")
    store.set("tracker", {"burst_gap_ms": True})

    assert load_settings(store).tracker.burst_gap_ms == 2000
