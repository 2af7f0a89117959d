"""Tests for pm_dashboard.services.config_manager."""

from __future__ import annotations

import json
from pathlib import Path

from pm_dashboard.services.config_manager import ConfigManager


def _make_manager(tmp_path: Path) -> ConfigManager:
    """Create a ConfigManager pointing at *tmp_path* for isolation."""
    return ConfigManager(directory=tmp_path)


class TestDefaults:
    """Config should ship with sensible defaults."""

    def test_history_limits(self, tmp_path: Path) -> None:
        mgr = _make_manager(tmp_path)
        assert mgr.get("communication_history_limit") == 200
        assert mgr.get("backlog_health_history_limit") == 30

    def test_stale_thresholds(self, tmp_path: Path) -> None:
        mgr = _make_manager(tmp_path)
        assert mgr.get("stale_thresholds") == {"warning": 30, "critical": 60}

    def test_no_active_project(self, tmp_path: Path) -> None:
        assert _make_manager(tmp_path).active_project_id is None

    def test_missing_key_returns_default(self, tmp_path: Path) -> None:
        mgr = _make_manager(tmp_path)
        assert mgr.get("nonexistent", "fallback") == "fallback"

    def test_default_data_dir(self, tmp_path: Path) -> None:
        mgr = _make_manager(tmp_path)
        assert mgr.data_dir.name == "store"


class TestSetAndGet:
    """Setting values should persist and be retrievable."""

    def test_set_single(self, tmp_path: Path) -> None:
        mgr = _make_manager(tmp_path)
        mgr.set("dark_mode", True)
        assert mgr.get("dark_mode") is True

    def test_update_bulk(self, tmp_path: Path) -> None:
        mgr = _make_manager(tmp_path)
        mgr.update({"active_project_id": "12", "data_dir": str(tmp_path / "data")})
        assert mgr.active_project_id == "12"
        assert mgr.data_dir == tmp_path / "data"

    def test_data_property_returns_copy(self, tmp_path: Path) -> None:
        mgr = _make_manager(tmp_path)
        data = mgr.data
        data["stale_thresholds"]["warning"] = 1
        assert mgr.get("stale_thresholds")["warning"] == 30


class TestPersistence:
    """Config should survive reload."""

    def test_persist_and_reload(self, tmp_path: Path) -> None:
        mgr = _make_manager(tmp_path)
        mgr.set("report_author", "PMO")
        reloaded = _make_manager(tmp_path)
        assert reloaded.get("report_author") == "PMO"

    def test_file_is_valid_json(self, tmp_path: Path) -> None:
        mgr = _make_manager(tmp_path)
        mgr.set("company_name", "Acme")
        data = json.loads((tmp_path / "config.json").read_text(encoding="utf-8"))
        assert data["company_name"] == "Acme"

    def test_corrupt_file_uses_defaults(self, tmp_path: Path) -> None:
        (tmp_path / "config.json").write_text("{oops", encoding="utf-8")
        mgr = _make_manager(tmp_path)
        assert mgr.get("communication_history_limit") == 200

    def test_reset(self, tmp_path: Path) -> None:
        mgr = _make_manager(tmp_path)
        mgr.set("dark_mode", True)
        mgr.reset()
        assert mgr.get("dark_mode") is False
        assert _make_manager(tmp_path).get("dark_mode") is False


class TestMerge:
    """Stored settings are layered over the defaults."""

    def test_partial_nested_value(self, tmp_path: Path) -> None:
        (tmp_path / "config.json").write_text(
            json.dumps({"stale_thresholds": {"warning": 45}}), encoding="utf-8"
        )
        assert _make_manager(tmp_path).get("stale_thresholds") == {"warning": 45, "critical": 60}

    def test_mistyped_values_are_ignored(self, tmp_path: Path) -> None:
        (tmp_path / "config.json").write_text(
            json.dumps({
                "communication_history_limit": "lots",
                "dark_mode": "yes",
                "stale_thresholds": 10,
                "report_author": "PMO",
            }),
            encoding="utf-8",
        )
        mgr = _make_manager(tmp_path)
        assert mgr.get("communication_history_limit") == 200
        assert mgr.get("dark_mode") is False
        assert mgr.get("stale_thresholds") == {"warning": 30, "critical": 60}
        assert mgr.get("report_author") == "PMO"

    def test_non_object_file(self, tmp_path: Path) -> None:
        (tmp_path / "config.json").write_text("[1, 2]", encoding="utf-8")
        assert _make_manager(tmp_path).get("backlog_health_history_limit") == 30

    def test_unknown_keys_survive(self, tmp_path: Path) -> None:
        (tmp_path / "config.json").write_text(json.dumps({"custom": 1}), encoding="utf-8")
        mgr = _make_manager(tmp_path)
        assert mgr.get("custom") == 1
        assert mgr.path == tmp_path / "config.json"
