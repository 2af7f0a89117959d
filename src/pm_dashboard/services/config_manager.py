"""Application settings persisted as JSON in the platformdirs config directory.

Settings are global to the installation (which project is active, where the
record store lives, retention caps, report defaults).  Per-project records
live in :class:`pm_dashboard.services.store.ProjectStore` instead.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir, user_data_dir

logger = logging.getLogger(__name__)

APP_NAME = "pm-dashboard"
CONFIG_FILENAME = "config.json"

_DEFAULTS: dict[str, Any] = {
    "active_project_id": None,       # None or "cross-project" = unscoped keys
    "data_dir": "",                  # empty = platform user data dir
    "communication_history_limit": 200,
    "backlog_health_history_limit": 30,
    "stale_thresholds": {"warning": 30, "critical": 60},
    "story_points_count_as_refined": False,
    "report_title": "Project Status Report",
    "report_author": "",
    "company_name": "",
    "dark_mode": False,
}


def _merge(base: dict[str, Any], stored: dict[str, Any]) -> dict[str, Any]:
    """Overlay *stored* on *base*; nested dicts merge, mistyped values are dropped."""
    merged = copy.deepcopy(base)
    for key, value in stored.items():
        default = base.get(key)
        if isinstance(default, dict):
            if isinstance(value, dict):
                merged[key] = _merge(default, value)
            else:
                logger.warning("Ignoring config %r: expected an object, got %r", key, value)
        elif isinstance(default, bool) and not isinstance(value, bool):
            logger.warning("Ignoring config %r: expected true/false, got %r", key, value)
        elif isinstance(default, int) and not isinstance(default, bool) and (
            isinstance(value, bool) or not isinstance(value, int)
        ):
            logger.warning("Ignoring config %r: expected an integer, got %r", key, value)
        else:
            merged[key] = value
    return merged


class ConfigManager:
    """Settings loaded once on construction and written back on every change."""

    def __init__(self, directory: Path | None = None) -> None:
        self._dir = Path(directory) if directory else Path(user_config_dir(APP_NAME, appauthor=False))
        self._path = self._dir / CONFIG_FILENAME
        self._data = self._read()
        logger.debug("Config loaded from %s", self._path)

    # -- public API -----------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.update({key: value})

    def update(self, values: dict[str, Any]) -> None:
        """Apply several settings and persist them in one write."""
        self._data.update(values)
        self._write()

    def reset(self) -> None:
        logger.info("Resetting config to defaults")
        self._data = copy.deepcopy(_DEFAULTS)
        self._write()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def data(self) -> dict[str, Any]:
        """Deep copy; mutating it does not touch the settings."""
        return copy.deepcopy(self._data)

    @property
    def data_dir(self) -> Path:
        """Directory holding the per-project store files."""
        configured = self._data.get("data_dir")
        if configured:
            return Path(configured)
        return Path(user_data_dir(APP_NAME, appauthor=False)) / "store"

    @property
    def active_project_id(self) -> str | None:
        return self._data.get("active_project_id")

    # -- internals ------------------------------------------------------------

    def _read(self) -> dict[str, Any]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return copy.deepcopy(_DEFAULTS)
        except OSError as exc:
            logger.warning("Failed to read config %s: %s", self._path, exc)
            return copy.deepcopy(_DEFAULTS)
        try:
            stored = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Config %s is not valid JSON, using defaults: %s", self._path, exc)
            return copy.deepcopy(_DEFAULTS)
        if not isinstance(stored, dict):
            logger.warning("Config %s does not hold an object, using defaults", self._path)
            return copy.deepcopy(_DEFAULTS)
        return _merge(_DEFAULTS, stored)

    def _write(self) -> None:
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self._dir, prefix=".config-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(self._data, fh, indent=2, default=str)
            os.replace(tmp, self._path)
        except OSError as exc:
            logger.warning("Failed to save config to %s: %s", self._path, exc)
