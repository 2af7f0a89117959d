"""Project-scoped JSON key-value store.

Every value lives in its own ``<key>.json`` file under a data directory.  A
*base* key such as ``sprintGoals`` is stored as ``sprintGoals_<projectId>``
while a project is active, or unsuffixed when there is no project or the
project is the ``cross-project`` sentinel.

Reads never raise: a missing or corrupt file yields the caller's default.
Writes return ``False`` instead of raising and notify ``<base>Changed``
subscribers only after the file has been replaced.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any
from urllib.parse import quote

from pm_dashboard.services.config_manager import ConfigManager

logger = logging.getLogger(__name__)

CROSS_PROJECT = "cross-project"

Migration = Callable[[Any], Any]
Listener = Callable[[str, Any], None]


class ProjectStore:
    """Key-value persistence with per-project namespacing."""

    def __init__(self, directory: Path, project_id: str | None = None) -> None:
        self._dir = Path(directory)
        self._project_id = project_id
        self._migrations: dict[str, list[Migration]] = {}
        self._listeners: dict[str, list[Listener]] = {}
        self._reported: set[str] = set()

    @classmethod
    def from_config(cls, config: ConfigManager) -> ProjectStore:
        """Store rooted at the configured data dir, scoped to the active project."""
        return cls(config.data_dir, config.active_project_id)

    # -- scoping --------------------------------------------------------------

    @property
    def project_id(self) -> str | None:
        return self._project_id

    @project_id.setter
    def project_id(self, value: str | None) -> None:
        self._project_id = value

    @property
    def is_cross_project(self) -> bool:
        return self._project_id is None or self._project_id == CROSS_PROJECT

    def scoped_key(self, base: str) -> str:
        if self.is_cross_project:
            return base
        return f"{base}_{self._project_id}"

    def path_for(self, base: str) -> Path:
        return self._dir / f"{quote(self.scoped_key(base), safe='')}.json"

    # -- read / write ---------------------------------------------------------

    def read(self, base: str, default: Any = None) -> Any:
        """Return the stored value for *base*, or a copy of *default*."""
        path = self.path_for(base)
        if not path.exists():
            return copy.deepcopy(default)
        try:
            with open(path, encoding="utf-8") as fh:
                value = json.load(fh)
        except (json.JSONDecodeError, OSError) as exc:
            key = self.scoped_key(base)
            if key not in self._reported:
                self._reported.add(key)
                logger.warning("Failed to read %s from %s: %s", key, path, exc)
            return copy.deepcopy(default)
        for migrate in self._migrations.get(base, []):
            value = migrate(value)
        return value

    def write(self, base: str, value: Any) -> bool:
        """Persist *value* atomically and emit ``<base>Changed``."""
        path = self.path_for(base)
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self._dir, prefix=".tmp-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(value, fh, indent=2, default=str)
                os.replace(tmp, path)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Failed to write %s to %s: %s", self.scoped_key(base), path, exc)
            return False
        self._reported.discard(self.scoped_key(base))
        self.emit(f"{base}Changed", value)
        return True

    def update(self, base: str, default: Any, fn: Callable[[Any], Any]) -> Any:
        """Read-modify-write *base*; returns the new value."""
        value = fn(self.read(base, default))
        self.write(base, value)
        return value

    def delete(self, base: str) -> bool:
        path = self.path_for(base)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Failed to delete %s: %s", path, exc)
            return False
        self.emit(f"{base}Changed", None)
        return True

    # -- migrations & events --------------------------------------------------

    def register_migration(self, base: str, migration: Migration) -> None:
        """Apply *migration* to every value read for *base*."""
        migrations = self._migrations.setdefault(base, [])
        if migration not in migrations:
            migrations.append(migration)

    def subscribe(self, event: str, listener: Listener) -> Callable[[], None]:
        """Register *listener* for *event*; returns an unsubscribe callable."""
        self._listeners.setdefault(event, []).append(listener)

        def _unsubscribe() -> None:
            listeners = self._listeners.get(event, [])
            if listener in listeners:
                listeners.remove(listener)

        return _unsubscribe

    def emit(self, event: str, value: Any) -> None:
        for listener in list(self._listeners.get(event, [])):
            listener(event, value)
