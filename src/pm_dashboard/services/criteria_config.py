"""Persisted quality-criteria catalog options and stale thresholds."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from pm_dashboard.core.compliance import (
    DEFAULT_STALE_THRESHOLDS,
    Criterion,
    StaleThresholds,
    build_criteria,
    merge_criteria_config,
)
from pm_dashboard.services.store import ProjectStore

logger = logging.getLogger(__name__)

CRITERIA_CONFIG_KEY = "qualityCriteriaConfig"

_VALID_SEVERITIES = ("high", "medium", "low")


class CriteriaConfigService:
    """Per-criterion ``{enabled, severity, threshold}`` overrides."""

    def __init__(self, store: ProjectStore, default_thresholds: dict[str, int] | None = None) -> None:
        self._store = store
        self._default_thresholds = dict(default_thresholds or DEFAULT_STALE_THRESHOLDS)

    def load(self) -> dict[str, Any]:
        stored = self._store.read(CRITERIA_CONFIG_KEY, {})
        if not isinstance(stored, dict):
            stored = {}
        thresholds = dict(self._default_thresholds)
        thresholds.update(stored.get("staleThresholds") or {})
        return {
            "staleThresholds": thresholds,
            "criteria": merge_criteria_config(stored.get("criteria")),
        }

    def save(self, config: dict[str, Any]) -> bool:
        for key, entry in (config.get("criteria") or {}).items():
            severity = entry.get("severity")
            if severity is not None and severity not in _VALID_SEVERITIES:
                raise ValueError(f"Invalid severity {severity!r} for criterion {key!r}")
        ok = self._store.write(CRITERIA_CONFIG_KEY, config)
        if ok:
            logger.info("Quality criteria config saved")
        return ok

    def set_criterion(self, key: str, **options: Any) -> dict[str, Any]:
        config = self.load()
        if key not in config["criteria"]:
            raise KeyError(key)
        config["criteria"][key].update(options)
        self.save(config)
        return config

    def set_stale_thresholds(self, warning: int, critical: int) -> dict[str, Any]:
        config = self.load()
        config["staleThresholds"] = {"warning": warning, "critical": critical}
        self.save(config)
        return config

    def reset(self) -> bool:
        return self._store.delete(CRITERIA_CONFIG_KEY)

    def stale_thresholds(self) -> StaleThresholds:
        return StaleThresholds.from_dict(self.load()["staleThresholds"])

    def criteria(self, *, now: datetime | None = None) -> list[Criterion]:
        config = self.load()
        return build_criteria(
            config["criteria"],
            StaleThresholds.from_dict(config["staleThresholds"]),
            now=now,
        )
