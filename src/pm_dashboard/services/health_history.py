"""Backlog-health samples over time (``backlogHealthHistory`` key)."""

from __future__ import annotations

import logging
from datetime import datetime

from pm_dashboard.core.backlog_health import BacklogHealth, HealthTrend, health_trend, to_sample
from pm_dashboard.core.records import HealthSample
from pm_dashboard.services.config_manager import ConfigManager
from pm_dashboard.services.store import ProjectStore

logger = logging.getLogger(__name__)

HEALTH_HISTORY_KEY = "backlogHealthHistory"
DEFAULT_HISTORY_LIMIT = 30


class BacklogHealthHistory:
    """Oldest-first list of samples, trimmed to the most recent *limit*."""

    def __init__(self, store: ProjectStore, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self._store = store
        self.limit = limit

    @classmethod
    def from_config(cls, store: ProjectStore, config: ConfigManager) -> BacklogHealthHistory:
        return cls(store, int(config.get("backlog_health_history_limit", DEFAULT_HISTORY_LIMIT)))

    def samples(self) -> list[HealthSample]:
        raw = self._store.read(HEALTH_HISTORY_KEY, [])
        if not isinstance(raw, list):
            return []
        return [HealthSample.from_dict(s) for s in raw if isinstance(s, dict)]

    def record(self, health: BacklogHealth, *, now: datetime | None = None) -> HealthSample:
        sample = to_sample(health, now=now)
        history = self.samples()
        history.append(sample)
        history = history[-self.limit:] if self.limit > 0 else []
        self._store.write(HEALTH_HISTORY_KEY, [s.to_dict() for s in history])
        logger.debug("Recorded backlog health sample %s (%d kept)", sample.composite_score, len(history))
        return sample

    def trend(self, current: float) -> HealthTrend | None:
        return health_trend(current, self.samples())

    def clear(self) -> bool:
        return self._store.delete(HEALTH_HISTORY_KEY)
