"""Velocity settings and member absences, persisted under ``velocityConfig``."""

from __future__ import annotations

import copy
import logging
from datetime import date
from typing import Any

from dateutil import parser as dtparser

from pm_dashboard.core.data_models import Issue, Member
from pm_dashboard.core.records import Absence, new_id
from pm_dashboard.core.velocity import (
    TeamVelocity,
    VelocityEstimate,
    calculate_team_velocity,
    get_hours_per_unit,
    working_days,
)
from pm_dashboard.services.store import ProjectStore

logger = logging.getLogger(__name__)

VELOCITY_CONFIG_KEY = "velocityConfig"

DEFAULT_VELOCITY_CONFIG: dict[str, Any] = {
    "mode": "dynamic",  # "dynamic" | "static"
    "metricType": "points",  # "points" | "issues"
    "staticHoursPerSP": 6,
    "staticHoursPerIssue": 8,
    "velocityLookbackIterations": 3,
    "analyticsLookbackIterations": 3,
    "minIterationsForIndividualVelocity": 2,
    "absences": [],
}


def migrate_velocity_config(value: Any) -> dict[str, Any]:
    """Fill fields added after a config was first saved."""
    if not isinstance(value, dict):
        return copy.deepcopy(DEFAULT_VELOCITY_CONFIG)
    migrated = dict(value)
    if "velocityLookbackIterations" in migrated and "analyticsLookbackIterations" not in migrated:
        migrated["analyticsLookbackIterations"] = migrated["velocityLookbackIterations"]
    merged = copy.deepcopy(DEFAULT_VELOCITY_CONFIG)
    merged.update(migrated)
    return merged


class VelocityConfigService:
    """Load, save and apply the velocity configuration."""

    def __init__(self, store: ProjectStore) -> None:
        self._store = store
        store.register_migration(VELOCITY_CONFIG_KEY, migrate_velocity_config)

    def load(self) -> dict[str, Any]:
        return self._store.read(VELOCITY_CONFIG_KEY, DEFAULT_VELOCITY_CONFIG)

    def save(self, config: dict[str, Any]) -> bool:
        ok = self._store.write(VELOCITY_CONFIG_KEY, config)
        if ok:
            logger.info("Velocity config saved")
        return ok

    def update(self, **changes: Any) -> dict[str, Any]:
        config = self.load()
        config.update(changes)
        self.save(config)
        return config

    def reset(self) -> dict[str, Any]:
        self._store.delete(VELOCITY_CONFIG_KEY)
        return copy.deepcopy(DEFAULT_VELOCITY_CONFIG)

    # -- applying the config --------------------------------------------------

    def team_velocity(self, members: list[Member], issues: list[Issue]) -> TeamVelocity:
        config = self.load()
        return calculate_team_velocity(
            members,
            issues,
            lookback=int(config["velocityLookbackIterations"]),
            metric=config["metricType"],
            absences=AbsenceTracker(self._store),
        )

    def hours_per_unit(
        self,
        member: Member,
        issues: list[Issue],
        team: TeamVelocity | None = None,
    ) -> VelocityEstimate:
        """Hours per unit for *member*; static mode skips history entirely."""
        config = self.load()
        metric = config["metricType"]
        if config.get("mode") == "static":
            static = config["staticHoursPerIssue"] if metric == "issues" else config["staticHoursPerSP"]
            return VelocityEstimate(
                hours=float(static),
                source="static",
                quality="insufficient",
                details="Static velocity configured",
                metric=metric,
            )
        return get_hours_per_unit(
            member,
            issues,
            team,
            lookback=int(config["velocityLookbackIterations"]),
            metric=metric,
            static_hours_per_sp=float(config["staticHoursPerSP"]),
            static_hours_per_issue=float(config["staticHoursPerIssue"]),
            absences=AbsenceTracker(self._store),
            min_iterations=int(config["minIterationsForIndividualVelocity"]),
        )


class AbsenceTracker:
    """Member absences stored inside ``velocityConfig.absences``.

    Instances are callable with the :data:`~pm_dashboard.core.velocity.AbsenceLookup`
    signature so they can be handed straight to the velocity engine.
    """

    def __init__(self, store: ProjectStore) -> None:
        self._store = store
        store.register_migration(VELOCITY_CONFIG_KEY, migrate_velocity_config)

    def all(self) -> list[Absence]:
        config = self._store.read(VELOCITY_CONFIG_KEY, DEFAULT_VELOCITY_CONFIG)
        return [Absence.from_dict(a) for a in config.get("absences", []) if isinstance(a, dict)]

    def for_user(self, username: str) -> list[Absence]:
        return [a for a in self.all() if a.username == username]

    def add(
        self,
        username: str,
        start_date: date,
        end_date: date,
        reason: str = "",
        type: str = "vacation",
    ) -> Absence:
        """Record an absence, replacing any overlapping one for the same member."""
        absence = Absence(
            id=new_id(),
            username=username,
            start_date=start_date.isoformat(),
            end_date=end_date.isoformat(),
            reason=reason,
            type=type,
        )

        def _apply(config: dict[str, Any]) -> dict[str, Any]:
            kept = []
            for raw in config.get("absences", []):
                existing = Absence.from_dict(raw)
                if existing.username == username and _overlaps(existing, start_date, end_date):
                    continue
                kept.append(raw)
            kept.append(absence.to_dict())
            config["absences"] = kept
            return config

        self._store.update(VELOCITY_CONFIG_KEY, DEFAULT_VELOCITY_CONFIG, _apply)
        logger.info("Absence added for %s (%s to %s)", username, start_date, end_date)
        return absence

    def remove(self, absence_id: str) -> bool:
        removed = False

        def _apply(config: dict[str, Any]) -> dict[str, Any]:
            nonlocal removed
            before = config.get("absences", [])
            config["absences"] = [a for a in before if a.get("id") != absence_id]
            removed = len(config["absences"]) != len(before)
            return config

        self._store.update(VELOCITY_CONFIG_KEY, DEFAULT_VELOCITY_CONFIG, _apply)
        return removed

    def absence_hours(
        self,
        username: str,
        start: date,
        end: date,
        weekly_capacity: float = 40.0,
    ) -> float:
        """Hours lost to absences overlapping the inclusive range."""
        days_off = 0
        for absence in self.for_user(username):
            a_start, a_end = _dates(absence)
            if a_start is None or a_end is None:
                continue
            overlap_start = max(a_start, start)
            overlap_end = min(a_end, end)
            days_off += working_days(overlap_start, overlap_end)
        return days_off * weekly_capacity / 5

    __call__ = absence_hours


# -- helpers ------------------------------------------------------------------


def _dates(absence: Absence) -> tuple[date | None, date | None]:
    try:
        return (
            dtparser.parse(absence.start_date).date(),
            dtparser.parse(absence.end_date).date(),
        )
    except (ValueError, OverflowError):
        logger.debug("Ignoring absence %s with bad dates", absence.id)
        return None, None


def _overlaps(absence: Absence, start: date, end: date) -> bool:
    a_start, a_end = _dates(absence)
    if a_start is None or a_end is None:
        return False
    return a_start <= end and start <= a_end
