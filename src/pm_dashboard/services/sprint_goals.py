"""Sprint goals (``sprintGoals`` key), one record per sprint id.

The working sprint is stored under the id ``current``.  Starting a new
sprint is an explicit step: :meth:`SprintGoalService.archive_current`
re-keys the ``current`` record so a fresh goal can be written.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from pm_dashboard.core.records import SPRINT_GOAL_ACHIEVEMENTS, SprintGoal, now_iso
from pm_dashboard.core.stats import round_half_up
from pm_dashboard.services.store import ProjectStore

logger = logging.getLogger(__name__)

SPRINT_GOALS_KEY = "sprintGoals"
CURRENT_SPRINT_ID = "current"
RECENT_WINDOW = 5

ACHIEVEMENT_SCORES = {"met": 100, "partial": 50, "not-met": 0}


def default_goal(sprint_id: str = CURRENT_SPRINT_ID, sprint_name: str = "") -> SprintGoal:
    return SprintGoal(sprint_id=sprint_id, sprint_name=sprint_name)


def achievement_rate(goals: list[SprintGoal]) -> int | None:
    """Weighted achievement over goals that have one, ``None`` if none do."""
    scored = [ACHIEVEMENT_SCORES[g.achievement] for g in goals if g.achievement in ACHIEVEMENT_SCORES]
    if not scored:
        return None
    return round_half_up(sum(scored) / len(scored))


class SprintGoalService:
    def __init__(self, store: ProjectStore) -> None:
        self._store = store

    def all(self) -> list[SprintGoal]:
        raw = self._store.read(SPRINT_GOALS_KEY, [])
        if not isinstance(raw, list):
            return []
        return [SprintGoal.from_dict(g) for g in raw if isinstance(g, dict)]

    def _write(self, goals: list[SprintGoal]) -> bool:
        return self._store.write(SPRINT_GOALS_KEY, [g.to_dict() for g in goals])

    def current(self, sprint_id: str = CURRENT_SPRINT_ID) -> SprintGoal | None:
        return next((g for g in self.all() if g.sprint_id == sprint_id), None)

    def save(self, goal: SprintGoal) -> SprintGoal:
        """Insert or replace the goal for ``goal.sprint_id``."""
        if goal.achievement is not None and goal.achievement not in SPRINT_GOAL_ACHIEVEMENTS:
            raise ValueError(f"Invalid achievement {goal.achievement!r}")
        goals = self.all()
        timestamp = now_iso()
        for idx, existing in enumerate(goals):
            if existing.sprint_id == goal.sprint_id:
                saved = replace(goal, created_at=existing.created_at or timestamp, updated_at=timestamp)
                goals[idx] = saved
                break
        else:
            saved = replace(goal, created_at=goal.created_at or timestamp, updated_at=timestamp)
            goals.append(saved)
        self._write(goals)
        logger.info("Sprint goal saved for %s", saved.sprint_id)
        return saved

    def delete(self, sprint_id: str) -> bool:
        goals = self.all()
        kept = [g for g in goals if g.sprint_id != sprint_id]
        if len(kept) == len(goals):
            return False
        self._write(kept)
        return True

    def archive_current(self, archived_id: str, sprint_name: str | None = None) -> SprintGoal | None:
        """Move the ``current`` goal to *archived_id*, freeing ``current``."""
        goals = self.all()
        if any(g.sprint_id == archived_id for g in goals):
            raise ValueError(f"Sprint goal {archived_id!r} already exists")
        for idx, existing in enumerate(goals):
            if existing.sprint_id == CURRENT_SPRINT_ID:
                archived = replace(
                    existing,
                    sprint_id=archived_id,
                    sprint_name=sprint_name if sprint_name is not None else existing.sprint_name,
                    updated_at=now_iso(),
                )
                goals[idx] = archived
                self._write(goals)
                logger.info("Archived current sprint goal as %s", archived_id)
                return archived
        return None

    def history(self) -> list[SprintGoal]:
        """All goals, most recently created first."""
        return sorted(self.all(), key=lambda g: g.created_at, reverse=True)

    def achievement_rate(self) -> int | None:
        return achievement_rate(self.all())

    def stats(self) -> dict[str, Any]:
        goals = self.history()
        rated = [g for g in goals if g.achievement in ACHIEVEMENT_SCORES]
        return {
            "total": len(goals),
            "met": sum(1 for g in rated if g.achievement == "met"),
            "partial": sum(1 for g in rated if g.achievement == "partial"),
            "not_met": sum(1 for g in rated if g.achievement == "not-met"),
            "pending": len(goals) - len(rated),
            "achievement_rate": achievement_rate(goals),
            "recent_achievement_rate": achievement_rate(rated[:RECENT_WINDOW]),
        }
