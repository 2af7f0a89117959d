"""Retrospective action items (``retroActions`` key)."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone

from dateutil import parser as dtparser

from pm_dashboard.core.records import RETRO_ACTION_STATUSES, RetroAction, new_id, now_iso
from pm_dashboard.core.stats import percentage, round_half_up
from pm_dashboard.services.store import ProjectStore

logger = logging.getLogger(__name__)

RETRO_ACTIONS_KEY = "retroActions"
ACTIVE_STATUSES = ("open", "in-progress")


@dataclass
class RetroStats:
    total: int = 0
    open: int = 0
    in_progress: int = 0
    done: int = 0
    wont_do: int = 0
    overdue: int = 0
    completion_rate: int = 0
    avg_days_to_complete: int | None = None


def _parse(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = dtparser.isoparse(value)
    except (ValueError, OverflowError):
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def is_overdue(action: RetroAction, today: date) -> bool:
    due = _parse(action.due_date)
    return action.status in ACTIVE_STATUSES and due is not None and due.date() < today


def days_to_complete(action: RetroAction) -> int | None:
    start, end = _parse(action.created_at), _parse(action.completed_at)
    if start is None or end is None:
        return None
    return max(0, math.ceil((end - start).total_seconds() / 86400))


class RetroActionService:
    def __init__(self, store: ProjectStore) -> None:
        self._store = store

    def all(self) -> list[RetroAction]:
        raw = self._store.read(RETRO_ACTIONS_KEY, [])
        if not isinstance(raw, list):
            return []
        return [RetroAction.from_dict(a) for a in raw if isinstance(a, dict)]

    def _write(self, actions: list[RetroAction]) -> bool:
        return self._store.write(RETRO_ACTIONS_KEY, [a.to_dict() for a in actions])

    def get(self, action_id: str) -> RetroAction | None:
        return next((a for a in self.all() if a.id == action_id), None)

    def for_sprint(self, sprint_id: str) -> list[RetroAction]:
        return [a for a in self.all() if a.sprint_id == sprint_id]

    def open_actions(self) -> list[RetroAction]:
        return [a for a in self.all() if a.status in ACTIVE_STATUSES]

    def overdue(self, *, today: date | None = None) -> list[RetroAction]:
        today = today or date.today()
        return [a for a in self.all() if is_overdue(a, today)]

    def recent(self, limit: int = 10) -> list[RetroAction]:
        return sorted(self.all(), key=lambda a: a.created_at, reverse=True)[:limit]

    def save(self, action: RetroAction) -> RetroAction:
        """Insert or update by id; entering ``done`` stamps ``completed_at``."""
        if action.status not in RETRO_ACTION_STATUSES:
            raise ValueError(f"Invalid retro action status {action.status!r}")
        actions = self.all()
        timestamp = now_iso()
        for idx, existing in enumerate(actions):
            if action.id and existing.id == action.id:
                completed_at = action.completed_at or existing.completed_at
                if action.status == "done" and not completed_at:
                    completed_at = timestamp
                elif action.status != "done":
                    completed_at = None
                saved = replace(
                    action,
                    created_at=existing.created_at,
                    updated_at=timestamp,
                    completed_at=completed_at,
                )
                actions[idx] = saved
                break
        else:
            saved = replace(
                action,
                id=action.id or new_id(),
                created_at=action.created_at or timestamp,
                updated_at=timestamp,
                completed_at=action.completed_at or (timestamp if action.status == "done" else None),
            )
            actions.append(saved)
        self._write(actions)
        logger.info("Retro action %s saved (%s)", saved.id, saved.status)
        return saved

    def delete(self, action_id: str) -> bool:
        actions = self.all()
        kept = [a for a in actions if a.id != action_id]
        if len(kept) == len(actions):
            return False
        self._write(kept)
        return True

    def complete(self, action_id: str) -> RetroAction | None:
        """Mark done; completing an already done action changes nothing."""
        actions = self.all()
        for idx, existing in enumerate(actions):
            if existing.id != action_id:
                continue
            if existing.status == "done" and existing.completed_at:
                return existing
            timestamp = now_iso()
            actions[idx] = replace(existing, status="done", completed_at=timestamp, updated_at=timestamp)
            self._write(actions)
            return actions[idx]
        return None

    def carry_over(self, from_sprint: str, to_sprint: str, to_sprint_name: str = "") -> int:
        """Copy unfinished actions of *from_sprint* into *to_sprint*."""
        actions = self.all()
        timestamp = now_iso()
        carried = [
            replace(
                a,
                id=new_id(),
                sprint_id=to_sprint,
                sprint_name=to_sprint_name or a.sprint_name,
                carried_from=a.id,
                created_at=timestamp,
                updated_at=timestamp,
                completed_at=None,
            )
            for a in actions
            if a.sprint_id == from_sprint and a.status in ACTIVE_STATUSES
        ]
        if carried:
            self._write(actions + carried)
            logger.info("Carried %d action(s) from %s to %s", len(carried), from_sprint, to_sprint)
        return len(carried)

    def stats(self, *, today: date | None = None) -> RetroStats:
        actions = self.all()
        if not actions:
            return RetroStats()
        today = today or date.today()
        done = [a for a in actions if a.status == "done"]
        durations = [d for d in (days_to_complete(a) for a in done) if d is not None]
        return RetroStats(
            total=len(actions),
            open=sum(1 for a in actions if a.status == "open"),
            in_progress=sum(1 for a in actions if a.status == "in-progress"),
            done=len(done),
            wont_do=sum(1 for a in actions if a.status == "wont-do"),
            overdue=sum(1 for a in actions if is_overdue(a, today)),
            completion_rate=percentage(len(done), len(actions)),
            avg_days_to_complete=round_half_up(sum(durations) / len(durations)) if durations else None,
        )
