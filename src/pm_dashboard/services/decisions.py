"""Decision log (``decisions`` key)."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any

from dateutil import parser as dtparser

from pm_dashboard.core.records import DECISION_STATUSES, Decision, new_id, now_iso
from pm_dashboard.services.store import ProjectStore

logger = logging.getLogger(__name__)

DECISIONS_KEY = "decisions"


def _decision_time(decision: Decision) -> datetime | None:
    raw = decision.decision_date or decision.created_at
    if not raw:
        return None
    try:
        value = dtparser.isoparse(raw)
    except (ValueError, OverflowError):
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class DecisionLog:
    """CRUD and reversal over recorded decisions, newest first."""

    def __init__(self, store: ProjectStore) -> None:
        self._store = store

    def all(self) -> list[Decision]:
        raw = self._store.read(DECISIONS_KEY, [])
        if not isinstance(raw, list):
            return []
        return [Decision.from_dict(d) for d in raw if isinstance(d, dict)]

    def _write(self, decisions: list[Decision]) -> bool:
        return self._store.write(DECISIONS_KEY, [d.to_dict() for d in decisions])

    def get(self, decision_id: str) -> Decision | None:
        return next((d for d in self.all() if d.id == decision_id), None)

    def save(self, decision: Decision) -> Decision:
        """Update the decision with the same id, or prepend a new one."""
        decisions = self.all()
        timestamp = now_iso()
        for idx, existing in enumerate(decisions):
            if decision.id and existing.id == decision.id:
                updated = replace(
                    decision,
                    project_id=existing.project_id,
                    created_at=existing.created_at,
                    updated_at=timestamp,
                )
                decisions[idx] = updated
                self._write(decisions)
                return updated

        if decision.status not in DECISION_STATUSES:
            raise ValueError(f"Invalid decision status {decision.status!r}")
        record = replace(
            decision,
            id=decision.id or new_id(),
            project_id=self._store.project_id or "default",
            decision_date=decision.decision_date or timestamp,
            created_at=timestamp,
            updated_at=timestamp,
        )
        decisions.insert(0, record)
        self._write(decisions)
        logger.info("Decision recorded: %s", record.title or record.id)
        return record

    def delete(self, decision_id: str) -> bool:
        decisions = self.all()
        kept = [d for d in decisions if d.id != decision_id]
        if len(kept) == len(decisions):
            return False
        self._write(kept)
        return True

    def reverse(self, decision_id: str, reason: str, new_decision_id: str | None = None) -> Decision | None:
        """Mark a decision ``superseded`` (when replaced) or ``reversed``."""
        decisions = self.all()
        for idx, existing in enumerate(decisions):
            if existing.id != decision_id:
                continue
            timestamp = now_iso()
            updated = replace(
                existing,
                status="superseded" if new_decision_id else "reversed",
                reversed_by=new_decision_id,
                reversed_reason=reason,
                reversed_at=timestamp,
                updated_at=timestamp,
            )
            decisions[idx] = updated
            self._write(decisions)
            logger.info("Decision %s marked %s", decision_id, updated.status)
            return updated
        return None

    def recent(self, days: int = 30, *, now: datetime | None = None) -> list[Decision]:
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
        result = []
        for decision in self.all():
            when = _decision_time(decision)
            if when is not None and when >= cutoff:
                result.append(decision)
        return result

    def stats(self) -> dict[str, Any]:
        decisions = self.all()
        counts = Counter(d.status for d in decisions)
        return {
            "total": len(decisions),
            **{status: counts.get(status, 0) for status in DECISION_STATUSES},
        }

    def search(self, query: str) -> list[Decision]:
        needle = query.lower()
        return [
            d for d in self.all()
            if needle in d.title.lower()
            or needle in d.description.lower()
            or needle in d.rationale.lower()
            or any(needle in str(i).lower() for i in d.linked_issues)
        ]
