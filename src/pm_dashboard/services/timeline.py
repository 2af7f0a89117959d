"""Merged stream of communications and decisions."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal, Union

from dateutil import parser as dtparser

from pm_dashboard.core.records import Communication, Decision
from pm_dashboard.services.communications import CommunicationLog
from pm_dashboard.services.decisions import DecisionLog

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class TimelineItem:
    """Common envelope; ``payload`` holds the source record."""

    kind: Literal["communication", "decision"]
    id: str
    project_id: str
    timestamp: str
    type: str
    title: str
    payload: Union[Communication, Decision]

    @property
    def sort_time(self) -> datetime:
        if not self.timestamp:
            return _EPOCH
        try:
            value = dtparser.isoparse(self.timestamp)
        except (ValueError, OverflowError):
            return _EPOCH
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def from_communication(communication: Communication) -> TimelineItem:
    return TimelineItem(
        kind="communication",
        id=communication.id,
        project_id=communication.project_id,
        timestamp=communication.timestamp or communication.created_at,
        type=communication.type,
        title=communication.subject,
        payload=communication,
    )


def from_decision(decision: Decision) -> TimelineItem:
    return TimelineItem(
        kind="decision",
        id=decision.id,
        project_id=decision.project_id,
        timestamp=decision.decision_date or decision.created_at,
        type="decision",
        title=decision.title,
        payload=decision,
    )


def build_timeline(
    communications: Iterable[Communication],
    decisions: Iterable[Decision],
) -> list[TimelineItem]:
    """Both sources as one list, most recent first."""
    items = [from_communication(c) for c in communications]
    items.extend(from_decision(d) for d in decisions)
    items.sort(key=lambda item: item.sort_time, reverse=True)
    return items


def project_timeline(log: CommunicationLog, decisions: DecisionLog) -> list[TimelineItem]:
    return build_timeline(log.history(), decisions.all())


def search_all(log: CommunicationLog, decisions: DecisionLog, query: str) -> list[TimelineItem]:
    """Case-insensitive search across communications and decisions."""
    if not query.strip():
        return []
    results = build_timeline(log.search(query), decisions.search(query))
    logger.debug("Search %r matched %d item(s)", query, len(results))
    return results
