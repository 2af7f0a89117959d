"""Normalise raw issue-tracker JSON into :mod:`data_models` entities.

The upstream client is out of scope; this module accepts the dict shapes a
GitLab-style REST API returns and builds a :class:`Snapshot`.  Missing keys
and unparseable timestamps are tolerated and become ``None``.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any

from dateutil import parser as dtparser

from pm_dashboard.core import labels as label_utils
from pm_dashboard.core.data_models import (
    Epic,
    EpicRef,
    Issue,
    Iteration,
    Member,
    Milestone,
    Snapshot,
)

logger = logging.getLogger(__name__)


def load_snapshot(data: dict[str, Any]) -> Snapshot:
    """Build a :class:`Snapshot` from ``{issues, epics, milestones, iterations, members}``."""
    iterations = [it for it in (iteration_from_dict(r) for r in data.get("iterations") or []) if it]
    milestones = [milestone_from_dict(r) for r in data.get("milestones") or []]
    members = [member_from_dict(r) for r in data.get("members") or []]
    issues = [issue_from_dict(r) for r in data.get("issues") or []]

    _resolve_iterations(issues, iterations)

    epics: list[Epic] = []
    for raw in data.get("epics") or []:
        epic = epic_from_dict(raw)
        _resolve_iterations(epic.issues, iterations)
        epics.append(epic)
    _attach_issues_to_epics(epics, issues)

    project_id = data.get("project_id")
    snap = Snapshot(
        issues=issues,
        epics=epics,
        milestones=milestones,
        iterations=iterations,
        members=members,
        project_id=str(project_id) if project_id is not None else None,
    )
    logger.debug(
        "Loaded snapshot: %d issues, %d epics, %d milestones, %d iterations, %d members",
        len(issues), len(epics), len(milestones), len(iterations), len(members),
    )
    return snap


def issue_from_dict(raw: dict[str, Any]) -> Issue:
    state = "closed" if raw.get("state") == "closed" else "opened"
    created = _parse_dt(raw.get("created_at"))
    updated = _parse_dt(raw.get("updated_at"))
    closed = _parse_dt(raw.get("closed_at")) if state == "closed" else None
    if state == "closed" and closed is None:
        closed = updated
    project_id = raw.get("project_id")

    return Issue(
        iid=int(raw.get("iid") or 0),
        title=raw.get("title") or "",
        state=state,
        description=raw.get("description") or "",
        id=raw.get("id"),
        project_id=str(project_id) if project_id is not None else None,
        created_at=created,
        updated_at=updated,
        closed_at=closed,
        assignees=[member_from_dict(a) for a in raw.get("assignees") or []],
        author=member_from_dict(raw["author"]) if raw.get("author") else None,
        labels=[str(lbl) for lbl in raw.get("labels") or []],
        milestone=milestone_from_dict(raw["milestone"]) if raw.get("milestone") else None,
        epic=_epic_ref(raw.get("epic")),
        weight=_parse_weight(raw.get("weight")),
        due_date=_parse_date(raw.get("due_date")),
        iteration=iteration_from_dict(raw["iteration"]) if raw.get("iteration") else None,
        web_url=raw.get("web_url") or "",
    )


def epic_from_dict(raw: dict[str, Any]) -> Epic:
    epic = Epic(
        id=int(raw.get("id") or 0),
        iid=raw.get("iid"),
        title=raw.get("title") or "",
        state="closed" if raw.get("state") == "closed" else "opened",
        description=raw.get("description") or "",
        labels=[str(lbl) for lbl in raw.get("labels") or []],
        start_date=_parse_date(raw.get("start_date")),
        due_date=_parse_date(raw.get("due_date") or raw.get("end_date")),
        web_url=raw.get("web_url") or "",
    )
    epic.issues = [issue_from_dict(r) for r in raw.get("issues") or []]
    return epic


def milestone_from_dict(raw: dict[str, Any]) -> Milestone:
    return Milestone(
        id=int(raw.get("id") or 0),
        title=raw.get("title") or "",
        state="closed" if raw.get("state") == "closed" else "active",
        due_date=_parse_date(raw.get("due_date")),
        start_date=_parse_date(raw.get("start_date")),
    )


def iteration_from_dict(raw: dict[str, Any]) -> Iteration | None:
    start = _parse_date(raw.get("start_date"))
    end = _parse_date(raw.get("due_date") or raw.get("end_date"))
    if start is None or end is None:
        logger.debug("Skipping iteration %r without dates", raw.get("title"))
        return None
    return Iteration(
        id=str(raw.get("id") or raw.get("title") or ""),
        title=raw.get("title") or f"Iteration {raw.get('iid') or raw.get('id')}",
        start_date=start,
        end_date=end,
    )


def member_from_dict(raw: dict[str, Any]) -> Member:
    capacity = raw.get("weekly_capacity")
    return Member(
        username=raw.get("username") or "",
        name=raw.get("name") or "",
        weekly_capacity=float(capacity) if capacity is not None else 40.0,
    )


# -- helpers ------------------------------------------------------------------


def _resolve_iterations(issues: list[Issue], iterations: list[Iteration]) -> None:
    """Link ``iteration::`` labels to known iterations.

    A first-class iteration already on the issue takes precedence.
    """
    by_title = {it.title.lower(): it for it in iterations}
    for issue in issues:
        if issue.iteration is not None:
            continue
        name = label_utils.iteration_label(issue.labels)
        if name:
            issue.iteration = by_title.get(name.lower())


def _attach_issues_to_epics(epics: list[Epic], issues: list[Issue]) -> None:
    by_id = {e.id: e for e in epics}
    for issue in issues:
        if issue.epic is None:
            continue
        epic = by_id.get(issue.epic.id)
        if epic is None:
            continue
        if all(existing.key != issue.key for existing in epic.issues):
            epic.issues.append(issue)


def _epic_ref(raw: dict[str, Any] | None) -> EpicRef | None:
    if not raw or raw.get("id") is None:
        return None
    return EpicRef(id=int(raw["id"]), iid=raw.get("iid"), title=raw.get("title") or "")


def _parse_weight(value: Any) -> int | None:
    if value is None:
        return None
    try:
        weight = int(value)
    except (TypeError, ValueError):
        return None
    return weight if weight >= 0 else None


def _parse_dt(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = dtparser.parse(str(value))
        except (ValueError, OverflowError):
            logger.debug("Could not parse datetime %r", value)
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _parse_date(value: Any) -> date | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return dtparser.parse(str(value)).date()
    except (ValueError, OverflowError):
        logger.debug("Could not parse date %r", value)
        return None
