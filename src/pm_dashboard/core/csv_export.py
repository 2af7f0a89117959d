"""CSV projections of analytics results and stored records.

Every export is a header row followed by one row per record, in input
order.  Quoting is left to :mod:`csv` (minimal quoting: cells containing a
comma, quote or newline are wrapped and inner quotes doubled).
"""

from __future__ import annotations

import csv
import io
import logging
import math
from collections.abc import Iterable, Sequence
from datetime import date, datetime, timezone
from typing import Any

from dateutil import parser as dtparser

from pm_dashboard.core.backlog_health import BacklogBreakdown, issue_readiness, missing_fields
from pm_dashboard.core.compliance import ComplianceResult
from pm_dashboard.core.data_models import Initiative
from pm_dashboard.core.dependencies import BlockedIssue, recommended_actions
from pm_dashboard.core.dod import DoDResult
from pm_dashboard.core.forecast import ForecastRow
from pm_dashboard.core.initiatives import CascadeImpact, InitiativeEdge
from pm_dashboard.core.records import Decision, RetroAction, SprintGoal

logger = logging.getLogger(__name__)

CSV_CONTENT_TYPE = "text/csv;charset=utf-8"

DEFAULT_FILENAMES = {
    "non_compliant": "non-compliant-issues.csv",
    "dod_violations": "dod-violations.csv",
    "dependency_blockers": "dependency-blockers.csv",
    "retro_actions": "retro-actions.csv",
    "sprint_goals": "sprint-goals.csv",
    "initiative_forecast": "initiative-forecast.csv",
    "backlog_health": "backlog-health-issues.csv",
    "decisions": "decisions.csv",
    "initiative_dependencies": "initiative-dependencies.csv",
    "cascade_impact": "cascade-impact.csv",
}

_CRITERIA_COLUMNS = (
    ("assignee", "Missing Assignee"),
    ("weight", "Missing Weight"),
    ("epic", "Missing Epic"),
    ("description", "Missing Description"),
    ("labels", "Missing Type Label"),
    ("milestone", "Missing Milestone"),
    ("dueDate", "Missing Due Date"),
    ("priority", "Missing Priority"),
)


# -- helpers ------------------------------------------------------------------

def to_csv(headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
    writer.writerow(headers)
    for row in rows:
        writer.writerow(["" if cell is None else cell for cell in row])
    return buf.getvalue()


def format_short_date(value: date | datetime | str | None, default: str = "N/A") -> str:
    """``M/D/YYYY``, or *default* when the value is missing or unparseable."""
    if value is None or value == "":
        return default
    if isinstance(value, str):
        try:
            value = dtparser.isoparse(value)
        except (ValueError, OverflowError):
            return default
    return f"{value.month}/{value.day}/{value.year}"


def _yes_no(flag: bool, yes: str = "Yes", no: str = "No") -> str:
    return yes if flag else no


# -- public API ---------------------------------------------------------------

def export_non_compliant(results: Iterable[ComplianceResult]) -> str:
    headers = [
        "Issue ID", "Title", "State", "Compliance Score", "Violations",
        "Days Open", "Stale Status",
        *(label for _, label in _CRITERIA_COLUMNS),
        "Created At", "Updated At", "Author", "Current Assignees", "Epic", "Milestone", "URL",
    ]
    rows = []
    for result in results:
        issue = result.issue
        violated = {v.criterion for v in result.violations}
        stale = result.stale_status
        if stale.is_stale:
            stale_label = "CRITICAL" if stale.severity == "critical" else "WARNING"
        else:
            stale_label = "OK"
        rows.append([
            issue.iid,
            issue.title,
            issue.state,
            f"{result.score}%",
            len(result.violations),
            stale.days_open,
            stale_label,
            *(_yes_no(key in violated, "YES", "NO") for key, _ in _CRITERIA_COLUMNS),
            format_short_date(issue.created_at),
            format_short_date(issue.updated_at),
            issue.author.display_name if issue.author else "Unknown",
            ", ".join(m.display_name for m in issue.assignees) or "Unassigned",
            issue.epic.title if issue.epic else "None",
            issue.milestone.title if issue.milestone else "None",
            issue.web_url,
        ])
    return to_csv(headers, rows)


def export_dod_violations(results: Iterable[DoDResult]) -> str:
    headers = ["Issue ID", "Title", "Type", "State", "DoD Template", "Compliance %", "Missing Items", "URL"]
    rows = [
        [
            r.issue.iid,
            r.issue.title,
            r.issue_type,
            r.issue.state,
            r.template_name,
            f"{r.compliance_percentage}%",
            "; ".join(item.label for item in r.missing_items),
            r.issue.web_url,
        ]
        for r in results
    ]
    return to_csv(headers, rows)


def export_dependency_blockers(blocked: Iterable[BlockedIssue]) -> str:
    headers = [
        "Issue ID", "Title", "State", "Severity", "Open Dependencies",
        "Blocks Other Issues", "Impact Score", "Dependency Issues", "Recommended Action", "URL",
    ]
    rows = []
    for b in blocked:
        actions = recommended_actions(b)
        rows.append([
            b.issue.iid,
            b.issue.title,
            b.issue.state,
            b.severity,
            len(b.open_dependencies),
            b.blocks_count,
            b.impact,
            "; ".join(f"#{d.iid}: {d.title}" for d in b.open_dependencies),
            actions[0].action if actions else "Monitor",
            b.issue.web_url,
        ])
    return to_csv(headers, rows)


def export_retro_actions(actions: Iterable[RetroAction], *, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    headers = [
        "ID", "Sprint", "Action", "Owner", "Status", "Due Date",
        "Created At", "Completed At", "Carried From", "Days Open",
    ]
    rows = []
    for a in actions:
        rows.append([
            a.id,
            a.sprint_name or a.sprint_id,
            a.action,
            a.owner or "Unassigned",
            a.status,
            a.due_date or "N/A",
            format_short_date(a.created_at),
            format_short_date(a.completed_at),
            a.carried_from or "N/A",
            _days_open(a, now),
        ])
    return to_csv(headers, rows)


def _days_open(action: RetroAction, now: datetime) -> int | str:
    try:
        created = dtparser.isoparse(action.created_at)
        end = dtparser.isoparse(action.completed_at) if action.completed_at else now
    except (ValueError, OverflowError):
        return ""
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    seconds = (end - created).total_seconds()
    return max(0, math.ceil(seconds / 86400))


def export_sprint_goals(goals: Iterable[SprintGoal]) -> str:
    headers = ["Sprint ID", "Sprint Name", "Goal", "Achievement", "Notes", "Created At", "Updated At"]
    rows = [
        [
            g.sprint_id,
            g.sprint_name or "N/A",
            g.goal,
            g.achievement or "Not Completed",
            g.notes,
            format_short_date(g.created_at),
            format_short_date(g.updated_at),
        ]
        for g in goals
    ]
    return to_csv(headers, rows)


def export_initiative_forecast(rows_in: Iterable[ForecastRow]) -> str:
    headers = [
        "Initiative", "Status", "Progress %", "Due Date", "Forecast Date",
        "Gap (Days)", "Gap (Weeks)", "Forecast Status", "Weeks Remaining", "Confidence %",
        "Optimistic (Weeks)", "Pessimistic (Weeks)", "Weekly Velocity", "Remaining Issues",
    ]
    rows = []
    for row in rows_in:
        f, c, i = row.forecast, row.comparison, row.initiative
        has_gap = c.gap_days is not None
        rows.append([
            i.name,
            i.status,
            i.progress,
            format_short_date(i.due_date, "No due date"),
            format_short_date(f.forecast_date, "Cannot forecast"),
            c.gap_days if has_gap else "-",
            c.weeks_gap if has_gap else "-",
            c.status,
            f.weeks_remaining if f.weeks_remaining is not None else "-",
            f.confidence or "-",
            f.optimistic_weeks if f.optimistic_weeks is not None else "-",
            f.pessimistic_weeks if f.pessimistic_weeks is not None else "-",
            f"{f.velocity.weekly_average:.1f}" if f.velocity.weekly_average else "-",
            f.remaining_issues,
        ])
    return to_csv(headers, rows)


def export_backlog_health(breakdown: BacklogBreakdown) -> str:
    """Issues not yet ready for a sprint, with what each is missing."""
    sp_refined = breakdown.story_points_count_as_refined
    headers = [
        "Issue ID", "Title", "Has Weight", "Has Description", "Has Epic", "Has Milestone",
        "Has Assignee", "Ready for Sprint", "Missing Fields", "Created At", "URL",
    ]
    rows = []
    for issue in breakdown.not_ready:
        r = issue_readiness(issue, story_points_count_as_refined=sp_refined)
        rows.append([
            issue.iid,
            issue.title,
            _yes_no(r.refined),
            _yes_no(r.described),
            _yes_no(r.has_epic),
            _yes_no(r.has_milestone),
            _yes_no(r.has_assignee),
            _yes_no(r.ready),
            ", ".join(missing_fields(issue, story_points_count_as_refined=sp_refined)),
            format_short_date(issue.created_at),
            issue.web_url,
        ])
    return to_csv(headers, rows)


def export_decisions(decisions: Iterable[Decision]) -> str:
    headers = [
        "ID", "Title", "Status", "Decision Date", "Decided By", "Rationale",
        "Impact", "Linked Issues", "Reversed Reason", "Superseded By",
    ]
    rows = [
        [
            d.id,
            d.title,
            d.status,
            format_short_date(d.decision_date),
            d.decided_by,
            d.rationale,
            d.impact,
            "; ".join(f"#{i}" for i in d.linked_issues),
            d.reversed_reason,
            d.reversed_by or "",
        ]
        for d in decisions
    ]
    return to_csv(headers, rows)


def export_initiative_dependencies(initiatives: Iterable[Initiative], edges: Iterable[InitiativeEdge]) -> str:
    """One row per dependency, grouped by the depending initiative."""
    headers = [
        "Initiative", "Status", "Progress %", "Depends On Initiative", "Dependency Status",
        "Dependency Progress %", "Total Dependencies", "Open Dependencies", "Severity", "Is Blocking",
    ]
    by_source: dict[str, list[InitiativeEdge]] = {}
    for edge in edges:
        by_source.setdefault(edge.source.id, []).append(edge)

    rows: list[list[Any]] = []
    for initiative in initiatives:
        outgoing = by_source.get(initiative.id, [])
        if not outgoing:
            rows.append([
                initiative.name, initiative.status, initiative.progress,
                "No dependencies", "-", "-", 0, 0, "-", "No",
            ])
            continue
        for idx, edge in enumerate(outgoing):
            first = idx == 0
            rows.append([
                initiative.name if first else "",
                initiative.status if first else "",
                initiative.progress if first else "",
                edge.target.name,
                edge.target.status,
                edge.target.progress,
                edge.count,
                edge.open_count,
                edge.severity,
                _yes_no(edge.is_blocking),
            ])
    return to_csv(headers, rows)


def export_cascade_impact(impact: CascadeImpact) -> str:
    headers = [
        "Source Initiative", "Delay (Weeks)", "Impacted Initiative", "Status",
        "Progress %", "Dependency Depth", "Estimated Delay (Weeks)",
    ]
    source_name = impact.source.name if impact.source else ""
    rows = [
        [
            source_name if idx == 0 else "",
            impact.delay_weeks if idx == 0 else "",
            item.initiative.name,
            item.initiative.status,
            item.initiative.progress,
            item.depth,
            item.estimated_delay_weeks,
        ]
        for idx, item in enumerate(impact.impacted)
    ]
    return to_csv(headers, rows)
