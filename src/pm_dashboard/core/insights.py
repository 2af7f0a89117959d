"""Heuristic project insights derived from a snapshot.

Every analyser returns a (possibly empty) list of :class:`Insight`;
:func:`generate_insights` concatenates them and orders by severity.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from pm_dashboard.core import labels as label_utils
from pm_dashboard.core.data_models import Epic, Issue, Milestone, Risk
from pm_dashboard.core.stats import coefficient_of_variation, mean, round_half_up
from pm_dashboard.core.velocity import sprint_velocity

logger = logging.getLogger(__name__)

SEVERITY_ORDER = {"critical": 0, "warning": 1, "info": 2, "success": 3}

STALE_DAYS = 30
OVERLOAD_THRESHOLD = 8
UNASSIGNED_THRESHOLD = 10


@dataclass
class Insight:
    severity: str  # "critical" | "warning" | "info" | "success"
    category: str
    title: str
    description: str
    impact: str
    recommendation: str
    confidence: str = "Medium"


@dataclass
class InsightStats:
    total: int = 0
    critical: int = 0
    warning: int = 0
    info: int = 0
    success: int = 0


def generate_insights(
    issues: Iterable[Issue],
    milestones: Iterable[Milestone] = (),
    epics: Iterable[Epic] = (),
    risks: Iterable[Risk] = (),
    *,
    now: datetime | None = None,
) -> list[Insight]:
    now = now or datetime.now(timezone.utc)
    issues = list(issues)
    insights: list[Insight] = []
    insights += analyze_velocity(issues)
    insights += detect_bottlenecks(issues, now=now)
    insights += analyze_resources(issues)
    insights += analyze_milestones(issues, milestones, today=now.date())
    insights += analyze_epics(epics)
    insights += analyze_risks(risks)
    insights += forecast_insights(issues)
    insights += analyze_quality(issues)
    insights.sort(key=lambda i: SEVERITY_ORDER[i.severity])
    logger.debug("Generated %d insight(s)", len(insights))
    return insights


def insight_stats(insights: Iterable[Insight]) -> InsightStats:
    stats = InsightStats()
    for insight in insights:
        stats.total += 1
        setattr(stats, insight.severity, getattr(stats, insight.severity) + 1)
    return stats


def analyze_velocity(issues: list[Issue]) -> list[Insight]:
    """Compare the last three sprints with the three before them."""
    series = [s.issues_closed for s in sprint_velocity(issues)]
    if len(series) < 2:
        return []
    insights = []
    recent = series[-3:]
    older = series[-6:-3]
    avg_recent = mean(recent)
    avg_older = mean(older)
    if older and avg_older > 0:
        change = (avg_recent - avg_older) / avg_older * 100
        if change < -20:
            insights.append(Insight(
                severity="critical",
                category="Velocity",
                title="Significant Velocity Decline",
                description=(
                    f"Team velocity has dropped by {abs(round_half_up(change))}% over the last "
                    f"3 sprints ({round_half_up(avg_recent)} vs {round_half_up(avg_older)} issues/sprint)."
                ),
                impact="High - Delivery timeline at risk",
                recommendation=(
                    "Conduct retrospective to identify blockers. "
                    "Review team capacity and workload distribution."
                ),
                confidence="High",
            ))
        elif change < -10:
            insights.append(Insight(
                severity="warning",
                category="Velocity",
                title="Velocity Declining",
                description=f"Team velocity decreased by {abs(round_half_up(change))}% in recent sprints.",
                impact="Medium - Monitor closely",
                recommendation="Review sprint planning and identify potential bottlenecks.",
            ))
        elif change > 20:
            insights.append(Insight(
                severity="success",
                category="Velocity",
                title="Velocity Improvement",
                description=f"Team velocity increased by {round_half_up(change)}% - excellent progress!",
                impact="Positive - Ahead of schedule",
                recommendation="Document what is working well to maintain momentum.",
                confidence="High",
            ))

    cv = coefficient_of_variation(series)
    if cv > 40:
        insights.append(Insight(
            severity="warning",
            category="Velocity",
            title="Inconsistent Velocity",
            description=f"Velocity varies significantly between sprints (CV: {round_half_up(cv)}%).",
            impact="Medium - Unpredictable delivery",
            recommendation="Standardize sprint planning process. Ensure consistent team capacity.",
        ))
    return insights


def detect_bottlenecks(issues: list[Issue], *, now: datetime) -> list[Insight]:
    open_issues = [i for i in issues if i.is_open]
    if not open_issues:
        return []
    insights = []
    blocked = [i for i in open_issues if label_utils.has_label_containing(i.labels, ("blocker", "blocked"))]
    rate = len(blocked) / len(open_issues) * 100
    if rate > 20:
        insights.append(Insight(
            severity="critical",
            category="Bottlenecks",
            title="High Blocker Rate",
            description=f"{len(blocked)} issues blocked ({round_half_up(rate)}% of open issues).",
            impact="Critical - Team productivity severely impacted",
            recommendation=(
                "Immediate blocker resolution session required. Escalate to leadership if needed."
            ),
            confidence="High",
        ))
    elif rate > 10:
        insights.append(Insight(
            severity="warning",
            category="Bottlenecks",
            title="Elevated Blocker Count",
            description=f"{len(blocked)} issues are blocked.",
            impact="Medium - Productivity impact",
            recommendation="Schedule daily blocker review. Assign owners to resolve each blocker.",
            confidence="High",
        ))

    cutoff = now - timedelta(days=STALE_DAYS)
    stale = [i for i in open_issues if i.created_at is not None and i.created_at < cutoff]
    if len(stale) > len(open_issues) * 0.3:
        insights.append(Insight(
            severity="warning",
            category="Bottlenecks",
            title="High Number of Stale Issues",
            description=(
                f"{len(stale)} issues open for >{STALE_DAYS} days "
                f"({round_half_up(len(stale) / len(open_issues) * 100)}%)."
            ),
            impact="Medium - Work in progress accumulation",
            recommendation=(
                "Review and close or update stale issues. Consider breaking down large issues."
            ),
        ))
    return insights


def analyze_resources(issues: list[Issue]) -> list[Insight]:
    insights = []
    load: dict[str, int] = {}
    unassigned = 0
    for issue in issues:
        if not issue.is_open:
            continue
        if not issue.assignees:
            unassigned += 1
        for username in issue.assignee_usernames:
            load[username] = load.get(username, 0) + 1

    overloaded = sorted((c for c in load.values() if c > OVERLOAD_THRESHOLD), reverse=True)
    if overloaded:
        insights.append(Insight(
            severity="warning",
            category="Resources",
            title="Team Members Overloaded",
            description=(
                f"{len(overloaded)} team member(s) have >{OVERLOAD_THRESHOLD} open issues. "
                f"Most loaded: {overloaded[0]} issues."
            ),
            impact="High - Risk of burnout and delays",
            recommendation=(
                f"Rebalance workload. Redistribute {math.ceil(overloaded[0] * 0.3)} issues "
                "from most loaded member."
            ),
            confidence="High",
        ))
    if unassigned > UNASSIGNED_THRESHOLD:
        insights.append(Insight(
            severity="warning",
            category="Resources",
            title="Many Unassigned Issues",
            description=f"{unassigned} issues are unassigned.",
            impact="Medium - Unclear ownership",
            recommendation="Assign all issues to team members. Consider capacity planning.",
            confidence="High",
        ))
    return insights


def analyze_milestones(
    issues: list[Issue],
    milestones: Iterable[Milestone],
    *,
    today: date,
) -> list[Insight]:
    insights = []
    for milestone in milestones:
        if not milestone.is_active or milestone.due_date is None:
            continue
        scoped = [i for i in issues if i.milestone is not None and i.milestone.id == milestone.id]
        if not scoped:
            continue
        open_count = sum(1 for i in scoped if i.is_open)
        completion = (len(scoped) - open_count) / len(scoped) * 100
        days_remaining = (milestone.due_date - today).days

        if completion < 50 and 0 < days_remaining < 14:
            insights.append(Insight(
                severity="critical",
                category="Milestones",
                title=f"Milestone At Risk: {milestone.title}",
                description=(
                    f"Only {round_half_up(completion)}% complete with {days_remaining} days remaining."
                ),
                impact="Critical - Milestone deadline at risk",
                recommendation=(
                    f"Escalate. Reduce scope or extend deadline. {open_count} issues need completion."
                ),
                confidence="High",
            ))
        if days_remaining < 0 and open_count > 0:
            insights.append(Insight(
                severity="critical",
                category="Milestones",
                title=f"Milestone Overdue: {milestone.title}",
                description=f"{abs(days_remaining)} days overdue with {open_count} open issues.",
                impact="Critical - Milestone missed",
                recommendation="Immediate action required. Update timeline or close incomplete work.",
                confidence="High",
            ))
    return insights


def analyze_epics(epics: Iterable[Epic]) -> list[Insight]:
    insights = []
    for epic in epics:
        if not epic.is_open or len(epic.issues) <= 5:
            continue
        if epic.progress < 20:
            open_count = len(epic.issues) - epic.closed_issue_count
            insights.append(Insight(
                severity="info",
                category="Epics",
                title=f"Epic Needs Attention: {epic.title}",
                description=(
                    f"Only {round_half_up(epic.progress)}% complete with {open_count} open issues."
                ),
                impact="Medium - Epic progress slow",
                recommendation=(
                    "Review epic scope and prioritization. Consider breaking into smaller epics."
                ),
            ))
    return insights


def analyze_risks(risks: Iterable[Risk]) -> list[Insight]:
    high = [
        r for r in risks
        if r.status == "active" and r.probability == "high" and r.impact == "high"
    ]
    if len(high) <= 3:
        return []
    return [Insight(
        severity="critical",
        category="Risks",
        title="Multiple High-Priority Risks",
        description=f"{len(high)} active high-probability, high-impact risks.",
        impact="Critical - Project success threatened",
        recommendation="Executive risk review required. Implement mitigation plans immediately.",
        confidence="High",
    )]


def forecast_insights(issues: list[Issue]) -> list[Insight]:
    """Weeks to clear the open backlog at the recent sprint pace (two-week sprints)."""
    series = [s.issues_closed for s in sprint_velocity(issues)]
    if len(series) < 2:
        return []
    avg = mean(series[-3:])
    if avg <= 0:
        return []
    open_count = sum(1 for i in issues if i.is_open)
    weeks = math.ceil(open_count / (avg / 2))
    if weeks > 12:
        return [Insight(
            severity="warning",
            category="Forecast",
            title="Extended Completion Timeline",
            description=(
                f"At current velocity ({round_half_up(avg)} issues/sprint), "
                f"{weeks} weeks to complete."
            ),
            impact="Medium - Long delivery timeline",
            recommendation="Consider scope reduction or team augmentation.",
        )]
    if weeks < 4:
        return [Insight(
            severity="success",
            category="Forecast",
            title="On Track for Completion",
            description=f"Estimated {weeks} weeks to complete at current velocity.",
            impact="Positive - Delivery on schedule",
            recommendation="Maintain current pace. Prepare for release activities.",
        )]
    return []


def analyze_quality(issues: list[Issue]) -> list[Insight]:
    if not issues:
        return []
    bugs = [i for i in issues if label_utils.has_label_containing(i.labels, ("bug",))]
    rate = len(bugs) / len(issues) * 100
    if rate <= 30:
        return []
    return [Insight(
        severity="warning",
        category="Quality",
        title="High Bug Rate",
        description=f"{round_half_up(rate)}% of issues are bugs ({len(bugs)} total).",
        impact="Medium - Quality concerns",
        recommendation="Review testing processes. Consider adding automated tests.",
    )]
