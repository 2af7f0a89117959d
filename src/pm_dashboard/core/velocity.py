"""Member and team velocity expressed as hours per unit of work.

A unit is either a story point (``metric="points"``) or a closed issue
(``metric="issues"``).  Capacity comes from the member's weekly hours, scaled
to the working days of each iteration and reduced by absences.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import date, timedelta

from pm_dashboard.core.data_models import Issue, Member
from pm_dashboard.core.stats import mean

logger = logging.getLogger(__name__)

# (username, start, end, weekly_capacity) -> hours unavailable
AbsenceLookup = Callable[[str, date, date, float], float]

DEFAULT_HOURS_PER_SP = 6.0
DEFAULT_HOURS_PER_ISSUE = 8.0
DEFAULT_MIN_ITERATIONS = 2


@dataclass
class IterationVelocity:
    name: str
    start_date: date
    end_date: date
    story_points: int = 0
    issue_count: int = 0
    capacity_hours: float = 0.0
    absence_hours: float = 0.0
    hours_available: float = 0.0


@dataclass
class MemberVelocity:
    username: str
    metric: str = "points"
    hours_per_unit: float | None = None
    iterations_analyzed: int = 0
    total_story_points: int = 0
    total_issue_count: int = 0
    total_metric_value: int = 0
    total_hours: float = 0.0
    quality: str = "insufficient"
    reason: str = ""
    iterations: list[IterationVelocity] = field(default_factory=list)


@dataclass
class TeamVelocity:
    metric: str = "points"
    hours_per_unit: float | None = None
    members_analyzed: int = 0
    quality: str = "insufficient"


@dataclass
class VelocityEstimate:
    hours: float
    source: str  # "individual" | "team-average" | "static"
    quality: str
    details: str
    metric: str = "points"


@dataclass
class SprintVelocity:
    """Closed work per iteration, for trend charts and insights."""

    name: str
    start_date: date
    end_date: date
    issues_closed: int = 0
    points_closed: int = 0


def working_days(start: date, end: date) -> int:
    """Monday-to-Friday days in the inclusive range."""
    if end < start:
        return 0
    days = 0
    current = start
    while current <= end:
        if current.weekday() < 5:
            days += 1
        current += timedelta(days=1)
    return days


def hours_available(
    weekly_capacity: float,
    start: date,
    end: date,
    absence_hours: float = 0.0,
) -> float:
    capacity = working_days(start, end) * weekly_capacity / 5
    return max(0.0, capacity - absence_hours)


def data_quality(iterations_observed: int, total_value: float = 1) -> str:
    if iterations_observed <= 0 or total_value <= 0:
        return "insufficient"
    if iterations_observed >= 3:
        return "high"
    if iterations_observed == 2:
        return "medium"
    return "low"


def issue_units(issue: Issue) -> int:
    """Story points from ``sp::N``, else the weight, else 0."""
    points = issue.story_points
    if points:
        return points
    return issue.weight or 0


def calculate_member_velocity(
    username: str,
    issues: Iterable[Issue],
    weekly_capacity: float = 40.0,
    lookback: int = 3,
    metric: str = "points",
    absences: AbsenceLookup | None = None,
) -> MemberVelocity:
    """Hours per unit for one member over the *lookback* most recent iterations."""
    result = MemberVelocity(username=username, metric=metric)
    grouped: dict[str, IterationVelocity] = {}
    for issue in issues:
        if not issue.is_closed or issue.iteration is None:
            continue
        if username not in issue.assignee_usernames:
            continue
        points = issue_units(issue)
        if metric == "points" and points <= 0:
            continue
        it = issue.iteration
        entry = grouped.setdefault(
            it.title, IterationVelocity(name=it.title, start_date=it.start_date, end_date=it.end_date)
        )
        entry.story_points += points
        entry.issue_count += 1

    if not grouped:
        result.reason = f"No completed work in iterations for {username}"
        logger.debug("Velocity for %s: no iteration history", username)
        return result

    recent = sorted(grouped.values(), key=lambda it: it.end_date, reverse=True)[:lookback]
    for it in recent:
        it.capacity_hours = working_days(it.start_date, it.end_date) * weekly_capacity / 5
        if absences is not None:
            it.absence_hours = absences(username, it.start_date, it.end_date, weekly_capacity)
        it.hours_available = max(0.0, it.capacity_hours - it.absence_hours)
        result.total_story_points += it.story_points
        result.total_issue_count += it.issue_count
        result.total_hours += it.hours_available

    result.iterations = recent
    result.iterations_analyzed = len(recent)
    result.total_metric_value = (
        result.total_issue_count if metric == "issues" else result.total_story_points
    )
    result.quality = data_quality(result.iterations_analyzed, result.total_metric_value)
    if result.total_metric_value > 0:
        result.hours_per_unit = round(result.total_hours / result.total_metric_value, 1)
    else:
        result.reason = "No measurable work in analysed iterations"

    logger.debug(
        "Velocity for %s (%s): %s h/unit over %d iteration(s), quality=%s",
        username, metric, result.hours_per_unit, result.iterations_analyzed, result.quality,
    )
    return result


def calculate_team_velocity(
    members: Iterable[Member],
    issues: Iterable[Issue],
    lookback: int = 3,
    metric: str = "points",
    absences: AbsenceLookup | None = None,
) -> TeamVelocity:
    """Mean of every member's non-null hours per unit."""
    issues = list(issues)
    values = []
    for member in members:
        mv = calculate_member_velocity(
            member.username, issues, member.weekly_capacity, lookback, metric, absences
        )
        if mv.hours_per_unit is not None:
            values.append(mv.hours_per_unit)
    team = TeamVelocity(metric=metric, members_analyzed=len(values))
    if values:
        team.hours_per_unit = round(mean(values), 1)
        team.quality = "high" if len(values) >= 3 else "medium"
    return team


def get_hours_per_unit(
    member: Member,
    issues: Iterable[Issue],
    team: TeamVelocity | None = None,
    *,
    lookback: int = 3,
    metric: str = "points",
    static_hours_per_sp: float = DEFAULT_HOURS_PER_SP,
    static_hours_per_issue: float = DEFAULT_HOURS_PER_ISSUE,
    absences: AbsenceLookup | None = None,
    min_iterations: int = DEFAULT_MIN_ITERATIONS,
) -> VelocityEstimate:
    """Individual figure if trustworthy, else team average, else the static default.

    The individual figure counts once it covers at least *min_iterations*
    iterations with completed work.
    """
    mv = calculate_member_velocity(
        member.username, issues, member.weekly_capacity, lookback, metric, absences
    )
    unit = "issue" if metric == "issues" else "SP"

    if mv.hours_per_unit is not None and mv.iterations_analyzed >= max(min_iterations, 1):
        return VelocityEstimate(
            hours=mv.hours_per_unit,
            source="individual",
            quality=mv.quality,
            details=f"Based on {mv.iterations_analyzed} iterations",
            metric=metric,
        )

    if team is not None and team.hours_per_unit is not None:
        return VelocityEstimate(
            hours=team.hours_per_unit,
            source="team-average",
            quality=team.quality,
            details=f"Team average ({team.members_analyzed} members)",
            metric=metric,
        )

    static = static_hours_per_issue if metric == "issues" else static_hours_per_sp
    logger.debug("%s falls back to static %s h/%s", member.username, static, unit)
    return VelocityEstimate(
        hours=static,
        source="static",
        quality=mv.quality,
        details=(
            f"No historical data (needs at least {min_iterations} iterations "
            f"with completed work per {unit})"
        ),
        metric=metric,
    )


get_hours_per_story_point = get_hours_per_unit


def sprint_velocity(issues: Iterable[Issue]) -> list[SprintVelocity]:
    """Closed issues and points per iteration, oldest iteration first."""
    grouped: dict[str, SprintVelocity] = {}
    for issue in issues:
        if not issue.is_closed or issue.iteration is None:
            continue
        it = issue.iteration
        entry = grouped.setdefault(
            it.title, SprintVelocity(name=it.title, start_date=it.start_date, end_date=it.end_date)
        )
        entry.issues_closed += 1
        entry.points_closed += issue.story_points or 0
    return sorted(grouped.values(), key=lambda s: s.end_date)
