"""Backlog readiness scoring for open issues."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

from pm_dashboard.core.data_models import Issue
from pm_dashboard.core.records import HealthSample
from pm_dashboard.core.stats import mean, percentage, round_half_up

logger = logging.getLogger(__name__)

DESCRIPTION_MIN_LENGTH = 50

REFINED_WEIGHT = 0.35
DESCRIBED_WEIGHT = 0.25
READY_WEIGHT = 0.40

HEALTHY_THRESHOLD = 75
ATTENTION_THRESHOLD = 60
TREND_BAND = 3
TREND_WINDOW = 3

MISSING_WEIGHT = "Weight/Story Points"
MISSING_DESCRIPTION = "Description"
MISSING_EPIC = "Epic"
MISSING_MILESTONE = "Milestone"
MISSING_ASSIGNEE = "Assignee"


@dataclass
class Readiness:
    refined: bool
    described: bool
    has_epic: bool
    has_milestone: bool
    has_assignee: bool

    @property
    def ready(self) -> bool:
        return (
            self.refined and self.described and self.has_epic
            and self.has_milestone and self.has_assignee
        )


@dataclass
class HealthAlert:
    severity: str  # "high" | "medium"
    message: str
    recommendation: str


@dataclass
class BacklogHealth:
    total_issues: int = 0
    refined_count: int = 0
    described_count: int = 0
    ready_count: int = 0
    refined_pct: int = 100
    described_pct: int = 100
    ready_pct: int = 100
    composite_score: int = 100
    status: str = "healthy"
    alert: HealthAlert | None = None
    missing_fields: dict[str, int] = field(default_factory=dict)


@dataclass
class HealthTrend:
    direction: str  # "improving" | "declining" | "stable"
    difference: int = 0


@dataclass
class BacklogBreakdown:
    refined: list[Issue] = field(default_factory=list)
    not_refined: list[Issue] = field(default_factory=list)
    described: list[Issue] = field(default_factory=list)
    not_described: list[Issue] = field(default_factory=list)
    ready: list[Issue] = field(default_factory=list)
    not_ready: list[Issue] = field(default_factory=list)
    story_points_count_as_refined: bool = False


@dataclass
class RefinementCandidate:
    issue: Issue
    needs_work_score: int
    missing_fields: list[str]


def issue_readiness(issue: Issue, *, story_points_count_as_refined: bool = False) -> Readiness:
    refined = issue.weight is not None and issue.weight > 0
    if story_points_count_as_refined and not refined:
        refined = bool(issue.story_points)
    return Readiness(
        refined=refined,
        described=len((issue.description or "").strip()) >= DESCRIPTION_MIN_LENGTH,
        has_epic=issue.epic is not None,
        has_milestone=issue.milestone is not None,
        has_assignee=bool(issue.assignees),
    )


def missing_fields(issue: Issue, *, story_points_count_as_refined: bool = False) -> list[str]:
    r = issue_readiness(issue, story_points_count_as_refined=story_points_count_as_refined)
    missing = []
    if not r.refined:
        missing.append(MISSING_WEIGHT)
    if not r.described:
        missing.append(MISSING_DESCRIPTION)
    if not r.has_epic:
        missing.append(MISSING_EPIC)
    if not r.has_milestone:
        missing.append(MISSING_MILESTONE)
    if not r.has_assignee:
        missing.append(MISSING_ASSIGNEE)
    return missing


def health_status(score: float) -> str:
    if score >= HEALTHY_THRESHOLD:
        return "healthy"
    if score >= ATTENTION_THRESHOLD:
        return "needs-attention"
    return "critical"


def calculate_backlog_health(
    issues: Iterable[Issue],
    *,
    story_points_count_as_refined: bool = False,
) -> BacklogHealth:
    """Score the open backlog; an empty backlog is fully healthy."""
    backlog = [i for i in issues if i.is_open]
    health = BacklogHealth(total_issues=len(backlog))
    if not backlog:
        return health

    for issue in backlog:
        r = issue_readiness(issue, story_points_count_as_refined=story_points_count_as_refined)
        health.refined_count += r.refined
        health.described_count += r.described
        health.ready_count += r.ready
        for name in missing_fields(issue, story_points_count_as_refined=story_points_count_as_refined):
            health.missing_fields[name] = health.missing_fields.get(name, 0) + 1

    total = len(backlog)
    health.refined_pct = percentage(health.refined_count, total)
    health.described_pct = percentage(health.described_count, total)
    health.ready_pct = percentage(health.ready_count, total)
    health.composite_score = round_half_up(
        health.refined_pct * REFINED_WEIGHT
        + health.described_pct * DESCRIBED_WEIGHT
        + health.ready_pct * READY_WEIGHT
    )
    health.status = health_status(health.composite_score)
    if health.composite_score < ATTENTION_THRESHOLD:
        health.alert = HealthAlert(
            severity="high",
            message="Critical: Backlog health is very low. Schedule immediate refinement session.",
            recommendation="Focus on refining top 10 priority items with weights and descriptions.",
        )
    elif health.composite_score < HEALTHY_THRESHOLD:
        health.alert = HealthAlert(
            severity="medium",
            message="Warning: Backlog health is below recommended threshold.",
            recommendation="Schedule backlog refinement session before next sprint planning.",
        )
    logger.debug(
        "Backlog health %d (%s) over %d open issues",
        health.composite_score, health.status, total,
    )
    return health


def health_trend(current: float, history: Sequence[HealthSample]) -> HealthTrend | None:
    """Direction of *current* against the mean of the last few samples."""
    if not history:
        return None
    baseline = mean([s.composite_score for s in history[-TREND_WINDOW:]])
    difference = current - baseline
    if abs(difference) <= TREND_BAND:
        return HealthTrend(direction="stable")
    return HealthTrend(
        direction="improving" if difference > 0 else "declining",
        difference=round_half_up(abs(difference)),
    )


def to_sample(health: BacklogHealth, *, now: datetime | None = None) -> HealthSample:
    now = now or datetime.now(timezone.utc)
    return HealthSample(
        timestamp=now.isoformat(),
        composite_score=health.composite_score,
        refined_pct=health.refined_pct,
        described_pct=health.described_pct,
        ready_pct=health.ready_pct,
        missing_fields=dict(health.missing_fields),
    )


def backlog_breakdown(
    issues: Iterable[Issue],
    *,
    story_points_count_as_refined: bool = False,
) -> BacklogBreakdown:
    breakdown = BacklogBreakdown(story_points_count_as_refined=story_points_count_as_refined)
    for issue in issues:
        if not issue.is_open:
            continue
        r = issue_readiness(issue, story_points_count_as_refined=story_points_count_as_refined)
        (breakdown.refined if r.refined else breakdown.not_refined).append(issue)
        (breakdown.described if r.described else breakdown.not_described).append(issue)
        (breakdown.ready if r.ready else breakdown.not_ready).append(issue)
    return breakdown


def issues_needing_refinement(
    issues: Iterable[Issue],
    limit: int = 10,
    *,
    story_points_count_as_refined: bool = False,
) -> list[RefinementCandidate]:
    """Open issues ranked by how much refinement they need, oldest first on ties."""
    scored = []
    for issue in issues:
        if not issue.is_open:
            continue
        r = issue_readiness(issue, story_points_count_as_refined=story_points_count_as_refined)
        score = (
            (0 if r.refined else 3)
            + (0 if r.described else 2)
            + (0 if r.has_epic else 1)
            + (0 if r.has_milestone else 1)
            + (0 if r.has_assignee else 1)
        )
        missing = missing_fields(issue, story_points_count_as_refined=story_points_count_as_refined)
        scored.append(RefinementCandidate(issue, score, missing))
    oldest = datetime.max.replace(tzinfo=timezone.utc)
    scored.sort(key=lambda c: (-c.needs_work_score, c.issue.created_at or oldest))
    return scored[:limit]
