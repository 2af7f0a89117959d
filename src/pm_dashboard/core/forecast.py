"""Deterministic and Monte-Carlo completion forecasts for initiatives."""

from __future__ import annotations

import logging
import math
import random
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, timedelta

from pm_dashboard.core.data_models import Initiative, Issue
from pm_dashboard.core.stats import (
    coefficient_of_variation,
    linear_slope,
    mean,
    round_half_up,
)

logger = logging.getLogger(__name__)

HISTORY_WEEKS = 8
MONTE_CARLO_SIMULATIONS = 1000

_MIN_VELOCITY_FACTOR = 0.05


@dataclass
class WeeklyThroughput:
    week: str  # ISO year-week, e.g. "2025-W07"
    issue_count: int = 0
    story_points: int = 0


@dataclass
class InitiativeVelocity:
    weekly_average: float = 0.0
    weekly_points_average: float = 0.0
    trend: float = 0.0
    consistency: float = 100.0
    weeks: list[WeeklyThroughput] = field(default_factory=list)


@dataclass
class Forecast:
    initiative: Initiative | None = None
    is_complete: bool = False
    forecast_date: date | None = None
    confidence: int = 0
    weeks_remaining: int | None = None
    optimistic_weeks: int | None = None
    pessimistic_weeks: int | None = None
    remaining_issues: int = 0
    remaining_points: int | None = None
    metric: str = "issueCount"  # "storyPoints" | "issueCount"
    velocity: InitiativeVelocity = field(default_factory=InitiativeVelocity)
    reason: str = ""


@dataclass
class DueDateComparison:
    status: str = "unknown"  # "ahead" | "on-track" | "warning" | "at-risk" | "unknown"
    gap_days: int | None = None
    weeks_gap: int | None = None

    @property
    def has_due_date(self) -> bool:
        return self.gap_days is not None

    @property
    def is_late(self) -> bool:
        return self.gap_days is not None and self.gap_days > 0


@dataclass
class ForecastRow:
    """A forecast paired with its due-date comparison."""

    initiative: Initiative
    forecast: Forecast
    comparison: DueDateComparison


@dataclass
class Percentile:
    probability: int
    weeks: int
    date: date


@dataclass
class MonteCarloResult:
    p10: Percentile
    p50: Percentile
    p90: Percentile
    min_weeks: int
    max_weeks: int
    mean_weeks: float
    samples: list[int] = field(default_factory=list)


def week_key(d: date) -> str:
    year, week, _ = d.isocalendar()
    return f"{year}-W{week:02d}"


def calculate_initiative_velocity(issues: Iterable[Issue]) -> InitiativeVelocity:
    """Weekly closure throughput over the most recent weeks with closures."""
    buckets: dict[str, WeeklyThroughput] = {}
    for issue in issues:
        if not issue.is_closed or issue.closed_at is None:
            continue
        key = week_key(issue.closed_at.date())
        bucket = buckets.setdefault(key, WeeklyThroughput(week=key))
        bucket.issue_count += 1
        bucket.story_points += issue.story_points or 0

    weeks = [buckets[k] for k in sorted(buckets)][-HISTORY_WEEKS:]
    if not weeks:
        return InitiativeVelocity()

    counts = [w.issue_count for w in weeks]
    points = [w.story_points for w in weeks]
    avg = mean(counts)
    trend = linear_slope(counts) / avg * 100 if avg else 0.0
    consistency = 100.0 if len(counts) < 2 else max(0.0, 100 - coefficient_of_variation(counts))
    return InitiativeVelocity(
        weekly_average=avg,
        weekly_points_average=mean(points),
        trend=trend,
        consistency=consistency,
        weeks=weeks,
    )


def calculate_confidence(trend: float, consistency: float) -> int:
    confidence = consistency
    if trend > 10:
        confidence = min(100.0, confidence + 10)
    elif trend < -10:
        confidence = max(0.0, confidence - 15)
    return round_half_up(max(0.0, min(100.0, confidence)))


def calculate_variance(weeks_remaining: int, consistency: float) -> tuple[int, int]:
    """Optimistic and pessimistic week counts around *weeks_remaining*."""
    spread = (100 - consistency) / 100
    optimistic = max(1, math.ceil(weeks_remaining * (1 - 0.2 * consistency / 100)))
    pessimistic = math.ceil(weeks_remaining * (1 + 0.5 + 0.5 * spread))
    return optimistic, pessimistic


def forecast_from_velocity(
    remaining: list[Issue],
    velocity: InitiativeVelocity,
    *,
    today: date | None = None,
) -> Forecast:
    """Project completion of *remaining* open issues at the given velocity."""
    today = today or date.today()
    forecast = Forecast(velocity=velocity, remaining_issues=len(remaining))
    if not remaining:
        forecast.is_complete = True
        forecast.forecast_date = today
        forecast.confidence = 100
        forecast.weeks_remaining = 0
        forecast.optimistic_weeks = 0
        forecast.pessimistic_weeks = 0
        return forecast

    has_points = any(i.story_points is not None for i in remaining)
    if has_points:
        forecast.metric = "storyPoints"
        forecast.remaining_points = sum(i.story_points or 0 for i in remaining)
        work, throughput = forecast.remaining_points, velocity.weekly_points_average
    else:
        work, throughput = len(remaining), velocity.weekly_average

    if throughput <= 0:
        forecast.reason = "No historical velocity data available"
        return forecast

    weeks = math.ceil(work / throughput)
    forecast.weeks_remaining = weeks
    forecast.confidence = calculate_confidence(velocity.trend, velocity.consistency)
    forecast.optimistic_weeks, forecast.pessimistic_weeks = calculate_variance(
        weeks, velocity.consistency
    )
    forecast.forecast_date = today + timedelta(weeks=weeks)
    return forecast


def forecast_completion(
    initiative: Initiative,
    *,
    today: date | None = None,
    velocity: InitiativeVelocity | None = None,
) -> Forecast:
    if velocity is None:
        velocity = calculate_initiative_velocity(initiative.issues)
    forecast = forecast_from_velocity(initiative.open_issues, velocity, today=today)
    forecast.initiative = initiative
    logger.debug(
        "Forecast for %s: %s week(s), confidence %d%%",
        initiative.id, forecast.weeks_remaining, forecast.confidence,
    )
    return forecast


def compare_to_due_date(due_date: date | None, forecast_date: date | None) -> DueDateComparison:
    if due_date is None or forecast_date is None:
        return DueDateComparison()
    gap = (forecast_date - due_date).days
    if gap > 14:
        status = "at-risk"
    elif gap > 7:
        status = "warning"
    elif gap < -14:
        status = "ahead"
    else:
        status = "on-track"
    return DueDateComparison(status=status, gap_days=gap, weeks_gap=round_half_up(gap / 7))


def forecast_all_initiatives(
    initiatives: Iterable[Initiative],
    *,
    today: date | None = None,
) -> list[ForecastRow]:
    """Forecast every initiative; latest against due date first, undated last."""
    rows = []
    for initiative in initiatives:
        forecast = forecast_completion(initiative, today=today)
        rows.append(
            ForecastRow(
                initiative=initiative,
                forecast=forecast,
                comparison=compare_to_due_date(initiative.due_date, forecast.forecast_date),
            )
        )
    rows.sort(
        key=lambda r: (
            not r.comparison.has_due_date,
            -(r.comparison.gap_days or 0),
        )
    )
    return rows


def monte_carlo_forecast(
    initiative: Initiative,
    *,
    simulations: int = MONTE_CARLO_SIMULATIONS,
    today: date | None = None,
    velocity: InitiativeVelocity | None = None,
    rng: random.Random | None = None,
) -> MonteCarloResult | None:
    """Sample completion weeks with velocity jittered by inconsistency.

    Returns ``None`` when there is nothing left or no velocity history.
    """
    today = today or date.today()
    rng = rng or random.Random()
    if velocity is None:
        velocity = calculate_initiative_velocity(initiative.issues)
    remaining = len(initiative.open_issues)
    if velocity.weekly_average <= 0 or remaining == 0 or simulations <= 0:
        return None

    spread = (100 - velocity.consistency) / 100
    samples = []
    for _ in range(simulations):
        factor = 1 + (rng.random() - 0.5) * 2 * spread
        simulated = velocity.weekly_average * max(factor, _MIN_VELOCITY_FACTOR)
        samples.append(math.ceil(remaining / simulated))
    samples.sort()

    def _percentile(p: int) -> Percentile:
        weeks = samples[math.floor(simulations * p / 100)]
        return Percentile(probability=p, weeks=weeks, date=today + timedelta(weeks=weeks))

    return MonteCarloResult(
        p10=_percentile(10),
        p50=_percentile(50),
        p90=_percentile(90),
        min_weeks=samples[0],
        max_weeks=samples[-1],
        mean_weeks=mean(samples),
        samples=samples,
    )
