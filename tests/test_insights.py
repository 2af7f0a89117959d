"""Tests for pm_dashboard.core.insights."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from pm_dashboard.core.data_models import Epic, Issue, Iteration, Member, Milestone, Risk
from pm_dashboard.core.insights import (
    SEVERITY_ORDER,
    analyze_epics,
    analyze_milestones,
    analyze_quality,
    analyze_resources,
    analyze_risks,
    analyze_velocity,
    detect_bottlenecks,
    forecast_insights,
    generate_insights,
    insight_stats,
)

NOW = datetime(2025, 5, 1, tzinfo=timezone.utc)


def _make_issue(
    iid: int,
    *,
    state: str = "opened",
    labels: list[str] | None = None,
    assignee: str | None = "alice",
    age_days: int = 1,
    milestone: Milestone | None = None,
    iteration: Iteration | None = None,
) -> Issue:
    return Issue(
        iid=iid,
        title=f"Issue {iid}",
        state=state,
        labels=labels or [],
        assignees=[Member(assignee)] if assignee else [],
        created_at=NOW - timedelta(days=age_days),
        milestone=milestone,
        iteration=iteration,
    )


def _sprint(n: int) -> Iteration:
    start = date(2025, 1, 6) + timedelta(weeks=2 * n)
    return Iteration(str(n), f"Sprint {n}", start, start + timedelta(days=11))


def _closed_in_sprints(counts: list[int]) -> list[Issue]:
    issues = []
    for n, count in enumerate(counts):
        for k in range(count):
            issues.append(_make_issue(100 * (n + 1) + k, state="closed", iteration=_sprint(n)))
    return issues


class TestVelocityInsights:
    """Recent sprints against the three before them."""

    def test_decline(self) -> None:
        insights = analyze_velocity(_closed_in_sprints([10, 10, 10, 5, 5, 5]))
        assert [i.title for i in insights] == ["Significant Velocity Decline"]
        assert insights[0].severity == "critical"
        assert "50%" in insights[0].description

    def test_improvement(self) -> None:
        insights = analyze_velocity(_closed_in_sprints([4, 4, 4, 6, 6, 6]))
        assert [i.severity for i in insights] == ["success"]

    def test_inconsistent(self) -> None:
        insights = analyze_velocity(_closed_in_sprints([1, 9]))
        assert [i.title for i in insights] == ["Inconsistent Velocity"]

    def test_single_sprint(self) -> None:
        assert analyze_velocity(_closed_in_sprints([5])) == []


class TestBottlenecks:
    def test_blocker_rate(self) -> None:
        issues = [_make_issue(1, labels=["Blocked"]), _make_issue(2), _make_issue(3)]
        insights = detect_bottlenecks(issues, now=NOW)
        assert insights[0].title == "High Blocker Rate"
        assert insights[0].severity == "critical"

    def test_stale_issues(self) -> None:
        issues = [_make_issue(i, age_days=60 if i < 4 else 1) for i in range(10)]
        insights = detect_bottlenecks(issues, now=NOW)
        assert [i.title for i in insights] == ["High Number of Stale Issues"]

    def test_nothing_open(self) -> None:
        assert detect_bottlenecks([_make_issue(1, state="closed")], now=NOW) == []


class TestResources:
    def test_overloaded_member(self) -> None:
        issues = [_make_issue(i) for i in range(9)]
        insights = analyze_resources(issues)
        assert insights[0].title == "Team Members Overloaded"
        assert "Redistribute 3 issues" in insights[0].recommendation

    def test_many_unassigned(self) -> None:
        issues = [_make_issue(i, assignee=None) for i in range(11)]
        assert [i.title for i in analyze_resources(issues)] == ["Many Unassigned Issues"]


class TestMilestonesEpicsRisks:
    def test_milestone_at_risk(self) -> None:
        milestone = Milestone(id=1, title="Beta", due_date=NOW.date() + timedelta(days=10))
        issues = [_make_issue(i, milestone=milestone) for i in range(3)]
        issues.append(_make_issue(9, state="closed", milestone=milestone))
        insights = analyze_milestones(issues, [milestone], today=NOW.date())
        assert insights[0].title == "Milestone At Risk: Beta"
        assert "25% complete" in insights[0].description

    def test_milestone_overdue(self) -> None:
        milestone = Milestone(id=2, title="GA", due_date=NOW.date() - timedelta(days=3))
        insights = analyze_milestones([_make_issue(1, milestone=milestone)], [milestone], today=NOW.date())
        assert insights[0].title == "Milestone Overdue: GA"
        assert insights[0].description.startswith("3 days overdue")

    def test_closed_milestone_ignored(self) -> None:
        milestone = Milestone(id=3, state="closed", due_date=NOW.date() - timedelta(days=3))
        assert analyze_milestones([_make_issue(1, milestone=milestone)], [milestone], today=NOW.date()) == []

    def test_slow_epic(self) -> None:
        issues = [_make_issue(i) for i in range(5)] + [_make_issue(9, state="closed")]
        insights = analyze_epics([Epic(id=1, title="Search", issues=issues)])
        assert insights[0].severity == "info"
        assert insights[0].title == "Epic Needs Attention: Search"

    def test_small_epic_ignored(self) -> None:
        assert analyze_epics([Epic(id=1, title="Tiny", issues=[_make_issue(1)])]) == []

    def test_risks(self) -> None:
        risks = [Risk(id=str(i), title="r", probability="high", impact="high") for i in range(4)]
        assert analyze_risks(risks)[0].severity == "critical"
        assert analyze_risks(risks[:3]) == []


class TestForecastAndQuality:
    def test_long_timeline(self) -> None:
        issues = _closed_in_sprints([2, 2]) + [_make_issue(i) for i in range(20)]
        insights = forecast_insights(issues)
        assert insights[0].title == "Extended Completion Timeline"

    def test_short_timeline(self) -> None:
        issues = _closed_in_sprints([4, 4]) + [_make_issue(1)]
        assert forecast_insights(issues)[0].severity == "success"

    def test_bug_rate(self) -> None:
        issues = [_make_issue(1, labels=["bug"]), _make_issue(2, labels=["bug"]), _make_issue(3), _make_issue(4)]
        insights = analyze_quality(issues)
        assert insights[0].description.startswith("50%")


class TestGenerateInsights:
    def test_sorted_by_severity(self) -> None:
        issues = [_make_issue(1, labels=["blocked", "bug"]), _make_issue(2, labels=["bug"]), _make_issue(3)]
        risks = [Risk(id=str(i), title="r", probability="high", impact="high") for i in range(4)]
        insights = generate_insights(issues, risks=risks, now=NOW)
        ranks = [SEVERITY_ORDER[i.severity] for i in insights]
        assert ranks == sorted(ranks)
        assert insights[0].severity == "critical"

        stats = insight_stats(insights)
        assert stats.total == len(insights)
        assert stats.critical == 2
        assert stats.warning == 1

    def test_empty(self) -> None:
        assert generate_insights([], now=NOW) == []
