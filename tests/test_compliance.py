"""Tests for pm_dashboard.core.compliance."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from pm_dashboard.core.compliance import (
    StaleThresholds,
    build_criteria,
    check_issue_compliance,
    check_stale_status,
    criteria_details,
    find_non_compliant_issues,
    find_stale_issues,
    get_compliance_stats,
)
from pm_dashboard.core.data_models import EpicRef, Issue, Member, Milestone

NOW = datetime(2025, 6, 1, 12, tzinfo=timezone.utc)


def _make_issue(
    iid: int = 1,
    *,
    age_days: int = 5,
    assignee: bool = True,
    weight: int | None = 3,
    epic: bool = True,
    description: str = "A description that is long enough to pass.",
    labels: list[str] | None = None,
    milestone: bool = True,
    due: bool = True,
    state: str = "opened",
) -> Issue:
    return Issue(
        iid=iid,
        title=f"Issue {iid}",
        state=state,
        description=description,
        created_at=NOW - timedelta(days=age_days),
        assignees=[Member("alice")] if assignee else [],
        weight=weight,
        epic=EpicRef(id=1, title="Epic") if epic else None,
        labels=labels if labels is not None else ["bug", "priority::high"],
        milestone=Milestone(id=1, title="M1") if milestone else None,
        due_date=date(2025, 7, 1) if due else None,
    )


class TestStaleStatus:
    """Open issues age into warning and critical buckets."""

    def test_fresh(self) -> None:
        status = check_stale_status(_make_issue(age_days=5), now=NOW)
        assert not status.is_stale
        assert status.days_open == 5

    def test_warning(self) -> None:
        status = check_stale_status(_make_issue(age_days=30), now=NOW)
        assert status.is_stale
        assert status.severity == "warning"

    def test_critical(self) -> None:
        status = check_stale_status(_make_issue(age_days=60), now=NOW)
        assert status.severity == "critical"

    def test_closed_is_never_stale(self) -> None:
        status = check_stale_status(_make_issue(age_days=400, state="closed"), now=NOW)
        assert not status.is_stale
        assert status.days_open == 0

    def test_custom_thresholds(self) -> None:
        """100 days open against 30/90 thresholds is critical and high severity."""
        thresholds = StaleThresholds(warning=30, critical=90)
        issue = _make_issue(age_days=100)
        result = check_issue_compliance(issue, thresholds=thresholds, now=NOW)
        stale = [v for v in result.violations if v.criterion == "stale"]
        assert len(stale) == 1
        assert stale[0].severity == "high"
        assert result.stale_status.severity == "critical"

    def test_warning_stale_is_medium_severity(self) -> None:
        result = check_issue_compliance(_make_issue(age_days=45), now=NOW)
        stale = [v for v in result.violations if v.criterion == "stale"]
        assert stale[0].severity == "medium"

    def test_find_stale_issues_longest_first(self) -> None:
        issues = [_make_issue(1, age_days=35), _make_issue(2, age_days=80), _make_issue(3, age_days=2)]
        stale = find_stale_issues(issues, now=NOW)
        assert [i.iid for i, _ in stale] == [2, 1]


class TestCriteria:
    """Catalog order and configuration."""

    def test_default_catalog(self) -> None:
        keys = [c.key for c in build_criteria(now=NOW)]
        assert keys == [
            "assignee", "weight", "epic", "description", "labels",
            "milestone", "dueDate", "priority", "stale",
        ]

    def test_disabled_criterion_is_skipped(self) -> None:
        criteria = build_criteria({"dueDate": {"enabled": False}}, now=NOW)
        assert "dueDate" not in [c.key for c in criteria]
        result = check_issue_compliance(_make_issue(due=False), criteria, now=NOW)
        assert result.is_compliant
        assert result.score == 100

    def test_severity_override(self) -> None:
        criteria = build_criteria({"weight": {"severity": "high"}}, now=NOW)
        result = check_issue_compliance(_make_issue(weight=None), criteria, now=NOW)
        assert result.violations[0].severity == "high"

    def test_description_threshold(self) -> None:
        criteria = build_criteria({"description": {"threshold": 5}}, now=NOW)
        result = check_issue_compliance(_make_issue(description="  short  "), criteria, now=NOW)
        assert "description" in result.passed

    def test_zero_weight_fails(self) -> None:
        result = check_issue_compliance(_make_issue(weight=0), now=NOW)
        assert [v.criterion for v in result.violations] == ["weight"]

    def test_type_label_variants(self) -> None:
        result = check_issue_compliance(_make_issue(labels=["type::chore", "P2"]), now=NOW)
        assert result.is_compliant

    def test_details(self) -> None:
        details = criteria_details(build_criteria(now=NOW))
        assert details[0] == {
            "key": "assignee",
            "name": "Assignee",
            "description": "Issue must be assigned to a team member",
            "severity": "high",
        }


class TestScoring:
    """Score is the share of criteria passed."""

    def test_compliant_issue(self) -> None:
        result = check_issue_compliance(_make_issue(), now=NOW)
        assert result.is_compliant
        assert result.score == 100
        assert result.highest_severity is None

    def test_score_bounds_and_partition(self) -> None:
        issue = _make_issue(assignee=False, weight=None, labels=[])
        criteria = build_criteria(now=NOW)
        result = check_issue_compliance(issue, criteria, now=NOW)
        assert 0 <= result.score <= 100
        assert len(result.passed) + len(result.violations) == len(criteria)

    def test_non_compliant_ordering_and_stats(self) -> None:
        old = _make_issue(
            1, age_days=200, assignee=False, weight=None, epic=False, description="",
        )
        missing_weight = _make_issue(2, weight=None)
        fine = _make_issue(3)
        issues = [missing_weight, old, fine]

        results = find_non_compliant_issues(issues, now=NOW)
        assert [r.issue.iid for r in results] == [1, 2]
        # 4 of 9 criteria pass for the old issue, 8 of 9 for the other
        assert results[0].score == 44
        assert results[1].score == 89
        assert results[0].highest_severity == "high"

        stats = get_compliance_stats(issues, now=NOW)
        assert stats.total == 3
        assert stats.compliant == 1
        assert stats.non_compliant == 2
        assert stats.compliance_rate == 33
        assert stats.high_severity == 1
        assert stats.medium_severity == 1
        assert stats.stale_critical == 1
        assert stats.violations_by_criterion["weight"] == 2

    def test_ties_broken_by_days_open(self) -> None:
        newer = _make_issue(1, age_days=3, weight=None)
        older = _make_issue(2, age_days=20, weight=None)
        results = find_non_compliant_issues([newer, older], now=NOW)
        assert [r.issue.iid for r in results] == [2, 1]
