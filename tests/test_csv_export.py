"""Tests for pm_dashboard.core.csv_export."""

from __future__ import annotations

import csv
import io
from datetime import date, datetime, timezone

from pm_dashboard.core import csv_export
from pm_dashboard.core.backlog_health import backlog_breakdown
from pm_dashboard.core.compliance import ComplianceResult, StaleStatus, Violation
from pm_dashboard.core.data_models import EpicRef, Initiative, Issue, Member, Milestone
from pm_dashboard.core.dependencies import find_blocked_issues
from pm_dashboard.core.dod import check_dod_compliance
from pm_dashboard.core.forecast import DueDateComparison, Forecast, ForecastRow, InitiativeVelocity
from pm_dashboard.core.initiatives import CascadeImpact, ImpactedInitiative, InitiativeEdge
from pm_dashboard.core.records import Decision, RetroAction, SprintGoal

NOW = datetime(2025, 3, 10, tzinfo=timezone.utc)


def _rows(content: str) -> list[list[str]]:
    return list(csv.reader(io.StringIO(content)))


def _issue(iid: int, **kwargs: object) -> Issue:
    defaults: dict = {"title": f"Issue {iid}", "project_id": "p", "web_url": f"https://tracker/p/{iid}"}
    defaults.update(kwargs)
    return Issue(iid=iid, **defaults)


class TestToCsv:
    """Minimal quoting."""

    def test_plain_cells(self) -> None:
        assert csv_export.to_csv(["A", "B"], [[1, "x"]]) == "A,B\n1,x\n"

    def test_quoting(self) -> None:
        content = csv_export.to_csv(["A"], [['say "hi", then go'], ["line\nbreak"]])
        assert content == 'A\n"say ""hi"", then go"\n"line\nbreak"\n'
        assert _rows(content)[1] == ['say "hi", then go']

    def test_none_is_empty(self) -> None:
        assert csv_export.to_csv(["A", "B"], [[None, 0]]) == "A,B\n,0\n"

    def test_header_only(self) -> None:
        assert csv_export.to_csv(["A"], []) == "A\n"


class TestFormatShortDate:
    def test_values(self) -> None:
        assert csv_export.format_short_date(date(2025, 3, 7)) == "3/7/2025"
        assert csv_export.format_short_date("2025-12-01T10:00:00Z") == "12/1/2025"
        assert csv_export.format_short_date(NOW) == "3/10/2025"

    def test_missing(self) -> None:
        assert csv_export.format_short_date(None) == "N/A"
        assert csv_export.format_short_date("") == "N/A"
        assert csv_export.format_short_date("garbage", "No due date") == "No due date"


class TestNonCompliant:
    def test_row(self) -> None:
        issue = _issue(
            7,
            title="Login, broken",
            created_at=datetime(2025, 1, 2, tzinfo=timezone.utc),
            author=Member("carol", "Carol"),
            milestone=Milestone(1, "M1"),
        )
        result = ComplianceResult(
            issue=issue,
            violations=[
                Violation("assignee", "Assignee", "Has an assignee", "high"),
                Violation("weight", "Weight", "Has a weight", "medium"),
            ],
            score=75,
            stale_status=StaleStatus(is_stale=True, days_open=67, severity="critical"),
        )
        rows = _rows(csv_export.export_non_compliant([result]))
        header, row = rows
        assert header[:8] == [
            "Issue ID", "Title", "State", "Compliance Score", "Violations",
            "Days Open", "Stale Status", "Missing Assignee",
        ]
        record = dict(zip(header, row))
        assert record["Title"] == "Login, broken"
        assert record["Compliance Score"] == "75%"
        assert record["Violations"] == "2"
        assert record["Stale Status"] == "CRITICAL"
        assert record["Missing Assignee"] == "YES"
        assert record["Missing Weight"] == "YES"
        assert record["Missing Epic"] == "NO"
        assert record["Created At"] == "1/2/2025"
        assert record["Updated At"] == "N/A"
        assert record["Author"] == "Carol"
        assert record["Current Assignees"] == "Unassigned"
        assert record["Epic"] == "None"
        assert record["Milestone"] == "M1"

    def test_stale_labels(self) -> None:
        fresh = ComplianceResult(issue=_issue(1), stale_status=StaleStatus(days_open=3))
        warn = ComplianceResult(issue=_issue(2), stale_status=StaleStatus(True, 40, "warning"))
        rows = _rows(csv_export.export_non_compliant([fresh, warn]))
        assert [r[6] for r in rows[1:]] == ["OK", "WARNING"]


class TestOtherExports:
    def test_dod_violations(self) -> None:
        result = check_dod_compliance(_issue(3, state="closed", labels=["bug"], description="Root cause: typo"))
        rows = _rows(csv_export.export_dod_violations([result]))
        record = dict(zip(*rows))
        assert record["Type"] == "bug"
        assert record["DoD Template"] == "Bug Fix"
        assert record["Compliance %"] == "20%"
        assert record["Missing Items"].startswith("Code reviewed; ")

    def test_dependency_blockers(self) -> None:
        issues = [
            _issue(10, description="depends on #11", assignees=[Member("a")]),
            _issue(11, assignees=[Member("b")]),
        ]
        rows = _rows(csv_export.export_dependency_blockers(find_blocked_issues(issues)))
        record = dict(zip(*rows))
        assert record["Issue ID"] == "10"
        assert record["Open Dependencies"] == "1"
        assert record["Dependency Issues"] == "#11: Issue 11"

    def test_retro_actions(self) -> None:
        action = RetroAction(
            id="a1", sprint_id="s1", sprint_name="Sprint 1", action="Fix CI",
            created_at="2025-03-01T00:00:00+00:00",
        )
        rows = _rows(csv_export.export_retro_actions([action], now=NOW))
        record = dict(zip(*rows))
        assert record["Sprint"] == "Sprint 1"
        assert record["Owner"] == "Unassigned"
        assert record["Due Date"] == "N/A"
        assert record["Completed At"] == "N/A"
        assert record["Carried From"] == "N/A"
        assert record["Days Open"] == "9"

    def test_sprint_goals(self) -> None:
        goal = SprintGoal(sprint_id="s1", goal="Ship it", created_at="2025-02-03T09:00:00+00:00")
        record = dict(zip(*_rows(csv_export.export_sprint_goals([goal]))))
        assert record["Sprint Name"] == "N/A"
        assert record["Achievement"] == "Not Completed"
        assert record["Created At"] == "2/3/2025"

    def test_initiative_forecast(self) -> None:
        initiative = Initiative(id="web", name="Web", progress=40, due_date=date(2025, 6, 30))
        row = ForecastRow(
            initiative=initiative,
            forecast=Forecast(
                initiative=initiative,
                forecast_date=date(2025, 7, 14),
                confidence=70,
                weeks_remaining=18,
                optimistic_weeks=14,
                pessimistic_weeks=22,
                remaining_issues=9,
                velocity=InitiativeVelocity(weekly_average=0.5),
            ),
            comparison=DueDateComparison(status="at-risk", gap_days=14, weeks_gap=2),
        )
        cannot = ForecastRow(
            initiative=Initiative(id="x", name="X"),
            forecast=Forecast(reason="No velocity"),
            comparison=DueDateComparison(),
        )
        rows = _rows(csv_export.export_initiative_forecast([row, cannot]))
        first = dict(zip(rows[0], rows[1]))
        assert first["Due Date"] == "6/30/2025"
        assert first["Forecast Date"] == "7/14/2025"
        assert first["Gap (Days)"] == "14"
        assert first["Weekly Velocity"] == "0.5"
        second = dict(zip(rows[0], rows[2]))
        assert second["Due Date"] == "No due date"
        assert second["Forecast Date"] == "Cannot forecast"
        assert second["Gap (Days)"] == "-"
        assert second["Confidence %"] == "-"
        assert second["Weekly Velocity"] == "-"

    def test_backlog_health_lists_not_ready(self) -> None:
        ready = _issue(
            1, weight=3, description="x" * 60, epic=EpicRef(1),
            milestone=Milestone(1), assignees=[Member("a")],
        )
        rough = _issue(2)
        rows = _rows(csv_export.export_backlog_health(backlog_breakdown([ready, rough])))
        assert len(rows) == 2
        record = dict(zip(*rows))
        assert record["Issue ID"] == "2"
        assert record["Ready for Sprint"] == "No"
        assert record["Missing Fields"] == "Weight/Story Points, Description, Epic, Milestone, Assignee"

    def test_backlog_health_story_points_count_as_refined(self) -> None:
        pointed = _issue(2, labels=["sp::5"])
        breakdown = backlog_breakdown([pointed], story_points_count_as_refined=True)
        record = dict(zip(*_rows(csv_export.export_backlog_health(breakdown))))
        assert record["Has Weight"] == "Yes"
        assert record["Missing Fields"] == "Description, Epic, Milestone, Assignee"

    def test_decisions(self) -> None:
        decision = Decision(
            id="d1", title="Use Postgres", decision_date="2025-01-15",
            linked_issues=["3", "4"], status="superseded", reversed_by="d2",
        )
        record = dict(zip(*_rows(csv_export.export_decisions([decision]))))
        assert record["Decision Date"] == "1/15/2025"
        assert record["Linked Issues"] == "#3; #4"
        assert record["Superseded By"] == "d2"


class TestInitiativeExports:
    def _initiatives(self) -> tuple[Initiative, Initiative, Initiative]:
        return (
            Initiative(id="backend", name="Backend", progress=50),
            Initiative(id="mobile", name="Mobile", progress=20),
            Initiative(id="web", name="Web", progress=10),
        )

    def test_dependencies(self) -> None:
        backend, mobile, web = self._initiatives()
        edges = [
            InitiativeEdge(mobile, backend, count=2, open_count=1, severity="medium"),
            InitiativeEdge(mobile, web, count=1, open_count=0, severity="low"),
        ]
        rows = _rows(csv_export.export_initiative_dependencies([backend, mobile], edges))
        assert rows[1][:4] == ["Backend", "on-track", "50", "No dependencies"]
        assert rows[2][0] == "Mobile"
        assert rows[2][3:] == ["Backend", "on-track", "50", "2", "1", "medium", "Yes"]
        assert rows[3][:3] == ["", "", ""]
        assert rows[3][-1] == "No"

    def test_cascade(self) -> None:
        backend, mobile, web = self._initiatives()
        impact = CascadeImpact(
            source=backend,
            delay_weeks=2,
            impacted=[
                ImpactedInitiative(mobile, 0, 2, "backend"),
                ImpactedInitiative(web, 1, 2, "mobile"),
            ],
        )
        rows = _rows(csv_export.export_cascade_impact(impact))
        assert rows[1][:3] == ["Backend", "2", "Mobile"]
        assert rows[2][:3] == ["", "", "Web"]
        assert rows[2][5] == "1"

    def test_default_filenames(self) -> None:
        assert csv_export.DEFAULT_FILENAMES["non_compliant"] == "non-compliant-issues.csv"
        assert csv_export.DEFAULT_FILENAMES["cascade_impact"] == "cascade-impact.csv"
