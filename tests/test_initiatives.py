"""Tests for pm_dashboard.core.initiatives."""

from __future__ import annotations

from datetime import date

from pm_dashboard.core.data_models import Epic, EpicRef, Initiative, Issue
from pm_dashboard.core.initiatives import (
    InitiativeEdge,
    build_initiative_graph,
    build_initiatives,
    calculate_cascade_impact,
    dependency_matrix,
    derive_initiative_status,
    detect_initiative_dependencies,
    edge_severity,
    find_blocking_initiatives,
    find_critical_path,
)

TODAY = date(2025, 3, 1)


def _issue(iid: int, state: str = "opened", description: str = "") -> Issue:
    return Issue(iid=iid, title=f"Issue {iid}", state=state, description=description, project_id="p")


def _epic(epic_id: int, slug: str, due: date, issues: list[Issue]) -> Epic:
    return Epic(
        id=epic_id,
        title=f"Epic {epic_id}",
        labels=[f"initiative::{slug}"],
        due_date=due,
        issues=issues,
    )


def _portfolio() -> list[Epic]:
    return [
        _epic(1, "mobile-app", date(2025, 12, 31), [
            _issue(1, "closed"),
            _issue(2, description="depends on #3"),
        ]),
        _epic(2, "backend", date(2025, 11, 30), [_issue(3), _issue(4, "closed")]),
        _epic(3, "web", date(2026, 1, 31), [_issue(5, description="depends on #2")]),
        Epic(id=4, title="Loose epic", labels=["frontend"]),
    ]


class TestBuildInitiatives:
    """Epics are grouped by their initiative label."""

    def test_grouping_and_order(self) -> None:
        initiatives = build_initiatives(_portfolio(), today=TODAY)
        assert [i.id for i in initiatives] == ["backend", "mobile-app", "web"]
        mobile = initiatives[1]
        assert mobile.name == "Mobile App"
        assert mobile.progress == 50
        assert mobile.due_date == date(2025, 12, 31)
        assert mobile.status == "on-track"

    def test_loose_issues_join_by_epic_reference(self) -> None:
        loose = _issue(9)
        loose.epic = EpicRef(id=3)
        initiatives = build_initiatives(_portfolio(), [loose], today=TODAY)
        web = [i for i in initiatives if i.id == "web"][0]
        assert sorted(i.iid for i in web.issues) == [5, 9]

    def test_due_is_latest_epic(self) -> None:
        epics = [
            _epic(1, "alpha", date(2025, 5, 1), [_issue(1)]),
            _epic(2, "alpha", date(2025, 7, 1), [_issue(2)]),
        ]
        initiative = build_initiatives(epics, today=TODAY)[0]
        assert initiative.due_date == date(2025, 7, 1)
        assert len(initiative.epics) == 2

    def test_all_closed_is_completed(self) -> None:
        epics = [_epic(1, "done", date(2025, 1, 1), [_issue(1, "closed")])]
        assert build_initiatives(epics, today=TODAY)[0].status == "completed"


class TestDeriveStatus:
    """Progress compared with elapsed schedule."""

    def test_without_due_date(self) -> None:
        assert derive_initiative_status(85, None, today=TODAY) == "on-track"
        assert derive_initiative_status(50, None, today=TODAY) == "at-risk"

    def test_past_due(self) -> None:
        assert derive_initiative_status(90, date(2025, 2, 1), today=TODAY) == "delayed"

    def test_against_elapsed_time(self) -> None:
        start, due = date(2025, 1, 1), date(2025, 4, 11)
        today = date(2025, 3, 2)  # 60% of the window elapsed
        assert derive_initiative_status(35, due, start, today=today) == "delayed"
        assert derive_initiative_status(45, due, start, today=today) == "at-risk"
        assert derive_initiative_status(55, due, start, today=today) == "on-track"

    def test_empty_initiative_is_not_completed(self) -> None:
        status = derive_initiative_status(100, None, today=TODAY, has_issues=False)
        assert status != "completed"


class TestInitiativeDependencies:
    def _setup(self) -> tuple[list, list]:
        initiatives = build_initiatives(_portfolio(), today=TODAY)
        return initiatives, detect_initiative_dependencies(initiatives)

    def test_edges(self) -> None:
        _, edges = self._setup()
        pairs = {(e.source.id, e.target.id): e for e in edges}
        assert set(pairs) == {("mobile-app", "backend"), ("web", "mobile-app")}
        edge = pairs[("mobile-app", "backend")]
        assert edge.count == 1
        assert edge.open_count == 1
        assert edge.is_blocking
        assert edge.severity == "medium"

    def test_edge_severity(self) -> None:
        initiatives, _ = self._setup()
        backend = initiatives[0]
        assert edge_severity(0, backend) == "low"
        assert edge_severity(3, backend) == "high"
        backend.progress = 10
        assert edge_severity(1, backend) == "high"

    def test_matrix(self) -> None:
        initiatives, edges = self._setup()
        rows = dependency_matrix(initiatives, edges)
        mobile_row = rows[1]
        assert mobile_row.cells["mobile-app"].type == "self"
        assert mobile_row.cells["backend"].type == "depends"
        assert mobile_row.cells["web"].type == "none"

    def test_graph(self) -> None:
        initiatives, edges = self._setup()
        graph = build_initiative_graph(initiatives, edges)
        assert len(graph["nodes"]) == 3
        assert {"source": "web", "target": "mobile-app"}.items() <= graph["edges"][1].items()

    def test_critical_path(self) -> None:
        initiatives, edges = self._setup()
        path = find_critical_path(initiatives, edges)
        assert [i.id for i in path.path] == ["web", "mobile-app", "backend"]
        assert path.length == 3
        assert path.weight == 2

    def test_cascade_impact(self) -> None:
        initiatives, edges = self._setup()
        impact = calculate_cascade_impact("backend", 2, initiatives, edges)
        assert [(i.initiative.id, i.depth, i.caused_by) for i in impact.impacted] == [
            ("mobile-app", 0, "backend"),
            ("web", 1, "mobile-app"),
        ]
        assert all(i.estimated_delay_weeks == 2 for i in impact.impacted)
        assert impact.impacted_count == 2

    def test_cascade_from_leaf(self) -> None:
        initiatives, edges = self._setup()
        impact = calculate_cascade_impact("web", 1, initiatives, edges)
        assert impact.impacted == []

    def test_blocking_initiatives(self) -> None:
        _, edges = self._setup()
        blocking = find_blocking_initiatives(edges)
        assert {b.initiative.id for b in blocking} == {"backend", "mobile-app"}
        assert all(b.total_blocked_issues == 1 for b in blocking)


class TestCyclicInitiatives:
    """Mutual dependencies between initiatives still give finite answers."""

    def _setup(self) -> tuple[list[Initiative], list[InitiativeEdge]]:
        a, b, c = (Initiative(id=slug, name=slug.upper()) for slug in ("a", "b", "c"))
        edges = [
            InitiativeEdge(source=a, target=b, count=1, open_count=1),
            InitiativeEdge(source=b, target=a, count=1, open_count=1),
            InitiativeEdge(source=b, target=c, count=1, open_count=1),
        ]
        return [a, b, c], edges

    def test_critical_path_is_acyclic(self) -> None:
        initiatives, edges = self._setup()
        path = find_critical_path(initiatives, edges)
        ids = [i.id for i in path.path]
        assert ids == ["a", "b", "c"]
        assert len(set(ids)) == len(ids)
        assert path.length <= len(initiatives)
        assert path.weight == 2

    def test_cascade_visits_each_once(self) -> None:
        initiatives, edges = self._setup()
        impact = calculate_cascade_impact("c", 1, initiatives, edges)
        assert [(i.initiative.id, i.depth) for i in impact.impacted] == [("b", 0), ("a", 1)]

    def test_cascade_from_cycle_member(self) -> None:
        initiatives, edges = self._setup()
        impact = calculate_cascade_impact("a", 1, initiatives, edges)
        assert [i.initiative.id for i in impact.impacted] == ["b"]
