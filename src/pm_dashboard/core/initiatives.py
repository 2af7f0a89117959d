"""Initiatives (groups of epics) and the dependencies between them."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, timedelta

from pm_dashboard.core import labels as label_utils
from pm_dashboard.core.data_models import Epic, Initiative, Issue
from pm_dashboard.core.dependencies import IssueKey, detect_dependencies
from pm_dashboard.core.stats import percentage

logger = logging.getLogger(__name__)

SEVERITY_ORDER = {"high": 3, "medium": 2, "low": 1}

_DEFAULT_DURATION = timedelta(days=90)


@dataclass
class InitiativeEdge:
    """``source`` depends on ``target`` through one or more issue pairs."""

    source: Initiative
    target: Initiative
    count: int = 0
    open_count: int = 0
    blocks_on: list[tuple[Issue, Issue]] = field(default_factory=list)
    severity: str = "low"

    @property
    def is_blocking(self) -> bool:
        return self.open_count > 0


@dataclass
class MatrixCell:
    type: str  # "self" | "depends" | "none"
    count: int = 0
    open_count: int = 0
    severity: str | None = None
    is_blocking: bool = False


@dataclass
class MatrixRow:
    initiative: Initiative
    cells: dict[str, MatrixCell] = field(default_factory=dict)


@dataclass
class CriticalPath:
    path: list[Initiative] = field(default_factory=list)
    weight: int = 0

    @property
    def length(self) -> int:
        return len(self.path)


@dataclass
class ImpactedInitiative:
    initiative: Initiative
    depth: int
    estimated_delay_weeks: float
    caused_by: str


@dataclass
class CascadeImpact:
    source: Initiative | None
    delay_weeks: float
    impacted: list[ImpactedInitiative] = field(default_factory=list)

    @property
    def impacted_count(self) -> int:
        return len(self.impacted)


@dataclass
class BlockingInitiative:
    initiative: Initiative
    blocked: list[InitiativeEdge] = field(default_factory=list)
    total_blocked_issues: int = 0
    highest_severity: str = "low"


# -- building initiatives -----------------------------------------------------


def build_initiatives(
    epics: Iterable[Epic],
    issues: Iterable[Issue] = (),
    *,
    today: date | None = None,
) -> list[Initiative]:
    """Group epics carrying an ``initiative::<slug>`` label.

    Each initiative owns the issues of its epics (plus loose issues linked to
    those epics by reference).  Sorted by due date, undated last, then name.
    """
    today = today or date.today()
    issues = list(issues)
    grouped: dict[str, Initiative] = {}
    for epic in epics:
        slug = label_utils.initiative_slug(epic.labels)
        if not slug:
            continue
        initiative = grouped.setdefault(
            slug, Initiative(id=slug, name=label_utils.initiative_name(slug.split("::")[0]))
        )
        initiative.epics.append(epic)

    for initiative in grouped.values():
        seen: set[IssueKey] = set()
        epic_ids = {e.id for e in initiative.epics}
        candidates = [i for e in initiative.epics for i in e.issues]
        candidates += [i for i in issues if i.epic is not None and i.epic.id in epic_ids]
        for issue in candidates:
            if issue.key not in seen:
                seen.add(issue.key)
                initiative.issues.append(issue)

        due_dates = [e.due_date for e in initiative.epics if e.due_date]
        start_dates = [e.start_date for e in initiative.epics if e.start_date]
        initiative.due_date = max(due_dates) if due_dates else None
        start = min(start_dates) if start_dates else None
        initiative.progress = percentage(len(initiative.closed_issues), len(initiative.issues))
        initiative.status = derive_initiative_status(
            initiative.progress, initiative.due_date, start, today=today,
            has_issues=bool(initiative.issues),
        )

    result = sorted(
        grouped.values(),
        key=lambda i: (i.due_date is None, i.due_date or date.max, i.name.lower()),
    )
    logger.debug("Built %d initiatives", len(result))
    return result


def derive_initiative_status(
    progress: float,
    due_date: date | None,
    start_date: date | None = None,
    *,
    today: date | None = None,
    has_issues: bool = True,
) -> str:
    """Compare progress with elapsed schedule."""
    if has_issues and progress >= 100:
        return "completed"
    if due_date is None:
        return "on-track" if progress >= 80 else "at-risk"
    today = today or date.today()
    start = start_date or (due_date - _DEFAULT_DURATION)
    total = (due_date - start).days
    elapsed = (today - start).days
    time_progress = 100.0 if total <= 0 else max(0.0, min(100.0, elapsed / total * 100))

    if today > due_date:
        return "delayed"
    if progress < time_progress - 20:
        return "delayed"
    if progress < time_progress - 10:
        return "at-risk"
    return "on-track"


# -- dependency lifting -------------------------------------------------------


def edge_severity(open_count: int, target: Initiative) -> str:
    if open_count == 0:
        return "low"
    if open_count >= 3 or target.status == "delayed" or target.progress < 50:
        return "high"
    if open_count >= 1 or target.status == "at-risk":
        return "medium"
    return "low"


def detect_initiative_dependencies(
    initiatives: list[Initiative],
    issues: Iterable[Issue] | None = None,
) -> list[InitiativeEdge]:
    """Lift issue dependencies to edges between initiatives.

    An issue is owned by the first initiative that lists it.
    """
    owner: dict[IssueKey, Initiative] = {}
    for initiative in initiatives:
        for issue in initiative.issues:
            owner.setdefault(issue.key, initiative)

    if issues is None:
        pool: dict[IssueKey, Issue] = {}
        for initiative in initiatives:
            for issue in initiative.issues:
                pool.setdefault(issue.key, issue)
        issues = pool.values()
    dep_map = detect_dependencies(issues)

    edges: dict[tuple[str, str], InitiativeEdge] = {}
    for initiative in initiatives:
        for issue in initiative.issues:
            if owner.get(issue.key) is not initiative:
                continue
            info = dep_map.get(issue.key)
            if info is None:
                continue
            for dep in info.dependencies:
                target = owner.get(dep.key)
                if target is None or target.id == initiative.id:
                    continue
                edge = edges.setdefault(
                    (initiative.id, target.id), InitiativeEdge(source=initiative, target=target)
                )
                edge.count += 1
                if dep.is_open:
                    edge.open_count += 1
                edge.blocks_on.append((issue, dep))

    for edge in edges.values():
        edge.severity = edge_severity(edge.open_count, edge.target)
    logger.debug("Detected %d initiative dependency edge(s)", len(edges))
    return list(edges.values())


def dependency_matrix(
    initiatives: list[Initiative],
    edges: list[InitiativeEdge],
) -> list[MatrixRow]:
    by_pair = {(e.source.id, e.target.id): e for e in edges}
    rows = []
    for row_init in initiatives:
        row = MatrixRow(initiative=row_init)
        for col_init in initiatives:
            if row_init.id == col_init.id:
                row.cells[col_init.id] = MatrixCell(type="self")
                continue
            edge = by_pair.get((row_init.id, col_init.id))
            if edge is None:
                row.cells[col_init.id] = MatrixCell(type="none")
            else:
                row.cells[col_init.id] = MatrixCell(
                    type="depends",
                    count=edge.count,
                    open_count=edge.open_count,
                    severity=edge.severity,
                    is_blocking=edge.is_blocking,
                )
        rows.append(row)
    return rows


def build_initiative_graph(
    initiatives: list[Initiative],
    edges: list[InitiativeEdge],
) -> dict[str, list[dict]]:
    """Nodes and edges for a graph view."""
    nodes = [
        {"id": i.id, "name": i.name, "status": i.status, "progress": i.progress}
        for i in initiatives
    ]
    links = [
        {
            "source": e.source.id,
            "target": e.target.id,
            "count": e.count,
            "openCount": e.open_count,
            "severity": e.severity,
            "isBlocking": e.is_blocking,
        }
        for e in edges
    ]
    return {"nodes": nodes, "edges": links}


def find_critical_path(
    initiatives: list[Initiative],
    edges: list[InitiativeEdge],
) -> CriticalPath:
    """Longest acyclic chain of dependency edges, ties broken by open weight."""
    by_id = {i.id: i for i in initiatives}
    adjacency: dict[str, list[tuple[str, int]]] = {}
    for e in edges:
        adjacency.setdefault(e.source.id, []).append((e.target.id, e.open_count))

    best = CriticalPath()

    def _dfs(node: str, path: list[str], weight: int) -> None:
        nonlocal best
        extended = False
        for neighbour, w in adjacency.get(node, []):
            if neighbour in path or neighbour not in by_id:
                continue
            extended = True
            path.append(neighbour)
            _dfs(neighbour, path, weight + w)
            path.pop()
        if not extended and (
            len(path) > best.length or (len(path) == best.length and weight > best.weight)
        ):
            best = CriticalPath(path=[by_id[p] for p in path], weight=weight)

    for initiative in initiatives:
        _dfs(initiative.id, [initiative.id], 0)
    return best


def calculate_cascade_impact(
    source_id: str,
    delay_weeks: float,
    initiatives: list[Initiative],
    edges: list[InitiativeEdge],
) -> CascadeImpact:
    """Initiatives that transitively depend on *source_id*, nearest first."""
    by_id = {i.id: i for i in initiatives}
    dependents: dict[str, list[str]] = {}
    for e in edges:
        dependents.setdefault(e.target.id, []).append(e.source.id)

    impact = CascadeImpact(source=by_id.get(source_id), delay_weeks=delay_weeks)
    visited = {source_id}
    queue: deque[tuple[str, int]] = deque([(source_id, 0)])
    while queue:
        current, depth = queue.popleft()
        for dependent in dependents.get(current, []):
            if dependent in visited or dependent not in by_id:
                continue
            visited.add(dependent)
            impact.impacted.append(
                ImpactedInitiative(
                    initiative=by_id[dependent],
                    depth=depth,
                    estimated_delay_weeks=delay_weeks,
                    caused_by=current,
                )
            )
            queue.append((dependent, depth + 1))
    return impact


def find_blocking_initiatives(edges: list[InitiativeEdge]) -> list[BlockingInitiative]:
    """Initiatives with open work others wait on, most severe first."""
    blocking: dict[str, BlockingInitiative] = {}
    for e in edges:
        if not e.is_blocking:
            continue
        entry = blocking.setdefault(e.target.id, BlockingInitiative(initiative=e.target))
        entry.blocked.append(e)
        entry.total_blocked_issues += e.open_count
        if SEVERITY_ORDER[e.severity] > SEVERITY_ORDER[entry.highest_severity]:
            entry.highest_severity = e.severity
    return sorted(
        blocking.values(),
        key=lambda b: (-SEVERITY_ORDER[b.highest_severity], -len(b.blocked)),
    )
