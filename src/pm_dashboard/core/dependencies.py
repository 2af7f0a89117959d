"""Issue-to-issue dependency extraction and blocker analysis.

Dependencies are read from free text (title and description).  Directional
phrases such as ``depends on #10`` make the current issue depend on #10;
``blocks #11`` is the reverse and makes #11 depend on the current issue.  A
bare ``#N`` mention is treated as a plain dependency.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from pm_dashboard.core.data_models import Issue

logger = logging.getLogger(__name__)

IssueKey = tuple[str | None, int]

SEVERITY_ORDER = {"high": 3, "medium": 2, "low": 1}

_DEPENDS_PATTERNS = [
    re.compile(r"depends\s+on\s+#(\d+)", re.IGNORECASE),
    re.compile(r"blocked\s+by\s+#(\d+)", re.IGNORECASE),
    re.compile(r"requires\s+#(\d+)", re.IGNORECASE),
    re.compile(r"needs\s+#(\d+)", re.IGNORECASE),
    re.compile(r"waiting\s+for\s+#(\d+)", re.IGNORECASE),
    re.compile(r"dependency:?\s*#(\d+)", re.IGNORECASE),
]
_BLOCKS_PATTERN = re.compile(r"blocks\s+#(\d+)", re.IGNORECASE)
_BARE_PATTERN = re.compile(r"(?:^|(?<=\s))#(\d+)(?=\s|$|[.,;:!?)])")


@dataclass
class DependencyRefs:
    """Issue numbers mentioned in one issue's text."""

    depends_on: list[int] = field(default_factory=list)
    blocks: list[int] = field(default_factory=list)


@dataclass
class DependencyInfo:
    issue: Issue
    dependencies: list[Issue] = field(default_factory=list)

    @property
    def open_dependencies(self) -> list[Issue]:
        return [d for d in self.dependencies if d.is_open]

    @property
    def closed_dependencies(self) -> list[Issue]:
        return [d for d in self.dependencies if d.is_closed]


@dataclass
class BlockedIssue:
    issue: Issue
    dependencies: list[Issue]
    open_dependencies: list[Issue]
    severity: str
    blocks_count: int
    blocks_issues: list[Issue]
    impact: int


@dataclass
class Recommendation:
    priority: str  # "urgent" | "high" | "medium" | "low"
    action: str
    details: str


@dataclass
class GraphNode:
    id: int
    title: str
    state: str
    dependency_count: int
    open_dependency_count: int
    is_blocked: bool


@dataclass
class GraphEdge:
    source: int
    target: int
    label: str = "depends on"
    is_blocking: bool = False


@dataclass
class DependencyGraph:
    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)


@dataclass
class DependencyStats:
    total_issues_with_dependencies: int = 0
    total_blocked_issues: int = 0
    high_severity_blocked: int = 0
    medium_severity_blocked: int = 0
    total_open_dependencies: int = 0

    @property
    def has_blockers(self) -> bool:
        return self.total_blocked_issues > 0


def parse_dependency_refs(text: str) -> DependencyRefs:
    """Extract referenced issue numbers from *text*, deduplicated in order."""
    refs = DependencyRefs()
    if not text:
        return refs

    def _add(target: list[int], value: str) -> None:
        number = int(value)
        if number not in target:
            target.append(number)

    remainder = text
    for pattern in _DEPENDS_PATTERNS:
        for match in pattern.finditer(text):
            _add(refs.depends_on, match.group(1))
        remainder = pattern.sub(" ", remainder)
    for match in _BLOCKS_PATTERN.finditer(text):
        _add(refs.blocks, match.group(1))
    remainder = _BLOCKS_PATTERN.sub(" ", remainder)
    for match in _BARE_PATTERN.finditer(remainder):
        _add(refs.depends_on, match.group(1))
    return refs


def detect_dependencies(issues: Iterable[Issue]) -> dict[IssueKey, DependencyInfo]:
    """Map each issue with at least one resolved dependency to its dependencies.

    References resolve against issues of the same project; unknown numbers
    and self references are dropped.
    """
    issues = list(issues)
    index: dict[IssueKey, Issue] = {i.key: i for i in issues}
    edges: dict[IssueKey, list[IssueKey]] = {}

    def _link(src: IssueKey, dst: IssueKey) -> None:
        if src == dst or src not in index or dst not in index:
            return
        targets = edges.setdefault(src, [])
        if dst not in targets:
            targets.append(dst)

    for issue in issues:
        refs = parse_dependency_refs(f"{issue.title} {issue.description or ''}")
        for number in refs.depends_on:
            _link(issue.key, (issue.project_id, number))
        for number in refs.blocks:
            _link((issue.project_id, number), issue.key)

    dep_map: dict[IssueKey, DependencyInfo] = {}
    for issue in issues:
        targets = edges.get(issue.key)
        if targets:
            dep_map[issue.key] = DependencyInfo(issue=issue, dependencies=[index[k] for k in targets])
    logger.debug("Detected dependencies for %d of %d issues", len(dep_map), len(issues))
    return dep_map


def dependents_index(dep_map: dict[IssueKey, DependencyInfo]) -> dict[IssueKey, list[Issue]]:
    """Reverse view: issue key -> issues that depend on it."""
    reverse: dict[IssueKey, list[Issue]] = {}
    for info in dep_map.values():
        for dep in info.dependencies:
            reverse.setdefault(dep.key, []).append(info.issue)
    return reverse


def blocks_count(issue: Issue, dep_map: dict[IssueKey, DependencyInfo]) -> int:
    return len(dependents_index(dep_map).get(issue.key, []))


def dependency_severity(open_count: int) -> str:
    if open_count >= 3:
        return "high"
    if open_count >= 1:
        return "medium"
    return "low"


def impact_score(open_count: int, blocks: int) -> int:
    return 10 * open_count + 20 * blocks


def find_blocked_issues(
    issues: Iterable[Issue],
    dep_map: dict[IssueKey, DependencyInfo] | None = None,
) -> list[BlockedIssue]:
    """Issues with at least one open dependency, most severe and impactful first."""
    if dep_map is None:
        dep_map = detect_dependencies(issues)
    reverse = dependents_index(dep_map)
    blocked: list[BlockedIssue] = []
    for info in dep_map.values():
        open_deps = info.open_dependencies
        if not open_deps:
            continue
        dependents = reverse.get(info.issue.key, [])
        blocked.append(
            BlockedIssue(
                issue=info.issue,
                dependencies=info.dependencies,
                open_dependencies=open_deps,
                severity=dependency_severity(len(open_deps)),
                blocks_count=len(dependents),
                blocks_issues=dependents,
                impact=impact_score(len(open_deps), len(dependents)),
            )
        )
    blocked.sort(key=lambda b: (-SEVERITY_ORDER[b.severity], -b.impact))
    return blocked


def get_dependency_stats(issues: Iterable[Issue]) -> DependencyStats:
    dep_map = detect_dependencies(issues)
    blocked = find_blocked_issues([], dep_map)
    return DependencyStats(
        total_issues_with_dependencies=len(dep_map),
        total_blocked_issues=len(blocked),
        high_severity_blocked=sum(1 for b in blocked if b.severity == "high"),
        medium_severity_blocked=sum(1 for b in blocked if b.severity == "medium"),
        total_open_dependencies=sum(len(b.open_dependencies) for b in blocked),
    )


def recommended_actions(blocked: BlockedIssue) -> list[Recommendation]:
    """Ordered follow-ups for a blocked issue."""
    actions: list[Recommendation] = []
    if blocked.severity == "high":
        actions.append(
            Recommendation(
                priority="urgent",
                action="Escalate to leadership",
                details=(
                    f"This issue is blocked by {len(blocked.open_dependencies)} open "
                    "dependencies. Consider daily standup focus."
                ),
            )
        )
    if blocked.blocks_count > 0:
        actions.append(
            Recommendation(
                priority="high",
                action="Prioritize unblocking",
                details=f"Unblocking this will unblock {blocked.blocks_count} other issue(s).",
            )
        )
    for dep in blocked.open_dependencies:
        if not dep.assignees:
            actions.append(
                Recommendation(
                    priority="medium",
                    action=f"Assign dependency #{dep.iid}",
                    details=f'"{dep.title}" has no assignee. Assign to accelerate unblocking.',
                )
            )
    if not actions:
        actions.append(
            Recommendation(
                priority="low",
                action="Monitor dependencies",
                details="Track progress on open dependencies in daily standups.",
            )
        )
    return actions


def build_dependency_graph(issues: Iterable[Issue]) -> DependencyGraph:
    dep_map = detect_dependencies(issues)
    graph = DependencyGraph()
    for info in dep_map.values():
        open_count = len(info.open_dependencies)
        graph.nodes.append(
            GraphNode(
                id=info.issue.iid,
                title=info.issue.title,
                state=info.issue.state,
                dependency_count=len(info.dependencies),
                open_dependency_count=open_count,
                is_blocked=open_count > 0,
            )
        )
        for dep in info.dependencies:
            graph.edges.append(
                GraphEdge(source=info.issue.iid, target=dep.iid, is_blocking=dep.is_open)
            )
    return graph


def detect_circular_dependencies(issues: Iterable[Issue]) -> list[tuple[Issue, Issue]]:
    """Pairs of issues that depend on each other, each pair reported once."""
    dep_map = detect_dependencies(issues)
    seen: set[frozenset[IssueKey]] = set()
    cycles: list[tuple[Issue, Issue]] = []
    for key, info in dep_map.items():
        for dep in info.dependencies:
            other = dep_map.get(dep.key)
            if other is None or all(d.key != key for d in other.dependencies):
                continue
            pair = frozenset((key, dep.key))
            if pair in seen:
                continue
            seen.add(pair)
            cycles.append((info.issue, dep))
    if cycles:
        logger.debug("Found %d circular dependency pair(s)", len(cycles))
    return cycles
