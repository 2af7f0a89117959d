"""Issue quality compliance against a configurable criteria catalog."""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pm_dashboard.core import labels as label_utils
from pm_dashboard.core.data_models import Issue
from pm_dashboard.core.stats import days_between, percentage, round_half_up, utcnow

logger = logging.getLogger(__name__)

SEVERITY_RANK = {"high": 3, "medium": 2, "low": 1}

DEFAULT_STALE_THRESHOLDS = {"warning": 30, "critical": 60}

DEFAULT_CRITERIA_CONFIG: dict[str, dict[str, Any]] = {
    "assignee": {
        "name": "Assignee",
        "description": "Issue must be assigned to a team member",
        "enabled": True,
        "severity": "high",
    },
    "weight": {
        "name": "Weight/Estimation",
        "description": "Issue must have a weight estimate",
        "enabled": True,
        "severity": "medium",
    },
    "epic": {
        "name": "Epic Assignment",
        "description": "Issue must be assigned to an epic",
        "enabled": True,
        "severity": "medium",
    },
    "description": {
        "name": "Description",
        "description": "Issue must have a meaningful description",
        "enabled": True,
        "severity": "medium",
        "threshold": 20,
    },
    "labels": {
        "name": "Type Label",
        "description": "Issue must have a type label (bug, feature, enhancement)",
        "enabled": True,
        "severity": "medium",
    },
    "milestone": {
        "name": "Milestone",
        "description": "Issue should be assigned to a milestone",
        "enabled": True,
        "severity": "medium",
    },
    "dueDate": {
        "name": "Due Date",
        "description": "Issue should have a due date",
        "enabled": True,
        "severity": "low",
    },
    "priority": {
        "name": "Priority",
        "description": "Issue should have a priority label",
        "enabled": True,
        "severity": "low",
    },
    "stale": {
        "name": "Stale Issue",
        "description": "Open issue has not been resolved within the stale thresholds",
        "enabled": True,
        "severity": "low",
    },
}

_TYPE_LABELS = ("bug", "feature", "enhancement", "type::")
_PRIORITY_LABELS = ("priority", "p1", "p2", "p3")


@dataclass
class StaleThresholds:
    warning: int = 30
    critical: int = 60

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> StaleThresholds:
        data = data or {}
        return cls(
            warning=int(data.get("warning", DEFAULT_STALE_THRESHOLDS["warning"])),
            critical=int(data.get("critical", DEFAULT_STALE_THRESHOLDS["critical"])),
        )


@dataclass
class StaleStatus:
    is_stale: bool = False
    days_open: int = 0
    severity: str | None = None  # "warning" | "critical"


@dataclass
class Criterion:
    """One entry of the criteria catalog."""

    key: str
    name: str
    description: str
    severity: str
    validate: Callable[[Issue], bool]
    dynamic_severity: Callable[[Issue], str] | None = None

    def severity_for(self, issue: Issue) -> str:
        if self.dynamic_severity is not None:
            return self.dynamic_severity(issue)
        return self.severity


@dataclass
class Violation:
    criterion: str
    name: str
    description: str
    severity: str


@dataclass
class ComplianceResult:
    """Outcome of checking one issue."""

    issue: Issue
    violations: list[Violation] = field(default_factory=list)
    passed: list[str] = field(default_factory=list)
    score: int = 100
    stale_status: StaleStatus = field(default_factory=StaleStatus)

    @property
    def is_compliant(self) -> bool:
        return not self.violations

    @property
    def highest_severity(self) -> str | None:
        if not self.violations:
            return None
        return max((v.severity for v in self.violations), key=lambda s: SEVERITY_RANK.get(s, 0))


@dataclass
class ComplianceStats:
    total: int = 0
    compliant: int = 0
    non_compliant: int = 0
    compliance_rate: int = 0
    violations_by_criterion: dict[str, int] = field(default_factory=dict)
    high_severity: int = 0
    medium_severity: int = 0
    low_severity: int = 0
    stale_total: int = 0
    stale_warning: int = 0
    stale_critical: int = 0


def check_stale_status(
    issue: Issue,
    thresholds: StaleThresholds | None = None,
    *,
    now: datetime | None = None,
) -> StaleStatus:
    """Classify how long an open issue has been sitting."""
    thresholds = thresholds or StaleThresholds()
    if not issue.is_open or issue.created_at is None:
        return StaleStatus()
    days_open = days_between(issue.created_at, now or utcnow())
    if days_open >= thresholds.critical:
        return StaleStatus(is_stale=True, days_open=days_open, severity="critical")
    if days_open >= thresholds.warning:
        return StaleStatus(is_stale=True, days_open=days_open, severity="warning")
    return StaleStatus(days_open=days_open)


def merge_criteria_config(config: dict[str, Any] | None) -> dict[str, dict[str, Any]]:
    """Overlay a stored per-criterion config onto the defaults."""
    merged = copy.deepcopy(DEFAULT_CRITERIA_CONFIG)
    for key, overrides in (config or {}).items():
        if key in merged and isinstance(overrides, dict):
            merged[key].update(overrides)
    return merged


def build_criteria(
    config: dict[str, Any] | None = None,
    thresholds: StaleThresholds | None = None,
    *,
    now: datetime | None = None,
) -> list[Criterion]:
    """Instantiate the enabled criteria, in catalog order."""
    merged = merge_criteria_config(config)
    thresholds = thresholds or StaleThresholds()
    now = now or utcnow()
    desc_threshold = int(merged["description"].get("threshold", 20))

    def _stale_severity(issue: Issue) -> str:
        status = check_stale_status(issue, thresholds, now=now)
        return "high" if status.severity == "critical" else "medium"

    validators: dict[str, Callable[[Issue], bool]] = {
        "assignee": lambda i: bool(i.assignees),
        "weight": lambda i: i.weight is not None and i.weight > 0,
        "epic": lambda i: i.epic is not None,
        "description": lambda i: len((i.description or "").strip()) >= desc_threshold,
        "labels": lambda i: label_utils.has_label_containing(i.labels, _TYPE_LABELS),
        "milestone": lambda i: i.milestone is not None,
        "dueDate": lambda i: i.due_date is not None,
        "priority": lambda i: label_utils.has_label_containing(i.labels, _PRIORITY_LABELS),
        "stale": lambda i: not check_stale_status(i, thresholds, now=now).is_stale,
    }

    criteria: list[Criterion] = []
    for key, cfg in merged.items():
        if not cfg.get("enabled", True):
            continue
        criteria.append(
            Criterion(
                key=key,
                name=cfg.get("name", key),
                description=cfg.get("description", ""),
                severity=cfg.get("severity", "medium"),
                validate=validators[key],
                dynamic_severity=_stale_severity if key == "stale" else None,
            )
        )
    return criteria


def check_issue_compliance(
    issue: Issue,
    criteria: list[Criterion] | None = None,
    thresholds: StaleThresholds | None = None,
    *,
    now: datetime | None = None,
) -> ComplianceResult:
    """Validate *issue* against every criterion."""
    now = now or utcnow()
    if criteria is None:
        criteria = build_criteria(thresholds=thresholds, now=now)
    result = ComplianceResult(
        issue=issue,
        stale_status=check_stale_status(issue, thresholds, now=now),
    )
    for criterion in criteria:
        if criterion.validate(issue):
            result.passed.append(criterion.key)
        else:
            result.violations.append(
                Violation(
                    criterion=criterion.key,
                    name=criterion.name,
                    description=criterion.description,
                    severity=criterion.severity_for(issue),
                )
            )
    if criteria:
        result.score = round_half_up(100 * len(result.passed) / len(criteria))
    return result


def check_all(
    issues: Iterable[Issue],
    criteria: list[Criterion] | None = None,
    thresholds: StaleThresholds | None = None,
    *,
    now: datetime | None = None,
) -> list[ComplianceResult]:
    now = now or utcnow()
    if criteria is None:
        criteria = build_criteria(thresholds=thresholds, now=now)
    return [check_issue_compliance(i, criteria, thresholds, now=now) for i in issues]


def find_non_compliant_issues(
    issues: Iterable[Issue],
    criteria: list[Criterion] | None = None,
    thresholds: StaleThresholds | None = None,
    *,
    now: datetime | None = None,
) -> list[ComplianceResult]:
    """Non-compliant results, worst score first, then longest open."""
    results = [r for r in check_all(issues, criteria, thresholds, now=now) if not r.is_compliant]
    results.sort(key=lambda r: (r.score, -r.stale_status.days_open))
    return results


def find_compliant_issues(
    issues: Iterable[Issue],
    criteria: list[Criterion] | None = None,
    thresholds: StaleThresholds | None = None,
    *,
    now: datetime | None = None,
) -> list[ComplianceResult]:
    return [r for r in check_all(issues, criteria, thresholds, now=now) if r.is_compliant]


def find_stale_issues(
    issues: Iterable[Issue],
    thresholds: StaleThresholds | None = None,
    *,
    now: datetime | None = None,
) -> list[tuple[Issue, StaleStatus]]:
    """Stale open issues, longest open first."""
    now = now or utcnow()
    stale = []
    for issue in issues:
        status = check_stale_status(issue, thresholds, now=now)
        if status.is_stale:
            stale.append((issue, status))
    stale.sort(key=lambda pair: -pair[1].days_open)
    return stale


def get_compliance_stats(
    issues: Iterable[Issue],
    criteria: list[Criterion] | None = None,
    thresholds: StaleThresholds | None = None,
    *,
    now: datetime | None = None,
) -> ComplianceStats:
    """Aggregate counts; issues are bucketed by their highest violation severity."""
    results = check_all(issues, criteria, thresholds, now=now)
    stats = ComplianceStats(total=len(results))
    for r in results:
        if r.is_compliant:
            stats.compliant += 1
        else:
            stats.non_compliant += 1
        for v in r.violations:
            stats.violations_by_criterion[v.criterion] = (
                stats.violations_by_criterion.get(v.criterion, 0) + 1
            )
        worst = r.highest_severity
        if worst == "high":
            stats.high_severity += 1
        elif worst == "medium":
            stats.medium_severity += 1
        elif worst == "low":
            stats.low_severity += 1
        if r.stale_status.is_stale:
            stats.stale_total += 1
            if r.stale_status.severity == "critical":
                stats.stale_critical += 1
            else:
                stats.stale_warning += 1
    stats.compliance_rate = percentage(stats.compliant, stats.total)
    logger.debug(
        "Compliance: %d/%d compliant (%d%%), %d high-severity",
        stats.compliant, stats.total, stats.compliance_rate, stats.high_severity,
    )
    return stats


def criteria_details(criteria: list[Criterion]) -> list[dict[str, str]]:
    """Name, description and severity of each criterion, for display."""
    return [
        {"key": c.key, "name": c.name, "description": c.description, "severity": c.severity}
        for c in criteria
    ]
