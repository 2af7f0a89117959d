"""Definition-of-Done templates and best-effort compliance checks.

Checklist items are evaluated with text heuristics over the issue
description.  Items that need a human (demo, staging verification, ...) never
pass automatically; a stored manual checkmark overrides any heuristic.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from pm_dashboard.core.data_models import Issue
from pm_dashboard.core.stats import percentage, round_half_up

logger = logging.getLogger(__name__)

MANUAL_ITEMS = frozenset(
    {"test-case", "fix-verified", "demo", "backward-compatible", "performance-tested"}
)


@dataclass
class DoDItem:
    id: str
    label: str
    required: bool = True


@dataclass
class DoDTemplate:
    name: str
    checklist: list[DoDItem] = field(default_factory=list)

    @property
    def required_items(self) -> list[DoDItem]:
        return [i for i in self.checklist if i.required]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "checklist": [
                {"id": i.id, "label": i.label, "required": i.required} for i in self.checklist
            ],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DoDTemplate:
        return cls(
            name=data.get("name", ""),
            checklist=[
                DoDItem(id=i["id"], label=i.get("label", i["id"]), required=bool(i.get("required", True)))
                for i in data.get("checklist", [])
                if isinstance(i, Mapping) and "id" in i
            ],
        )


DEFAULT_DOD_TEMPLATES: dict[str, DoDTemplate] = {
    "feature": DoDTemplate(
        name="Feature",
        checklist=[
            DoDItem("code-review", "Code reviewed (2+ approvals)"),
            DoDItem("unit-tests", "Unit tests written (>80% coverage)"),
            DoDItem("integration-tests", "Integration tests passed"),
            DoDItem("documentation", "Documentation updated"),
            DoDItem("demo", "Demoed to Product Owner", required=False),
            DoDItem("acceptance-criteria", "Acceptance criteria met"),
        ],
    ),
    "bug": DoDTemplate(
        name="Bug Fix",
        checklist=[
            DoDItem("root-cause", "Root cause documented"),
            DoDItem("code-review", "Code reviewed"),
            DoDItem("test-case", "Test case added to prevent regression"),
            DoDItem("regression-test", "Regression test passed"),
            DoDItem("fix-verified", "Fix verified in staging"),
        ],
    ),
    "enhancement": DoDTemplate(
        name="Enhancement",
        checklist=[
            DoDItem("code-review", "Code reviewed"),
            DoDItem("backward-compatible", "Backward compatible"),
            DoDItem("performance-tested", "Performance tested", required=False),
            DoDItem("documentation", "Documentation updated"),
            DoDItem("acceptance-criteria", "Acceptance criteria met"),
        ],
    ),
}


@dataclass
class DoDResult:
    issue: Issue
    issue_type: str
    template_name: str
    total_items: int = 0
    required_items: int = 0
    checked_items: list[DoDItem] = field(default_factory=list)
    missing_items: list[DoDItem] = field(default_factory=list)
    compliance_percentage: int = 100

    @property
    def is_compliant(self) -> bool:
        return not self.missing_items


@dataclass
class DoDStats:
    total_issues: int = 0
    compliant_issues: int = 0
    violating_issues: int = 0
    compliance_rate: int = 100
    avg_compliance_percentage: int = 100


def default_templates() -> dict[str, DoDTemplate]:
    return copy.deepcopy(DEFAULT_DOD_TEMPLATES)


def detect_issue_type(issue: Issue) -> str:
    """``bug`` beats ``enhancement`` beats ``feature``."""
    labels = [label.lower() for label in issue.labels]
    if any("bug" in lbl or "defect" in lbl for lbl in labels):
        return "bug"
    if any("enhancement" in lbl or "improvement" in lbl for lbl in labels):
        return "enhancement"
    return "feature"


def template_for_type(templates: Mapping[str, DoDTemplate], issue_type: str | None) -> DoDTemplate:
    key = (issue_type or "feature").lower()
    if key in templates:
        return templates[key]
    return templates.get("feature") or DEFAULT_DOD_TEMPLATES["feature"]


def manual_check_key(issue: Issue, item_id: str) -> str:
    issue_id = issue.id if issue.id is not None else issue.iid
    return f"{issue_id}:{item_id}"


def evaluate_item(item_id: str, description: str) -> bool:
    """Heuristic verdict for one checklist item."""
    if not description or item_id in MANUAL_ITEMS:
        return False
    text = description.lower()
    if item_id == "code-review":
        return "!" in description or "merge request" in text or "reviewed" in text
    if item_id in ("unit-tests", "integration-tests", "regression-test"):
        return "test" in text or "coverage" in text
    if item_id == "documentation":
        return "documentation" in text or "readme" in text or len(description) >= 200
    if item_id == "acceptance-criteria":
        return "acceptance criteria" in text or "acceptance:" in text or "- [ ]" in description
    if item_id == "root-cause":
        return "root cause" in text or "cause:" in text or "reason:" in text
    return False


def check_dod_compliance(
    issue: Issue,
    templates: Mapping[str, DoDTemplate] | None = None,
    manual_checks: Mapping[str, bool] | None = None,
) -> DoDResult:
    templates = templates if templates is not None else DEFAULT_DOD_TEMPLATES
    manual_checks = manual_checks or {}
    issue_type = detect_issue_type(issue)
    template = template_for_type(templates, issue_type)
    result = DoDResult(
        issue=issue,
        issue_type=issue_type,
        template_name=template.name,
        total_items=len(template.checklist),
        required_items=len(template.required_items),
    )
    for item in template.checklist:
        override = manual_checks.get(manual_check_key(issue, item.id))
        passing = override if override is not None else evaluate_item(item.id, issue.description)
        if passing:
            result.checked_items.append(item)
        elif item.required:
            result.missing_items.append(item)

    required_passed = sum(1 for i in result.checked_items if i.required)
    if result.required_items:
        result.compliance_percentage = percentage(required_passed, result.required_items)
    return result


def _is_reviewable(issue: Issue) -> bool:
    return issue.is_closed or any("review" in label.lower() for label in issue.labels)


def find_dod_violations(
    issues: Iterable[Issue],
    templates: Mapping[str, DoDTemplate] | None = None,
    manual_checks: Mapping[str, bool] | None = None,
) -> list[DoDResult]:
    """Closed or in-review issues failing their DoD, worst first."""
    results = [
        check_dod_compliance(i, templates, manual_checks) for i in issues if _is_reviewable(i)
    ]
    violations = [r for r in results if not r.is_compliant]
    violations.sort(key=lambda r: r.compliance_percentage)
    return violations


def get_dod_stats(
    issues: Iterable[Issue],
    templates: Mapping[str, DoDTemplate] | None = None,
    manual_checks: Mapping[str, bool] | None = None,
) -> DoDStats:
    results = [
        check_dod_compliance(i, templates, manual_checks) for i in issues if _is_reviewable(i)
    ]
    if not results:
        return DoDStats()
    compliant = sum(1 for r in results if r.is_compliant)
    return DoDStats(
        total_issues=len(results),
        compliant_issues=compliant,
        violating_issues=len(results) - compliant,
        compliance_rate=percentage(compliant, len(results)),
        avg_compliance_percentage=round_half_up(
            sum(r.compliance_percentage for r in results) / len(results)
        ),
    )
