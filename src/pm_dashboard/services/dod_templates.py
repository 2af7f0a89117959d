"""Persisted DoD templates (``dodTemplates``) and manual checkmarks (``dodManualChecks``)."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pm_dashboard.core.data_models import Issue
from pm_dashboard.core.dod import (
    DoDResult,
    DoDStats,
    DoDTemplate,
    check_dod_compliance,
    default_templates,
    find_dod_violations,
    get_dod_stats,
    manual_check_key,
    template_for_type,
)
from pm_dashboard.services.store import ProjectStore

logger = logging.getLogger(__name__)

DOD_TEMPLATES_KEY = "dodTemplates"
MANUAL_CHECKS_KEY = "dodManualChecks"


class DoDTemplateService:
    def __init__(self, store: ProjectStore) -> None:
        self._store = store

    # -- templates ------------------------------------------------------------

    def templates(self) -> dict[str, DoDTemplate]:
        """Stored templates layered over the built-in ones."""
        merged = default_templates()
        stored = self._store.read(DOD_TEMPLATES_KEY, {})
        if isinstance(stored, dict):
            for issue_type, raw in stored.items():
                if isinstance(raw, dict):
                    merged[issue_type] = DoDTemplate.from_dict(raw)
        return merged

    def template_for(self, issue_type: str | None) -> DoDTemplate:
        return template_for_type(self.templates(), issue_type)

    def save(self, issue_type: str, template: DoDTemplate) -> bool:
        stored = self._store.read(DOD_TEMPLATES_KEY, {})
        if not isinstance(stored, dict):
            stored = {}
        stored[issue_type.lower()] = template.to_dict()
        ok = self._store.write(DOD_TEMPLATES_KEY, stored)
        if ok:
            logger.info("DoD template for %s saved", issue_type)
        return ok

    def reset(self) -> bool:
        return self._store.delete(DOD_TEMPLATES_KEY)

    # -- manual checks --------------------------------------------------------

    def manual_checks(self) -> dict[str, bool]:
        stored = self._store.read(MANUAL_CHECKS_KEY, {})
        if not isinstance(stored, dict):
            return {}
        return {str(k): bool(v) for k, v in stored.items()}

    def set_manual_check(self, issue: Issue, item_id: str, checked: bool) -> bool:
        checks = self.manual_checks()
        checks[manual_check_key(issue, item_id)] = checked
        return self._store.write(MANUAL_CHECKS_KEY, checks)

    def clear_manual_check(self, issue: Issue, item_id: str) -> bool:
        checks = self.manual_checks()
        if checks.pop(manual_check_key(issue, item_id), None) is None:
            return False
        return self._store.write(MANUAL_CHECKS_KEY, checks)

    # -- evaluation -----------------------------------------------------------

    def evaluate(self, issue: Issue) -> DoDResult:
        return check_dod_compliance(issue, self.templates(), self.manual_checks())

    def violations(self, issues: Iterable[Issue]) -> list[DoDResult]:
        return find_dod_violations(issues, self.templates(), self.manual_checks())

    def stats(self, issues: Iterable[Issue]) -> DoDStats:
        return get_dod_stats(issues, self.templates(), self.manual_checks())
