"""Stakeholder registry and communication templates."""

from __future__ import annotations

import logging
import re
from datetime import date
from typing import Any

from pm_dashboard.core.records import CommunicationTemplate, Stakeholder, new_id, now_iso
from pm_dashboard.services.store import ProjectStore

logger = logging.getLogger(__name__)

STAKEHOLDERS_KEY = "stakeholders"
TEMPLATES_KEY = "communication_templates"

_PLACEHOLDER = re.compile(r"\{(\w+)\}")

PLACEHOLDER_DEFAULTS: dict[str, str] = {
    "stakeholder_name": "Stakeholder",
    "project_name": "Project",
    "health_score": "N/A",
    "health_label": "Unknown",
    "completion_rate": "0",
    "open_issues": "0",
    "total_issues": "0",
    "blockers": "0",
    "team_utilization": "N/A",
    "sender_name": "Project Manager",
    "completed_issues": "0",
}

DEFAULT_TEMPLATES: list[CommunicationTemplate] = [
    CommunicationTemplate(
        id="weekly_status",
        name="Weekly Status Update",
        type="status_update",
        subject="Project Status Update - Week of {date}",
        body=(
            "Hi {stakeholder_name},\n\n"
            "Here's your weekly project status update for {project_name}:\n\n"
            "**Overall Health:** {health_score}/100 ({health_label})\n"
            "**Completion:** {completion_rate}%\n"
            "**Open Issues:** {open_issues}\n"
            "**Blockers:** {blockers}\n\n"
            "{status_summary}\n\n"
            "{upcoming_milestones}\n\n"
            "Best regards,\n{sender_name}"
        ),
        is_default=True,
    ),
    CommunicationTemplate(
        id="milestone_complete",
        name="Milestone Achievement",
        type="status_update",
        subject="Milestone Achieved: {milestone_name}",
        body=(
            "Hi {stakeholder_name},\n\n"
            "Great news! We've successfully completed the {milestone_name} milestone.\n\n"
            "**Achievement Highlights:**\n"
            "- {completed_issues} issues completed\n"
            "- Delivered on {milestone_date}\n"
            "- {completion_rate}% completion rate\n\n"
            "{next_steps}\n\n"
            "Best regards,\n{sender_name}"
        ),
        is_default=True,
    ),
    CommunicationTemplate(
        id="risk_alert",
        name="Risk Alert",
        type="incident",
        subject="Risk Alert: {risk_description}",
        body=(
            "Hi {stakeholder_name},\n\n"
            "I wanted to bring to your attention a risk that requires management awareness:\n\n"
            "**Risk:** {risk_description}\n"
            "**Probability:** {risk_probability}\n"
            "**Impact:** {risk_impact}\n"
            "**Mitigation Plan:** {risk_mitigation}\n\n"
            "Please let me know if you'd like to discuss this further.\n\n"
            "Best regards,\n{sender_name}"
        ),
        is_default=True,
    ),
    CommunicationTemplate(
        id="executive_summary",
        name="Executive Summary",
        type="status_update",
        subject="Executive Summary - {project_name}",
        body=(
            "Hi {stakeholder_name},\n\n"
            "Please find below the executive summary for {project_name}:\n\n"
            "**Project Health:** {health_score}/100\n"
            "**Status:** {health_label}\n\n"
            "**Key Metrics:**\n"
            "- Total Issues: {total_issues}\n"
            "- Completion Rate: {completion_rate}%\n"
            "- Active Blockers: {blockers}\n"
            "- Team Utilization: {team_utilization}%\n\n"
            "**Action Required:**\n{action_items}\n\n"
            "Best regards,\n{sender_name}"
        ),
        is_default=True,
    ),
]


def fill_template(text: str, data: dict[str, Any], *, today: date | None = None) -> str:
    """Replace ``{placeholder}`` tokens; unknown ones become empty strings."""
    today = today or date.today()

    def _sub(match: re.Match[str]) -> str:
        key = match.group(1)
        if key == "date" and "date" not in data:
            return f"{today.month}/{today.day}/{today.year}"
        value = data.get(key)
        if value is None or value == "":
            return PLACEHOLDER_DEFAULTS.get(key, "")
        return str(value)

    return _PLACEHOLDER.sub(_sub, text)


class StakeholderRegistry:
    """CRUD over the ``stakeholders`` list."""

    def __init__(self, store: ProjectStore) -> None:
        self._store = store

    def all(self) -> list[Stakeholder]:
        return [Stakeholder.from_dict(s) for s in self._store.read(STAKEHOLDERS_KEY, [])]

    def get(self, stakeholder_id: str) -> Stakeholder | None:
        return next((s for s in self.all() if s.id == stakeholder_id), None)

    def find_by_email(self, email: str) -> Stakeholder | None:
        needle = email.strip().lower()
        return next((s for s in self.all() if s.email and s.email.lower() == needle), None)

    def save(self, stakeholder: Stakeholder) -> Stakeholder:
        """Insert a new stakeholder or update the one with the same id."""
        stakeholders = self.all()
        timestamp = now_iso()
        stakeholder.updated_at = timestamp
        for idx, existing in enumerate(stakeholders):
            if stakeholder.id and existing.id == stakeholder.id:
                stakeholder.created_at = existing.created_at
                stakeholders[idx] = stakeholder
                break
        else:
            stakeholder.id = stakeholder.id or new_id()
            stakeholder.created_at = stakeholder.created_at or timestamp
            stakeholders.append(stakeholder)
        self._store.write(STAKEHOLDERS_KEY, [s.to_dict() for s in stakeholders])
        logger.info("Stakeholder %s saved", stakeholder.name or stakeholder.id)
        return stakeholder

    def remove(self, stakeholder_id: str) -> bool:
        stakeholders = self.all()
        kept = [s for s in stakeholders if s.id != stakeholder_id]
        if len(kept) == len(stakeholders):
            return False
        self._store.write(STAKEHOLDERS_KEY, [s.to_dict() for s in kept])
        return True


class TemplateLibrary:
    """Communication templates; built-ins are returned until one is saved."""

    def __init__(self, store: ProjectStore) -> None:
        self._store = store

    def all(self) -> list[CommunicationTemplate]:
        stored = self._store.read(TEMPLATES_KEY, None)
        if stored is None:
            return [CommunicationTemplate.from_dict(t.to_dict()) for t in DEFAULT_TEMPLATES]
        return [CommunicationTemplate.from_dict(t) for t in stored]

    def get(self, template_id: str) -> CommunicationTemplate | None:
        return next((t for t in self.all() if t.id == template_id), None)

    def save(self, template: CommunicationTemplate) -> CommunicationTemplate:
        templates = self.all()
        for idx, existing in enumerate(templates):
            if template.id and existing.id == template.id:
                templates[idx] = template
                break
        else:
            template.id = template.id or new_id()
            templates.append(template)
        self._store.write(TEMPLATES_KEY, [t.to_dict() for t in templates])
        return template

    def remove(self, template_id: str) -> bool:
        templates = self.all()
        kept = [t for t in templates if t.id != template_id]
        if len(kept) == len(templates):
            return False
        self._store.write(TEMPLATES_KEY, [t.to_dict() for t in kept])
        return True

    def reset(self) -> bool:
        return self._store.delete(TEMPLATES_KEY)

    def render(
        self,
        template_id: str,
        data: dict[str, Any],
        *,
        today: date | None = None,
    ) -> tuple[str, str] | None:
        """Filled ``(subject, body)`` for a template, or ``None`` if unknown."""
        template = self.get(template_id)
        if template is None:
            return None
        return (
            fill_template(template.subject, data, today=today),
            fill_template(template.body, data, today=today),
        )
