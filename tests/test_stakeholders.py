"""Tests for pm_dashboard.services.stakeholders."""

from __future__ import annotations

from datetime import date
from pathlib import Path

from pm_dashboard.core.records import CommunicationTemplate, Stakeholder
from pm_dashboard.services.stakeholders import (
    DEFAULT_TEMPLATES,
    StakeholderRegistry,
    TemplateLibrary,
    fill_template,
)
from pm_dashboard.services.store import ProjectStore


class TestRegistry:
    """Stakeholders are saved per project."""

    def test_insert_and_update(self, tmp_path: Path) -> None:
        registry = StakeholderRegistry(ProjectStore(tmp_path, "p"))
        saved = registry.save(Stakeholder(name="Dana", email="dana@example.com", role="Sponsor"))
        assert saved.id
        created = saved.created_at

        saved.role = "Executive Sponsor"
        registry.save(saved)
        stored = registry.get(saved.id)
        assert stored is not None
        assert stored.role == "Executive Sponsor"
        assert stored.created_at == created
        assert len(registry.all()) == 1

    def test_find_by_email(self, tmp_path: Path) -> None:
        registry = StakeholderRegistry(ProjectStore(tmp_path, "p"))
        registry.save(Stakeholder(name="Dana", email="Dana@Example.com"))
        found = registry.find_by_email(" dana@example.com ")
        assert found is not None
        assert found.name == "Dana"
        assert registry.find_by_email("nobody@example.com") is None

    def test_remove(self, tmp_path: Path) -> None:
        registry = StakeholderRegistry(ProjectStore(tmp_path, "p"))
        saved = registry.save(Stakeholder(name="Dana"))
        assert registry.remove(saved.id)
        assert not registry.remove(saved.id)
        assert registry.all() == []


class TestFillTemplate:
    def test_values_and_defaults(self) -> None:
        text = fill_template(
            "Hi {stakeholder_name}, health {health_score}, {unknown}!",
            {"health_score": 82},
        )
        assert text == "Hi Stakeholder, health 82, !"

    def test_date_placeholder(self) -> None:
        assert fill_template("Week of {date}", {}, today=date(2025, 3, 7)) == "Week of 3/7/2025"
        assert fill_template("Week of {date}", {"date": "next"}) == "Week of next"


class TestTemplateLibrary:
    def test_builtins_until_saved(self, tmp_path: Path) -> None:
        library = TemplateLibrary(ProjectStore(tmp_path, "p"))
        assert [t.id for t in library.all()] == [t.id for t in DEFAULT_TEMPLATES]

    def test_save_custom(self, tmp_path: Path) -> None:
        library = TemplateLibrary(ProjectStore(tmp_path, "p"))
        library.save(CommunicationTemplate(id="kickoff", name="Kickoff", subject="Kickoff {project_name}"))
        assert library.get("kickoff") is not None
        assert library.get("weekly_status") is not None

    def test_render(self, tmp_path: Path) -> None:
        library = TemplateLibrary(ProjectStore(tmp_path, "p"))
        rendered = library.render(
            "executive_summary", {"project_name": "Atlas", "health_score": 71}, today=date(2025, 1, 1)
        )
        assert rendered is not None
        subject, body = rendered
        assert subject == "Executive Summary - Atlas"
        assert "**Project Health:** 71/100" in body
        assert library.render("nope", {}) is None

    def test_reset(self, tmp_path: Path) -> None:
        library = TemplateLibrary(ProjectStore(tmp_path, "p"))
        library.remove("risk_alert")
        assert library.get("risk_alert") is None
        library.reset()
        assert library.get("risk_alert") is not None
