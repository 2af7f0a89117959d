"""Tests for pm_dashboard.services.velocity_config."""

from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

from pm_dashboard.core.data_models import Issue, Iteration, Member
from pm_dashboard.services.store import ProjectStore
from pm_dashboard.services.velocity_config import (
    DEFAULT_VELOCITY_CONFIG,
    VELOCITY_CONFIG_KEY,
    AbsenceTracker,
    VelocityConfigService,
    migrate_velocity_config,
)

SPRINT_1 = Iteration("1", "Sprint 1", date(2025, 1, 6), date(2025, 1, 17))
SPRINT_2 = Iteration("2", "Sprint 2", date(2025, 1, 20), date(2025, 1, 31))


def _history() -> list[Issue]:
    return [
        Issue(iid=i, title="done", state="closed", labels=["sp::8"],
              assignees=[Member("alice")], iteration=sprint)
        for i, sprint in enumerate((SPRINT_1, SPRINT_2), start=1)
    ]


class TestMigration:
    def test_fills_new_fields(self) -> None:
        migrated = migrate_velocity_config({"mode": "static", "velocityLookbackIterations": 5})
        assert migrated["mode"] == "static"
        assert migrated["analyticsLookbackIterations"] == 5
        assert migrated["metricType"] == "points"

    def test_non_dict_resets(self) -> None:
        assert migrate_velocity_config(None) == DEFAULT_VELOCITY_CONFIG

    def test_applied_on_load(self, tmp_path: Path) -> None:
        store = ProjectStore(tmp_path, "p")
        store.write(VELOCITY_CONFIG_KEY, {"staticHoursPerSP": 4})
        config = VelocityConfigService(store).load()
        assert config["staticHoursPerSP"] == 4
        assert config["absences"] == []


class TestHoursPerUnit:
    def test_dynamic_individual(self, tmp_path: Path) -> None:
        service = VelocityConfigService(ProjectStore(tmp_path, "p"))
        estimate = service.hours_per_unit(Member("alice"), _history())
        # 160 hours over 16 points
        assert estimate.source == "individual"
        assert estimate.hours == pytest.approx(10.0)

    def test_static_mode(self, tmp_path: Path) -> None:
        service = VelocityConfigService(ProjectStore(tmp_path, "p"))
        service.update(mode="static", staticHoursPerSP=5)
        estimate = service.hours_per_unit(Member("alice"), _history())
        assert estimate.source == "static"
        assert estimate.hours == pytest.approx(5.0)

    def test_min_iterations_setting(self, tmp_path: Path) -> None:
        service = VelocityConfigService(ProjectStore(tmp_path, "p"))
        service.update(minIterationsForIndividualVelocity=3)
        estimate = service.hours_per_unit(Member("alice"), _history())
        assert estimate.source == "static"
        assert estimate.hours == pytest.approx(6.0)
        assert "at least 3 iterations" in estimate.details

    def test_absence_lowers_hours(self, tmp_path: Path) -> None:
        store = ProjectStore(tmp_path, "p")
        AbsenceTracker(store).add("alice", date(2025, 1, 6), date(2025, 1, 10))
        estimate = VelocityConfigService(store).hours_per_unit(Member("alice"), _history())
        # (40 + 80) hours over 16 points
        assert estimate.hours == pytest.approx(7.5)

    def test_team_velocity(self, tmp_path: Path) -> None:
        service = VelocityConfigService(ProjectStore(tmp_path, "p"))
        team = service.team_velocity([Member("alice"), Member("bob")], _history())
        assert team.members_analyzed == 1
        assert team.hours_per_unit == pytest.approx(10.0)

    def test_reset(self, tmp_path: Path) -> None:
        service = VelocityConfigService(ProjectStore(tmp_path, "p"))
        service.update(mode="static")
        assert service.reset()["mode"] == "dynamic"
        assert service.load()["mode"] == "dynamic"


class TestAbsences:
    """Absences are stored inside the velocity config."""

    def test_overlapping_absence_replaced(self, tmp_path: Path) -> None:
        tracker = AbsenceTracker(ProjectStore(tmp_path, "p"))
        tracker.add("alice", date(2025, 1, 6), date(2025, 1, 8))
        tracker.add("alice", date(2025, 1, 7), date(2025, 1, 10), reason="extended")
        tracker.add("bob", date(2025, 1, 7), date(2025, 1, 7))
        assert [a.reason for a in tracker.for_user("alice")] == ["extended"]
        assert len(tracker.all()) == 2

    def test_hours_clip_to_range(self, tmp_path: Path) -> None:
        tracker = AbsenceTracker(ProjectStore(tmp_path, "p"))
        tracker.add("alice", date(2025, 1, 16), date(2025, 1, 21))
        # Thu, Fri inside the sprint; the following Mon, Tue are outside
        assert tracker.absence_hours("alice", date(2025, 1, 6), date(2025, 1, 17)) == pytest.approx(16.0)
        assert tracker("alice", date(2025, 1, 6), date(2025, 1, 17), 20) == pytest.approx(8.0)

    def test_remove(self, tmp_path: Path) -> None:
        tracker = AbsenceTracker(ProjectStore(tmp_path, "p"))
        absence = tracker.add("alice", date(2025, 1, 6), date(2025, 1, 6))
        assert tracker.remove(absence.id)
        assert not tracker.remove(absence.id)
        assert tracker.all() == []
