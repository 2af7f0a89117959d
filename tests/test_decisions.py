"""Tests for pm_dashboard.services.decisions."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from pm_dashboard.core.records import Decision
from pm_dashboard.services.decisions import DecisionLog
from pm_dashboard.services.store import ProjectStore

NOW = datetime(2025, 6, 30, tzinfo=timezone.utc)


def _make_log(tmp_path: Path) -> DecisionLog:
    return DecisionLog(ProjectStore(tmp_path, "p1"))


class TestSave:
    """New decisions are stamped and prepended; known ids are updated."""

    def test_new_decision(self, tmp_path: Path) -> None:
        log = _make_log(tmp_path)
        decision = log.save(Decision(title="Adopt Postgres", rationale="Team expertise"))
        assert decision.id
        assert decision.project_id == "p1"
        assert decision.decision_date == decision.created_at
        assert decision.status == "active"
        assert log.get(decision.id) == decision

    def test_prepended(self, tmp_path: Path) -> None:
        log = _make_log(tmp_path)
        first = log.save(Decision(title="one"))
        second = log.save(Decision(title="two"))
        assert [d.id for d in log.all()] == [second.id, first.id]

    def test_update_preserves_identity(self, tmp_path: Path) -> None:
        log = _make_log(tmp_path)
        decision = log.save(Decision(title="Draft"))
        edited = Decision.from_dict({**decision.to_dict(), "title": "Final", "project_id": "x"})
        updated = log.save(edited)
        assert updated.title == "Final"
        assert updated.project_id == "p1"
        assert updated.created_at == decision.created_at
        assert len(log.all()) == 1

    def test_invalid_status(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            _make_log(tmp_path).save(Decision(title="x", status="pending"))

    def test_delete(self, tmp_path: Path) -> None:
        log = _make_log(tmp_path)
        decision = log.save(Decision(title="x"))
        assert log.delete(decision.id)
        assert not log.delete(decision.id)


class TestReverse:
    def test_reversed(self, tmp_path: Path) -> None:
        log = _make_log(tmp_path)
        decision = log.save(Decision(title="Freeze scope"))
        reversed_ = log.reverse(decision.id, "Customer escalation")
        assert reversed_ is not None
        assert reversed_.status == "reversed"
        assert reversed_.reversed_reason == "Customer escalation"
        assert reversed_.reversed_at
        assert reversed_.reversed_by is None

    def test_superseded(self, tmp_path: Path) -> None:
        log = _make_log(tmp_path)
        old = log.save(Decision(title="Use vendor A"))
        new = log.save(Decision(title="Use vendor B"))
        result = log.reverse(old.id, "Pricing", new.id)
        assert result is not None
        assert result.status == "superseded"
        assert result.reversed_by == new.id
        assert log.stats() == {"total": 2, "active": 1, "reversed": 0, "superseded": 1}

    def test_unknown(self, tmp_path: Path) -> None:
        assert _make_log(tmp_path).reverse("missing", "why") is None


class TestQueries:
    def test_recent(self, tmp_path: Path) -> None:
        log = _make_log(tmp_path)
        log.save(Decision(title="old", decision_date="2025-04-01T00:00:00+00:00"))
        log.save(Decision(title="new", decision_date="2025-06-20"))
        log.save(Decision(title="bad", decision_date="someday"))
        assert [d.title for d in log.recent(30, now=NOW)] == ["new"]
        assert [d.title for d in log.recent(120, now=NOW)] == ["new", "old"]

    def test_search(self, tmp_path: Path) -> None:
        log = _make_log(tmp_path)
        log.save(Decision(title="Move to Kubernetes", linked_issues=["42"]))
        log.save(Decision(title="Hire contractor", rationale="Kubernetes skills gap"))
        assert len(log.search("kubernetes")) == 2
        assert [d.title for d in log.search("42")] == ["Move to Kubernetes"]
