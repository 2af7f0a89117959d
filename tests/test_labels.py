"""Tests for pm_dashboard.core.labels."""

from __future__ import annotations

from pm_dashboard.core import labels


class TestScopedValues:
    """The first label in a namespace wins."""

    def test_story_points(self) -> None:
        assert labels.story_points(["sp::5"]) == 5

    def test_story_points_first_wins(self) -> None:
        assert labels.story_points(["sp::3", "sp::8"]) == 3

    def test_story_points_non_numeric_is_absent(self) -> None:
        assert labels.story_points(["sp::big"]) is None

    def test_story_points_missing(self) -> None:
        assert labels.story_points(["bug"]) is None

    def test_priority_lowercased(self) -> None:
        assert labels.priority(["Priority::High"]) == "high"

    def test_initiative_slug(self) -> None:
        assert labels.initiative_slug(["team::a", "initiative::Mobile-App"]) == "mobile-app"

    def test_iteration_label(self) -> None:
        assert labels.iteration_label(["iteration::Sprint 4"]) == "Sprint 4"

    def test_empty_value_is_absent(self) -> None:
        assert labels.scoped_value(["type::"], labels.TYPE_PREFIX) is None


class TestIssueType:
    """Explicit ``type::`` labels beat keyword inference."""

    def test_explicit_type(self) -> None:
        assert labels.issue_type(["type::Feature", "bug"]) == "feature"

    def test_inferred_bug(self) -> None:
        assert labels.issue_type(["Defect"]) == "bug"

    def test_inferred_enhancement(self) -> None:
        assert labels.issue_type(["improvement"]) == "enhancement"

    def test_unknown(self) -> None:
        assert labels.issue_type(["frontend"]) is None


class TestHelpers:
    def test_has_label_containing_is_case_insensitive(self) -> None:
        assert labels.has_label_containing(["Priority::P1"], ["priority"])
        assert not labels.has_label_containing(["backend"], ["priority"])

    def test_is_blocked(self) -> None:
        assert labels.is_blocked(["Blocked"])
        assert not labels.is_blocked(["unblocked-soon"])

    def test_initiative_name(self) -> None:
        assert labels.initiative_name("mobile-app") == "Mobile App"
        assert labels.initiative_name("data_platform") == "Data Platform"
