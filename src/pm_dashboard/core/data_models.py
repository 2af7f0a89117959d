"""Data models for the PM dashboard engine.

These mirror the upstream issue-tracker entities after normalisation by
:mod:`pm_dashboard.core.snapshot`.  Everything here is read-only input to the
analytics modules; locally owned artifacts live in
:mod:`pm_dashboard.core.records`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime

from pm_dashboard.core import labels as label_utils


@dataclass
class Member:
    """A project member (assignee, author or roster entry)."""

    username: str
    name: str = ""
    weekly_capacity: float = 40.0

    @property
    def display_name(self) -> str:
        return self.name or self.username


@dataclass
class Milestone:
    """An upstream milestone."""

    id: int
    title: str = ""
    state: str = "active"  # "active" | "closed"
    due_date: date | None = None
    start_date: date | None = None

    @property
    def is_active(self) -> bool:
        return self.state == "active"


@dataclass
class Iteration:
    """A time-boxed sprint."""

    id: str
    title: str
    start_date: date
    end_date: date


@dataclass
class EpicRef:
    """The lightweight epic reference carried on an issue."""

    id: int
    iid: int | None = None
    title: str = ""


@dataclass
class Issue:
    """A single upstream issue."""

    iid: int
    title: str
    state: str = "opened"  # "opened" | "closed"
    description: str = ""
    id: int | None = None
    project_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    closed_at: datetime | None = None
    assignees: list[Member] = field(default_factory=list)
    author: Member | None = None
    labels: list[str] = field(default_factory=list)
    milestone: Milestone | None = None
    epic: EpicRef | None = None
    weight: int | None = None
    due_date: date | None = None
    iteration: Iteration | None = None
    web_url: str = ""

    @property
    def key(self) -> tuple[str | None, int]:
        """Identity of the issue across projects."""
        return (self.project_id, self.iid)

    @property
    def is_open(self) -> bool:
        return self.state == "opened"

    @property
    def is_closed(self) -> bool:
        return self.state == "closed"

    @property
    def story_points(self) -> int | None:
        return label_utils.story_points(self.labels)

    @property
    def priority(self) -> str | None:
        return label_utils.priority(self.labels)

    @property
    def issue_type(self) -> str | None:
        return label_utils.issue_type(self.labels)

    @property
    def iteration_name(self) -> str | None:
        """First-class iteration title, else the ``iteration::`` label."""
        if self.iteration is not None:
            return self.iteration.title
        return label_utils.iteration_label(self.labels)

    @property
    def assignee_usernames(self) -> list[str]:
        return [a.username for a in self.assignees]


@dataclass
class Epic:
    """An upstream epic and the issues linked to it."""

    id: int
    title: str
    iid: int | None = None
    state: str = "opened"
    description: str = ""
    labels: list[str] = field(default_factory=list)
    issues: list[Issue] = field(default_factory=list)
    start_date: date | None = None
    due_date: date | None = None
    web_url: str = ""

    @property
    def is_open(self) -> bool:
        return self.state == "opened"

    @property
    def closed_issue_count(self) -> int:
        return sum(1 for i in self.issues if i.is_closed)

    @property
    def progress(self) -> float:
        """Percentage of linked issues that are closed."""
        if not self.issues:
            return 0.0
        return self.closed_issue_count / len(self.issues) * 100


@dataclass
class Initiative:
    """A group of epics sharing an ``initiative::`` label."""

    id: str
    name: str
    status: str = "on-track"  # "completed" | "on-track" | "at-risk" | "delayed"
    progress: int = 0
    due_date: date | None = None
    epics: list[Epic] = field(default_factory=list)
    issues: list[Issue] = field(default_factory=list)

    @property
    def open_issues(self) -> list[Issue]:
        return [i for i in self.issues if i.is_open]

    @property
    def closed_issues(self) -> list[Issue]:
        return [i for i in self.issues if i.is_closed]


@dataclass
class Risk:
    """A manually tracked project risk."""

    id: str
    title: str
    probability: str = "medium"  # "low" | "medium" | "high"
    impact: str = "medium"
    status: str = "active"  # "active" | "mitigated" | "closed"


@dataclass
class Snapshot:
    """Everything fetched from upstream for one project or group."""

    issues: list[Issue] = field(default_factory=list)
    epics: list[Epic] = field(default_factory=list)
    milestones: list[Milestone] = field(default_factory=list)
    iterations: list[Iteration] = field(default_factory=list)
    members: list[Member] = field(default_factory=list)
    project_id: str | None = None
