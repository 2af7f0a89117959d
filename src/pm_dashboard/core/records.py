"""Locally owned artifacts persisted in the project store.

Each record round-trips through plain JSON dicts via ``to_dict`` /
``from_dict``.  ``from_dict`` ignores unknown keys and fills missing ones
with the field default, so records written by older versions still load.
Timestamps are stored as ISO-8601 strings.
"""

from __future__ import annotations

import secrets
import time
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, TypeVar

T = TypeVar("T", bound="Record")

COMMUNICATION_TYPES = (
    "email",
    "decision",
    "meeting_notes",
    "requirements_signoff",
    "incident",
    "scope_change",
    "prioritization",
    "status_update",
    "other",
)

SPRINT_GOAL_ACHIEVEMENTS = ("met", "partial", "not-met")
RETRO_ACTION_STATUSES = ("open", "in-progress", "done", "wont-do")
DECISION_STATUSES = ("active", "reversed", "superseded")


def new_id() -> str:
    """Time-ordered id: epoch milliseconds plus a random suffix."""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(3)}"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Record:
    """Mixin giving dataclasses a tolerant dict round-trip."""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)  # type: ignore[call-overload]

    @classmethod
    def from_dict(cls: type[T], data: dict[str, Any]) -> T:
        names = {f.name for f in fields(cls)}  # type: ignore[arg-type]
        return cls(**{k: v for k, v in data.items() if k in names})


@dataclass
class Comment(Record):
    id: str
    text: str
    author: str = ""
    created_at: str = ""


@dataclass
class Communication(Record):
    """A logged stakeholder communication."""

    id: str = ""
    project_id: str = "default"
    type: str = "other"
    subject: str = ""
    content: str = ""
    timestamp: str = ""
    created_at: str = ""
    updated_at: str = ""
    sender: str = ""
    recipients: list[str] = field(default_factory=list)
    cc: list[str] = field(default_factory=list)
    source: str = "manual"  # "manual" | "imported"
    message_id: str = ""
    stakeholder_ids: list[str] = field(default_factory=list)
    linked_issues: list[str] = field(default_factory=list)
    linked_epics: list[str] = field(default_factory=list)
    affected_team_members: list[str] = field(default_factory=list)
    related_to: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    comments: list[dict[str, Any]] = field(default_factory=list)
    attachments: list[str] = field(default_factory=list)
    supersedes: str | None = None
    superseded_by: str | None = None
    time_impact: str = ""
    original_date: str | None = None
    new_date: str | None = None
    root_cause: str = ""
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class Decision(Record):
    id: str = ""
    project_id: str = "default"
    title: str = ""
    description: str = ""
    decision_date: str = ""
    decided_by: str = ""
    status: str = "active"
    rationale: str = ""
    impact: str = ""
    stakeholder_ids: list[str] = field(default_factory=list)
    approved_by: list[str] = field(default_factory=list)
    linked_issues: list[str] = field(default_factory=list)
    linked_epics: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    communication_id: str | None = None
    reversed_by: str | None = None
    reversed_reason: str = ""
    reversed_at: str | None = None
    signoff_document: dict[str, Any] | None = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Stakeholder(Record):
    id: str = ""
    name: str = ""
    email: str = ""
    role: str = ""
    organization: str = ""
    influence: str = "medium"
    interest: str = "medium"
    preferred_channel: str = "email"
    notes: str = ""
    created_at: str = ""
    updated_at: str = ""


@dataclass
class CommunicationTemplate(Record):
    id: str = ""
    name: str = ""
    type: str = "status_update"
    subject: str = ""
    body: str = ""
    is_default: bool = False


@dataclass
class Document(Record):
    """Metadata for a stored or linked document."""

    id: str = ""
    project_id: str = "default"
    filename: str = ""
    file_type: str = ""
    file_size: int = 0
    description: str = ""
    version: str = "1.0"
    status: str = "current"  # "current" | "superseded" | "archived"
    superseded_by: str | None = None
    storage_type: str = "metadata"  # "metadata" | "external"
    external_url: str | None = None
    text_content: str = ""
    communication_id: str | None = None
    stakeholder_ids: list[str] = field(default_factory=list)
    linked_issues: list[str] = field(default_factory=list)
    linked_epics: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    upload_date: str = ""
    created_at: str = ""


@dataclass
class SprintGoal(Record):
    sprint_id: str = "current"
    goal: str = ""
    sprint_name: str = ""
    achievement: str | None = None
    notes: str = ""
    created_at: str = ""
    updated_at: str = ""


@dataclass
class RetroAction(Record):
    id: str = ""
    sprint_id: str = ""
    sprint_name: str = ""
    action: str = ""
    owner: str = ""
    due_date: str | None = None
    status: str = "open"
    carried_from: str | None = None
    created_at: str = ""
    updated_at: str = ""
    completed_at: str | None = None


@dataclass
class HealthSample(Record):
    timestamp: str = ""
    composite_score: float = 0.0
    refined_pct: int = 0
    described_pct: int = 0
    ready_pct: int = 0
    missing_fields: dict[str, int] = field(default_factory=dict)


@dataclass
class Absence(Record):
    id: str = ""
    username: str = ""
    start_date: str = ""
    end_date: str = ""
    type: str = "vacation"
    reason: str = ""
