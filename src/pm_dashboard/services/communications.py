"""Stakeholder communication log (``communication_history`` key).

Records are kept newest first and capped at a configurable length.  A
communication may ``supersede`` an earlier one; the resulting chains are
walked with explicit adjacency maps and a visited set, so corrupted data
containing a loop still terminates.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from typing import Any

from pm_dashboard.core.records import COMMUNICATION_TYPES, Communication, Document, new_id, now_iso
from pm_dashboard.services.config_manager import ConfigManager
from pm_dashboard.services.documents import DocumentLibrary
from pm_dashboard.services.stakeholders import StakeholderRegistry
from pm_dashboard.services.store import ProjectStore

logger = logging.getLogger(__name__)

HISTORY_KEY = "communication_history"
DEFAULT_HISTORY_LIMIT = 200

SCOPE_CREEP_TYPES = frozenset({"scope_creep", "requirements_change"})
REPRIORITIZATION_TYPES = frozenset({"reprioritization", "priority_change", "prioritization"})
BLOCKER_TYPES = frozenset({"technical_blocker", "prod_issue", "pivot_required"})

TYPE_LABELS = {
    "email": "Email",
    "decision": "Decision",
    "meeting_notes": "Meeting Notes",
    "requirements_signoff": "Requirements Sign-Off",
    "incident": "Incident",
    "scope_change": "Scope Change",
    "prioritization": "Prioritization",
    "status_update": "Status Update",
    "other": "Other",
}

_PROTECTED_FIELDS = frozenset({"id", "project_id", "created_at", "updated_at", "superseded_by"})
_EDITABLE_FIELDS = frozenset(f.name for f in fields(Communication)) - _PROTECTED_FIELDS


@dataclass
class EmailMessage:
    """An already-parsed email, as handed over by the import collaborator."""

    subject: str
    body: str
    sender: str
    sender_name: str = ""
    to: list[str] = field(default_factory=list)
    cc: list[str] = field(default_factory=list)
    sent_date: datetime | None = None
    message_id: str = ""
    tags: list[str] = field(default_factory=list)
    attachments: list[str] = field(default_factory=list)


def communication_type_label(type_id: str) -> str:
    """Display label for a type id; unknown ids read as ``Email``."""
    return TYPE_LABELS.get(type_id, TYPE_LABELS["email"])


class CommunicationLog:
    """Append, edit and query logged communications."""

    def __init__(self, store: ProjectStore, history_limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self._store = store
        self.history_limit = history_limit

    @classmethod
    def from_config(cls, store: ProjectStore, config: ConfigManager) -> CommunicationLog:
        """Log capped at the configured ``communication_history_limit``."""
        return cls(store, int(config.get("communication_history_limit", DEFAULT_HISTORY_LIMIT)))

    # -- persistence ----------------------------------------------------------

    def history(self) -> list[Communication]:
        raw = self._store.read(HISTORY_KEY, [])
        if not isinstance(raw, list):
            return []
        return [Communication.from_dict(c) for c in raw if isinstance(c, dict)]

    def _write(self, history: list[Communication]) -> bool:
        return self._store.write(HISTORY_KEY, [c.to_dict() for c in history[: max(self.history_limit, 0)]])

    def get(self, communication_id: str) -> Communication | None:
        return next((c for c in self.history() if c.id == communication_id), None)

    # -- write path -----------------------------------------------------------

    def log(self, communication: Communication) -> Communication:
        """Prepend a new communication, stamping id, project and timestamps."""
        history = self.history()
        timestamp = now_iso()
        record = replace(
            communication,
            id=communication.id or new_id(),
            project_id=self._store.project_id or "default",
            timestamp=communication.timestamp or timestamp,
            created_at=timestamp,
            updated_at=timestamp,
        )
        if record.type not in COMMUNICATION_TYPES:
            logger.debug("Logging communication with non-catalog type %r", record.type)

        if record.supersedes:
            previous = next((c for c in history if c.id == record.supersedes), None)
            if previous is None:
                logger.warning("Communication %s supersedes unknown id %s", record.id, record.supersedes)
            elif previous.superseded_by and previous.superseded_by != record.id:
                logger.warning(
                    "Communication %s is already superseded by %s; not linking %s",
                    previous.id, previous.superseded_by, record.id,
                )
                record.supersedes = None
            else:
                previous.superseded_by = record.id

        history.insert(0, record)
        self._write(history)
        logger.info("Logged %s communication %s", record.type, record.id)
        return record

    def update(self, communication_id: str, **changes: Any) -> Communication | None:
        """Replace editable fields; id, project and timestamps are kept.

        ``superseded_by`` is maintained from the successor's ``supersedes``.
        Re-pointing ``supersedes`` follows the rules of :meth:`log`: a parent
        that already has another successor, or a link that would close a
        loop, is ignored.
        """
        history = self.history()
        idx = next((i for i, c in enumerate(history) if c.id == communication_id), None)
        if idx is None:
            return None
        existing = history[idx]

        dropped = sorted(k for k in changes if k not in _EDITABLE_FIELDS)
        if dropped:
            logger.warning("Ignoring non-editable fields on communication %s: %s", communication_id, dropped)
        allowed = {k: v for k, v in changes.items() if k not in dropped}

        if "supersedes" in allowed:
            allowed["supersedes"] = self._relink(history, existing, allowed["supersedes"] or None)

        updated = replace(existing, **allowed, updated_at=now_iso())
        history[idx] = updated
        self._write(history)
        return updated

    def _relink(
        self, history: list[Communication], record: Communication, new_parent: str | None
    ) -> str | None:
        """Move *record* under *new_parent*, returning the ``supersedes`` value to keep."""
        if new_parent == record.supersedes:
            return new_parent
        by_id = {c.id: c for c in history}
        parent = by_id.get(new_parent) if new_parent else None
        if new_parent and parent is None:
            logger.warning("Ignoring supersedes=%s on %s: unknown communication", new_parent, record.id)
            return record.supersedes
        if parent is not None:
            if record.id in self._chain_ids(history, parent.id):
                logger.warning("Ignoring supersedes=%s on %s: would create a cycle", parent.id, record.id)
                return record.supersedes
            if parent.superseded_by and parent.superseded_by != record.id:
                logger.warning(
                    "Ignoring supersedes=%s on %s: already superseded by %s",
                    parent.id, record.id, parent.superseded_by,
                )
                return record.supersedes

        previous = by_id.get(record.supersedes) if record.supersedes else None
        if previous is not None and previous.superseded_by == record.id:
            previous.superseded_by = None
        if parent is not None:
            parent.superseded_by = record.id
        return new_parent

    def delete(self, communication_id: str) -> bool:
        history = self.history()
        kept = [c for c in history if c.id != communication_id]
        if len(kept) == len(history):
            return False
        for c in kept:
            if c.superseded_by == communication_id:
                c.superseded_by = None
        self._write(kept)
        return True

    def add_comment(self, communication_id: str, text: str, author: str = "") -> dict[str, Any] | None:
        history = self.history()
        target = next((c for c in history if c.id == communication_id), None)
        if target is None:
            return None
        comment = {"id": new_id(), "text": text, "author": author, "created_at": now_iso()}
        target.comments.append(comment)
        self._write(history)
        return comment

    def add_tags(self, communication_id: str, tags: Iterable[str]) -> list[str] | None:
        """Add tags not already present; repeated calls change nothing."""
        history = self.history()
        target = next((c for c in history if c.id == communication_id), None)
        if target is None:
            return None
        changed = False
        for tag in tags:
            if tag not in target.tags:
                target.tags.append(tag)
                changed = True
        if changed:
            self._write(history)
        return list(target.tags)

    def remove_tag(self, communication_id: str, tag: str) -> list[str] | None:
        history = self.history()
        target = next((c for c in history if c.id == communication_id), None)
        if target is None:
            return None
        if tag in target.tags:
            target.tags = [t for t in target.tags if t != tag]
            self._write(history)
        return list(target.tags)

    def import_email(
        self,
        message: EmailMessage,
        stakeholders: StakeholderRegistry | None = None,
        documents: DocumentLibrary | None = None,
    ) -> Communication:
        """Log a parsed email, matching recipients to known stakeholders.

        When a document library is given the email body is also filed as a
        document linked back to the communication.
        """
        addresses = {a.strip().lower() for a in [*message.to, *message.cc] if a}
        matched = []
        if stakeholders is not None:
            matched = [s.id for s in stakeholders.all() if s.email and s.email.lower() in addresses]

        communication = self.log(
            Communication(
                type="email",
                source="imported",
                subject=message.subject,
                content=message.body,
                sender=message.sender,
                recipients=list(message.to),
                cc=list(message.cc),
                stakeholder_ids=matched,
                timestamp=message.sent_date.isoformat() if message.sent_date else "",
                message_id=message.message_id,
                tags=list(message.tags),
                attachments=list(message.attachments),
            )
        )
        if documents is not None:
            documents.save(
                Document(
                    id=f"email-{communication.id}",
                    filename=f"{message.subject or 'Untitled Email'}.eml",
                    file_type="email/eml",
                    file_size=len(message.body or ""),
                    description=f"Email from {message.sender_name or message.sender}",
                    stakeholder_ids=matched,
                    tags=list(message.tags),
                    text_content=message.body or "",
                    communication_id=communication.id,
                )
            )
        return communication

    # -- chains ---------------------------------------------------------------

    def change_chain(self, communication_id: str) -> list[Communication]:
        """The supersedes chain containing *communication_id*, oldest first."""
        history = self.history()
        by_id = {c.id: c for c in history}
        return [by_id[i] for i in self._chain_ids(history, communication_id)]

    @staticmethod
    def _chain_ids(history: list[Communication], communication_id: str) -> list[str]:
        by_id = {c.id: c for c in history}
        if communication_id not in by_id:
            return []
        backward = {c.id: c.supersedes for c in history if c.supersedes in by_id}
        forward: dict[str, str] = {}
        for c in sorted(history, key=lambda c: c.created_at):
            if c.supersedes in by_id:
                forward.setdefault(c.supersedes, c.id)

        root = communication_id
        visited = {root}
        while root in backward and backward[root] not in visited:
            root = backward[root]
            visited.add(root)

        chain = []
        seen: set[str] = set()
        current: str | None = root
        while current is not None and current not in seen:
            seen.add(current)
            chain.append(current)
            current = forward.get(current)
        return chain

    # -- queries --------------------------------------------------------------

    def by_issue(self, issue_id: str | int) -> list[Communication]:
        key = str(issue_id)
        return [c for c in self.history() if key in (str(i) for i in c.linked_issues)]

    def by_epic(self, epic_id: str | int) -> list[Communication]:
        key = str(epic_id)
        return [c for c in self.history() if key in (str(e) for e in c.linked_epics)]

    def by_type(self, type_id: str) -> list[Communication]:
        return [c for c in self.history() if c.type == type_id]

    def scope_creep(self) -> list[Communication]:
        return _newest_first(
            c for c in self.history()
            if c.type in SCOPE_CREEP_TYPES or (c.time_impact or "").strip()
        )

    def reprioritization(self) -> list[Communication]:
        return _newest_first(c for c in self.history() if c.type in REPRIORITIZATION_TYPES)

    def blockers(self) -> list[Communication]:
        return _newest_first(c for c in self.history() if c.type in BLOCKER_TYPES)

    def search(self, query: str) -> list[Communication]:
        needle = query.lower()
        return [
            c for c in self.history()
            if needle in c.subject.lower()
            or needle in c.content.lower()
            or needle in (c.root_cause or "").lower()
            or any(needle in str(i).lower() for i in c.linked_issues)
        ]


def _newest_first(items: Iterable[Communication]) -> list[Communication]:
    return sorted(items, key=lambda c: c.timestamp, reverse=True)
