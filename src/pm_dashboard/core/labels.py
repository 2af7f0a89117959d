"""Helpers for scoped issue labels (``sp::``, ``priority::``, ``type::`` ...).

Upstream labels are free-form strings; a handful of ``namespace::value``
prefixes carry structured data.  Each namespace is read at most once per
issue: the first matching label wins and later ones are ignored.
"""

from __future__ import annotations

from collections.abc import Iterable

SP_PREFIX = "sp::"
PRIORITY_PREFIX = "priority::"
TYPE_PREFIX = "type::"
ITERATION_PREFIX = "iteration::"
INITIATIVE_PREFIX = "initiative::"

BLOCKED_LABELS = ("blocked", "blocker")

_TYPE_KEYWORDS = (
    ("bug", ("bug", "defect")),
    ("enhancement", ("enhancement", "improvement")),
    ("feature", ("feature",)),
)


def scoped_value(labels: Iterable[str], prefix: str) -> str | None:
    """Return the value of the first label starting with *prefix*."""
    prefix = prefix.lower()
    for label in labels:
        if label.lower().startswith(prefix):
            value = label[len(prefix):].strip()
            return value or None
    return None


def story_points(labels: Iterable[str]) -> int | None:
    """Parse ``sp::N``; non-numeric values are treated as absent."""
    value = scoped_value(labels, SP_PREFIX)
    if value is None:
        return None
    try:
        points = int(value)
    except ValueError:
        return None
    return points if points >= 0 else None


def priority(labels: Iterable[str]) -> str | None:
    value = scoped_value(labels, PRIORITY_PREFIX)
    return value.lower() if value else None


def iteration_label(labels: Iterable[str]) -> str | None:
    return scoped_value(labels, ITERATION_PREFIX)


def initiative_slug(labels: Iterable[str]) -> str | None:
    value = scoped_value(labels, INITIATIVE_PREFIX)
    return value.lower() if value else None


def issue_type(labels: Iterable[str]) -> str | None:
    """Return the ``type::`` value, else a type inferred from plain labels."""
    labels = list(labels)
    value = scoped_value(labels, TYPE_PREFIX)
    if value:
        return value.lower()
    lowered = [label.lower() for label in labels]
    for kind, keywords in _TYPE_KEYWORDS:
        if any(k in label for label in lowered for k in keywords):
            return kind
    return None


def has_label_containing(labels: Iterable[str], needles: Iterable[str]) -> bool:
    """Case-insensitive substring match of any needle against any label."""
    needles = [n.lower() for n in needles]
    return any(n in label.lower() for label in labels for n in needles)


def is_blocked(labels: Iterable[str]) -> bool:
    return any(label.lower() in BLOCKED_LABELS for label in labels)


def initiative_name(slug: str) -> str:
    """``mobile-app`` -> ``Mobile App``."""
    return " ".join(part.capitalize() for part in slug.replace("_", "-").split("-") if part)
