"""Workflow states for school, student and certificate records.

Pure module: no I/O. Every status change in the system is checked here.

    draft ──► in_review ──► accepted ──► issued ──► archived
      │        │    ▲          │                       ▲
      │        ▼    │          └───────────────────────┘
      │       rejected
      ▼        │
    cancelled ◄┘  (also reachable from in_review)
"""

from enum import Enum
from typing import Optional

from certdesk.errors import Result, invalid_transition


class Status(str, Enum):
    DRAFT = "draft"
    IN_REVIEW = "in_review"
    REJECTED = "rejected"
    ACCEPTED = "accepted"
    ISSUED = "issued"
    ARCHIVED = "archived"
    CANCELLED = "cancelled"


VALID_STATUSES = tuple(s.value for s in Status)

VALID_TRANSITIONS: dict[Status, frozenset[Status]] = {
    Status.DRAFT: frozenset({Status.IN_REVIEW, Status.CANCELLED}),
    Status.IN_REVIEW: frozenset({Status.REJECTED, Status.ACCEPTED, Status.CANCELLED}),
    Status.REJECTED: frozenset({Status.IN_REVIEW, Status.CANCELLED}),
    Status.ACCEPTED: frozenset({Status.ISSUED, Status.ARCHIVED}),
    Status.ISSUED: frozenset({Status.ARCHIVED}),
    Status.ARCHIVED: frozenset(),
    Status.CANCELLED: frozenset(),
}

FINAL_STATES = frozenset({Status.ARCHIVED, Status.CANCELLED})
EDITABLE_STATES = frozenset({Status.DRAFT, Status.IN_REVIEW, Status.REJECTED})
DELETABLE_STATES = frozenset({Status.DRAFT, Status.REJECTED})


def parse_status(value) -> Optional[Status]:
    """Return the Status for a raw value, or None when it is not one of ours."""
    try:
        return Status(value)
    except ValueError:
        return None


def validate_transition(current, desired) -> Result[None]:
    """Check that ``current -> desired`` is a legal edge.

    Same-state requests succeed as a no-op. Unknown status values fail with
    the same InvalidTransition kind, listing what ``current`` may move to.
    """
    current_status = parse_status(current)
    desired_status = parse_status(desired)

    if current_status is None:
        return Result.failure(invalid_transition(str(current), str(desired), []))

    allowed = allowed_transitions(current_status)
    if desired_status is None:
        return Result.failure(invalid_transition(current_status.value, str(desired), allowed))

    if current_status == desired_status:
        return Result.success()

    if desired_status not in VALID_TRANSITIONS[current_status]:
        return Result.failure(invalid_transition(current_status.value, desired_status.value, allowed))

    return Result.success()


def allowed_transitions(status) -> set[str]:
    """Statuses reachable in one step from ``status`` (empty for unknown values)."""
    parsed = parse_status(status)
    if parsed is None:
        return set()
    return {s.value for s in VALID_TRANSITIONS[parsed]}


def is_final_state(status) -> bool:
    return parse_status(status) in FINAL_STATES


def can_edit(status) -> bool:
    return parse_status(status) in EDITABLE_STATES


def can_delete(status) -> bool:
    return parse_status(status) in DELETABLE_STATES

