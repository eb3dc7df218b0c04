"""Role-based permission policy for workflow records.

Roles:
- user:  read-only, sees accepted records only
- admin: creates records, edits/deletes while editable, submits for review
- super: approves or rejects, and alone may edit a record once accepted

Every decision is a pure function of (role, action, current status). The
caller fetches the current status; nothing here touches storage.
"""

from enum import Enum
from typing import Iterable, Optional

from certdesk.errors import Result, forbidden
from certdesk.status_machine import (
    DELETABLE_STATES,
    EDITABLE_STATES,
    Status,
    can_delete,
    can_edit,
    parse_status,
)


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"
    SUPER = "super"


VALID_ROLES = tuple(r.value for r in Role)


class Action(str, Enum):
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"
    VIEW = "view"
    SUBMIT_FOR_REVIEW = "submit_for_review"
    APPROVE_OR_REJECT = "approve_or_reject"
    # cancel, issue and archive
    CHANGE_STATUS = "change_status"


# Roles that may attempt each action at all; state gates are applied on top.
REQUIRED_ROLES: dict[Action, frozenset[Role]] = {
    Action.CREATE: frozenset({Role.ADMIN}),
    Action.EDIT: frozenset({Role.ADMIN, Role.SUPER}),
    Action.DELETE: frozenset({Role.ADMIN, Role.SUPER}),
    Action.VIEW: frozenset({Role.USER, Role.ADMIN, Role.SUPER}),
    Action.SUBMIT_FOR_REVIEW: frozenset({Role.ADMIN}),
    Action.APPROVE_OR_REJECT: frozenset({Role.SUPER}),
    Action.CHANGE_STATUS: frozenset({Role.ADMIN, Role.SUPER}),
}


def _parse_role(role) -> Optional[Role]:
    try:
        return Role(role)
    except ValueError:
        return None


def _values(items: Iterable[Enum]) -> list[str]:
    return [i.value for i in items]


def authorize(role, action: Action, current_state) -> Result[None]:
    """Allow or deny ``role`` performing ``action`` on a record in ``current_state``."""
    parsed_role = _parse_role(role)
    action = Action(action)
    state = parse_status(current_state)
    required = REQUIRED_ROLES[action]
    role_name = parsed_role.value if parsed_role else str(role)

    if parsed_role is None or parsed_role not in required:
        return Result.failure(forbidden(
            f"Access denied. Required role: {' or '.join(sorted(_values(required)))}",
            role_name, action.value, _values(required),
        ))

    if action == Action.EDIT:
        return _authorize_edit(parsed_role, state)

    if action == Action.DELETE:
        if not can_delete(state):
            return Result.failure(forbidden(
                f'Cannot delete record with status "{_state_name(state, current_state)}". '
                "Only draft and rejected records can be deleted.",
                role_name, action.value, _values(required), _values(DELETABLE_STATES),
            ))
        return Result.success()

    if action == Action.VIEW and parsed_role == Role.USER and state != Status.ACCEPTED:
        return Result.failure(forbidden(
            "You can only view accepted records",
            role_name, action.value, _values({Role.ADMIN, Role.SUPER}), [Status.ACCEPTED.value],
        ))

    return Result.success()


def _authorize_edit(role: Role, state: Optional[Status]) -> Result[None]:
    if state == Status.ACCEPTED:
        if role == Role.SUPER:
            return Result.success()
        return Result.failure(forbidden(
            "Cannot edit accepted records. Only Super Admin can modify accepted records.",
            role.value, Action.EDIT.value, [Role.SUPER.value],
        ))

    if not can_edit(state):
        return Result.failure(forbidden(
            f'Cannot edit record with status "{state.value if state else state}". '
            "Only draft, in_review and rejected records can be edited.",
            role.value, Action.EDIT.value, [Role.ADMIN.value], _values(EDITABLE_STATES),
        ))

    if role != Role.ADMIN:
        return Result.failure(forbidden(
            "Only Admin can edit records that are not yet accepted",
            role.value, Action.EDIT.value, [Role.ADMIN.value], _values(EDITABLE_STATES),
        ))

    return Result.success()


def _state_name(state: Optional[Status], raw) -> str:
    return state.value if state else str(raw)


def action_for_transition(current, desired) -> Action:
    """Categorize a status change into the action that must be authorized."""
    current_state = parse_status(current)
    desired_state = parse_status(desired)

    if desired_state == Status.IN_REVIEW:
        return Action.SUBMIT_FOR_REVIEW
    if current_state == Status.IN_REVIEW and desired_state in (Status.ACCEPTED, Status.REJECTED):
        return Action.APPROVE_OR_REJECT
    return Action.CHANGE_STATUS


def can_view(role, status) -> bool:
    return authorize(role, Action.VIEW, status).ok


def _status_of(record) -> Optional[str]:
    if isinstance(record, dict):
        return record.get("status")
    return getattr(record, "status", None)


def filter_visible(records: Iterable, role) -> list:
    """Keep only records ``role`` may see: accepted ones for users, all otherwise."""
    records = list(records)
    if _parse_role(role) in (Role.ADMIN, Role.SUPER):
        return records
    return [r for r in records if parse_status(_status_of(r)) == Status.ACCEPTED]
