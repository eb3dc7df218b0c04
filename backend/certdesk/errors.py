"""Error kinds and the Result type returned across the core.

Services never raise for expected outcomes (missing record, denied action,
illegal transition, duplicate identifier, bad payload). They return a
``Result`` tagged with one of the ``ErrorKind`` values and the caller
branches on ``result.error.kind``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Iterable, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    INVALID_TRANSITION = "invalid_transition"
    DUPLICATE_IDENTIFIER = "duplicate_identifier"
    VALIDATION_ERROR = "validation_error"
    STORAGE_UNAVAILABLE = "storage_unavailable"


HTTP_STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.INVALID_TRANSITION: 400,
    ErrorKind.DUPLICATE_IDENTIFIER: 409,
    ErrorKind.VALIDATION_ERROR: 400,
    ErrorKind.STORAGE_UNAVAILABLE: 503,
}


@dataclass(frozen=True)
class CoreError:
    kind: ErrorKind
    message: str
    detail: dict = field(default_factory=dict)

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_KIND[self.kind]

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "message": self.message, "detail": self.detail or None}


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a value or a ``CoreError``, never both."""

    value: Optional[T] = None
    error: Optional[CoreError] = None

    @classmethod
    def success(cls, value: T = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: CoreError) -> "Result[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error else None

    def unwrap(self) -> T:
        """Return the value or raise ``ServiceError`` carrying the error."""
        if self.error is not None:
            raise ServiceError(self.error)
        return self.value


class ServiceError(Exception):
    """Raised at the HTTP boundary to turn a failed Result into a response."""

    def __init__(self, error: CoreError):
        super().__init__(error.message)
        self.error = error


class AuditWriteFailure(Exception):
    """Audit or history row could not be written. Never leaves the audit subsystem."""


# ── Factories ───────────────────────────────────────────────────────────────

def not_found(entity: str, record_id: Any) -> CoreError:
    return CoreError(
        ErrorKind.NOT_FOUND,
        f"{entity} {record_id} not found",
        {"entity": entity, "record_id": str(record_id)},
    )


def forbidden(
    message: str,
    role: str,
    action: str,
    required_roles: Iterable[str] = (),
    allowed_states: Iterable[str] = (),
) -> CoreError:
    detail = {"role": role, "action": action, "required_roles": sorted(required_roles)}
    if allowed_states:
        detail["allowed_states"] = sorted(allowed_states)
    return CoreError(ErrorKind.FORBIDDEN, message, detail)


def invalid_transition(current: str, requested: str, allowed: Iterable[str]) -> CoreError:
    allowed = sorted(allowed)
    options = ", ".join(allowed) if allowed else "none (final state)"
    return CoreError(
        ErrorKind.INVALID_TRANSITION,
        f'Cannot transition from "{current}" to "{requested}". '
        f'Valid transitions from "{current}" are: {options}',
        {"current_status": current, "requested_status": requested, "allowed_transitions": allowed},
    )


def duplicate_identifier(conflicts: list[dict]) -> CoreError:
    fields = ", ".join(c["field"] for c in conflicts)
    return CoreError(
        ErrorKind.DUPLICATE_IDENTIFIER,
        f"Duplicate record found ({fields})",
        {"fields": conflicts},
    )


def validation_error(errors: list[dict], message: str = "Validation failed") -> CoreError:
    return CoreError(ErrorKind.VALIDATION_ERROR, message, {"errors": errors})


def storage_unavailable(message: str = "Storage is unavailable") -> CoreError:
    return CoreError(ErrorKind.STORAGE_UNAVAILABLE, message, {})


class StorageUnavailable(ServiceError):
    """The database could not be reached; the primary operation cannot proceed."""

    def __init__(self, message: str = "Storage is unavailable"):
        super().__init__(storage_unavailable(message))
