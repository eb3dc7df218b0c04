"""Audit recorder — append-only trail of views, changes, logins and status moves.

Writes are best-effort. Each one runs in its own short session so that a
failing audit table can never roll back the caller's primary transaction;
failures are logged and swallowed here.
"""

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from certdesk.actor import UNKNOWN_ORIGIN, Actor, OriginInfo
from certdesk.database import as_stored_utc
from certdesk.errors import AuditWriteFailure, StorageUnavailable
from certdesk.models.audit_log import AuditLog
from certdesk.models.status_history import StatusHistory
from certdesk.pagination import Page, PageRequest

logger = logging.getLogger(__name__)

USERS_TABLE = "users"


class AuditAction:
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    VIEW = "VIEW"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"

    ALL = (INSERT, UPDATE, DELETE, VIEW, LOGIN, LOGOUT)


@dataclass(frozen=True)
class AuditEntry:
    id: str
    table_name: str
    record_id: str
    action: str
    field_name: Optional[str]
    old_value: Optional[str]
    new_value: Optional[str]
    changed_by: Optional[str]
    changed_by_username: Optional[str]
    changed_by_name: Optional[str]
    ip_address: Optional[str]
    user_agent: Optional[str]
    location: Optional[str]
    notes: Optional[str]
    changed_at: datetime


@dataclass(frozen=True)
class StatusHistoryEntry:
    id: str
    table_name: str
    record_id: str
    old_status: str
    new_status: str
    changed_by: Optional[str]
    changed_by_username: Optional[str]
    changed_by_name: Optional[str]
    reason: Optional[str]
    notes: Optional[str]
    changed_at: datetime


@dataclass(frozen=True)
class AuditFilters:
    table_name: Optional[str] = None
    record_id: Optional[str] = None
    changed_by: Optional[str] = None
    action: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


def stringify(value: Any) -> Optional[str]:
    """Render a payload value the way it is stored in old_value/new_value."""
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str, sort_keys=True)
    return str(value)


def run_now(fn: Callable, *args, **kwargs) -> None:
    """Default post-commit dispatcher: deliver immediately, in-line."""
    fn(*args, **kwargs)


class AuditRecorder:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    # ── Writes (never raise) ────────────────────────────────────────────────

    def record_view(self, actor: Actor, table_name: str, record_id: str,
                    origin: OriginInfo = UNKNOWN_ORIGIN) -> int:
        return self._write([self._entry(actor, table_name, record_id, AuditAction.VIEW, origin)])

    def record_add(self, actor: Actor, table_name: str, record_id: str,
                   origin: OriginInfo = UNKNOWN_ORIGIN, payload: Optional[dict] = None) -> int:
        entry = self._entry(
            actor, table_name, record_id, AuditAction.INSERT, origin,
            notes=json.dumps(payload or {}, default=stringify, sort_keys=True),
        )
        return self._write([entry])

    def record_update(self, actor: Actor, table_name: str, record_id: str,
                      origin: OriginInfo = UNKNOWN_ORIGIN,
                      old_payload: Optional[dict] = None, new_payload: Optional[dict] = None) -> int:
        """One entry per field whose value changed; unchanged fields are skipped."""
        old_payload = old_payload or {}
        entries = []
        for field_name, new_value in (new_payload or {}).items():
            old_text, new_text = stringify(old_payload.get(field_name)), stringify(new_value)
            if old_text == new_text:
                continue
            entries.append(self._entry(
                actor, table_name, record_id, AuditAction.UPDATE, origin,
                field_name=field_name, old_value=old_text, new_value=new_text,
            ))
        if not entries:
            return 0
        return self._write(entries)

    def record_delete(self, actor: Actor, table_name: str, record_id: str,
                      origin: OriginInfo = UNKNOWN_ORIGIN) -> int:
        return self._write([self._entry(actor, table_name, record_id, AuditAction.DELETE, origin)])

    def record_login(self, actor: Actor, origin: OriginInfo = UNKNOWN_ORIGIN, method: str = "password") -> int:
        return self._write([self._entry(
            actor, USERS_TABLE, actor.id, AuditAction.LOGIN, origin, notes=f"Login method: {method}",
        )])

    def record_logout(self, actor: Actor, origin: OriginInfo = UNKNOWN_ORIGIN) -> int:
        return self._write([self._entry(
            actor, USERS_TABLE, actor.id, AuditAction.LOGOUT, origin, notes="User logged out",
        )])

    def record_status_change(self, actor: Actor, table_name: str, record_id: str,
                             old_status: str, new_status: str,
                             reason: Optional[str] = None, notes: Optional[str] = None) -> int:
        row = StatusHistory(
            table_name=table_name,
            record_id=record_id,
            old_status=old_status,
            new_status=new_status,
            changed_by=actor.id,
            reason=reason,
            notes=notes,
        )
        return self._write([row])

    @staticmethod
    def _entry(actor: Actor, table_name: str, record_id: str, action: str, origin: OriginInfo,
               **fields) -> AuditLog:
        return AuditLog(
            table_name=table_name,
            record_id=str(record_id),
            action=action,
            changed_by=actor.id,
            ip_address=origin.ip_address,
            user_agent=origin.user_agent,
            location=origin.location,
            **fields,
        )

    def _write(self, rows: list) -> int:
        try:
            self._persist(rows)
        except AuditWriteFailure as exc:
            first = rows[0]
            logger.warning(
                "Audit write failed (%s %s, %d row(s)): %s",
                first.table_name, first.record_id, len(rows), exc.__cause__ or exc,
            )
            return 0
        return len(rows)

    def _persist(self, rows: list) -> None:
        try:
            session: Session = self._session_factory()
            try:
                session.add_all(rows)
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                raise
            finally:
                session.close()
        except SQLAlchemyError as exc:
            raise AuditWriteFailure(str(exc)) from exc

    # ── Queries ─────────────────────────────────────────────────────────────

    def find_by_entity_and_record(self, table_name: str, record_id: str) -> list[AuditEntry]:
        """Entries for one record, most recent first."""
        query = (
            select(AuditLog)
            .where(AuditLog.table_name == table_name, AuditLog.record_id == str(record_id))
            .order_by(AuditLog.changed_at.desc(), AuditLog.id.desc())
        )
        with self._read_session() as session:
            return [_to_entry(r) for r in session.execute(query).unique().scalars().all()]

    def find_all(self, filters: Optional[AuditFilters] = None,
                 page: Optional[PageRequest] = None) -> Page[AuditEntry]:
        filters = filters or AuditFilters()
        page = page or PageRequest(limit=20)
        conditions = _audit_conditions(filters)

        query = (
            select(AuditLog)
            .where(*conditions)
            .order_by(AuditLog.changed_at.desc(), AuditLog.id.desc())
        )
        count_query = select(func.count()).select_from(AuditLog).where(*conditions)
        with self._read_session() as session:
            rows = session.execute(query.limit(page.limit).offset(page.offset)).unique().scalars().all()
            total = session.execute(count_query).scalar_one()
        return Page(items=[_to_entry(r) for r in rows], page=page.page, limit=page.limit, total=total)

    def status_history(self, table_name: str, record_id: str) -> list[StatusHistoryEntry]:
        """Transitions for one record, most recent first."""
        query = (
            select(StatusHistory)
            .where(StatusHistory.table_name == table_name, StatusHistory.record_id == str(record_id))
            .order_by(StatusHistory.changed_at.desc(), StatusHistory.id.desc())
        )
        with self._read_session() as session:
            return [_to_history(r) for r in session.execute(query).unique().scalars().all()]

    def _read_session(self):
        return _ReadSession(self._session_factory)


class _ReadSession:
    """Session context for audit queries; connectivity faults become StorageUnavailable."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory
        self._session: Optional[Session] = None

    def __enter__(self) -> Session:
        try:
            self._session = self._session_factory()
        except (OperationalError, InterfaceError) as exc:
            logger.error("Audit store unavailable: %s", exc)
            raise StorageUnavailable("Audit store is unavailable") from exc
        return self._session

    def __exit__(self, exc_type, exc, tb):
        self._session.close()
        if isinstance(exc, (OperationalError, InterfaceError)):
            logger.error("Audit store unavailable: %s", exc)
            raise StorageUnavailable("Audit store is unavailable") from exc
        return False


def _audit_conditions(filters: AuditFilters) -> list:
    conditions = []
    if filters.table_name:
        conditions.append(AuditLog.table_name == filters.table_name)
    if filters.record_id:
        conditions.append(AuditLog.record_id == str(filters.record_id))
    if filters.changed_by:
        conditions.append(AuditLog.changed_by == filters.changed_by)
    if filters.action:
        conditions.append(AuditLog.action == filters.action.upper())
    if filters.start_date:
        conditions.append(AuditLog.changed_at >= as_stored_utc(filters.start_date))
    if filters.end_date:
        conditions.append(AuditLog.changed_at <= as_stored_utc(filters.end_date))
    return conditions


def _to_entry(row: AuditLog) -> AuditEntry:
    actor = row.actor
    return AuditEntry(
        id=row.id,
        table_name=row.table_name,
        record_id=row.record_id,
        action=row.action,
        field_name=row.field_name,
        old_value=row.old_value,
        new_value=row.new_value,
        changed_by=row.changed_by,
        changed_by_username=actor.username if actor else None,
        changed_by_name=actor.full_name if actor else None,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        location=row.location,
        notes=row.notes,
        changed_at=row.changed_at,
    )


def _to_history(row: StatusHistory) -> StatusHistoryEntry:
    actor = row.actor
    return StatusHistoryEntry(
        id=row.id,
        table_name=row.table_name,
        record_id=row.record_id,
        old_status=row.old_status,
        new_status=row.new_status,
        changed_by=row.changed_by,
        changed_by_username=actor.username if actor else None,
        changed_by_name=actor.full_name if actor else None,
        reason=row.reason,
        notes=row.notes,
        changed_at=row.changed_at,
    )


def detach_actor(session: Session, user_id: str) -> None:
    """Null the actor reference on a departing account's audit and history rows.

    Runs inside the caller's transaction, right before the user row is deleted.
    """
    session.execute(update(AuditLog).where(AuditLog.changed_by == user_id).values(changed_by=None))
    session.execute(update(StatusHistory).where(StatusHistory.changed_by == user_id).values(changed_by=None))
