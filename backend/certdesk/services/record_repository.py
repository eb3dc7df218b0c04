"""Record repository — persistence boundary for schools, students and certificates.

All writes go through here. Identifier uniqueness is checked up front for a
clear error, and the database unique constraints catch whatever slips past
that check (two creates racing each other); both paths surface as
``duplicate_identifier``.
"""

import functools
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Optional

from sqlalchemy import Date, DateTime, Integer, and_, func, or_, select
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.orm import Session

from certdesk.database import as_stored_utc
from certdesk.errors import (
    Result,
    StorageUnavailable,
    duplicate_identifier,
    not_found,
    storage_unavailable,
    validation_error,
)
from certdesk.pagination import Page, PageRequest
from certdesk.services.record_kinds import RecordKind
from certdesk.status_machine import VALID_STATUSES, Status

logger = logging.getLogger(__name__)

# Fields callers may set besides the kind's own columns.
WRITABLE_SYSTEM_FIELDS = frozenset({"status", "comment", "created_by", "updated_by"})


@dataclass(frozen=True)
class Record:
    """Read-only snapshot of a stored record plus its joined display fields."""

    id: str
    kind: str
    table_name: str
    status: str
    attributes: dict
    joined: dict = field(default_factory=dict)
    comment: Optional[str] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "comment": self.comment,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            **self.attributes,
            **self.joined,
        }


def _storage_guard(as_result: bool):
    """Turn connectivity faults into ``storage_unavailable``.

    Result-returning methods get a failed Result; the others raise
    ``StorageUnavailable`` since they have no error channel.
    """

    def decorator(method):
        @functools.wraps(method)
        def wrapper(self, *args, **kwargs):
            try:
                return method(self, *args, **kwargs)
            except (OperationalError, InterfaceError) as exc:
                self._session.rollback()
                logger.error("Storage failure in %s.%s: %s", self.kind.table_name, method.__name__, exc)
                if as_result:
                    return Result.failure(storage_unavailable())
                raise StorageUnavailable() from exc

        return wrapper

    return decorator


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


class RecordRepository:
    """Reads and writes one record kind.

    With ``autocommit=False`` writes are only flushed, leaving the caller to
    commit or roll back several writes as one transaction.
    """

    def __init__(self, session: Session, kind: RecordKind, autocommit: bool = True):
        self._session = session
        self.kind = kind
        self.autocommit = autocommit

    # ── Reads ───────────────────────────────────────────────────────────────

    @_storage_guard(as_result=False)
    def find_by_id(self, record_id: str) -> Optional[Record]:
        row = self._get_row(record_id)
        return self._to_record(row) if row is not None else None

    @_storage_guard(as_result=False)
    def find_by_identifiers(self, data: dict) -> Optional[Record]:
        """First record sharing a non-blank identifier with ``data``.

        Identifier fields are tried in declared order; scoped kinds only match
        within ``data[scope]``.
        """
        model = self.kind.model
        scope = self.kind.identifier_scope
        for name in self.kind.identifier_fields:
            value = data.get(name)
            if isinstance(value, str):
                value = value.strip()
            if _blank(value):
                continue
            query = select(model.id).where(getattr(model, name) == value)
            if scope:
                query = query.where(getattr(model, scope) == data.get(scope))
            found = self._session.execute(query.limit(1)).scalars().first()
            if found is not None:
                return self._to_record(self._get_row(found))
        return None

    def find_by_identifier(self, value: str, scope_value: Optional[str] = None) -> Optional[Record]:
        """Look ``value`` up in every identifier field, e.g. student id then Aadhaar."""
        data = {name: value for name in self.kind.identifier_fields}
        if self.kind.identifier_scope:
            data[self.kind.identifier_scope] = scope_value
        return self.find_by_identifiers(data)

    @_storage_guard(as_result=True)
    def find_all(
        self,
        filters: Optional[dict] = None,
        page: Optional[PageRequest] = None,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
    ) -> Result[Page[Record]]:
        """Filtered, sorted, paginated listing.

        Unknown filter names fail with ``validation_error``. Sort keys outside
        the kind's allow-list fall back to the default sort.
        """
        page = page or PageRequest()
        conditions = self._filter_conditions(filters or {})
        if not conditions.ok:
            return conditions

        query = self._base_query(select(self.kind.model))
        for condition in conditions.value:
            query = query.where(condition)
        query = query.order_by(*self._order_by(sort_by, sort_order))
        query = query.limit(page.limit).offset(page.offset)

        rows = self._session.execute(query).unique().scalars().all()
        total = self._count(conditions.value)
        return Result.success(Page(
            items=[self._to_record(r) for r in rows],
            page=page.page,
            limit=page.limit,
            total=total,
        ))

    @_storage_guard(as_result=False)
    def count(self, filters: Optional[dict] = None) -> int:
        """Number of rows matching ``filters`` (same semantics as ``find_all``)."""
        conditions = self._filter_conditions(filters or {})
        return self._count(conditions.unwrap())

    def validate_filters(self, filters: dict) -> Result[None]:
        result = self._filter_conditions(filters)
        return Result.success() if result.ok else result

    # ── Writes ──────────────────────────────────────────────────────────────

    @_storage_guard(as_result=True)
    def create(self, payload: dict) -> Result[Record]:
        data = self._normalize(payload)
        errors = self._unknown_field_errors(data)
        errors += self._coerce_columns(data)
        errors += self._status_errors(data)
        errors += [
            {"field": f, "message": f"{f} is required"}
            for f in self.kind.required_fields
            if _blank(data.get(f))
        ]
        if errors:
            return Result.failure(validation_error(errors))

        if not self._has_identifier(data):
            return Result.failure(self._identifier_required())

        reference_errors = self._reference_errors(data)
        if reference_errors:
            return Result.failure(validation_error(reference_errors))

        conflicts = self._find_duplicates(data)
        if conflicts:
            return Result.failure(duplicate_identifier(conflicts))

        data.setdefault("status", Status.DRAFT.value)
        row = self.kind.model(**data)
        self._session.add(row)
        try:
            self._commit()
        except IntegrityError as exc:
            self._session.rollback()
            return Result.failure(self._translate_integrity_error(exc, data))

        logger.info("Created %s %s", self.kind.table_name, row.id)
        return Result.success(self._to_record(self._get_row(row.id)))

    @_storage_guard(as_result=True)
    def update(self, record_id: str, payload: dict) -> Result[Record]:
        row = self._get_row(record_id)
        if row is None:
            return Result.failure(not_found(self.kind.label, record_id))

        data = self._normalize(payload)
        errors = self._unknown_field_errors(data)
        errors += self._coerce_columns(data)
        errors += self._status_errors(data)
        errors += [
            {"field": f, "message": f"{f} is required"}
            for f in self.kind.required_fields
            if f in data and _blank(data[f])
        ]
        if errors:
            return Result.failure(validation_error(errors))

        current = {f: getattr(row, f) for f in self.kind.identifier_fields}
        merged = {**current, **{k: v for k, v in data.items() if k in current}}
        if self._has_identifier(current) and not self._has_identifier(merged):
            return Result.failure(self._identifier_required())

        reference_errors = self._reference_errors(data)
        if reference_errors:
            return Result.failure(validation_error(reference_errors))

        scope = self.kind.identifier_scope
        check = dict(data)
        if scope and scope not in check:
            check[scope] = getattr(row, scope)
        conflicts = self._find_duplicates(check, exclude_id=row.id)
        if conflicts:
            return Result.failure(duplicate_identifier(conflicts))

        for key, value in data.items():
            setattr(row, key, value)
        try:
            self._commit()
        except IntegrityError as exc:
            self._session.rollback()
            return Result.failure(self._translate_integrity_error(exc, data))

        return Result.success(self._to_record(self._get_row(row.id)))

    @_storage_guard(as_result=True)
    def delete(self, record_id: str) -> Result[Record]:
        row = self._get_row(record_id)
        if row is None:
            return Result.failure(not_found(self.kind.label, record_id))

        snapshot = self._to_record(row)
        self._session.delete(row)
        try:
            self._commit()
        except IntegrityError as exc:
            self._session.rollback()
            logger.warning("Delete of %s %s blocked: %s", self.kind.table_name, record_id, exc.orig)
            return Result.failure(validation_error(
                [{"field": "id", "message": "Record is still referenced by other records"}],
                message=f"{self.kind.label} {record_id} is still in use",
            ))

        logger.info("Deleted %s %s", self.kind.table_name, record_id)
        return Result.success(snapshot)

    # ── Internals ───────────────────────────────────────────────────────────

    def _commit(self) -> None:
        if self.autocommit:
            self._session.commit()
        else:
            self._session.flush()

    def _get_row(self, record_id: str):
        return self._session.get(self.kind.model, record_id, populate_existing=True)

    def _to_record(self, row) -> Record:
        attributes = {f: getattr(row, f) for f in sorted(self.kind.payload_fields)}
        return Record(
            id=row.id,
            kind=self.kind.name,
            table_name=self.kind.table_name,
            status=row.status,
            attributes=attributes,
            joined=self.kind.joined_fields(row),
            comment=row.comment,
            created_by=row.created_by,
            updated_by=row.updated_by,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _normalize(self, payload: dict) -> dict:
        """Trim identifier values and store blanks as NULL."""
        data = {}
        for key, value in payload.items():
            if isinstance(value, str):
                if key in self.kind.identifier_fields:
                    value = value.strip()
                if value.strip() == "":
                    value = None
            data[key] = value
        return data

    def _unknown_field_errors(self, data: dict) -> list[dict]:
        allowed = self.kind.payload_fields | WRITABLE_SYSTEM_FIELDS
        return [
            {"field": key, "message": f"Unknown field '{key}'"}
            for key in sorted(data)
            if key not in allowed
        ]

    def _coerce_columns(self, data: dict) -> list[dict]:
        """Parse ISO date strings and numeric strings in place for typed columns."""
        errors = []
        columns = self.kind.model.__table__.columns
        for key, value in data.items():
            if not isinstance(value, str) or key not in columns:
                continue
            column_type = columns[key].type
            try:
                if isinstance(column_type, Date):
                    data[key] = date.fromisoformat(value)
                elif isinstance(column_type, Integer):
                    data[key] = int(value)
            except ValueError:
                errors.append({"field": key, "message": f"Invalid value for {key}: {value}"})
        return errors

    @staticmethod
    def _status_errors(data: dict) -> list[dict]:
        if "status" in data and data["status"] not in VALID_STATUSES:
            return [{
                "field": "status",
                "message": f"Invalid status: {data['status']}. Valid statuses are: {', '.join(VALID_STATUSES)}",
            }]
        return []

    def _has_identifier(self, data: dict) -> bool:
        return any(not _blank(data.get(f)) for f in self.kind.identifier_fields)

    def _identifier_required(self):
        fields = ", ".join(self.kind.identifier_fields)
        return validation_error(
            [{"field": "identifier", "message": f"At least one of {fields} must be provided"}],
            message="At least one identifier is required",
        )

    def _reference_errors(self, data: dict) -> list[dict]:
        errors = []
        for key, model in self.kind.references.items():
            value = data.get(key)
            if _blank(value):
                continue
            if self._session.get(model, value) is None:
                errors.append({"field": key, "message": f"{model.__name__} {value} does not exist"})
        return errors

    def _find_duplicates(self, data: dict, exclude_id: Optional[str] = None) -> list[dict]:
        model = self.kind.model
        scope = self.kind.identifier_scope
        conflicts = []
        for name in self.kind.identifier_fields:
            value = data.get(name)
            if _blank(value):
                continue
            column = getattr(model, name)
            query = select(model.id).where(column == value)
            if scope:
                query = query.where(getattr(model, scope) == data.get(scope))
            if exclude_id is not None:
                query = query.where(model.id != exclude_id)
            if self._session.execute(query.limit(1)).first() is not None:
                conflicts.append(self._conflict(name, value))
        return conflicts

    def _conflict(self, name: str, value: Any) -> dict:
        label = name.replace("_", " ").replace(" no", " number")
        return {"field": name, "value": value, "message": f"{label.capitalize()} already exists"}

    def _translate_integrity_error(self, exc: IntegrityError, data: dict):
        message = str(exc.orig).lower()
        if "unique" in message or "duplicate" in message:
            fields = [f for f in self.kind.identifier_fields if f in message]
            logger.warning(
                "Unique constraint hit on %s (%s); reporting duplicate identifier",
                self.kind.table_name, ", ".join(fields) or "unknown",
            )
            conflicts = [self._conflict(f, data.get(f)) for f in fields]
            return duplicate_identifier(conflicts or [{
                "field": "unknown", "value": None, "message": "A duplicate record already exists",
            }])
        if "foreign key" in message:
            return validation_error([{"field": "reference", "message": "Referenced record does not exist"}])
        logger.error("Integrity error on %s: %s", self.kind.table_name, exc.orig)
        return validation_error([{"field": "record", "message": str(exc.orig)}])

    # ── Listing helpers ─────────────────────────────────────────────────────

    def _base_query(self, query):
        for model, onclause in self.kind.joins:
            query = query.outerjoin(model, onclause)
        return query

    def _count(self, conditions: list) -> int:
        query = self._base_query(select(func.count()).select_from(self.kind.model))
        for condition in conditions:
            query = query.where(condition)
        return self._session.execute(query).scalar_one()

    def _order_by(self, sort_by: Optional[str], sort_order: Optional[str]) -> list:
        column = self.kind.sortable.get(sort_by or "")
        if column is None:
            if sort_by:
                logger.debug("Ignoring unsortable key %r for %s", sort_by, self.kind.table_name)
            column = self.kind.sortable[self.kind.default_sort]
        descending = (sort_order or "desc").lower() != "asc"
        primary = column.desc() if descending else column.asc()
        return [primary, self.kind.model.id.asc()]

    def _filter_conditions(self, filters: dict) -> Result[list]:
        conditions, errors = [], []
        for name, value in filters.items():
            if value is None or value == "":
                continue
            spec = self.kind.filters.get(name)
            if spec is None:
                errors.append({"field": name, "message": f"Unknown filter '{name}'"})
                continue
            try:
                conditions.append(self._condition(spec, value))
            except ValueError:
                errors.append({"field": name, "message": f"Invalid value for filter '{name}': {value}"})
        if errors:
            return Result.failure(validation_error(errors, message="Invalid filters"))
        return Result.success(conditions)

    @staticmethod
    def _condition(spec, value):
        clauses = []
        for column in spec.columns:
            if spec.op == "eq":
                if isinstance(column.type, Integer):
                    value = int(value)
                clauses.append(column == value)
            elif spec.op == "contains":
                clauses.append(column.ilike(f"%{_escape_like(value)}%", escape="\\"))
            elif spec.op == "prefix":
                clauses.append(column.ilike(f"{_escape_like(value)}%", escape="\\"))
            elif spec.op == "gte":
                clauses.append(column >= _coerce_bound(column, value, upper=False))
            elif spec.op == "lte":
                bound = _coerce_bound(column, value, upper=True)
                if isinstance(column.type, DateTime) and isinstance(value, str) and len(value) == 10:
                    # date-only upper bound covers the whole day
                    clauses.append(column < bound)
                else:
                    clauses.append(column <= bound)
        return or_(*clauses) if len(clauses) > 1 else and_(*clauses)


def _escape_like(value) -> str:
    """Match ``%`` and ``_`` literally in contains/prefix filters."""
    return str(value).replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")

def _coerce_bound(column, value, upper: bool):
    """Parse ISO date strings for range filters on date and datetime columns."""
    if isinstance(column.type, DateTime):
        if isinstance(value, datetime):
            return as_stored_utc(value)
        if isinstance(value, date):
            value = value.isoformat()
        if len(value) == 10:
            day = date.fromisoformat(value)
            start = datetime(day.year, day.month, day.day)
            return start + timedelta(days=1) if upper else start
        if value.endswith(("Z", "z")):
            value = value[:-1] + "+00:00"
        return as_stored_utc(datetime.fromisoformat(value))
    if isinstance(column.type, Date):
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        return date.fromisoformat(value)
    return value
