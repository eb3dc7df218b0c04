"""Workflow service — status transitions and record CRUD with permission checks.

Every mutating call follows the same shape:

    validate -> authorize -> persist -> (after commit) history -> audit

The record row is the source of truth. History and audit work is handed to
``dispatch`` only once the primary write has committed, and anything that
goes wrong there is logged by the recorder, never reported back.
"""

import functools
import logging
from typing import Callable, Optional

from certdesk.actor import UNKNOWN_ORIGIN, Actor, OriginInfo
from certdesk.errors import Result, StorageUnavailable, not_found, validation_error
from certdesk.pagination import Page, PageRequest
from certdesk.permissions import Action, Role, action_for_transition, authorize, filter_visible
from certdesk.services.audit_service import AuditRecorder, StatusHistoryEntry, run_now
from certdesk.services.record_repository import Record, RecordRepository
from certdesk.status_machine import (
    Status,
    allowed_transitions,
    can_edit,
    is_final_state,
    validate_transition,
)

logger = logging.getLogger(__name__)

Dispatch = Callable[..., None]


def _surface_storage_faults(method):
    @functools.wraps(method)
    def wrapper(*args, **kwargs):
        try:
            return method(*args, **kwargs)
        except StorageUnavailable as exc:
            return Result.failure(exc.error)

    return wrapper


class WorkflowService:
    def __init__(
        self,
        repository: RecordRepository,
        recorder: AuditRecorder,
        dispatch: Optional[Dispatch] = None,
    ):
        self.repository = repository
        self.recorder = recorder
        self.dispatch = dispatch or run_now

    @property
    def table_name(self) -> str:
        return self.repository.kind.table_name

    @property
    def label(self) -> str:
        return self.repository.kind.label

    # ── Status transitions ──────────────────────────────────────────────────

    @_surface_storage_faults
    def transition(
        self,
        actor: Actor,
        record_id: str,
        desired_status: str,
        reason: Optional[str] = None,
        comment: Optional[str] = None,
        origin: OriginInfo = UNKNOWN_ORIGIN,
    ) -> Result[Record]:
        """Move a record to ``desired_status``.

        Fails with not_found, invalid_transition or forbidden before anything
        is written. Records the actor may not view count as not_found.
        Requesting the current status is a successful no-op.
        """
        visible = self._visible_record(actor, record_id)
        if not visible.ok:
            return visible
        current = visible.value

        old_status = current.status or Status.DRAFT.value
        checked = validate_transition(old_status, desired_status)
        if not checked.ok:
            return checked

        if old_status == desired_status:
            return Result.success(current)

        action = action_for_transition(old_status, desired_status)
        allowed = authorize(actor.role, action, old_status)
        if not allowed.ok:
            return allowed

        changes = {"status": desired_status, "updated_by": actor.id}
        if comment:
            changes["comment"] = comment
        updated = self.repository.update(record_id, changes)
        if not updated.ok:
            return updated

        logger.info(
            "%s %s: %s -> %s by %s", self.table_name, record_id, old_status, desired_status, actor.id,
        )
        self.dispatch(
            self.recorder.record_status_change,
            actor, self.table_name, record_id, old_status, desired_status, reason, comment,
        )
        self.dispatch(
            self.recorder.record_update,
            actor, self.table_name, record_id, origin, {"status": old_status}, {"status": desired_status},
        )
        return updated

    @_surface_storage_faults
    def transitions(self, actor: Actor, record_id: str) -> Result[dict]:
        """Current status plus what it may move to, for client-side guidance."""
        visible = self._visible_record(actor, record_id)
        if not visible.ok:
            return visible
        status = visible.value.status or Status.DRAFT.value
        return Result.success({
            "current_status": status,
            "allowed_transitions": sorted(allowed_transitions(status)),
            "can_edit": can_edit(status),
            "is_final_state": is_final_state(status),
        })

    @_surface_storage_faults
    def status_history(self, actor: Actor, record_id: str) -> Result[list[StatusHistoryEntry]]:
        visible = self._visible_record(actor, record_id)
        if not visible.ok:
            return visible
        return Result.success(self.recorder.status_history(self.table_name, record_id))

    # ── CRUD ────────────────────────────────────────────────────────────────

    @_surface_storage_faults
    def create(self, actor: Actor, payload: dict, origin: OriginInfo = UNKNOWN_ORIGIN) -> Result[Record]:
        allowed = authorize(actor.role, Action.CREATE, Status.DRAFT.value)
        if not allowed.ok:
            return allowed

        data = {**payload, "status": Status.DRAFT.value, "created_by": actor.id, "updated_by": actor.id}
        created = self.repository.create(data)
        if not created.ok:
            return created

        record = created.value
        self.dispatch(self.recorder.record_add, actor, self.table_name, record.id, origin, payload)
        return created

    @_surface_storage_faults
    def update(
        self,
        actor: Actor,
        record_id: str,
        payload: dict,
        origin: OriginInfo = UNKNOWN_ORIGIN,
    ) -> Result[Record]:
        if "status" in payload:
            return Result.failure(validation_error(
                [{"field": "status", "message": "Use the status endpoint to change status"}],
            ))

        visible = self._visible_record(actor, record_id)
        if not visible.ok:
            return visible
        current = visible.value

        allowed = authorize(actor.role, Action.EDIT, current.status)
        if not allowed.ok:
            return allowed

        updated = self.repository.update(record_id, {**payload, "updated_by": actor.id})
        if not updated.ok:
            return updated

        old_values = {key: _value_of(current, key) for key in payload}
        new_values = {key: _value_of(updated.value, key) for key in payload}
        self.dispatch(
            self.recorder.record_update, actor, self.table_name, record_id, origin, old_values, new_values,
        )
        return updated

    @_surface_storage_faults
    def delete(self, actor: Actor, record_id: str, origin: OriginInfo = UNKNOWN_ORIGIN) -> Result[Record]:
        visible = self._visible_record(actor, record_id)
        if not visible.ok:
            return visible
        current = visible.value

        allowed = authorize(actor.role, Action.DELETE, current.status)
        if not allowed.ok:
            return allowed

        deleted = self.repository.delete(record_id)
        if not deleted.ok:
            return deleted

        self.dispatch(self.recorder.record_delete, actor, self.table_name, record_id, origin)
        return deleted

    @_surface_storage_faults
    def get(self, actor: Actor, record_id: str, origin: OriginInfo = UNKNOWN_ORIGIN) -> Result[Record]:
        visible = self._visible_record(actor, record_id)
        if visible.ok:
            self.dispatch(self.recorder.record_view, actor, self.table_name, record_id, origin)
        return visible

    @_surface_storage_faults
    def find_by_identifier(
        self,
        actor: Actor,
        value: str,
        scope_value: Optional[str] = None,
        origin: OriginInfo = UNKNOWN_ORIGIN,
    ) -> Result[Record]:
        """Look a record up by a business identifier instead of its id."""
        record = self.repository.find_by_identifier(value, scope_value)
        if record is None or not authorize(actor.role, Action.VIEW, record.status).ok:
            return Result.failure(not_found(self.label, value))
        self.dispatch(self.recorder.record_view, actor, self.table_name, record.id, origin)
        return Result.success(record)

    @_surface_storage_faults
    def list_records(
        self,
        actor: Actor,
        filters: Optional[dict] = None,
        page: Optional[PageRequest] = None,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
    ) -> Result[Page[Record]]:
        filters = dict(filters or {})
        if actor.role not in (Role.ADMIN.value, Role.SUPER.value):
            filters["status"] = Status.ACCEPTED.value

        listed = self.repository.find_all(filters, page, sort_by, sort_order)
        if not listed.ok:
            return listed

        result = listed.value
        return Result.success(Page(
            items=filter_visible(result.items, actor.role),
            page=result.page,
            limit=result.limit,
            total=result.total,
        ))

    def _visible_record(self, actor: Actor, record_id: str) -> Result[Record]:
        """Fetch a record the actor may see; hidden records look missing."""
        record = self.repository.find_by_id(record_id)
        if record is None or not authorize(actor.role, Action.VIEW, record.status).ok:
            return Result.failure(not_found(self.label, record_id))
        return Result.success(record)


def _value_of(record: Record, key: str):
    if key in record.attributes:
        return record.attributes[key]
    return getattr(record, key, None)
