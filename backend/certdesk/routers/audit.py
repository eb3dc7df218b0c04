"""Audit router — read-only access to the audit trail (admin and super)."""

from dataclasses import asdict
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from certdesk.actor import Actor
from certdesk.config import Settings
from certdesk.middleware.auth import get_settings, require_roles
from certdesk.pagination import PageRequest
from certdesk.schemas.audit import AuditListResponse, RecordAuditResponse
from certdesk.services.audit_service import AuditFilters

router = APIRouter(prefix="/api/audit", tags=["audit"])

require_manager = require_roles("admin", "super")


@router.get("", response_model=AuditListResponse)
def list_audit_logs(
    request: Request,
    table_name: Optional[str] = Query(None),
    record_id: Optional[str] = Query(None),
    changed_by: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    actor: Actor = Depends(require_manager),
    settings: Settings = Depends(get_settings),
):
    """Filtered audit trail, newest first."""
    filters = AuditFilters(
        table_name=table_name,
        record_id=record_id,
        changed_by=changed_by,
        action=action,
        start_date=start_date,
        end_date=end_date,
    )
    page_request = PageRequest.parse(page, limit, settings.AUDIT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
    result = request.app.state.recorder.find_all(filters, page_request)
    return AuditListResponse(
        entries=[asdict(e) for e in result.items],
        pagination=result.meta(),
    )


@router.get("/{table_name}/{record_id}", response_model=RecordAuditResponse)
def get_record_audit(
    request: Request,
    table_name: str,
    record_id: str,
    actor: Actor = Depends(require_manager),
):
    """Every audit entry for one record, newest first."""
    entries = request.app.state.recorder.find_by_entity_and_record(table_name, record_id)
    return RecordAuditResponse(entries=[asdict(e) for e in entries])
