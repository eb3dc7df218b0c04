"""Audit trail response schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from certdesk.schemas.record import PaginationMeta


class AuditEntryResponse(BaseModel):
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

    class Config:
        from_attributes = True


class AuditListResponse(BaseModel):
    entries: list[AuditEntryResponse]
    pagination: PaginationMeta


class RecordAuditResponse(BaseModel):
    entries: list[AuditEntryResponse]
