"""Shared request/response schemas for workflow records."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel


class StatusChangeRequest(BaseModel):
    status: str
    reason: Optional[str] = None
    comment: Optional[str] = None


class TransitionsResponse(BaseModel):
    current_status: str
    allowed_transitions: list[str]
    can_edit: bool
    is_final_state: bool


class PaginationMeta(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class RecordResponse(BaseModel):
    record: dict[str, Any]


class RecordListResponse(BaseModel):
    records: list[dict[str, Any]]
    pagination: PaginationMeta


class StatusHistoryItem(BaseModel):
    id: str
    old_status: str
    new_status: str
    changed_by: Optional[str]
    changed_by_username: Optional[str]
    changed_by_name: Optional[str]
    reason: Optional[str]
    notes: Optional[str]
    changed_at: datetime

    class Config:
        from_attributes = True
