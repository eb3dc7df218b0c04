"""Columns shared by every workflow record table."""

from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import declared_attr

from certdesk.status_machine import VALID_STATUSES


def _now():
    return datetime.now(timezone.utc)


def status_check(table_name: str) -> CheckConstraint:
    allowed = ", ".join(f"'{s}'" for s in VALID_STATUSES)
    return CheckConstraint(f"status IN ({allowed})", name=f"ck_{table_name}_status")


class WorkflowRecordMixin:
    status = Column(String(20), nullable=False, default="draft", index=True)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=_now)
    updated_at = Column(DateTime, nullable=False, default=_now, onupdate=_now)

    @declared_attr
    def created_by(cls):
        return Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    @declared_attr
    def updated_by(cls):
        return Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
