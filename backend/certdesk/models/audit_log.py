"""Audit log model — append-only record of every view, change and login."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from certdesk.database import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    table_name = Column(String(50), nullable=False, index=True)  # schools | students | leaving_certificates | users
    record_id = Column(String(36), nullable=False, index=True)
    action = Column(String(10), nullable=False)  # INSERT | UPDATE | DELETE | VIEW | LOGIN | LOGOUT
    field_name = Column(String(100), nullable=True)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    # Nulled when the account is removed; the entry itself stays.
    changed_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    changed_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc), index=True)

    actor = relationship("User", lazy="joined")
