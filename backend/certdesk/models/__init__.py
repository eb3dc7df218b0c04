"""SQLAlchemy ORM models."""

from certdesk.models.user import User
from certdesk.models.school import School
from certdesk.models.student import Student
from certdesk.models.certificate import LeavingCertificate
from certdesk.models.audit_log import AuditLog
from certdesk.models.status_history import StatusHistory

__all__ = [
    "User",
    "School",
    "Student",
    "LeavingCertificate",
    "AuditLog",
    "StatusHistory",
]
