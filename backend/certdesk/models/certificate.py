"""Leaving certificate model."""

import uuid

from sqlalchemy import Column, Date, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from certdesk.database import Base
from certdesk.models.record import WorkflowRecordMixin, status_check


class LeavingCertificate(WorkflowRecordMixin, Base):
    __tablename__ = "leaving_certificates"
    __table_args__ = (
        UniqueConstraint("school_id", "serial_no", name="uq_leaving_certificates_school_serial_no"),
        status_check("leaving_certificates"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    school_id = Column(String(36), ForeignKey("schools.id"), nullable=False, index=True)
    student_id = Column(String(36), ForeignKey("students.id"), nullable=False, index=True)
    serial_no = Column(String(50), nullable=True)
    previous_school = Column(String(500), nullable=True)
    previous_class = Column(String(50), nullable=True)
    admission_date = Column(Date, nullable=True)
    admission_class = Column(String(50), nullable=True)
    progress_in_studies = Column(String(255), nullable=True)
    conduct = Column(String(255), nullable=True)
    leaving_date = Column(Date, nullable=False)
    leaving_class = Column(String(50), nullable=False)
    studying_class_and_since = Column(String(255), nullable=True)
    reason_for_leaving = Column(Text, nullable=True)
    remarks = Column(Text, nullable=True)
    general_register_ref = Column(String(100), nullable=True)
    certificate_date = Column(Date, nullable=True)
    certificate_month = Column(String(20), nullable=True)
    certificate_year = Column(Integer, nullable=True)
    class_teacher_name = Column(String(255), nullable=True)
    clerk_name = Column(String(255), nullable=True)
    headmaster_name = Column(String(255), nullable=True)

    # Relationships
    school = relationship("School", back_populates="certificates")
    student = relationship("Student", back_populates="certificates")
