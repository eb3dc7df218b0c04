"""School model."""

import uuid

from sqlalchemy import Column, String, Text
from sqlalchemy.orm import relationship

from certdesk.database import Base
from certdesk.models.record import WorkflowRecordMixin, status_check


class School(WorkflowRecordMixin, Base):
    __tablename__ = "schools"
    __table_args__ = (status_check("schools"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(500), nullable=False)
    address = Column(Text, nullable=True)
    taluka = Column(String(100), nullable=True)
    district = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)
    phone_no = Column(String(20), nullable=True)
    email = Column(String(255), nullable=True)
    # Identifiers: unique when present, NULL when blank
    general_register_no = Column(String(50), unique=True, nullable=True)
    school_recognition_no = Column(String(50), unique=True, nullable=True)
    udise_no = Column(String(50), unique=True, nullable=True)
    affiliation_no = Column(String(50), unique=True, nullable=True)
    board = Column(String(100), nullable=True, default="Maharashtra State")
    medium = Column(String(50), nullable=True, default="Marathi")

    # Relationships
    students = relationship("Student", back_populates="school", passive_deletes="all")
    certificates = relationship("LeavingCertificate", back_populates="school", passive_deletes="all")
