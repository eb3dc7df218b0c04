"""Student model — personal details plus the leaving-certificate fields."""

import uuid

from sqlalchemy import Column, Date, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from certdesk.database import Base
from certdesk.models.record import WorkflowRecordMixin, status_check


class Student(WorkflowRecordMixin, Base):
    __tablename__ = "students"
    __table_args__ = (status_check("students"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # Identifiers: unique when present, NULL when blank
    student_id = Column(String(50), unique=True, nullable=True)
    uid_aadhar_no = Column(String(20), unique=True, nullable=True)

    full_name = Column(String(255), nullable=False)
    father_name = Column(String(255), nullable=True)
    mother_name = Column(String(255), nullable=True)
    surname = Column(String(255), nullable=True)
    nationality = Column(String(100), nullable=True)
    mother_tongue = Column(String(100), nullable=True)
    religion = Column(String(100), nullable=True)
    caste = Column(String(100), nullable=True)
    sub_caste = Column(String(100), nullable=True)
    birth_place_village = Column(String(255), nullable=True)
    birth_place_taluka = Column(String(100), nullable=True)
    birth_place_district = Column(String(100), nullable=True)
    birth_place_state = Column(String(100), nullable=True)
    birth_place_country = Column(String(100), nullable=True, default="India")
    date_of_birth = Column(Date, nullable=False)
    date_of_birth_words = Column(String(255), nullable=True)

    school_id = Column(String(36), ForeignKey("schools.id"), nullable=True, index=True)

    # Certificate fields carried on the student record
    serial_no = Column(String(50), nullable=True)
    previous_school = Column(String(500), nullable=True)
    previous_class = Column(String(50), nullable=True)
    admission_date = Column(Date, nullable=True)
    admission_class = Column(String(50), nullable=True)
    progress_in_studies = Column(String(255), nullable=True)
    conduct = Column(String(255), nullable=True)
    leaving_date = Column(Date, nullable=True)
    leaving_class = Column(String(50), nullable=True)
    studying_class_and_since = Column(String(255), nullable=True)
    reason_for_leaving = Column(Text, nullable=True)
    remarks = Column(Text, nullable=True)
    general_register_ref = Column(String(100), nullable=True)
    certificate_date = Column(Date, nullable=True)
    certificate_month = Column(String(20), nullable=True)
    certificate_year = Column(Integer, nullable=True)

    # Relationships
    school = relationship("School", back_populates="students")
    certificates = relationship("LeavingCertificate", back_populates="student", passive_deletes="all")
