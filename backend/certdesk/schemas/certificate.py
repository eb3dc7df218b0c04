"""Leaving certificate request schemas."""

from datetime import date
from typing import Optional

from pydantic import BaseModel

from certdesk.schemas.school import SchoolCreate
from certdesk.schemas.student import StudentCreate


class _CertificateFields(BaseModel):
    previous_school: Optional[str] = None
    previous_class: Optional[str] = None
    admission_date: Optional[date] = None
    admission_class: Optional[str] = None
    progress_in_studies: Optional[str] = None
    conduct: Optional[str] = None
    studying_class_and_since: Optional[str] = None
    reason_for_leaving: Optional[str] = None
    remarks: Optional[str] = None
    general_register_ref: Optional[str] = None
    certificate_date: Optional[date] = None
    certificate_month: Optional[str] = None
    certificate_year: Optional[int] = None
    class_teacher_name: Optional[str] = None
    clerk_name: Optional[str] = None
    headmaster_name: Optional[str] = None


class CertificateCreate(_CertificateFields):
    school_id: str
    student_id: str
    serial_no: str
    leaving_date: date
    leaving_class: str


class CertificateUpdate(_CertificateFields):
    school_id: Optional[str] = None
    student_id: Optional[str] = None
    serial_no: Optional[str] = None
    leaving_date: Optional[date] = None
    leaving_class: Optional[str] = None
    comment: Optional[str] = None


class CertificateDetails(_CertificateFields):
    serial_no: str
    leaving_date: date
    leaving_class: str


class CertificateBundleCreate(BaseModel):
    """A certificate plus its school and student, each given by id or by details."""

    school_record_id: Optional[str] = None
    school: Optional[SchoolCreate] = None
    student_record_id: Optional[str] = None
    student: Optional[StudentCreate] = None
    certificate: CertificateDetails


class CertificateBundleResponse(BaseModel):
    school: dict
    student: dict
    certificate: dict
    created: list[str]
