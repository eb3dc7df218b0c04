"""Student request schemas."""

from datetime import date
from typing import Optional

from pydantic import BaseModel


class _StudentFields(BaseModel):
    student_id: Optional[str] = None
    uid_aadhar_no: Optional[str] = None
    father_name: Optional[str] = None
    mother_name: Optional[str] = None
    surname: Optional[str] = None
    nationality: Optional[str] = None
    mother_tongue: Optional[str] = None
    religion: Optional[str] = None
    caste: Optional[str] = None
    sub_caste: Optional[str] = None
    birth_place_village: Optional[str] = None
    birth_place_taluka: Optional[str] = None
    birth_place_district: Optional[str] = None
    birth_place_state: Optional[str] = None
    birth_place_country: Optional[str] = None
    date_of_birth_words: Optional[str] = None
    school_id: Optional[str] = None
    # Leaving-certificate details
    serial_no: Optional[str] = None
    previous_school: Optional[str] = None
    previous_class: Optional[str] = None
    admission_date: Optional[date] = None
    admission_class: Optional[str] = None
    progress_in_studies: Optional[str] = None
    conduct: Optional[str] = None
    leaving_date: Optional[date] = None
    leaving_class: Optional[str] = None
    studying_class_and_since: Optional[str] = None
    reason_for_leaving: Optional[str] = None
    remarks: Optional[str] = None
    general_register_ref: Optional[str] = None
    certificate_date: Optional[date] = None
    certificate_month: Optional[str] = None
    certificate_year: Optional[int] = None


class StudentCreate(_StudentFields):
    full_name: str
    date_of_birth: date


class StudentUpdate(_StudentFields):
    full_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    comment: Optional[str] = None
