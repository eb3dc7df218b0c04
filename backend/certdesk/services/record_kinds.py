"""Per-table configuration for the workflow record repository.

Each record kind declares its identifier fields (unique when non-empty),
required fields, foreign references, the filters a listing accepts and the
explicit allow-list of sortable columns.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from certdesk.models.certificate import LeavingCertificate
from certdesk.models.school import School
from certdesk.models.student import Student

# Columns the repository manages itself; never part of the domain payload.
SYSTEM_FIELDS = frozenset({"id", "status", "comment", "created_by", "updated_by", "created_at", "updated_at"})


@dataclass(frozen=True)
class FilterSpec:
    op: str  # eq | contains | prefix | gte | lte
    columns: tuple


@dataclass(frozen=True)
class RecordKind:
    name: str
    label: str
    model: Any
    identifier_fields: tuple
    required_fields: tuple
    sortable: dict
    filters: dict
    # (model, onclause) pairs joined into listing queries for filters on related rows
    joins: tuple = ()
    references: dict = field(default_factory=dict)
    identifier_scope: Optional[str] = None
    joined_fields: Callable[[Any], dict] = lambda row: {}
    default_sort: str = "created_at"

    @property
    def table_name(self) -> str:
        return self.model.__tablename__

    @property
    def payload_fields(self) -> frozenset:
        return frozenset(c.key for c in self.model.__table__.columns) - SYSTEM_FIELDS


def _common_filters(model) -> dict:
    return {
        "status": FilterSpec("eq", (model.status,)),
        "created_by": FilterSpec("eq", (model.created_by,)),
        "created_from": FilterSpec("gte", (model.created_at,)),
        "created_to": FilterSpec("lte", (model.created_at,)),
    }


def _common_sortable(model) -> dict:
    return {
        "status": model.status,
        "created_at": model.created_at,
        "updated_at": model.updated_at,
    }


# ── School ──────────────────────────────────────────────────────────────────

SCHOOLS = RecordKind(
    name="school",
    label="School",
    model=School,
    identifier_fields=("school_recognition_no", "general_register_no", "affiliation_no", "udise_no"),
    required_fields=("name",),
    sortable={
        **_common_sortable(School),
        "name": School.name,
        "district": School.district,
        "taluka": School.taluka,
    },
    filters={
        **_common_filters(School),
        "district": FilterSpec("eq", (School.district,)),
        "taluka": FilterSpec("eq", (School.taluka,)),
        "board": FilterSpec("eq", (School.board,)),
        "medium": FilterSpec("eq", (School.medium,)),
        "name": FilterSpec("contains", (School.name,)),
        "school_recognition_no": FilterSpec("eq", (School.school_recognition_no,)),
        "udise_no": FilterSpec("eq", (School.udise_no,)),
        "search": FilterSpec("contains", (
            School.name,
            School.school_recognition_no,
            School.general_register_no,
            School.affiliation_no,
            School.udise_no,
        )),
    },
)


# ── Student ─────────────────────────────────────────────────────────────────

def _student_joined(row) -> dict:
    school = row.school
    return {
        "school_name": school.name if school else None,
        "school_recognition_no": school.school_recognition_no if school else None,
        "udise_no": school.udise_no if school else None,
        "school_district": school.district if school else None,
    }


STUDENTS = RecordKind(
    name="student",
    label="Student",
    model=Student,
    identifier_fields=("student_id", "uid_aadhar_no"),
    required_fields=("full_name", "date_of_birth"),
    sortable={
        **_common_sortable(Student),
        "full_name": Student.full_name,
        "surname": Student.surname,
        "date_of_birth": Student.date_of_birth,
        "leaving_date": Student.leaving_date,
    },
    filters={
        **_common_filters(Student),
        "school_id": FilterSpec("eq", (Student.school_id,)),
        "school_name": FilterSpec("contains", (School.name,)),
        "school_recognition_no": FilterSpec("eq", (School.school_recognition_no,)),
        "udise_no": FilterSpec("eq", (School.udise_no,)),
        "school_identifier": FilterSpec("eq", (
            School.school_recognition_no,
            School.general_register_no,
            School.affiliation_no,
            School.udise_no,
        )),
        "full_name": FilterSpec("contains", (Student.full_name,)),
        "date_of_birth_from": FilterSpec("gte", (Student.date_of_birth,)),
        "date_of_birth_to": FilterSpec("lte", (Student.date_of_birth,)),
        "leaving_date_from": FilterSpec("gte", (Student.leaving_date,)),
        "leaving_date_to": FilterSpec("lte", (Student.leaving_date,)),
        "search": FilterSpec("contains", (
            Student.full_name,
            Student.surname,
            Student.student_id,
            Student.uid_aadhar_no,
            School.name,
        )),
    },
    joins=((School, Student.school_id == School.id),),
    references={"school_id": School},
    joined_fields=_student_joined,
)


# ── Leaving certificate ─────────────────────────────────────────────────────

def _certificate_joined(row) -> dict:
    school, student = row.school, row.student
    return {
        "school_name": school.name if school else None,
        "school_address": school.address if school else None,
        "school_taluka": school.taluka if school else None,
        "school_district": school.district if school else None,
        "school_board": school.board if school else None,
        "school_medium": school.medium if school else None,
        "school_recognition_no": school.school_recognition_no if school else None,
        "udise_no": school.udise_no if school else None,
        "student_full_name": student.full_name if student else None,
        "student_father_name": student.father_name if student else None,
        "student_mother_name": student.mother_name if student else None,
        "student_surname": student.surname if student else None,
        "student_date_of_birth": student.date_of_birth if student else None,
        "student_uid_aadhar_no": student.uid_aadhar_no if student else None,
        "student_student_id": student.student_id if student else None,
    }


CERTIFICATES = RecordKind(
    name="certificate",
    label="Certificate",
    model=LeavingCertificate,
    identifier_fields=("serial_no",),
    identifier_scope="school_id",
    required_fields=("school_id", "student_id", "serial_no", "leaving_date", "leaving_class"),
    sortable={
        **_common_sortable(LeavingCertificate),
        "serial_no": LeavingCertificate.serial_no,
        "leaving_date": LeavingCertificate.leaving_date,
        "certificate_year": LeavingCertificate.certificate_year,
    },
    filters={
        **_common_filters(LeavingCertificate),
        "school_id": FilterSpec("eq", (LeavingCertificate.school_id,)),
        "student_id": FilterSpec("eq", (LeavingCertificate.student_id,)),
        "certificate_year": FilterSpec("eq", (LeavingCertificate.certificate_year,)),
        "serial_no_prefix": FilterSpec("prefix", (LeavingCertificate.serial_no,)),
        "school_name": FilterSpec("contains", (School.name,)),
        "student_name": FilterSpec("contains", (Student.full_name,)),
        "leaving_date_from": FilterSpec("gte", (LeavingCertificate.leaving_date,)),
        "leaving_date_to": FilterSpec("lte", (LeavingCertificate.leaving_date,)),
        "search": FilterSpec("contains", (Student.full_name, LeavingCertificate.serial_no)),
    },
    joins=(
        (School, LeavingCertificate.school_id == School.id),
        (Student, LeavingCertificate.student_id == Student.id),
    ),
    references={"school_id": School, "student_id": Student},
    joined_fields=_certificate_joined,
)


RECORD_KINDS = {
    "schools": SCHOOLS,
    "students": STUDENTS,
    "certificates": CERTIFICATES,
}
