"""Tests for entering a school, student and certificate in one transaction."""

import pytest

from conftest import certificate_payload, school_payload, student_payload

from certdesk.errors import ErrorKind
from certdesk.models.certificate import LeavingCertificate
from certdesk.models.school import School
from certdesk.models.student import Student
from certdesk.services.certificate_bundle import create_bundle


def _certificate(**overrides):
    payload = certificate_payload(None, None, **overrides)
    del payload["school_id"], payload["student_id"]
    return payload


def _student(**overrides):
    payload = student_payload(**overrides)
    del payload["school_id"]
    return payload


def _counts(db):
    db.expire_all()
    return (db.query(School).count(), db.query(Student).count(), db.query(LeavingCertificate).count())


class TestCreateBundle:
    def test_creates_all_three_parts(self, db, recorder, actors):
        result = create_bundle(
            db, recorder, actors["admin"],
            certificate=_certificate(), school=school_payload(), student=_student(),
        )

        bundle = result.unwrap()
        assert bundle.created == ("schools", "students", "leaving_certificates")
        assert bundle.student.attributes["school_id"] == bundle.school.id
        assert bundle.certificate.attributes["school_id"] == bundle.school.id
        assert bundle.certificate.attributes["student_id"] == bundle.student.id
        assert bundle.certificate.joined["student_full_name"] == "Ravi Patil"
        assert {bundle.school.status, bundle.student.status, bundle.certificate.status} == {"draft"}
        assert _counts(db) == (1, 1, 1)

        inserts = recorder.find_all().items
        assert {(e.table_name, e.action) for e in inserts} == {
            ("schools", "INSERT"), ("students", "INSERT"), ("leaving_certificates", "INSERT"),
        }

    def test_matches_existing_school_and_student_by_identifier(self, db, recorder, actors, schools, students):
        school = schools.create(actors["admin"], school_payload()).unwrap()
        student = students.create(actors["admin"], student_payload(school.id)).unwrap()

        bundle = create_bundle(
            db, recorder, actors["admin"],
            certificate=_certificate(),
            school=school_payload(name="Typed differently", school_recognition_no="", udise_no="27250100101"),
            student=_student(full_name="Someone Else", student_id="STU-001"),
        ).unwrap()

        assert (bundle.school.id, bundle.student.id) == (school.id, student.id)
        assert bundle.created == ("leaving_certificates",)
        assert _counts(db) == (1, 1, 1)

    def test_student_matched_on_aadhaar(self, db, recorder, actors, schools, students):
        school = schools.create(actors["admin"], school_payload()).unwrap()
        student = students.create(
            actors["admin"], student_payload(school.id, student_id=None, uid_aadhar_no="1234 5678 9012"),
        ).unwrap()

        bundle = create_bundle(
            db, recorder, actors["admin"],
            certificate=_certificate(),
            school_record_id=school.id,
            student=_student(student_id="NEW-9", uid_aadhar_no="1234 5678 9012"),
        ).unwrap()

        assert bundle.student.id == student.id

    def test_references_by_record_id(self, db, recorder, actors, schools, students):
        school = schools.create(actors["admin"], school_payload()).unwrap()
        student = students.create(actors["admin"], student_payload(school.id)).unwrap()

        bundle = create_bundle(
            db, recorder, actors["admin"],
            certificate=_certificate(), school_record_id=school.id, student_record_id=student.id,
        ).unwrap()

        assert bundle.created == ("leaving_certificates",)

    def test_missing_referenced_school(self, db, recorder, actors):
        result = create_bundle(
            db, recorder, actors["admin"],
            certificate=_certificate(), school_record_id="nope", student=_student(),
        )
        assert result.kind == ErrorKind.NOT_FOUND
        assert _counts(db) == (0, 0, 0)

    def test_school_or_details_required(self, db, recorder, actors):
        result = create_bundle(db, recorder, actors["admin"], certificate=_certificate(), student=_student())
        assert result.kind == ErrorKind.VALIDATION_ERROR
        assert result.error.detail["errors"][0]["field"] == "school"


class TestBundleIsAtomic:
    def test_invalid_certificate_leaves_nothing_behind(self, db, recorder, actors):
        result = create_bundle(
            db, recorder, actors["admin"],
            certificate=_certificate(leaving_class=""), school=school_payload(), student=_student(),
        )

        assert result.kind == ErrorKind.VALIDATION_ERROR
        assert _counts(db) == (0, 0, 0)
        assert recorder.find_all().total == 0

    def test_duplicate_serial_rolls_back_new_student(self, db, recorder, actors, schools, students, certificates):
        school = schools.create(actors["admin"], school_payload()).unwrap()
        first = students.create(actors["admin"], student_payload(school.id)).unwrap()
        certificates.create(actors["admin"], certificate_payload(school.id, first.id)).unwrap()

        result = create_bundle(
            db, recorder, actors["admin"],
            certificate=_certificate(), school_record_id=school.id,
            student=_student(full_name="Meera Kulkarni", student_id="STU-002"),
        )

        assert result.kind == ErrorKind.DUPLICATE_IDENTIFIER
        assert result.error.detail["fields"][0]["field"] == "serial_no"
        assert _counts(db) == (1, 1, 1)

    def test_invalid_student_rolls_back_new_school(self, db, recorder, actors):
        result = create_bundle(
            db, recorder, actors["admin"],
            certificate=_certificate(), school=school_payload(), student=_student(date_of_birth="not-a-date"),
        )

        assert result.kind == ErrorKind.VALIDATION_ERROR
        assert _counts(db) == (0, 0, 0)

    @pytest.mark.parametrize("role", ["user", "super"])
    def test_only_admin_may_enter_bundles(self, db, recorder, actors, role):
        result = create_bundle(
            db, recorder, actors[role],
            certificate=_certificate(), school=school_payload(), student=_student(),
        )
        assert result.kind == ErrorKind.FORBIDDEN
        assert _counts(db) == (0, 0, 0)
