"""Certificate bundle — school, student and certificate entered in one request.

The school and the student are each referenced by id, matched on one of
their identifiers, or created in draft. The certificate is always created.
All three writes share one transaction: if any part fails nothing is kept.
Audit entries for the parts that were created are dispatched after commit.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from certdesk.actor import UNKNOWN_ORIGIN, Actor, OriginInfo
from certdesk.errors import Result, StorageUnavailable, not_found, validation_error
from certdesk.permissions import Action, authorize
from certdesk.services.audit_service import AuditRecorder, run_now
from certdesk.services.record_kinds import CERTIFICATES, SCHOOLS, STUDENTS
from certdesk.services.record_repository import Record, RecordRepository
from certdesk.status_machine import Status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CertificateBundle:
    school: Record
    student: Record
    certificate: Record
    # table names of the parts this request created, in creation order
    created: tuple = ()


def create_bundle(
    db: Session,
    recorder: AuditRecorder,
    actor: Actor,
    certificate: dict,
    school: Optional[dict] = None,
    student: Optional[dict] = None,
    school_record_id: Optional[str] = None,
    student_record_id: Optional[str] = None,
    origin: OriginInfo = UNKNOWN_ORIGIN,
    dispatch=None,
) -> Result[CertificateBundle]:
    dispatch = dispatch or run_now
    allowed = authorize(actor.role, Action.CREATE, Status.DRAFT.value)
    if not allowed.ok:
        return allowed

    schools = RecordRepository(db, SCHOOLS, autocommit=False)
    students = RecordRepository(db, STUDENTS, autocommit=False)
    certificates = RecordRepository(db, CERTIFICATES, autocommit=False)
    created: list[tuple[str, Record, dict]] = []

    try:
        school_result = _find_or_create(schools, actor, school_record_id, school, created)
        if not school_result.ok:
            return _abandon(db, school_result)
        school_record = school_result.value

        student_payload = dict(student or {})
        if student_payload and not student_payload.get("school_id"):
            student_payload["school_id"] = school_record.id
        student_result = _find_or_create(students, actor, student_record_id, student_payload, created)
        if not student_result.ok:
            return _abandon(db, student_result)
        student_record = student_result.value

        certificate_payload = {
            **(certificate or {}),
            "school_id": school_record.id,
            "student_id": student_record.id,
        }
        certificate_result = _create(certificates, actor, certificate_payload, created)
        if not certificate_result.ok:
            return _abandon(db, certificate_result)

        db.commit()
        bundle = CertificateBundle(
            school=schools.find_by_id(school_record.id),
            student=students.find_by_id(student_record.id),
            certificate=certificate_result.value,
            created=tuple(t for t, _, _ in created),
        )
    except StorageUnavailable as exc:
        db.rollback()
        return Result.failure(exc.error)

    for table_name, record, payload in created:
        dispatch(recorder.record_add, actor, table_name, record.id, origin, payload)

    logger.info(
        "Certificate bundle %s by %s (created: %s)",
        bundle.certificate.id, actor.id, ", ".join(bundle.created) or "certificate only",
    )
    return Result.success(bundle)


def _find_or_create(repository: RecordRepository, actor: Actor, record_id: Optional[str],
                    payload: Optional[dict], created: list) -> Result[Record]:
    label = repository.kind.label
    if record_id:
        record = repository.find_by_id(record_id)
        if record is None:
            return Result.failure(not_found(label, record_id))
        return Result.success(record)

    if not payload:
        return Result.failure(validation_error([{
            "field": repository.kind.name,
            "message": f"Either {repository.kind.name}_record_id or {label.lower()} details are required",
        }]))

    existing = repository.find_by_identifiers(payload)
    if existing is not None:
        return Result.success(existing)
    return _create(repository, actor, payload, created)


def _create(repository: RecordRepository, actor: Actor, payload: dict, created: list) -> Result[Record]:
    data = {**payload, "status": Status.DRAFT.value, "created_by": actor.id, "updated_by": actor.id}
    result = repository.create(data)
    if result.ok:
        created.append((repository.kind.table_name, result.value, payload))
    return result


def _abandon(db: Session, failed: Result) -> Result:
    db.rollback()
    return failed
