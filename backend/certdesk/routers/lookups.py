"""Lookup and combined-entry routes for students and certificates.

Included ahead of the generic record routers so ``/search/...`` and
``/bulk`` are never read as record ids.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from certdesk.actor import Actor, OriginInfo
from certdesk.database import get_db
from certdesk.middleware.auth import get_actor, get_origin
from certdesk.routers.records import service_for
from certdesk.schemas.certificate import CertificateBundleCreate, CertificateBundleResponse
from certdesk.schemas.record import RecordResponse
from certdesk.services.certificate_bundle import create_bundle
from certdesk.services.record_kinds import CERTIFICATES, STUDENTS
from certdesk.services.workflow_service import WorkflowService

students_lookup_router = APIRouter(prefix="/api/students", tags=["students"])
certificates_lookup_router = APIRouter(prefix="/api/certificates", tags=["certificates"])


@students_lookup_router.get("/search/{identifier}", response_model=RecordResponse)
def search_student(
    identifier: str,
    actor: Actor = Depends(get_actor),
    origin: OriginInfo = Depends(get_origin),
    service: WorkflowService = Depends(service_for(STUDENTS)),
):
    """Find a student by student id, falling back to Aadhaar number."""
    record = service.find_by_identifier(actor, identifier, origin=origin).unwrap()
    return RecordResponse(record=record.to_dict())


@certificates_lookup_router.get("/school/{school_id}/serial/{serial_no:path}", response_model=RecordResponse)
def get_certificate_by_serial(
    school_id: str,
    serial_no: str,
    actor: Actor = Depends(get_actor),
    origin: OriginInfo = Depends(get_origin),
    service: WorkflowService = Depends(service_for(CERTIFICATES)),
):
    """Serial numbers are unique per school, so both are needed."""
    record = service.find_by_identifier(actor, serial_no, scope_value=school_id, origin=origin).unwrap()
    return RecordResponse(record=record.to_dict())


@certificates_lookup_router.post("/bulk", response_model=CertificateBundleResponse, status_code=201)
def create_certificate_bundle(
    req: CertificateBundleCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_actor),
    origin: OriginInfo = Depends(get_origin),
    db: Session = Depends(get_db),
):
    """Create a certificate together with its school and student (admin only)."""
    bundle = create_bundle(
        db,
        request.app.state.recorder,
        actor,
        certificate=req.certificate.model_dump(exclude_none=True),
        school=req.school.model_dump(exclude_none=True) if req.school else None,
        student=req.student.model_dump(exclude_none=True) if req.student else None,
        school_record_id=req.school_record_id,
        student_record_id=req.student_record_id,
        origin=origin,
        dispatch=background_tasks.add_task,
    ).unwrap()
    return CertificateBundleResponse(
        school=bundle.school.to_dict(),
        student=bundle.student.to_dict(),
        certificate=bundle.certificate.to_dict(),
        created=list(bundle.created),
    )
