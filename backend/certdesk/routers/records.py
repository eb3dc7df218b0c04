"""Record routers — list, CRUD and status workflow for each record kind.

Schools, students and certificates share the same endpoints; only the
record kind and the request schemas differ, so the router is built by
``build_record_router``.
"""

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from certdesk.actor import Actor, OriginInfo
from certdesk.config import Settings
from certdesk.database import get_db
from certdesk.middleware.auth import get_actor, get_origin, get_settings
from certdesk.pagination import PageRequest
from certdesk.schemas.certificate import CertificateCreate, CertificateUpdate
from certdesk.schemas.record import (
    RecordListResponse,
    RecordResponse,
    StatusChangeRequest,
    StatusHistoryItem,
    TransitionsResponse,
)
from certdesk.schemas.school import SchoolCreate, SchoolUpdate
from certdesk.schemas.student import StudentCreate, StudentUpdate
from certdesk.services.record_kinds import CERTIFICATES, SCHOOLS, STUDENTS, RecordKind
from certdesk.services.record_repository import RecordRepository
from certdesk.services.workflow_service import WorkflowService

# Query parameters that are not record filters
LISTING_PARAMS = frozenset({"page", "limit", "sort_by", "sort_order"})


def service_for(kind: RecordKind):
    """FastAPI dependency building a workflow service for ``kind``."""

    def get_service(
        request: Request,
        background_tasks: BackgroundTasks,
        db: Session = Depends(get_db),
    ) -> WorkflowService:
        # History and audit rows are written after the response is sent.
        return WorkflowService(
            RecordRepository(db, kind),
            request.app.state.recorder,
            dispatch=background_tasks.add_task,
        )

    return get_service


def build_record_router(
    prefix: str,
    kind: RecordKind,
    create_schema: type[BaseModel],
    update_schema: type[BaseModel],
) -> APIRouter:
    router = APIRouter(prefix=prefix, tags=[prefix.rsplit("/", 1)[-1]])
    get_service = service_for(kind)

    @router.get("", response_model=RecordListResponse)
    def list_records(
        request: Request,
        page: Optional[int] = Query(None),
        limit: Optional[int] = Query(None),
        sort_by: Optional[str] = Query(None),
        sort_order: Optional[str] = Query(None),
        actor: Actor = Depends(get_actor),
        service: WorkflowService = Depends(get_service),
        settings: Settings = Depends(get_settings),
    ):
        """List records; any other query parameter is treated as a filter."""
        filters = {k: v for k, v in request.query_params.items() if k not in LISTING_PARAMS}
        page_request = PageRequest.parse(page, limit, settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
        listed = service.list_records(actor, filters, page_request, sort_by, sort_order).unwrap()
        return RecordListResponse(
            records=[r.to_dict() for r in listed.items],
            pagination=listed.meta(),
        )

    @router.get("/{record_id}", response_model=RecordResponse)
    def get_record(
        record_id: str,
        actor: Actor = Depends(get_actor),
        origin: OriginInfo = Depends(get_origin),
        service: WorkflowService = Depends(get_service),
    ):
        record = service.get(actor, record_id, origin).unwrap()
        return RecordResponse(record=record.to_dict())

    @router.post("", response_model=RecordResponse, status_code=201)
    def create_record(
        req: create_schema,
        actor: Actor = Depends(get_actor),
        origin: OriginInfo = Depends(get_origin),
        service: WorkflowService = Depends(get_service),
    ):
        """Create a record in draft (admin only)."""
        record = service.create(actor, req.model_dump(exclude_none=True), origin).unwrap()
        return RecordResponse(record=record.to_dict())

    @router.put("/{record_id}", response_model=RecordResponse)
    def update_record(
        record_id: str,
        req: update_schema,
        actor: Actor = Depends(get_actor),
        origin: OriginInfo = Depends(get_origin),
        service: WorkflowService = Depends(get_service),
    ):
        """Update the fields that were sent; omitted fields are left alone."""
        record = service.update(actor, record_id, req.model_dump(exclude_unset=True), origin).unwrap()
        return RecordResponse(record=record.to_dict())

    @router.delete("/{record_id}")
    def delete_record(
        record_id: str,
        actor: Actor = Depends(get_actor),
        origin: OriginInfo = Depends(get_origin),
        service: WorkflowService = Depends(get_service),
    ):
        service.delete(actor, record_id, origin).unwrap()
        return {}

    @router.patch("/{record_id}/status", response_model=RecordResponse)
    def change_status(
        record_id: str,
        req: StatusChangeRequest,
        actor: Actor = Depends(get_actor),
        origin: OriginInfo = Depends(get_origin),
        service: WorkflowService = Depends(get_service),
    ):
        record = service.transition(
            actor, record_id, req.status, reason=req.reason, comment=req.comment, origin=origin,
        ).unwrap()
        return RecordResponse(record=record.to_dict())

    @router.get("/{record_id}/status/transitions", response_model=TransitionsResponse)
    def get_transitions(
        record_id: str,
        actor: Actor = Depends(get_actor),
        service: WorkflowService = Depends(get_service),
    ):
        return service.transitions(actor, record_id).unwrap()

    @router.get("/{record_id}/status-history", response_model=list[StatusHistoryItem])
    def get_status_history(
        record_id: str,
        actor: Actor = Depends(get_actor),
        service: WorkflowService = Depends(get_service),
    ):
        entries = service.status_history(actor, record_id).unwrap()
        return [asdict(e) for e in entries]

    return router


schools_router = build_record_router("/api/schools", SCHOOLS, SchoolCreate, SchoolUpdate)
students_router = build_record_router("/api/students", STUDENTS, StudentCreate, StudentUpdate)
certificates_router = build_record_router("/api/certificates", CERTIFICATES, CertificateCreate, CertificateUpdate)
