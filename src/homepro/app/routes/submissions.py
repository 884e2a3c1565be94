"""Contractor work submissions and homeowner review."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from homepro.app.routes.auth import require_role
from homepro.domain.enums import SubmissionAction, UserRole
from homepro.domain.models import ServiceRecord, User
from homepro.domain.schemas import (
    CountResponse,
    ServiceRecordCreate,
    ServiceRecordResponse,
    SubmissionActionRequest,
    SubmissionDecision,
)
from homepro.infra.database import get_db
from homepro.services.service_lifecycle import ServiceLifecycleService, actor_for

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/homes/{home_id}/submissions", tags=["submissions"])
pending_router = APIRouter(prefix="/api/submissions", tags=["submissions"])
pro_router = APIRouter(prefix="/api/pro/service-records", tags=["pro"])

homeowner_dep = require_role(UserRole.HOMEOWNER.value)
contractor_dep = require_role(UserRole.CONTRACTOR.value)


def _record_response(svc: ServiceLifecycleService, record: ServiceRecord) -> ServiceRecordResponse:
    """Serialize with expiry applied to the status."""
    response = ServiceRecordResponse.model_validate(record)
    return response.model_copy(update={"status": svc.effective_status(record)})


# ---------------------------------------------------------------------------
# Contractor
# ---------------------------------------------------------------------------


@pro_router.post("", response_model=ServiceRecordResponse, status_code=201)
async def document_work(
    body: ServiceRecordCreate,
    user: User = Depends(contractor_dep),
    db: AsyncSession = Depends(get_db),
):
    svc = ServiceLifecycleService(db)
    data = body.model_dump(exclude={"attachments"})
    record = await svc.submit_work(
        actor_for(user),
        attachments=[a.model_dump() for a in body.attachments],
        **data,
    )
    return _record_response(svc, record)


@pro_router.get("", response_model=list[ServiceRecordResponse])
async def list_my_records(
    home_id: str | None = None,
    user: User = Depends(contractor_dep),
    db: AsyncSession = Depends(get_db),
):
    svc = ServiceLifecycleService(db)
    records = await svc.list_records_for_contractor(actor_for(user), home_id)
    return [_record_response(svc, r) for r in records]


# ---------------------------------------------------------------------------
# Homeowner
# ---------------------------------------------------------------------------


@pending_router.get("/pending-count", response_model=CountResponse)
async def pending_submission_count(
    user: User = Depends(homeowner_dep),
    db: AsyncSession = Depends(get_db),
):
    svc = ServiceLifecycleService(db)
    return CountResponse(count=await svc.count_pending_submissions(actor_for(user)))


@router.get("", response_model=list[ServiceRecordResponse])
async def list_submissions(
    home_id: str,
    pending_only: bool = True,
    user: User = Depends(homeowner_dep),
    db: AsyncSession = Depends(get_db),
):
    svc = ServiceLifecycleService(db)
    records = await svc.list_submissions_for_home(
        actor_for(user, home_id), home_id, pending_only=pending_only
    )
    return [_record_response(svc, r) for r in records]


@router.patch("/{submission_id}", response_model=ServiceRecordResponse)
async def decide_submission(
    home_id: str,
    submission_id: str,
    body: SubmissionActionRequest,
    user: User = Depends(homeowner_dep),
    db: AsyncSession = Depends(get_db),
):
    svc = ServiceLifecycleService(db)
    record = await svc.apply_submission_action(
        actor_for(user, home_id), submission_id, body.action, body.reason
    )
    return _record_response(svc, record)


@router.post("/{submission_id}/approve", response_model=ServiceRecordResponse)
async def approve_submission(
    home_id: str,
    submission_id: str,
    user: User = Depends(homeowner_dep),
    db: AsyncSession = Depends(get_db),
):
    svc = ServiceLifecycleService(db)
    record = await svc.apply_submission_action(
        actor_for(user, home_id), submission_id, SubmissionAction.APPROVE
    )
    return _record_response(svc, record)


@router.post("/{submission_id}/reject", response_model=ServiceRecordResponse)
async def reject_submission(
    home_id: str,
    submission_id: str,
    body: SubmissionDecision | None = None,
    user: User = Depends(homeowner_dep),
    db: AsyncSession = Depends(get_db),
):
    svc = ServiceLifecycleService(db)
    record = await svc.apply_submission_action(
        actor_for(user, home_id), submission_id, SubmissionAction.REJECT,
        body.reason if body else None,
    )
    return _record_response(svc, record)


@router.post("/{submission_id}/dispute", response_model=ServiceRecordResponse)
async def dispute_submission(
    home_id: str,
    submission_id: str,
    body: SubmissionDecision | None = None,
    user: User = Depends(homeowner_dep),
    db: AsyncSession = Depends(get_db),
):
    svc = ServiceLifecycleService(db)
    record = await svc.apply_submission_action(
        actor_for(user, home_id), submission_id, SubmissionAction.DISPUTE,
        body.reason if body else None,
    )
    return _record_response(svc, record)
