"""Service request routes.

Homeowners manage requests under ``/api/homes/{home_id}/service-requests``;
contractors see and act on their assigned requests under
``/api/pro/service-requests``. Status changes go through
ServiceLifecycleService, errors are rendered by the app-level handlers.
"""

import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from homepro.app.routes.auth import require_role
from homepro.domain.enums import ServiceRequestStatus, UserRole
from homepro.domain.models import ServiceRequest, User
from homepro.domain.schemas import (
    CountResponse,
    QuoteCreate,
    QuoteResponse,
    ServiceEventResponse,
    ServiceRequestCreate,
    ServiceRequestDetail,
    ServiceRequestResponse,
    ServiceRequestUpdate,
)
from homepro.infra.database import get_db
from homepro.services.service_lifecycle import (
    ActorContext,
    ServiceLifecycleService,
    actor_for,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/homes/{home_id}/service-requests", tags=["service-requests"])
pro_router = APIRouter(prefix="/api/pro/service-requests", tags=["pro"])

homeowner_dep = require_role(UserRole.HOMEOWNER.value)
contractor_dep = require_role(UserRole.CONTRACTOR.value)


async def _detail(svc: ServiceLifecycleService, request: ServiceRequest) -> ServiceRequestDetail:
    detail = ServiceRequestDetail.model_validate(request)
    quote = await svc.get_quote(request.quote_id)
    if quote is not None:
        detail.quote = QuoteResponse.model_validate(quote)
    return detail


async def _apply_patch(
    svc: ServiceLifecycleService,
    ctx: ActorContext,
    request_id: str,
    body: ServiceRequestUpdate,
) -> ServiceRequest:
    """Field edits and the status action commit together or not at all."""
    changes = body.field_changes()
    if not changes and body.action is None:
        return await svc.get_request(ctx, request_id)
    return await svc.update_request(ctx, request_id, changes, body.action, body.reason)


# ---------------------------------------------------------------------------
# Homeowner
# ---------------------------------------------------------------------------


@router.post("", response_model=ServiceRequestResponse, status_code=201)
async def create_service_request(
    home_id: str,
    body: ServiceRequestCreate,
    user: User = Depends(homeowner_dep),
    db: AsyncSession = Depends(get_db),
):
    svc = ServiceLifecycleService(db)
    request = await svc.create_request(actor_for(user, home_id), home_id, **body.model_dump())
    return ServiceRequestResponse.model_validate(request)


@router.get("", response_model=list[ServiceRequestResponse])
async def list_service_requests(
    home_id: str,
    status: ServiceRequestStatus | None = None,
    user: User = Depends(homeowner_dep),
    db: AsyncSession = Depends(get_db),
):
    svc = ServiceLifecycleService(db)
    requests = await svc.list_requests_for_home(actor_for(user, home_id), home_id, status)
    return [ServiceRequestResponse.model_validate(r) for r in requests]


@router.get("/pending-count", response_model=CountResponse)
async def pending_request_count(
    home_id: str,
    user: User = Depends(homeowner_dep),
    db: AsyncSession = Depends(get_db),
):
    svc = ServiceLifecycleService(db)
    count = await svc.count_open_requests(actor_for(user, home_id), home_id)
    return CountResponse(count=count)


@router.get("/{request_id}", response_model=ServiceRequestDetail)
async def get_service_request(
    home_id: str,
    request_id: str,
    user: User = Depends(homeowner_dep),
    db: AsyncSession = Depends(get_db),
):
    svc = ServiceLifecycleService(db)
    request = await svc.get_request(actor_for(user, home_id), request_id)
    return await _detail(svc, request)


@router.patch("/{request_id}", response_model=ServiceRequestDetail)
async def update_service_request(
    home_id: str,
    request_id: str,
    body: ServiceRequestUpdate,
    user: User = Depends(homeowner_dep),
    db: AsyncSession = Depends(get_db),
):
    svc = ServiceLifecycleService(db)
    request = await _apply_patch(svc, actor_for(user, home_id), request_id, body)
    return await _detail(svc, request)


@router.delete("/{request_id}", status_code=204)
async def delete_service_request(
    home_id: str,
    request_id: str,
    user: User = Depends(homeowner_dep),
    db: AsyncSession = Depends(get_db),
):
    svc = ServiceLifecycleService(db)
    await svc.delete_request(actor_for(user, home_id), request_id)
    return Response(status_code=204)


@router.get("/{request_id}/timeline", response_model=list[ServiceEventResponse])
async def service_request_timeline(
    home_id: str,
    request_id: str,
    user: User = Depends(homeowner_dep),
    db: AsyncSession = Depends(get_db),
):
    svc = ServiceLifecycleService(db)
    events = await svc.get_timeline(actor_for(user, home_id), request_id)
    return [ServiceEventResponse.model_validate(e) for e in events]


# ---------------------------------------------------------------------------
# Contractor
# ---------------------------------------------------------------------------


@pro_router.get("", response_model=list[ServiceRequestResponse])
async def list_assigned_requests(
    status: ServiceRequestStatus | None = None,
    user: User = Depends(contractor_dep),
    db: AsyncSession = Depends(get_db),
):
    svc = ServiceLifecycleService(db)
    requests = await svc.list_requests_for_contractor(actor_for(user), status)
    return [ServiceRequestResponse.model_validate(r) for r in requests]


@pro_router.get("/pending-count", response_model=CountResponse)
async def assigned_pending_count(
    user: User = Depends(contractor_dep),
    db: AsyncSession = Depends(get_db),
):
    svc = ServiceLifecycleService(db)
    return CountResponse(count=await svc.count_open_requests(actor_for(user)))


@pro_router.get("/{request_id}", response_model=ServiceRequestDetail)
async def get_assigned_request(
    request_id: str,
    user: User = Depends(contractor_dep),
    db: AsyncSession = Depends(get_db),
):
    svc = ServiceLifecycleService(db)
    request = await svc.get_request(actor_for(user), request_id)
    return await _detail(svc, request)


@pro_router.post("/{request_id}/quote", response_model=ServiceRequestDetail)
async def attach_quote(
    request_id: str,
    body: QuoteCreate,
    user: User = Depends(contractor_dep),
    db: AsyncSession = Depends(get_db),
):
    svc = ServiceLifecycleService(db)
    request, _ = await svc.attach_quote(
        actor_for(user),
        request_id,
        total_amount=body.total_amount,
        items=[item.model_dump() for item in body.items],
        notes=body.notes,
        expires_at=body.expires_at,
    )
    return await _detail(svc, request)


@pro_router.patch("/{request_id}", response_model=ServiceRequestDetail)
async def act_on_assigned_request(
    request_id: str,
    body: ServiceRequestUpdate,
    user: User = Depends(contractor_dep),
    db: AsyncSession = Depends(get_db),
):
    svc = ServiceLifecycleService(db)
    request = await _apply_patch(svc, actor_for(user), request_id, body)
    return await _detail(svc, request)


@pro_router.get("/{request_id}/timeline", response_model=list[ServiceEventResponse])
async def assigned_request_timeline(
    request_id: str,
    user: User = Depends(contractor_dep),
    db: AsyncSession = Depends(get_db),
):
    svc = ServiceLifecycleService(db)
    events = await svc.get_timeline(actor_for(user), request_id)
    return [ServiceEventResponse.model_validate(e) for e in events]
