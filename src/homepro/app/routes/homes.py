"""Homeowner homes and contractor connections."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from homepro.domain.enums import UserRole
from homepro.domain.models import User
from homepro.domain.schemas import (
    ConnectionCreate,
    ConnectionResponse,
    HomeCreate,
    HomeResponse,
)
from homepro.infra.database import get_db
from homepro.app.routes.auth import get_current_user_dep, require_role
from homepro.services.home_service import HomeService
from homepro.services.service_lifecycle import actor_for

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/homes", tags=["homes"])
connections_router = APIRouter(prefix="/api/connections", tags=["connections"])


@router.post("", response_model=HomeResponse, status_code=201)
async def create_home(
    body: HomeCreate,
    user: User = Depends(require_role(UserRole.HOMEOWNER.value)),
    db: AsyncSession = Depends(get_db),
):
    home = await HomeService(db).create_home(actor_for(user), **body.model_dump())
    return HomeResponse.model_validate(home)


@router.get("", response_model=list[HomeResponse])
async def list_homes(
    user: User = Depends(require_role(UserRole.HOMEOWNER.value)),
    db: AsyncSession = Depends(get_db),
):
    homes = await HomeService(db).list_homes(actor_for(user))
    return [HomeResponse.model_validate(h) for h in homes]


@router.post("/{home_id}/connections", response_model=ConnectionResponse, status_code=201)
async def connect_contractor(
    home_id: str,
    body: ConnectionCreate,
    user: User = Depends(require_role(UserRole.HOMEOWNER.value)),
    db: AsyncSession = Depends(get_db),
):
    connection = await HomeService(db).connect_contractor(
        actor_for(user, home_id),
        home_id,
        contractor_id=body.contractor_id,
        contractor_email=body.contractor_email,
    )
    return ConnectionResponse.model_validate(connection)


@router.get("/{home_id}/connections", response_model=list[ConnectionResponse])
async def list_home_connections(
    home_id: str,
    include_archived: bool = False,
    user: User = Depends(require_role(UserRole.HOMEOWNER.value)),
    db: AsyncSession = Depends(get_db),
):
    connections = await HomeService(db).list_connections(
        actor_for(user, home_id), home_id, include_archived=include_archived
    )
    return [ConnectionResponse.model_validate(c) for c in connections]


@connections_router.get("", response_model=list[ConnectionResponse])
async def list_my_connections(
    home_id: str | None = None,
    include_archived: bool = False,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    """Contractors: all their connections. Homeowners: pass ``home_id``."""
    connections = await HomeService(db).list_connections(
        actor_for(user), home_id, include_archived=include_archived
    )
    return [ConnectionResponse.model_validate(c) for c in connections]


@connections_router.post("/{connection_id}/archive", response_model=ConnectionResponse)
async def archive_connection(
    connection_id: str,
    user: User = Depends(require_role(UserRole.HOMEOWNER.value)),
    db: AsyncSession = Depends(get_db),
):
    connection = await HomeService(db).archive_connection(actor_for(user), connection_id)
    return ConnectionResponse.model_validate(connection)


@connections_router.post("/{connection_id}/restore", response_model=ConnectionResponse)
async def restore_connection(
    connection_id: str,
    user: User = Depends(require_role(UserRole.HOMEOWNER.value)),
    db: AsyncSession = Depends(get_db),
):
    connection = await HomeService(db).restore_connection(actor_for(user), connection_id)
    return ConnectionResponse.model_validate(connection)
