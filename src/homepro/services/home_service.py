"""Homes and homeowner-contractor connections."""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from homepro.domain.enums import ConnectionSource, ConnectionStatus, LifecycleActor, UserRole
from homepro.domain.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    PreconditionFailedError,
)
from homepro.domain.models import Connection, Home, User
from homepro.services.connection_aggregates import recompute_connection_aggregates
from homepro.services.service_lifecycle import ActorContext

logger = logging.getLogger(__name__)


class HomeService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_home(
        self, ctx: ActorContext, address: str, city: str, state: str, zip: str
    ) -> Home:
        if ctx.role != LifecycleActor.HOMEOWNER:
            raise PermissionDeniedError("Only homeowners can register a home")
        home = Home(
            id=str(uuid.uuid4()),
            owner_id=ctx.actor_id,
            address=address,
            city=city,
            state=state,
            zip=zip,
        )
        self.db.add(home)
        await self.db.commit()
        logger.info("Home %s registered by %s", home.id, ctx.actor_id)
        return home

    async def list_homes(self, ctx: ActorContext) -> list[Home]:
        result = await self.db.execute(
            select(Home).where(Home.owner_id == ctx.actor_id).order_by(Home.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_owned_home(self, ctx: ActorContext, home_id: str) -> Home:
        home = await self.db.get(Home, home_id)
        if home is None:
            raise NotFoundError("Home", home_id)
        if home.owner_id != ctx.actor_id:
            raise PermissionDeniedError("You do not have access to this home")
        return home

    async def connect_contractor(
        self,
        ctx: ActorContext,
        home_id: str,
        contractor_id: str | None = None,
        contractor_email: str | None = None,
    ) -> Connection:
        """Invite a contractor to a home.

        Returns the existing ACTIVE connection if any. A previously archived
        connection for the pair is restored rather than duplicated.
        """
        home = await self.get_owned_home(ctx, home_id)

        if contractor_id:
            query = select(User).where(User.id == contractor_id)
        else:
            query = select(User).where(User.email == (contractor_email or "").lower())
        result = await self.db.execute(query)
        contractor = result.scalar_one_or_none()
        if contractor is None or contractor.role != UserRole.CONTRACTOR.value:
            raise NotFoundError("Contractor", contractor_id or contractor_email)

        existing = await self._pair_connection(home.id, contractor.id, ConnectionStatus.ACTIVE)
        if existing is not None:
            return existing

        archived = await self._pair_connection(home.id, contractor.id, ConnectionStatus.ARCHIVED)
        if archived is not None:
            return await self._reactivate(archived, ctx)

        connection = Connection(
            id=str(uuid.uuid4()),
            home_id=home.id,
            homeowner_id=ctx.actor_id,
            contractor_id=contractor.id,
            status=ConnectionStatus.ACTIVE.value,
            established_via=ConnectionSource.INVITATION.value,
            invited_by=ctx.actor_id,
        )
        self.db.add(connection)
        await recompute_connection_aggregates(self.db, connection)
        await self.db.commit()
        logger.info(
            "Connection %s: home %s ↔ contractor %s", connection.id, home.id, contractor.id
        )
        return connection

    async def _pair_connection(
        self, home_id: str, contractor_id: str, status: ConnectionStatus
    ) -> Connection | None:
        result = await self.db.execute(
            select(Connection)
            .where(
                Connection.home_id == home_id,
                Connection.contractor_id == contractor_id,
                Connection.status == status.value,
            )
            .order_by(Connection.created_at.desc())
        )
        return result.scalars().first()

    async def _reactivate(self, connection: Connection, ctx: ActorContext) -> Connection:
        """Bring an archived connection back with aggregates rebuilt from verified work."""
        connection.status = ConnectionStatus.ACTIVE.value
        connection.archived_at = None
        await recompute_connection_aggregates(self.db, connection)
        await self.db.commit()
        logger.info("Connection %s restored by %s", connection.id, ctx.actor_id)
        return connection

    async def restore_connection(self, ctx: ActorContext, connection_id: str) -> Connection:
        """Reactivate an archived connection. The pair may only have one ACTIVE row."""
        connection = await self.db.get(Connection, connection_id)
        if connection is None:
            raise NotFoundError("Connection", connection_id)
        if ctx.role != LifecycleActor.HOMEOWNER or connection.homeowner_id != ctx.actor_id:
            raise PermissionDeniedError("Only the homeowner can restore this connection")
        if connection.status == ConnectionStatus.ACTIVE.value:
            return connection

        active = await self._pair_connection(
            connection.home_id, connection.contractor_id, ConnectionStatus.ACTIVE
        )
        if active is not None:
            raise PreconditionFailedError(
                f"Contractor already has an active connection ({active.id}) to this home"
            )
        return await self._reactivate(connection, ctx)

    async def list_connections(
        self, ctx: ActorContext, home_id: str | None = None, include_archived: bool = False
    ) -> list[Connection]:
        """Homeowners see a home's connections; contractors see their own."""
        query = select(Connection)
        if ctx.role == LifecycleActor.CONTRACTOR:
            query = query.where(Connection.contractor_id == ctx.actor_id)
            if home_id is not None:
                query = query.where(Connection.home_id == home_id)
        else:
            if home_id is None:
                raise PreconditionFailedError("home_id is required")
            await self.get_owned_home(ctx, home_id)
            query = query.where(Connection.home_id == home_id)
        if not include_archived:
            query = query.where(Connection.status == ConnectionStatus.ACTIVE.value)
        result = await self.db.execute(query.order_by(Connection.created_at.desc()))
        return list(result.scalars().all())

    async def archive_connection(self, ctx: ActorContext, connection_id: str) -> Connection:
        """End a connection. New requests and submissions need it restored first."""
        connection = await self.db.get(Connection, connection_id)
        if connection is None:
            raise NotFoundError("Connection", connection_id)
        if ctx.role != LifecycleActor.HOMEOWNER or connection.homeowner_id != ctx.actor_id:
            raise PermissionDeniedError("Only the homeowner can archive this connection")
        if connection.status == ConnectionStatus.ARCHIVED.value:
            return connection

        connection.status = ConnectionStatus.ARCHIVED.value
        connection.archived_at = datetime.now(timezone.utc)
        await self.db.commit()
        logger.info("Connection %s archived by %s", connection.id, ctx.actor_id)
        return connection
