"""Shared test infrastructure for the HomePro test suite.

Provides:
- db_session: async SQLite in-memory session with all tables created
- session_factory_on_disk: file-backed SQLite session factory for multi-session tests
- notifier: AsyncMock standing in for LifecycleNotifier
- make_user / make_home / make_connection: account and relationship factories
- make_service_request / make_submission: lifecycle row factories
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Import Base first, then models to register all tables
from homepro.infra.database import Base

import homepro.domain.models  # noqa: F401

from homepro.domain.enums import LifecycleActor, ServiceRequestStatus, UserRole
from homepro.domain.models import Connection, Home, Quote, ServiceRecord, ServiceRequest, User
from homepro.services.notification_service import LifecycleNotifier
from homepro.services.service_lifecycle import ActorContext, ServiceLifecycleService

from factories import create_connection, create_home, create_submission, create_user


# ---------------------------------------------------------------------------
# Database session fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
async def db_session():
    """Async SQLite in-memory session with all tables created.

    Creates a fresh engine + tables for each test, yields a session,
    then rolls back and tears down.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def session_factory_on_disk(tmp_path):
    """Session factory over a file-backed SQLite database.

    In-memory SQLite shares a single connection, so tests that need two
    independent sessions (one stale, one fresh) use this instead.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'lifecycle.db'}",
        connect_args={"check_same_thread": False, "timeout": 5},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


# ---------------------------------------------------------------------------
# Notifier mock
# ---------------------------------------------------------------------------

@pytest.fixture
def notifier():
    """AsyncMock with the LifecycleNotifier interface; records every call."""
    return AsyncMock(spec=LifecycleNotifier)


@pytest.fixture
def lifecycle(db_session, notifier):
    return ServiceLifecycleService(db_session, notifier=notifier)


# ---------------------------------------------------------------------------
# Account & relationship factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_user(db_session):
    """Factory for User rows.

    Usage:
        contractor = await make_user(UserRole.CONTRACTOR, business_name="Cool Air")
    """
    async def _factory(role: UserRole = UserRole.HOMEOWNER, **kwargs) -> User:
        return await create_user(db_session, role, **kwargs)

    return _factory


@pytest.fixture
def make_home(db_session):
    async def _factory(owner: User, **kwargs) -> Home:
        return await create_home(db_session, owner, **kwargs)

    return _factory


@pytest.fixture
def make_connection(db_session):
    async def _factory(home: Home, contractor: User, **kwargs) -> Connection:
        return await create_connection(db_session, home, contractor, **kwargs)

    return _factory


@pytest.fixture
def make_submission(db_session):
    """Factory for contractor-submitted ServiceRecord rows awaiting review."""
    async def _factory(home: Home, contractor: User, **kwargs) -> ServiceRecord:
        return await create_submission(db_session, home, contractor, **kwargs)

    return _factory


@pytest.fixture
def make_service_request(db_session):
    """Factory for ServiceRequest rows in any status.

    A QUOTED or later request gets a quote attached unless ``with_quote=False``.
    """
    async def _factory(
        connection: Connection,
        status: ServiceRequestStatus = ServiceRequestStatus.PENDING,
        with_quote: bool | None = None,
        quote_total=Decimal("500.00"),
        **kwargs,
    ) -> ServiceRequest:
        request = ServiceRequest(
            id=str(uuid.uuid4()),
            home_id=connection.home_id,
            connection_id=connection.id,
            homeowner_id=connection.homeowner_id,
            contractor_id=connection.contractor_id,
            title=kwargs.pop("title", "Fix leaking faucet"),
            description=kwargs.pop("description", "Kitchen faucet drips constantly"),
            status=status.value,
            **kwargs,
        )
        db_session.add(request)
        await db_session.flush()

        if with_quote is None:
            with_quote = status not in (ServiceRequestStatus.PENDING,)
        if with_quote:
            quote = Quote(
                id=str(uuid.uuid4()),
                service_request_id=request.id,
                contractor_id=connection.contractor_id,
                total_amount=quote_total,
                status="PENDING",
                expires_at=datetime(2030, 1, 1, tzinfo=timezone.utc),
            )
            db_session.add(quote)
            await db_session.flush()
            request.quote_id = quote.id
            await db_session.flush()
        return request

    return _factory


# ---------------------------------------------------------------------------
# A connected homeowner / contractor pair
# ---------------------------------------------------------------------------

@pytest.fixture
async def household(make_user, make_home, make_connection):
    """Homeowner with one home, connected to one contractor.

    Returns a namespace-like dict with actor contexts ready to pass to the service.
    """
    owner = await make_user(UserRole.HOMEOWNER)
    contractor = await make_user(UserRole.CONTRACTOR, business_name="Drip Fixers LLC")
    home = await make_home(owner)
    connection = await make_connection(home, contractor)
    return {
        "owner": owner,
        "contractor": contractor,
        "home": home,
        "connection": connection,
        "owner_ctx": ActorContext(owner.id, LifecycleActor.HOMEOWNER, home.id),
        "contractor_ctx": ActorContext(contractor.id, LifecycleActor.CONTRACTOR),
    }
