"""Racing homeowner decisions across independent sessions.

The sequential tests load the submission into one session, let another session
decide and commit, then act on the now-stale copy. The gathered tests put both
decisions in flight at once. Either way the guarded UPDATE must refuse the
late decision instead of overwriting the first one.
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from homepro.domain.enums import LifecycleActor, ServiceRecordStatus, UserRole
from homepro.domain.exceptions import PreconditionFailedError, SubmissionAlreadyResolvedError
from homepro.domain.models import Connection, Record, ServiceRecord
from homepro.services.notification_service import LifecycleNotifier
from homepro.services.service_lifecycle import ActorContext, ServiceLifecycleService

from factories import create_connection, create_home, create_submission, create_user


@pytest.fixture
async def seeded(session_factory_on_disk):
    async with session_factory_on_disk() as session:
        owner = await create_user(session, UserRole.HOMEOWNER)
        contractor = await create_user(session, UserRole.CONTRACTOR)
        home = await create_home(session, owner)
        connection = await create_connection(session, home, contractor)
        submission = await create_submission(
            session, home, contractor,
            status=ServiceRecordStatus.PENDING_REVIEW, cost=Decimal("150.00"),
        )
        await session.commit()
        return {
            "owner_ctx": ActorContext(owner.id, LifecycleActor.HOMEOWNER, home.id),
            "connection_id": connection.id,
            "submission_id": submission.id,
        }


def _service(session):
    return ServiceLifecycleService(session, notifier=AsyncMock(spec=LifecycleNotifier))


async def _final_state(factory, seeded):
    async with factory() as session:
        record = await session.get(ServiceRecord, seeded["submission_id"])
        connection = await session.get(Connection, seeded["connection_id"])
        records = (await session.execute(select(Record))).scalars().all()
        return record, connection, records


class TestRacingDecisions:
    async def test_approve_wins_reject_fails(self, session_factory_on_disk, seeded):
        factory = session_factory_on_disk
        async with factory() as session_a, factory() as session_b:
            stale = await session_b.get(ServiceRecord, seeded["submission_id"])
            assert stale.status == ServiceRecordStatus.PENDING_REVIEW.value

            await _service(session_a).approve_submission(seeded["owner_ctx"], seeded["submission_id"])

            with pytest.raises(PreconditionFailedError):
                await _service(session_b).reject_submission(
                    seeded["owner_ctx"], seeded["submission_id"], "too late"
                )

        record, connection, records = await _final_state(factory, seeded)
        assert record.status == ServiceRecordStatus.APPROVED.value
        assert record.rejection_reason is None
        assert connection.verified_work_count == 1
        assert connection.total_spent == Decimal("150.00")
        assert len(records) == 1

    async def test_reject_wins_approve_fails(self, session_factory_on_disk, seeded):
        factory = session_factory_on_disk
        async with factory() as session_a, factory() as session_b:
            await session_b.get(ServiceRecord, seeded["submission_id"])

            await _service(session_a).reject_submission(seeded["owner_ctx"], seeded["submission_id"])

            with pytest.raises(PreconditionFailedError):
                await _service(session_b).approve_submission(
                    seeded["owner_ctx"], seeded["submission_id"]
                )

        record, connection, records = await _final_state(factory, seeded)
        assert record.status == ServiceRecordStatus.REJECTED.value
        assert record.is_verified is False
        assert connection.verified_work_count == 0
        assert records == []

    async def test_double_approve_counts_once(self, session_factory_on_disk, seeded):
        factory = session_factory_on_disk
        async with factory() as session_a, factory() as session_b:
            await session_b.get(ServiceRecord, seeded["submission_id"])

            await _service(session_a).approve_submission(seeded["owner_ctx"], seeded["submission_id"])

            with pytest.raises(PreconditionFailedError):
                await _service(session_b).approve_submission(
                    seeded["owner_ctx"], seeded["submission_id"]
                )

        _, connection, records = await _final_state(factory, seeded)
        assert connection.verified_work_count == 1
        assert connection.total_spent == Decimal("150.00")
        assert len(records) == 1


class TestConcurrentDecisions:
    """Both decisions in flight at once, each on its own session."""

    async def test_gathered_approve_and_reject(self, session_factory_on_disk, seeded):
        factory = session_factory_on_disk
        async with factory() as session_a, factory() as session_b:
            outcomes = await asyncio.gather(
                _service(session_a).approve_submission(seeded["owner_ctx"], seeded["submission_id"]),
                _service(session_b).reject_submission(
                    seeded["owner_ctx"], seeded["submission_id"], "changed my mind"
                ),
                return_exceptions=True,
            )

        winners = [o for o in outcomes if isinstance(o, ServiceRecord)]
        losers = [o for o in outcomes if isinstance(o, Exception)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], SubmissionAlreadyResolvedError)

        record, connection, records = await _final_state(factory, seeded)
        if record.status == ServiceRecordStatus.APPROVED.value:
            assert record.is_verified is True
            assert connection.verified_work_count == 1
            assert connection.total_spent == Decimal("150.00")
            assert len(records) == 1
        else:
            assert record.status == ServiceRecordStatus.REJECTED.value
            assert record.is_verified is False
            assert connection.verified_work_count == 0
            assert records == []

    async def test_gathered_double_approve_counts_once(self, session_factory_on_disk, seeded):
        factory = session_factory_on_disk
        async with factory() as session_a, factory() as session_b:
            outcomes = await asyncio.gather(
                _service(session_a).approve_submission(seeded["owner_ctx"], seeded["submission_id"]),
                _service(session_b).approve_submission(seeded["owner_ctx"], seeded["submission_id"]),
                return_exceptions=True,
            )

        assert sum(isinstance(o, ServiceRecord) for o in outcomes) == 1
        assert sum(isinstance(o, SubmissionAlreadyResolvedError) for o in outcomes) == 1

        _, connection, records = await _final_state(factory, seeded)
        assert connection.verified_work_count == 1
        assert connection.total_spent == Decimal("150.00")
        assert len(records) == 1
