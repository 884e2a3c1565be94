"""Derived Connection aggregates.

Counters on a Connection are never incremented in place. They are recomputed
from the full set of verified service records for that home/contractor pair,
inside the same transaction that verifies a record.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from homepro.domain.models import Connection, ServiceRecord

logger = logging.getLogger(__name__)

_CENTS = Decimal("0.01")


@dataclass(frozen=True)
class ConnectionStats:
    verified_work_count: int
    total_spent: Decimal
    last_service_date: date | None


def compute_connection_stats(records: Iterable) -> ConnectionStats:
    """Compute aggregates from verified records.

    Records that are not verified are ignored, so callers may pass any set.
    A missing cost counts as zero.
    """
    count = 0
    total = Decimal("0")
    last: date | None = None

    for record in records:
        if not getattr(record, "is_verified", False):
            continue
        count += 1
        if record.cost is not None:
            total += Decimal(str(record.cost))
        if record.service_date is not None and (last is None or record.service_date > last):
            last = record.service_date

    return ConnectionStats(
        verified_work_count=count,
        total_spent=total.quantize(_CENTS),
        last_service_date=last,
    )


async def recompute_connection_aggregates(
    db: AsyncSession, connection: Connection
) -> ConnectionStats:
    """Reload verified records for the connection and write the aggregates back.

    Does not commit; the caller owns the transaction.
    """
    result = await db.execute(
        select(ServiceRecord).where(
            ServiceRecord.home_id == connection.home_id,
            ServiceRecord.contractor_id == connection.contractor_id,
            ServiceRecord.is_verified.is_(True),
        )
    )
    stats = compute_connection_stats(result.scalars().all())

    connection.verified_work_count = stats.verified_work_count
    connection.total_spent = stats.total_spent
    connection.last_service_date = stats.last_service_date
    await db.flush()

    logger.info(
        "Connection %s aggregates: count=%d total=%s last=%s",
        connection.id,
        stats.verified_work_count,
        stats.total_spent,
        stats.last_service_date,
    )
    return stats
