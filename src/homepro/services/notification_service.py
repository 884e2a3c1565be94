"""Lifecycle notifications: best-effort messages after a transition commits.

Each notification is persisted as a Notification row and then emailed. Nothing
here may undo a state change: every failure is logged and swallowed.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from homepro.domain.enums import NotificationChannel, NotificationType
from homepro.domain.models import Notification, Quote, ServiceRecord, ServiceRequest, User
from homepro.services.email_service import (
    build_lifecycle_html,
    format_currency,
    send_lifecycle_email,
)

logger = logging.getLogger(__name__)


class LifecycleNotifier:
    """Sends status-change notifications to homeowners and contractors."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Service request events
    # ------------------------------------------------------------------

    async def notify_quote_received(self, request: ServiceRequest, quote: Quote):
        await self._deliver(
            request.homeowner_id,
            NotificationType.QUOTE_RECEIVED,
            f"New quote for {request.title}",
            {"serviceRequestId": request.id, "quoteId": quote.id,
             "totalAmount": str(quote.total_amount)},
            lines=[
                f"Your contractor quoted {format_currency(quote.total_amount)} for \"{request.title}\".",
                "Review the quote to accept it or cancel the request.",
            ],
            link=f"/home/{request.home_id}/service-requests/{request.id}",
        )

    async def notify_request_accepted(self, request: ServiceRequest):
        await self._deliver(
            request.contractor_id,
            NotificationType.REQUEST_ACCEPTED,
            f"Quote accepted: {request.title}",
            {"serviceRequestId": request.id, "quoteId": request.quote_id},
            lines=[f"The homeowner accepted your quote for \"{request.title}\"."],
            link=f"/pro/service-requests/{request.id}",
        )

    async def notify_request_cancelled(self, request: ServiceRequest):
        await self._deliver(
            request.contractor_id,
            NotificationType.REQUEST_CANCELLED,
            f"Request cancelled: {request.title}",
            {"serviceRequestId": request.id, "reason": request.cancel_reason},
            lines=[f"The homeowner cancelled \"{request.title}\"."],
        )

    async def notify_request_declined(self, request: ServiceRequest):
        await self._deliver(
            request.homeowner_id,
            NotificationType.REQUEST_DECLINED,
            f"Request declined: {request.title}",
            {"serviceRequestId": request.id, "reason": request.decline_reason},
            lines=[f"Your contractor declined \"{request.title}\"."],
            link=f"/home/{request.home_id}/service-requests/{request.id}",
        )

    # ------------------------------------------------------------------
    # Submission events
    # ------------------------------------------------------------------

    async def notify_work_approved(self, record: ServiceRecord):
        await self._deliver(
            record.contractor_id,
            NotificationType.WORK_APPROVED,
            "Your completed work has been approved",
            {"serviceRecordId": record.id, "serviceType": record.service_type},
            lines=[f"The homeowner approved your {record.service_type} work record."],
            link=f"/pro/service-records/{record.id}",
        )

    async def notify_work_rejected(self, record: ServiceRecord):
        await self._deliver(
            record.contractor_id,
            NotificationType.WORK_REJECTED,
            "Work record rejected",
            {"serviceRecordId": record.id, "serviceType": record.service_type,
             "reason": record.rejection_reason},
            lines=[
                f"The homeowner rejected your {record.service_type} work record.",
                f"Reason: {record.rejection_reason or 'not given'}",
            ],
            link=f"/pro/service-records/{record.id}",
        )

    async def notify_work_disputed(self, record: ServiceRecord):
        await self._deliver(
            record.contractor_id,
            NotificationType.WORK_DISPUTED,
            "Work record disputed",
            {"serviceRecordId": record.id, "serviceType": record.service_type,
             "reason": record.dispute_reason},
            lines=[
                f"The homeowner disputed your {record.service_type} work record.",
                f"Reason: {record.dispute_reason or 'not given'}",
            ],
            link=f"/pro/service-records/{record.id}",
        )

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def _deliver(
        self,
        user_id: str,
        notification_type: NotificationType,
        subject: str,
        payload: dict,
        lines: list[str],
        link: str | None = None,
    ) -> bool:
        """Persist and email one notification. Never raises."""
        try:
            notification = Notification(
                user_id=user_id,
                channel=NotificationChannel.EMAIL.value,
                subject=subject,
                payload={"type": notification_type.value, **payload},
            )
            self.db.add(notification)
            await self.db.commit()
        except Exception:
            logger.exception(
                "Failed to persist %s notification for user %s", notification_type.value, user_id
            )
            await self.db.rollback()
            return False

        try:
            result = await self.db.execute(select(User.email).where(User.id == user_id))
            email = result.scalar_one_or_none()
            if not email:
                logger.warning("No email for user %s, %s not sent", user_id, notification_type.value)
                return False

            html_body = build_lifecycle_html(subject, lines, link)
            sent = await send_lifecycle_email(email, subject, html_body)
            if sent:
                notification.sent = True
                notification.sent_at = datetime.now(timezone.utc)
                await self.db.commit()
            return sent
        except Exception:
            logger.exception(
                "Failed to deliver %s notification to user %s", notification_type.value, user_id
            )
            await self.db.rollback()
            return False
