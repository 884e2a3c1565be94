"""Service lifecycle tracker.

Drives service requests through PENDING -> QUOTED -> ACCEPTED -> IN_PROGRESS
-> COMPLETED and contractor-submitted work through homeowner review.

Every status write is a conditional UPDATE keyed on the status the caller
read (``WHERE id = :id AND status = :expected``). If another transaction got
there first the update touches zero rows and the operation fails with
PreconditionFailedError instead of silently overwriting. Serialization is left
to the database; there are no application-level locks.

Notifications go out only after commit and can never undo a transition.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import func as sa_func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from homepro.app.config import get_settings
from homepro.domain.enums import (
    ConnectionSource,
    ConnectionStatus,
    EventEntity,
    LifecycleActor,
    QuoteStatus,
    ServiceEventType,
    ServiceRecordStatus,
    ServiceRequestAction,
    ServiceRequestStatus,
    SubmissionAction,
    Urgency,
    UserRole,
)
from homepro.domain.exceptions import (
    LifecycleError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionFailedError,
    SubmissionAlreadyResolvedError,
)
from homepro.domain.models import (
    Attachment,
    Connection,
    Home,
    Quote,
    QuoteItem,
    Record,
    ServiceEvent,
    ServiceRecord,
    ServiceRequest,
    User,
)
from homepro.services.connection_aggregates import recompute_connection_aggregates
from homepro.services.notification_service import LifecycleNotifier
from homepro.services.service_request_state_machine import (
    DELETABLE_STATES,
    OPEN_STATES,
    ServiceRequestStateMachine,
    as_request_status,
)
from homepro.services.submission_state_machine import (
    AWAITING_DECISION_STATES,
    DECIDABLE_STATES,
    SubmissionStateMachine,
    as_record_status,
)

logger = logging.getLogger(__name__)

RS = ServiceRequestStatus
RA = ServiceRequestAction

# Fields a homeowner may edit while the request is still open
EDITABLE_REQUEST_FIELDS = (
    "title",
    "description",
    "category",
    "urgency",
    "budget_min",
    "budget_max",
    "desired_date",
    "photos",
)


@dataclass(frozen=True)
class ActorContext:
    """Who is acting, passed explicitly into every operation."""

    actor_id: str
    role: LifecycleActor
    home_id: str | None = None


SYSTEM_CONTEXT = ActorContext(actor_id="system", role=LifecycleActor.SYSTEM)


def actor_for(user: User, home_id: str | None = None) -> ActorContext:
    """Build the acting context for an authenticated user."""
    if user.role == UserRole.CONTRACTOR.value:
        return ActorContext(actor_id=user.id, role=LifecycleActor.CONTRACTOR, home_id=home_id)
    return ActorContext(actor_id=user.id, role=LifecycleActor.HOMEOWNER, home_id=home_id)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_decimal(value) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))


class ServiceLifecycleService:
    """Service request and submission lifecycle operations over one DB session."""

    def __init__(self, db: AsyncSession, notifier: LifecycleNotifier | None = None):
        settings = get_settings()
        self.db = db
        self.notifier = notifier or LifecycleNotifier(db)
        self.request_machine = ServiceRequestStateMachine()
        self.submission_machine = SubmissionStateMachine(settings.submission_review_window_days)
        self.quote_validity = timedelta(days=settings.quote_validity_days)

    # ------------------------------------------------------------------
    # Loaders & access checks
    # ------------------------------------------------------------------

    async def _get_home(self, home_id: str) -> Home:
        home = await self.db.get(Home, home_id)
        if home is None:
            raise NotFoundError("Home", home_id)
        return home

    async def _get_owned_home(self, ctx: ActorContext, home_id: str) -> Home:
        home = await self._get_home(home_id)
        if ctx.role != LifecycleActor.HOMEOWNER or home.owner_id != ctx.actor_id:
            raise PermissionDeniedError("You do not have access to this home")
        return home

    async def _get_request(self, request_id: str) -> ServiceRequest:
        result = await self.db.execute(
            select(ServiceRequest).where(ServiceRequest.id == request_id)
        )
        request = result.scalar_one_or_none()
        if request is None:
            raise NotFoundError("Service request", request_id)
        return request

    async def _get_record(self, record_id: str) -> ServiceRecord:
        result = await self.db.execute(
            select(ServiceRecord).where(ServiceRecord.id == record_id)
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise NotFoundError("Service record", record_id)
        return record

    def _check_request_access(self, request: ServiceRequest, ctx: ActorContext) -> None:
        """Raise PermissionDeniedError if the actor has no rights over this request."""
        if ctx.role == LifecycleActor.SYSTEM:
            return
        if ctx.role == LifecycleActor.HOMEOWNER and request.homeowner_id == ctx.actor_id:
            if ctx.home_id is None or ctx.home_id == request.home_id:
                return
        if ctx.role == LifecycleActor.CONTRACTOR and request.contractor_id == ctx.actor_id:
            return
        raise PermissionDeniedError("You do not have access to this service request")

    async def _check_record_owner(self, record: ServiceRecord, ctx: ActorContext) -> Home:
        """Only the owner of the record's home may decide on it."""
        if ctx.home_id is not None and ctx.home_id != record.home_id:
            raise PermissionDeniedError("Service record does not belong to this home")
        return await self._get_owned_home(ctx, record.home_id)

    async def get_quote(self, quote_id: str | None) -> Quote | None:
        if quote_id is None:
            return None
        result = await self.db.execute(select(Quote).where(Quote.id == quote_id))
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Audit trail
    # ------------------------------------------------------------------

    def _record_event(
        self,
        entity: EventEntity,
        entity_id: str,
        event_type: ServiceEventType,
        ctx: ActorContext,
        from_status: str | None,
        to_status: str | None,
        data: dict | None = None,
    ) -> ServiceEvent:
        event = ServiceEvent(
            id=str(uuid.uuid4()),
            entity_type=entity.value,
            entity_id=entity_id,
            event_type=event_type.value,
            actor=ctx.role.value,
            actor_id=ctx.actor_id,
            from_status=from_status,
            to_status=to_status,
            data=data,
        )
        self.db.add(event)
        return event

    async def get_timeline(self, ctx: ActorContext, request_id: str) -> list[ServiceEvent]:
        """Audit events for a request and for any work record linked to it."""
        request = await self._get_request(request_id)
        self._check_request_access(request, ctx)

        entity_ids = [request.id]
        result = await self.db.execute(
            select(ServiceRecord.id).where(ServiceRecord.service_request_id == request.id)
        )
        entity_ids.extend(result.scalars().all())

        result = await self.db.execute(
            select(ServiceEvent)
            .where(ServiceEvent.entity_id.in_(entity_ids))
            .order_by(ServiceEvent.created_at.asc())
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Request transitions
    # ------------------------------------------------------------------

    async def _transition_request(
        self,
        request: ServiceRequest,
        action: ServiceRequestAction,
        ctx: ActorContext,
        event_type: ServiceEventType,
        values: dict | None = None,
        quote: Quote | None = None,
        service_record: ServiceRecord | None = None,
        new_rows: tuple = (),
        extra_data: dict | None = None,
    ) -> ServiceRequest:
        """Validate and execute one request transition, creating an audit event.

        Does not commit; the caller owns the transaction.
        """
        current = as_request_status(request.status)
        target = self.request_machine.validate_transition(
            current, action, ctx.role,
            request=request, quote=quote, service_record=service_record,
        )

        for row in new_rows:
            self.db.add(row)
        if new_rows:
            await self.db.flush()

        now = _now()
        result = await self.db.execute(
            update(ServiceRequest)
            .where(
                ServiceRequest.id == request.id,
                ServiceRequest.status == current.value,
            )
            .values(status=target.value, updated_at=now, **(values or {}))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise PreconditionFailedError(
                f"Service request {request.id} is no longer {current.value}"
            )
        await self.db.refresh(request)

        self._record_event(
            EventEntity.SERVICE_REQUEST,
            request.id,
            event_type,
            ctx,
            current.value,
            target.value,
            extra_data,
        )
        await self.db.flush()

        logger.info(
            "Service request %s: %s → %s (actor=%s, user=%s)",
            request.id,
            current.value,
            target.value,
            ctx.role.value,
            ctx.actor_id,
        )
        return request

    async def _commit_or_rollback(self):
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    async def create_request(
        self,
        ctx: ActorContext,
        home_id: str,
        connection_id: str,
        contractor_id: str,
        title: str,
        description: str,
        category: str | None = None,
        urgency: Urgency = Urgency.NORMAL,
        budget_min=None,
        budget_max=None,
        desired_date: date | None = None,
        photos: list[str] | None = None,
    ) -> ServiceRequest:
        """Homeowner opens a service request against an ACTIVE connection."""
        if ctx.role != LifecycleActor.HOMEOWNER:
            raise PermissionDeniedError("Contractors cannot create service requests")
        await self._get_owned_home(ctx, home_id)

        result = await self.db.execute(
            select(Connection).where(
                Connection.id == connection_id,
                Connection.home_id == home_id,
                Connection.contractor_id == contractor_id,
                Connection.homeowner_id == ctx.actor_id,
                Connection.status == ConnectionStatus.ACTIVE.value,
            )
        )
        if result.scalar_one_or_none() is None:
            raise NotFoundError("Active connection", connection_id)

        request = ServiceRequest(
            id=str(uuid.uuid4()),
            home_id=home_id,
            connection_id=connection_id,
            homeowner_id=ctx.actor_id,
            contractor_id=contractor_id,
            title=title,
            description=description,
            category=category,
            urgency=Urgency(urgency).value,
            budget_min=_to_decimal(budget_min),
            budget_max=_to_decimal(budget_max),
            desired_date=desired_date,
            photos=photos or [],
            status=RS.PENDING.value,
        )
        self.db.add(request)
        self._record_event(
            EventEntity.SERVICE_REQUEST,
            request.id,
            ServiceEventType.REQUEST_CREATED,
            ctx,
            None,
            RS.PENDING.value,
        )
        await self._commit_or_rollback()
        logger.info("Service request %s created for home %s by %s", request.id, home_id, ctx.actor_id)
        return request

    async def attach_quote(
        self,
        ctx: ActorContext,
        request_id: str,
        total_amount=None,
        items: list[dict] | None = None,
        notes: str | None = None,
        expires_at: datetime | None = None,
    ) -> tuple[ServiceRequest, Quote]:
        """Contractor prices a PENDING request; the request moves to QUOTED.

        When line items are given the quote total is their sum and any
        ``total_amount`` passed alongside is ignored.
        """
        request = await self._get_request(request_id)
        self._check_request_access(request, ctx)

        quote = Quote(
            id=str(uuid.uuid4()),
            service_request_id=request.id,
            contractor_id=ctx.actor_id,
            status=QuoteStatus.PENDING.value,
            notes=notes,
            expires_at=expires_at or (_now() + self.quote_validity),
        )
        if items:
            total = Decimal("0")
            for item in items:
                qty = _to_decimal(item.get("qty", 1))
                unit_price = _to_decimal(item["unit_price"])
                line_total = qty * unit_price
                total += line_total
                quote.items.append(
                    QuoteItem(
                        description=item["description"],
                        qty=qty,
                        unit_price=unit_price,
                        total=line_total,
                    )
                )
            quote.total_amount = total
        else:
            quote.total_amount = _to_decimal(total_amount)

        try:
            await self._transition_request(
                request, RA.ATTACH_QUOTE, ctx,
                ServiceEventType.QUOTE_ATTACHED,
                values={"quote_id": quote.id},
                quote=quote,
                new_rows=(quote,),
                extra_data={"quote_id": quote.id, "total_amount": str(quote.total_amount)},
            )
            await self.db.commit()
        except LifecycleError:
            await self.db.rollback()
            raise

        await self.notifier.notify_quote_received(request, quote)
        return request, quote

    async def accept_request(self, ctx: ActorContext, request_id: str) -> ServiceRequest:
        """Homeowner accepts the attached quote."""
        request = await self._get_request(request_id)
        self._check_request_access(request, ctx)

        try:
            await self._transition_request(
                request, RA.ACCEPT, ctx,
                ServiceEventType.REQUEST_ACCEPTED,
                values={"accepted_at": _now()},
                extra_data={"quote_id": request.quote_id},
            )
            quote = await self.get_quote(request.quote_id)
            quote.status = QuoteStatus.ACCEPTED.value
            await self.db.commit()
        except LifecycleError:
            await self.db.rollback()
            raise

        await self.notifier.notify_request_accepted(request)
        return request

    async def start_request(self, ctx: ActorContext, request_id: str) -> ServiceRequest:
        """Contractor begins work on an accepted request."""
        request = await self._get_request(request_id)
        self._check_request_access(request, ctx)

        try:
            await self._transition_request(
                request, RA.START, ctx,
                ServiceEventType.WORK_STARTED,
                values={"started_at": _now()},
            )
            await self.db.commit()
        except LifecycleError:
            await self.db.rollback()
            raise
        return request

    async def complete_request(self, ctx: ActorContext, request_id: str) -> ServiceRequest:
        """Mark an in-progress request COMPLETED. Needs an approved linked record."""
        request = await self._get_request(request_id)
        self._check_request_access(request, ctx)

        record = None
        if request.service_record_id is not None:
            record = await self.db.get(ServiceRecord, request.service_record_id)

        try:
            await self._transition_request(
                request, RA.COMPLETE, ctx,
                ServiceEventType.REQUEST_COMPLETED,
                values={"completed_at": _now()},
                service_record=record,
            )
            await self.db.commit()
        except LifecycleError:
            await self.db.rollback()
            raise
        return request

    async def cancel_request(
        self, ctx: ActorContext, request_id: str, reason: str | None = None
    ) -> ServiceRequest:
        """Homeowner withdraws a request that is still PENDING or QUOTED."""
        request = await self._get_request(request_id)
        self._check_request_access(request, ctx)

        try:
            await self._transition_request(
                request, RA.CANCEL, ctx,
                ServiceEventType.REQUEST_CANCELLED,
                values={"cancelled_at": _now(), "cancel_reason": reason},
                extra_data={"reason": reason},
            )
            await self._close_open_quote(request, QuoteStatus.DECLINED)
            await self.db.commit()
        except LifecycleError:
            await self.db.rollback()
            raise

        await self.notifier.notify_request_cancelled(request)
        return request

    async def decline_request(
        self, ctx: ActorContext, request_id: str, reason: str | None = None
    ) -> ServiceRequest:
        """Contractor turns down a request that is still PENDING or QUOTED."""
        request = await self._get_request(request_id)
        self._check_request_access(request, ctx)

        try:
            await self._transition_request(
                request, RA.DECLINE, ctx,
                ServiceEventType.REQUEST_DECLINED,
                values={"declined_at": _now(), "decline_reason": reason},
                extra_data={"reason": reason},
            )
            await self._close_open_quote(request, QuoteStatus.DECLINED)
            await self.db.commit()
        except LifecycleError:
            await self.db.rollback()
            raise

        await self.notifier.notify_request_declined(request)
        return request

    async def _close_open_quote(self, request: ServiceRequest, status: QuoteStatus) -> None:
        quote = await self.get_quote(request.quote_id)
        if quote is not None and quote.status == QuoteStatus.PENDING.value:
            quote.status = status.value

    async def apply_request_action(
        self,
        ctx: ActorContext,
        request_id: str,
        action: ServiceRequestAction,
        reason: str | None = None,
    ) -> ServiceRequest:
        """Dispatch a status action coming from the HTTP surface."""
        if action == RA.ACCEPT:
            return await self.accept_request(ctx, request_id)
        if action == RA.START:
            return await self.start_request(ctx, request_id)
        if action == RA.COMPLETE:
            return await self.complete_request(ctx, request_id)
        if action == RA.CANCEL:
            return await self.cancel_request(ctx, request_id, reason)
        if action == RA.DECLINE:
            return await self.decline_request(ctx, request_id, reason)
        # attach_quote carries a payload and has its own endpoint
        raise PreconditionFailedError(f"Action '{action.value}' needs its own endpoint")

    # ------------------------------------------------------------------
    # Request reads & edits
    # ------------------------------------------------------------------

    async def get_request(self, ctx: ActorContext, request_id: str) -> ServiceRequest:
        request = await self._get_request(request_id)
        self._check_request_access(request, ctx)
        return request

    async def list_requests_for_home(
        self, ctx: ActorContext, home_id: str, status: ServiceRequestStatus | None = None
    ) -> list[ServiceRequest]:
        await self._get_owned_home(ctx, home_id)
        query = select(ServiceRequest).where(
            ServiceRequest.home_id == home_id,
            ServiceRequest.homeowner_id == ctx.actor_id,
        )
        if status is not None:
            query = query.where(ServiceRequest.status == status.value)
        query = query.order_by(ServiceRequest.created_at.desc())
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_requests_for_contractor(
        self, ctx: ActorContext, status: ServiceRequestStatus | None = None
    ) -> list[ServiceRequest]:
        if ctx.role != LifecycleActor.CONTRACTOR:
            raise PermissionDeniedError("Only contractors have assigned requests")
        query = select(ServiceRequest).where(ServiceRequest.contractor_id == ctx.actor_id)
        if status is not None:
            query = query.where(ServiceRequest.status == status.value)
        query = query.order_by(ServiceRequest.created_at.desc())
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count_open_requests(self, ctx: ActorContext, home_id: str | None = None) -> int:
        """Requests awaiting a contractor response or a quote decision."""
        query = select(sa_func.count(ServiceRequest.id)).where(
            ServiceRequest.status.in_([s.value for s in OPEN_STATES])
        )
        if ctx.role == LifecycleActor.CONTRACTOR:
            query = query.where(ServiceRequest.contractor_id == ctx.actor_id)
        else:
            if home_id is None:
                raise PreconditionFailedError("home_id is required")
            await self._get_owned_home(ctx, home_id)
            query = query.where(
                ServiceRequest.home_id == home_id,
                ServiceRequest.homeowner_id == ctx.actor_id,
            )
        result = await self.db.execute(query)
        return result.scalar_one()

    async def update_request_details(
        self, ctx: ActorContext, request_id: str, fields: dict
    ) -> ServiceRequest:
        """Homeowner edits an open request. Status is never changed here."""
        request = await self._get_request(request_id)
        self._stage_request_edits(ctx, request, fields)
        await self._commit_or_rollback()
        return request

    async def update_request(
        self,
        ctx: ActorContext,
        request_id: str,
        fields: dict,
        action: ServiceRequestAction | None = None,
        reason: str | None = None,
    ) -> ServiceRequest:
        """Apply field edits and an optional status action as one unit.

        The edits ride in the same transaction as the transition, so a refused
        action leaves the request exactly as it was.
        """
        if action is None:
            return await self.update_request_details(ctx, request_id, fields)
        try:
            if fields:
                request = await self._get_request(request_id)
                self._stage_request_edits(ctx, request, fields)
            return await self.apply_request_action(ctx, request_id, action, reason)
        except LifecycleError:
            await self.db.rollback()
            raise

    def _stage_request_edits(
        self, ctx: ActorContext, request: ServiceRequest, fields: dict
    ) -> None:
        """Check edit rights and set the fields on the request without committing."""
        if ctx.role != LifecycleActor.HOMEOWNER:
            raise PermissionDeniedError("Only the homeowner can edit a service request")
        self._check_request_access(request, ctx)
        if as_request_status(request.status) not in OPEN_STATES:
            raise PreconditionFailedError(
                f"Cannot edit a service request that is {request.status}"
            )

        for name in EDITABLE_REQUEST_FIELDS:
            if name not in fields:
                continue
            value = fields[name]
            if name in ("budget_min", "budget_max"):
                value = _to_decimal(value)
            elif name == "urgency" and value is not None:
                value = Urgency(value).value
            setattr(request, name, value)
        request.updated_at = _now()

    async def delete_request(self, ctx: ActorContext, request_id: str) -> None:
        """Homeowner deletes a request that never got past PENDING or was closed."""
        request = await self._get_request(request_id)
        if ctx.role != LifecycleActor.HOMEOWNER:
            raise PermissionDeniedError("Only the homeowner can delete a service request")
        self._check_request_access(request, ctx)
        if as_request_status(request.status) not in DELETABLE_STATES:
            raise PreconditionFailedError(
                f"Cannot delete a service request that is {request.status}"
            )

        request.quote_id = None
        await self.db.flush()
        result = await self.db.execute(
            select(Quote).where(Quote.service_request_id == request.id)
        )
        for quote in result.scalars().all():
            await self.db.delete(quote)
        await self.db.delete(request)
        await self._commit_or_rollback()
        logger.info("Service request %s deleted by %s", request_id, ctx.actor_id)

    # ------------------------------------------------------------------
    # Work submissions
    # ------------------------------------------------------------------

    async def submit_work(
        self,
        ctx: ActorContext,
        home_id: str,
        service_type: str,
        service_date: date,
        description: str | None = None,
        cost=None,
        warranty_included: bool = False,
        warranty_length: str | None = None,
        warranty_details: str | None = None,
        service_request_id: str | None = None,
        attachments: list[dict] | None = None,
    ) -> ServiceRecord:
        """Contractor documents completed work for a connected home.

        The record starts DOCUMENTED_UNVERIFIED and is invisible to Connection
        aggregates until the homeowner approves it.
        """
        if ctx.role != LifecycleActor.CONTRACTOR:
            raise PermissionDeniedError("Only contractors can document completed work")

        home = await self._get_home(home_id)
        result = await self.db.execute(
            select(Connection).where(
                Connection.contractor_id == ctx.actor_id,
                Connection.home_id == home_id,
                Connection.status == ConnectionStatus.ACTIVE.value,
            )
        )
        if result.scalars().first() is None:
            raise PermissionDeniedError("You don't have access to this property")

        request = None
        if service_request_id is not None:
            request = await self._get_request(service_request_id)
            if request.contractor_id != ctx.actor_id or request.home_id != home_id:
                raise PermissionDeniedError("Service request does not belong to you")
            if as_request_status(request.status) not in (RS.ACCEPTED, RS.IN_PROGRESS):
                raise PreconditionFailedError(
                    f"Cannot document work for a service request that is {request.status}"
                )

        record = ServiceRecord(
            id=str(uuid.uuid4()),
            home_id=home_id,
            contractor_id=ctx.actor_id,
            service_request_id=service_request_id,
            service_type=service_type,
            service_date=service_date,
            description=description,
            cost=_to_decimal(cost),
            warranty_included=warranty_included,
            warranty_length=warranty_length,
            warranty_details=warranty_details,
            status=ServiceRecordStatus.DOCUMENTED_UNVERIFIED.value,
            is_verified=False,
            address_snapshot={
                "address": home.address,
                "city": home.city,
                "state": home.state,
                "zip": home.zip,
            },
        )
        self.db.add(record)
        for item in attachments or []:
            self.db.add(
                Attachment(
                    home_id=home_id,
                    service_record=record,
                    key=item["key"],
                    url=item.get("url"),
                    filename=item.get("filename"),
                    mime_type=item.get("mime_type"),
                    size=item.get("size"),
                    uploaded_by=ctx.actor_id,
                )
            )
        if request is not None:
            request.service_record_id = record.id

        self._record_event(
            EventEntity.SERVICE_RECORD,
            record.id,
            ServiceEventType.WORK_DOCUMENTED,
            ctx,
            None,
            record.status,
            {"service_request_id": service_request_id},
        )
        await self._commit_or_rollback()
        logger.info(
            "Service record %s documented for home %s by contractor %s",
            record.id, home_id, ctx.actor_id,
        )
        return record

    async def _decide(
        self,
        record: ServiceRecord,
        action: SubmissionAction,
        ctx: ActorContext,
        allowed_from: set[ServiceRecordStatus],
        values: dict,
    ) -> str:
        """Run the guarded status update for a homeowner decision.

        Returns the status the record had before the update.
        """
        from_status = record.status
        target = self.submission_machine.validate_decision(record, action)

        result = await self.db.execute(
            update(ServiceRecord)
            .where(
                ServiceRecord.id == record.id,
                ServiceRecord.status.in_([s.value for s in allowed_from]),
                ServiceRecord.is_verified.is_(False),
            )
            .values(status=target.value, updated_at=_now(), **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            await self.db.refresh(record)
            raise SubmissionAlreadyResolvedError(record.id, as_record_status(record.status))

        await self.db.refresh(record)
        logger.info(
            "Service record %s: %s → %s (actor=%s, user=%s)",
            record.id, from_status, target.value, ctx.role.value, ctx.actor_id,
        )
        return from_status

    async def approve_submission(self, ctx: ActorContext, submission_id: str) -> ServiceRecord:
        """Homeowner approves submitted work.

        In one transaction: verify the record, file the permanent Record, move
        attachments onto it, make sure an ACTIVE connection exists, recompute
        the connection aggregates and complete any linked request.
        """
        record = await self._get_record(submission_id)
        await self._check_record_owner(record, ctx)

        now = _now()
        try:
            from_status = await self._decide(
                record, SubmissionAction.APPROVE, ctx, DECIDABLE_STATES,
                {"is_verified": True, "verified_by": ctx.actor_id, "verified_at": now},
            )

            contractor = await self.db.get(User, record.contractor_id)
            final_record = Record(
                id=str(uuid.uuid4()),
                home_id=record.home_id,
                title=record.service_type,
                note=record.description,
                date=record.service_date,
                kind="maintenance",
                vendor=(contractor.business_name or contractor.name or contractor.email)
                if contractor else None,
                cost=record.cost,
                created_by=ctx.actor_id,
                verified_by=ctx.actor_id,
                verified_at=now,
            )
            self.db.add(final_record)
            await self.db.flush()

            result = await self.db.execute(
                select(Attachment).where(
                    Attachment.home_id == record.home_id,
                    Attachment.service_record_id == record.id,
                )
            )
            for attachment in result.scalars().all():
                attachment.record_id = final_record.id
            record.final_record_id = final_record.id

            connection = await self._ensure_connection(record, ctx)
            await recompute_connection_aggregates(self.db, connection)

            self._record_event(
                EventEntity.SERVICE_RECORD,
                record.id,
                ServiceEventType.WORK_APPROVED,
                ctx,
                from_status,
                record.status,
                {"final_record_id": final_record.id, "connection_id": connection.id},
            )

            if record.service_request_id is not None:
                await self._complete_linked_request(record)

            await self.db.commit()
        except LifecycleError:
            await self.db.rollback()
            raise

        await self.notifier.notify_work_approved(record)
        return record

    async def _ensure_connection(self, record: ServiceRecord, ctx: ActorContext) -> Connection:
        result = await self.db.execute(
            select(Connection)
            .where(
                Connection.home_id == record.home_id,
                Connection.contractor_id == record.contractor_id,
                Connection.status == ConnectionStatus.ACTIVE.value,
            )
            .with_for_update()
        )
        connection = result.scalars().first()
        if connection is not None:
            return connection

        connection = Connection(
            id=str(uuid.uuid4()),
            home_id=record.home_id,
            homeowner_id=ctx.actor_id,
            contractor_id=record.contractor_id,
            status=ConnectionStatus.ACTIVE.value,
            established_via=ConnectionSource.VERIFIED_SERVICE.value,
            invited_by=ctx.actor_id,
            source_record_id=record.id,
        )
        self.db.add(connection)
        await self.db.flush()
        logger.info(
            "Connection %s established from verified record %s", connection.id, record.id
        )
        return connection

    async def _complete_linked_request(self, record: ServiceRecord) -> None:
        """Advance the request this record documents to COMPLETED.

        An ACCEPTED request passes through IN_PROGRESS first. A request in any
        other state is left alone; the approval itself still stands.
        """
        request = await self.db.get(ServiceRequest, record.service_request_id)
        if request is None:
            return
        try:
            if as_request_status(request.status) == RS.ACCEPTED:
                await self._transition_request(
                    request, RA.START, SYSTEM_CONTEXT,
                    ServiceEventType.WORK_STARTED,
                    values={"started_at": _now()},
                )
            await self._transition_request(
                request, RA.COMPLETE, SYSTEM_CONTEXT,
                ServiceEventType.REQUEST_COMPLETED,
                values={"completed_at": _now(), "service_record_id": record.id},
                service_record=record,
                extra_data={"service_record_id": record.id},
            )
        except LifecycleError as e:
            logger.warning(
                "Approved record %s but could not complete request %s: %s",
                record.id, request.id, e,
            )

    async def reject_submission(
        self, ctx: ActorContext, submission_id: str, reason: str | None = None
    ) -> ServiceRecord:
        """Homeowner rejects submitted work. Connection aggregates are untouched."""
        record = await self._get_record(submission_id)
        await self._check_record_owner(record, ctx)

        reason = reason or "Rejected by homeowner"
        try:
            from_status = await self._decide(
                record, SubmissionAction.REJECT, ctx, DECIDABLE_STATES,
                {"rejection_reason": reason, "rejected_at": _now()},
            )
            self._record_event(
                EventEntity.SERVICE_RECORD,
                record.id,
                ServiceEventType.WORK_REJECTED,
                ctx,
                from_status,
                record.status,
                {"reason": reason},
            )
            await self.db.commit()
        except LifecycleError:
            await self.db.rollback()
            raise

        await self.notifier.notify_work_rejected(record)
        return record

    async def dispute_submission(
        self, ctx: ActorContext, submission_id: str, reason: str | None = None
    ) -> ServiceRecord:
        """Homeowner contests submitted work instead of rejecting it outright."""
        record = await self._get_record(submission_id)
        await self._check_record_owner(record, ctx)

        try:
            from_status = await self._decide(
                record, SubmissionAction.DISPUTE, ctx, AWAITING_DECISION_STATES,
                {"dispute_reason": reason, "disputed_at": _now()},
            )
            self._record_event(
                EventEntity.SERVICE_RECORD,
                record.id,
                ServiceEventType.WORK_DISPUTED,
                ctx,
                from_status,
                record.status,
                {"reason": reason},
            )
            await self.db.commit()
        except LifecycleError:
            await self.db.rollback()
            raise

        await self.notifier.notify_work_disputed(record)
        return record

    async def apply_submission_action(
        self,
        ctx: ActorContext,
        submission_id: str,
        action: SubmissionAction,
        reason: str | None = None,
    ) -> ServiceRecord:
        if action == SubmissionAction.APPROVE:
            return await self.approve_submission(ctx, submission_id)
        if action == SubmissionAction.REJECT:
            return await self.reject_submission(ctx, submission_id, reason)
        return await self.dispute_submission(ctx, submission_id, reason)

    # ------------------------------------------------------------------
    # Submission reads
    # ------------------------------------------------------------------

    async def list_submissions_for_home(
        self, ctx: ActorContext, home_id: str, pending_only: bool = True
    ) -> list[ServiceRecord]:
        await self._get_owned_home(ctx, home_id)
        query = select(ServiceRecord).where(
            ServiceRecord.home_id == home_id,
            ServiceRecord.archived_at.is_(None),
        )
        if pending_only:
            query = query.where(
                ServiceRecord.is_verified.is_(False),
                ServiceRecord.status.in_([s.value for s in DECIDABLE_STATES]),
            )
        query = query.order_by(ServiceRecord.created_at.desc())
        result = await self.db.execute(query)
        records = list(result.scalars().all())
        if pending_only:
            now = _now()
            records = [r for r in records if self.submission_machine.is_pending(r, now)]
        return records

    async def count_pending_submissions(self, ctx: ActorContext) -> int:
        """Undecided, unexpired submissions across every home the actor owns."""
        if ctx.role != LifecycleActor.HOMEOWNER:
            raise PermissionDeniedError("Only homeowners review submitted work")
        result = await self.db.execute(
            select(ServiceRecord)
            .join(Home, Home.id == ServiceRecord.home_id)
            .where(
                Home.owner_id == ctx.actor_id,
                ServiceRecord.is_verified.is_(False),
                ServiceRecord.status.in_([s.value for s in DECIDABLE_STATES]),
                ServiceRecord.archived_at.is_(None),
            )
        )
        now = _now()
        return sum(
            1 for r in result.scalars().all() if self.submission_machine.is_pending(r, now)
        )

    async def list_records_for_contractor(
        self, ctx: ActorContext, home_id: str | None = None
    ) -> list[ServiceRecord]:
        if ctx.role != LifecycleActor.CONTRACTOR:
            raise PermissionDeniedError("Only contractors have work records")
        query = select(ServiceRecord).where(
            ServiceRecord.contractor_id == ctx.actor_id,
            ServiceRecord.archived_at.is_(None),
        )
        if home_id is not None:
            query = query.where(ServiceRecord.home_id == home_id)
        query = query.order_by(ServiceRecord.created_at.desc())
        result = await self.db.execute(query)
        return list(result.scalars().all())

    def effective_status(self, record: ServiceRecord) -> ServiceRecordStatus:
        return self.submission_machine.effective_status(record)
