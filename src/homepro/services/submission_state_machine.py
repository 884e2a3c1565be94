"""Submitted-work approval state machine.

Contractor-documented work waits for a homeowner decision. Approval and
rejection are terminal; a dispute parks the submission until the homeowner
approves or rejects it. EXPIRED is never written by a timer: it is derived on
read from the submission's age against the review window.
"""

from datetime import datetime, timedelta, timezone

from homepro.domain.enums import ServiceRecordStatus, SubmissionAction
from homepro.domain.exceptions import (
    InvalidTransitionError,
    SubmissionAlreadyResolvedError,
)

S = ServiceRecordStatus
Act = SubmissionAction

# Statuses that mean "awaiting homeowner decision"
AWAITING_DECISION_STATES: set[ServiceRecordStatus] = {
    S.PENDING_REVIEW,
    S.DOCUMENTED_UNVERIFIED,
    S.DOCUMENTED,
}

# Statuses an approve/reject may still act on. The conditional update in the
# lifecycle service guards on exactly this set.
DECIDABLE_STATES: set[ServiceRecordStatus] = AWAITING_DECISION_STATES | {S.DISPUTED}

RESOLVED_STATES: set[ServiceRecordStatus] = {S.APPROVED, S.REJECTED, S.EXPIRED}

TRANSITION_MAP: dict[SubmissionAction, tuple[set[ServiceRecordStatus], ServiceRecordStatus]] = {
    Act.APPROVE: (DECIDABLE_STATES, S.APPROVED),
    Act.REJECT: (DECIDABLE_STATES, S.REJECTED),
    Act.DISPUTE: (AWAITING_DECISION_STATES, S.DISPUTED),
}


def as_record_status(value) -> ServiceRecordStatus:
    """Get ServiceRecordStatus enum from a model value (may be stored as string)."""
    if isinstance(value, ServiceRecordStatus):
        return value
    return ServiceRecordStatus(value)


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SubmissionStateMachine:
    """Validates homeowner decisions on submitted work."""

    def __init__(self, review_window_days: int = 30):
        self.review_window = timedelta(days=review_window_days)

    def is_expired(self, record, now: datetime | None = None) -> bool:
        """Return True if an undecided submission has outlived the review window."""
        status = as_record_status(record.status)
        if status == S.EXPIRED:
            return True
        if status not in AWAITING_DECISION_STATES:
            return False
        created_at = getattr(record, "created_at", None)
        if created_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now > _aware(created_at) + self.review_window

    def effective_status(self, record, now: datetime | None = None) -> ServiceRecordStatus:
        """Return the status as a reader should see it, with expiry applied."""
        if self.is_expired(record, now):
            return S.EXPIRED
        return as_record_status(record.status)

    def is_pending(self, record, now: datetime | None = None) -> bool:
        """Return True if the submission still needs a homeowner decision."""
        return self.effective_status(record, now) in DECIDABLE_STATES

    def validate_decision(
        self,
        record,
        action: SubmissionAction,
        now: datetime | None = None,
    ) -> ServiceRecordStatus:
        """Return the target status for ``action`` on ``record`` or raise.

        Raises:
            SubmissionAlreadyResolvedError: record is APPROVED, REJECTED or expired.
            InvalidTransitionError: action not allowed from the current status
                (e.g. disputing an already disputed submission).
        """
        current = self.effective_status(record, now)

        if current in RESOLVED_STATES:
            raise SubmissionAlreadyResolvedError(record.id, current)

        allowed_from, target = TRANSITION_MAP[action]
        if current not in allowed_from:
            raise InvalidTransitionError(
                current,
                action,
                f"'{action.value}' is not allowed from {current.value}",
            )
        return target
