"""Service request state machine: validates transitions and enforces business rules.

Encodes the request lifecycle:

    PENDING -> QUOTED -> ACCEPTED -> IN_PROGRESS -> COMPLETED

with homeowner cancellation and contractor decline as terminal side exits
while the request is still PENDING or QUOTED.
"""

from decimal import Decimal

from homepro.domain.enums import (
    LifecycleActor,
    ServiceRequestAction,
    ServiceRequestStatus,
)
from homepro.domain.exceptions import (
    InvalidTransitionError,
    PermissionDeniedError,
    PreconditionFailedError,
)


# ---------------------------------------------------------------------------
# Transition map: from_status -> {action: (to_status, set_of_allowed_actors)}
# ---------------------------------------------------------------------------

S = ServiceRequestStatus
A = LifecycleActor
Act = ServiceRequestAction

TRANSITION_MAP: dict[
    ServiceRequestStatus,
    dict[ServiceRequestAction, tuple[ServiceRequestStatus, set[LifecycleActor]]],
] = {
    S.PENDING: {
        Act.ATTACH_QUOTE: (S.QUOTED, {A.CONTRACTOR}),
        Act.CANCEL: (S.CANCELLED, {A.HOMEOWNER}),
        Act.DECLINE: (S.DECLINED, {A.CONTRACTOR}),
    },
    S.QUOTED: {
        Act.ACCEPT: (S.ACCEPTED, {A.HOMEOWNER}),
        Act.CANCEL: (S.CANCELLED, {A.HOMEOWNER}),
        Act.DECLINE: (S.DECLINED, {A.CONTRACTOR}),
    },
    S.ACCEPTED: {
        Act.START: (S.IN_PROGRESS, {A.CONTRACTOR, A.SYSTEM}),
    },
    S.IN_PROGRESS: {
        Act.COMPLETE: (S.COMPLETED, {A.CONTRACTOR, A.HOMEOWNER, A.SYSTEM}),
    },
}

TERMINAL_STATES: set[ServiceRequestStatus] = {
    S.COMPLETED,
    S.DECLINED,
    S.CANCELLED,
}

# Requests still waiting on the contractor or on the homeowner's quote decision
OPEN_STATES: set[ServiceRequestStatus] = {S.PENDING, S.QUOTED}

# Requests the homeowner may still delete outright
DELETABLE_STATES: set[ServiceRequestStatus] = {S.PENDING, S.DECLINED, S.CANCELLED}


def as_request_status(value) -> ServiceRequestStatus:
    """Get ServiceRequestStatus enum from a model value (may be stored as string)."""
    if isinstance(value, ServiceRequestStatus):
        return value
    return ServiceRequestStatus(value)


class ServiceRequestStateMachine:
    """Validates service request transitions and enforces business rules."""

    def resolve(
        self,
        current_status: ServiceRequestStatus,
        action: ServiceRequestAction,
        actor: LifecycleActor,
    ) -> ServiceRequestStatus:
        """Return the target status for ``action`` or raise.

        Checks, in order:
        1. The (status, action) pair is in the transition map.
        2. The actor is permitted for this transition.
        """
        allowed_actions = TRANSITION_MAP.get(current_status)
        if allowed_actions is None:
            raise InvalidTransitionError(
                current_status,
                action,
                f"{current_status.value} is terminal",
            )

        if action not in allowed_actions:
            raise InvalidTransitionError(
                current_status,
                action,
                f"'{action.value}' is not allowed from {current_status.value}",
            )

        target_status, allowed_actors = allowed_actions[action]
        if actor not in allowed_actors:
            raise PermissionDeniedError(
                f"Actor {actor.value} is not permitted to {action.value} a request "
                f"(allowed: {', '.join(sorted(a.value for a in allowed_actors))})"
            )

        return target_status

    def validate_transition(
        self,
        current_status: ServiceRequestStatus,
        action: ServiceRequestAction,
        actor: LifecycleActor,
        request=None,
        quote=None,
        service_record=None,
    ) -> ServiceRequestStatus:
        """Resolve the transition and check its preconditions.

        ``request``, ``quote`` and ``service_record`` are duck-typed so that
        ORM rows and plain namespaces both work.
        """
        target_status = self.resolve(current_status, action, actor)

        if action == Act.ATTACH_QUOTE:
            total = getattr(quote, "total_amount", None) if quote is not None else None
            if total is None or Decimal(str(total)) <= 0:
                raise PreconditionFailedError("Quote total must be greater than zero")

        elif action == Act.ACCEPT:
            if request is None or getattr(request, "quote_id", None) is None:
                raise PreconditionFailedError("cannot accept without quote")

        elif action == Act.COMPLETE:
            if service_record is None or not getattr(service_record, "is_verified", False):
                raise PreconditionFailedError(
                    "cannot complete without an approved service record"
                )

        return target_status

    def get_allowed_actions(
        self,
        current_status: ServiceRequestStatus,
        actor: LifecycleActor,
    ) -> list[ServiceRequestAction]:
        """Return the actions the given actor may take from the current status."""
        allowed = TRANSITION_MAP.get(current_status, {})
        return [
            action
            for action, (_, actors) in allowed.items()
            if actor in actors
        ]
