"""Errors raised by the service lifecycle.

Every error carries the HTTP status the API boundary renders it with, so
callers outside FastAPI can still tell them apart by type.
"""


class LifecycleError(Exception):
    """Base exception for all service lifecycle errors."""

    status_code = 400

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidTransitionError(LifecycleError):
    """Raised when a status change is not allowed from the current state."""

    status_code = 409

    def __init__(self, current_status, action, reason: str) -> None:
        self.current_status = current_status
        self.action = action
        self.reason = reason
        super().__init__(
            f"Invalid transition: cannot {_value(action)} from {_value(current_status)}: {reason}"
        )


class PermissionDeniedError(LifecycleError):
    """Raised when the actor lacks rights over the home, connection or request."""

    status_code = 403


class PreconditionFailedError(LifecycleError):
    """Raised when a transition is allowed in principle but its precondition fails."""

    status_code = 412


class SubmissionAlreadyResolvedError(PreconditionFailedError):
    """Raised when a submission has already left the awaiting-decision states."""

    def __init__(self, submission_id: str, status) -> None:
        self.submission_id = submission_id
        self.status = status
        super().__init__(f"Submission {submission_id} is already {_value(status)}")


class NotFoundError(LifecycleError):
    """Raised when an entity id does not resolve."""

    status_code = 404

    def __init__(self, entity: str, entity_id: str | None = None) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found")


def _value(val) -> str:
    return getattr(val, "value", str(val))
