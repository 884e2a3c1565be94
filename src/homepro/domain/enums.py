"""Domain enumerations for the HomePro service lifecycle.

All enums use the (str, Enum) pattern to ensure JSON serialization compatibility.
"""

from enum import Enum


class UserRole(str, Enum):
    """Account type of a platform user."""

    HOMEOWNER = "homeowner"
    CONTRACTOR = "contractor"


class LifecycleActor(str, Enum):
    """Who initiated a lifecycle transition."""

    HOMEOWNER = "homeowner"
    CONTRACTOR = "contractor"
    SYSTEM = "system"


class ConnectionStatus(str, Enum):
    """Status of the trust relationship between a home and a contractor."""

    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"


class ConnectionSource(str, Enum):
    """How a connection came to exist."""

    INVITATION = "INVITATION"
    VERIFIED_SERVICE = "VERIFIED_SERVICE"
    MANUAL = "MANUAL"


class Urgency(str, Enum):
    """How soon the homeowner needs the work done."""

    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    EMERGENCY = "EMERGENCY"


class ServiceRequestStatus(str, Enum):
    """Status of a homeowner service request."""

    PENDING = "PENDING"
    QUOTED = "QUOTED"
    ACCEPTED = "ACCEPTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    DECLINED = "DECLINED"
    CANCELLED = "CANCELLED"


class ServiceRequestAction(str, Enum):
    """Actions that move a service request between statuses."""

    ATTACH_QUOTE = "attach_quote"
    ACCEPT = "accept"
    START = "start"
    COMPLETE = "complete"
    CANCEL = "cancel"
    DECLINE = "decline"


class QuoteStatus(str, Enum):
    """Status of a contractor quote."""

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    EXPIRED = "EXPIRED"


class ServiceRecordStatus(str, Enum):
    """Status of contractor-documented work."""

    DOCUMENTED = "DOCUMENTED"
    DOCUMENTED_UNVERIFIED = "DOCUMENTED_UNVERIFIED"
    PENDING_REVIEW = "PENDING_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    DISPUTED = "DISPUTED"
    EXPIRED = "EXPIRED"


class SubmissionAction(str, Enum):
    """Homeowner decisions on submitted work."""

    APPROVE = "approve"
    REJECT = "reject"
    DISPUTE = "dispute"


class ServiceEventType(str, Enum):
    """Type of event in the service lifecycle audit trail."""

    REQUEST_CREATED = "request_created"
    QUOTE_ATTACHED = "quote_attached"
    REQUEST_ACCEPTED = "request_accepted"
    WORK_STARTED = "work_started"
    REQUEST_COMPLETED = "request_completed"
    REQUEST_CANCELLED = "request_cancelled"
    REQUEST_DECLINED = "request_declined"
    WORK_DOCUMENTED = "work_documented"
    WORK_APPROVED = "work_approved"
    WORK_REJECTED = "work_rejected"
    WORK_DISPUTED = "work_disputed"


class EventEntity(str, Enum):
    """Entity kinds that carry an audit trail."""

    SERVICE_REQUEST = "service_request"
    SERVICE_RECORD = "service_record"


class NotificationChannel(str, Enum):
    """Delivery channel for an outbound notification."""

    EMAIL = "EMAIL"
    IN_APP = "IN_APP"


class NotificationType(str, Enum):
    """Kind of lifecycle notification sent to a user."""

    QUOTE_RECEIVED = "QUOTE_RECEIVED"
    REQUEST_ACCEPTED = "REQUEST_ACCEPTED"
    REQUEST_CANCELLED = "REQUEST_CANCELLED"
    REQUEST_DECLINED = "REQUEST_DECLINED"
    WORK_APPROVED = "WORK_APPROVED"
    WORK_REJECTED = "WORK_REJECTED"
    WORK_DISPUTED = "WORK_DISPUTED"
