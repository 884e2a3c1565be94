"""Pydantic v2 schemas for API request/response validation."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from homepro.domain.enums import (
    ServiceRecordStatus,
    ServiceRequestAction,
    ServiceRequestStatus,
    SubmissionAction,
    Urgency,
    UserRole,
)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Schema for creating a new user."""

    email: str
    password: str = Field(min_length=8)
    name: str
    role: UserRole = UserRole.HOMEOWNER
    business_name: str | None = None
    phone: str | None = None


class UserLogin(BaseModel):
    """Schema for user login."""

    email: str
    password: str


class UserResponse(BaseModel):
    """Schema for user API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str
    role: str
    business_name: str | None = None
    phone: str | None = None
    is_active: bool


class UserUpdate(BaseModel):
    name: str | None = None
    business_name: str | None = None
    phone: str | None = None


class TokenResponse(BaseModel):
    """Schema for JWT token responses."""

    access_token: str
    token_type: str = "bearer"
    user: UserResponse


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str


# ---------------------------------------------------------------------------
# Homes & Connections
# ---------------------------------------------------------------------------


class HomeCreate(BaseModel):
    address: str
    city: str
    state: str
    zip: str


class HomeResponse(HomeCreate):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str | None = None
    created_at: datetime | None = None


class ConnectionCreate(BaseModel):
    """Homeowner invites a contractor (by account id or email) to a home."""

    contractor_id: str | None = None
    contractor_email: str | None = None

    @model_validator(mode="after")
    def _one_contractor_reference(self):
        if not self.contractor_id and not self.contractor_email:
            raise ValueError("contractor_id or contractor_email is required")
        return self


class ConnectionResponse(BaseModel):
    """Connection plus the aggregates derived from verified work."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    home_id: str
    homeowner_id: str
    contractor_id: str
    status: str
    established_via: str
    verified_work_count: int
    total_spent: Decimal
    last_service_date: date | None = None
    archived_at: datetime | None = None
    created_at: datetime | None = None


# ---------------------------------------------------------------------------
# Service Requests & Quotes
# ---------------------------------------------------------------------------


class ServiceRequestCreate(BaseModel):
    """Schema for a homeowner opening a service request."""

    connection_id: str
    contractor_id: str
    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1)
    category: str | None = None
    urgency: Urgency = Urgency.NORMAL
    budget_min: Decimal | None = Field(default=None, ge=0)
    budget_max: Decimal | None = Field(default=None, ge=0)
    desired_date: date | None = None
    photos: list[str] = []

    @model_validator(mode="after")
    def _budget_range(self):
        if (
            self.budget_min is not None
            and self.budget_max is not None
            and self.budget_min > self.budget_max
        ):
            raise ValueError("budget_min cannot exceed budget_max")
        return self


class ServiceRequestUpdate(BaseModel):
    """PATCH body: a status action, field edits, or both.

    Field edits are only honoured while the request is PENDING or QUOTED.
    """

    action: ServiceRequestAction | None = None
    reason: str | None = Field(default=None, max_length=500)
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    category: str | None = None
    urgency: Urgency | None = None
    budget_min: Decimal | None = Field(default=None, ge=0)
    budget_max: Decimal | None = Field(default=None, ge=0)
    desired_date: date | None = None
    photos: list[str] | None = None

    def field_changes(self) -> dict:
        return self.model_dump(exclude_unset=True, exclude={"action", "reason"})


class QuoteItemInput(BaseModel):
    description: str
    qty: Decimal = Field(default=Decimal("1"), gt=0)
    unit_price: Decimal = Field(ge=0)


class QuoteCreate(BaseModel):
    """Contractor quote: either a flat total or line items that sum to one."""

    total_amount: Decimal | None = None
    items: list[QuoteItemInput] = []
    notes: str | None = None
    expires_at: datetime | None = None

    @model_validator(mode="after")
    def _total_or_items(self):
        if self.total_amount is None and not self.items:
            raise ValueError("total_amount or items is required")
        return self


class QuoteItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    description: str
    qty: Decimal
    unit_price: Decimal
    total: Decimal


class QuoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    service_request_id: str
    contractor_id: str
    total_amount: Decimal
    status: str
    notes: str | None = None
    expires_at: datetime | None = None
    items: list[QuoteItemResponse] = []
    created_at: datetime | None = None


class ServiceRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    home_id: str
    connection_id: str
    homeowner_id: str
    contractor_id: str
    title: str
    description: str
    category: str | None = None
    urgency: str
    budget_min: Decimal | None = None
    budget_max: Decimal | None = None
    desired_date: date | None = None
    photos: list[str] | None = None
    status: ServiceRequestStatus
    quote_id: str | None = None
    service_record_id: str | None = None
    decline_reason: str | None = None
    cancel_reason: str | None = None
    declined_at: datetime | None = None
    cancelled_at: datetime | None = None
    accepted_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ServiceRequestDetail(ServiceRequestResponse):
    quote: QuoteResponse | None = None


class CountResponse(BaseModel):
    count: int


# ---------------------------------------------------------------------------
# Work submissions
# ---------------------------------------------------------------------------


class AttachmentInput(BaseModel):
    key: str
    url: str | None = None
    filename: str | None = None
    mime_type: str | None = None
    size: int | None = Field(default=None, ge=0)


class AttachmentResponse(AttachmentInput):
    model_config = ConfigDict(from_attributes=True)

    id: str
    record_id: str | None = None


class ServiceRecordCreate(BaseModel):
    """Contractor documents completed work at a connected home."""

    home_id: str
    service_type: str = Field(min_length=1, max_length=255)
    service_date: date
    description: str | None = None
    cost: Decimal | None = Field(default=None, ge=0)
    warranty_included: bool = False
    warranty_length: str | None = None
    warranty_details: str | None = None
    service_request_id: str | None = None
    attachments: list[AttachmentInput] = []


class ServiceRecordResponse(BaseModel):
    """Submission as a reader sees it: ``status`` already has expiry applied."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    home_id: str
    contractor_id: str
    service_request_id: str | None = None
    service_type: str
    service_date: date
    description: str | None = None
    cost: Decimal | None = None
    warranty_included: bool | None = None
    warranty_length: str | None = None
    warranty_details: str | None = None
    status: ServiceRecordStatus
    is_verified: bool
    verified_at: datetime | None = None
    rejection_reason: str | None = None
    dispute_reason: str | None = None
    final_record_id: str | None = None
    address_snapshot: dict | None = None
    attachments: list[AttachmentResponse] = []
    created_at: datetime | None = None


class SubmissionDecision(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class SubmissionActionRequest(SubmissionDecision):
    action: SubmissionAction


# ---------------------------------------------------------------------------
# Timeline
# ---------------------------------------------------------------------------


class ServiceEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    entity_type: str
    entity_id: str
    event_type: str
    actor: str
    actor_id: str | None = None
    from_status: str | None = None
    to_status: str | None = None
    data: dict | None = None
    created_at: datetime | None = None
