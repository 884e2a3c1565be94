"""SQLAlchemy ORM models for the HomePro service lifecycle.

All models use SQLite-compatible types:
- String(36) for UUID primary keys
- JSON for structured data (no JSONB)
- DateTime for timestamps (no TIMESTAMPTZ)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from homepro.infra.database import Base


# ---------------------------------------------------------------------------
# Auth / User
# ---------------------------------------------------------------------------


class User(Base):
    """Platform user for authentication."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    role = Column(String(20), nullable=False, default="homeowner")  # UserRole
    business_name = Column(String(255), nullable=True)  # contractors only
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    last_login_at = Column(DateTime, nullable=True)


# ---------------------------------------------------------------------------
# Homes & Connections
# ---------------------------------------------------------------------------


class Home(Base):
    """A property owned by exactly one homeowner."""

    __tablename__ = "homes"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    address = Column(String(255), nullable=False)
    city = Column(String(100), nullable=False)
    state = Column(String(50), nullable=False)
    zip = Column(String(20), nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    owner = relationship("User", backref="homes")


class Connection(Base):
    """Trust relationship between one home and one contractor.

    Aggregates are derived from the set of verified service records and are
    only ever written by the recompute step (on approval and on restore).
    """

    __tablename__ = "connections"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    home_id = Column(String(36), ForeignKey("homes.id"), nullable=False, index=True)
    homeowner_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    contractor_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="ACTIVE")  # ConnectionStatus
    established_via = Column(String(30), nullable=False, default="MANUAL")  # ConnectionSource
    invited_by = Column(String(36), nullable=True)
    source_record_id = Column(String(36), nullable=True)

    # Aggregates
    verified_work_count = Column(Integer, nullable=False, default=0)
    total_spent = Column(Numeric(12, 2), nullable=False, default=0)
    last_service_date = Column(Date, nullable=True)

    archived_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    home = relationship("Home", backref="connections")
    homeowner = relationship("User", foreign_keys=[homeowner_id])
    contractor = relationship("User", foreign_keys=[contractor_id])


# ---------------------------------------------------------------------------
# Service Requests & Quotes
# ---------------------------------------------------------------------------


class ServiceRequest(Base):
    """Homeowner-initiated ask for work, tracked through a status lifecycle."""

    __tablename__ = "service_requests"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    home_id = Column(String(36), ForeignKey("homes.id"), nullable=False, index=True)
    connection_id = Column(String(36), ForeignKey("connections.id"), nullable=False)
    homeowner_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    contractor_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(100), nullable=True)
    urgency = Column(String(20), nullable=False, default="NORMAL")  # Urgency
    budget_min = Column(Numeric(12, 2), nullable=True)
    budget_max = Column(Numeric(12, 2), nullable=True)
    desired_date = Column(Date, nullable=True)
    photos = Column(JSON, nullable=True)

    # Status
    status = Column(String(20), nullable=False, default="PENDING", index=True)
    quote_id = Column(String(36), ForeignKey("quotes.id", use_alter=True), nullable=True)
    service_record_id = Column(
        String(36), ForeignKey("service_records.id", use_alter=True), nullable=True
    )

    # Exits
    declined_at = Column(DateTime, nullable=True)
    decline_reason = Column(String(500), nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancel_reason = Column(String(500), nullable=True)

    # Progress
    accepted_at = Column(DateTime, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    home = relationship("Home")
    connection = relationship("Connection", backref="service_requests")
    homeowner = relationship("User", foreign_keys=[homeowner_id])
    contractor = relationship("User", foreign_keys=[contractor_id])


class Quote(Base):
    """Contractor's priced response to a service request."""

    __tablename__ = "quotes"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    service_request_id = Column(
        String(36), ForeignKey("service_requests.id"), nullable=False, index=True
    )
    contractor_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), nullable=False, default="PENDING")  # QuoteStatus
    notes = Column(Text, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    items = relationship(
        "QuoteItem", back_populates="quote", cascade="all, delete-orphan", lazy="selectin"
    )


class QuoteItem(Base):
    """One priced line of a quote (qty x unit_price = total)."""

    __tablename__ = "quote_items"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    quote_id = Column(String(36), ForeignKey("quotes.id"), nullable=False, index=True)
    description = Column(String(500), nullable=False)
    qty = Column(Numeric(10, 2), nullable=False, default=1)
    unit_price = Column(Numeric(12, 2), nullable=False)
    total = Column(Numeric(12, 2), nullable=False)

    quote = relationship("Quote", back_populates="items")


# ---------------------------------------------------------------------------
# Service Records (submissions) & permanent Records
# ---------------------------------------------------------------------------


class ServiceRecord(Base):
    """Contractor documentation of completed work.

    Until the homeowner approves it this is a *submission*; approval sets
    is_verified and links the permanent Record.
    """

    __tablename__ = "service_records"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    home_id = Column(String(36), ForeignKey("homes.id"), nullable=False, index=True)
    contractor_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    service_request_id = Column(String(36), ForeignKey("service_requests.id"), nullable=True)

    service_type = Column(String(255), nullable=False)
    service_date = Column(Date, nullable=False)
    description = Column(Text, nullable=True)
    cost = Column(Numeric(12, 2), nullable=True)

    # Warranty
    warranty_included = Column(Boolean, default=False)
    warranty_length = Column(String(100), nullable=True)
    warranty_details = Column(Text, nullable=True)

    # Review
    status = Column(String(30), nullable=False, default="DOCUMENTED_UNVERIFIED", index=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    verified_by = Column(String(36), nullable=True)
    verified_at = Column(DateTime, nullable=True)
    rejection_reason = Column(String(500), nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    dispute_reason = Column(String(500), nullable=True)
    disputed_at = Column(DateTime, nullable=True)
    final_record_id = Column(String(36), ForeignKey("records.id"), nullable=True)

    address_snapshot = Column(JSON, nullable=True)
    archived_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    home = relationship("Home")
    contractor = relationship("User", foreign_keys=[contractor_id])
    attachments = relationship(
        "Attachment", back_populates="service_record", lazy="selectin"
    )


class Record(Base):
    """Permanent entry in a home's history, created when work is approved."""

    __tablename__ = "records"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    home_id = Column(String(36), ForeignKey("homes.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    note = Column(Text, nullable=True)
    date = Column(Date, nullable=True)
    kind = Column(String(50), nullable=False, default="maintenance")
    vendor = Column(String(255), nullable=True)
    cost = Column(Numeric(12, 2), nullable=True)
    created_by = Column(String(36), nullable=False)
    verified_by = Column(String(36), nullable=True)
    verified_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


class Attachment(Base):
    """Opaque file reference (photo, invoice) on a submission or record."""

    __tablename__ = "attachments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    home_id = Column(String(36), ForeignKey("homes.id"), nullable=False, index=True)
    service_record_id = Column(String(36), ForeignKey("service_records.id"), nullable=True)
    record_id = Column(String(36), ForeignKey("records.id"), nullable=True)
    key = Column(String(500), nullable=False)
    url = Column(String(1000), nullable=True)
    filename = Column(String(255), nullable=True)
    mime_type = Column(String(100), nullable=True)
    size = Column(Integer, nullable=True)
    uploaded_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    service_record = relationship("ServiceRecord", back_populates="attachments")


# ---------------------------------------------------------------------------
# Audit & Notifications
# ---------------------------------------------------------------------------


class ServiceEvent(Base):
    """Immutable audit trail entry for service lifecycle transitions."""

    __tablename__ = "service_events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    entity_type = Column(String(30), nullable=False)  # EventEntity
    entity_id = Column(String(36), nullable=False, index=True)
    event_type = Column(String(50), nullable=False)  # ServiceEventType
    actor = Column(String(20), nullable=False)  # LifecycleActor
    actor_id = Column(String(36), nullable=True)
    from_status = Column(String(30), nullable=True)
    to_status = Column(String(30), nullable=True)
    data = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


class Notification(Base):
    """Outbound notification to a user, persisted whether or not delivery works."""

    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    channel = Column(String(20), nullable=False, default="EMAIL")  # NotificationChannel
    subject = Column(String(255), nullable=False)
    payload = Column(JSON, nullable=True)
    sent = Column(Boolean, default=False)
    sent_at = Column(DateTime, nullable=True)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
