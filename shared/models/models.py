"""
shared/models/models.py
All SQLAlchemy ORM models for the Accurate Astro back office.
UUID primary keys throughout, portable column types (PostgreSQL in
production, SQLite in tests).
"""

import uuid
from datetime import date, datetime, timezone
from enum import Enum as PyEnum
from typing import Any, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    SmallInteger,
    String,
    Text,
    Uuid,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from config.database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


# ── Enumerations ──────────────────────────────────────────────

class BookingKind(str, PyEnum):
    CONSULTATION = "consultation"
    KUNDLI = "kundli"
    DEMO = "demo"


class AdminRole(str, PyEnum):
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


class TestimonialStatus(str, PyEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"


# Demo statuses that hold a (date, time) slot
ACTIVE_DEMO_STATUSES = ("submitted", "meeting_due")


# ── Mixins ────────────────────────────────────────────────────

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    """Adds created_at and updated_at to any model."""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False,
    )


# ── Models ────────────────────────────────────────────────────

class Admin(TimestampMixin, Base):
    """Back-office account. Authenticates with username + bcrypt hash."""
    __tablename__ = "admins"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=AdminRole.ADMIN.value)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Admin {self.username} ({self.role})>"


class BookingRequest(TimestampMixin, Base):
    """
    Consultation, kundli request or demo booking.
    Status vocabulary depends on `kind` (see services/booking/kinds.py):
      consultation: payment_pending → received → on_the_call → completed
      kundli:       payment_pending → submitted → processing → completed
      demo:         submitted → meeting_due → completed
    Any non-terminal status may move to cancelled.
    """
    __tablename__ = "booking_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)

    # Contact
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[str] = mapped_column(String(10), nullable=False)

    # Subject
    gender: Mapped[str] = mapped_column(String(30), nullable=False)
    birth_date: Mapped[date] = mapped_column(Date, nullable=False)
    details: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    # e.g. kundli: {"birth_time": "06:45", "birth_place": "Varanasi", "with_birth_time": true}

    # Demo schedule
    scheduled_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    scheduled_time: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)  # "HH:MM"

    # Pricing (whole currency units, fixed per kind)
    amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")

    # Razorpay references
    external_order_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    payment_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    payment_signature: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Status
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    report_data: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_booking_amount_non_negative"),
        Index("ix_booking_requests_kind_status", "kind", "status"),
        Index("ix_booking_requests_created_at", "created_at"),
        Index("ix_booking_requests_order", "external_order_id"),
        # One live demo per (date, time) slot
        Index(
            "uq_demo_active_slot",
            "scheduled_date",
            "scheduled_time",
            unique=True,
            postgresql_where=text(
                "kind = 'demo' AND status IN ('submitted', 'meeting_due')"
            ),
            sqlite_where=text(
                "kind = 'demo' AND status IN ('submitted', 'meeting_due')"
            ),
        ),
    )

    @property
    def is_paid(self) -> bool:
        return self.payment_id is not None

    def __repr__(self) -> str:
        return f"<BookingRequest {self.kind} {self.id} ({self.status})>"


class Blog(TimestampMixin, Base):
    """Blog post. Publicly visible only while published."""
    __tablename__ = "blogs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(280), unique=True, nullable=False)
    excerpt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_key: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    author: Mapped[str] = mapped_column(String(255), nullable=False, default="Accurate Astro")
    tags: Mapped[List[str]] = mapped_column(JSONType, nullable=False, default=list)
    published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    meta_title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    meta_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("ix_blogs_published_created", "published", "created_at"),
    )


class Testimonial(TimestampMixin, Base):
    """Client testimonial, text and/or YouTube video."""
    __tablename__ = "testimonials"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    youtube_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rating: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=5)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TestimonialStatus.ACTIVE.value
    )

    __table_args__ = (
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_testimonial_rating_range"),
        Index("ix_testimonials_status_order", "status", "display_order"),
    )
