"""Booking model and lifecycle enums."""

from __future__ import annotations

import enum
import uuid
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ordo.db.base import Base
from ordo.models.mixins import JSONB_TYPE, TimestampMixin

if TYPE_CHECKING:  # pragma: no cover - typing only imports
    from ordo.models.payment import Payment
    from ordo.models.service import VendorService


class BookingStatus(str, enum.Enum):
    """Lifecycle states for bookings."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BookingPaymentStatus(str, enum.Enum):
    """Payment state of a booking as seen by the marketplace."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class LocationType(str, enum.Enum):
    """Where the service is delivered."""

    VENDOR_LOCATION = "vendor_location"
    CUSTOMER_LOCATION = "customer_location"
    ONLINE = "online"


def generate_booking_reference(moment: datetime | None = None) -> str:
    """Return a human friendly reference such as ``BK2026A1B2C3D4E5F6``."""
    year = (moment or datetime.now(UTC)).year
    return f"BK{year}{uuid.uuid4().hex[:12].upper()}"


class Booking(TimestampMixin, Base):
    """A customer (or guest) reservation of a vendor service."""

    __tablename__ = "bookings"
    __table_args__ = (
        Index("ix_bookings_vendor_scheduled", "vendor_id", "scheduled_at"),
        Index("ix_bookings_vendor_status", "vendor_id", "status"),
        Index("ix_bookings_customer", "customer_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    booking_reference: Mapped[str] = mapped_column(
        String(32), unique=True, nullable=False, default=generate_booking_reference
    )
    customer_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    guest_name: Mapped[str | None] = mapped_column(String(255))
    guest_email: Mapped[str | None] = mapped_column(String(255))
    guest_phone: Mapped[str | None] = mapped_column(String(32))
    vendor_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    service_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("vendor_services.id", ondelete="RESTRICT"), nullable=False
    )
    scheduled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    deposit_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="ZAR")
    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus), nullable=False, default=BookingStatus.PENDING
    )
    payment_status: Mapped[BookingPaymentStatus] = mapped_column(
        Enum(BookingPaymentStatus),
        nullable=False,
        default=BookingPaymentStatus.PENDING,
    )
    location_type: Mapped[LocationType] = mapped_column(
        Enum(LocationType), nullable=False, default=LocationType.VENDOR_LOCATION
    )
    service_address: Mapped[dict[str, Any] | None] = mapped_column(
        JSONB_TYPE, nullable=True
    )
    customer_notes: Mapped[str | None] = mapped_column(Text())
    vendor_notes: Mapped[str | None] = mapped_column(Text())
    cancellation_reason: Mapped[str | None] = mapped_column(Text())
    cancelled_by: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancellation_refund_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2), nullable=True
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    service: Mapped["VendorService"] = relationship("VendorService")
    payments: Mapped[list["Payment"]] = relationship(
        "Payment",
        back_populates="booking",
        order_by="Payment.created_at",
    )

    @property
    def is_guest(self) -> bool:
        return self.customer_id is None

    @property
    def requires_deposit(self) -> bool:
        return self.deposit_amount > Decimal("0")

    @property
    def can_be_reviewed(self) -> bool:
        return self.status is BookingStatus.COMPLETED
