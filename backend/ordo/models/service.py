"""Vendor service catalogue entries referenced by bookings and slots."""

from __future__ import annotations

import enum
import uuid
from decimal import Decimal

from sqlalchemy import Enum, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from ordo.db.base import Base
from ordo.models.mixins import TimestampMixin


class ServiceStatus(str, enum.Enum):
    """Publication state of a vendor service."""

    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    ARCHIVED = "archived"


class VendorService(TimestampMixin, Base):
    """A priced, bookable service offered by a vendor."""

    __tablename__ = "vendor_services"
    __table_args__ = (Index("ix_vendor_services_vendor_status", "vendor_id", "status"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    vendor_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    base_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="ZAR")
    status: Mapped[ServiceStatus] = mapped_column(
        Enum(ServiceStatus), nullable=False, default=ServiceStatus.ACTIVE
    )

    @property
    def is_active(self) -> bool:
        return self.status is ServiceStatus.ACTIVE
