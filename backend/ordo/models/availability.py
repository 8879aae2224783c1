"""Vendor availability templates and the generated slot index."""

from __future__ import annotations

import enum
import uuid
from datetime import date, time
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ordo.db.base import Base
from ordo.models.mixins import JSONB_TYPE, TimestampMixin

if TYPE_CHECKING:  # pragma: no cover - typing only imports
    from ordo.models.service import VendorService


class DayOfWeek(enum.IntEnum):
    """Weekday numbering used throughout scheduling (Sunday first)."""

    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6

    @classmethod
    def from_date(cls, value: date) -> "DayOfWeek":
        return cls(value.isoweekday() % 7)


def _parse_time(value: Any) -> time:
    if isinstance(value, time):
        return value
    return time.fromisoformat(str(value))


class AvailabilityTemplate(TimestampMixin, Base):
    """Recurring weekly working window for a vendor."""

    __tablename__ = "availability_templates"
    __table_args__ = (
        UniqueConstraint(
            "vendor_id",
            "day_of_week",
            "effective_from",
            "effective_until",
            name="uq_availability_templates_vendor_day_range",
        ),
        Index("ix_availability_templates_vendor_day", "vendor_id", "day_of_week"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    vendor_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    day_of_week: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    start_time: Mapped[time] = mapped_column(Time(timezone=False), nullable=False)
    end_time: Mapped[time] = mapped_column(Time(timezone=False), nullable=False)
    breaks: Mapped[list[dict[str, str]]] = mapped_column(
        JSONB_TYPE, nullable=False, default=list
    )
    default_duration_minutes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=60
    )
    buffer_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=15)
    effective_from: Mapped[date | None] = mapped_column(Date, nullable=True)
    effective_until: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    slots: Mapped[list["AvailabilitySlot"]] = relationship(
        "AvailabilitySlot",
        back_populates="template",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def break_intervals(self) -> list[tuple[time, time]]:
        """Breaks as ordered (start, end) time pairs."""
        intervals = [
            (_parse_time(item["start"]), _parse_time(item["end"]))
            for item in self.breaks or []
        ]
        return sorted(intervals)

    def is_effective_on(self, on_date: date) -> bool:
        if self.effective_from is not None and on_date < self.effective_from:
            return False
        if self.effective_until is not None and on_date > self.effective_until:
            return False
        return True


class AvailabilitySlot(Base):
    """Concrete bookable window derived from a template."""

    __tablename__ = "availability_slots"
    __table_args__ = (
        Index("ix_availability_slots_vendor_day", "vendor_id", "day_of_week"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    template_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("availability_templates.id", ondelete="CASCADE"), nullable=False
    )
    vendor_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    service_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("vendor_services.id", ondelete="CASCADE"), nullable=True
    )
    day_of_week: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    start_time: Mapped[time] = mapped_column(Time(timezone=False), nullable=False)
    end_time: Mapped[time] = mapped_column(Time(timezone=False), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    template: Mapped["AvailabilityTemplate"] = relationship(
        "AvailabilityTemplate", back_populates="slots"
    )
    service: Mapped["VendorService | None"] = relationship("VendorService")
