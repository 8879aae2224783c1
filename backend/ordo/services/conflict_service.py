"""Availability decisions for a requested booking window."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from typing import Iterable, Sequence
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ordo.core.errors import SchedulingError, SchedulingReason, ValidationError
from ordo.core.settings import get_scheduling_settings
from ordo.models import AvailabilitySlot, Booking, BookingStatus
from ordo.services import availability_service

ACTIVE_BOOKING_STATUSES: set[BookingStatus] = {
    BookingStatus.PENDING,
    BookingStatus.CONFIRMED,
    BookingStatus.IN_PROGRESS,
}


@dataclass(slots=True, frozen=True)
class AvailabilityDecision:
    """Outcome of an availability check."""

    allowed: bool
    reason: SchedulingReason | None = None
    capacity: int | None = None

    @classmethod
    def allow(cls, capacity: int) -> "AvailabilityDecision":
        return cls(allowed=True, capacity=capacity)

    @classmethod
    def reject(cls, reason: SchedulingReason) -> "AvailabilityDecision":
        return cls(allowed=False, reason=reason)


@dataclass(slots=True, frozen=True)
class SlotRun:
    """Gap-free stretch of slots; capacity is the tightest slot in the run."""

    start: time
    end: time
    capacity: int

    def contains(self, start: time, end: time) -> bool:
        return self.start <= start and end <= self.end


def normalize_datetime(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def scheduling_zone() -> ZoneInfo:
    return ZoneInfo(get_scheduling_settings().timezone)


def local_date(moment: datetime) -> date:
    return normalize_datetime(moment).astimezone(scheduling_zone()).date()


def merge_slot_runs(slots: Iterable[AvailabilitySlot]) -> list[SlotRun]:
    """Join slots that touch or overlap so a booking may span adjacent slots."""
    runs: list[SlotRun] = []
    for slot in sorted(slots, key=lambda item: (item.start_time, item.end_time)):
        if runs and slot.start_time <= runs[-1].end:
            current = runs[-1]
            runs[-1] = SlotRun(
                start=current.start,
                end=max(current.end, slot.end_time),
                capacity=min(current.capacity, slot.capacity),
            )
        else:
            runs.append(SlotRun(slot.start_time, slot.end_time, slot.capacity))
    return runs


async def count_overlapping_bookings(
    session: AsyncSession,
    *,
    vendor_id: uuid.UUID,
    start_at: datetime,
    end_at: datetime,
    exclude_booking_id: uuid.UUID | None = None,
) -> int:
    stmt = select(func.count(Booking.id)).where(
        Booking.vendor_id == vendor_id,
        Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        Booking.scheduled_at < end_at,
        Booking.ends_at > start_at,
    )
    if exclude_booking_id is not None:
        stmt = stmt.where(Booking.id != exclude_booking_id)
    result = await session.execute(stmt)
    return int(result.scalar_one())


async def check_availability(
    session: AsyncSession,
    *,
    vendor_id: uuid.UUID,
    service_id: uuid.UUID | None,
    requested_start: datetime,
    duration_minutes: int,
    exclude_booking_id: uuid.UUID | None = None,
    now: datetime | None = None,
) -> AvailabilityDecision:
    if duration_minutes <= 0:
        raise ValidationError("Duration must be positive")
    start_at = normalize_datetime(requested_start)
    end_at = start_at + timedelta(minutes=duration_minutes)
    current = normalize_datetime(now or datetime.now(UTC))
    if start_at <= current:
        return AvailabilityDecision.reject(SchedulingReason.PAST_SCHEDULE)

    zone = scheduling_zone()
    local_start = start_at.astimezone(zone)
    local_end = end_at.astimezone(zone)
    slots = await availability_service.list_slots(
        session,
        vendor_id=vendor_id,
        on_date=local_start.date(),
        service_id=service_id,
    )
    if not slots:
        return AvailabilityDecision.reject(SchedulingReason.DAY_UNAVAILABLE)

    if local_end.date() != local_start.date():
        return AvailabilityDecision.reject(SchedulingReason.SLOT_UNAVAILABLE)
    containing = [
        run
        for run in merge_slot_runs(slots)
        if run.contains(local_start.time(), local_end.time())
    ]
    if not containing:
        return AvailabilityDecision.reject(SchedulingReason.SLOT_UNAVAILABLE)

    capacity = max(run.capacity for run in containing)
    booked = await count_overlapping_bookings(
        session,
        vendor_id=vendor_id,
        start_at=start_at,
        end_at=end_at,
        exclude_booking_id=exclude_booking_id,
    )
    if booked >= capacity:
        return AvailabilityDecision.reject(SchedulingReason.SLOT_FULL)
    return AvailabilityDecision.allow(capacity)


async def ensure_available(
    session: AsyncSession,
    *,
    vendor_id: uuid.UUID,
    service_id: uuid.UUID | None,
    requested_start: datetime,
    duration_minutes: int,
    exclude_booking_id: uuid.UUID | None = None,
    now: datetime | None = None,
) -> int:
    """Raise ``SchedulingError`` unless the window is bookable; return capacity."""
    decision = await check_availability(
        session,
        vendor_id=vendor_id,
        service_id=service_id,
        requested_start=requested_start,
        duration_minutes=duration_minutes,
        exclude_booking_id=exclude_booking_id,
        now=now,
    )
    if not decision.allowed or decision.capacity is None:
        raise SchedulingError(decision.reason or SchedulingReason.SLOT_UNAVAILABLE)
    return decision.capacity


async def list_bookable_times(
    session: AsyncSession,
    *,
    vendor_id: uuid.UUID,
    service_id: uuid.UUID | None,
    on_date: date,
    duration_minutes: int,
    step_minutes: int = 30,
    now: datetime | None = None,
) -> list[datetime]:
    """Start instants (UTC) on ``on_date`` that would pass the availability check."""
    if duration_minutes <= 0 or step_minutes <= 0:
        raise ValidationError("Duration and step must be positive")
    zone = scheduling_zone()
    current = normalize_datetime(now or datetime.now(UTC))
    slots = await availability_service.list_slots(
        session, vendor_id=vendor_id, on_date=on_date, service_id=service_id
    )
    runs = merge_slot_runs(slots)
    candidates: list[tuple[datetime, int]] = []
    for run in runs:
        cursor = datetime.combine(on_date, run.start, tzinfo=zone)
        run_end = datetime.combine(on_date, run.end, tzinfo=zone)
        while cursor + timedelta(minutes=duration_minutes) <= run_end:
            start_at = cursor.astimezone(UTC)
            if start_at > current:
                candidates.append((start_at, run.capacity))
            cursor += timedelta(minutes=step_minutes)
    if not candidates:
        return []

    bookings = await _bookings_on(
        session,
        vendor_id=vendor_id,
        range_start=candidates[0][0],
        range_end=candidates[-1][0] + timedelta(minutes=duration_minutes),
    )
    available: list[datetime] = []
    for start_at, capacity in candidates:
        end_at = start_at + timedelta(minutes=duration_minutes)
        overlapping = sum(
            1 for booked_start, booked_end in bookings
            if booked_start < end_at and start_at < booked_end
        )
        if overlapping < capacity and start_at not in available:
            available.append(start_at)
    return sorted(available)


async def _bookings_on(
    session: AsyncSession,
    *,
    vendor_id: uuid.UUID,
    range_start: datetime,
    range_end: datetime,
) -> Sequence[tuple[datetime, datetime]]:
    stmt = select(Booking.scheduled_at, Booking.ends_at).where(
        Booking.vendor_id == vendor_id,
        Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        Booking.scheduled_at < range_end,
        Booking.ends_at > range_start,
    )
    result = await session.execute(stmt)
    return [
        (normalize_datetime(start), normalize_datetime(end))
        for start, end in result.all()
    ]


__all__ = [
    "ACTIVE_BOOKING_STATUSES",
    "AvailabilityDecision",
    "check_availability",
    "count_overlapping_bookings",
    "ensure_available",
    "list_bookable_times",
    "local_date",
    "merge_slot_runs",
    "normalize_datetime",
]
