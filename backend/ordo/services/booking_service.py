"""Booking creation and lifecycle management."""

from __future__ import annotations

import enum
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Final

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from ordo.core.errors import (
    AuthorizationError,
    NotFoundError,
    PaymentError,
    SchedulingError,
    SchedulingReason,
    TransitionError,
    TransitionReason,
    ValidationError,
)
from ordo.core.settings import get_scheduling_settings
from ordo.integrations.payment_gateway import PaymentGateway
from ordo.models import (
    Booking,
    BookingPaymentStatus,
    BookingStatus,
    LocationType,
    Payment,
    PaymentStatus,
    VendorService,
)
from ordo.schemas.booking import BookingCreate, BookingUpdate
from ordo.services import conflict_service, payments_service
from ordo.services.booking_locks import booking_slot_guard
from ordo.services.conflict_service import local_date, normalize_datetime
from ordo.services.notification_service import (
    NotificationEvent,
    Notifier,
    notify_booking_event,
)
from ordo.services.pricing_service import calculate_price, compute_refund, refund_percentage
from ordo.services.rate_limiter import BOOKING_CREATE, RateLimiter

logger = logging.getLogger(__name__)

_RESERVE_ATTEMPTS: Final = 2
_ADDRESS_FIELDS: Final = ("street", "city", "state", "postal_code", "country")

_ALLOWED_STATUS_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {
        BookingStatus.IN_PROGRESS,
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
    },
    BookingStatus.IN_PROGRESS: {BookingStatus.COMPLETED},
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
}


class ActingAs(str, enum.Enum):
    """Role a participant claims when editing a booking."""

    CUSTOMER = "customer"
    VENDOR = "vendor"


_UPDATABLE_FIELDS: dict[ActingAs, set[str]] = {
    ActingAs.CUSTOMER: {"customer_notes", "service_address"},
    ActingAs.VENDOR: {"vendor_notes"},
}


@dataclass(slots=True)
class CancellationOutcome:
    booking: Booking
    refund_percentage: Decimal
    refund_amount: Decimal
    refunded_now: Decimal
    refund_pending: bool


def _utcnow(now: datetime | None) -> datetime:
    return normalize_datetime(now) if now is not None else datetime.now(UTC)


def _rate_limit_actor(payload: BookingCreate, customer_id: uuid.UUID | None) -> str:
    if customer_id is not None:
        return str(customer_id)
    if payload.guest is not None:
        return payload.guest.email or payload.guest.phone or payload.guest.name
    return "anonymous"


def _validate_identity(payload: BookingCreate, customer_id: uuid.UUID | None) -> None:
    if customer_id is not None and payload.guest is not None:
        raise ValidationError("Provide either a customer or guest details, not both")
    if customer_id is None:
        if payload.guest is None:
            raise ValidationError("Guest details are required without a customer")
        if not payload.guest.email and not payload.guest.phone:
            raise ValidationError("Guest bookings need an email address or phone")


def _validate_location(payload: BookingCreate) -> None:
    if payload.location_type is not LocationType.CUSTOMER_LOCATION:
        return
    address = payload.service_address or {}
    missing = [name for name in _ADDRESS_FIELDS if not address.get(name)]
    if missing:
        raise ValidationError(
            f"Service address is missing {', '.join(missing)} for customer location"
        )


async def _get_bookable_service(
    session: AsyncSession,
    *,
    vendor_id: uuid.UUID,
    service_id: uuid.UUID,
) -> VendorService:
    service = await session.get(VendorService, service_id)
    if service is None or service.vendor_id != vendor_id:
        raise NotFoundError("Service not found for vendor")
    if not service.is_active:
        raise ValidationError("Service is not available for booking")
    return service


async def _get_booking(
    session: AsyncSession,
    *,
    booking_id: uuid.UUID,
    for_update: bool = False,
) -> Booking:
    stmt = select(Booking).where(Booking.id == booking_id)
    if for_update:
        stmt = stmt.with_for_update()
    booking = (await session.execute(stmt)).scalars().first()
    if booking is None:
        raise NotFoundError("Booking not found")
    return booking


def _require_vendor(booking: Booking, actor_id: uuid.UUID) -> None:
    if booking.vendor_id != actor_id:
        raise AuthorizationError("Only the vendor can perform this action")


def _require_participant(booking: Booking, actor_id: uuid.UUID) -> None:
    if actor_id not in {booking.vendor_id, booking.customer_id}:
        raise AuthorizationError("Only booking participants can perform this action")


def _ensure_transition(booking: Booking, new_status: BookingStatus) -> None:
    allowed = _ALLOWED_STATUS_TRANSITIONS[booking.status]
    if new_status not in allowed:
        raise TransitionError(
            TransitionReason.INVALID_TRANSITION,
            f"Cannot move booking from {booking.status.value} to {new_status.value}",
        )


async def _reserve(
    session: AsyncSession,
    *,
    vendor_id: uuid.UUID,
    service_id: uuid.UUID,
    start_at: datetime,
    duration_minutes: int,
    booking: Booking,
    apply: Callable[[], None],
    exclude_booking_id: uuid.UUID | None = None,
    now: datetime | None = None,
) -> None:
    """Check availability and run ``apply`` then commit, under the vendor/day guard.

    A write conflict or lock failure rolls back and re-runs the check once;
    a second failure is reported as a full slot.
    """
    bucket = local_date(start_at)
    for attempt in range(1, _RESERVE_ATTEMPTS + 1):
        try:
            async with booking_slot_guard(session, vendor_id=vendor_id, bucket=bucket):
                await conflict_service.ensure_available(
                    session,
                    vendor_id=vendor_id,
                    service_id=service_id,
                    requested_start=start_at,
                    duration_minutes=duration_minutes,
                    exclude_booking_id=exclude_booking_id,
                    now=now,
                )
                apply()
                await session.commit()
            if attempt > 1:
                await session.refresh(booking)
            return
        except (IntegrityError, OperationalError) as exc:
            await session.rollback()
            if attempt == _RESERVE_ATTEMPTS:
                raise SchedulingError(SchedulingReason.SLOT_FULL) from exc
            logger.warning(
                "Booking write conflict for vendor %s on %s; retrying", vendor_id, bucket
            )
        except SchedulingError:
            await session.rollback()
            raise


async def create_booking(
    session: AsyncSession,
    *,
    payload: BookingCreate,
    customer_id: uuid.UUID | None = None,
    notifier: Notifier | None = None,
    rate_limiter: RateLimiter | None = None,
    now: datetime | None = None,
) -> Booking:
    if rate_limiter is not None:
        await rate_limiter.hit(_rate_limit_actor(payload, customer_id), BOOKING_CREATE)
    _validate_identity(payload, customer_id)
    _validate_location(payload)

    service = await _get_bookable_service(
        session, vendor_id=payload.vendor_id, service_id=payload.service_id
    )
    duration = payload.duration_minutes or service.duration_minutes or 60
    price = calculate_price(
        service.base_price,
        service.duration_minutes,
        duration,
        deposit_percentage=get_scheduling_settings().deposit_percentage,
    )
    start_at = normalize_datetime(payload.scheduled_at)
    current = _utcnow(now)

    booking = Booking(
        id=uuid.uuid4(),
        customer_id=customer_id,
        guest_name=payload.guest.name if payload.guest else None,
        guest_email=payload.guest.email if payload.guest else None,
        guest_phone=payload.guest.phone if payload.guest else None,
        vendor_id=service.vendor_id,
        service_id=service.id,
        scheduled_at=start_at,
        ends_at=start_at + timedelta(minutes=duration),
        duration_minutes=duration,
        total_amount=price.total,
        deposit_amount=price.deposit,
        currency=service.currency,
        status=BookingStatus.PENDING,
        payment_status=BookingPaymentStatus.PENDING,
        location_type=payload.location_type,
        service_address=payload.service_address,
        customer_notes=payload.customer_notes,
    )

    await _reserve(
        session,
        vendor_id=service.vendor_id,
        service_id=service.id,
        start_at=start_at,
        duration_minutes=duration,
        booking=booking,
        apply=lambda: session.add(booking),
        now=current,
    )
    logger.info(
        "Created booking %s for vendor %s at %s",
        booking.booking_reference,
        booking.vendor_id,
        start_at.isoformat(),
    )
    await notify_booking_event(notifier, booking, NotificationEvent.BOOKING_CREATED)
    return booking


async def confirm_booking(
    session: AsyncSession,
    *,
    booking_id: uuid.UUID,
    actor_id: uuid.UUID,
    notifier: Notifier | None = None,
    now: datetime | None = None,
) -> Booking:
    booking = await _get_booking(session, booking_id=booking_id, for_update=True)
    _require_vendor(booking, actor_id)
    _ensure_transition(booking, BookingStatus.CONFIRMED)
    booking.status = BookingStatus.CONFIRMED
    booking.confirmed_at = _utcnow(now)
    await session.commit()
    await notify_booking_event(notifier, booking, NotificationEvent.BOOKING_CONFIRMED)
    return booking


async def start_booking(
    session: AsyncSession,
    *,
    booking_id: uuid.UUID,
    actor_id: uuid.UUID,
    now: datetime | None = None,
) -> Booking:
    booking = await _get_booking(session, booking_id=booking_id, for_update=True)
    _require_vendor(booking, actor_id)
    _ensure_transition(booking, BookingStatus.IN_PROGRESS)
    booking.status = BookingStatus.IN_PROGRESS
    booking.started_at = _utcnow(now)
    await session.commit()
    return booking


async def complete_booking(
    session: AsyncSession,
    *,
    booking_id: uuid.UUID,
    actor_id: uuid.UUID,
    notifier: Notifier | None = None,
    now: datetime | None = None,
) -> Booking:
    booking = await _get_booking(session, booking_id=booking_id, for_update=True)
    _require_vendor(booking, actor_id)
    _ensure_transition(booking, BookingStatus.COMPLETED)
    booking.status = BookingStatus.COMPLETED
    booking.completed_at = _utcnow(now)
    await session.commit()
    await notify_booking_event(notifier, booking, NotificationEvent.BOOKING_COMPLETED)
    return booking


async def cancel_booking(
    session: AsyncSession,
    *,
    booking_id: uuid.UUID,
    actor_id: uuid.UUID,
    reason: str | None = None,
    gateway: PaymentGateway | None = None,
    notifier: Notifier | None = None,
    now: datetime | None = None,
) -> CancellationOutcome:
    """Cancel a pending or confirmed booking and refund by notice tier.

    The refund is computed from completed payments read under row locks in
    the same transaction as the status change. Late cancellations succeed
    with a zero refund.
    """
    current = _utcnow(now)
    booking = await _get_booking(session, booking_id=booking_id, for_update=True)
    try:
        _require_participant(booking, actor_id)
        _ensure_transition(booking, BookingStatus.CANCELLED)
    except (AuthorizationError, TransitionError):
        await session.rollback()
        raise

    paid_stmt = (
        select(Payment)
        .where(
            Payment.booking_id == booking.id,
            Payment.status == PaymentStatus.COMPLETED,
        )
        .with_for_update()
    )
    payments = (await session.execute(paid_stmt)).scalars().all()
    amount_paid = sum((payment.amount for payment in payments), Decimal("0.00"))
    notice = normalize_datetime(booking.scheduled_at) - current
    percentage = refund_percentage(notice)
    refund = compute_refund(amount_paid, notice)

    booking.status = BookingStatus.CANCELLED
    booking.cancelled_at = current
    booking.cancelled_by = actor_id
    booking.cancellation_reason = reason
    booking.cancellation_refund_amount = refund
    await session.commit()
    logger.info(
        "Cancelled booking %s by %s; refund %s (%s%%)",
        booking.booking_reference,
        actor_id,
        refund,
        percentage,
    )

    refunded_now = Decimal("0.00")
    refund_pending = False
    if refund > 0:
        if gateway is None:
            refund_pending = True
        else:
            try:
                refunded_now = await payments_service.issue_cancellation_refund(
                    session, booking_id=booking.id, gateway=gateway
                )
            except PaymentError:
                logger.exception(
                    "Refund for cancelled booking %s left pending", booking.id
                )
                refund_pending = True
        await session.refresh(booking)

    await notify_booking_event(
        notifier,
        booking,
        NotificationEvent.BOOKING_CANCELLED,
        reason=reason,
        refund_amount=str(refund),
    )
    return CancellationOutcome(
        booking=booking,
        refund_percentage=percentage,
        refund_amount=refund,
        refunded_now=refunded_now,
        refund_pending=refund_pending,
    )


async def reschedule_booking(
    session: AsyncSession,
    *,
    booking_id: uuid.UUID,
    actor_id: uuid.UUID,
    new_start: datetime,
    notifier: Notifier | None = None,
    now: datetime | None = None,
) -> Booking:
    current = _utcnow(now)
    booking = await _get_booking(session, booking_id=booking_id)
    _require_participant(booking, actor_id)
    if booking.status is not BookingStatus.PENDING:
        raise TransitionError(
            TransitionReason.INVALID_TRANSITION,
            "Only pending bookings can be rescheduled",
        )
    notice_hours = get_scheduling_settings().reschedule_notice_hours
    if normalize_datetime(booking.scheduled_at) - current < timedelta(hours=notice_hours):
        raise TransitionError(TransitionReason.INSUFFICIENT_NOTICE_FOR_RESCHEDULE)

    previous = normalize_datetime(booking.scheduled_at)
    start_at = normalize_datetime(new_start)
    duration = booking.duration_minutes

    def _move() -> None:
        booking.scheduled_at = start_at
        booking.ends_at = start_at + timedelta(minutes=duration)

    await _reserve(
        session,
        vendor_id=booking.vendor_id,
        service_id=booking.service_id,
        start_at=start_at,
        duration_minutes=duration,
        booking=booking,
        apply=_move,
        exclude_booking_id=booking.id,
        now=current,
    )
    logger.info(
        "Rescheduled booking %s from %s to %s",
        booking.booking_reference,
        previous.isoformat(),
        start_at.isoformat(),
    )
    await notify_booking_event(
        notifier,
        booking,
        NotificationEvent.BOOKING_RESCHEDULED,
        previous_scheduled_at=previous.isoformat(),
    )
    return booking


async def update_booking(
    session: AsyncSession,
    *,
    booking_id: uuid.UUID,
    actor_id: uuid.UUID,
    acting_as: ActingAs,
    changes: BookingUpdate,
    notifier: Notifier | None = None,
) -> Booking:
    """Apply note/address edits for the role the caller explicitly claims."""
    fields = changes.model_dump(exclude_unset=True)
    if not fields:
        raise ValidationError("No fields to update")

    booking = await _get_booking(session, booking_id=booking_id)
    owner_id = booking.vendor_id if acting_as is ActingAs.VENDOR else booking.customer_id
    if owner_id != actor_id:
        raise AuthorizationError(f"Caller is not the booking {acting_as.value}")
    forbidden = set(fields) - _UPDATABLE_FIELDS[acting_as]
    if forbidden:
        raise AuthorizationError(
            f"{acting_as.value.capitalize()} cannot update {', '.join(sorted(forbidden))}"
        )
    if "service_address" in fields and booking.status is not BookingStatus.PENDING:
        raise TransitionError(
            TransitionReason.INVALID_TRANSITION,
            "Service address can only change while the booking is pending",
        )

    for field_name, value in fields.items():
        setattr(booking, field_name, value)
    await session.commit()
    if "service_address" in fields:
        await notify_booking_event(notifier, booking, NotificationEvent.BOOKING_UPDATED)
    return booking


async def list_vendor_bookings(
    session: AsyncSession,
    *,
    vendor_id: uuid.UUID,
    statuses: set[BookingStatus] | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Booking]:
    stmt = select(Booking).where(Booking.vendor_id == vendor_id)
    if statuses:
        stmt = stmt.where(Booking.status.in_(statuses))
    stmt = stmt.order_by(Booking.scheduled_at).limit(limit).offset(offset)
    result = await session.execute(stmt)
    return list(result.scalars().all())


__all__ = [
    "ActingAs",
    "CancellationOutcome",
    "cancel_booking",
    "complete_booking",
    "confirm_booking",
    "create_booking",
    "list_vendor_bookings",
    "reschedule_booking",
    "start_booking",
    "update_booking",
]
