"""Service layer for booking payments and refunds."""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ordo.core.errors import (
    NotFoundError,
    PaymentError,
    PaymentReason,
    ValidationError,
)
from ordo.core.settings import get_payment_settings
from ordo.integrations.payment_gateway import PaymentGateway, call_gateway, to_cents
from ordo.models import Booking, BookingStatus, Payment, PaymentStatus
from ordo.services.pricing_service import split_platform_fee
from ordo.services.reconciliation_service import apply_status, to_payment_status

logger = logging.getLogger(__name__)

CANCELLATION_REFUND_REASON = "booking cancellation"
_ZERO = Decimal("0.00")


async def total_paid(session: AsyncSession, *, booking_id: uuid.UUID) -> Decimal:
    """Sum of completed payments for a booking."""
    stmt = select(func.coalesce(func.sum(Payment.amount), 0)).where(
        Payment.booking_id == booking_id,
        Payment.status == PaymentStatus.COMPLETED,
    )
    value = (await session.execute(stmt)).scalar_one()
    return Decimal(str(value)).quantize(Decimal("0.01"))


async def remaining_amount(session: AsyncSession, *, booking: Booking) -> Decimal:
    paid = await total_paid(session, booking_id=booking.id)
    return max(booking.total_amount - paid, _ZERO)


async def initiate_payment(
    session: AsyncSession,
    *,
    booking_id: uuid.UUID,
    gateway: PaymentGateway,
    amount: Decimal | None = None,
    payment_method: str = "card",
) -> Payment:
    """Create a provider charge for a booking and persist the payment row."""
    booking = await session.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError("Booking not found")
    if booking.status is BookingStatus.CANCELLED:
        raise ValidationError("Cancelled bookings cannot be paid")

    due = await remaining_amount(session, booking=booking)
    charge_amount = (amount if amount is not None else due).quantize(Decimal("0.01"))
    if charge_amount <= _ZERO:
        raise ValidationError("Booking balance is zero; no payment required")
    if charge_amount > due:
        raise ValidationError("Payment exceeds the outstanding balance")

    settings = get_payment_settings()
    metadata = {
        "booking_id": str(booking.id),
        "booking_reference": booking.booking_reference,
        "vendor_id": str(booking.vendor_id),
    }
    charge = await call_gateway(
        lambda: gateway.create_charge(
            to_cents(charge_amount),
            booking.currency,
            metadata,
            idempotency_key=f"booking-{booking.id}-{to_cents(charge_amount)}-{to_cents(due)}",
        ),
        description="charge creation",
    )
    existing = await session.scalar(
        select(Payment).where(Payment.provider_charge_id == charge.id)
    )
    if existing is not None:
        # the provider replayed an earlier charge for the same idempotency key
        return existing

    fee, vendor_amount = split_platform_fee(
        charge_amount, settings.platform_fee_percentage
    )
    payment = Payment(
        booking_id=booking.id,
        customer_id=booking.customer_id,
        vendor_id=booking.vendor_id,
        amount=charge_amount,
        platform_fee=fee,
        vendor_amount=vendor_amount,
        currency=booking.currency,
        status=PaymentStatus.PENDING,
        payment_method=payment_method,
        provider=gateway.name,
        provider_charge_id=charge.id,
        charge_metadata=metadata,
        provider_response=charge.raw,
    )
    session.add(payment)
    await session.flush()
    target = to_payment_status(charge.status)
    if target is not PaymentStatus.PENDING:
        apply_status(payment, booking, target)
    await session.commit()
    logger.info(
        "Created payment %s (%s) for booking %s", payment.id, charge.id, booking.id
    )
    return payment


async def refund_payment(
    session: AsyncSession,
    *,
    payment_id: uuid.UUID,
    gateway: PaymentGateway,
    amount: Decimal | None = None,
    reason: str | None = None,
) -> Payment:
    """Refund a completed payment in full or in part; refunded is terminal."""
    stmt = select(Payment).where(Payment.id == payment_id).with_for_update()
    payment = (await session.execute(stmt)).scalars().first()
    if payment is None:
        raise NotFoundError("Payment not found")
    if payment.status is not PaymentStatus.COMPLETED:
        await session.rollback()
        raise PaymentError(
            PaymentReason.INVALID_REFUND, "Only completed payments can be refunded"
        )
    refund_amount = (amount if amount is not None else payment.amount).quantize(
        Decimal("0.01")
    )
    if refund_amount <= _ZERO or refund_amount > payment.amount:
        await session.rollback()
        raise PaymentError(PaymentReason.INVALID_REFUND, "Invalid refund amount")

    await _refund_locked(
        session, payment=payment, gateway=gateway, amount=refund_amount, reason=reason
    )
    await session.commit()
    return payment


async def _refund_locked(
    session: AsyncSession,
    *,
    payment: Payment,
    gateway: PaymentGateway,
    amount: Decimal,
    reason: str | None,
) -> None:
    booking = await session.get(Booking, payment.booking_id)
    if booking is None:
        raise NotFoundError("Booking not found")
    cents = None if amount == payment.amount else to_cents(amount)
    refund_id = await call_gateway(
        lambda: gateway.create_refund(payment.provider_charge_id, cents, reason),
        description="refund",
    )
    apply_status(
        payment,
        booking,
        PaymentStatus.REFUNDED,
        raw={"refund_id": refund_id},
        refund_amount=amount,
        refund_reason=reason,
    )
    logger.info("Refunded %s on payment %s (%s)", amount, payment.id, refund_id)


async def issue_cancellation_refund(
    session: AsyncSession,
    *,
    booking_id: uuid.UUID,
    gateway: PaymentGateway,
) -> Decimal:
    """Refund whatever part of a cancelled booking's refund is still owed.

    Safe to re-run after a gateway failure: refunds already issued for the
    cancellation are subtracted first. Refunds made earlier through
    ``refund_payment`` are not, since the owed amount was computed from the
    payments still completed at cancellation time. Returns the amount
    refunded by this call.
    """
    booking = await session.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError("Booking not found")
    owed = booking.cancellation_refund_amount or _ZERO
    if booking.status is not BookingStatus.CANCELLED or owed <= _ZERO:
        return _ZERO

    refunded_stmt = select(func.coalesce(func.sum(Payment.refund_amount), 0)).where(
        Payment.booking_id == booking_id,
        Payment.status == PaymentStatus.REFUNDED,
        Payment.refund_reason == CANCELLATION_REFUND_REASON,
    )
    already = Decimal(str((await session.execute(refunded_stmt)).scalar_one()))
    outstanding = (owed - already).quantize(Decimal("0.01"))
    if outstanding <= _ZERO:
        return _ZERO

    payments_stmt = (
        select(Payment)
        .where(
            Payment.booking_id == booking_id,
            Payment.status == PaymentStatus.COMPLETED,
        )
        .order_by(Payment.created_at, Payment.id)
        .with_for_update()
    )
    payments = (await session.execute(payments_stmt)).scalars().all()
    issued = _ZERO
    try:
        for payment in payments:
            if outstanding <= _ZERO:
                break
            portion = min(outstanding, payment.amount)
            await _refund_locked(
                session,
                payment=payment,
                gateway=gateway,
                amount=portion,
                reason=CANCELLATION_REFUND_REASON,
            )
            outstanding -= portion
            issued += portion
    finally:
        # keep refunds the gateway already accepted even if a later one failed
        await session.commit()
    return issued


__all__ = [
    "CANCELLATION_REFUND_REASON",
    "initiate_payment",
    "issue_cancellation_refund",
    "refund_payment",
    "remaining_amount",
    "total_paid",
]
