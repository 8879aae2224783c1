"""Reconcile payment rows with provider-reported charge state.

Provider states arrive from webhooks and from synchronous confirm calls, in
any order and possibly more than once. Each update locks the payment row,
maps the provider state onto ``PaymentStatus`` and applies it only when it
moves the payment forward; repeats are no-ops and regressions are ignored.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Mapping

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ordo.core.errors import PaymentError, PaymentReason
from ordo.integrations.payment_gateway import PaymentGateway, call_gateway
from ordo.models import (
    Booking,
    BookingPaymentStatus,
    BookingStatus,
    Payment,
    PaymentStatus,
)
from ordo.services.conflict_service import normalize_datetime
from ordo.services.notification_service import (
    NotificationEvent,
    Notifier,
    notify_booking_event,
)
from ordo.services.pricing_service import compute_refund

logger = logging.getLogger(__name__)

_STATUS_MAP: Mapping[str, PaymentStatus] = {
    "successful": PaymentStatus.COMPLETED,
    "pending": PaymentStatus.PROCESSING,
    "failed": PaymentStatus.FAILED,
    "refunded": PaymentStatus.REFUNDED,
}

_ALLOWED_STATUS_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.PENDING: {
        PaymentStatus.PROCESSING,
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
    },
    PaymentStatus.PROCESSING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED},
    PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),
    PaymentStatus.REFUNDED: set(),
}


class ReconcileOutcome:
    APPLIED = "applied"
    UNCHANGED = "unchanged"
    STALE = "stale"
    UNKNOWN_CHARGE = "unknown_charge"


def to_payment_status(provider_status: str | None) -> PaymentStatus:
    return _STATUS_MAP.get((provider_status or "").lower(), PaymentStatus.PENDING)


def _owe_late_refund(payment: Payment, booking: Booking) -> None:
    """Extend a cancelled booking's refund to a payment that settled after it."""
    if booking.cancelled_at is None:
        return
    notice = normalize_datetime(booking.scheduled_at) - normalize_datetime(
        booking.cancelled_at
    )
    extra = compute_refund(payment.amount, notice)
    booking.cancellation_refund_amount = (
        booking.cancellation_refund_amount or Decimal("0.00")
    ) + extra
    logger.warning(
        "Payment %s settled after booking %s was cancelled; %s more is owed",
        payment.id,
        booking.id,
        extra,
    )


async def _lock_payment(session: AsyncSession, charge_id: str) -> Payment | None:
    stmt = (
        select(Payment)
        .where(Payment.provider_charge_id == charge_id)
        .with_for_update()
    )
    return (await session.execute(stmt)).scalars().first()


def apply_status(
    payment: Payment,
    booking: Booking,
    target: PaymentStatus,
    *,
    raw: dict[str, Any] | None = None,
    refund_amount: Decimal | None = None,
    refund_reason: str | None = None,
    now: datetime | None = None,
) -> str:
    """Move ``payment`` to ``target`` if allowed; return the outcome label."""
    if raw:
        payment.provider_response = {**(payment.provider_response or {}), **raw}
    if payment.status == target:
        return ReconcileOutcome.UNCHANGED
    if target not in _ALLOWED_STATUS_TRANSITIONS[payment.status]:
        logger.info(
            "Ignoring stale %s for payment %s already %s",
            target.value,
            payment.id,
            payment.status.value,
        )
        return ReconcileOutcome.STALE

    moment = now or datetime.now(UTC)
    payment.status = target
    if target is PaymentStatus.COMPLETED:
        payment.processed_at = moment
        booking.payment_status = BookingPaymentStatus.PAID
        if booking.status is BookingStatus.CANCELLED:
            _owe_late_refund(payment, booking)
    elif target is PaymentStatus.FAILED:
        if booking.payment_status is not BookingPaymentStatus.PAID:
            booking.payment_status = BookingPaymentStatus.FAILED
    elif target is PaymentStatus.REFUNDED:
        payment.refunded_at = moment
        payment.refund_amount = refund_amount if refund_amount is not None else payment.amount
        payment.refund_reason = refund_reason
        booking.payment_status = BookingPaymentStatus.REFUNDED
    logger.info("Payment %s moved to %s", payment.id, target.value)
    return ReconcileOutcome.APPLIED


class PaymentReconciler:
    """Applies provider charge state to payments and their bookings."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        gateway: PaymentGateway | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self._session = session
        self._gateway = gateway
        self._notifier = notifier

    async def _apply(
        self,
        payment: Payment,
        provider_status: str | None,
        raw: dict[str, Any] | None,
        *,
        refund_amount: Decimal | None = None,
    ) -> str:
        booking = await self._session.get(Booking, payment.booking_id)
        if booking is None:  # pragma: no cover - guarded by the foreign key
            raise PaymentError(PaymentReason.CHARGE_NOT_FOUND, "Payment has no booking")
        target = to_payment_status(provider_status)
        outcome = apply_status(
            payment,
            booking,
            target,
            raw=raw,
            refund_amount=refund_amount,
            refund_reason="provider refund" if target is PaymentStatus.REFUNDED else None,
        )
        await self._session.commit()
        if outcome == ReconcileOutcome.APPLIED:
            if target is PaymentStatus.COMPLETED:
                if booking.status is BookingStatus.CANCELLED:
                    await self._refund_cancelled(booking)
                await notify_booking_event(
                    self._notifier,
                    booking,
                    NotificationEvent.PAYMENT_RECEIVED,
                    amount=str(payment.amount),
                )
            elif target is PaymentStatus.FAILED:
                await notify_booking_event(
                    self._notifier, booking, NotificationEvent.PAYMENT_FAILED
                )
        return outcome

    async def _refund_cancelled(self, booking: Booking) -> None:
        if self._gateway is None:
            logger.warning(
                "No gateway to refund cancelled booking %s; refund left pending",
                booking.id,
            )
            return
        from ordo.services import payments_service  # local import to avoid cycle

        try:
            await payments_service.issue_cancellation_refund(
                self._session, booking_id=booking.id, gateway=self._gateway
            )
        except PaymentError:
            logger.exception(
                "Refund for cancelled booking %s left pending", booking.id
            )

    async def on_provider_event(
        self,
        charge_id: str,
        provider_status: str | None,
        raw_payload: dict[str, Any] | None = None,
        *,
        refund_amount: Decimal | None = None,
    ) -> str:
        """Webhook path; unknown charges are logged and dropped."""
        payment = await _lock_payment(self._session, charge_id)
        if payment is None:
            await self._session.rollback()
            logger.warning("Dropping provider event for unknown charge %s", charge_id)
            return ReconcileOutcome.UNKNOWN_CHARGE
        return await self._apply(
            payment, provider_status, raw_payload, refund_amount=refund_amount
        )

    async def on_confirm(self, charge_id: str) -> Payment:
        """Synchronous confirm path: ask the gateway and apply its answer."""
        known = await self._session.scalar(
            select(Payment.id).where(Payment.provider_charge_id == charge_id)
        )
        if known is None:
            raise PaymentError(PaymentReason.CHARGE_NOT_FOUND)
        gateway = self._gateway
        if gateway is None:
            raise PaymentError(
                PaymentReason.GATEWAY_UNAVAILABLE, "No payment gateway configured"
            )
        charge = await call_gateway(
            lambda: gateway.get_charge(charge_id), description="charge lookup"
        )

        payment = await _lock_payment(self._session, charge_id)
        if payment is None:  # pragma: no cover - rows are never deleted
            raise PaymentError(PaymentReason.CHARGE_NOT_FOUND)
        await self._apply(payment, charge.status, charge.raw or {"status": charge.status})
        return payment


__all__ = [
    "PaymentReconciler",
    "ReconcileOutcome",
    "apply_status",
    "to_payment_status",
]
