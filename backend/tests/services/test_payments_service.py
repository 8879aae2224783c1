"""Tests for payment initiation, gateway calls and refunds."""

from __future__ import annotations

import asyncio
import uuid
from datetime import UTC, datetime
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from ordo.core.errors import PaymentError, PaymentReason, ValidationError
from ordo.db.session import get_sessionmaker
from ordo.integrations import InMemoryGateway, PaymentGatewayError
from ordo.integrations.payment_gateway import call_gateway
from ordo.models import Booking, Payment, PaymentStatus
from ordo.schemas.booking import BookingCreate
from ordo.services import booking_service, payments_service
from ordo.services.reconciliation_service import PaymentReconciler

pytestmark = pytest.mark.asyncio

NOW = datetime(2030, 1, 1, 9, 0, tzinfo=UTC)
SLOT = datetime(2030, 1, 7, 10, 0, tzinfo=UTC)


async def _booking(session, setup: dict[str, uuid.UUID]) -> Booking:
    return await booking_service.create_booking(
        session,
        payload=BookingCreate(
            vendor_id=setup["vendor_id"],
            service_id=setup["service_id"],
            scheduled_at=SLOT,
        ),
        customer_id=setup["customer_id"],
        now=NOW,
    )


async def _settle(session, gateway: InMemoryGateway, payment: Payment) -> None:
    gateway.settle(payment.provider_charge_id)
    await PaymentReconciler(session, gateway=gateway).on_confirm(
        payment.provider_charge_id
    )


async def test_initiate_defaults_to_balance_and_splits_fee(
    vendor_setup: dict[str, uuid.UUID], db_url: str
) -> None:
    gateway = InMemoryGateway()
    async with get_sessionmaker(db_url)() as session:
        booking = await _booking(session, vendor_setup)
        payment = await payments_service.initiate_payment(
            session, booking_id=booking.id, gateway=gateway
        )
    assert payment.amount == Decimal("150.00")
    assert payment.platform_fee == Decimal("7.50")
    assert payment.vendor_amount == Decimal("142.50")
    assert payment.platform_fee + payment.vendor_amount == payment.amount
    assert payment.status is PaymentStatus.PROCESSING
    assert payment.provider == "memory"
    assert payment.charge_metadata["booking_reference"] == booking.booking_reference


async def test_initiate_is_idempotent_for_same_balance(
    vendor_setup: dict[str, uuid.UUID], db_url: str
) -> None:
    gateway = InMemoryGateway()
    async with get_sessionmaker(db_url)() as session:
        booking = await _booking(session, vendor_setup)
        first = await payments_service.initiate_payment(
            session, booking_id=booking.id, gateway=gateway
        )
        second = await payments_service.initiate_payment(
            session, booking_id=booking.id, gateway=gateway
        )
        rows = await session.scalar(select(func.count(Payment.id)))
    assert first.id == second.id
    assert rows == 1


async def test_deposit_then_balance(
    vendor_setup: dict[str, uuid.UUID], db_url: str
) -> None:
    gateway = InMemoryGateway()
    async with get_sessionmaker(db_url)() as session:
        booking = await _booking(session, vendor_setup)
        deposit = await payments_service.initiate_payment(
            session,
            booking_id=booking.id,
            gateway=gateway,
            amount=booking.deposit_amount,
        )
        await _settle(session, gateway, deposit)

        assert await payments_service.total_paid(session, booking_id=booking.id) == Decimal(
            "45.00"
        )
        assert await payments_service.remaining_amount(
            session, booking=booking
        ) == Decimal("105.00")

        with pytest.raises(ValidationError):
            await payments_service.initiate_payment(
                session,
                booking_id=booking.id,
                gateway=gateway,
                amount=Decimal("200.00"),
            )

        balance = await payments_service.initiate_payment(
            session, booking_id=booking.id, gateway=gateway
        )
        assert balance.amount == Decimal("105.00")
        await _settle(session, gateway, balance)

        with pytest.raises(ValidationError):
            await payments_service.initiate_payment(
                session, booking_id=booking.id, gateway=gateway
            )


async def test_cancelled_booking_cannot_be_paid(
    vendor_setup: dict[str, uuid.UUID], db_url: str
) -> None:
    async with get_sessionmaker(db_url)() as session:
        booking = await _booking(session, vendor_setup)
        await booking_service.cancel_booking(
            session, booking_id=booking.id, actor_id=vendor_setup["customer_id"], now=NOW
        )
        with pytest.raises(ValidationError):
            await payments_service.initiate_payment(
                session, booking_id=booking.id, gateway=InMemoryGateway()
            )


async def test_unavailable_gateway_is_retried_once(
    vendor_setup: dict[str, uuid.UUID], db_url: str
) -> None:
    gateway = InMemoryGateway()
    gateway.unavailable = True
    async with get_sessionmaker(db_url)() as session:
        booking = await _booking(session, vendor_setup)
        with pytest.raises(PaymentError) as excinfo:
            await payments_service.initiate_payment(
                session, booking_id=booking.id, gateway=gateway
            )
        rows = await session.scalar(select(func.count(Payment.id)))
    assert excinfo.value.reason is PaymentReason.GATEWAY_UNAVAILABLE
    assert excinfo.value.retryable
    assert gateway.calls == 2
    assert rows == 0


async def test_call_gateway_bounds_slow_calls() -> None:
    attempts = 0

    async def slow() -> str:
        nonlocal attempts
        attempts += 1
        await asyncio.sleep(1)
        return "late"

    with pytest.raises(PaymentError) as excinfo:
        await call_gateway(slow, description="test", timeout=0.01)
    assert excinfo.value.retryable
    assert attempts == 2


async def test_call_gateway_does_not_retry_rejections() -> None:
    attempts = 0

    async def rejected() -> str:
        nonlocal attempts
        attempts += 1
        raise PaymentGatewayError("card declined")

    with pytest.raises(PaymentError) as excinfo:
        await call_gateway(rejected, description="test", timeout=1)
    assert not excinfo.value.retryable
    assert attempts == 1


async def test_refund_payment_rules(
    vendor_setup: dict[str, uuid.UUID], db_url: str
) -> None:
    gateway = InMemoryGateway()
    async with get_sessionmaker(db_url)() as session:
        booking = await _booking(session, vendor_setup)
        payment = await payments_service.initiate_payment(
            session, booking_id=booking.id, gateway=gateway
        )
        payment_id = payment.id

        with pytest.raises(PaymentError) as not_completed:
            await payments_service.refund_payment(
                session, payment_id=payment_id, gateway=gateway
            )
        assert not_completed.value.reason is PaymentReason.INVALID_REFUND

        stored = await session.get(Payment, payment_id)
        assert stored is not None
        await _settle(session, gateway, stored)

        with pytest.raises(PaymentError) as too_much:
            await payments_service.refund_payment(
                session,
                payment_id=payment_id,
                gateway=gateway,
                amount=Decimal("150.01"),
            )
        assert too_much.value.reason is PaymentReason.INVALID_REFUND

        refunded = await payments_service.refund_payment(
            session,
            payment_id=payment_id,
            gateway=gateway,
            amount=Decimal("50.00"),
            reason="goodwill",
        )
    assert refunded.status is PaymentStatus.REFUNDED
    assert refunded.refund_amount == Decimal("50.00")
    assert refunded.refund_reason == "goodwill"
    assert gateway.refunds[0][1:] == (5000, "goodwill")


async def test_cancellation_refund_ignores_earlier_explicit_refunds(
    vendor_setup: dict[str, uuid.UUID], db_url: str
) -> None:
    gateway = InMemoryGateway()
    async with get_sessionmaker(db_url)() as session:
        booking = await _booking(session, vendor_setup)
        booking_id = booking.id
        larger = await payments_service.initiate_payment(
            session, booking_id=booking_id, gateway=gateway, amount=Decimal("100.00")
        )
        await _settle(session, gateway, larger)
        smaller = await payments_service.initiate_payment(
            session, booking_id=booking_id, gateway=gateway
        )
        assert smaller.amount == Decimal("50.00")
        await _settle(session, gateway, smaller)
        await payments_service.refund_payment(
            session, payment_id=smaller.id, gateway=gateway, reason="goodwill"
        )

        outcome = await booking_service.cancel_booking(
            session,
            booking_id=booking_id,
            actor_id=vendor_setup["customer_id"],
            gateway=gateway,
            now=NOW,
        )
        assert outcome.refund_amount == Decimal("100.00")
        assert outcome.refunded_now == Decimal("100.00")
        assert not outcome.refund_pending

        again = await payments_service.issue_cancellation_refund(
            session, booking_id=booking_id, gateway=gateway
        )
        assert again == Decimal("0.00")

    assert larger.status is PaymentStatus.REFUNDED
    assert larger.refund_amount == Decimal("100.00")
    assert gateway.refunds[-1] == (
        larger.provider_charge_id,
        None,
        payments_service.CANCELLATION_REFUND_REASON,
    )
    assert len(gateway.refunds) == 2
