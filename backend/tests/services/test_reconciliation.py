"""Tests for applying provider charge state to payments."""

from __future__ import annotations

import asyncio
import uuid
from datetime import UTC, datetime
from decimal import Decimal

import pytest

from ordo.core.config import get_settings
from ordo.core.errors import PaymentError, PaymentReason
from ordo.db.session import get_sessionmaker
from ordo.integrations import InMemoryGateway, ProviderStatus
from ordo.models import Booking, BookingPaymentStatus, Payment, PaymentStatus
from ordo.schemas.booking import BookingCreate
from ordo.services import booking_service, payments_service
from ordo.services.notification_service import NotificationEvent, RecordingNotifier
from ordo.services.reconciliation_service import (
    PaymentReconciler,
    ReconcileOutcome,
    to_payment_status,
)

pytestmark = pytest.mark.asyncio

NOW = datetime(2030, 1, 1, 9, 0, tzinfo=UTC)
SLOT = datetime(2030, 1, 7, 10, 0, tzinfo=UTC)


class StalledGateway(InMemoryGateway):
    """Creates charges normally but never answers a charge lookup."""

    def __init__(self) -> None:
        super().__init__()
        self.lookups = 0

    async def get_charge(self, charge_id: str):
        self.lookups += 1
        await asyncio.sleep(3600)
        return await super().get_charge(charge_id)


async def _pending_payment(
    session, setup: dict[str, uuid.UUID], gateway: InMemoryGateway
) -> tuple[Booking, Payment]:
    booking = await booking_service.create_booking(
        session,
        payload=BookingCreate(
            vendor_id=setup["vendor_id"],
            service_id=setup["service_id"],
            scheduled_at=SLOT,
        ),
        customer_id=setup["customer_id"],
        now=NOW,
    )
    payment = await payments_service.initiate_payment(
        session, booking_id=booking.id, gateway=gateway
    )
    return booking, payment


async def test_status_mapping() -> None:
    assert to_payment_status("successful") is PaymentStatus.COMPLETED
    assert to_payment_status("SUCCESSFUL") is PaymentStatus.COMPLETED
    assert to_payment_status("pending") is PaymentStatus.PROCESSING
    assert to_payment_status("failed") is PaymentStatus.FAILED
    assert to_payment_status("refunded") is PaymentStatus.REFUNDED
    assert to_payment_status("mystery") is PaymentStatus.PENDING
    assert to_payment_status(None) is PaymentStatus.PENDING


async def test_success_then_replays_and_regressions(
    vendor_setup: dict[str, uuid.UUID], db_url: str
) -> None:
    gateway = InMemoryGateway()
    notifier = RecordingNotifier()
    async with get_sessionmaker(db_url)() as session:
        booking, payment = await _pending_payment(session, vendor_setup, gateway)
        reconciler = PaymentReconciler(session, notifier=notifier)
        charge_id = payment.provider_charge_id

        assert await reconciler.on_provider_event(charge_id, ProviderStatus.SUCCESSFUL) == (
            ReconcileOutcome.APPLIED
        )
        assert payment.status is PaymentStatus.COMPLETED
        assert payment.processed_at is not None
        assert booking.payment_status is BookingPaymentStatus.PAID
        assert notifier.events_for("customer") == [NotificationEvent.PAYMENT_RECEIVED]

        replay = await reconciler.on_provider_event(charge_id, ProviderStatus.SUCCESSFUL)
        late_pending = await reconciler.on_provider_event(charge_id, ProviderStatus.PENDING)
        late_failure = await reconciler.on_provider_event(charge_id, ProviderStatus.FAILED)
        assert replay == ReconcileOutcome.UNCHANGED
        assert late_pending == ReconcileOutcome.STALE
        assert late_failure == ReconcileOutcome.STALE
        assert payment.status is PaymentStatus.COMPLETED
        assert booking.payment_status is BookingPaymentStatus.PAID
        assert len(notifier.sent) == 2

        refunded = await reconciler.on_provider_event(
            charge_id,
            ProviderStatus.REFUNDED,
            {"refund_id": "re_1"},
            refund_amount=Decimal("50.00"),
        )
        assert refunded == ReconcileOutcome.APPLIED
        assert payment.status is PaymentStatus.REFUNDED
        assert payment.refund_amount == Decimal("50.00")
        assert payment.provider_response["refund_id"] == "re_1"
        assert booking.payment_status is BookingPaymentStatus.REFUNDED

        assert (
            await reconciler.on_provider_event(charge_id, ProviderStatus.SUCCESSFUL)
            == ReconcileOutcome.STALE
        )


async def test_failure_is_terminal(
    vendor_setup: dict[str, uuid.UUID], db_url: str
) -> None:
    gateway = InMemoryGateway()
    notifier = RecordingNotifier()
    async with get_sessionmaker(db_url)() as session:
        booking, payment = await _pending_payment(session, vendor_setup, gateway)
        reconciler = PaymentReconciler(session, notifier=notifier)

        outcome = await reconciler.on_provider_event(
            payment.provider_charge_id, ProviderStatus.FAILED
        )
        assert outcome == ReconcileOutcome.APPLIED
        assert booking.payment_status is BookingPaymentStatus.FAILED
        assert notifier.events_for("vendor") == [NotificationEvent.PAYMENT_FAILED]

        revived = await reconciler.on_provider_event(
            payment.provider_charge_id, ProviderStatus.SUCCESSFUL
        )
        assert revived == ReconcileOutcome.STALE
        assert payment.status is PaymentStatus.FAILED


async def test_refund_before_success_is_stale(
    vendor_setup: dict[str, uuid.UUID], db_url: str
) -> None:
    gateway = InMemoryGateway()
    async with get_sessionmaker(db_url)() as session:
        _, payment = await _pending_payment(session, vendor_setup, gateway)
        outcome = await PaymentReconciler(session).on_provider_event(
            payment.provider_charge_id, ProviderStatus.REFUNDED
        )
        assert outcome == ReconcileOutcome.STALE
        assert payment.status is PaymentStatus.PROCESSING


async def test_unknown_charge_is_dropped_on_webhook_path(
    vendor_setup: dict[str, uuid.UUID], db_url: str
) -> None:
    async with get_sessionmaker(db_url)() as session:
        reconciler = PaymentReconciler(session, gateway=InMemoryGateway())
        outcome = await reconciler.on_provider_event("ch_missing", ProviderStatus.SUCCESSFUL)
        assert outcome == ReconcileOutcome.UNKNOWN_CHARGE

        with pytest.raises(PaymentError) as excinfo:
            await reconciler.on_confirm("ch_missing")
    assert excinfo.value.reason is PaymentReason.CHARGE_NOT_FOUND


async def test_confirm_asks_gateway(
    vendor_setup: dict[str, uuid.UUID], db_url: str
) -> None:
    gateway = InMemoryGateway()
    async with get_sessionmaker(db_url)() as session:
        booking, payment = await _pending_payment(session, vendor_setup, gateway)
        charge_id = payment.provider_charge_id
        reconciler = PaymentReconciler(session, gateway=gateway)

        still_pending = await reconciler.on_confirm(charge_id)
        assert still_pending.status is PaymentStatus.PROCESSING

        gateway.settle(charge_id)
        confirmed = await reconciler.on_confirm(charge_id)
        assert confirmed.id == payment.id
        assert confirmed.status is PaymentStatus.COMPLETED
        assert booking.payment_status is BookingPaymentStatus.PAID


async def test_confirm_reports_unavailable_gateway(
    vendor_setup: dict[str, uuid.UUID], db_url: str
) -> None:
    gateway = InMemoryGateway()
    async with get_sessionmaker(db_url)() as session:
        _, payment = await _pending_payment(session, vendor_setup, gateway)
        charge_id = payment.provider_charge_id

        gateway.unavailable = True
        with pytest.raises(PaymentError) as excinfo:
            await PaymentReconciler(session, gateway=gateway).on_confirm(charge_id)
        assert excinfo.value.reason is PaymentReason.GATEWAY_UNAVAILABLE
        assert excinfo.value.retryable

        with pytest.raises(PaymentError):
            await PaymentReconciler(session).on_confirm(charge_id)


async def test_confirm_bounds_a_stalled_gateway(
    vendor_setup: dict[str, uuid.UUID],
    db_url: str,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("PAYMENT_GATEWAY_TIMEOUT", "0.05")
    get_settings.cache_clear()
    gateway = StalledGateway()
    async with get_sessionmaker(db_url)() as session:
        _, payment = await _pending_payment(session, vendor_setup, gateway)
        charge_id = payment.provider_charge_id

        with pytest.raises(PaymentError) as stalled:
            await PaymentReconciler(session, gateway=gateway).on_confirm(charge_id)
        assert stalled.value.reason is PaymentReason.GATEWAY_UNAVAILABLE
        assert stalled.value.retryable
        assert gateway.lookups == 2

        # a gateway that has never seen the charge rejects it outright
        with pytest.raises(PaymentError) as rejected:
            await PaymentReconciler(session, gateway=InMemoryGateway()).on_confirm(
                charge_id
            )
        assert not rejected.value.retryable
    get_settings.cache_clear()


async def test_payment_settling_after_cancellation_is_refunded(
    vendor_setup: dict[str, uuid.UUID], db_url: str
) -> None:
    gateway = InMemoryGateway()
    async with get_sessionmaker(db_url)() as session:
        booking, payment = await _pending_payment(session, vendor_setup, gateway)
        charge_id = payment.provider_charge_id
        outcome = await booking_service.cancel_booking(
            session,
            booking_id=booking.id,
            actor_id=vendor_setup["customer_id"],
            gateway=gateway,
            now=NOW,
        )
        assert outcome.refund_amount == Decimal("0.00")

        gateway.settle(charge_id)
        result = await PaymentReconciler(session, gateway=gateway).on_provider_event(
            charge_id, ProviderStatus.SUCCESSFUL
        )

    assert result == ReconcileOutcome.APPLIED
    assert payment.status is PaymentStatus.REFUNDED
    assert payment.refund_amount == Decimal("150.00")
    assert booking.cancellation_refund_amount == Decimal("150.00")
    assert booking.payment_status is BookingPaymentStatus.REFUNDED
    assert gateway.refunds == [
        (charge_id, None, payments_service.CANCELLATION_REFUND_REASON)
    ]


async def test_late_settlement_without_gateway_leaves_refund_owed(
    vendor_setup: dict[str, uuid.UUID], db_url: str
) -> None:
    gateway = InMemoryGateway()
    async with get_sessionmaker(db_url)() as session:
        booking, payment = await _pending_payment(session, vendor_setup, gateway)
        booking_id = booking.id
        charge_id = payment.provider_charge_id
        await booking_service.cancel_booking(
            session, booking_id=booking_id, actor_id=vendor_setup["customer_id"], now=NOW
        )

        await PaymentReconciler(session).on_provider_event(
            charge_id, ProviderStatus.SUCCESSFUL
        )
        assert payment.status is PaymentStatus.COMPLETED
        assert booking.cancellation_refund_amount == Decimal("150.00")
        assert gateway.refunds == []

        refunded = await payments_service.issue_cancellation_refund(
            session, booking_id=booking_id, gateway=gateway
        )
    assert refunded == Decimal("150.00")
    assert payment.status is PaymentStatus.REFUNDED
