"""Webhook endpoint tests: signatures, reconciliation and audit rows."""

from __future__ import annotations

import json
import uuid
from datetime import UTC, datetime
from typing import Any

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from ordo.core.config import get_settings
from ordo.db.session import get_sessionmaker
from ordo.integrations import InMemoryGateway
from ordo.models import Booking, BookingPaymentStatus, Payment, PaymentEvent, PaymentStatus
from ordo.schemas.booking import BookingCreate
from ordo.security.webhook_signature import compute_signature
from ordo.services import booking_service, payments_service

pytestmark = pytest.mark.asyncio

WEBHOOK_URL = "/api/v1/payments/webhook"
NOW = datetime(2030, 1, 1, 9, 0, tzinfo=UTC)
SLOT = datetime(2030, 1, 7, 10, 0, tzinfo=UTC)


async def _seed_payment(setup: dict[str, uuid.UUID], db_url: str) -> tuple[uuid.UUID, str]:
    async with get_sessionmaker(db_url)() as session:
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
            session, booking_id=booking.id, gateway=InMemoryGateway()
        )
        return booking.id, payment.provider_charge_id


def _envelope(event_type: str, charge_id: str, **charge: Any) -> bytes:
    body = {
        "id": f"evt_{uuid.uuid4().hex}",
        "type": event_type,
        "data": {"object": {"id": charge_id, **charge}},
    }
    return json.dumps(body).encode()


async def _post(client: AsyncClient, body: bytes, signature: str | None = None):
    headers = {"Content-Type": "application/json"}
    secret = get_settings().payments_webhook_secret
    if signature is None and secret:
        signature = compute_signature(body, secret)
    if signature:
        headers["X-Webhook-Signature"] = signature
    return await client.post(WEBHOOK_URL, content=body, headers=headers)


async def test_signed_success_marks_booking_paid(
    vendor_setup: dict[str, uuid.UUID], db_url: str, api_client: AsyncClient
) -> None:
    booking_id, charge_id = await _seed_payment(vendor_setup, db_url)

    body = _envelope("charge.succeeded", charge_id, status="successful", amount=15000)
    response = await _post(api_client, body)
    assert response.status_code == 200
    assert response.json() == {"status": "applied"}

    replay = await _post(api_client, body)
    assert replay.json() == {"status": "unchanged"}

    async with get_sessionmaker(db_url)() as session:
        booking = await session.get(Booking, booking_id)
        payment = (
            await session.execute(
                select(Payment).where(Payment.provider_charge_id == charge_id)
            )
        ).scalar_one()
        events = (await session.execute(select(PaymentEvent))).scalars().all()
    assert booking is not None
    assert booking.payment_status is BookingPaymentStatus.PAID
    assert payment.status is PaymentStatus.COMPLETED
    assert len(events) == 1
    assert events[0].outcome == "applied"
    assert events[0].charge_id == charge_id


async def test_bad_signature_is_rejected_before_any_change(
    vendor_setup: dict[str, uuid.UUID], db_url: str, api_client: AsyncClient
) -> None:
    _, charge_id = await _seed_payment(vendor_setup, db_url)
    body = _envelope("charge.succeeded", charge_id)

    response = await _post(api_client, body, signature="deadbeef")
    assert response.status_code == 400

    async with get_sessionmaker(db_url)() as session:
        payment = (
            await session.execute(
                select(Payment).where(Payment.provider_charge_id == charge_id)
            )
        ).scalar_one()
        events = (await session.execute(select(PaymentEvent))).scalars().all()
    assert payment.status is PaymentStatus.PROCESSING
    assert events == []


async def test_refund_event_records_amount(
    vendor_setup: dict[str, uuid.UUID], db_url: str, api_client: AsyncClient
) -> None:
    _, charge_id = await _seed_payment(vendor_setup, db_url)
    await _post(api_client, _envelope("charge.succeeded", charge_id))

    response = await _post(api_client, _envelope("refund.succeeded", charge_id, amount=4500))
    assert response.json() == {"status": "applied"}

    async with get_sessionmaker(db_url)() as session:
        payment = (
            await session.execute(
                select(Payment).where(Payment.provider_charge_id == charge_id)
            )
        ).scalar_one()
    assert payment.status is PaymentStatus.REFUNDED
    assert str(payment.refund_amount) == "45.00"


async def test_unknown_charge_and_type_are_acknowledged(
    vendor_setup: dict[str, uuid.UUID], api_client: AsyncClient
) -> None:
    unknown = await _post(api_client, _envelope("charge.succeeded", "ch_nobody"))
    assert unknown.status_code == 200
    assert unknown.json() == {"status": "unknown_charge"}

    ignored = await _post(api_client, _envelope("customer.created", "ch_nobody"))
    assert ignored.status_code == 200
    assert ignored.json() == {"status": "ignored"}


async def test_malformed_payload_is_rejected(api_client: AsyncClient) -> None:
    response = await _post(api_client, b'{"type": "charge.succeeded"}')
    assert response.status_code == 400


async def test_missing_secret_rejects_unless_opted_in(
    vendor_setup: dict[str, uuid.UUID],
    api_client: AsyncClient,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    body = _envelope("charge.succeeded", "ch_nobody")
    monkeypatch.delenv("PAYMENTS_WEBHOOK_SECRET")
    get_settings.cache_clear()
    try:
        rejected = await api_client.post(WEBHOOK_URL, content=body)
        assert rejected.status_code == 400

        monkeypatch.setenv("PAYMENTS_ALLOW_UNSIGNED_WEBHOOKS", "true")
        get_settings.cache_clear()
        accepted = await api_client.post(WEBHOOK_URL, content=body)
        assert accepted.status_code == 200
    finally:
        monkeypatch.undo()
        get_settings.cache_clear()
