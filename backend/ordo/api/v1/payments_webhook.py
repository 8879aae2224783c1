"""Payment provider webhook receiver."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ordo.api import deps
from ordo.core.errors import PaymentError, RateLimitExceeded
from ordo.core.settings import get_payment_settings
from ordo.integrations import PaymentGateway, ProviderStatus
from ordo.integrations.payment_gateway import from_cents
from ordo.models import PaymentEvent
from ordo.schemas.payment import WebhookEnvelope
from ordo.security.webhook_signature import verify_signature
from ordo.services.notification_service import Notifier
from ordo.services.rate_limiter import WEBHOOK_RECEIVE, RateLimiter
from ordo.services.reconciliation_service import PaymentReconciler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments-webhook"])

IGNORED = "ignored"

_EVENT_STATUS: dict[str, str] = {
    "charge.succeeded": ProviderStatus.SUCCESSFUL,
    "charge.failed": ProviderStatus.FAILED,
    "charge.pending": ProviderStatus.PENDING,
    "refund.succeeded": ProviderStatus.REFUNDED,
}


async def _record_event(
    session: AsyncSession,
    envelope: WebhookEnvelope,
    payload: dict[str, Any],
    outcome: str,
) -> None:
    session.add(
        PaymentEvent(
            provider_event_id=envelope.id or f"generated_{uuid4().hex}",
            event_type=envelope.type,
            charge_id=envelope.data.charge.id,
            outcome=outcome,
            raw=payload,
        )
    )
    try:
        await session.commit()
    except IntegrityError:  # duplicate deliveries are ignored
        await session.rollback()


async def _process_event(
    session: AsyncSession,
    envelope: WebhookEnvelope,
    *,
    gateway: PaymentGateway | None = None,
    notifier: Notifier | None = None,
) -> str:
    provider_status = _EVENT_STATUS.get(envelope.type)
    if provider_status is None:
        logger.info("Ignoring payment webhook of type %s", envelope.type)
        return IGNORED

    charge = envelope.data.charge
    refund_amount: Decimal | None = None
    if provider_status == ProviderStatus.REFUNDED:
        refund_amount = from_cents(charge.amount)
    reconciler = PaymentReconciler(session, gateway=gateway, notifier=notifier)
    return await reconciler.on_provider_event(
        charge.id,
        provider_status,
        {"webhook_event": envelope.type, "webhook_id": envelope.id},
        refund_amount=refund_amount,
    )


@router.post("/webhook", status_code=status.HTTP_200_OK)
async def handle_webhook(
    request: Request,
    session: AsyncSession = Depends(deps.get_db_session),
    rate_limiter: RateLimiter = Depends(deps.get_rate_limiter),
    notifier: Notifier = Depends(deps.get_notifier),
    gateway: PaymentGateway = Depends(deps.get_payment_gateway),
) -> dict[str, Any]:
    settings = get_payment_settings()
    payload_bytes = await request.body()

    client_host = request.client.host if request.client else "unknown"
    try:
        await rate_limiter.hit(client_host, WEBHOOK_RECEIVE)
    except RateLimitExceeded as exc:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=str(exc),
            headers={"Retry-After": str(max(int(exc.retry_after), 1))},
        ) from exc

    try:
        verify_signature(
            payload_bytes,
            request.headers.get(settings.webhook_signature_header),
            settings.webhook_secret,
            allow_unsigned=settings.allow_unsigned_webhooks,
        )
    except PaymentError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)
        ) from exc

    try:
        envelope = WebhookEnvelope.model_validate_json(payload_bytes)
    except PydanticValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload"
        ) from exc

    outcome = await _process_event(
        session, envelope, gateway=gateway, notifier=notifier
    )
    await _record_event(
        session, envelope, envelope.model_dump(mode="json", by_alias=True), outcome
    )
    return {"status": outcome}


__all__ = ["router"]
