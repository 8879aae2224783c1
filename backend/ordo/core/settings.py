"""Specialized settings adapters for the scheduling and payment services."""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel

from ordo.core.config import get_settings


class PaymentSettings(BaseModel):
    """Slim view of payment-related configuration."""

    provider: str = "memory"
    stripe_secret_key: str | None = None
    webhook_secret: str | None = None
    webhook_signature_header: str = "X-Webhook-Signature"
    allow_unsigned_webhooks: bool = False
    gateway_timeout: float = 10.0
    platform_fee_percentage: Decimal = Decimal("5.0")
    default_currency: str = "ZAR"


class SchedulingSettings(BaseModel):
    """Slim view of scheduling configuration."""

    timezone: str = "UTC"
    reschedule_notice_hours: int = 12
    deposit_percentage: Decimal = Decimal("30")
    booking_create_limit: str = "10/minute"


def get_payment_settings() -> PaymentSettings:
    """Return payment-specific configuration."""

    settings = get_settings()
    return PaymentSettings(
        provider=settings.payments_provider,
        stripe_secret_key=settings.stripe_secret_key or None,
        webhook_secret=settings.payments_webhook_secret or None,
        webhook_signature_header=settings.payments_webhook_signature_header,
        allow_unsigned_webhooks=settings.payments_allow_unsigned_webhooks,
        gateway_timeout=settings.payment_gateway_timeout,
        platform_fee_percentage=Decimal(str(settings.platform_fee_percentage)),
        default_currency=settings.default_currency,
    )


def get_scheduling_settings() -> SchedulingSettings:
    """Return scheduling-specific configuration."""

    settings = get_settings()
    return SchedulingSettings(
        timezone=settings.scheduling_timezone,
        reschedule_notice_hours=settings.reschedule_notice_hours,
        deposit_percentage=Decimal(str(settings.deposit_percentage)),
        booking_create_limit=settings.rate_limit_booking_create,
    )
