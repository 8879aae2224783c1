"""Common API dependencies."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncSession

from ordo.core.config import get_settings
from ordo.core.settings import get_payment_settings
from ordo.db.session import get_session
from ordo.integrations import InMemoryGateway, PaymentGateway, StripeGateway
from ordo.services.notification_service import LoggingNotifier, Notifier
from ordo.services.rate_limiter import RateLimiter, build_rate_limiter


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide an async database session."""
    async for session in get_session():
        yield session


@lru_cache
def get_payment_gateway() -> PaymentGateway:
    """Return the configured payment gateway."""
    settings = get_payment_settings()
    if settings.provider == "stripe":
        if not settings.stripe_secret_key:
            raise RuntimeError("STRIPE_SECRET_KEY is required for the stripe provider")
        return StripeGateway(settings.stripe_secret_key)
    return InMemoryGateway()


@lru_cache
def get_notifier() -> Notifier:
    return LoggingNotifier()


@lru_cache
def get_rate_limiter() -> RateLimiter:
    """Return the process-wide rate limiter, Redis-backed when configured."""
    settings = get_settings()
    return build_rate_limiter(
        redis_url=settings.redis_url,
        booking_create_limit=settings.rate_limit_booking_create,
        webhook_limit=settings.rate_limit_webhook,
    )


__all__ = [
    "get_db_session",
    "get_notifier",
    "get_payment_gateway",
    "get_rate_limiter",
]
