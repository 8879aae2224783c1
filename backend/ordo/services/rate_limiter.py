"""Fixed-window rate limiting keyed by (actor, action)."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Mapping, Protocol

import redis.asyncio as redis  # type: ignore[import-untyped]

from ordo.core.errors import RateLimitExceeded, ValidationError

logger = logging.getLogger(__name__)

_PERIOD_SECONDS: Mapping[str, int] = {
    "second": 1,
    "minute": 60,
    "hour": 3600,
    "day": 86400,
}

BOOKING_CREATE = "booking.create"
WEBHOOK_RECEIVE = "payments.webhook"


@dataclass(slots=True, frozen=True)
class RateLimit:
    count: int
    period_seconds: int

    @classmethod
    def parse(cls, value: str) -> "RateLimit":
        """Parse limits written like ``"10/minute"``."""
        try:
            raw_count, raw_period = value.strip().split("/", 1)
            count = int(raw_count)
            period = _PERIOD_SECONDS[raw_period.strip().lower().rstrip("s")]
        except (KeyError, ValueError) as exc:
            raise ValidationError(f"Invalid rate limit {value!r}") from exc
        if count <= 0:
            raise ValidationError(f"Invalid rate limit {value!r}")
        return cls(count=count, period_seconds=period)


class RateLimitStore(Protocol):
    async def increment(self, key: str, window_seconds: int) -> tuple[int, float]:
        """Count a hit and return ``(hits in window, seconds until reset)``."""
        ...

    async def aclose(self) -> None: ...


class InMemoryRateLimitStore:
    """Single-process store; windows live in a dict."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._windows: dict[str, tuple[float, int]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    async def increment(self, key: str, window_seconds: int) -> tuple[int, float]:
        now = self._clock()
        async with self._lock:
            reset_at, count = self._windows.get(key, (now + window_seconds, 0))
            if now >= reset_at:
                reset_at, count = now + window_seconds, 0
            count += 1
            self._windows[key] = (reset_at, count)
        return count, max(reset_at - now, 0.0)

    async def aclose(self) -> None:
        self._windows.clear()


class RedisRateLimitStore:
    """Shared store using INCR plus a window TTL."""

    def __init__(self, client: redis.Redis, *, prefix: str = "ordo:ratelimit") -> None:
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str) -> "RedisRateLimitStore":
        return cls(redis.from_url(url, encoding="utf-8", decode_responses=True))

    async def increment(self, key: str, window_seconds: int) -> tuple[int, float]:
        redis_key = f"{self._prefix}:{key}"
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.incr(redis_key)
            pipe.expire(redis_key, window_seconds, nx=True)
            pipe.ttl(redis_key)
            count, _, ttl = await pipe.execute()
        return int(count), float(ttl if ttl and ttl > 0 else window_seconds)

    async def aclose(self) -> None:
        await self._client.aclose()


class RateLimiter:
    """Applies configured limits per action; unknown actions are unlimited."""

    def __init__(
        self,
        store: RateLimitStore,
        limits: Mapping[str, RateLimit | str],
    ) -> None:
        self._store = store
        self._limits = {
            action: limit if isinstance(limit, RateLimit) else RateLimit.parse(limit)
            for action, limit in limits.items()
        }

    async def hit(self, actor: str, action: str) -> None:
        limit = self._limits.get(action)
        if limit is None:
            return
        count, retry_after = await self._store.increment(
            f"{action}:{actor}", limit.period_seconds
        )
        if count > limit.count:
            logger.warning(
                "Rate limit exceeded for %s on %s (%s/%ss)",
                actor,
                action,
                limit.count,
                limit.period_seconds,
            )
            raise RateLimitExceeded(
                f"Too many {action} requests", retry_after=retry_after
            )

    async def aclose(self) -> None:
        await self._store.aclose()


def build_rate_limiter(
    *,
    redis_url: str | None,
    booking_create_limit: str,
    webhook_limit: str,
) -> RateLimiter:
    store: RateLimitStore
    if redis_url:
        store = RedisRateLimitStore.from_url(redis_url)
    else:
        store = InMemoryRateLimitStore()
    return RateLimiter(
        store, {BOOKING_CREATE: booking_create_limit, WEBHOOK_RECEIVE: webhook_limit}
    )


__all__ = [
    "BOOKING_CREATE",
    "InMemoryRateLimitStore",
    "RateLimit",
    "RateLimiter",
    "RedisRateLimitStore",
    "WEBHOOK_RECEIVE",
    "build_rate_limiter",
]
