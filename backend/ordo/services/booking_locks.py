"""Per-vendor, per-day serialization of booking check-then-insert."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import uuid
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from ordo.db.session import dialect_name

logger = logging.getLogger(__name__)

_local_locks: "weakref.WeakValueDictionary[tuple[uuid.UUID, date], asyncio.Lock]" = (
    weakref.WeakValueDictionary()
)


def _local_lock(vendor_id: uuid.UUID, bucket: date) -> asyncio.Lock:
    key = (vendor_id, bucket)
    lock = _local_locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _local_locks[key] = lock
    return lock


def advisory_key(vendor_id: uuid.UUID, bucket: date) -> int:
    """Stable signed 64-bit key for ``pg_advisory_xact_lock``."""
    digest = hashlib.blake2b(
        f"{vendor_id}:{bucket.isoformat()}".encode(), digest_size=8
    ).digest()
    return int.from_bytes(digest, "big", signed=True)


@asynccontextmanager
async def booking_slot_guard(
    session: AsyncSession,
    *,
    vendor_id: uuid.UUID,
    bucket: date,
) -> AsyncIterator[None]:
    """Hold the vendor/day lock for the body, which must commit before exiting.

    Inside one process an ``asyncio.Lock`` serializes callers; on PostgreSQL a
    transaction-scoped advisory lock extends that across workers and is
    released by the commit or rollback.
    """
    lock = _local_lock(vendor_id, bucket)
    async with lock:
        if dialect_name(session) == "postgresql":
            await session.execute(
                text("SELECT pg_advisory_xact_lock(:key)"),
                {"key": advisory_key(vendor_id, bucket)},
            )
        logger.debug("Acquired booking guard for vendor %s on %s", vendor_id, bucket)
        yield


__all__ = ["advisory_key", "booking_slot_guard"]
