"""Async engine and session factories for the booking store.

Engines are cached per database URL so tests can point each run at its own
SQLite file while the application uses the configured URL.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ordo.core.config import get_settings

logger = logging.getLogger(__name__)

_engines: dict[str, AsyncEngine] = {}
_sessionmakers: dict[str, async_sessionmaker[AsyncSession]] = {}


def _database_url(override: str | None = None) -> str:
    return override or get_settings().database_url


def _engine_options(url: str) -> dict[str, object]:
    if url.startswith("sqlite"):
        # concurrent bookings in tests share one file; wait instead of failing fast
        return {"connect_args": {"timeout": 30}}
    return {"pool_pre_ping": True}


def get_sessionmaker(
    database_url: str | None = None,
) -> async_sessionmaker[AsyncSession]:
    """Return the cached sessionmaker for ``database_url`` (or the configured URL)."""
    url = _database_url(database_url)
    factory = _sessionmakers.get(url)
    if factory is None:
        engine = create_async_engine(url, echo=False, **_engine_options(url))
        factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
        _engines[url] = engine
        _sessionmakers[url] = factory
    return factory


async def get_session() -> AsyncIterator[AsyncSession]:
    async with get_sessionmaker()() as session:
        yield session


def dialect_name(session: AsyncSession) -> str:
    """Name of the backend the session is bound to, e.g. ``postgresql``."""
    return session.get_bind().dialect.name


async def ping_database(database_url: str | None = None) -> bool:
    """Run a trivial query; False when the database cannot be reached."""
    try:
        async with get_sessionmaker(database_url)() as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError):
        logger.exception("Database ping failed")
        return False
    return True


async def dispose_engine(database_url: str | None = None) -> None:
    """Close the cached engine for ``database_url`` and forget its sessionmaker."""
    url = _database_url(database_url)
    _sessionmakers.pop(url, None)
    engine = _engines.pop(url, None)
    if engine is not None:
        await engine.dispose()
