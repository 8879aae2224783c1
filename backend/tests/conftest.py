"""Test fixtures for the Ordo backend."""
from __future__ import annotations

import os
import uuid
from collections.abc import AsyncIterator
from datetime import time
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("PAYMENTS_WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("PAYMENTS_PROVIDER", "memory")
os.environ.pop("REDIS_URL", None)

from ordo.core.config import get_settings
from ordo.db.base import Base
from ordo.db.session import dispose_engine, get_sessionmaker
from ordo.main import app
from ordo.models import DayOfWeek, ServiceStatus, VendorService
from ordo.schemas.availability import AvailabilityTemplateCreate
from ordo.services import availability_service


@pytest.fixture(scope="session")
def db_url(tmp_path_factory: pytest.TempPathFactory) -> str:
    """Provide a temporary SQLite database URL for the test session."""
    db_path = tmp_path_factory.mktemp("db") / "test.db"
    return f"sqlite+aiosqlite:///{db_path}"


@pytest_asyncio.fixture()
async def reset_database(db_url: str) -> AsyncIterator[None]:
    """Drop and recreate the database schema for an isolated test."""
    os.environ["DATABASE_URL"] = db_url
    get_settings.cache_clear()
    get_settings()

    await dispose_engine(db_url)
    engine = create_async_engine(db_url, future=True)
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.drop_all)
        await connection.run_sync(Base.metadata.create_all)
    await engine.dispose()
    yield
    await dispose_engine(db_url)
    get_settings.cache_clear()


@pytest_asyncio.fixture()
async def vendor_setup(reset_database: None, db_url: str) -> dict[str, uuid.UUID]:
    """Vendor open Monday 09:00-17:00 with a one hour R150 service and no buffer."""
    vendor_id = uuid.uuid4()
    customer_id = uuid.uuid4()
    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as session:
        service = VendorService(
            vendor_id=vendor_id,
            title="Deep clean",
            base_price=Decimal("150.00"),
            duration_minutes=60,
            currency="ZAR",
            status=ServiceStatus.ACTIVE,
        )
        session.add(service)
        await session.commit()

        template = await availability_service.create_template(
            session,
            vendor_id=vendor_id,
            payload=AvailabilityTemplateCreate(
                day_of_week=DayOfWeek.MONDAY,
                start_time=time(9, 0),
                end_time=time(17, 0),
                default_duration_minutes=60,
                buffer_minutes=0,
            ),
        )
        return {
            "vendor_id": vendor_id,
            "customer_id": customer_id,
            "service_id": service.id,
            "template_id": template.id,
        }


@pytest_asyncio.fixture()
async def api_client(reset_database: None) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
