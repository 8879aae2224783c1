"""Rebuild the availability slot index for every vendor with templates."""
from __future__ import annotations

import asyncio

from sqlalchemy import select

from ordo.db.session import get_sessionmaker
from ordo.models import AvailabilityTemplate
from ordo.services import availability_service


async def regenerate_all() -> None:
    sessionmaker = get_sessionmaker()
    async with sessionmaker() as session:
        vendor_ids = (
            await session.execute(select(AvailabilityTemplate.vendor_id).distinct())
        ).scalars().all()
        total = 0
        for vendor_id in vendor_ids:
            total += await availability_service.regenerate_vendor_slots(
                session, vendor_id=vendor_id
            )
        print(f"Regenerated {total} slot(s) for {len(vendor_ids)} vendor(s).")


def main() -> None:
    asyncio.run(regenerate_all())


if __name__ == "__main__":
    main()
