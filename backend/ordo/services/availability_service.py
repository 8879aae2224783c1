"""Availability template store and the slot index built from it."""

from __future__ import annotations

import logging
import uuid
from datetime import date, timedelta
from typing import Iterable, Sequence

from sqlalchemy import Select, delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ordo.core.errors import NotFoundError, ValidationError
from ordo.models import (
    AvailabilitySlot,
    AvailabilityTemplate,
    DayOfWeek,
    ServiceStatus,
    VendorService,
)
from ordo.schemas.availability import (
    AvailabilityTemplateCreate,
    AvailabilityTemplateUpdate,
    BreakInterval,
)
from ordo.services.slot_generator import generate_windows, validate_window

logger = logging.getLogger(__name__)

DEFAULT_SLOT_CAPACITY = 1


def _serialize_breaks(breaks: Iterable[BreakInterval]) -> list[dict[str, str]]:
    ordered = sorted(breaks, key=lambda item: (item.start, item.end))
    return [
        {"start": item.start.isoformat(timespec="minutes"), "end": item.end.isoformat(timespec="minutes")}
        for item in ordered
    ]


def _validate_template(template: AvailabilityTemplate) -> None:
    validate_window(
        template.start_time,
        template.end_time,
        template.break_intervals,
        template.default_duration_minutes,
        template.buffer_minutes,
    )
    if (
        template.effective_from is not None
        and template.effective_until is not None
        and template.effective_from > template.effective_until
    ):
        raise ValidationError("effective_from must not be after effective_until")


async def _get_template(
    session: AsyncSession,
    *,
    vendor_id: uuid.UUID,
    template_id: uuid.UUID,
) -> AvailabilityTemplate:
    template = await session.get(AvailabilityTemplate, template_id)
    if template is None or template.vendor_id != vendor_id:
        raise NotFoundError("Availability template not found for vendor")
    return template


async def _active_services(
    session: AsyncSession, *, vendor_id: uuid.UUID
) -> list[VendorService]:
    stmt: Select[tuple[VendorService]] = (
        select(VendorService)
        .where(
            VendorService.vendor_id == vendor_id,
            VendorService.status == ServiceStatus.ACTIVE,
        )
        .order_by(VendorService.created_at, VendorService.id)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def _rebuild_slots(
    session: AsyncSession,
    *,
    vendor_id: uuid.UUID,
    day_of_week: DayOfWeek,
) -> int:
    await session.execute(
        delete(AvailabilitySlot).where(
            AvailabilitySlot.vendor_id == vendor_id,
            AvailabilitySlot.day_of_week == int(day_of_week),
        )
    )

    stmt: Select[tuple[AvailabilityTemplate]] = (
        select(AvailabilityTemplate)
        .where(
            AvailabilityTemplate.vendor_id == vendor_id,
            AvailabilityTemplate.day_of_week == int(day_of_week),
            AvailabilityTemplate.is_active.is_(True),
        )
        .order_by(AvailabilityTemplate.start_time, AvailabilityTemplate.id)
    )
    templates = (await session.execute(stmt)).scalars().all()
    services = await _active_services(session, vendor_id=vendor_id)

    created = 0
    for template in templates:
        # per-service slot sets replace the generic set once services exist
        targets: list[tuple[uuid.UUID | None, int]] = [
            (service.id, service.duration_minutes or template.default_duration_minutes)
            for service in services
        ] or [(None, template.default_duration_minutes)]
        for service_id, duration in targets:
            windows = generate_windows(
                template.start_time,
                template.end_time,
                template.break_intervals,
                duration,
                template.buffer_minutes,
            )
            for window in windows:
                session.add(
                    AvailabilitySlot(
                        template_id=template.id,
                        vendor_id=vendor_id,
                        service_id=service_id,
                        day_of_week=int(day_of_week),
                        start_time=window.start,
                        end_time=window.end,
                        capacity=DEFAULT_SLOT_CAPACITY,
                        is_active=True,
                    )
                )
                created += 1
    await session.flush()
    logger.debug(
        "Rebuilt %s slots for vendor %s on %s", created, vendor_id, day_of_week.name
    )
    return created


async def _flush_template(session: AsyncSession) -> None:
    try:
        await session.flush()
    except IntegrityError as exc:
        await session.rollback()
        raise ValidationError(
            "An availability template already covers that day and date range"
        ) from exc


async def regenerate_slots(
    session: AsyncSession,
    *,
    vendor_id: uuid.UUID,
    day_of_week: DayOfWeek | int,
) -> int:
    """Purge and rebuild the slot index for one (vendor, weekday) pair."""
    count = await _rebuild_slots(
        session, vendor_id=vendor_id, day_of_week=DayOfWeek(day_of_week)
    )
    await session.commit()
    return count


async def regenerate_vendor_slots(session: AsyncSession, *, vendor_id: uuid.UUID) -> int:
    """Rebuild every weekday for a vendor, e.g. after its service list changed."""
    total = 0
    for day in DayOfWeek:
        total += await _rebuild_slots(session, vendor_id=vendor_id, day_of_week=day)
    await session.commit()
    return total


async def create_template(
    session: AsyncSession,
    *,
    vendor_id: uuid.UUID,
    payload: AvailabilityTemplateCreate,
) -> AvailabilityTemplate:
    template = AvailabilityTemplate(
        vendor_id=vendor_id,
        day_of_week=payload.day_of_week,
        start_time=payload.start_time,
        end_time=payload.end_time,
        breaks=_serialize_breaks(payload.breaks),
        default_duration_minutes=payload.default_duration_minutes,
        buffer_minutes=payload.buffer_minutes,
        effective_from=payload.effective_from,
        effective_until=payload.effective_until,
        is_active=payload.is_active,
    )
    _validate_template(template)
    session.add(template)
    await _flush_template(session)
    await _rebuild_slots(
        session, vendor_id=vendor_id, day_of_week=DayOfWeek(template.day_of_week)
    )
    await session.commit()
    logger.info(
        "Created availability template %s for vendor %s", template.id, vendor_id
    )
    return template


async def update_template(
    session: AsyncSession,
    *,
    vendor_id: uuid.UUID,
    template_id: uuid.UUID,
    payload: AvailabilityTemplateUpdate,
) -> AvailabilityTemplate:
    template = await _get_template(
        session, vendor_id=vendor_id, template_id=template_id
    )
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("No template fields to update")
    if "breaks" in changes:
        template.breaks = _serialize_breaks(payload.breaks or [])
        changes.pop("breaks")
    for field_name, value in changes.items():
        if value is None and field_name not in {"effective_from", "effective_until"}:
            continue
        setattr(template, field_name, value)
    try:
        _validate_template(template)
    except ValidationError:
        await session.rollback()
        raise
    await _flush_template(session)
    await _rebuild_slots(
        session, vendor_id=vendor_id, day_of_week=DayOfWeek(template.day_of_week)
    )
    await session.commit()
    return template


async def delete_template(
    session: AsyncSession,
    *,
    vendor_id: uuid.UUID,
    template_id: uuid.UUID,
) -> None:
    template = await _get_template(
        session, vendor_id=vendor_id, template_id=template_id
    )
    day = DayOfWeek(template.day_of_week)
    await session.execute(
        delete(AvailabilitySlot).where(AvailabilitySlot.template_id == template.id)
    )
    await session.delete(template)
    await session.flush()
    await _rebuild_slots(session, vendor_id=vendor_id, day_of_week=day)
    await session.commit()
    logger.info("Deleted availability template %s for vendor %s", template_id, vendor_id)


async def set_templates_active(
    session: AsyncSession,
    *,
    vendor_id: uuid.UUID,
    template_ids: Sequence[uuid.UUID],
    is_active: bool,
) -> list[AvailabilityTemplate]:
    """Bulk activate or deactivate templates and refresh the affected days."""
    if not template_ids:
        return []
    stmt: Select[tuple[AvailabilityTemplate]] = select(AvailabilityTemplate).where(
        AvailabilityTemplate.vendor_id == vendor_id,
        AvailabilityTemplate.id.in_(template_ids),
    )
    templates = list((await session.execute(stmt)).scalars().all())
    if len(templates) != len(set(template_ids)):
        raise NotFoundError("One or more templates are not owned by the vendor")
    days: set[DayOfWeek] = set()
    for template in templates:
        template.is_active = is_active
        days.add(DayOfWeek(template.day_of_week))
    await session.flush()
    for day in sorted(days):
        await _rebuild_slots(session, vendor_id=vendor_id, day_of_week=day)
    await session.commit()
    return templates


async def list_templates(
    session: AsyncSession,
    *,
    vendor_id: uuid.UUID,
    day_of_week: DayOfWeek | int | None = None,
    active_only: bool = False,
) -> list[AvailabilityTemplate]:
    stmt: Select[tuple[AvailabilityTemplate]] = select(AvailabilityTemplate).where(
        AvailabilityTemplate.vendor_id == vendor_id
    )
    if day_of_week is not None:
        stmt = stmt.where(AvailabilityTemplate.day_of_week == int(day_of_week))
    if active_only:
        stmt = stmt.where(AvailabilityTemplate.is_active.is_(True))
    stmt = stmt.order_by(
        AvailabilityTemplate.day_of_week, AvailabilityTemplate.start_time
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def weekly_overview(
    session: AsyncSession,
    *,
    vendor_id: uuid.UUID,
    week_start: date,
) -> dict[date, list[AvailabilityTemplate]]:
    """Templates in force for each of the seven days starting at ``week_start``."""
    templates = await list_templates(session, vendor_id=vendor_id, active_only=True)
    overview: dict[date, list[AvailabilityTemplate]] = {}
    for offset in range(7):
        day = week_start + timedelta(days=offset)
        weekday = DayOfWeek.from_date(day)
        overview[day] = [
            template
            for template in templates
            if template.day_of_week == weekday and template.is_effective_on(day)
        ]
    return overview


async def list_slots(
    session: AsyncSession,
    *,
    vendor_id: uuid.UUID,
    on_date: date,
    service_id: uuid.UUID | None = None,
) -> list[AvailabilitySlot]:
    """Active slots for the date's weekday whose template is in force that date.

    With ``service_id`` only that service's slots and generic slots are
    returned; without it every slot of the day is returned.
    """
    weekday = DayOfWeek.from_date(on_date)
    stmt: Select[tuple[AvailabilitySlot]] = (
        select(AvailabilitySlot)
        .join(AvailabilityTemplate, AvailabilitySlot.template_id == AvailabilityTemplate.id)
        .where(
            AvailabilitySlot.vendor_id == vendor_id,
            AvailabilitySlot.day_of_week == int(weekday),
            AvailabilitySlot.is_active.is_(True),
            AvailabilityTemplate.is_active.is_(True),
            or_(
                AvailabilityTemplate.effective_from.is_(None),
                AvailabilityTemplate.effective_from <= on_date,
            ),
            or_(
                AvailabilityTemplate.effective_until.is_(None),
                AvailabilityTemplate.effective_until >= on_date,
            ),
        )
        .order_by(AvailabilitySlot.start_time, AvailabilitySlot.end_time)
    )
    if service_id is not None:
        stmt = stmt.where(
            or_(
                AvailabilitySlot.service_id == service_id,
                AvailabilitySlot.service_id.is_(None),
            )
        )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def is_open(
    session: AsyncSession,
    *,
    vendor_id: uuid.UUID,
    on_date: date,
    service_id: uuid.UUID | None = None,
) -> bool:
    slots = await list_slots(
        session, vendor_id=vendor_id, on_date=on_date, service_id=service_id
    )
    return bool(slots)


__all__ = [
    "create_template",
    "delete_template",
    "is_open",
    "list_slots",
    "list_templates",
    "regenerate_slots",
    "regenerate_vendor_slots",
    "set_templates_active",
    "update_template",
    "weekly_overview",
]
