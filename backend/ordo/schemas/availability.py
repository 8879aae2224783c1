"""Schemas for availability templates and slots."""

from __future__ import annotations

import uuid
from datetime import date, time

from pydantic import BaseModel, ConfigDict, Field


class BreakInterval(BaseModel):
    start: time
    end: time


class AvailabilityTemplateCreate(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    start_time: time
    end_time: time
    breaks: list[BreakInterval] = Field(default_factory=list)
    default_duration_minutes: int = 60
    buffer_minutes: int = 15
    effective_from: date | None = None
    effective_until: date | None = None
    is_active: bool = True


class AvailabilityTemplateUpdate(BaseModel):
    start_time: time | None = None
    end_time: time | None = None
    breaks: list[BreakInterval] | None = None
    default_duration_minutes: int | None = None
    buffer_minutes: int | None = None
    effective_from: date | None = None
    effective_until: date | None = None
    is_active: bool | None = None


class AvailabilityTemplateRead(BaseModel):
    id: uuid.UUID
    vendor_id: uuid.UUID
    day_of_week: int
    start_time: time
    end_time: time
    breaks: list[BreakInterval]
    default_duration_minutes: int
    buffer_minutes: int
    effective_from: date | None = None
    effective_until: date | None = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class AvailabilitySlotRead(BaseModel):
    id: uuid.UUID
    template_id: uuid.UUID
    vendor_id: uuid.UUID
    service_id: uuid.UUID | None = None
    day_of_week: int
    start_time: time
    end_time: time
    capacity: int
    is_active: bool

    model_config = ConfigDict(from_attributes=True)
