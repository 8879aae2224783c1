"""Schemas for booking creation, updates and reads."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from ordo.models import BookingPaymentStatus, BookingStatus, LocationType


class GuestDetails(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=32)


class BookingCreate(BaseModel):
    vendor_id: uuid.UUID
    service_id: uuid.UUID
    scheduled_at: datetime
    duration_minutes: int | None = Field(default=None, ge=15, le=480)
    location_type: LocationType = LocationType.VENDOR_LOCATION
    service_address: dict[str, Any] | None = None
    customer_notes: str | None = None
    guest: GuestDetails | None = None


class BookingUpdate(BaseModel):
    customer_notes: str | None = None
    vendor_notes: str | None = None
    service_address: dict[str, Any] | None = None


class BookingRead(BaseModel):
    id: uuid.UUID
    booking_reference: str
    customer_id: uuid.UUID | None = None
    guest_name: str | None = None
    guest_email: str | None = None
    guest_phone: str | None = None
    vendor_id: uuid.UUID
    service_id: uuid.UUID
    scheduled_at: datetime
    ends_at: datetime
    duration_minutes: int
    total_amount: Decimal
    deposit_amount: Decimal
    currency: str
    status: BookingStatus
    payment_status: BookingPaymentStatus
    location_type: LocationType
    service_address: dict[str, Any] | None = None
    customer_notes: str | None = None
    vendor_notes: str | None = None
    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None
    cancellation_refund_amount: Decimal | None = None

    model_config = ConfigDict(from_attributes=True)
