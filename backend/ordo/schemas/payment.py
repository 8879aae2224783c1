"""Schemas for payments and inbound provider webhooks."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from ordo.models import PaymentStatus


class ChargeObject(BaseModel):
    id: str
    status: str | None = None
    amount: int | None = None
    currency: str | None = None

    model_config = ConfigDict(extra="allow")


class WebhookData(BaseModel):
    charge: ChargeObject = Field(alias="object")

    model_config = ConfigDict(populate_by_name=True)


class WebhookEnvelope(BaseModel):
    """Provider webhook payload, reduced to the fields reconciliation reads."""

    id: str | None = None
    type: str
    data: WebhookData

    model_config = ConfigDict(extra="allow")


class PaymentRead(BaseModel):
    id: uuid.UUID
    booking_id: uuid.UUID
    amount: Decimal
    platform_fee: Decimal
    vendor_amount: Decimal
    currency: str
    status: PaymentStatus
    provider: str
    provider_charge_id: str
    processed_at: datetime | None = None
    refunded_at: datetime | None = None
    refund_amount: Decimal | None = None

    model_config = ConfigDict(from_attributes=True)
