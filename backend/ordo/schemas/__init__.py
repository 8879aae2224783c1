"""Schema exports."""

from ordo.schemas.availability import (
    AvailabilitySlotRead,
    AvailabilityTemplateCreate,
    AvailabilityTemplateRead,
    AvailabilityTemplateUpdate,
    BreakInterval,
)
from ordo.schemas.booking import BookingCreate, BookingRead, BookingUpdate, GuestDetails
from ordo.schemas.payment import ChargeObject, PaymentRead, WebhookData, WebhookEnvelope

__all__ = [
    "AvailabilitySlotRead",
    "AvailabilityTemplateCreate",
    "AvailabilityTemplateRead",
    "AvailabilityTemplateUpdate",
    "BookingCreate",
    "BookingRead",
    "BookingUpdate",
    "BreakInterval",
    "ChargeObject",
    "GuestDetails",
    "PaymentRead",
    "WebhookData",
    "WebhookEnvelope",
]
