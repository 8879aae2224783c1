"""ORM models package export."""

from ordo.models.availability import AvailabilitySlot, AvailabilityTemplate, DayOfWeek
from ordo.models.booking import (
    Booking,
    BookingPaymentStatus,
    BookingStatus,
    LocationType,
    generate_booking_reference,
)
from ordo.models.payment import Payment, PaymentEvent, PaymentStatus
from ordo.models.service import ServiceStatus, VendorService

__all__ = [
    "AvailabilitySlot",
    "AvailabilityTemplate",
    "Booking",
    "BookingPaymentStatus",
    "BookingStatus",
    "DayOfWeek",
    "LocationType",
    "Payment",
    "PaymentEvent",
    "PaymentStatus",
    "ServiceStatus",
    "VendorService",
    "generate_booking_reference",
]
