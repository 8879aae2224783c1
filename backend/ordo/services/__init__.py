"""Service layer exports."""
from ordo.services import (
    availability_service,
    booking_service,
    conflict_service,
    payments_service,
    reconciliation_service,
    slot_generator,
)

__all__ = [
    "availability_service",
    "booking_service",
    "conflict_service",
    "payments_service",
    "reconciliation_service",
    "slot_generator",
]
