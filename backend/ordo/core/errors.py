"""Domain error types raised by the booking core services."""

from __future__ import annotations

import enum


class BookingCoreError(Exception):
    """Base class for booking core failures."""

    code: str = "booking_error"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class ValidationError(BookingCoreError, ValueError):
    """Malformed input: bad template, bad duration, empty update."""

    code = "validation_error"


class NotFoundError(BookingCoreError, ValueError):
    """A referenced vendor, service, booking or template does not exist."""

    code = "not_found"


class SchedulingReason(str, enum.Enum):
    """Why a requested time cannot be booked."""

    PAST_SCHEDULE = "past_schedule"
    DAY_UNAVAILABLE = "day_unavailable"
    SLOT_UNAVAILABLE = "slot_unavailable"
    SLOT_FULL = "slot_full"


class SchedulingError(BookingCoreError, ValueError):
    """The requested time is not bookable."""

    def __init__(self, reason: SchedulingReason, message: str | None = None) -> None:
        super().__init__(message or reason.value.replace("_", " "), code=reason.value)
        self.reason = reason


class TransitionReason(str, enum.Enum):
    """Why a lifecycle move was refused."""

    INVALID_TRANSITION = "invalid_transition"
    INSUFFICIENT_NOTICE_FOR_RESCHEDULE = "insufficient_notice_for_reschedule"


class TransitionError(BookingCoreError, ValueError):
    """A lifecycle operation is not allowed from the current state."""

    def __init__(self, reason: TransitionReason, message: str | None = None) -> None:
        super().__init__(message or reason.value.replace("_", " "), code=reason.value)
        self.reason = reason


class PaymentReason(str, enum.Enum):
    GATEWAY_UNAVAILABLE = "gateway_unavailable"
    SIGNATURE_INVALID = "signature_invalid"
    CHARGE_NOT_FOUND = "charge_not_found"
    INVALID_REFUND = "invalid_refund"


class PaymentError(BookingCoreError, RuntimeError):
    """Payment gateway or reconciliation failure."""

    def __init__(
        self,
        reason: PaymentReason,
        message: str | None = None,
        *,
        retryable: bool = False,
    ) -> None:
        super().__init__(message or reason.value.replace("_", " "), code=reason.value)
        self.reason = reason
        self.retryable = retryable


class AuthorizationError(BookingCoreError, PermissionError):
    """The acting user may not perform the operation."""

    code = "forbidden"


class RateLimitExceeded(BookingCoreError):
    """Too many requests for an (actor, action) pair."""

    code = "rate_limited"

    def __init__(self, message: str, *, retry_after: float) -> None:
        super().__init__(message)
        self.retry_after = retry_after


__all__ = [
    "AuthorizationError",
    "BookingCoreError",
    "NotFoundError",
    "PaymentError",
    "PaymentReason",
    "RateLimitExceeded",
    "SchedulingError",
    "SchedulingReason",
    "TransitionError",
    "TransitionReason",
    "ValidationError",
]
