"""Booking price, platform fee and cancellation refund calculations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Final

_MONEY_PLACES: Final = Decimal("0.01")
_HUNDRED: Final = Decimal("100")
DEFAULT_SERVICE_DURATION_MINUTES: Final = 60
DEFAULT_DEPOSIT_PERCENTAGE: Final = Decimal("30")

# (minimum hours of notice, refund percentage), highest tier first
_REFUND_TIERS: Final[tuple[tuple[int, Decimal], ...]] = (
    (24, Decimal("100")),
    (12, Decimal("50")),
)


def _to_money(value: Decimal | float | str | int) -> Decimal:
    return Decimal(value).quantize(_MONEY_PLACES, rounding=ROUND_HALF_UP)


@dataclass(slots=True, frozen=True)
class BookingPrice:
    total: Decimal
    deposit: Decimal


def calculate_price(
    base_price: Decimal,
    service_duration_minutes: int | None,
    requested_duration_minutes: int,
    *,
    deposit_percentage: Decimal = DEFAULT_DEPOSIT_PERCENTAGE,
) -> BookingPrice:
    """Prorate the service price to the requested duration.

    The deposit is taken from the unrounded total; both figures are rounded
    half-up to cents afterwards.
    """
    duration = service_duration_minutes or 0
    if duration <= 0:
        duration = DEFAULT_SERVICE_DURATION_MINUTES
    total = Decimal(base_price) / Decimal(duration) * Decimal(requested_duration_minutes)
    deposit = total * Decimal(deposit_percentage) / _HUNDRED
    return BookingPrice(total=_to_money(total), deposit=_to_money(deposit))


def refund_percentage(notice: timedelta) -> Decimal:
    """Refund share earned by cancelling ``notice`` ahead of the booking."""
    hours = Decimal(str(notice.total_seconds())) / Decimal("3600")
    for minimum_hours, percentage in _REFUND_TIERS:
        if hours >= minimum_hours:
            return percentage
    return Decimal("0")


def compute_refund(amount_paid: Decimal, notice: timedelta) -> Decimal:
    return _to_money(Decimal(amount_paid) * refund_percentage(notice) / _HUNDRED)


def split_platform_fee(
    amount: Decimal, fee_percentage: Decimal
) -> tuple[Decimal, Decimal]:
    """Return ``(platform_fee, vendor_amount)`` summing exactly to ``amount``."""
    gross = _to_money(amount)
    fee = _to_money(gross * Decimal(fee_percentage) / _HUNDRED)
    return fee, gross - fee


__all__ = [
    "BookingPrice",
    "calculate_price",
    "compute_refund",
    "refund_percentage",
    "split_platform_fee",
]
