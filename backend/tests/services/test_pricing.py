"""Tests for booking price, fee split and refund tiers."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from ordo.services.pricing_service import (
    calculate_price,
    compute_refund,
    refund_percentage,
    split_platform_fee,
)


def test_price_prorates_to_requested_duration() -> None:
    price = calculate_price(Decimal("150.00"), 60, 90)
    assert price.total == Decimal("225.00")
    assert price.deposit == Decimal("67.50")


def test_price_defaults_service_duration_to_an_hour() -> None:
    assert calculate_price(Decimal("100"), None, 30).total == Decimal("50.00")
    assert calculate_price(Decimal("100"), 0, 30).total == Decimal("50.00")


def test_deposit_uses_unrounded_total() -> None:
    # 100 / 60 * 50 = 83.333..., deposit 30% = 25.00 exactly before rounding
    price = calculate_price(Decimal("100"), 60, 50)
    assert price.total == Decimal("83.33")
    assert price.deposit == Decimal("25.00")


@pytest.mark.parametrize(
    "notice, expected",
    [
        (timedelta(hours=30), Decimal("100")),
        (timedelta(hours=24), Decimal("100")),
        (timedelta(hours=23, minutes=59), Decimal("50")),
        (timedelta(hours=12), Decimal("50")),
        (timedelta(hours=11, minutes=59), Decimal("0")),
        (timedelta(hours=-2), Decimal("0")),
    ],
)
def test_refund_tier_boundaries(notice: timedelta, expected: Decimal) -> None:
    assert refund_percentage(notice) == expected


def test_compute_refund_rounds_half_up() -> None:
    assert compute_refund(Decimal("150.00"), timedelta(hours=30)) == Decimal("150.00")
    assert compute_refund(Decimal("0.05"), timedelta(hours=13)) == Decimal("0.03")


def test_platform_fee_split_is_exact() -> None:
    fee, vendor_amount = split_platform_fee(Decimal("150.00"), Decimal("5"))
    assert fee == Decimal("7.50")
    assert vendor_amount == Decimal("142.50")

    fee, vendor_amount = split_platform_fee(Decimal("33.33"), Decimal("5"))
    assert fee == Decimal("1.67")
    assert fee + vendor_amount == Decimal("33.33")
