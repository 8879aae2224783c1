"""Payment gateway contract and the in-memory implementation."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Protocol, TypeVar

from ordo.core.errors import PaymentError, PaymentReason
from ordo.core.settings import get_payment_settings

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

GATEWAY_ATTEMPTS = 2


class ProviderStatus:
    """Charge states in the provider vocabulary reconciliation understands."""

    SUCCESSFUL = "successful"
    PENDING = "pending"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentGatewayError(RuntimeError):
    """Raised when the payment provider rejects or fails a call."""


class GatewayTimeoutError(PaymentGatewayError):
    """Raised when the provider did not answer in time."""


@dataclass(slots=True)
class Charge:
    """Simplified charge payload."""

    id: str
    status: str
    amount_cents: int
    currency: str
    metadata: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)


class PaymentGateway(Protocol):
    """Operations the booking core needs from a payment provider."""

    name: str

    async def create_charge(
        self,
        amount_cents: int,
        currency: str,
        metadata: dict[str, Any],
        *,
        idempotency_key: str | None = None,
    ) -> Charge: ...

    async def get_charge(self, charge_id: str) -> Charge: ...

    async def create_refund(
        self,
        charge_id: str,
        amount_cents: int | None = None,
        reason: str | None = None,
    ) -> str: ...


def to_cents(amount: Decimal) -> int:
    quantized = amount.quantize(Decimal("0.01"))
    return int((quantized * 100).to_integral_value())


def from_cents(cents: int | None) -> Decimal | None:
    if cents is None:
        return None
    return (Decimal(cents) / Decimal("100")).quantize(Decimal("0.01"))


async def call_gateway(
    operation: Callable[[], Awaitable[_T]],
    *,
    description: str,
    timeout: float | None = None,
) -> _T:
    """Run a gateway call with a bounded timeout, retrying one timeout.

    Timeouts surface as a retryable ``GATEWAY_UNAVAILABLE``; provider
    rejections are reported once and are not retryable.
    """
    limit = timeout if timeout is not None else get_payment_settings().gateway_timeout
    for attempt in range(1, GATEWAY_ATTEMPTS + 1):
        try:
            return await asyncio.wait_for(operation(), timeout=limit)
        except (asyncio.TimeoutError, GatewayTimeoutError) as exc:
            if attempt < GATEWAY_ATTEMPTS:
                logger.warning("Gateway timeout during %s; retrying", description)
                continue
            raise PaymentError(
                PaymentReason.GATEWAY_UNAVAILABLE,
                f"Payment gateway unavailable during {description}",
                retryable=True,
            ) from exc
        except PaymentGatewayError as exc:
            raise PaymentError(
                PaymentReason.GATEWAY_UNAVAILABLE, str(exc), retryable=False
            ) from exc
    raise AssertionError("unreachable")  # pragma: no cover


class InMemoryGateway:
    """Deterministic local gateway for development and tests.

    Charges start ``pending``; :meth:`settle` moves them to a final provider
    state the way a card network callback would. Setting ``unavailable`` makes
    every call time out.
    """

    name = "memory"

    def __init__(self) -> None:
        self._charges: dict[str, Charge] = {}
        self._idempotency: dict[str, str] = {}
        self.refunds: list[tuple[str, int | None, str | None]] = []
        self.unavailable = False
        self.calls = 0

    def _check_available(self) -> None:
        self.calls += 1
        if self.unavailable:
            raise GatewayTimeoutError("Payment gateway timed out")

    async def create_charge(
        self,
        amount_cents: int,
        currency: str,
        metadata: dict[str, Any],
        *,
        idempotency_key: str | None = None,
    ) -> Charge:
        self._check_available()
        if amount_cents <= 0:
            raise PaymentGatewayError("Charge amount must be positive")
        if idempotency_key and idempotency_key in self._idempotency:
            return self._charges[self._idempotency[idempotency_key]]
        charge = Charge(
            id=f"ch_{uuid.uuid4().hex}",
            status=ProviderStatus.PENDING,
            amount_cents=amount_cents,
            currency=currency.upper(),
            metadata=dict(metadata),
        )
        charge.raw = {"id": charge.id, "status": charge.status, "amount": amount_cents}
        self._charges[charge.id] = charge
        if idempotency_key:
            self._idempotency[idempotency_key] = charge.id
        return charge

    async def get_charge(self, charge_id: str) -> Charge:
        self._check_available()
        charge = self._charges.get(charge_id)
        if charge is None:
            raise PaymentGatewayError("Charge not found")
        return charge

    async def create_refund(
        self,
        charge_id: str,
        amount_cents: int | None = None,
        reason: str | None = None,
    ) -> str:
        self._check_available()
        charge = self._charges.get(charge_id)
        if charge is None:
            raise PaymentGatewayError("Charge not found")
        if amount_cents is not None and not 0 < amount_cents <= charge.amount_cents:
            raise PaymentGatewayError("Invalid refund amount")
        charge.status = ProviderStatus.REFUNDED
        self.refunds.append((charge_id, amount_cents, reason))
        return f"re_{uuid.uuid4().hex}"

    def settle(self, charge_id: str, status: str = ProviderStatus.SUCCESSFUL) -> Charge:
        charge = self._charges[charge_id]
        charge.status = status
        return charge


__all__ = [
    "Charge",
    "GATEWAY_ATTEMPTS",
    "GatewayTimeoutError",
    "InMemoryGateway",
    "PaymentGateway",
    "PaymentGatewayError",
    "ProviderStatus",
    "call_gateway",
    "from_cents",
    "to_cents",
]
