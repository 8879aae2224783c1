"""Stripe SDK wrapper implementing the payment gateway contract."""

from __future__ import annotations

import asyncio
from typing import Any, Mapping, cast

import stripe

from ordo.integrations.payment_gateway import (
    Charge,
    GatewayTimeoutError,
    PaymentGatewayError,
    ProviderStatus,
)

_STATUS_MAP: Mapping[str, str] = {
    "succeeded": ProviderStatus.SUCCESSFUL,
    "processing": ProviderStatus.PENDING,
    "requires_payment_method": ProviderStatus.PENDING,
    "requires_confirmation": ProviderStatus.PENDING,
    "requires_action": ProviderStatus.PENDING,
    "requires_capture": ProviderStatus.PENDING,
    "canceled": ProviderStatus.FAILED,
}


def _normalize_status(status: str | None) -> str:
    return _STATUS_MAP.get(status or "", status or ProviderStatus.PENDING)


class StripeGateway:
    """Payment gateway backed by Stripe PaymentIntents."""

    name = "stripe"

    def __init__(
        self,
        secret_key: str,
        *,
        idempotency_prefix: str = "ordo",
        max_network_retries: int = 0,
    ) -> None:
        self._secret_key = secret_key
        self._idempotency_prefix = idempotency_prefix
        stripe.api_key = secret_key
        # retries are owned by the payments service
        stripe.max_network_retries = max_network_retries

    def _idempotency_key(self, seed: str | None) -> str | None:
        if seed is None:
            return None
        return f"{self._idempotency_prefix}_{seed}"

    @staticmethod
    def _to_charge(intent: Any) -> Charge:
        intent_data = cast(dict[str, Any], intent)
        metadata_dict = cast(dict[str, Any], intent_data.get("metadata", {}) or {})
        raw = (
            intent.to_dict_recursive()
            if hasattr(intent, "to_dict_recursive")
            else dict(intent_data)
        )
        return Charge(
            id=str(intent_data.get("id")),
            status=_normalize_status(cast(str | None, intent_data.get("status"))),
            amount_cents=int(intent_data.get("amount") or 0),
            currency=str(intent_data.get("currency", "")).upper(),
            metadata=dict(metadata_dict),
            raw=raw,
        )

    async def _call(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except stripe.APIConnectionError as exc:
            raise GatewayTimeoutError("Stripe did not respond") from exc
        except stripe.StripeError as exc:
            raise PaymentGatewayError(str(exc) or "Stripe request failed") from exc

    async def create_charge(
        self,
        amount_cents: int,
        currency: str,
        metadata: dict[str, Any],
        *,
        idempotency_key: str | None = None,
    ) -> Charge:
        intent = await self._call(
            stripe.PaymentIntent.create,
            amount=amount_cents,
            currency=currency.lower(),
            metadata={key: str(value) for key, value in metadata.items()},
            idempotency_key=self._idempotency_key(idempotency_key),
        )
        return self._to_charge(intent)

    async def get_charge(self, charge_id: str) -> Charge:
        intent = await self._call(stripe.PaymentIntent.retrieve, charge_id)
        return self._to_charge(intent)

    async def create_refund(
        self,
        charge_id: str,
        amount_cents: int | None = None,
        reason: str | None = None,
    ) -> str:
        kwargs: dict[str, Any] = {"payment_intent": charge_id}
        if amount_cents is not None:
            kwargs["amount"] = amount_cents
        if reason:
            kwargs["metadata"] = {"reason": reason}
        refund = await self._call(stripe.Refund.create, **kwargs)
        return str(cast(dict[str, Any], refund).get("id"))


__all__ = ["StripeGateway"]
