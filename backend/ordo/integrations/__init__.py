"""Integration shortcuts."""

from .payment_gateway import (
    Charge,
    GatewayTimeoutError,
    InMemoryGateway,
    PaymentGateway,
    PaymentGatewayError,
    ProviderStatus,
)
from .stripe_client import StripeGateway

__all__ = [
    "Charge",
    "GatewayTimeoutError",
    "InMemoryGateway",
    "PaymentGateway",
    "PaymentGatewayError",
    "ProviderStatus",
    "StripeGateway",
]
