"""HMAC verification for inbound payment webhooks."""

from __future__ import annotations

import hashlib
import hmac
import logging

from ordo.core.errors import PaymentError, PaymentReason

logger = logging.getLogger(__name__)


def compute_signature(payload: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of the raw request body."""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_signature(
    payload: bytes,
    signature: str | None,
    secret: str | None,
    *,
    allow_unsigned: bool = False,
) -> None:
    """Raise ``PaymentError(SIGNATURE_INVALID)`` unless the body is authentic.

    Without a configured secret, deliveries are only accepted when unsigned
    webhooks were explicitly allowed, and each acceptance is logged.
    """
    if not secret:
        if allow_unsigned:
            logger.warning(
                "Accepting unsigned payment webhook; PAYMENTS_ALLOW_UNSIGNED_WEBHOOKS is on"
            )
            return
        raise PaymentError(
            PaymentReason.SIGNATURE_INVALID, "Webhook secret is not configured"
        )
    if not signature:
        raise PaymentError(PaymentReason.SIGNATURE_INVALID, "Missing signature header")
    expected = compute_signature(payload, secret)
    if not hmac.compare_digest(expected, signature.strip().lower()):
        logger.warning("Rejected payment webhook with invalid signature")
        raise PaymentError(PaymentReason.SIGNATURE_INVALID, "Invalid webhook signature")


__all__ = ["compute_signature", "verify_signature"]
