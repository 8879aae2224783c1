"""Booking notification fan-out."""

from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Protocol

from ordo.models import Booking

logger = logging.getLogger(__name__)


class NotificationEvent(str, enum.Enum):
    BOOKING_CREATED = "booking.created"
    BOOKING_UPDATED = "booking.updated"
    BOOKING_CONFIRMED = "booking.confirmed"
    BOOKING_COMPLETED = "booking.completed"
    BOOKING_CANCELLED = "booking.cancelled"
    BOOKING_RESCHEDULED = "booking.rescheduled"
    PAYMENT_RECEIVED = "payment.received"
    PAYMENT_FAILED = "payment.failed"


@dataclass(slots=True, frozen=True)
class Recipient:
    """Who a notification is addressed to."""

    role: str
    user_id: uuid.UUID | None = None
    email: str | None = None
    phone: str | None = None
    name: str | None = None


class Notifier(Protocol):
    async def notify(
        self,
        recipient: Recipient,
        event: NotificationEvent,
        data: dict[str, Any],
    ) -> None: ...


def build_booking_subject(event: NotificationEvent, booking: Booking) -> str:
    action = event.value.split(".", 1)[1]
    return f"Booking {booking.booking_reference} {action}"


class LoggingNotifier:
    """Notifier that records messages in the application log."""

    async def notify(
        self,
        recipient: Recipient,
        event: NotificationEvent,
        data: dict[str, Any],
    ) -> None:
        logger.info(
            "Notification %s to %s %s: %s",
            event.value,
            recipient.role,
            recipient.user_id or recipient.email or recipient.phone,
            data.get("subject", ""),
        )


class RecordingNotifier:
    """Keeps every notification in memory; used by tests and local tooling."""

    def __init__(self) -> None:
        self.sent: list[tuple[Recipient, NotificationEvent, dict[str, Any]]] = []

    async def notify(
        self,
        recipient: Recipient,
        event: NotificationEvent,
        data: dict[str, Any],
    ) -> None:
        self.sent.append((recipient, event, data))

    def events_for(self, role: str) -> list[NotificationEvent]:
        return [event for recipient, event, _ in self.sent if recipient.role == role]


def booking_recipients(booking: Booking) -> list[Recipient]:
    recipients = [Recipient(role="vendor", user_id=booking.vendor_id)]
    if booking.customer_id is not None:
        recipients.append(Recipient(role="customer", user_id=booking.customer_id))
    elif booking.guest_email or booking.guest_phone:
        recipients.append(
            Recipient(
                role="guest",
                email=booking.guest_email,
                phone=booking.guest_phone,
                name=booking.guest_name,
            )
        )
    return recipients


def _booking_payload(booking: Booking) -> dict[str, Any]:
    return {
        "booking_id": str(booking.id),
        "booking_reference": booking.booking_reference,
        "scheduled_at": booking.scheduled_at.isoformat(),
        "status": booking.status.value,
        "payment_status": booking.payment_status.value,
    }


async def notify_booking_event(
    notifier: Notifier | None,
    booking: Booking,
    event: NotificationEvent,
    **extra: Any,
) -> None:
    """Tell every booking participant about ``event``.

    Delivery failures are logged and never undo the committed change that
    triggered them.
    """
    if notifier is None:
        return
    data = _booking_payload(booking)
    data["subject"] = build_booking_subject(event, booking)
    data.update({key: value for key, value in extra.items() if value is not None})
    for recipient in booking_recipients(booking):
        try:
            await notifier.notify(recipient, event, data)
        except Exception:
            logger.exception(
                "Failed to deliver %s for booking %s to %s",
                event.value,
                booking.id,
                recipient.role,
            )


__all__ = [
    "LoggingNotifier",
    "NotificationEvent",
    "Notifier",
    "Recipient",
    "RecordingNotifier",
    "booking_recipients",
    "notify_booking_event",
]
