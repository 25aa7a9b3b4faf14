from __future__ import annotations

"""Per-event processing for Asaas payment webhooks.

Called by WebhookTaskQueue for each queued event:
classify -> load booking -> mark paid -> WhatsApp confirmation (once)
-> optional confirmation e-mail (once).

Returning normally means "done" (including ignored events and unknown
bookings). Raising means "retry": store errors, WhatsApp transport errors
and a missing externalReference all propagate to the queue.
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional

from app.errors import MissingExternalReferenceError
from app.repositories.booking_repository import BOOKING_STATUS_PAID, BookingRepository
from app.schemas_webhook import InboundEvent
from app.services.confirmation_email import ConfirmationEmailSender
from app.services.email import EmailSendError
from app.services.payment_events import should_process
from app.services.whatsapp.gateway import WhatsAppGateway
from app.utils import now_utc

logger = logging.getLogger(__name__)


class ProcessingOutcome(str, Enum):
    IGNORED = "ignored"
    BOOKING_NOT_FOUND = "booking_not_found"
    ALREADY_NOTIFIED = "already_notified"
    NOTIFIED = "notified"
    NOTIFICATION_SKIPPED = "notification_skipped"


class PaymentWebhookProcessor:
    def __init__(
        self,
        bookings: BookingRepository,
        gateway: WhatsAppGateway,
        *,
        email_sender: Optional[ConfirmationEmailSender] = None,
    ) -> None:
        self._bookings = bookings
        self._gateway = gateway
        # None disables the confirmation e-mail
        self._email_sender = email_sender

    async def __call__(self, event: InboundEvent) -> ProcessingOutcome:
        return await self.process(event)

    async def process(self, event: InboundEvent) -> ProcessingOutcome:
        if not should_process(event.event, event.payment):
            logger.info("Webhook ignored: %s", event.describe())
            return ProcessingOutcome.IGNORED

        booking_id = event.external_reference
        if not booking_id:
            raise MissingExternalReferenceError(event.event, event.payment.id if event.payment else None)

        booking = await self._bookings.get_booking(booking_id)
        if booking is None:
            logger.warning("Webhook for unknown booking %s; nothing to update", booking_id)
            return ProcessingOutcome.BOOKING_NOT_FOUND

        paid_at = now_utc()
        await self._bookings.mark_paid(booking_id, paid_at=paid_at)
        logger.info("Booking %s marked paid (%s)", booking_id, event.describe())

        merged: Dict[str, Any] = {**booking, "status": BOOKING_STATUS_PAID, "paid_at": paid_at}

        outcome = await self._notify_whatsapp(booking_id, merged)
        await self._send_confirmation_email(booking_id, merged)
        return outcome

    async def _notify_whatsapp(self, booking_id: str, booking: Dict[str, Any]) -> ProcessingOutcome:
        if booking.get("notification_sent") is True:
            logger.info("WhatsApp confirmation already sent for booking %s; skipping", booking_id)
            return ProcessingOutcome.ALREADY_NOTIFIED

        result = await self._gateway.send_confirmation(booking_id, booking)
        if not result.sent:
            logger.warning("WhatsApp confirmation not sent for booking %s: %s", booking_id, result.reason)
            return ProcessingOutcome.NOTIFICATION_SKIPPED

        await self._bookings.mark_notification_sent(
            booking_id,
            message=result.message or "",
            recipient=result.recipient or "",
        )
        logger.info("WhatsApp confirmation sent for booking %s to %s", booking_id, result.recipient)
        return ProcessingOutcome.NOTIFIED

    async def _send_confirmation_email(self, booking_id: str, booking: Dict[str, Any]) -> None:
        if self._email_sender is None:
            return
        if booking.get("confirmation_email_sent") is True:
            return
        email = booking.get("email")
        if not email or "@" not in str(email):
            logger.info("Booking %s has no e-mail; confirmation e-mail skipped", booking_id)
            return

        try:
            await self._email_sender.send(booking)
        except EmailSendError as exc:
            logger.warning("Confirmation e-mail failed for booking %s: %s", booking_id, exc)
            return

        await self._bookings.mark_confirmation_email_sent(booking_id)
        logger.info("Confirmation e-mail sent for booking %s", booking_id)
