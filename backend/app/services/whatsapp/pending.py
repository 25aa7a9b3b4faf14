from __future__ import annotations

"""Catch-up sweep for paid bookings whose WhatsApp confirmation never went out.

Runs when the gateway becomes ready (messages skipped while it was down are
sent then) and on demand from the admin endpoint.
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

from app.repositories.booking_repository import BookingRepository
from app.services.whatsapp.gateway import SkipReason, WhatsAppGateway
from app.utils import today_in

logger = logging.getLogger(__name__)


def booking_day(value: Any, tz: ZoneInfo) -> Optional[date]:
    """Calendar day of a booking date in `tz`, or None if it can't be read.

    Accepts YYYY-MM-DD[...], DD/MM/YYYY, date and datetime values.
    """

    if not value:
        return None
    if isinstance(value, datetime):
        # the driver hands back naive UTC datetimes
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(tz).date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        for fmt, size in (("%Y-%m-%d", 10), ("%d/%m/%Y", 10)):
            try:
                return datetime.strptime(text[:size], fmt).date()
            except ValueError:
                continue
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return booking_day(parsed, tz)
    return None


class PendingNotificationSweeper:
    def __init__(self, bookings: BookingRepository, gateway: WhatsAppGateway, *, timezone: str) -> None:
        self._bookings = bookings
        self._gateway = gateway
        self._tz = ZoneInfo(timezone)
        self._running = False

    async def run(self) -> Dict[str, Any]:
        if self._running:
            return {"sent": 0, "failed": 0, "reason": "in_progress"}
        self._running = True
        try:
            return await self._run()
        finally:
            self._running = False

    async def _run(self) -> Dict[str, Any]:
        config = await self._gateway.get_config()
        if not config.enabled:
            return {"sent": 0, "failed": 0, "reason": SkipReason.CONFIG_DISABLED.value}
        if not self._gateway.is_ready:
            return {"sent": 0, "failed": 0, "reason": SkipReason.NOT_CONNECTED.value}

        today = today_in(self._tz)
        sent = 0
        failed = 0

        async for booking in self._bookings.iter_paid_without_notification():
            booking_id = str(booking.get("_id"))
            day = booking_day(booking.get("date"), self._tz)
            if day is None or day < today:
                continue

            try:
                result = await self._gateway.send_confirmation(booking_id, booking, config)
                if result.sent:
                    await self._bookings.mark_notification_sent(
                        booking_id,
                        message=result.message or "",
                        recipient=result.recipient or "",
                    )
                    sent += 1
                else:
                    failed += 1
                    logger.warning("Pending WhatsApp not sent for %s: %s", booking_id, result.reason)
            except Exception:
                failed += 1
                logger.exception("Pending WhatsApp send failed for %s", booking_id)

        if sent or failed:
            logger.info("Pending WhatsApp sweep: sent=%s failed=%s", sent, failed)
        return {"sent": sent, "failed": failed}
