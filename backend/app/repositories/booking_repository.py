from __future__ import annotations

from datetime import datetime
from typing import Any, AsyncIterator, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.repositories.base_repository import get_collection, set_with_timestamp
from app.utils import now_utc

BOOKING_STATUS_AWAITING = "awaiting"
BOOKING_STATUS_PAID = "paid"


class BookingRepository:
    """Typed access to the `bookings` collection.

    Bookings are keyed by the external reference sent to the payment gateway
    at charge time (`_id` is that string). Writes are plain `$set` updates;
    there is no cross-document transaction.
    """

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db
        self._col = get_collection(db, "bookings")

    async def get_booking(self, booking_id: str) -> Optional[Dict[str, Any]]:
        if not booking_id:
            return None
        return await self._col.find_one({"_id": booking_id})

    async def update_booking(self, booking_id: str, fields: Dict[str, Any]) -> None:
        await self._col.update_one({"_id": booking_id}, set_with_timestamp(fields))

    async def mark_paid(self, booking_id: str, *, paid_at: Optional[datetime] = None) -> None:
        await self.update_booking(
            booking_id,
            {"status": BOOKING_STATUS_PAID, "paid_at": paid_at or now_utc()},
        )

    async def mark_notification_sent(
        self,
        booking_id: str,
        *,
        message: str,
        recipient: str,
        sent_at: Optional[datetime] = None,
    ) -> None:
        await self.update_booking(
            booking_id,
            {
                "notification_sent": True,
                "notification_sent_at": sent_at or now_utc(),
                "notification_message": message,
                "notification_recipient": recipient,
            },
        )

    async def mark_confirmation_email_sent(self, booking_id: str, *, sent_at: Optional[datetime] = None) -> None:
        await self.update_booking(
            booking_id,
            {
                "confirmation_email_sent": True,
                "confirmation_email_sent_at": sent_at or now_utc(),
            },
        )

    async def iter_paid_without_notification(self, *, batch_size: int = 500) -> AsyncIterator[Dict[str, Any]]:
        """Paid bookings whose WhatsApp confirmation never went out.

        Streams the whole match set; the driver fetches `batch_size` documents
        per round trip.
        """

        cursor = self._col.find(
            {"status": BOOKING_STATUS_PAID, "notification_sent": {"$ne": True}},
        ).sort("paid_at", 1).batch_size(batch_size)
        async for doc in cursor:
            yield doc
