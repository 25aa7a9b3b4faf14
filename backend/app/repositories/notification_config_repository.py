from __future__ import annotations

from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel

from app.repositories.base_repository import get_collection, set_with_timestamp

WHATSAPP_SETTINGS_ID = "whatsapp"

DEFAULT_CONFIRMATION_TEMPLATE = (
    "Olá {name}! Sua reserva foi confirmada para {booking_date} {time}. "
    "Atividade: {activity}. Participantes: {participants}."
)


class NotificationConfig(BaseModel):
    enabled: bool = False
    message_template: str = DEFAULT_CONFIRMATION_TEMPLATE


class NotificationConfigRepository:
    """WhatsApp confirmation settings, one document in `settings`."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db
        self._col = get_collection(db, "settings")

    async def get_notification_config(self) -> NotificationConfig:
        doc: Optional[Dict[str, Any]] = await self._col.find_one({"_id": WHATSAPP_SETTINGS_ID})
        if not doc:
            return NotificationConfig()

        template = doc.get("message_template")
        return NotificationConfig(
            enabled=bool(doc.get("enabled", False)),
            message_template=template if isinstance(template, str) else DEFAULT_CONFIRMATION_TEMPLATE,
        )

    async def save_notification_config(self, config: NotificationConfig) -> NotificationConfig:
        await self._col.update_one(
            {"_id": WHATSAPP_SETTINGS_ID},
            set_with_timestamp(config.model_dump()),
            upsert=True,
        )
        return config
