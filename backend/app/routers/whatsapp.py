from __future__ import annotations

"""WhatsApp gateway admin endpoints (status, connect/disconnect, config,
catch-up of pending confirmations)."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.deps import get_notification_config_repo, get_pending_sweeper, get_whatsapp_gateway
from app.repositories.notification_config_repository import (
    NotificationConfig,
    NotificationConfigRepository,
)
from app.services.whatsapp.gateway import WhatsAppGateway
from app.services.whatsapp.pending import PendingNotificationSweeper

router = APIRouter(prefix="/api/whatsapp", tags=["whatsapp"])


class NotificationConfigUpdate(BaseModel):
    enabled: Optional[bool] = None
    message_template: Optional[str] = None


@router.get("/status")
async def whatsapp_status(gateway: WhatsAppGateway = Depends(get_whatsapp_gateway)) -> Dict[str, Any]:
    return gateway.status()


@router.post("/connect")
async def whatsapp_connect(gateway: WhatsAppGateway = Depends(get_whatsapp_gateway)) -> Dict[str, Any]:
    return await gateway.connect()


@router.post("/disconnect")
async def whatsapp_disconnect(gateway: WhatsAppGateway = Depends(get_whatsapp_gateway)) -> Dict[str, Any]:
    await gateway.disconnect()
    return gateway.status()


@router.post("/process-pending")
async def whatsapp_process_pending(
    sweeper: PendingNotificationSweeper = Depends(get_pending_sweeper),
) -> Dict[str, Any]:
    return await sweeper.run()


@router.get("/config", response_model=NotificationConfig)
async def get_whatsapp_config(
    repo: NotificationConfigRepository = Depends(get_notification_config_repo),
) -> NotificationConfig:
    return await repo.get_notification_config()


@router.put("/config", response_model=NotificationConfig)
async def update_whatsapp_config(
    payload: NotificationConfigUpdate,
    repo: NotificationConfigRepository = Depends(get_notification_config_repo),
) -> NotificationConfig:
    current = await repo.get_notification_config()
    updated = current.model_copy(update=payload.model_dump(exclude_none=True))
    return await repo.save_notification_config(updated)
