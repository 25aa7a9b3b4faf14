from __future__ import annotations

"""FastAPI dependencies for the per-process webhook services.

The objects are built once in server startup and live on `app.state`;
tests override these dependencies with fakes.
"""

from fastapi import Request

from app.config import Settings, get_settings
from app.errors import AppError
from app.repositories.notification_config_repository import NotificationConfigRepository
from app.services.webhook_queue import WebhookTaskQueue
from app.services.whatsapp.gateway import WhatsAppGateway
from app.services.whatsapp.pending import PendingNotificationSweeper


def _state_attr(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise AppError(503, "service_not_ready", f"{name} is not initialised")
    return value


def get_app_settings() -> Settings:
    return get_settings()


def get_webhook_queue(request: Request) -> WebhookTaskQueue:
    return _state_attr(request, "webhook_queue")


def get_whatsapp_gateway(request: Request) -> WhatsAppGateway:
    return _state_attr(request, "whatsapp_gateway")


def get_pending_sweeper(request: Request) -> PendingNotificationSweeper:
    return _state_attr(request, "pending_sweeper")


def get_notification_config_repo(request: Request) -> NotificationConfigRepository:
    return _state_attr(request, "notification_config_repo")
