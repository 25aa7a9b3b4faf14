from __future__ import annotations

"""WhatsApp notification gateway.

Owns the Cloud API session state (idle -> initializing -> ready, or
auth_failure / disconnected) and its reconnect policy, and exposes the
single operation the webhook pipeline needs: `send_confirmation`.

Business-level "not sent" outcomes are returned as ConfirmationResult with a
reason; transport failures raise so the caller can retry.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from app.config import Settings
from app.errors import WhatsAppTransportError
from app.repositories.notification_config_repository import (
    DEFAULT_CONFIRMATION_TEMPLATE,
    NotificationConfig,
    NotificationConfigRepository,
)
from app.services.whatsapp.client import WhatsAppApiError, WhatsAppCloudClient
from app.services.whatsapp.templates import normalize_phone, render_message
from app.utils import now_utc

logger = logging.getLogger(__name__)

# Cloud API error code for recipients that cannot receive WhatsApp messages
UNDELIVERABLE_ERROR_CODE = 131026


class GatewayStatus(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    READY = "ready"
    AUTH_FAILURE = "auth_failure"
    DISCONNECTED = "disconnected"


class SkipReason(str, Enum):
    CONFIG_DISABLED = "config_disabled"
    INVALID_PHONE = "invalid_phone"
    EMPTY_TEMPLATE = "empty_template"
    NOT_CONNECTED = "whatsapp_not_connected"
    PHONE_WITHOUT_WHATSAPP = "phone_without_whatsapp"
    SEND_ERROR = "send_error"


@dataclass
class ConfirmationResult:
    sent: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    recipient: Optional[str] = None
    message_id: Optional[str] = None


ReadyCallback = Callable[[], Awaitable[Any]]


class WhatsAppGateway:
    def __init__(
        self,
        client: WhatsAppCloudClient,
        config_repo: NotificationConfigRepository,
        settings: Settings,
        *,
        on_ready: Optional[ReadyCallback] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._config_repo = config_repo
        self._settings = settings
        self.on_ready = on_ready
        self._sleep = sleep

        self._status = GatewayStatus.IDLE
        self._last_error: Optional[str] = None
        self._last_ready_at = None
        self._info: Optional[Dict[str, Any]] = None
        self._init_retries = 0
        self._init_task: Optional[asyncio.Task] = None
        self._retry_task: Optional[asyncio.Task] = None
        self._ready_task: Optional[asyncio.Task] = None

    # ─── Session lifecycle ────────────────────────────────────────
    @property
    def is_ready(self) -> bool:
        return self._status == GatewayStatus.READY

    def status(self) -> Dict[str, Any]:
        return {
            "status": self._status.value,
            "last_error": self._last_error,
            "last_ready_at": self._last_ready_at.isoformat() if self._last_ready_at else None,
            "info": self._info,
            "init_retries": self._init_retries,
        }

    def start(self, *, force: bool = False) -> None:
        """Begin connecting in the background; no-op while connecting/connected.

        An auth failure is sticky until an explicit `force=True` start
        (admin reconnect), since retrying bad credentials cannot succeed.
        """

        if self._status == GatewayStatus.READY:
            return
        if self._init_task is not None and not self._init_task.done():
            return
        if self._status == GatewayStatus.AUTH_FAILURE and not force:
            return

        if not self._client.configured:
            self._status = GatewayStatus.DISCONNECTED
            self._last_error = "not_configured"
            return

        self._cancel_retry()
        self._status = GatewayStatus.INITIALIZING
        self._last_error = None
        self._init_task = asyncio.get_running_loop().create_task(self._connect())

    async def connect(self) -> Dict[str, Any]:
        """Start (forced) and wait for the attempt to settle."""

        self.start(force=True)
        if self._init_task is not None:
            await asyncio.shield(self._init_task)
        return self.status()

    async def disconnect(self) -> None:
        self._cancel_retry()
        self._init_retries = 0
        for task in (self._init_task, self._ready_task):
            if task is not None and not task.done():
                task.cancel()
        self._init_task = None
        self._ready_task = None
        try:
            await self._client.aclose()
        finally:
            self._status = GatewayStatus.DISCONNECTED
            self._info = None

    async def _connect(self) -> None:
        try:
            info = await self._client.get_phone_number_info()
        except WhatsAppApiError as exc:
            if exc.is_auth_error:
                self._status = GatewayStatus.AUTH_FAILURE
                self._last_error = str(exc) or "auth_failure"
                self._info = None
                logger.error("WhatsApp authentication failed: %s", self._last_error)
                return
            self._handle_init_failure(str(exc))
            return
        except WhatsAppTransportError as exc:
            self._handle_init_failure(str(exc))
            return
        except Exception as exc:
            logger.exception("Unexpected error while connecting to WhatsApp")
            self._handle_init_failure(str(exc) or type(exc).__name__)
            return

        self._status = GatewayStatus.READY
        self._init_retries = 0
        self._last_error = None
        self._last_ready_at = now_utc()
        self._info = {
            "phone_number": info.get("display_phone_number"),
            "verified_name": info.get("verified_name"),
        }
        logger.info("WhatsApp gateway ready (%s)", self._info.get("phone_number"))

        if self.on_ready is not None:
            self._ready_task = asyncio.get_running_loop().create_task(self._run_on_ready())

    async def _run_on_ready(self) -> None:
        assert self.on_ready is not None
        try:
            await self.on_ready()
        except Exception:
            logger.exception("WhatsApp on_ready callback failed")

    def _handle_init_failure(self, reason: str) -> None:
        self._status = GatewayStatus.DISCONNECTED
        self._last_error = reason or "init_error"
        self._info = None
        logger.warning("WhatsApp gateway init failed: %s", self._last_error)
        self._schedule_retry()

    def _schedule_retry(self) -> None:
        max_retries = self._settings.whatsapp_init_retries
        if max_retries <= 0 or self._init_retries >= max_retries:
            return
        self._init_retries += 1
        self._cancel_retry()
        self._retry_task = asyncio.get_running_loop().create_task(self._retry_after_delay())

    async def _retry_after_delay(self) -> None:
        await self._sleep(self._settings.whatsapp_init_retry_delay_ms / 1000.0)
        self._retry_task = None
        logger.info("WhatsApp reconnect attempt %s", self._init_retries)
        self.start()

    def _cancel_retry(self) -> None:
        if self._retry_task is not None and not self._retry_task.done():
            self._retry_task.cancel()
        self._retry_task = None

    # ─── Sending ──────────────────────────────────────────────────
    async def get_config(self) -> NotificationConfig:
        return await self._config_repo.get_notification_config()

    async def send_confirmation(
        self,
        booking_id: str,
        booking: Mapping[str, Any],
        config: Optional[NotificationConfig] = None,
    ) -> ConfirmationResult:
        self.start()

        if config is None:
            config = await self.get_config()
        if not config.enabled:
            return ConfirmationResult(sent=False, reason=SkipReason.CONFIG_DISABLED.value)

        phone = normalize_phone(booking.get("phone"))
        if not phone:
            return ConfirmationResult(sent=False, reason=SkipReason.INVALID_PHONE.value)

        template = (config.message_template or DEFAULT_CONFIRMATION_TEMPLATE).strip()
        if not template:
            return ConfirmationResult(sent=False, reason=SkipReason.EMPTY_TEMPLATE.value)

        if not self.is_ready:
            return ConfirmationResult(sent=False, reason=SkipReason.NOT_CONNECTED.value)

        message = render_message(template, {**booking, "id": booking_id})

        try:
            result = await self._client.send_text_message(phone, message)
        except WhatsAppApiError as exc:
            if exc.is_auth_error:
                self._status = GatewayStatus.AUTH_FAILURE
                self._last_error = str(exc)
            if exc.code == UNDELIVERABLE_ERROR_CODE:
                return ConfirmationResult(sent=False, reason=SkipReason.PHONE_WITHOUT_WHATSAPP.value)
            return ConfirmationResult(sent=False, reason=str(exc) or SkipReason.SEND_ERROR.value)

        return ConfirmationResult(
            sent=True,
            message=message,
            recipient=phone,
            message_id=result.get("message_id"),
        )
