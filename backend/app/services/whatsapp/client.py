from __future__ import annotations

"""Async HTTP client for the WhatsApp Cloud API (Meta Graph API).

Only the two calls the confirmation flow needs:
- GET  /{version}/{phone_number_id}           (credential / session check)
- POST /{version}/{phone_number_id}/messages  (text message)
"""

import logging
from typing import Any, Dict, Optional

import httpx

from app.config import Settings
from app.errors import WhatsAppTransportError

logger = logging.getLogger(__name__)


class WhatsAppApiError(Exception):
    """Non-retryable rejection from the Cloud API (4xx)."""

    def __init__(self, status_code: int, message: str, code: Optional[int] = None) -> None:
        self.status_code = status_code
        self.code = code
        super().__init__(message)

    @property
    def is_auth_error(self) -> bool:
        return self.status_code in (401, 403)


def _error_message(resp: httpx.Response) -> tuple[str, Optional[int]]:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200] or f"HTTP {resp.status_code}", None
    err = body.get("error") if isinstance(body, dict) else None
    if isinstance(err, dict):
        return str(err.get("message") or f"HTTP {resp.status_code}"), err.get("code")
    return f"HTTP {resp.status_code}", None


class WhatsAppCloudClient:
    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.settings = settings
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def configured(self) -> bool:
        return self.settings.whatsapp_configured

    def _base_url(self) -> str:
        return f"{self.settings.whatsapp_api_base_url}/{self.settings.whatsapp_api_version}"

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            seconds = float(self.settings.whatsapp_timeout_seconds)
            timeout = httpx.Timeout(timeout=seconds, connect=5.0, read=seconds, write=5.0, pool=5.0)
            self._client = httpx.AsyncClient(
                base_url=self._base_url(),
                timeout=timeout,
                transport=self._transport,
                headers={
                    "Authorization": f"Bearer {self.settings.whatsapp_access_token}",
                    "Content-Type": "application/json",
                },
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        client = await self._get_client()
        try:
            resp = await client.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            raise WhatsAppTransportError(f"WhatsApp API unreachable: {exc}") from exc

        if resp.status_code >= 500:
            message, _ = _error_message(resp)
            raise WhatsAppTransportError(f"WhatsApp API {resp.status_code}: {message}", status_code=resp.status_code)
        if resp.status_code >= 400:
            message, code = _error_message(resp)
            raise WhatsAppApiError(resp.status_code, message, code)

        try:
            data = resp.json()
        except ValueError:
            data = {}
        return data if isinstance(data, dict) else {}

    async def get_phone_number_info(self) -> Dict[str, Any]:
        return await self._request(
            "GET",
            f"/{self.settings.whatsapp_phone_number_id}",
            params={"fields": "display_phone_number,verified_name"},
        )

    async def send_text_message(self, to: str, body: str) -> Dict[str, Any]:
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": "text",
            "text": {"preview_url": False, "body": body},
        }
        data = await self._request(
            "POST",
            f"/{self.settings.whatsapp_phone_number_id}/messages",
            json=payload,
        )
        messages = data.get("messages") or []
        message_id = messages[0].get("id") if messages and isinstance(messages[0], dict) else None
        logger.info("WhatsApp message accepted to=%s id=%s", to, message_id)
        return {"message_id": message_id, "raw": data}
