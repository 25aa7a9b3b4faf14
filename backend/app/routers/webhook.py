from __future__ import annotations

"""Asaas payment webhook endpoint.

POST /webhook only acknowledges: the body is normalised and queued, and the
response is always 200 "OK" so the gateway never waits on processing. All
state changes happen later in WebhookTaskQueue.
"""

import hmac
import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from app.config import Settings
from app.deps import get_app_settings, get_webhook_queue
from app.errors import AppError
from app.schemas_webhook import InboundEvent
from app.services.webhook_queue import WebhookTaskQueue

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhook"])

ACCESS_TOKEN_HEADER = "asaas-access-token"


def _check_access_token(request: Request, settings: Settings) -> None:
    expected = settings.asaas_webhook_token
    if not expected:
        return
    received = request.headers.get(ACCESS_TOKEN_HEADER, "")
    if not hmac.compare_digest(received.encode("utf-8"), expected.encode("utf-8")):
        raise AppError(401, "webhook_unauthorized", "Invalid webhook access token")


@router.post("/webhook", response_class=PlainTextResponse)
async def payment_webhook(
    request: Request,
    queue: WebhookTaskQueue = Depends(get_webhook_queue),
    settings: Settings = Depends(get_app_settings),
) -> PlainTextResponse:
    _check_access_token(request, settings)

    raw_body = await request.body()
    try:
        data: Any = json.loads(raw_body.decode("utf-8")) if raw_body else None
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("Webhook body is not valid JSON (%s); acknowledged without processing", exc)
        return PlainTextResponse("OK", status_code=200)

    queue.enqueue(InboundEvent.from_payload(data))
    return PlainTextResponse("OK", status_code=200)


@router.get("/api/webhook/queue")
async def webhook_queue_status(queue: WebhookTaskQueue = Depends(get_webhook_queue)) -> Dict[str, Any]:
    return queue.snapshot()
