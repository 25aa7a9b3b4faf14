from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from app.config import APP_NAME, APP_VERSION, get_settings
from app.db import close_mongo, connect_mongo, get_db, ping
from app.exception_handlers import register_exception_handlers
from app.repositories.booking_repository import BookingRepository
from app.repositories.notification_config_repository import NotificationConfigRepository
from app.routers.webhook import router as webhook_router
from app.routers.whatsapp import router as whatsapp_router
from app.services.confirmation_email import ConfirmationEmailSender
from app.services.payment_webhook import PaymentWebhookProcessor
from app.services.webhook_queue import WebhookTaskQueue
from app.services.whatsapp.client import WhatsAppCloudClient
from app.services.whatsapp.gateway import WhatsAppGateway
from app.services.whatsapp.pending import PendingNotificationSweeper

ROOT_DIR = Path(__file__).parent

# Load .env only if exists (development fallback)
env_path = ROOT_DIR / ".env"
if env_path.exists():
    load_dotenv(env_path)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("reservas-webhook")

app = FastAPI(title=APP_NAME, version=APP_VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get("CORS_ORIGINS", "*").split(","),
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(webhook_router)
app.include_router(whatsapp_router)


@app.get("/api/health")
async def health() -> dict[str, Any]:
    """Health check with database ping and webhook queue state."""
    queue = getattr(app.state, "webhook_queue", None)
    gateway = getattr(app.state, "whatsapp_gateway", None)
    return {
        "ok": await ping(),
        "service": "reservas-webhook",
        "webhook_queue": queue.snapshot() if queue else None,
        "whatsapp": gateway.status()["status"] if gateway else None,
    }


@app.get("/health")
async def deployment_health() -> dict[str, Any]:
    """Simple health check for deployment platforms"""
    return {"ok": True, "service": "reservas-webhook", "status": "healthy"}


@app.on_event("startup")
async def _startup() -> None:
    await connect_mongo()
    db = await get_db()
    settings = get_settings()

    bookings = BookingRepository(db)
    config_repo = NotificationConfigRepository(db)

    gateway = WhatsAppGateway(WhatsAppCloudClient(settings), config_repo, settings)
    sweeper = PendingNotificationSweeper(bookings, gateway, timezone=settings.booking_timezone)
    gateway.on_ready = sweeper.run

    email_sender = ConfirmationEmailSender() if settings.enable_confirmation_email else None
    processor = PaymentWebhookProcessor(bookings, gateway, email_sender=email_sender)

    app.state.notification_config_repo = config_repo
    app.state.whatsapp_gateway = gateway
    app.state.pending_sweeper = sweeper
    app.state.webhook_queue = WebhookTaskQueue(
        processor,
        max_retries=settings.webhook_max_retries,
        retry_delay_ms=settings.webhook_retry_delay_ms,
    )

    if settings.whatsapp_autostart:
        gateway.start()

    logger.info(
        "Startup complete (webhook retries=%s delay=%sms, whatsapp configured=%s, email=%s)",
        settings.webhook_max_retries,
        settings.webhook_retry_delay_ms,
        settings.whatsapp_configured,
        settings.enable_confirmation_email,
    )


@app.on_event("shutdown")
async def _shutdown() -> None:
    queue = getattr(app.state, "webhook_queue", None)
    if queue is not None:
        await queue.aclose()
    gateway = getattr(app.state, "whatsapp_gateway", None)
    if gateway is not None:
        await gateway.disconnect()
    await close_mongo()
    logger.info("Shutdown complete")
