from __future__ import annotations

"""Application configuration.

Everything is env-driven. `get_settings()` reads the environment once per
process; tests call `get_settings.cache_clear()` after monkeypatching env.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional
import logging
import os

logger = logging.getLogger(__name__)


def _env_flag(name: str, default: bool = True) -> bool:
    """Read a boolean-like flag from environment.

    Accepted falsy values: "0", "false", "off", "no" (case-insensitive).
    Anything else (or unset) falls back to `default`.
    """

    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in {"0", "false", "off", "no"}:
        return False
    if value in {"1", "true", "on", "yes"}:
        return True
    return default


def _env_non_negative_int(name: str, default: int) -> int:
    """Read a non-negative integer from environment.

    Empty, non-numeric or negative values fall back to `default`.
    """

    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        logger.warning("Invalid integer for %s=%r; using %s", name, raw, default)
        return default
    if value < 0:
        logger.warning("Negative value for %s=%r; using %s", name, raw, default)
        return default
    return value


# Application constants
API_PREFIX = "/api"
APP_NAME = "Reservas Webhook API"
APP_VERSION = "1.0.0"

DEFAULT_WEBHOOK_MAX_RETRIES = 3
DEFAULT_WEBHOOK_RETRY_DELAY_MS = 4000
DEFAULT_WHATSAPP_INIT_RETRIES = 3
DEFAULT_WHATSAPP_INIT_RETRY_DELAY_MS = 5000


@dataclass(frozen=True)
class Settings:
    webhook_max_retries: int = DEFAULT_WEBHOOK_MAX_RETRIES
    webhook_retry_delay_ms: int = DEFAULT_WEBHOOK_RETRY_DELAY_MS
    asaas_webhook_token: Optional[str] = None

    whatsapp_access_token: Optional[str] = None
    whatsapp_phone_number_id: Optional[str] = None
    whatsapp_api_base_url: str = "https://graph.facebook.com"
    whatsapp_api_version: str = "v19.0"
    whatsapp_timeout_seconds: float = 10.0
    whatsapp_init_retries: int = DEFAULT_WHATSAPP_INIT_RETRIES
    whatsapp_init_retry_delay_ms: int = DEFAULT_WHATSAPP_INIT_RETRY_DELAY_MS
    whatsapp_autostart: bool = True

    enable_confirmation_email: bool = False
    booking_timezone: str = "America/Sao_Paulo"

    @property
    def whatsapp_configured(self) -> bool:
        return bool(self.whatsapp_access_token and self.whatsapp_phone_number_id)

    @classmethod
    def from_env(cls) -> "Settings":
        try:
            timeout = float(os.environ.get("WHATSAPP_TIMEOUT_SECONDS", "10"))
        except ValueError:
            timeout = 10.0

        return cls(
            webhook_max_retries=_env_non_negative_int("WEBHOOK_MAX_RETRIES", DEFAULT_WEBHOOK_MAX_RETRIES),
            webhook_retry_delay_ms=_env_non_negative_int("WEBHOOK_RETRY_DELAY_MS", DEFAULT_WEBHOOK_RETRY_DELAY_MS),
            asaas_webhook_token=os.environ.get("ASAAS_WEBHOOK_TOKEN") or None,
            whatsapp_access_token=os.environ.get("WHATSAPP_ACCESS_TOKEN") or None,
            whatsapp_phone_number_id=os.environ.get("WHATSAPP_PHONE_NUMBER_ID") or None,
            whatsapp_api_base_url=os.environ.get("WHATSAPP_API_BASE_URL", "https://graph.facebook.com").rstrip("/"),
            whatsapp_api_version=os.environ.get("WHATSAPP_API_VERSION", "v19.0"),
            whatsapp_timeout_seconds=timeout,
            whatsapp_init_retries=_env_non_negative_int("WHATSAPP_INIT_RETRIES", DEFAULT_WHATSAPP_INIT_RETRIES),
            whatsapp_init_retry_delay_ms=_env_non_negative_int(
                "WHATSAPP_INIT_RETRY_DELAY_MS", DEFAULT_WHATSAPP_INIT_RETRY_DELAY_MS
            ),
            whatsapp_autostart=_env_flag("WHATSAPP_AUTOSTART", default=True),
            enable_confirmation_email=_env_flag("ENABLE_CONFIRMATION_EMAIL", default=False),
            booking_timezone=os.environ.get("BOOKING_TIMEZONE", "America/Sao_Paulo"),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
