from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class AppError(Exception):
    status_code: int
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return error_response(self.code, self.message, self.details)


class WebhookProcessingError(Exception):
    """Base class for failures inside the webhook pipeline.

    Raised from task processing; the retry queue turns these into
    retry/drop decisions and never lets them reach the HTTP layer.
    """


class MissingExternalReferenceError(WebhookProcessingError):
    """Accepted payment event without payment.externalReference."""

    def __init__(self, event_type: Optional[str], payment_id: Optional[str] = None) -> None:
        self.event_type = event_type
        self.payment_id = payment_id
        super().__init__(
            f"externalReference missing for event={event_type} payment_id={payment_id}"
        )


class WhatsAppTransportError(WebhookProcessingError):
    """WhatsApp Cloud API unreachable or answered with a 5xx."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


def error_response(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        }
    }
