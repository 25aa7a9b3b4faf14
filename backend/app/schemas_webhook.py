from __future__ import annotations

"""Inbound payment gateway (Asaas) webhook payloads.

The gateway posts arbitrary JSON; everything is optional here and shape
problems are absorbed by `InboundEvent.from_payload` so the async pipeline
sees a well-typed (possibly empty) event instead of raw dicts.
"""

import logging
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


def _scalar_text(value: Any) -> Optional[str]:
    """Numbers become their text; other non-string values are dropped."""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    logger.warning("Webhook field of type %s ignored", type(value).__name__)
    return None


class PaymentPayload(BaseModel):
    id: Optional[str] = None
    status: Optional[str] = None
    billing_type: Optional[str] = Field(default=None, alias="billingType")
    external_reference: Optional[str] = Field(default=None, alias="externalReference")
    value: Optional[Any] = None

    class Config:
        populate_by_name = True
        frozen = True
        extra = "ignore"

    @field_validator("id", "status", "billing_type", "external_reference", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> Optional[str]:
        return _scalar_text(value)


class InboundEvent(BaseModel):
    event: Optional[str] = None
    payment: Optional[PaymentPayload] = None

    class Config:
        populate_by_name = True
        frozen = True
        extra = "ignore"

    @field_validator("event", mode="before")
    @classmethod
    def coerce_event(cls, value: Any) -> Optional[str]:
        return _scalar_text(value)

    @field_validator("payment", mode="before")
    @classmethod
    def payment_object(cls, value: Any) -> Any:
        # a non-object payment is dropped, the event type is kept
        if value is None or isinstance(value, (dict, PaymentPayload)):
            return value
        logger.warning("Webhook payment of type %s ignored", type(value).__name__)
        return None

    @property
    def external_reference(self) -> Optional[str]:
        if self.payment is None:
            return None
        return self.payment.external_reference or None

    @classmethod
    def from_payload(cls, data: Any) -> "InboundEvent":
        """Validate a decoded JSON body; never raises.

        Numeric ids and references are kept as text; a field of the wrong
        shape is dropped on its own. A non-mapping body becomes an empty
        event, which the classifier rejects.
        """

        if not isinstance(data, dict):
            logger.warning("Webhook body is not a JSON object (%s); treating as empty event", type(data).__name__)
            return cls()
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            logger.warning("Webhook body does not match InboundEvent: %s", exc.errors())
            return cls()

    def describe(self) -> str:
        p = self.payment
        return (
            f"event={self.event} status={p.status if p else None} "
            f"method={p.billing_type if p else None} ref={self.external_reference}"
        )
