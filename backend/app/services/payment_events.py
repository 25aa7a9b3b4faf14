from __future__ import annotations

"""Classification of Asaas payment events.

Only two combinations mean "money is in":
- card:  PAYMENT_CONFIRMED with status CONFIRMED
- PIX:   PAYMENT_RECEIVED with billingType PIX and status RECEIVED
"""

from typing import Any, Mapping, Optional

EVENT_PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
EVENT_PAYMENT_RECEIVED = "PAYMENT_RECEIVED"

STATUS_CONFIRMED = "CONFIRMED"
STATUS_RECEIVED = "RECEIVED"

BILLING_TYPE_PIX = "PIX"


def _field(payment: Any, attr: str, key: str) -> Optional[Any]:
    if payment is None:
        return None
    if isinstance(payment, Mapping):
        return payment.get(key, payment.get(attr))
    return getattr(payment, attr, None)


def should_process(event_type: Any, payment: Any) -> bool:
    """Return True if the event settles a booking payment.

    `payment` may be a PaymentPayload, a raw mapping (camelCase or
    snake_case keys) or None. Never raises.
    """

    try:
        status = _field(payment, "status", "status")
        billing_type = _field(payment, "billing_type", "billingType")

        if event_type == EVENT_PAYMENT_CONFIRMED and status == STATUS_CONFIRMED:
            return True
        if event_type == EVENT_PAYMENT_RECEIVED and billing_type == BILLING_TYPE_PIX and status == STATUS_RECEIVED:
            return True
    except Exception:
        return False
    return False
