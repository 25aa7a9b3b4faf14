"""Confirmation message rendering and phone normalisation (Brazil, +55)."""
from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping

_PLACEHOLDER_RE = re.compile(r"\{([a-zA-Z0-9_]+)\}")
_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")

BRAZIL_COUNTRY_CODE = "55"


def normalize_phone(raw: Any) -> str:
    """Digits-only phone with the 55 country code where it is clearly missing.

    - already prefixed (55 + 10/11 digits) -> unchanged
    - local number with area code (10/11 digits) -> prefixed with 55
    - anything else -> its digits, as-is
    """

    if not raw:
        return ""
    digits = re.sub(r"\D", "", str(raw))
    if not digits:
        return ""
    if digits.startswith(BRAZIL_COUNTRY_CODE) and len(digits) in (12, 13):
        return digits
    if len(digits) in (10, 11):
        return f"{BRAZIL_COUNTRY_CODE}{digits}"
    return digits


def format_booking_date(value: Any) -> str:
    if not value:
        return ""
    if isinstance(value, (datetime, date)):
        return value.strftime("%d/%m/%Y")
    if isinstance(value, str):
        match = _ISO_DATE_RE.match(value.strip())
        if match:
            return f"{match.group(3)}/{match.group(2)}/{match.group(1)}"
        return value
    return ""


def format_brl(value: Any) -> str:
    """R$ 1.234,56"""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        amount = Decimal("0")
    if not amount.is_finite():
        amount = Decimal("0")

    formatted = f"{amount.quantize(Decimal('0.01')):,.2f}"
    # en-US grouping -> pt-BR grouping
    formatted = formatted.replace(",", "_").replace(".", ",").replace("_", ".")
    return f"R$ {formatted}"


def _template_values(booking: Mapping[str, Any]) -> Dict[str, str]:
    booking_date = format_booking_date(booking.get("date"))
    participants = booking.get("participants")
    return {
        "id": str(booking.get("id") or booking.get("_id") or ""),
        "name": str(booking.get("name") or ""),
        "booking_date": booking_date,
        "date": booking_date,
        "time": str(booking.get("time") or ""),
        "activity": str(booking.get("activity") or ""),
        "participants": "" if participants is None else str(participants),
        "phone": str(booking.get("phone") or ""),
        "amount": format_brl(booking.get("amount") or 0),
        "status": str(booking.get("status") or ""),
    }


def render_message(template: str, booking: Mapping[str, Any]) -> str:
    """Fill {placeholders} from the booking; unknown ones stay untouched."""

    values = _template_values(booking)

    def _replace(match: "re.Match[str]") -> str:
        key = match.group(1)
        return values[key] if key in values else match.group(0)

    return _PLACEHOLDER_RE.sub(_replace, template)
