from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def today_in(tz: ZoneInfo) -> date:
    """Current calendar day in `tz` (bookings are dated in local time)."""
    return now_utc().astimezone(tz).date()
