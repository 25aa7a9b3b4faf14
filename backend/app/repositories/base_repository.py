from __future__ import annotations

from typing import Any, Dict

from motor.motor_asyncio import AsyncIOMotorDatabase, AsyncIOMotorCollection

from app.utils import now_utc


def get_collection(db: AsyncIOMotorDatabase, name: str) -> AsyncIOMotorCollection:
    """Return a Motor collection from the given database.

    This is the only place where services should obtain collections.
    """

    return db[name]


def set_with_timestamp(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Build a `$set` update that also stamps updated_at."""

    payload = dict(fields or {})
    payload.setdefault("updated_at", now_utc())
    return {"$set": payload}
