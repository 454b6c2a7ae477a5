from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from sqlalchemy.orm import Session

from config import settings
from db.models import SuggestionCache as SuggestionCacheRow

logger = logging.getLogger(__name__)


def suggestion_cache_key(user_id: int, day_of_week: str) -> str:
    return f"workout_suggestion:{user_id}:{day_of_week.lower()}"


class SuggestionCache(Protocol):
    def get(self, key: str) -> dict[str, Any] | None:
        ...

    def set(self, key: str, value: dict[str, Any], ttl_hours: float | None = None) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class DbSuggestionCache:
    """TTL cache stored in the suggestion_cache table.

    Expiry is checked on read; rows older than the TTL are ignored and
    overwritten on the next write.
    """

    def __init__(self, db: Session, ttl_hours: float | None = None):
        self.db = db
        self.ttl_hours = ttl_hours if ttl_hours is not None else settings.SUGGESTION_CACHE_TTL_HOURS

    def get(self, key: str) -> dict[str, Any] | None:
        row = self.db.query(SuggestionCacheRow).filter(SuggestionCacheRow.cache_key == key).first()
        if row is None:
            return None
        try:
            envelope = json.loads(row.payload_json)
        except json.JSONDecodeError:
            return None
        if not isinstance(envelope, dict) or not isinstance(envelope.get("value"), dict):
            return None
        ttl_value = envelope.get("ttl_hours")
        ttl = float(ttl_value) if ttl_value is not None else float(self.ttl_hours)
        cached_at = row.cached_at or datetime.min
        if _utc_now() - cached_at > timedelta(hours=max(ttl, 0)):
            return None
        return envelope["value"]

    def set(self, key: str, value: dict[str, Any], ttl_hours: float | None = None) -> None:
        payload = json.dumps(
            {"value": value, "ttl_hours": ttl_hours if ttl_hours is not None else self.ttl_hours},
            ensure_ascii=True,
        )
        row = self.db.query(SuggestionCacheRow).filter(SuggestionCacheRow.cache_key == key).first()
        if row is None:
            self.db.add(SuggestionCacheRow(cache_key=key, payload_json=payload, cached_at=_utc_now()))
        else:
            row.payload_json = payload
            row.cached_at = _utc_now()
        self.db.flush()

    def delete(self, key: str) -> None:
        self.db.query(SuggestionCacheRow).filter(SuggestionCacheRow.cache_key == key).delete(synchronize_session=False)
