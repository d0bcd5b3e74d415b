# app/services/cache_service.py
"""
In-process TTL cache keyed by (entity_type, entity_id, scope).

Single-instance only; entries are lost on restart. Mutations that change
the cached value must call one of the invalidate_* methods.
"""
from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Any, Hashable, NamedTuple, Optional

from app.core.config import settings


class CacheKey(NamedTuple):
    entity_type: str
    entity_id: str
    scope: str


def cache_key(entity_type: str, entity_id: Hashable, scope: str) -> CacheKey:
    return CacheKey(entity_type, str(entity_id), scope)


class CacheService:
    """Expiring dict guarded by a lock"""

    def __init__(self, ttl_seconds: int = 300):
        self.ttl_seconds = ttl_seconds
        self._entries: dict[CacheKey, tuple[Any, datetime]] = {}
        self.lock = threading.Lock()

    def _is_expired(self, expiry: datetime) -> bool:
        return datetime.utcnow() > expiry

    def get(self, key: CacheKey) -> Optional[Any]:
        with self.lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expiry = entry
            if self._is_expired(expiry):
                del self._entries[key]
                return None
            return value

    def set(self, key: CacheKey, value: Any, ttl: Optional[int] = None) -> None:
        with self.lock:
            expiry = datetime.utcnow() + timedelta(seconds=self.ttl_seconds if ttl is None else ttl)
            self._entries[key] = (value, expiry)

    def invalidate(self, key: CacheKey) -> None:
        with self.lock:
            self._entries.pop(key, None)

    def invalidate_entity(self, entity_type: str, entity_id: Hashable) -> None:
        """Drop every scope cached for one entity"""
        entity_id = str(entity_id)
        with self.lock:
            for key in [k for k in self._entries if k.entity_type == entity_type and k.entity_id == entity_id]:
                del self._entries[key]

    def invalidate_scope(self, scope: str) -> None:
        """Drop a scope for every entity, e.g. all resolved permission sets"""
        with self.lock:
            for key in [k for k in self._entries if k.scope == scope]:
                del self._entries[key]

    def clear(self) -> None:
        with self.lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self.lock:
            return len(self._entries)


cache_service = CacheService(ttl_seconds=settings.PERMISSION_CACHE_TTL_SECONDS)
