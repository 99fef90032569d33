from __future__ import annotations

import threading
from datetime import datetime

import pytest
from django.test import Client

from trip_pricing.services.toll_cache import CachedToll, TollCacheKey
from trip_pricing.services.tolls import TollService, TollServiceConfig


class InMemoryTollCacheStore:
    def __init__(self) -> None:
        self._entries: dict[TollCacheKey, CachedToll] = {}
        self._lock = threading.Lock()

    def get(self, key: TollCacheKey) -> CachedToll | None:
        with self._lock:
            return self._entries.get(key)

    def upsert(self, key: TollCacheKey, entry: CachedToll) -> None:
        with self._lock:
            self._entries[key] = entry

    def delete_expired(self, now: datetime) -> int:
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.expires_at < now]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def count(self) -> int:
        with self._lock:
            return len(self._entries)


@pytest.fixture
def api_client() -> Client:
    return Client()


@pytest.fixture
def memory_store() -> InMemoryTollCacheStore:
    return InMemoryTollCacheStore()


@pytest.fixture
def offline_toll_service(memory_store: InMemoryTollCacheStore) -> TollService:
    return TollService(
        config=TollServiceConfig(api_key=None, fallback_rate_per_km=0.12),
        store=memory_store,
    )
