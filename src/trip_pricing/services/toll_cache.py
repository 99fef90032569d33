from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal
from typing import Protocol

from django.conf import settings
from django.core.cache import DEFAULT_CACHE_ALIAS, caches
from django.db import DatabaseError

from trip_pricing.exceptions import CacheStoreError
from trip_pricing.models import TollCacheEntry
from trip_pricing.services.geo import hash_coordinates
from trip_pricing.services.types import GeoPoint, TollSource


@dataclass(slots=True, frozen=True)
class TollCacheKey:
    origin_hash: str
    destination_hash: str

    @classmethod
    def for_route(cls, origin: GeoPoint, destination: GeoPoint) -> TollCacheKey:
        return cls(
            origin_hash=hash_coordinates(origin),
            destination_hash=hash_coordinates(destination),
        )


@dataclass(slots=True, frozen=True)
class CachedToll:
    toll_amount: float
    currency: str
    source: TollSource
    fetched_at: datetime
    expires_at: datetime
    encoded_polyline: str | None = None


class TollCacheStore(Protocol):
    def get(self, key: TollCacheKey) -> CachedToll | None: ...

    def upsert(self, key: TollCacheKey, entry: CachedToll) -> None: ...

    def delete_expired(self, now: datetime) -> int: ...

    def count(self) -> int: ...


class DatabaseTollCacheStore:
    """Toll cache persisted through the ``TollCacheEntry`` model."""

    def get(self, key: TollCacheKey) -> CachedToll | None:
        try:
            row = TollCacheEntry.objects.filter(
                origin_hash=key.origin_hash, destination_hash=key.destination_hash
            ).first()
        except DatabaseError as exc:
            raise CacheStoreError("Toll cache lookup failed") from exc

        if row is None:
            return None
        return CachedToll(
            toll_amount=float(row.toll_amount),
            currency=row.currency,
            source=row.source,
            fetched_at=row.fetched_at,
            expires_at=row.expires_at,
            encoded_polyline=row.encoded_polyline,
        )

    def upsert(self, key: TollCacheKey, entry: CachedToll) -> None:
        try:
            TollCacheEntry.objects.update_or_create(
                origin_hash=key.origin_hash,
                destination_hash=key.destination_hash,
                defaults={
                    "toll_amount": Decimal(str(entry.toll_amount)),
                    "currency": entry.currency,
                    "source": entry.source,
                    "fetched_at": entry.fetched_at,
                    "expires_at": entry.expires_at,
                    "encoded_polyline": entry.encoded_polyline,
                },
            )
        except DatabaseError as exc:
            raise CacheStoreError("Toll cache write failed") from exc

    def delete_expired(self, now: datetime) -> int:
        try:
            deleted, _ = TollCacheEntry.objects.filter(expires_at__lt=now).delete()
        except DatabaseError as exc:
            raise CacheStoreError("Toll cache cleanup failed") from exc
        return deleted

    def count(self) -> int:
        try:
            return TollCacheEntry.objects.count()
        except DatabaseError as exc:
            raise CacheStoreError("Toll cache count failed") from exc


class DjangoCacheTollCacheStore:
    """Toll cache kept in a Django cache backend.

    Each entry is stored with its TTL as the cache timeout, so the backend
    evicts it on its own. A key index stored alongside the entries backs
    ``count`` and ``delete_expired``; concurrent writers may drop a key from
    the index, which only under-reports the count.
    """

    key_prefix = "toll-cache"

    def __init__(self, alias: str = DEFAULT_CACHE_ALIAS) -> None:
        self.alias = alias

    @property
    def cache(self):
        return caches[self.alias]

    @property
    def index_key(self) -> str:
        return f"{self.key_prefix}:keys"

    def cache_key(self, key: TollCacheKey) -> str:
        return f"{self.key_prefix}:{key.origin_hash}:{key.destination_hash}"

    def get(self, key: TollCacheKey) -> CachedToll | None:
        cached = self.cache.get(self.cache_key(key))
        if cached is None:
            return None
        return CachedToll(**cached)

    def upsert(self, key: TollCacheKey, entry: CachedToll) -> None:
        cache_key = self.cache_key(key)
        timeout = max(0.0, (entry.expires_at - entry.fetched_at).total_seconds())
        self.cache.set(cache_key, asdict(entry), timeout=timeout)

        keys = self.cache.get(self.index_key, set())
        keys.add(cache_key)
        self.cache.set(self.index_key, keys, timeout=None)

    def delete_expired(self, now: datetime) -> int:
        live = self._live_entries()
        expired = {cache_key for cache_key, cached in live.items() if cached["expires_at"] < now}
        self.cache.delete_many(list(expired))
        self.cache.set(self.index_key, set(live) - expired, timeout=None)
        return len(expired)

    def count(self) -> int:
        return len(self._live_entries())

    def _live_entries(self) -> dict[str, dict]:
        keys = self.cache.get(self.index_key, set())
        if not keys:
            return {}
        return self.cache.get_many(list(keys))


def get_toll_cache_store() -> TollCacheStore:
    if settings.TOLL_CACHE_BACKEND == "cache":
        return DjangoCacheTollCacheStore()
    return DatabaseTollCacheStore()
