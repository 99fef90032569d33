from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from django.conf import settings
from django.utils import timezone

from trip_pricing.exceptions import CacheStoreError, PricingEngineError
from trip_pricing.services.geo import distance_km
from trip_pricing.services.routes_client import GoogleRoutesClient
from trip_pricing.services.toll_cache import (
    CachedToll,
    TollCacheKey,
    TollCacheStore,
    get_toll_cache_store,
)
from trip_pricing.services.types import ExcursionRouteResult, GeoPoint, TollResult

logger = logging.getLogger(__name__)

TOLL_CACHE_TTL_HOURS = 24
FALLBACK_TOLL_SENTINEL = -1.0
EXCURSION_FALLBACK_SPEED_KMH = 40.0


@dataclass(slots=True, frozen=True)
class TollServiceConfig:
    api_key: str | None
    fallback_rate_per_km: float
    cache_ttl_hours: float = TOLL_CACHE_TTL_HOURS

    @classmethod
    def from_settings(cls) -> TollServiceConfig:
        return cls(
            api_key=settings.GOOGLE_ROUTES_API_KEY or None,
            fallback_rate_per_km=settings.TOLL_FALLBACK_RATE_PER_KM,
            cache_ttl_hours=settings.TOLL_CACHE_TTL_HOURS,
        )


def calculate_fallback_toll(route_distance_km: float, rate_per_km: float) -> float:
    return round(route_distance_km * rate_per_km, 2)


def cleanup_expired_toll_cache(
    store: TollCacheStore | None = None, now: datetime | None = None
) -> int:
    """Delete cache rows whose expiry is in the past; returns 0 if the store fails."""
    store = store if store is not None else get_toll_cache_store()
    try:
        deleted = store.delete_expired(now or timezone.now())
    except CacheStoreError:
        logger.exception("Toll cache cleanup failed")
        return 0
    logger.info("Purged %s expired toll cache entries", deleted)
    return deleted


class TollService:
    def __init__(
        self,
        config: TollServiceConfig | None = None,
        store: TollCacheStore | None = None,
        client: GoogleRoutesClient | None = None,
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        self.config = config or TollServiceConfig.from_settings()
        self.store = store if store is not None else get_toll_cache_store()
        self.client = client
        self.clock = clock

    def get_toll_cost(self, origin: GeoPoint, destination: GeoPoint) -> TollResult:
        key = TollCacheKey.for_route(origin, destination)
        now = self.clock()

        cached = self._read_cache(key)
        if cached is not None and cached.expires_at > now:
            return TollResult(
                amount=cached.toll_amount,
                currency=cached.currency,
                source=cached.source,
                fetched_at=cached.fetched_at,
                is_from_cache=True,
                encoded_polyline=cached.encoded_polyline,
            )

        if self.config.api_key:
            try:
                route = self._client().compute_route(origin, destination)
            except PricingEngineError as exc:
                logger.warning("Toll lookup failed, falling back to estimate: %s", exc)
            else:
                self._write_cache(
                    key,
                    CachedToll(
                        toll_amount=route.toll_amount,
                        currency="EUR",
                        source="GOOGLE_API",
                        fetched_at=now,
                        expires_at=now + timedelta(hours=self.config.cache_ttl_hours),
                        encoded_polyline=route.encoded_polyline,
                    ),
                )
                return TollResult(
                    amount=route.toll_amount,
                    currency="EUR",
                    source="GOOGLE_API",
                    fetched_at=now,
                    is_from_cache=False,
                    encoded_polyline=route.encoded_polyline,
                )

        return TollResult(
            amount=FALLBACK_TOLL_SENTINEL,
            currency="EUR",
            source="ESTIMATE",
            fetched_at=None,
            is_from_cache=False,
        )

    def resolve_toll_cost(
        self, origin: GeoPoint, destination: GeoPoint, route_distance_km: float
    ) -> TollResult:
        """Like ``get_toll_cost`` but replaces the sentinel with the flat-rate estimate."""
        result = self.get_toll_cost(origin, destination)
        if result.amount >= 0:
            return result
        return TollResult(
            amount=self.calculate_fallback(route_distance_km),
            currency="EUR",
            source="ESTIMATE",
            fetched_at=None,
            is_from_cache=False,
        )

    def calculate_fallback(self, route_distance_km: float) -> float:
        return calculate_fallback_toll(route_distance_km, self.config.fallback_rate_per_km)

    def calculate_excursion_route(
        self,
        origin: GeoPoint,
        destination: GeoPoint,
        waypoints: Sequence[GeoPoint],
    ) -> ExcursionRouteResult:
        if self.config.api_key:
            try:
                route = self._client().compute_route(
                    origin, destination, intermediates=list(waypoints)
                )
            except PricingEngineError as exc:
                logger.warning("Excursion routing failed, using haversine estimate: %s", exc)
            else:
                leg_distances = [leg.distance_meters / 1000.0 for leg in route.legs]
                leg_durations = [leg.duration_seconds / 60.0 for leg in route.legs]
                total_distance = route.distance_km or sum(leg_distances)
                total_duration = route.duration_minutes or sum(leg_durations)
                return ExcursionRouteResult(
                    leg_distances_km=leg_distances,
                    leg_durations_minutes=leg_durations,
                    total_distance_km=round(total_distance, 2),
                    total_duration_minutes=round(total_duration, 2),
                    is_from_api=True,
                )

        return estimate_excursion_route(origin, destination, waypoints)

    def _client(self) -> GoogleRoutesClient:
        if self.client is None:
            self.client = GoogleRoutesClient(api_key=self.config.api_key)
        return self.client

    def _read_cache(self, key: TollCacheKey) -> CachedToll | None:
        try:
            return self.store.get(key)
        except CacheStoreError:
            logger.warning("Toll cache lookup failed", exc_info=True)
            return None

    def _write_cache(self, key: TollCacheKey, entry: CachedToll) -> None:
        try:
            self.store.upsert(key, entry)
        except CacheStoreError:
            logger.warning("Toll cache write failed", exc_info=True)


def estimate_excursion_route(
    origin: GeoPoint, destination: GeoPoint, waypoints: Sequence[GeoPoint]
) -> ExcursionRouteResult:
    stops = [origin, *waypoints, destination]
    leg_distances: list[float] = []
    leg_durations: list[float] = []
    for start, finish in zip(stops, stops[1:]):
        leg = distance_km(start, finish)
        leg_distances.append(round(leg, 2))
        leg_durations.append(round(leg / EXCURSION_FALLBACK_SPEED_KMH * 60, 2))

    return ExcursionRouteResult(
        leg_distances_km=leg_distances,
        leg_durations_minutes=leg_durations,
        total_distance_km=round(sum(leg_distances), 2),
        total_duration_minutes=round(sum(leg_durations), 2),
        is_from_api=False,
    )
