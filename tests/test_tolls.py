from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from trip_pricing.exceptions import CacheStoreError, ExternalServiceError
from trip_pricing.models import TollCacheEntry
from trip_pricing.services.routes_client import GoogleRoutesClient
from trip_pricing.services.toll_cache import (
    CachedToll,
    DatabaseTollCacheStore,
    DjangoCacheTollCacheStore,
    TollCacheKey,
    get_toll_cache_store,
)
from trip_pricing.services.tolls import (
    TollService,
    TollServiceConfig,
    calculate_fallback_toll,
    cleanup_expired_toll_cache,
    estimate_excursion_route,
)
from trip_pricing.services.types import GeoPoint, RouteData, RouteLeg

ORIGIN = GeoPoint(48.8566, 2.3522)
DESTINATION = GeoPoint(45.7640, 4.8357)
NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _route(toll: float = 35.5) -> RouteData:
    return RouteData(
        distance_meters=465000,
        duration_seconds=15840,
        toll_amount=toll,
        encoded_polyline="_p~iF~ps|U_ulLnnqC_mqNvxq`@",
    )


def _service(store, client=None, api_key: str | None = "secret") -> TollService:
    return TollService(
        config=TollServiceConfig(api_key=api_key, fallback_rate_per_km=0.12),
        store=store,
        client=client,
        clock=lambda: NOW,
    )


@pytest.mark.parametrize(
    ("distance", "rate", "expected"),
    [(0.0, 0.12, 0.0), (100.0, 0.0, 0.0), (100.0, 0.12, 12.0), (465.0, 0.15, 69.75)],
)
def test_calculate_fallback_toll(distance: float, rate: float, expected: float) -> None:
    assert calculate_fallback_toll(distance, rate) == expected


def test_without_api_key_returns_estimate_sentinel(memory_store) -> None:
    result = _service(memory_store, api_key=None).get_toll_cost(ORIGIN, DESTINATION)

    assert result.amount == -1.0
    assert result.source == "ESTIMATE"
    assert result.is_estimate
    assert result.fetched_at is None
    assert not result.is_from_cache


def test_api_result_is_cached_for_next_lookup(memory_store, mocker) -> None:
    client = mocker.Mock()
    client.compute_route.return_value = _route()
    service = _service(memory_store, client=client)

    first = service.get_toll_cost(ORIGIN, DESTINATION)
    second = service.get_toll_cost(ORIGIN, DESTINATION)

    assert first.amount == 35.5
    assert first.source == "GOOGLE_API"
    assert not first.is_from_cache
    assert second.is_from_cache
    assert second.amount == 35.5
    client.compute_route.assert_called_once()

    entry = memory_store.get(TollCacheKey.for_route(ORIGIN, DESTINATION))
    assert entry is not None
    assert entry.expires_at == NOW + timedelta(hours=24)


def test_expired_cache_entry_is_refreshed(memory_store, mocker) -> None:
    memory_store.upsert(
        TollCacheKey.for_route(ORIGIN, DESTINATION),
        CachedToll(
            toll_amount=20.0,
            currency="EUR",
            source="GOOGLE_API",
            fetched_at=NOW - timedelta(days=2),
            expires_at=NOW - timedelta(days=1),
        ),
    )
    client = mocker.Mock()
    client.compute_route.return_value = _route(toll=36.1)

    result = _service(memory_store, client=client).get_toll_cost(ORIGIN, DESTINATION)

    assert result.amount == 36.1
    assert not result.is_from_cache


def test_api_failure_falls_back_to_sentinel(memory_store, mocker) -> None:
    client = mocker.Mock()
    client.compute_route.side_effect = ExternalServiceError("Routes API returned HTTP 500")
    service = _service(memory_store, client=client)

    assert service.get_toll_cost(ORIGIN, DESTINATION).amount == -1.0

    resolved = service.resolve_toll_cost(ORIGIN, DESTINATION, route_distance_km=100.0)
    assert resolved.amount == 12.0
    assert resolved.source == "ESTIMATE"
    assert memory_store.count() == 0


def test_malformed_api_response_falls_back_to_sentinel(memory_store, mocker) -> None:
    response = mocker.Mock()
    response.json.return_value = {"routes": [{"distanceMeters": "n/a", "duration": "60s"}]}
    mocker.patch("trip_pricing.services.routes_client.httpx.post", return_value=response)
    service = _service(memory_store, client=GoogleRoutesClient(api_key="secret"))

    result = service.get_toll_cost(ORIGIN, DESTINATION)

    assert result.amount == -1.0
    assert result.source == "ESTIMATE"
    assert memory_store.count() == 0


def test_cache_failures_are_treated_as_misses(mocker) -> None:
    store = mocker.Mock()
    store.get.side_effect = CacheStoreError("Toll cache lookup failed")
    store.upsert.side_effect = CacheStoreError("Toll cache write failed")
    client = mocker.Mock()
    client.compute_route.return_value = _route()

    result = _service(store, client=client).get_toll_cost(ORIGIN, DESTINATION)

    assert result.amount == 35.5
    assert result.source == "GOOGLE_API"


def test_cleanup_removes_only_expired_entries(memory_store) -> None:
    for index, expires_at in enumerate([NOW - timedelta(hours=1), NOW + timedelta(hours=1)]):
        memory_store.upsert(
            TollCacheKey(origin_hash=f"o{index}", destination_hash="d"),
            CachedToll(
                toll_amount=1.0,
                currency="EUR",
                source="GOOGLE_API",
                fetched_at=NOW - timedelta(hours=23),
                expires_at=expires_at,
            ),
        )

    assert cleanup_expired_toll_cache(memory_store, now=NOW) == 1
    assert memory_store.count() == 1


def test_cleanup_swallows_store_failures(mocker) -> None:
    store = mocker.Mock()
    store.delete_expired.side_effect = CacheStoreError("Toll cache cleanup failed")

    assert cleanup_expired_toll_cache(store, now=NOW) == 0


@pytest.mark.django_db
def test_database_store_upserts_on_route_key() -> None:
    store = DatabaseTollCacheStore()
    key = TollCacheKey.for_route(ORIGIN, DESTINATION)

    for amount in (35.5, 36.2):
        store.upsert(
            key,
            CachedToll(
                toll_amount=amount,
                currency="EUR",
                source="GOOGLE_API",
                fetched_at=NOW,
                expires_at=NOW + timedelta(hours=24),
            ),
        )

    assert TollCacheEntry.objects.count() == 1
    cached = store.get(key)
    assert cached is not None
    assert cached.toll_amount == 36.2
    assert store.delete_expired(NOW + timedelta(days=2)) == 1
    assert store.count() == 0



@pytest.fixture
def cache_store() -> DjangoCacheTollCacheStore:
    store = DjangoCacheTollCacheStore()
    store.cache.clear()
    return store


def _cached(amount: float, fetched_at: datetime, ttl: timedelta) -> CachedToll:
    return CachedToll(
        toll_amount=amount,
        currency="EUR",
        source="GOOGLE_API",
        fetched_at=fetched_at,
        expires_at=fetched_at + ttl,
    )


def test_cache_store_round_trips_and_overwrites(cache_store) -> None:
    key = TollCacheKey.for_route(ORIGIN, DESTINATION)

    assert cache_store.get(key) is None
    for amount in (35.5, 36.2):
        cache_store.upsert(key, _cached(amount, NOW, timedelta(hours=24)))

    cached = cache_store.get(key)
    assert cached == _cached(36.2, NOW, timedelta(hours=24))
    assert cache_store.count() == 1


def test_cache_store_uses_ttl_as_timeout(cache_store, mocker) -> None:
    cache_set = mocker.spy(cache_store.cache, "set")
    key = TollCacheKey.for_route(ORIGIN, DESTINATION)

    cache_store.upsert(key, _cached(35.5, NOW, timedelta(hours=24)))

    entry_call = cache_set.call_args_list[0]
    assert entry_call.args[0] == cache_store.cache_key(key)
    assert entry_call.kwargs["timeout"] == 86400.0


def test_cache_store_cleanup_removes_only_expired_entries(cache_store) -> None:
    day = timedelta(hours=24)
    cache_store.upsert(TollCacheKey("o1", "d"), _cached(1.0, NOW - timedelta(hours=23), day))
    cache_store.upsert(TollCacheKey("o2", "d"), _cached(2.0, NOW, day))

    assert cache_store.delete_expired(NOW + timedelta(hours=2)) == 1
    assert cache_store.get(TollCacheKey("o1", "d")) is None
    assert cache_store.count() == 1


def test_cache_backend_setting_selects_django_cache_store(settings) -> None:
    settings.TOLL_CACHE_BACKEND = "cache"
    assert isinstance(get_toll_cache_store(), DjangoCacheTollCacheStore)

    settings.TOLL_CACHE_BACKEND = "database"
    assert isinstance(get_toll_cache_store(), DatabaseTollCacheStore)

def test_excursion_route_uses_api_legs(memory_store, mocker) -> None:
    client = mocker.Mock()
    client.compute_route.return_value = RouteData(
        distance_meters=30000,
        duration_seconds=3000,
        toll_amount=0.0,
        legs=[RouteLeg(10000, 1200), RouteLeg(20000, 1800)],
    )
    waypoint = GeoPoint(48.80, 2.13)

    result = _service(memory_store, client=client).calculate_excursion_route(
        ORIGIN, DESTINATION, [waypoint]
    )

    assert result.is_from_api
    assert result.leg_distances_km == [10.0, 20.0]
    assert result.leg_durations_minutes == [20.0, 30.0]
    assert result.total_distance_km == 30.0
    assert client.compute_route.call_args.kwargs["intermediates"] == [waypoint]


def test_excursion_route_without_api_key_uses_haversine(memory_store) -> None:
    waypoint = GeoPoint(48.80, 2.13)

    result = _service(memory_store, api_key=None).calculate_excursion_route(
        ORIGIN, DESTINATION, [waypoint]
    )

    assert result == estimate_excursion_route(ORIGIN, DESTINATION, [waypoint])
    assert not result.is_from_api
    assert len(result.leg_distances_km) == 2
    assert result.leg_durations_minutes[0] == pytest.approx(
        result.leg_distances_km[0] / 40 * 60, abs=0.02
    )
