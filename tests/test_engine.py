from __future__ import annotations

from typing import Any

import pytest

from trip_pricing.exceptions import InvalidZoneConfigurationError
from trip_pricing.schemas import PricingCalculationRequest
from trip_pricing.services.engine import PricingEngineService
from trip_pricing.services.pricing_settings import PricingSettings
from trip_pricing.services.tolls import TollService, TollServiceConfig
from trip_pricing.services.types import RouteData

PARIS = {"latitude": 48.8566, "longitude": 2.3522}
ROISSY = {"latitude": 49.0097, "longitude": 2.5479}
SAMPLE_POLYLINE = "_p~iF~ps|U_ulLnnqC_mqNvxq`@"

PARIS_ZONE = {
    "id": "paris",
    "code": "PARIS_0",
    "name": "Paris",
    "zone_type": "RADIUS",
    "center_latitude": 48.8566,
    "center_longitude": 2.3522,
    "radius_km": 5,
    "price_multiplier": 1.2,
    "fixed_parking_surcharge": 10,
}
CDG_ZONE = {
    "id": "cdg",
    "code": "CDG",
    "name": "Roissy CDG",
    "zone_type": "RADIUS",
    "center_latitude": 49.0097,
    "center_longitude": 2.5479,
    "radius_km": 3,
    "price_multiplier": 1.5,
    "fixed_access_fee": 5,
}


def _band(code: str, south: float, north: float, **extra: Any) -> dict[str, Any]:
    ring = [[-127.0, south], [-119.0, south], [-119.0, north], [-127.0, north], [-127.0, south]]
    return {
        "id": code.lower(),
        "code": code,
        "zone_type": "POLYGON",
        "geometry": {"type": "Polygon", "coordinates": [ring]},
        **extra,
    }


def _request(**overrides: Any) -> PricingCalculationRequest:
    payload: dict[str, Any] = {
        "pickup": PARIS,
        "dropoff": ROISSY,
        "distance_km": 50,
        "duration_minutes": 60,
    }
    payload.update(overrides)
    return PricingCalculationRequest.model_validate(payload)


@pytest.fixture
def engine(offline_toll_service: TollService) -> PricingEngineService:
    return PricingEngineService(toll_service=offline_toll_service)


def test_trip_without_zones_uses_dynamic_price(engine) -> None:
    result = engine.calculate(_request(), PricingSettings())

    assert result.price == 150.0
    assert result.zone_multiplier == 1.0
    assert result.pickup_zone_code is None
    assert result.trip_analysis.toll_source == "ESTIMATE"
    assert result.trip_analysis.cost_breakdown.tolls == 7.5
    assert result.internal_cost == 44.7
    assert result.margin == 105.3
    assert result.margin_percent == 70.2
    assert result.profitability == "green"
    assert result.trip_analysis.segmentation is None
    assert [rule.type for rule in result.applied_rules] == ["DYNAMIC_BASE_PRICE", "ZONE_MULTIPLIER"]


def test_zone_multiplier_and_surcharges(engine) -> None:
    result = engine.calculate(_request(zones=[PARIS_ZONE, CDG_ZONE]), PricingSettings())

    assert result.pickup_zone_code == "PARIS_0"
    assert result.dropoff_zone_code == "CDG"
    assert result.zone_multiplier == 1.5
    assert result.price == 240.0
    assert result.trip_analysis.cost_breakdown.zone_surcharges == 15.0
    assert result.internal_cost == 59.7

    segmentation = result.trip_analysis.segmentation
    assert segmentation.segmentation_method == "FALLBACK"
    assert segmentation.zones_traversed == ["PARIS_0", "CDG"]
    assert not result.trip_analysis.transversal.is_transversal
    assert "ZONE_SURCHARGE" in [rule.type for rule in result.applied_rules]


def test_average_aggregation_from_settings(engine) -> None:
    settings = PricingSettings.from_mapping({"zoneMultiplierAggregationStrategy": "AVERAGE"})

    result = engine.calculate(_request(zones=[PARIS_ZONE, CDG_ZONE]), settings)

    assert result.zone_multiplier == 1.35
    assert result.price == 217.5


def test_temporal_vector_replaces_dynamic_price(engine) -> None:
    package = {
        "id": "pkg-cdg",
        "name": "Roissy transfer",
        "price": 300,
        "vehicle_category_id": "sedan",
        "is_temporal_vector": True,
        "destination_zone_id": "cdg",
        "minimum_duration_hours": 2,
    }

    result = engine.calculate(
        _request(zones=[PARIS_ZONE, CDG_ZONE], vehicle_category_id="sedan", excursion_packages=[package]),
        PricingSettings(),
    )

    assert result.temporal_vector.package_id == "pkg-cdg"
    assert result.temporal_vector.duration_source == "TEMPORAL_VECTOR"
    assert result.zone_multiplier == 1.0
    assert result.price == 315.0
    rule_types = [rule.type for rule in result.applied_rules]
    assert "TEMPORAL_VECTOR" in rule_types
    assert "DYNAMIC_BASE_PRICE" not in rule_types


def test_temporal_vector_for_another_category_is_ignored(engine) -> None:
    package = {
        "id": "pkg-cdg",
        "name": "Roissy transfer",
        "price": 300,
        "vehicle_category_id": "van",
        "is_temporal_vector": True,
        "destination_zone_id": "cdg",
    }

    result = engine.calculate(
        _request(zones=[PARIS_ZONE, CDG_ZONE], vehicle_category_id="sedan", excursion_packages=[package]),
        PricingSettings(),
    )

    assert result.temporal_vector is None
    assert result.price == 240.0


def test_transversal_trip_gets_transit_discount(engine) -> None:
    zones = [_band("NORTH", 38.0, 40.0), _band("PARIS_0", 40.0, 42.0), _band("SOUTH", 42.0, 44.0)]
    request = _request(
        pickup={"latitude": 38.5, "longitude": -120.2},
        dropoff={"latitude": 43.252, "longitude": -126.453},
        distance_km=600,
        duration_minutes=600,
        zones=zones,
        encoded_polyline=SAMPLE_POLYLINE,
    )
    settings = PricingSettings.from_mapping({"transitDiscountEnabled": True})

    result = engine.calculate(request, settings)

    transversal = result.trip_analysis.transversal
    assert result.trip_analysis.segmentation.segmentation_method == "POLYLINE"
    assert transversal.is_transversal
    assert [segment.zone_code for segment in transversal.segments if segment.is_transit] == ["PARIS_0"]
    assert transversal.total_transit_discount > 0
    assert result.price == pytest.approx(1800.0 - transversal.total_transit_discount, abs=0.01)
    assert "TRANSVERSAL_DECOMPOSITION" in [rule.type for rule in result.applied_rules]



def test_pickup_outside_zones_is_an_endpoint_not_a_transit_zone(engine) -> None:
    zones = [_band("PARIS_0", 40.0, 42.0), _band("SOUTH", 42.0, 44.0)]
    request = _request(
        pickup={"latitude": 38.5, "longitude": -120.2},
        dropoff={"latitude": 43.252, "longitude": -126.453},
        distance_km=600,
        duration_minutes=600,
        zones=zones,
        encoded_polyline=SAMPLE_POLYLINE,
    )
    settings = PricingSettings.from_mapping(
        {"transitDiscountEnabled": True, "transitZoneCodes": ["OUTSIDE_ZONES", "PARIS_0"]}
    )

    result = engine.calculate(request, settings)

    transversal = result.trip_analysis.transversal
    assert [segment.zone_code for segment in transversal.segments] == ["OUTSIDE_ZONES", "PARIS_0", "SOUTH"]
    assert transversal.segments[0].from_zone_code == "OUTSIDE_ZONES"
    assert [segment.zone_code for segment in transversal.segments if segment.is_transit] == ["PARIS_0"]

def test_bad_request_polyline_falls_back_to_zone_segmentation(engine) -> None:
    result = engine.calculate(
        _request(zones=[PARIS_ZONE, CDG_ZONE], encoded_polyline="_p~iF~ps|U_ulL"), PricingSettings()
    )

    assert result.trip_analysis.segmentation.segmentation_method == "FALLBACK"


def test_toll_from_routing_api_feeds_costs_and_segmentation(memory_store, mocker) -> None:
    client = mocker.Mock()
    client.compute_route.return_value = RouteData(
        distance_meters=600000,
        duration_seconds=36000,
        toll_amount=12.0,
        encoded_polyline=SAMPLE_POLYLINE,
    )
    toll_service = TollService(
        config=TollServiceConfig(api_key="secret", fallback_rate_per_km=0.12),
        store=memory_store,
        client=client,
    )
    engine = PricingEngineService(toll_service=toll_service)
    request = _request(
        pickup={"latitude": 38.5, "longitude": -120.2},
        dropoff={"latitude": 43.252, "longitude": -126.453},
        zones=[_band("NORTH", 38.0, 40.0), _band("SOUTH", 40.0, 44.0, fixed_access_fee=5)],
    )

    result = engine.calculate(request, PricingSettings())

    assert result.trip_analysis.toll_source == "GOOGLE_API"
    assert result.trip_analysis.cost_breakdown.tolls == 12.0
    assert result.trip_analysis.segmentation.segmentation_method == "POLYLINE"
    assert result.trip_analysis.segmentation.zones_traversed == ["NORTH", "SOUTH"]


def test_route_scenarios_without_api_key_fall_back(engine) -> None:
    result = engine.calculate(_request(include_route_scenarios=True), PricingSettings())

    scenarios = result.trip_analysis.route_scenarios
    assert scenarios.fallback_used
    assert scenarios.scenarios == []
    assert "ROUTE_SCENARIO_SELECTION" not in [rule.type for rule in result.applied_rules]


def test_multi_day_mission_adds_stay_vs_return(engine) -> None:
    request = _request(
        distance_km=100,
        duration_minutes=90,
        pickup_at="2026-03-02T08:00:00+00:00",
        estimated_end_at="2026-03-04T19:00:00+00:00",
    )

    result = engine.calculate(request, PricingSettings())

    comparison = result.trip_analysis.stay_vs_return
    assert comparison.is_applicable
    assert comparison.stay_on_site.total_cost == 649.0
    assert comparison.return_empty.toll_cost == 30.0
    assert comparison.recommended_scenario == "RETURN_EMPTY"
    assert "MULTI_DAY_SCENARIO_SELECTION" in [rule.type for rule in result.applied_rules]


def test_invalid_corridor_is_rejected(engine) -> None:
    corridor = {
        "id": "a1",
        "code": "A1",
        "zone_type": "CORRIDOR",
        "encoded_polyline": SAMPLE_POLYLINE,
        "buffer_meters": 50,
    }

    with pytest.raises(InvalidZoneConfigurationError):
        engine.calculate(_request(zones=[corridor]), PricingSettings())
