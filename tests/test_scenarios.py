from __future__ import annotations

import pytest

from trip_pricing.exceptions import ExternalServiceError
from trip_pricing.services.routes_client import GoogleRoutesClient
from trip_pricing.services.scenarios import (
    build_route_scenario_rule,
    calculate_route_scenarios,
    calculate_scenario_tco,
)
from trip_pricing.services.types import GeoPoint, RouteData

ORIGIN = GeoPoint(48.8566, 2.3522)
DESTINATION = GeoPoint(45.7640, 4.8357)

FASTEST = RouteData(distance_meters=470000, duration_seconds=14400, toll_amount=35.5)
SHORTEST = RouteData(distance_meters=450000, duration_seconds=18000, toll_amount=15.0)


def _fake_client(mocker, failures: tuple[str, ...] = ()):
    routes = {"TRAFFIC_AWARE_OPTIMAL": FASTEST, "TRAFFIC_UNAWARE": SHORTEST}

    def compute_route(origin, destination, routing_preference="TRAFFIC_AWARE", **_):
        if routing_preference in failures:
            raise ExternalServiceError(f"{routing_preference} unavailable")
        return routes[routing_preference]

    client = mocker.Mock()
    client.compute_route.side_effect = compute_route
    return client


def test_calculate_scenario_tco_components() -> None:
    costs = calculate_scenario_tco(duration_minutes=240, distance_km=470, toll_cost=35.5)

    assert costs.driver_cost == 120.0
    assert costs.fuel_cost == pytest.approx(71.47, abs=0.01)
    assert costs.wear_cost == 47.0
    assert costs.tco == pytest.approx(273.97, abs=0.02)


def test_both_routes_available_adds_tco_scenario(mocker) -> None:
    result = calculate_route_scenarios(ORIGIN, DESTINATION, "secret", client=_fake_client(mocker))

    by_type = {scenario.type: scenario for scenario in result.scenarios}
    assert set(by_type) == {"MIN_TIME", "MIN_DISTANCE", "MIN_TCO"}
    assert by_type["MIN_TIME"].tco == pytest.approx(273.97, abs=0.02)
    assert by_type["MIN_DISTANCE"].tco == pytest.approx(278.43, abs=0.02)
    assert by_type["MIN_TCO"].distance_km == by_type["MIN_TIME"].distance_km
    assert result.selected_scenario == "MIN_TCO"
    assert not result.fallback_used
    assert result.fallback_reason is None


def test_exactly_one_scenario_is_recommended_with_minimum_tco(mocker) -> None:
    result = calculate_route_scenarios(ORIGIN, DESTINATION, "secret", client=_fake_client(mocker))

    recommended = [scenario for scenario in result.scenarios if scenario.is_recommended]
    assert len(recommended) == 1
    assert recommended[0].tco == min(scenario.tco for scenario in result.scenarios)
    assert result.recommended is recommended[0]
    assert "Lowest total cost" in result.selection_reason


def test_routing_requests_run_with_their_preferences(mocker) -> None:
    client = _fake_client(mocker)

    calculate_route_scenarios(ORIGIN, DESTINATION, "secret", client=client)

    calls = {
        call.kwargs["routing_preference"]: call.kwargs["traffic_model"]
        for call in client.compute_route.call_args_list
    }
    assert calls == {"TRAFFIC_AWARE_OPTIMAL": "PESSIMISTIC", "TRAFFIC_UNAWARE": None}


def test_single_failure_keeps_surviving_scenario(mocker) -> None:
    client = _fake_client(mocker, failures=("TRAFFIC_UNAWARE",))

    result = calculate_route_scenarios(ORIGIN, DESTINATION, "secret", client=client)

    assert [scenario.type for scenario in result.scenarios] == ["MIN_TIME"]
    assert result.scenarios[0].is_recommended
    assert result.selected_scenario == "MIN_TIME"
    assert result.fallback_used
    assert "MIN_DISTANCE" in result.fallback_reason


def test_total_failure_returns_empty_fallback(mocker) -> None:
    client = _fake_client(mocker, failures=("TRAFFIC_UNAWARE", "TRAFFIC_AWARE_OPTIMAL"))

    result = calculate_route_scenarios(ORIGIN, DESTINATION, "secret", client=client)

    assert result.scenarios == []
    assert result.fallback_used
    assert build_route_scenario_rule(result) is None



def test_malformed_routing_payload_returns_empty_fallback(mocker) -> None:
    response = mocker.Mock()
    response.json.return_value = {"routes": [{"distanceMeters": "n/a", "duration": "60s"}]}
    mocker.patch("trip_pricing.services.routes_client.httpx.post", return_value=response)

    result = calculate_route_scenarios(
        ORIGIN, DESTINATION, "secret", client=GoogleRoutesClient(api_key="secret")
    )

    assert result.scenarios == []
    assert result.fallback_used
    assert "malformed route" in result.fallback_reason


def test_missing_api_key_skips_routing(mocker) -> None:
    client = _fake_client(mocker)

    result = calculate_route_scenarios(ORIGIN, DESTINATION, None, client=client)

    assert result.scenarios == []
    assert result.fallback_reason == "No API key provided"
    client.compute_route.assert_not_called()


def test_route_scenario_rule_reports_savings_against_worst(mocker) -> None:
    result = calculate_route_scenarios(ORIGIN, DESTINATION, "secret", client=_fake_client(mocker))

    rule = build_route_scenario_rule(result)

    assert rule is not None
    assert rule.type == "ROUTE_SCENARIO_SELECTION"
    assert rule.details["selected_scenario"] == "MIN_TCO"
    assert rule.details["savings_vs_worst"] == pytest.approx(4.46, abs=0.02)
