from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace

from django.utils import timezone

from trip_pricing.exceptions import PricingEngineError
from trip_pricing.services.routes_client import GoogleRoutesClient
from trip_pricing.services.types import (
    AppliedRule,
    GeoPoint,
    RouteData,
    RouteScenario,
    RouteScenarioCalculationResult,
    RouteScenarioType,
)

logger = logging.getLogger(__name__)

ROUTE_SCENARIO_LABELS: dict[str, str] = {
    "MIN_TIME": "Minimum time",
    "MIN_DISTANCE": "Minimum distance",
    "MIN_TCO": "Optimal cost (TCO)",
}

# MIN_TCO first so that the synthesized scenario wins ties with its source
_RECOMMENDATION_ORDER = {"MIN_TCO": 0, "MIN_TIME": 1, "MIN_DISTANCE": 2}

# (routing preference, traffic model) per base scenario
_ROUTING_REQUESTS: dict[str, tuple[str, str | None]] = {
    "MIN_TIME": ("TRAFFIC_AWARE_OPTIMAL", "PESSIMISTIC"),
    "MIN_DISTANCE": ("TRAFFIC_UNAWARE", None),
}


@dataclass(slots=True, frozen=True)
class RouteScenarioTcoConfig:
    driver_hourly_cost: float = 30.0
    fuel_consumption_l100km: float = 8.5
    fuel_price_per_liter: float = 1.789
    wear_cost_per_km: float = 0.10
    fallback_toll_rate_per_km: float = 0.12


DEFAULT_ROUTE_SCENARIO_TCO_CONFIG = RouteScenarioTcoConfig()


@dataclass(slots=True, frozen=True)
class ScenarioTco:
    driver_cost: float
    fuel_cost: float
    wear_cost: float
    tco: float


def calculate_scenario_tco(
    duration_minutes: float,
    distance_km: float,
    toll_cost: float,
    config: RouteScenarioTcoConfig = DEFAULT_ROUTE_SCENARIO_TCO_CONFIG,
) -> ScenarioTco:
    driver_cost = round(duration_minutes / 60 * config.driver_hourly_cost, 2)
    fuel_cost = round(
        distance_km / 100 * config.fuel_consumption_l100km * config.fuel_price_per_liter, 2
    )
    wear_cost = round(distance_km * config.wear_cost_per_km, 2)
    tco = round(driver_cost + fuel_cost + toll_cost + wear_cost, 2)
    return ScenarioTco(driver_cost=driver_cost, fuel_cost=fuel_cost, wear_cost=wear_cost, tco=tco)


def build_scenario(
    scenario_type: RouteScenarioType,
    route: RouteData,
    config: RouteScenarioTcoConfig = DEFAULT_ROUTE_SCENARIO_TCO_CONFIG,
) -> RouteScenario:
    duration_minutes = round(route.duration_minutes, 2)
    distance_km = round(route.distance_km, 2)
    costs = calculate_scenario_tco(duration_minutes, distance_km, route.toll_amount, config)
    return RouteScenario(
        type=scenario_type,
        label=ROUTE_SCENARIO_LABELS[scenario_type],
        duration_minutes=duration_minutes,
        distance_km=distance_km,
        toll_cost=route.toll_amount,
        fuel_cost=costs.fuel_cost,
        driver_cost=costs.driver_cost,
        wear_cost=costs.wear_cost,
        tco=costs.tco,
        encoded_polyline=route.encoded_polyline,
    )


def calculate_route_scenarios(
    origin: GeoPoint,
    destination: GeoPoint,
    api_key: str | None,
    tco_config: RouteScenarioTcoConfig = DEFAULT_ROUTE_SCENARIO_TCO_CONFIG,
    client: GoogleRoutesClient | None = None,
) -> RouteScenarioCalculationResult:
    if not api_key:
        return _fallback_result("No API key provided")

    client = client or GoogleRoutesClient(api_key=api_key)

    def fetch(scenario_type: str) -> RouteData:
        preference, traffic_model = _ROUTING_REQUESTS[scenario_type]
        return client.compute_route(
            origin, destination, routing_preference=preference, traffic_model=traffic_model
        )

    with ThreadPoolExecutor(max_workers=2) as executor:
        futures = {
            scenario_type: executor.submit(fetch, scenario_type)
            for scenario_type in _ROUTING_REQUESTS
        }

    scenarios: list[RouteScenario] = []
    errors: list[str] = []
    for scenario_type, future in futures.items():
        try:
            route = future.result()
        except PricingEngineError as exc:
            logger.warning("%s route request failed: %s", scenario_type, exc)
            errors.append(f"{scenario_type}: {exc}")
            continue
        scenarios.append(build_scenario(scenario_type, route, tco_config))

    if not scenarios:
        return _fallback_result("; ".join(errors))

    if len(scenarios) == 2:
        min_time, min_distance = scenarios
        cheapest = min_time if min_time.tco <= min_distance.tco else min_distance
        scenarios.append(
            replace(cheapest, type="MIN_TCO", label=ROUTE_SCENARIO_LABELS["MIN_TCO"])
        )

    recommended = min(
        scenarios, key=lambda scenario: (scenario.tco, _RECOMMENDATION_ORDER[scenario.type])
    )
    scenarios = [
        replace(scenario, is_recommended=scenario is recommended) for scenario in scenarios
    ]

    return RouteScenarioCalculationResult(
        scenarios=scenarios,
        selected_scenario=recommended.type,
        selection_reason=_selection_reason(recommended, scenarios),
        fallback_used=bool(errors),
        fallback_reason="; ".join(errors) or None,
        calculated_at=timezone.now(),
    )


def _fallback_result(reason: str) -> RouteScenarioCalculationResult:
    return RouteScenarioCalculationResult(
        scenarios=[],
        selected_scenario="MIN_TCO",
        selection_reason="No scenarios available",
        fallback_used=True,
        fallback_reason=reason,
        calculated_at=timezone.now(),
    )


def _savings_vs_worst(selected: RouteScenario, scenarios: list[RouteScenario]) -> tuple[float, float]:
    worst_tco = max(scenario.tco for scenario in scenarios)
    savings = round(worst_tco - selected.tco, 2)
    percentage = round(savings / worst_tco * 100, 2) if worst_tco > 0 else 0.0
    return savings, percentage


def _selection_reason(selected: RouteScenario, scenarios: list[RouteScenario]) -> str:
    savings, percentage = _savings_vs_worst(selected, scenarios)
    return (
        f"Lowest total cost: {selected.tco:.2f} EUR ({selected.label}), "
        f"saving {savings:.2f} EUR ({percentage:.2f}%) vs the most expensive option"
    )


def build_route_scenario_rule(result: RouteScenarioCalculationResult) -> AppliedRule | None:
    selected = next(
        (scenario for scenario in result.scenarios if scenario.type == result.selected_scenario),
        None,
    )
    if selected is None:
        return None

    savings, percentage = _savings_vs_worst(selected, result.scenarios)
    return AppliedRule(
        type="ROUTE_SCENARIO_SELECTION",
        description=f"Route scenario: {selected.label} ({selected.tco:.2f} EUR)",
        details={
            "selected_scenario": selected.type,
            "selected_tco": selected.tco,
            "alternative_scenarios": [
                {
                    "type": scenario.type,
                    "tco": scenario.tco,
                    "difference": round(scenario.tco - selected.tco, 2),
                }
                for scenario in result.scenarios
                if scenario.type != selected.type
            ],
            "savings_vs_worst": savings,
            "percentage_savings": percentage,
        },
    )
