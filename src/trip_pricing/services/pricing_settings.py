from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, fields
from decimal import Decimal
from typing import Any

from trip_pricing.services.scenarios import RouteScenarioTcoConfig
from trip_pricing.services.zones import ZoneConflictStrategy

logger = logging.getLogger(__name__)

ZONE_MULTIPLIER_AGGREGATION_STRATEGIES = ("MAX", "PICKUP_ONLY", "DROPOFF_ONLY", "AVERAGE")
_STRATEGY_CHOICES = {
    "zone_conflict_strategy": tuple(strategy.value for strategy in ZoneConflictStrategy),
    "zone_multiplier_aggregation_strategy": ZONE_MULTIPLIER_AGGREGATION_STRATEGIES,
}


def to_number(value: Any, default: float) -> float:
    """Normalize numbers, ``Decimal`` and ORM decimal wrappers to ``float``."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    else:
        converter = getattr(value, "to_number", None) or getattr(value, "toNumber", None)
        try:
            number = float(converter()) if callable(converter) else float(value)
        except (TypeError, ValueError):
            return default
    if math.isnan(number):
        return default
    return number


def _camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _strategy(name: str, value: Any) -> str | None:
    if not value:
        return None
    if value not in _STRATEGY_CHOICES[name]:
        logger.warning("Ignoring unknown %s %r", name, value)
        return None
    return str(value)


@dataclass(slots=True, frozen=True)
class PricingSettings:
    base_rate_per_km: float = 2.5
    base_rate_per_hour: float = 45.0
    target_margin_percent: float = 20.0

    fuel_consumption_l100km: float = 8.0
    fuel_price_per_liter: float = 1.80
    toll_cost_per_km: float = 0.15
    wear_cost_per_km: float = 0.10
    driver_hourly_cost: float = 25.0

    zone_conflict_strategy: str | None = None
    zone_multiplier_aggregation_strategy: str | None = None

    transit_discount_enabled: bool = False
    transit_discount_percent: float = 10.0
    transit_zone_codes: tuple[str, ...] = ("PARIS_0", "PARIS_10")

    hotel_cost_per_night: float = 120.0
    meal_cost_per_day: float = 25.0
    driver_overnight_premium: float = 50.0
    max_return_empty_distance_km: float = 300.0
    min_idle_days_for_comparison: float = 1.0

    default_seasonality_coefficient: float = 0.65
    high_season_coefficient: float = 0.80
    low_season_coefficient: float = 0.50

    @property
    def fuel_cost_per_km(self) -> float:
        return self.fuel_consumption_l100km / 100 * self.fuel_price_per_liter

    def tco_config(self) -> RouteScenarioTcoConfig:
        return RouteScenarioTcoConfig(
            driver_hourly_cost=self.driver_hourly_cost,
            fuel_consumption_l100km=self.fuel_consumption_l100km,
            fuel_price_per_liter=self.fuel_price_per_liter,
            wear_cost_per_km=self.wear_cost_per_km,
            fallback_toll_rate_per_km=self.toll_cost_per_km,
        )

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> PricingSettings:
        """Build settings from a tenant record, accepting snake_case or camelCase keys."""
        raw = raw or {}
        defaults = cls()
        values: dict[str, Any] = {}
        for item in fields(cls):
            default = getattr(defaults, item.name)
            value = raw.get(item.name, raw.get(_camel_case(item.name)))
            if isinstance(default, bool):
                values[item.name] = default if value is None else bool(value)
            elif isinstance(default, float):
                values[item.name] = to_number(value, default)
            elif isinstance(default, tuple):
                values[item.name] = default if value is None else tuple(str(code) for code in value)
            elif item.name in _STRATEGY_CHOICES:
                values[item.name] = _strategy(item.name, value)
            else:
                values[item.name] = value or default
        return cls(**values)
