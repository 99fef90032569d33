from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime

from trip_pricing.services.pricing_settings import PricingSettings
from trip_pricing.services.types import (
    AppliedRule,
    DailyRevenueSource,
    IdleDaysResult,
    LossOfExploitationResult,
    ReturnEmptyScenario,
    SeasonalityPeriod,
    StayOnSiteScenario,
    StayVsReturnComparison,
    StayVsReturnRecommendation,
)

REFERENCE_WORKING_HOURS = 8
HIGH_SEASON_MULTIPLIER_THRESHOLD = 1.1
LOW_SEASON_MULTIPLIER_THRESHOLD = 0.95
TRIPS_PER_IDLE_DAY = 2


@dataclass(slots=True, frozen=True)
class VehicleCategoryRates:
    id: str
    name: str
    daily_reference_revenue: float | None = None
    default_rate_per_hour: float | None = None


@dataclass(slots=True, frozen=True)
class SeasonalMultiplier:
    name: str
    multiplier: float


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def calculate_idle_days(pickup_at: date | datetime, estimated_end_at: date | datetime) -> IdleDaysResult:
    """Calendar days spanned by a mission; the first and last days count as active."""
    total_days = (_as_date(estimated_end_at) - _as_date(pickup_at)).days + 1
    if total_days <= 1:
        return IdleDaysResult(total_days=1, idle_days=0)
    return IdleDaysResult(total_days=total_days, idle_days=max(0, total_days - 2))


def get_daily_reference_revenue(
    vehicle_category: VehicleCategoryRates | None, base_rate_per_hour: float
) -> tuple[float, DailyRevenueSource]:
    if vehicle_category and vehicle_category.daily_reference_revenue:
        return float(vehicle_category.daily_reference_revenue), "CONFIGURED"
    if vehicle_category and vehicle_category.default_rate_per_hour:
        return REFERENCE_WORKING_HOURS * float(vehicle_category.default_rate_per_hour), "HOURLY_RATE_8H"
    return REFERENCE_WORKING_HOURS * base_rate_per_hour, "HOURLY_RATE_8H"


def get_seasonality_coefficient(
    seasonal_multiplier: SeasonalMultiplier | None, settings: PricingSettings
) -> tuple[float, SeasonalityPeriod]:
    if seasonal_multiplier is None:
        return settings.default_seasonality_coefficient, "DEFAULT"
    if seasonal_multiplier.multiplier >= HIGH_SEASON_MULTIPLIER_THRESHOLD:
        return settings.high_season_coefficient, "HIGH_SEASON"
    if seasonal_multiplier.multiplier <= LOW_SEASON_MULTIPLIER_THRESHOLD:
        return settings.low_season_coefficient, "LOW_SEASON"
    return settings.default_seasonality_coefficient, "DEFAULT"


def calculate_loss_of_exploitation(
    pickup_at: date | datetime,
    estimated_end_at: date | datetime,
    vehicle_category: VehicleCategoryRates | None,
    seasonal_multiplier: SeasonalMultiplier | None,
    settings: PricingSettings,
) -> LossOfExploitationResult:
    """Revenue the vehicle forgoes while it waits on site during idle days."""
    days = calculate_idle_days(pickup_at, estimated_end_at)
    revenue, revenue_source = get_daily_reference_revenue(vehicle_category, settings.base_rate_per_hour)
    coefficient, period = get_seasonality_coefficient(seasonal_multiplier, settings)
    return LossOfExploitationResult(
        total_days=days.total_days,
        idle_days=days.idle_days,
        daily_reference_revenue=revenue,
        daily_revenue_source=revenue_source,
        seasonality_coefficient=coefficient,
        seasonality_period=period,
        amount=round(days.idle_days * revenue * coefficient, 2),
    )


def calculate_stay_on_site_scenario(
    total_days: int, loss_of_exploitation: float, settings: PricingSettings
) -> StayOnSiteScenario:
    nights = max(0, total_days - 1)
    hotel_cost = round(nights * settings.hotel_cost_per_night, 2)
    meal_cost = round(total_days * settings.meal_cost_per_day, 2)
    driver_premium = round(nights * settings.driver_overnight_premium, 2)
    return StayOnSiteScenario(
        total_days=total_days,
        nights=nights,
        hotel_cost=hotel_cost,
        meal_cost=meal_cost,
        driver_premium=driver_premium,
        loss_of_exploitation=loss_of_exploitation,
        total_cost=round(hotel_cost + meal_cost + driver_premium + loss_of_exploitation, 2),
    )


def calculate_return_empty_scenario(
    idle_days: int,
    distance_one_way_km: float,
    duration_one_way_minutes: float,
    toll_cost_one_way: float,
    settings: PricingSettings,
) -> ReturnEmptyScenario:
    trips_count = idle_days * TRIPS_PER_IDLE_DAY
    if distance_one_way_km > settings.max_return_empty_distance_km:
        return ReturnEmptyScenario(
            is_viable=False,
            trips_count=trips_count,
            distance_one_way_km=distance_one_way_km,
            duration_one_way_minutes=duration_one_way_minutes,
            total_empty_distance_km=0.0,
            fuel_cost=0.0,
            toll_cost=0.0,
            driver_time_cost=0.0,
            total_cost=math.inf,
            non_viable_reason=(
                f"Distance too long for empty return "
                f"({distance_one_way_km:.0f}km > {settings.max_return_empty_distance_km:.0f}km)"
            ),
        )

    fuel_cost = round(trips_count * distance_one_way_km * settings.fuel_cost_per_km, 2)
    toll_cost = round(trips_count * toll_cost_one_way, 2)
    driver_time_cost = round(
        trips_count * (duration_one_way_minutes / 60) * settings.driver_hourly_cost, 2
    )
    return ReturnEmptyScenario(
        is_viable=True,
        trips_count=trips_count,
        distance_one_way_km=distance_one_way_km,
        duration_one_way_minutes=duration_one_way_minutes,
        total_empty_distance_km=round(trips_count * distance_one_way_km, 2),
        fuel_cost=fuel_cost,
        toll_cost=toll_cost,
        driver_time_cost=driver_time_cost,
        total_cost=round(fuel_cost + toll_cost + driver_time_cost, 2),
    )


def compare_stay_vs_return(
    stay: StayOnSiteScenario, return_empty: ReturnEmptyScenario
) -> tuple[StayVsReturnRecommendation, float, float, str]:
    """Return (recommended scenario, cost difference, savings percent, reason)."""
    if not return_empty.is_viable:
        return "STAY_ON_SITE", 0.0, 0.0, return_empty.non_viable_reason or "Empty return not viable"

    if stay.total_cost <= return_empty.total_cost:
        difference = round(return_empty.total_cost - stay.total_cost, 2)
        percent = round(difference / return_empty.total_cost * 100, 1) if return_empty.total_cost else 0.0
        return (
            "STAY_ON_SITE",
            difference,
            percent,
            f"Staying on site saves {difference:.2f} EUR ({percent}%) over returning empty",
        )

    difference = round(stay.total_cost - return_empty.total_cost, 2)
    percent = round(difference / stay.total_cost * 100, 1) if stay.total_cost else 0.0
    return (
        "RETURN_EMPTY",
        difference,
        percent,
        f"Returning empty saves {difference:.2f} EUR ({percent}%) over staying on site",
    )


def calculate_stay_vs_return_comparison(
    loss: LossOfExploitationResult,
    distance_one_way_km: float,
    duration_one_way_minutes: float,
    toll_cost_one_way: float,
    settings: PricingSettings,
) -> StayVsReturnComparison:
    min_idle_days = max(1.0, settings.min_idle_days_for_comparison)
    if not loss.is_multi_day or loss.idle_days < min_idle_days:
        return StayVsReturnComparison(
            is_applicable=False,
            stay_on_site=None,
            return_empty=None,
            recommended_scenario=None,
            cost_difference=0.0,
            percentage_savings=0.0,
            recommendation=(
                "Single-day mission" if not loss.is_multi_day else "Not enough idle days to compare"
            ),
        )

    stay = calculate_stay_on_site_scenario(loss.total_days, loss.amount, settings)
    return_empty = calculate_return_empty_scenario(
        loss.idle_days, distance_one_way_km, duration_one_way_minutes, toll_cost_one_way, settings
    )
    recommended, difference, percent, reason = compare_stay_vs_return(stay, return_empty)
    return StayVsReturnComparison(
        is_applicable=True,
        stay_on_site=stay,
        return_empty=return_empty,
        recommended_scenario=recommended,
        cost_difference=difference,
        percentage_savings=percent,
        recommendation=reason,
    )


def build_stay_vs_return_rule(comparison: StayVsReturnComparison) -> AppliedRule | None:
    if not comparison.is_applicable or comparison.stay_on_site is None:
        return None
    return_empty = comparison.return_empty
    return AppliedRule(
        type="MULTI_DAY_SCENARIO_SELECTION",
        description=f"Multi-day mission: {comparison.recommended_scenario}. {comparison.recommendation}",
        details={
            "recommended_scenario": comparison.recommended_scenario,
            "stay_on_site_cost": comparison.stay_on_site.total_cost,
            "return_empty_cost": (
                return_empty.total_cost if return_empty and return_empty.is_viable else None
            ),
            "return_empty_viable": bool(return_empty and return_empty.is_viable),
            "cost_difference": comparison.cost_difference,
            "percentage_savings": comparison.percentage_savings,
        },
    )
