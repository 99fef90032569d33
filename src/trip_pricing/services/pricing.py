from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass

from trip_pricing.services.pricing_settings import PricingSettings
from trip_pricing.services.types import (
    AppliedRule,
    CostBreakdown,
    MultiplierSource,
    ProfitabilityIndicator,
    TemporalVectorResult,
    ZoneSurchargeComponent,
    ZoneSurcharges,
)
from trip_pricing.services.zones import ZoneData

PROFITABILITY_GREEN_THRESHOLD = 20.0
PROFITABILITY_ORANGE_THRESHOLD = 0.0


class ZoneMultiplierAggregation(str, enum.Enum):
    MAX = "MAX"
    PICKUP_ONLY = "PICKUP_ONLY"
    DROPOFF_ONLY = "DROPOFF_ONLY"
    AVERAGE = "AVERAGE"


@dataclass(slots=True, frozen=True)
class ZoneMultiplierResult:
    adjusted_price: float
    multiplier: float
    source: MultiplierSource
    applied_rule: AppliedRule


@dataclass(slots=True, frozen=True)
class DynamicBasePrice:
    distance_based_price: float
    duration_based_price: float
    selected_method: str
    base_price: float
    price_with_margin: float


@dataclass(slots=True, frozen=True)
class ExcursionPackage:
    id: str
    name: str
    price: float
    vehicle_category_id: str
    is_temporal_vector: bool = False
    is_active: bool = True
    destination_zone_id: str | None = None
    allowed_origin_zone_ids: tuple[str, ...] = ()
    minimum_duration_hours: float | None = None


@dataclass(slots=True, frozen=True)
class ExcursionPackageAssignment:
    package: ExcursionPackage
    override_price: float | None = None


def calculate_effective_zone_multiplier(
    pickup_multiplier: float,
    dropoff_multiplier: float,
    strategy: ZoneMultiplierAggregation | str | None = None,
) -> tuple[float, MultiplierSource]:
    strategy = ZoneMultiplierAggregation(strategy or ZoneMultiplierAggregation.MAX)

    if strategy is ZoneMultiplierAggregation.PICKUP_ONLY:
        return pickup_multiplier, "pickup"
    if strategy is ZoneMultiplierAggregation.DROPOFF_ONLY:
        return dropoff_multiplier, "dropoff"
    if strategy is ZoneMultiplierAggregation.AVERAGE:
        return round((pickup_multiplier + dropoff_multiplier) / 2, 3), "both"

    if pickup_multiplier >= dropoff_multiplier:
        return pickup_multiplier, "pickup"
    return dropoff_multiplier, "dropoff"


def apply_zone_multiplier(
    base_price: float,
    pickup_zone: ZoneData | None,
    dropoff_zone: ZoneData | None,
    strategy: ZoneMultiplierAggregation | str | None = None,
) -> ZoneMultiplierResult:
    pickup_multiplier = pickup_zone.price_multiplier if pickup_zone else 1.0
    dropoff_multiplier = dropoff_zone.price_multiplier if dropoff_zone else 1.0
    multiplier, source = calculate_effective_zone_multiplier(
        pickup_multiplier, dropoff_multiplier, strategy
    )
    strategy_name = ZoneMultiplierAggregation(strategy or ZoneMultiplierAggregation.MAX).value
    adjusted_price = round(base_price * multiplier, 2)

    pickup_code = pickup_zone.code if pickup_zone else "UNKNOWN"
    dropoff_code = dropoff_zone.code if dropoff_zone else "UNKNOWN"
    if multiplier == 1.0:
        description = f"Zone multiplier: no adjustment ({pickup_code} -> {dropoff_code})"
    elif source == "both":
        description = (
            f"Zone multiplier: average of {pickup_code} ({pickup_multiplier}x) and "
            f"{dropoff_code} ({dropoff_multiplier}x) = {multiplier}x"
        )
    else:
        source_code = pickup_code if source == "pickup" else dropoff_code
        description = f"Zone multiplier: {source_code} ({multiplier}x) [{strategy_name}]"

    return ZoneMultiplierResult(
        adjusted_price=adjusted_price,
        multiplier=multiplier,
        source=source,
        applied_rule=AppliedRule(
            type="ZONE_MULTIPLIER",
            description=description,
            details={
                "strategy": strategy_name,
                "pickup_zone": pickup_zone.code if pickup_zone else None,
                "pickup_multiplier": pickup_multiplier,
                "dropoff_zone": dropoff_zone.code if dropoff_zone else None,
                "dropoff_multiplier": dropoff_multiplier,
                "applied_multiplier": multiplier,
                "source": source,
                "price_before": base_price,
                "price_after": adjusted_price,
            },
        ),
    )


def _surcharge_component(zone: ZoneData) -> ZoneSurchargeComponent:
    parking = zone.fixed_parking_surcharge or 0.0
    access = zone.fixed_access_fee or 0.0
    return ZoneSurchargeComponent(
        zone_id=zone.id,
        zone_code=zone.code,
        zone_name=zone.name,
        parking_surcharge=parking,
        access_fee=access,
        total=round(parking + access, 2),
        description=zone.surcharge_description,
    )


def calculate_zone_surcharges(
    pickup_zone: ZoneData | None, dropoff_zone: ZoneData | None
) -> ZoneSurcharges:
    """Friction fees of the zones touched at pickup and dropoff, counted once per zone."""
    pickup = _surcharge_component(pickup_zone) if pickup_zone else None
    same_zone = pickup_zone is not None and dropoff_zone is not None and dropoff_zone.id == pickup_zone.id
    dropoff = _surcharge_component(dropoff_zone) if dropoff_zone and not same_zone else None
    total = round((pickup.total if pickup else 0.0) + (dropoff.total if dropoff else 0.0), 2)
    return ZoneSurcharges(pickup=pickup, dropoff=dropoff, total=total)


def build_zone_surcharge_rule(surcharges: ZoneSurcharges) -> AppliedRule | None:
    components = [item for item in (surcharges.pickup, surcharges.dropoff) if item and item.total > 0]
    if not components:
        return None
    return AppliedRule(
        type="ZONE_SURCHARGE",
        description="Zone surcharges: "
        + ", ".join(f"{item.zone_code} {item.total:.2f} EUR" for item in components),
        details={
            "components": [
                {
                    "zone_code": item.zone_code,
                    "parking_surcharge": item.parking_surcharge,
                    "access_fee": item.access_fee,
                    "total": item.total,
                    "description": item.description,
                }
                for item in components
            ],
            "total": surcharges.total,
        },
    )


def match_temporal_vector(
    dropoff_zone: ZoneData | None,
    pickup_zone: ZoneData | None,
    vehicle_category_id: str,
    estimated_duration_minutes: float,
    assignments: Iterable[ExcursionPackageAssignment],
) -> TemporalVectorResult | None:
    for assignment in assignments:
        package = assignment.package
        if not (package.is_temporal_vector and package.is_active):
            continue
        if package.vehicle_category_id != vehicle_category_id:
            continue
        if package.destination_zone_id and (
            dropoff_zone is None or dropoff_zone.id != package.destination_zone_id
        ):
            continue
        if package.allowed_origin_zone_ids and (
            pickup_zone is None or pickup_zone.id not in package.allowed_origin_zone_ids
        ):
            continue

        minimum_hours = package.minimum_duration_hours or 0.0
        actual_hours = estimated_duration_minutes / 60
        is_override = assignment.override_price is not None and assignment.override_price > 0
        return TemporalVectorResult(
            package_id=package.id,
            package_name=package.name,
            destination_zone_id=package.destination_zone_id,
            minimum_duration_hours=minimum_hours,
            actual_estimated_hours=actual_hours,
            duration_used=max(minimum_hours, actual_hours),
            duration_source="TEMPORAL_VECTOR" if actual_hours <= minimum_hours else "ACTUAL_ESTIMATE",
            price=assignment.override_price if is_override else package.price,
            is_override_price=is_override,
        )

    return None


def build_temporal_vector_rule(result: TemporalVectorResult) -> AppliedRule:
    return AppliedRule(
        type="TEMPORAL_VECTOR",
        description=(
            f"Temporal vector {result.package_name}: {result.duration_used:.2f}h billed "
            f"({result.duration_source}), package price {result.price:.2f} EUR"
        ),
        details={
            "package_id": result.package_id,
            "minimum_duration_hours": result.minimum_duration_hours,
            "actual_estimated_hours": round(result.actual_estimated_hours, 2),
            "duration_used": round(result.duration_used, 2),
            "duration_source": result.duration_source,
            "is_override_price": result.is_override_price,
        },
    )


def calculate_dynamic_base_price(
    distance_km: float, duration_minutes: float, settings: PricingSettings
) -> DynamicBasePrice:
    distance_price = round(distance_km * settings.base_rate_per_km, 2)
    duration_price = round(duration_minutes / 60 * settings.base_rate_per_hour, 2)
    base_price = max(distance_price, duration_price)
    return DynamicBasePrice(
        distance_based_price=distance_price,
        duration_based_price=duration_price,
        selected_method="distance" if distance_price >= duration_price else "duration",
        base_price=base_price,
        price_with_margin=round(base_price * (1 + settings.target_margin_percent / 100), 2),
    )


def calculate_cost_breakdown(
    distance_km: float,
    duration_minutes: float,
    toll_cost: float,
    settings: PricingSettings,
    zone_surcharges: float = 0.0,
) -> CostBreakdown:
    fuel = round(
        distance_km / 100 * settings.fuel_consumption_l100km * settings.fuel_price_per_liter, 2
    )
    wear = round(distance_km * settings.wear_cost_per_km, 2)
    driver = round(duration_minutes / 60 * settings.driver_hourly_cost, 2)
    return CostBreakdown(
        fuel=fuel,
        tolls=round(toll_cost, 2),
        wear=wear,
        driver=driver,
        zone_surcharges=zone_surcharges,
        total=round(fuel + toll_cost + wear + driver + zone_surcharges, 2),
    )


def calculate_profitability_indicator(margin_percent: float) -> ProfitabilityIndicator:
    if margin_percent >= PROFITABILITY_GREEN_THRESHOLD:
        return "green"
    if margin_percent >= PROFITABILITY_ORANGE_THRESHOLD:
        return "orange"
    return "red"
