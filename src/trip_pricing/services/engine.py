from __future__ import annotations

import logging

from trip_pricing.schemas import (
    Coordinate,
    ExcursionPackageInput,
    PricingCalculationRequest,
    SeasonalMultiplierInput,
    VehicleCategoryInput,
)
from trip_pricing.services.multi_day import (
    SeasonalMultiplier,
    VehicleCategoryRates,
    build_stay_vs_return_rule,
    calculate_loss_of_exploitation,
    calculate_stay_vs_return_comparison,
)
from trip_pricing.services.pricing import (
    ExcursionPackage,
    ExcursionPackageAssignment,
    apply_zone_multiplier,
    build_temporal_vector_rule,
    build_zone_surcharge_rule,
    calculate_cost_breakdown,
    calculate_dynamic_base_price,
    calculate_profitability_indicator,
    calculate_zone_surcharges,
    match_temporal_vector,
)
from trip_pricing.services.pricing_settings import PricingSettings
from trip_pricing.services.routes_client import GoogleRoutesClient
from trip_pricing.services.scenarios import build_route_scenario_rule, calculate_route_scenarios
from trip_pricing.services.segmentation import (
    OUTSIDE_ZONE_CODE,
    build_route_segmentation_rule,
    create_fallback_segmentation,
    segment_route_by_zones,
)
from trip_pricing.services.tolls import TollService, calculate_fallback_toll
from trip_pricing.services.transversal import (
    SegmentPricingParams,
    TransversalConfig,
    build_transversal_rule,
    decompose_transversal_trip,
)
from trip_pricing.services.types import (
    AppliedRule,
    GeoPoint,
    PricingResult,
    RouteSegmentationResult,
    TollResult,
    TripAnalysis,
)
from trip_pricing.services.zones import ZoneData, find_zone_for_point

logger = logging.getLogger(__name__)


def _point(coordinate: Coordinate) -> GeoPoint:
    return GeoPoint(latitude=coordinate.latitude, longitude=coordinate.longitude)


def _assignment(package: ExcursionPackageInput) -> ExcursionPackageAssignment:
    return ExcursionPackageAssignment(
        package=ExcursionPackage(
            id=package.id,
            name=package.name,
            price=package.price,
            vehicle_category_id=package.vehicle_category_id,
            is_temporal_vector=package.is_temporal_vector,
            is_active=package.is_active,
            destination_zone_id=package.destination_zone_id,
            allowed_origin_zone_ids=tuple(package.allowed_origin_zone_ids),
            minimum_duration_hours=package.minimum_duration_hours,
        ),
        override_price=package.override_price,
    )


def vehicle_category_rates(category: VehicleCategoryInput | None) -> VehicleCategoryRates | None:
    if category is None:
        return None
    return VehicleCategoryRates(
        id=category.id,
        name=category.name,
        daily_reference_revenue=category.daily_reference_revenue,
        default_rate_per_hour=category.default_rate_per_hour,
    )


def seasonal_multiplier(multiplier: SeasonalMultiplierInput | None) -> SeasonalMultiplier | None:
    if multiplier is None:
        return None
    return SeasonalMultiplier(name=multiplier.name, multiplier=multiplier.multiplier)


class PricingEngineService:
    def __init__(
        self,
        toll_service: TollService | None = None,
        routes_client: GoogleRoutesClient | None = None,
    ) -> None:
        self.toll_service = toll_service or TollService()
        self.routes_client = routes_client

    def calculate(self, request: PricingCalculationRequest, settings: PricingSettings) -> PricingResult:
        pickup = _point(request.pickup)
        dropoff = _point(request.dropoff)
        zones = [ZoneData.from_mapping(zone.model_dump()) for zone in request.zones]
        applied_rules: list[AppliedRule] = []

        strategy = settings.zone_conflict_strategy
        pickup_zone = find_zone_for_point(pickup, zones, strategy)
        dropoff_zone = find_zone_for_point(dropoff, zones, strategy)

        toll = self._resolve_toll(pickup, dropoff, request.distance_km, settings)

        temporal_vector = None
        if request.vehicle_category_id and request.excursion_packages:
            temporal_vector = match_temporal_vector(
                dropoff_zone,
                pickup_zone,
                request.vehicle_category_id,
                request.duration_minutes,
                [_assignment(package) for package in request.excursion_packages],
            )

        if temporal_vector is not None:
            price = temporal_vector.price
            zone_multiplier = 1.0
            applied_rules.append(build_temporal_vector_rule(temporal_vector))
        else:
            base = calculate_dynamic_base_price(request.distance_km, request.duration_minutes, settings)
            applied_rules.append(
                AppliedRule(
                    type="DYNAMIC_BASE_PRICE",
                    description=(
                        f"Dynamic base price ({base.selected_method}): {base.base_price:.2f} EUR, "
                        f"{base.price_with_margin:.2f} EUR with {settings.target_margin_percent:g}% margin"
                    ),
                    details={
                        "distance_based_price": base.distance_based_price,
                        "duration_based_price": base.duration_based_price,
                        "selected_method": base.selected_method,
                        "base_price": base.base_price,
                        "price_with_margin": base.price_with_margin,
                    },
                )
            )
            zone_result = apply_zone_multiplier(
                base.price_with_margin,
                pickup_zone,
                dropoff_zone,
                settings.zone_multiplier_aggregation_strategy,
            )
            price = zone_result.adjusted_price
            zone_multiplier = zone_result.multiplier
            applied_rules.append(zone_result.applied_rule)

        segmentation = self._segment(request, zones, pickup_zone, dropoff_zone, toll, settings)
        transversal = None
        if segmentation is not None:
            applied_rules.append(build_route_segmentation_rule(segmentation, price, price))
            transversal_config = TransversalConfig(
                pickup_zone_code=pickup_zone.code if pickup_zone else OUTSIDE_ZONE_CODE,
                dropoff_zone_code=dropoff_zone.code if dropoff_zone else OUTSIDE_ZONE_CODE,
                transit_discount_enabled=settings.transit_discount_enabled,
                transit_discount_percent=settings.transit_discount_percent,
                transit_zone_codes=settings.transit_zone_codes,
            )
            transversal = decompose_transversal_trip(
                segmentation.segments,
                transversal_config,
                SegmentPricingParams(
                    base_rate_per_km=settings.base_rate_per_km,
                    base_rate_per_hour=settings.base_rate_per_hour,
                    target_margin_percent=settings.target_margin_percent,
                ),
            )
            if transversal.is_transversal:
                applied_rules.append(build_transversal_rule(transversal, transversal_config))
                if temporal_vector is None and transversal.total_transit_discount > 0:
                    price = round(max(0.0, price - transversal.total_transit_discount), 2)

        surcharges = calculate_zone_surcharges(pickup_zone, dropoff_zone)
        surcharge_rule = build_zone_surcharge_rule(surcharges)
        if surcharge_rule is not None:
            applied_rules.append(surcharge_rule)
        price = round(price + surcharges.total, 2)

        cost_breakdown = calculate_cost_breakdown(
            request.distance_km, request.duration_minutes, toll.amount, settings, surcharges.total
        )
        margin = round(price - cost_breakdown.total, 2)
        margin_percent = round(margin / price * 100, 2) if price > 0 else 0.0

        route_scenarios = None
        if request.include_route_scenarios:
            route_scenarios = calculate_route_scenarios(
                pickup,
                dropoff,
                self.toll_service.config.api_key,
                settings.tco_config(),
                client=self.routes_client,
            )
            scenario_rule = build_route_scenario_rule(route_scenarios)
            if scenario_rule is not None:
                applied_rules.append(scenario_rule)

        stay_vs_return = None
        if request.pickup_at and request.estimated_end_at:
            loss = calculate_loss_of_exploitation(
                request.pickup_at,
                request.estimated_end_at,
                vehicle_category_rates(request.vehicle_category),
                seasonal_multiplier(request.seasonal_multiplier),
                settings,
            )
            stay_vs_return = calculate_stay_vs_return_comparison(
                loss, request.distance_km, request.duration_minutes, toll.amount, settings
            )
            stay_rule = build_stay_vs_return_rule(stay_vs_return)
            if stay_rule is not None:
                applied_rules.append(stay_rule)

        return PricingResult(
            price=price,
            internal_cost=cost_breakdown.total,
            margin=margin,
            margin_percent=margin_percent,
            profitability=calculate_profitability_indicator(margin_percent),
            pickup_zone_code=pickup_zone.code if pickup_zone else None,
            dropoff_zone_code=dropoff_zone.code if dropoff_zone else None,
            zone_multiplier=zone_multiplier,
            applied_rules=applied_rules,
            trip_analysis=TripAnalysis(
                distance_km=request.distance_km,
                duration_minutes=request.duration_minutes,
                toll_source=toll.source,
                cost_breakdown=cost_breakdown,
                segmentation=segmentation,
                transversal=transversal,
                route_scenarios=route_scenarios,
                stay_vs_return=stay_vs_return,
            ),
            temporal_vector=temporal_vector,
        )

    def _resolve_toll(
        self, pickup: GeoPoint, dropoff: GeoPoint, distance: float, settings: PricingSettings
    ) -> TollResult:
        toll = self.toll_service.get_toll_cost(pickup, dropoff)
        if toll.amount >= 0:
            return toll
        return TollResult(
            amount=calculate_fallback_toll(distance, settings.toll_cost_per_km),
            currency="EUR",
            source="ESTIMATE",
            fetched_at=None,
            is_from_cache=False,
        )

    def _segment(
        self,
        request: PricingCalculationRequest,
        zones: list[ZoneData],
        pickup_zone: ZoneData | None,
        dropoff_zone: ZoneData | None,
        toll: TollResult,
        settings: PricingSettings,
    ) -> RouteSegmentationResult | None:
        if not zones:
            return None
        polyline = request.encoded_polyline or toll.encoded_polyline
        if polyline:
            try:
                result = segment_route_by_zones(
                    polyline, zones, request.duration_minutes, settings.zone_conflict_strategy
                )
            except ValueError as exc:
                logger.warning("Route polyline could not be decoded, using fallback: %s", exc)
            else:
                if result.segments:
                    return result
        return create_fallback_segmentation(
            pickup_zone, dropoff_zone, request.distance_km, request.duration_minutes
        )

