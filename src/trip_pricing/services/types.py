from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

TollSource = Literal["GOOGLE_API", "ESTIMATE"]
RouteScenarioType = Literal["MIN_TIME", "MIN_DISTANCE", "MIN_TCO"]
DurationSource = Literal["TEMPORAL_VECTOR", "ACTUAL_ESTIMATE"]
MultiplierSource = Literal["pickup", "dropoff", "both"]
SegmentationMethod = Literal["POLYLINE", "FALLBACK"]
StayVsReturnRecommendation = Literal["STAY_ON_SITE", "RETURN_EMPTY"]
ProfitabilityIndicator = Literal["green", "orange", "red"]
DailyRevenueSource = Literal["CONFIGURED", "HOURLY_RATE_8H"]
SeasonalityPeriod = Literal["DEFAULT", "HIGH_SEASON", "LOW_SEASON"]


@dataclass(slots=True, frozen=True)
class GeoPoint:
    latitude: float
    longitude: float


@dataclass(slots=True, frozen=True)
class RouteLeg:
    distance_meters: float
    duration_seconds: float


@dataclass(slots=True, frozen=True)
class RouteData:
    distance_meters: float
    duration_seconds: float
    toll_amount: float
    encoded_polyline: str | None = None
    legs: list[RouteLeg] = field(default_factory=list)

    @property
    def distance_km(self) -> float:
        return self.distance_meters / 1000.0

    @property
    def duration_minutes(self) -> float:
        return self.duration_seconds / 60.0


@dataclass(slots=True, frozen=True)
class TollResult:
    amount: float
    currency: str
    source: TollSource
    fetched_at: datetime | None
    is_from_cache: bool
    encoded_polyline: str | None = None

    @property
    def is_estimate(self) -> bool:
        return self.source == "ESTIMATE"


@dataclass(slots=True, frozen=True)
class ExcursionRouteResult:
    leg_distances_km: list[float]
    leg_durations_minutes: list[float]
    total_distance_km: float
    total_duration_minutes: float
    is_from_api: bool


@dataclass(slots=True, frozen=True)
class AppliedRule:
    type: str
    description: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class RouteScenario:
    type: RouteScenarioType
    label: str
    duration_minutes: float
    distance_km: float
    toll_cost: float
    fuel_cost: float
    driver_cost: float
    wear_cost: float
    tco: float
    is_recommended: bool = False
    encoded_polyline: str | None = None
    toll_source: TollSource = "GOOGLE_API"


@dataclass(slots=True, frozen=True)
class RouteScenarioCalculationResult:
    scenarios: list[RouteScenario]
    selected_scenario: RouteScenarioType
    selection_reason: str
    fallback_used: bool
    fallback_reason: str | None
    calculated_at: datetime

    @property
    def recommended(self) -> RouteScenario | None:
        return next((scenario for scenario in self.scenarios if scenario.is_recommended), None)


@dataclass(slots=True, frozen=True)
class ZoneSurchargeComponent:
    zone_id: str
    zone_code: str
    zone_name: str
    parking_surcharge: float
    access_fee: float
    total: float
    description: str | None


@dataclass(slots=True, frozen=True)
class ZoneSurcharges:
    pickup: ZoneSurchargeComponent | None
    dropoff: ZoneSurchargeComponent | None
    total: float


@dataclass(slots=True, frozen=True)
class TemporalVectorResult:
    package_id: str
    package_name: str
    destination_zone_id: str | None
    minimum_duration_hours: float
    actual_estimated_hours: float
    duration_used: float
    duration_source: DurationSource
    price: float
    is_override_price: bool


@dataclass(slots=True, frozen=True)
class ZoneSegment:
    zone_id: str
    zone_code: str
    zone_name: str
    distance_km: float
    duration_minutes: float
    price_multiplier: float
    surcharges_applied: float = 0.0
    entry_point: GeoPoint | None = None
    exit_point: GeoPoint | None = None


@dataclass(slots=True, frozen=True)
class RouteSegmentationResult:
    segments: list[ZoneSegment]
    weighted_multiplier: float
    total_surcharges: float
    zones_traversed: list[str]
    total_distance_km: float
    segmentation_method: SegmentationMethod


@dataclass(slots=True, frozen=True)
class TransversalSegment:
    segment_index: int
    zone_code: str
    zone_name: str
    from_zone_code: str
    to_zone_code: str
    distance_km: float
    duration_minutes: float
    price_multiplier: float
    is_transit: bool
    segment_price: float
    transit_discount: float
    final_price: float


@dataclass(slots=True, frozen=True)
class TransversalDecompositionResult:
    is_transversal: bool
    segments: list[TransversalSegment]
    total_segments: int
    total_transit_discount: float
    price_before_discount: float
    price_after_discount: float
    zones_traversed: list[str]


@dataclass(slots=True, frozen=True)
class IdleDaysResult:
    total_days: int
    idle_days: int

    @property
    def is_multi_day(self) -> bool:
        return self.total_days > 1


@dataclass(slots=True, frozen=True)
class LossOfExploitationResult:
    total_days: int
    idle_days: int
    daily_reference_revenue: float
    daily_revenue_source: DailyRevenueSource
    seasonality_coefficient: float
    seasonality_period: SeasonalityPeriod
    amount: float

    @property
    def is_multi_day(self) -> bool:
        return self.total_days > 1


@dataclass(slots=True, frozen=True)
class StayOnSiteScenario:
    total_days: int
    nights: int
    hotel_cost: float
    meal_cost: float
    driver_premium: float
    loss_of_exploitation: float
    total_cost: float


@dataclass(slots=True, frozen=True)
class ReturnEmptyScenario:
    is_viable: bool
    trips_count: int
    distance_one_way_km: float
    duration_one_way_minutes: float
    total_empty_distance_km: float
    fuel_cost: float
    toll_cost: float
    driver_time_cost: float
    total_cost: float
    non_viable_reason: str | None = None


@dataclass(slots=True, frozen=True)
class StayVsReturnComparison:
    is_applicable: bool
    stay_on_site: StayOnSiteScenario | None
    return_empty: ReturnEmptyScenario | None
    recommended_scenario: StayVsReturnRecommendation | None
    cost_difference: float
    percentage_savings: float
    recommendation: str


@dataclass(slots=True, frozen=True)
class FlexibilityScoreBreakdown:
    licenses_score: float
    availability_score: float
    distance_score: float
    rse_capacity_score: float


@dataclass(slots=True, frozen=True)
class FlexibilityScoreResult:
    total_score: int
    breakdown: FlexibilityScoreBreakdown


@dataclass(slots=True, frozen=True)
class CostBreakdown:
    fuel: float
    tolls: float
    wear: float
    driver: float
    zone_surcharges: float
    total: float


@dataclass(slots=True, frozen=True)
class TripAnalysis:
    distance_km: float
    duration_minutes: float
    toll_source: TollSource
    cost_breakdown: CostBreakdown
    segmentation: RouteSegmentationResult | None = None
    transversal: TransversalDecompositionResult | None = None
    route_scenarios: RouteScenarioCalculationResult | None = None
    stay_vs_return: StayVsReturnComparison | None = None


@dataclass(slots=True, frozen=True)
class PricingResult:
    price: float
    internal_cost: float
    margin: float
    margin_percent: float
    profitability: ProfitabilityIndicator
    pickup_zone_code: str | None
    dropoff_zone_code: str | None
    zone_multiplier: float
    applied_rules: list[AppliedRule]
    trip_analysis: TripAnalysis
    temporal_vector: TemporalVectorResult | None = None
