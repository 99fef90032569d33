from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Literal

from pydantic import (
    AwareDatetime,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


class Coordinate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)


class ZoneInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1)
    code: str = Field(min_length=1, max_length=64)
    name: str | None = None
    zone_type: Literal["POINT", "RADIUS", "POLYGON", "CORRIDOR"] = "POLYGON"
    geometry: dict[str, Any] | None = None
    center_latitude: float | None = None
    center_longitude: float | None = None
    radius_km: float | None = Field(default=None, gt=0.0)
    encoded_polyline: str | None = None
    buffer_meters: float | None = None
    price_multiplier: float = Field(default=1.0, gt=0.0)
    priority: int = 0
    is_active: bool = True
    fixed_parking_surcharge: float | None = Field(default=None, ge=0.0)
    fixed_access_fee: float | None = Field(default=None, ge=0.0)
    surcharge_description: str | None = None


class ExcursionPackageInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    name: str
    price: float = Field(ge=0.0)
    vehicle_category_id: str
    is_temporal_vector: bool = False
    is_active: bool = True
    destination_zone_id: str | None = None
    allowed_origin_zone_ids: list[str] = Field(default_factory=list)
    minimum_duration_hours: float | None = Field(default=None, ge=0.0)
    override_price: float | None = None


class VehicleCategoryInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    name: str
    daily_reference_revenue: float | None = Field(default=None, ge=0.0)
    default_rate_per_hour: float | None = Field(default=None, ge=0.0)


class SeasonalMultiplierInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    multiplier: float = Field(gt=0.0)


class PricingCalculationRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    pickup: Coordinate
    dropoff: Coordinate
    distance_km: float = Field(ge=0.0, le=5000.0)
    duration_minutes: float = Field(ge=0.0, le=10080.0)
    vehicle_category_id: str | None = None
    vehicle_category: VehicleCategoryInput | None = None
    zones: list[ZoneInput] = Field(default_factory=list)
    excursion_packages: list[ExcursionPackageInput] = Field(default_factory=list)
    encoded_polyline: str | None = None
    include_route_scenarios: bool = False
    pickup_at: AwareDatetime | None = None
    estimated_end_at: AwareDatetime | None = None
    seasonal_multiplier: SeasonalMultiplierInput | None = None
    pricing_settings: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_mission_window(self) -> PricingCalculationRequest:
        if self.pickup_at and self.estimated_end_at and self.estimated_end_at < self.pickup_at:
            raise ValueError("estimated_end_at must not be before pickup_at")
        return self


class RouteScenariosRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    origin: Coordinate
    destination: Coordinate
    pricing_settings: dict[str, Any] = Field(default_factory=dict)


class StayVsReturnRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    pickup_at: AwareDatetime
    estimated_end_at: AwareDatetime
    distance_one_way_km: float = Field(ge=0.0)
    duration_one_way_minutes: float = Field(ge=0.0)
    toll_cost_one_way: float = Field(default=0.0, ge=0.0)
    vehicle_category: VehicleCategoryInput | None = None
    seasonal_multiplier: SeasonalMultiplierInput | None = None
    pricing_settings: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_mission_window(self) -> StayVsReturnRequest:
        if self.estimated_end_at < self.pickup_at:
            raise ValueError("estimated_end_at must not be before pickup_at")
        return self


class FlexibilityCandidateInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    candidate_id: str
    driver_license_count: float
    driver_availability_hours: float
    base_distance_km: float
    remaining_driving_hours: float
    remaining_amplitude_hours: float
    max_license_count: float = 3
    max_availability_hours: float = 8.0
    max_distance_km: float = 100.0
    max_driving_hours: float = 10.0
    max_amplitude_hours: float = 14.0


class FlexibilityScoreRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    candidates: list[FlexibilityCandidateInput] = Field(min_length=1, max_length=200)


class _FromAttributes(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class GeoPointResponse(_FromAttributes):
    latitude: float
    longitude: float


class AppliedRuleResponse(_FromAttributes):
    type: str
    description: str
    details: dict[str, Any]


class CostBreakdownResponse(_FromAttributes):
    fuel: float
    tolls: float
    wear: float
    driver: float
    zone_surcharges: float
    total: float


class ZoneSegmentResponse(_FromAttributes):
    zone_id: str
    zone_code: str
    zone_name: str
    distance_km: float
    duration_minutes: float
    price_multiplier: float
    surcharges_applied: float
    entry_point: GeoPointResponse | None = None
    exit_point: GeoPointResponse | None = None


class RouteSegmentationResponse(_FromAttributes):
    segments: list[ZoneSegmentResponse]
    weighted_multiplier: float
    total_surcharges: float
    zones_traversed: list[str]
    total_distance_km: float
    segmentation_method: Literal["POLYLINE", "FALLBACK"]


class TransversalSegmentResponse(_FromAttributes):
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


class TransversalDecompositionResponse(_FromAttributes):
    is_transversal: bool
    segments: list[TransversalSegmentResponse]
    total_segments: int
    total_transit_discount: float
    price_before_discount: float
    price_after_discount: float
    zones_traversed: list[str]


class RouteScenarioResponse(_FromAttributes):
    type: Literal["MIN_TIME", "MIN_DISTANCE", "MIN_TCO"]
    label: str
    duration_minutes: float
    distance_km: float
    toll_cost: float
    fuel_cost: float
    driver_cost: float
    wear_cost: float
    tco: float
    is_recommended: bool
    encoded_polyline: str | None = None
    toll_source: Literal["GOOGLE_API", "ESTIMATE"]


class RouteScenariosResponse(_FromAttributes):
    scenarios: list[RouteScenarioResponse]
    selected_scenario: Literal["MIN_TIME", "MIN_DISTANCE", "MIN_TCO"]
    selection_reason: str
    fallback_used: bool
    fallback_reason: str | None
    calculated_at: datetime


class StayOnSiteResponse(_FromAttributes):
    total_days: int
    nights: int
    hotel_cost: float
    meal_cost: float
    driver_premium: float
    loss_of_exploitation: float
    total_cost: float


class ReturnEmptyResponse(_FromAttributes):
    is_viable: bool
    trips_count: int
    distance_one_way_km: float
    duration_one_way_minutes: float
    total_empty_distance_km: float
    fuel_cost: float
    toll_cost: float
    driver_time_cost: float
    total_cost: float | None
    non_viable_reason: str | None = None

    @field_validator("total_cost")
    @classmethod
    def infinite_cost_as_null(cls, value: float | None) -> float | None:
        # JSON has no infinity; a non-viable return is reported as null
        if value is None or math.isinf(value):
            return None
        return value


class StayVsReturnResponse(_FromAttributes):
    is_applicable: bool
    stay_on_site: StayOnSiteResponse | None
    return_empty: ReturnEmptyResponse | None
    recommended_scenario: Literal["STAY_ON_SITE", "RETURN_EMPTY"] | None
    cost_difference: float
    percentage_savings: float
    recommendation: str


class LossOfExploitationResponse(_FromAttributes):
    total_days: int
    idle_days: int
    is_multi_day: bool
    daily_reference_revenue: float
    daily_revenue_source: str
    seasonality_coefficient: float
    seasonality_period: str
    amount: float


class StayVsReturnCalculationResponse(BaseModel):
    loss_of_exploitation: LossOfExploitationResponse
    comparison: StayVsReturnResponse


class TripAnalysisResponse(_FromAttributes):
    distance_km: float
    duration_minutes: float
    toll_source: Literal["GOOGLE_API", "ESTIMATE"]
    cost_breakdown: CostBreakdownResponse
    segmentation: RouteSegmentationResponse | None = None
    transversal: TransversalDecompositionResponse | None = None
    route_scenarios: RouteScenariosResponse | None = None
    stay_vs_return: StayVsReturnResponse | None = None


class TemporalVectorResponse(_FromAttributes):
    package_id: str
    package_name: str
    destination_zone_id: str | None
    minimum_duration_hours: float
    actual_estimated_hours: float
    duration_used: float
    duration_source: Literal["TEMPORAL_VECTOR", "ACTUAL_ESTIMATE"]
    price: float
    is_override_price: bool


class PricingCalculationResponse(_FromAttributes):
    price: float
    internal_cost: float
    margin: float
    margin_percent: float
    profitability: Literal["green", "orange", "red"]
    pickup_zone_code: str | None
    dropoff_zone_code: str | None
    zone_multiplier: float
    applied_rules: list[AppliedRuleResponse]
    trip_analysis: TripAnalysisResponse
    temporal_vector: TemporalVectorResponse | None = None


class FlexibilityBreakdownResponse(_FromAttributes):
    licenses_score: float
    availability_score: float
    distance_score: float
    rse_capacity_score: float


class FlexibilityCandidateResponse(BaseModel):
    candidate_id: str
    total_score: int
    level: Literal["excellent", "good", "fair", "poor"]
    breakdown: FlexibilityBreakdownResponse


class FlexibilityScoreResponse(BaseModel):
    candidates: list[FlexibilityCandidateResponse]
