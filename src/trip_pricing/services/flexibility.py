from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Literal, TypeVar

from trip_pricing.services.types import FlexibilityScoreBreakdown, FlexibilityScoreResult

SCORE_WEIGHT = 25.0
MAX_TOTAL_SCORE = 100

DEFAULT_MAX_LICENSE_COUNT = 3
DEFAULT_MAX_AVAILABILITY_HOURS = 8.0
DEFAULT_MAX_DISTANCE_KM = 100.0
DEFAULT_MAX_DRIVING_HOURS = 10.0
DEFAULT_MAX_AMPLITUDE_HOURS = 14.0

ScoreLevel = Literal["excellent", "good", "fair", "poor"]
CandidateT = TypeVar("CandidateT")


@dataclass(slots=True, frozen=True)
class FlexibilityScoreInput:
    driver_license_count: float
    driver_availability_hours: float
    base_distance_km: float
    remaining_driving_hours: float
    remaining_amplitude_hours: float
    max_license_count: float = DEFAULT_MAX_LICENSE_COUNT
    max_availability_hours: float = DEFAULT_MAX_AVAILABILITY_HOURS
    max_distance_km: float = DEFAULT_MAX_DISTANCE_KM
    max_driving_hours: float = DEFAULT_MAX_DRIVING_HOURS
    max_amplitude_hours: float = DEFAULT_MAX_AMPLITUDE_HOURS


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _ratio(value: float, maximum: float) -> float:
    if maximum <= 0:
        return 1.0
    return _clamp(value / maximum, 0.0, 1.0)


def _proximity_ratio(distance: float, maximum: float) -> float:
    distance = max(0.0, distance)
    if distance <= 0:
        return 1.0
    if maximum <= 0:
        return 0.0
    return 1.0 - min(distance, maximum) / maximum


def calculate_flexibility_score(data: FlexibilityScoreInput) -> FlexibilityScoreResult:
    """Score a driver/vehicle candidate from 0 to 100 across four 25-point components."""
    licenses = _clamp(_ratio(data.driver_license_count, data.max_license_count) * SCORE_WEIGHT, 0, SCORE_WEIGHT)
    availability = _clamp(
        _ratio(data.driver_availability_hours, data.max_availability_hours) * SCORE_WEIGHT, 0, SCORE_WEIGHT
    )
    distance = _clamp(
        _proximity_ratio(data.base_distance_km, data.max_distance_km) * SCORE_WEIGHT, 0, SCORE_WEIGHT
    )
    driving = _ratio(data.remaining_driving_hours, data.max_driving_hours)
    amplitude = _ratio(data.remaining_amplitude_hours, data.max_amplitude_hours)
    rse_capacity = _clamp((driving + amplitude) / 2 * SCORE_WEIGHT, 0, SCORE_WEIGHT)

    total = round(licenses + availability + distance + rse_capacity)
    return FlexibilityScoreResult(
        total_score=int(_clamp(total, 0, MAX_TOTAL_SCORE)),
        breakdown=FlexibilityScoreBreakdown(
            licenses_score=round(licenses, 1),
            availability_score=round(availability, 1),
            distance_score=round(distance, 1),
            rse_capacity_score=round(rse_capacity, 1),
        ),
    )


def calculate_flexibility_score_simple(
    license_count: float,
    availability_hours: float,
    distance_km: float,
    remaining_driving_hours: float,
    remaining_amplitude_hours: float,
) -> FlexibilityScoreResult:
    return calculate_flexibility_score(
        FlexibilityScoreInput(
            driver_license_count=license_count,
            driver_availability_hours=availability_hours,
            base_distance_km=distance_km,
            remaining_driving_hours=remaining_driving_hours,
            remaining_amplitude_hours=remaining_amplitude_hours,
        )
    )


def get_score_level(score: float) -> ScoreLevel:
    if score >= 80:
        return "excellent"
    if score >= 60:
        return "good"
    if score >= 40:
        return "fair"
    return "poor"


def rank_candidates(
    candidates: Iterable[tuple[CandidateT, FlexibilityScoreInput]],
) -> list[tuple[CandidateT, FlexibilityScoreResult]]:
    """Score candidates and order them best first; equal scores keep their input order."""
    scored = [(candidate, calculate_flexibility_score(data)) for candidate, data in candidates]
    return sorted(scored, key=lambda item: item[1].total_score, reverse=True)
