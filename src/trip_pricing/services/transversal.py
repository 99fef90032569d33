"""Decomposition of trips crossing three or more pricing zones into priced segments."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from trip_pricing.services.types import (
    AppliedRule,
    TransversalDecompositionResult,
    TransversalSegment,
    ZoneSegment,
)

MIN_ZONES_FOR_TRANSVERSAL = 3


@dataclass(slots=True, frozen=True)
class TransversalConfig:
    pickup_zone_code: str
    dropoff_zone_code: str
    transit_discount_enabled: bool = False
    transit_discount_percent: float = 10.0
    transit_zone_codes: tuple[str, ...] = ("PARIS_0", "PARIS_10")


@dataclass(slots=True, frozen=True)
class SegmentPricingParams:
    base_rate_per_km: float
    base_rate_per_hour: float
    target_margin_percent: float


def get_unique_zones_in_order(segments: Sequence[ZoneSegment]) -> list[str]:
    return list(dict.fromkeys(segment.zone_code for segment in segments))


def is_transversal_trip(
    segments: Sequence[ZoneSegment], pickup_zone_code: str, dropoff_zone_code: str
) -> bool:
    unique_codes = get_unique_zones_in_order(segments)
    if len(unique_codes) < MIN_ZONES_FOR_TRANSVERSAL:
        return False
    return any(code not in (pickup_zone_code, dropoff_zone_code) for code in unique_codes)


def identify_transit_zones(
    segments: Sequence[ZoneSegment],
    pickup_zone_code: str,
    dropoff_zone_code: str,
    transit_zone_codes: Sequence[str],
) -> list[str]:
    transit = set(transit_zone_codes)
    return [
        code
        for code in get_unique_zones_in_order(segments)
        if code not in (pickup_zone_code, dropoff_zone_code) and code in transit
    ]


def calculate_segment_price(segment: ZoneSegment, params: SegmentPricingParams) -> float:
    distance_price = segment.distance_km * params.base_rate_per_km
    duration_price = segment.duration_minutes / 60 * params.base_rate_per_hour
    price = max(distance_price, duration_price) * segment.price_multiplier
    return round(price * (1 + params.target_margin_percent / 100), 2)


def _not_transversal() -> TransversalDecompositionResult:
    return TransversalDecompositionResult(
        is_transversal=False,
        segments=[],
        total_segments=0,
        total_transit_discount=0.0,
        price_before_discount=0.0,
        price_after_discount=0.0,
        zones_traversed=[],
    )


def decompose_transversal_trip(
    segments: Sequence[ZoneSegment],
    config: TransversalConfig,
    params: SegmentPricingParams,
) -> TransversalDecompositionResult:
    if not is_transversal_trip(segments, config.pickup_zone_code, config.dropoff_zone_code):
        return _not_transversal()

    transit_zones = set(
        identify_transit_zones(
            segments, config.pickup_zone_code, config.dropoff_zone_code, config.transit_zone_codes
        )
    )
    apply_discount = config.transit_discount_enabled and config.transit_discount_percent > 0

    priced: list[TransversalSegment] = []
    total_before = 0.0
    total_discount = 0.0
    last = len(segments) - 1
    for index, segment in enumerate(segments):
        is_transit = segment.zone_code in transit_zones
        price = calculate_segment_price(segment, params)
        discount = (
            round(price * config.transit_discount_percent / 100, 2)
            if is_transit and apply_discount
            else 0.0
        )
        total_before += price
        total_discount += discount
        priced.append(
            TransversalSegment(
                segment_index=index,
                zone_code=segment.zone_code,
                zone_name=segment.zone_name,
                from_zone_code=config.pickup_zone_code if index == 0 else segments[index - 1].zone_code,
                to_zone_code=config.dropoff_zone_code if index == last else segments[index + 1].zone_code,
                distance_km=segment.distance_km,
                duration_minutes=segment.duration_minutes,
                price_multiplier=segment.price_multiplier,
                is_transit=is_transit,
                segment_price=price,
                transit_discount=discount,
                final_price=round(price - discount, 2),
            )
        )

    return TransversalDecompositionResult(
        is_transversal=True,
        segments=priced,
        total_segments=len(priced),
        total_transit_discount=round(total_discount, 2),
        price_before_discount=round(total_before, 2),
        price_after_discount=round(total_before - total_discount, 2),
        zones_traversed=[segment.zone_code for segment in segments],
    )


def build_transversal_rule(
    result: TransversalDecompositionResult, config: TransversalConfig
) -> AppliedRule:
    if result.is_transversal:
        path = " -> ".join(result.zones_traversed)
        discount = (
            f"Transit discount: -{result.total_transit_discount:.2f} EUR"
            if result.total_transit_discount > 0
            else "No transit discount applied."
        )
        description = (
            f"Transversal trip decomposed into {result.total_segments} segment(s): {path}. {discount}"
        )
    else:
        description = "Trip is not transversal (fewer than 3 distinct zones)."

    return AppliedRule(
        type="TRANSVERSAL_DECOMPOSITION",
        description=description,
        details={
            "is_transversal": result.is_transversal,
            "total_segments": result.total_segments,
            "zones_traversed": result.zones_traversed,
            "transit_zones": [s.zone_code for s in result.segments if s.is_transit],
            "transit_discount_enabled": config.transit_discount_enabled,
            "total_transit_discount": result.total_transit_discount,
            "price_before_discount": result.price_before_discount,
            "price_after_discount": result.price_after_discount,
        },
    )
