from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from trip_pricing.services.geo import (
    decode_polyline,
    distance_km,
    find_crossing_point,
    simplify_polyline,
)
from trip_pricing.services.types import (
    AppliedRule,
    GeoPoint,
    RouteSegmentationResult,
    ZoneSegment,
)
from trip_pricing.services.zones import ZoneConflictStrategy, ZoneData, find_zone_for_point

OUTSIDE_ZONE_ID = "OUTSIDE"
OUTSIDE_ZONE_CODE = "OUTSIDE_ZONES"
OUTSIDE_ZONE_NAME = "Outside defined zones"
SIMPLIFY_MIN_DISTANCE_KM = 0.05


@dataclass(slots=True)
class _ZoneRun:
    zone: ZoneData | None
    entry_point: GeoPoint
    distance_km: float = 0.0


def _zone_id(zone: ZoneData | None) -> str:
    return zone.id if zone else OUTSIDE_ZONE_ID


def _surcharge(zone: ZoneData) -> float:
    return (zone.fixed_parking_surcharge or 0.0) + (zone.fixed_access_fee or 0.0)


def calculate_weighted_multiplier(segments: Sequence[ZoneSegment], total_distance_km: float) -> float:
    if not segments or total_distance_km <= 0:
        return 1.0
    weighted = sum(segment.distance_km * segment.price_multiplier for segment in segments)
    return round(weighted / total_distance_km, 3)


def _empty_result() -> RouteSegmentationResult:
    return RouteSegmentationResult(
        segments=[],
        weighted_multiplier=1.0,
        total_surcharges=0.0,
        zones_traversed=[],
        total_distance_km=0.0,
        segmentation_method="FALLBACK",
    )


def segment_route_by_zones(
    encoded_polyline: str,
    zones: Sequence[ZoneData],
    total_duration_minutes: float,
    strategy: ZoneConflictStrategy | str | None = None,
) -> RouteSegmentationResult:
    """Split a route polyline into consecutive per-zone runs."""
    raw_points = decode_polyline(encoded_polyline)
    if len(raw_points) < 2:
        return _empty_result()

    points = simplify_polyline(raw_points, SIMPLIFY_MIN_DISTANCE_KM)

    def zone_at(point: GeoPoint) -> ZoneData | None:
        return find_zone_for_point(point, zones, strategy)

    current = _ZoneRun(zone=zone_at(points[0]), entry_point=points[0])
    runs: list[_ZoneRun] = []
    for start, finish in zip(points, points[1:]):
        next_zone = zone_at(finish)
        current_id = _zone_id(current.zone)
        if current_id == _zone_id(next_zone):
            current.distance_km += distance_km(start, finish)
            continue

        crossing = find_crossing_point(
            start, finish, lambda point: _zone_id(zone_at(point)) == current_id
        )
        current.distance_km += distance_km(start, crossing)
        runs.append(current)
        current = _ZoneRun(
            zone=next_zone, entry_point=crossing, distance_km=distance_km(crossing, finish)
        )
    runs.append(current)

    total_distance = sum(run.distance_km for run in runs)
    segments: list[ZoneSegment] = []
    zones_traversed: list[str] = []
    surcharged: set[str] = set()
    total_surcharges = 0.0

    for index, run in enumerate(runs):
        share = run.distance_km / total_distance if total_distance > 0 else 1 / len(runs)
        surcharge = 0.0
        if run.zone is not None and run.zone.id not in surcharged:
            surcharge = _surcharge(run.zone)
            total_surcharges += surcharge
            surcharged.add(run.zone.id)

        code = run.zone.code if run.zone else OUTSIDE_ZONE_CODE
        segments.append(
            ZoneSegment(
                zone_id=_zone_id(run.zone),
                zone_code=code,
                zone_name=run.zone.name if run.zone else OUTSIDE_ZONE_NAME,
                distance_km=round(run.distance_km, 3),
                duration_minutes=round(total_duration_minutes * share, 2),
                price_multiplier=run.zone.price_multiplier if run.zone else 1.0,
                surcharges_applied=surcharge,
                entry_point=run.entry_point,
                exit_point=runs[index + 1].entry_point if index < len(runs) - 1 else points[-1],
            )
        )
        if code not in zones_traversed:
            zones_traversed.append(code)

    return RouteSegmentationResult(
        segments=segments,
        weighted_multiplier=calculate_weighted_multiplier(segments, total_distance),
        total_surcharges=round(total_surcharges, 2),
        zones_traversed=zones_traversed,
        total_distance_km=round(total_distance, 3),
        segmentation_method="POLYLINE",
    )


def _whole_zone_segment(zone: ZoneData, distance: float, duration: float) -> ZoneSegment:
    return ZoneSegment(
        zone_id=zone.id,
        zone_code=zone.code,
        zone_name=zone.name,
        distance_km=distance,
        duration_minutes=duration,
        price_multiplier=zone.price_multiplier,
        surcharges_applied=_surcharge(zone),
    )


def create_fallback_segmentation(
    pickup_zone: ZoneData | None,
    dropoff_zone: ZoneData | None,
    total_distance_km: float,
    total_duration_minutes: float,
) -> RouteSegmentationResult:
    """Segmentation from the pickup and dropoff zones alone, used without a polyline."""
    if pickup_zone is None and dropoff_zone is None:
        return _empty_result()

    if pickup_zone is None or dropoff_zone is None or pickup_zone.id == dropoff_zone.id:
        zone = pickup_zone or dropoff_zone
        segments = [_whole_zone_segment(zone, total_distance_km, total_duration_minutes)]
    else:
        half_distance = total_distance_km / 2
        half_duration = total_duration_minutes / 2
        segments = [
            _whole_zone_segment(pickup_zone, half_distance, half_duration),
            _whole_zone_segment(dropoff_zone, half_distance, half_duration),
        ]

    return RouteSegmentationResult(
        segments=segments,
        weighted_multiplier=calculate_weighted_multiplier(segments, total_distance_km),
        total_surcharges=round(sum(segment.surcharges_applied for segment in segments), 2),
        zones_traversed=[segment.zone_code for segment in segments],
        total_distance_km=total_distance_km,
        segmentation_method="FALLBACK",
    )


def build_route_segmentation_rule(
    result: RouteSegmentationResult, price_before: float, price_after: float
) -> AppliedRule:
    path = " -> ".join(result.zones_traversed)
    if result.segmentation_method == "POLYLINE":
        description = f"Route segmented across {len(result.segments)} zone(s): {path}"
    else:
        description = f"Fallback segmentation (no polyline): {path}"
    return AppliedRule(
        type="ROUTE_SEGMENTATION",
        description=f"{description}. Weighted multiplier: {result.weighted_multiplier}x",
        details={
            "segmentation_method": result.segmentation_method,
            "zones_traversed": result.zones_traversed,
            "segment_count": len(result.segments),
            "weighted_multiplier": result.weighted_multiplier,
            "total_surcharges": result.total_surcharges,
            "segments": [
                {
                    "zone_code": segment.zone_code,
                    "distance_km": segment.distance_km,
                    "multiplier": segment.price_multiplier,
                }
                for segment in result.segments
            ],
            "price_before": price_before,
            "price_after": price_after,
        },
    )
