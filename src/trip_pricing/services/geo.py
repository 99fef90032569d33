from __future__ import annotations

import hashlib
import math
from collections.abc import Callable, Sequence

from trip_pricing.services.types import GeoPoint

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE_LAT = 111.32
COORDINATE_HASH_PRECISION = 4
COORDINATE_HASH_LENGTH = 16
POLYLINE_PRECISION = 1e5
CROSSING_MAX_ITERATIONS = 20


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)

    dlat = lat2_rad - lat1_rad
    dlon = math.radians(lon2 - lon1)

    a = (
        math.sin(dlat / 2.0) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2.0) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_km(start: GeoPoint, finish: GeoPoint) -> float:
    return haversine_km(start.latitude, start.longitude, finish.latitude, finish.longitude)


def hash_coordinates(point: GeoPoint) -> str:
    """Stable cache key for a point rounded to ~11 m."""
    # + 0.0 folds -0.0 into 0.0
    latitude = round(point.latitude, COORDINATE_HASH_PRECISION) + 0.0
    longitude = round(point.longitude, COORDINATE_HASH_PRECISION) + 0.0
    rounded = f"{latitude:.{COORDINATE_HASH_PRECISION}f},{longitude:.{COORDINATE_HASH_PRECISION}f}"
    return hashlib.sha256(rounded.encode()).hexdigest()[:COORDINATE_HASH_LENGTH]


def lon_lat_to_km_xy(lon: float, lat: float, ref_lat: float) -> tuple[float, float]:
    km_per_degree_lon = KM_PER_DEGREE_LAT * math.cos(math.radians(ref_lat))
    return lon * km_per_degree_lon, lat * KM_PER_DEGREE_LAT


def decode_polyline(encoded: str) -> list[GeoPoint]:
    """Decode a Google encoded polyline (1e5 precision)."""
    if not encoded:
        return []

    points: list[GeoPoint] = []
    index = 0
    lat = 0
    lng = 0
    length = len(encoded)

    while index < length:
        deltas = []
        for _ in range(2):
            shift = 0
            result = 0
            while True:
                if index >= length:
                    raise ValueError("Truncated polyline")
                byte = ord(encoded[index]) - 63
                if byte < 0 or byte > 63:
                    raise ValueError(f"Invalid polyline character at index {index}")
                index += 1
                result |= (byte & 0x1F) << shift
                shift += 5
                if byte < 0x20:
                    break
            deltas.append(~(result >> 1) if result & 1 else result >> 1)

        lat += deltas[0]
        lng += deltas[1]
        points.append(GeoPoint(latitude=lat / POLYLINE_PRECISION, longitude=lng / POLYLINE_PRECISION))

    return points


def polyline_distance_km(points: Sequence[GeoPoint]) -> float:
    return sum(distance_km(points[i], points[i + 1]) for i in range(len(points) - 1))


def simplify_polyline(points: Sequence[GeoPoint], min_distance_km: float = 0.05) -> list[GeoPoint]:
    if len(points) <= 2:
        return list(points)

    simplified = [points[0]]
    last = points[0]
    for point in points[1:-1]:
        if distance_km(last, point) >= min_distance_km:
            simplified.append(point)
            last = point

    simplified.append(points[-1])
    return simplified


def interpolate(start: GeoPoint, finish: GeoPoint, fraction: float) -> GeoPoint:
    return GeoPoint(
        latitude=start.latitude + (finish.latitude - start.latitude) * fraction,
        longitude=start.longitude + (finish.longitude - start.longitude) * fraction,
    )


def find_crossing_point(
    start: GeoPoint,
    finish: GeoPoint,
    is_inside: Callable[[GeoPoint], bool],
    precision_km: float = 0.01,
) -> GeoPoint:
    """Bisect the segment for the point where ``is_inside`` stops holding."""
    length = distance_km(start, finish)
    if length < precision_km:
        return interpolate(start, finish, 0.5)

    low = 0.0
    high = 1.0
    iterations = 0
    while high - low > precision_km / length and iterations < CROSSING_MAX_ITERATIONS:
        mid = (low + high) / 2
        if is_inside(interpolate(start, finish, mid)):
            low = mid
        else:
            high = mid
        iterations += 1

    return interpolate(start, finish, (low + high) / 2)
