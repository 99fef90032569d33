from __future__ import annotations

import enum
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from shapely.geometry import LineString, Point, Polygon

from trip_pricing.exceptions import InvalidZoneConfigurationError
from trip_pricing.services.geo import decode_polyline, distance_km, lon_lat_to_km_xy
from trip_pricing.services.types import GeoPoint

POINT_ZONE_RADIUS_KM = 0.1
MIN_CORRIDOR_BUFFER_METERS = 100.0
MAX_CORRIDOR_BUFFER_METERS = 5000.0
DEFAULT_CORRIDOR_BUFFER_METERS = 500.0


class ZoneType(str, enum.Enum):
    POINT = "POINT"
    RADIUS = "RADIUS"
    POLYGON = "POLYGON"
    CORRIDOR = "CORRIDOR"


class ZoneConflictStrategy(str, enum.Enum):
    PRIORITY = "PRIORITY"
    MOST_EXPENSIVE = "MOST_EXPENSIVE"
    CLOSEST = "CLOSEST"
    COMBINED = "COMBINED"


@dataclass(slots=True, frozen=True)
class PointGeometry:
    point: GeoPoint

    zone_type = ZoneType.POINT

    def contains(self, point: GeoPoint) -> bool:
        return distance_km(point, self.point) <= POINT_ZONE_RADIUS_KM

    def center(self) -> GeoPoint | None:
        return self.point


@dataclass(slots=True, frozen=True)
class RadiusGeometry:
    point: GeoPoint
    radius_km: float

    zone_type = ZoneType.RADIUS

    def contains(self, point: GeoPoint) -> bool:
        return distance_km(point, self.point) <= self.radius_km

    def center(self) -> GeoPoint | None:
        return self.point


@dataclass(slots=True, frozen=True)
class PolygonGeometry:
    """Outer ring as GeoJSON ``[lng, lat]`` pairs.

    Boundaries are closed: a point lying exactly on an edge or vertex is
    inside. Rings with fewer than three distinct vertices never match.
    """

    ring: tuple[tuple[float, float], ...]
    _shape: Polygon | None = field(init=False, repr=False, compare=False, default=None)

    zone_type = ZoneType.POLYGON

    def __post_init__(self) -> None:
        ring = tuple((float(lng), float(lat)) for lng, lat in self.ring)
        object.__setattr__(self, "ring", ring)
        if len(self._open_ring()) >= 3:
            object.__setattr__(self, "_shape", Polygon(ring))

    @classmethod
    def from_geojson(cls, geometry: Mapping[str, Any]) -> PolygonGeometry:
        coordinates = geometry.get("coordinates") or []
        if not coordinates:
            return cls(ring=())
        try:
            return cls(ring=tuple((vertex[0], vertex[1]) for vertex in coordinates[0]))
        except (TypeError, ValueError, IndexError) as exc:
            raise InvalidZoneConfigurationError(f"Invalid polygon coordinates: {exc}") from exc

    def contains(self, point: GeoPoint) -> bool:
        if self._shape is None:
            return False
        return self._shape.covers(Point(point.longitude, point.latitude))

    def center(self) -> GeoPoint | None:
        vertices = self._open_ring()
        if len(vertices) < 3:
            return None
        return GeoPoint(
            latitude=sum(lat for _, lat in vertices) / len(vertices),
            longitude=sum(lng for lng, _ in vertices) / len(vertices),
        )

    def _open_ring(self) -> tuple[tuple[float, float], ...]:
        if len(self.ring) > 1 and self.ring[0] == self.ring[-1]:
            return self.ring[:-1]
        return self.ring


@dataclass(slots=True, frozen=True)
class CorridorGeometry:
    """A road corridor: the centerline buffered by ``buffer_meters`` on each side."""

    centerline: tuple[GeoPoint, ...]
    buffer_meters: float = DEFAULT_CORRIDOR_BUFFER_METERS
    _ref_lat: float = field(init=False, repr=False, compare=False, default=0.0)
    _shape: Polygon | None = field(init=False, repr=False, compare=False, default=None)

    zone_type = ZoneType.CORRIDOR

    def __post_init__(self) -> None:
        if not MIN_CORRIDOR_BUFFER_METERS <= self.buffer_meters <= MAX_CORRIDOR_BUFFER_METERS:
            raise InvalidZoneConfigurationError("Buffer distance must be between 100m and 5000m")
        if len(self.centerline) < 2:
            raise InvalidZoneConfigurationError("Corridor must have at least 2 points")

        centerline = tuple(self.centerline)
        ref_lat = sum(point.latitude for point in centerline) / len(centerline)
        line = LineString(
            [lon_lat_to_km_xy(point.longitude, point.latitude, ref_lat) for point in centerline]
        )
        object.__setattr__(self, "centerline", centerline)
        object.__setattr__(self, "_ref_lat", ref_lat)
        object.__setattr__(self, "_shape", line.buffer(self.buffer_meters / 1000.0))

    @classmethod
    def from_polyline(
        cls, encoded: str, buffer_meters: float = DEFAULT_CORRIDOR_BUFFER_METERS
    ) -> CorridorGeometry:
        try:
            centerline = tuple(decode_polyline(encoded))
        except ValueError as exc:
            raise InvalidZoneConfigurationError(f"Invalid corridor polyline: {exc}") from exc
        return cls(centerline=centerline, buffer_meters=buffer_meters)

    def contains(self, point: GeoPoint) -> bool:
        x, y = lon_lat_to_km_xy(point.longitude, point.latitude, self._ref_lat)
        return self._shape.covers(Point(x, y))

    def center(self) -> GeoPoint | None:
        return self.centerline[len(self.centerline) // 2]


ZoneGeometry = PointGeometry | RadiusGeometry | PolygonGeometry | CorridorGeometry


@dataclass(slots=True, frozen=True)
class ZoneData:
    id: str
    code: str
    name: str
    geometry: ZoneGeometry
    price_multiplier: float = 1.0
    priority: int = 0
    is_active: bool = True
    fixed_parking_surcharge: float | None = None
    fixed_access_fee: float | None = None
    surcharge_description: str | None = None
    center: GeoPoint | None = None

    @property
    def zone_type(self) -> ZoneType:
        return self.geometry.zone_type

    def contains(self, point: GeoPoint) -> bool:
        return self.is_active and self.geometry.contains(point)

    def center_point(self) -> GeoPoint | None:
        return self.center or self.geometry.center()

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ZoneData:
        """Build a zone from a configuration record (camelCase or snake_case keys)."""

        def pick(*keys: str, default: Any = None) -> Any:
            for key in keys:
                if raw.get(key) is not None:
                    return raw[key]
            return default

        zone_type = ZoneType(pick("zoneType", "zone_type", default=ZoneType.POLYGON.value))
        center_lat = pick("centerLatitude", "center_latitude")
        center_lng = pick("centerLongitude", "center_longitude")
        center = (
            GeoPoint(latitude=float(center_lat), longitude=float(center_lng))
            if center_lat is not None and center_lng is not None
            else None
        )

        geometry: ZoneGeometry
        if zone_type is ZoneType.POINT:
            if center is None:
                raise InvalidZoneConfigurationError("POINT zone requires a center")
            geometry = PointGeometry(point=center)
        elif zone_type is ZoneType.RADIUS:
            radius_km = pick("radiusKm", "radius_km")
            if center is None or radius_km is None:
                raise InvalidZoneConfigurationError("RADIUS zone requires a center and a radius")
            geometry = RadiusGeometry(point=center, radius_km=float(radius_km))
        elif zone_type is ZoneType.POLYGON:
            geometry = PolygonGeometry.from_geojson(pick("geometry", default={}))
        else:
            buffer_meters = float(
                pick("bufferMeters", "buffer_meters", default=DEFAULT_CORRIDOR_BUFFER_METERS)
            )
            polyline = pick("encodedPolyline", "encoded_polyline")
            if polyline:
                geometry = CorridorGeometry.from_polyline(polyline, buffer_meters)
            else:
                line = pick("geometry", default={}).get("coordinates") or []
                geometry = CorridorGeometry(
                    centerline=tuple(GeoPoint(latitude=lat, longitude=lng) for lng, lat in line),
                    buffer_meters=buffer_meters,
                )

        return cls(
            id=str(raw["id"]),
            code=str(raw["code"]),
            name=str(pick("name", default=raw["code"])),
            geometry=geometry,
            price_multiplier=float(pick("priceMultiplier", "price_multiplier", default=1.0)),
            priority=int(pick("priority", default=0)),
            is_active=bool(pick("isActive", "is_active", default=True)),
            fixed_parking_surcharge=_optional_float(
                pick("fixedParkingSurcharge", "fixed_parking_surcharge")
            ),
            fixed_access_fee=_optional_float(pick("fixedAccessFee", "fixed_access_fee")),
            surcharge_description=pick("surchargeDescription", "surcharge_description"),
            center=center if zone_type in (ZoneType.POLYGON, ZoneType.CORRIDOR) else None,
        )


def _optional_float(value: Any) -> float | None:
    return None if value is None else float(value)


def _specificity(zone: ZoneData) -> tuple[int, float]:
    geometry = zone.geometry
    if isinstance(geometry, PointGeometry):
        return 0, 0.0
    if isinstance(geometry, RadiusGeometry):
        return 1, geometry.radius_km
    if isinstance(geometry, PolygonGeometry):
        return 2, 0.0
    return 3, 0.0


def sort_by_specificity(zones: Iterable[ZoneData]) -> list[ZoneData]:
    return sorted(zones, key=_specificity)


def find_zones_for_point(point: GeoPoint, zones: Iterable[ZoneData]) -> list[ZoneData]:
    return sort_by_specificity(zone for zone in zones if zone.contains(point))


def resolve_zone_conflict(
    point: GeoPoint,
    zones: Sequence[ZoneData],
    strategy: ZoneConflictStrategy | str | None = None,
) -> ZoneData | None:
    if not zones:
        return None
    if len(zones) == 1:
        return zones[0]
    if strategy is None:
        return sort_by_specificity(zones)[0]

    strategy = ZoneConflictStrategy(strategy)
    if strategy is ZoneConflictStrategy.PRIORITY:
        return max(zones, key=lambda zone: zone.priority)
    if strategy is ZoneConflictStrategy.MOST_EXPENSIVE:
        return max(zones, key=lambda zone: zone.price_multiplier)
    if strategy is ZoneConflictStrategy.CLOSEST:
        return min(zones, key=lambda zone: _center_distance(point, zone))

    top_priority = max(zone.priority for zone in zones)
    return max(
        (zone for zone in zones if zone.priority == top_priority),
        key=lambda zone: zone.price_multiplier,
    )


def _center_distance(point: GeoPoint, zone: ZoneData) -> tuple[bool, float]:
    center = zone.center_point()
    if center is None:
        return True, 0.0
    return False, distance_km(point, center)


def find_zone_for_point(
    point: GeoPoint,
    zones: Iterable[ZoneData],
    strategy: ZoneConflictStrategy | str | None = None,
) -> ZoneData | None:
    return resolve_zone_conflict(point, find_zones_for_point(point, zones), strategy)
