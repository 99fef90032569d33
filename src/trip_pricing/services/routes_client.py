from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import httpx
from django.conf import settings

from trip_pricing.exceptions import ExternalServiceError, NoRouteFoundError
from trip_pricing.services.types import GeoPoint, RouteData, RouteLeg

FIELD_MASK = ",".join(
    [
        "routes.travelAdvisory.tollInfo",
        "routes.distanceMeters",
        "routes.duration",
        "routes.polyline.encodedPolyline",
        "routes.legs.distanceMeters",
        "routes.legs.duration",
    ]
)


def parse_toll_amount(payload: dict[str, Any]) -> float:
    """Sum the EUR toll estimate of the first route; 0 when the route has no tolls."""
    routes = payload.get("routes") or []
    if not routes:
        return 0.0

    toll_info = (routes[0].get("travelAdvisory") or {}).get("tollInfo") or {}
    total = 0.0
    for price in toll_info.get("estimatedPrice") or []:
        if price.get("currencyCode") != "EUR":
            continue
        units = int(price.get("units") or "0")
        nanos = int(price.get("nanos") or 0)
        total += units + nanos / 1e9

    return round(total, 2)


def parse_duration_seconds(value: Any) -> float:
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if text.endswith("s"):
        text = text[:-1]
    try:
        return float(text)
    except ValueError:
        return 0.0


def _waypoint(point: GeoPoint) -> dict[str, Any]:
    return {"location": {"latLng": {"latitude": point.latitude, "longitude": point.longitude}}}


class GoogleRoutesClient:
    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.GOOGLE_ROUTES_API_KEY
        self.base_url = base_url or settings.GOOGLE_ROUTES_API_URL
        self.timeout = timeout if timeout is not None else settings.ROUTES_API_TIMEOUT_SECONDS

    def compute_route(
        self,
        origin: GeoPoint,
        destination: GeoPoint,
        routing_preference: str = "TRAFFIC_AWARE",
        intermediates: Sequence[GeoPoint] | None = None,
        traffic_model: str | None = None,
    ) -> RouteData:
        if not self.api_key:
            raise ExternalServiceError("Routes API key is not configured")

        body: dict[str, Any] = {
            "origin": _waypoint(origin),
            "destination": _waypoint(destination),
            "travelMode": "DRIVE",
            "routingPreference": routing_preference,
            "computeAlternativeRoutes": False,
            "extraComputations": ["TOLLS"],
        }
        if intermediates:
            body["intermediates"] = [_waypoint(point) for point in intermediates]
        if traffic_model:
            body["trafficModel"] = traffic_model

        headers = {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": self.api_key,
            "X-Goog-FieldMask": FIELD_MASK,
        }

        try:
            response = httpx.post(self.base_url, json=body, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise ExternalServiceError(
                f"Routes API returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ExternalServiceError(f"Routes API request failed: {exc}") from exc
        except ValueError as exc:
            raise ExternalServiceError("Routes API returned invalid JSON") from exc

        try:
            return self._parse_response(payload)
        except (AttributeError, TypeError, ValueError) as exc:
            raise ExternalServiceError(f"Routes API returned a malformed route: {exc}") from exc

    @staticmethod
    def _parse_response(payload: Any) -> RouteData:
        if not isinstance(payload, dict):
            raise ExternalServiceError("Routes API returned an unexpected payload")

        error = payload.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise ExternalServiceError(f"Routes API error: {message}")

        routes = payload.get("routes") or []
        if not routes:
            raise NoRouteFoundError("No route found between origin and destination")

        first = routes[0]
        legs = [
            RouteLeg(
                distance_meters=float(leg.get("distanceMeters") or 0),
                duration_seconds=parse_duration_seconds(leg.get("duration")),
            )
            for leg in first.get("legs") or []
        ]
        return RouteData(
            distance_meters=float(first.get("distanceMeters") or 0),
            duration_seconds=parse_duration_seconds(first.get("duration")),
            toll_amount=parse_toll_amount(payload),
            encoded_polyline=(first.get("polyline") or {}).get("encodedPolyline"),
            legs=legs,
        )
