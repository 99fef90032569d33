from __future__ import annotations

import json
from typing import Any

from django.http import HttpRequest, HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST
from pydantic import BaseModel, ValidationError

from trip_pricing.exceptions import CacheStoreError, InvalidZoneConfigurationError
from trip_pricing.schemas import (
    FlexibilityBreakdownResponse,
    FlexibilityCandidateResponse,
    FlexibilityScoreRequest,
    FlexibilityScoreResponse,
    LossOfExploitationResponse,
    PricingCalculationRequest,
    PricingCalculationResponse,
    RouteScenariosRequest,
    RouteScenariosResponse,
    StayVsReturnCalculationResponse,
    StayVsReturnRequest,
    StayVsReturnResponse,
)
from trip_pricing.services.engine import (
    PricingEngineService,
    seasonal_multiplier,
    vehicle_category_rates,
)
from trip_pricing.services.flexibility import (
    FlexibilityScoreInput,
    get_score_level,
    rank_candidates,
)
from trip_pricing.services.multi_day import (
    calculate_loss_of_exploitation,
    calculate_stay_vs_return_comparison,
)
from trip_pricing.services.pricing_settings import PricingSettings
from trip_pricing.services.scenarios import calculate_route_scenarios
from trip_pricing.services.toll_cache import get_toll_cache_store
from trip_pricing.services.types import GeoPoint

_pricing_engine: PricingEngineService | None = None


def get_pricing_engine() -> PricingEngineService:
    global _pricing_engine
    if _pricing_engine is None:
        _pricing_engine = PricingEngineService()
    return _pricing_engine


@require_GET
def health_view(_: HttpRequest) -> HttpResponse:
    try:
        cached_tolls: int | None = get_toll_cache_store().count()
    except CacheStoreError:
        cached_tolls = None
    return JsonResponse({"status": "ok", "toll_cache": {"entries": cached_tolls}})


@csrf_exempt
@require_POST
def pricing_calculate_view(request: HttpRequest) -> HttpResponse:
    pricing_request = _validated(request, PricingCalculationRequest)
    if isinstance(pricing_request, JsonResponse):
        return pricing_request

    settings = PricingSettings.from_mapping(pricing_request.pricing_settings)
    try:
        result = get_pricing_engine().calculate(pricing_request, settings)
    except InvalidZoneConfigurationError as exc:
        return _error_response("invalid_zone", str(exc), status=400)

    response = PricingCalculationResponse.model_validate(result)
    return JsonResponse(response.model_dump(mode="json"), status=200)


@csrf_exempt
@require_POST
def route_scenarios_view(request: HttpRequest) -> HttpResponse:
    scenarios_request = _validated(request, RouteScenariosRequest)
    if isinstance(scenarios_request, JsonResponse):
        return scenarios_request

    settings = PricingSettings.from_mapping(scenarios_request.pricing_settings)
    engine = get_pricing_engine()
    result = calculate_route_scenarios(
        GeoPoint(scenarios_request.origin.latitude, scenarios_request.origin.longitude),
        GeoPoint(scenarios_request.destination.latitude, scenarios_request.destination.longitude),
        engine.toll_service.config.api_key,
        settings.tco_config(),
        client=engine.routes_client,
    )
    response = RouteScenariosResponse.model_validate(result)
    return JsonResponse(response.model_dump(mode="json"), status=200)


@csrf_exempt
@require_POST
def stay_vs_return_view(request: HttpRequest) -> HttpResponse:
    comparison_request = _validated(request, StayVsReturnRequest)
    if isinstance(comparison_request, JsonResponse):
        return comparison_request

    settings = PricingSettings.from_mapping(comparison_request.pricing_settings)
    loss = calculate_loss_of_exploitation(
        comparison_request.pickup_at,
        comparison_request.estimated_end_at,
        vehicle_category_rates(comparison_request.vehicle_category),
        seasonal_multiplier(comparison_request.seasonal_multiplier),
        settings,
    )
    comparison = calculate_stay_vs_return_comparison(
        loss,
        comparison_request.distance_one_way_km,
        comparison_request.duration_one_way_minutes,
        comparison_request.toll_cost_one_way,
        settings,
    )
    response = StayVsReturnCalculationResponse(
        loss_of_exploitation=LossOfExploitationResponse.model_validate(loss),
        comparison=StayVsReturnResponse.model_validate(comparison),
    )
    return JsonResponse(response.model_dump(mode="json"), status=200)


@csrf_exempt
@require_POST
def flexibility_score_view(request: HttpRequest) -> HttpResponse:
    score_request = _validated(request, FlexibilityScoreRequest)
    if isinstance(score_request, JsonResponse):
        return score_request

    ranked = rank_candidates(
        (
            candidate.candidate_id,
            FlexibilityScoreInput(**candidate.model_dump(exclude={"candidate_id"})),
        )
        for candidate in score_request.candidates
    )
    response = FlexibilityScoreResponse(
        candidates=[
            FlexibilityCandidateResponse(
                candidate_id=candidate_id,
                total_score=result.total_score,
                level=get_score_level(result.total_score),
                breakdown=FlexibilityBreakdownResponse.model_validate(result.breakdown),
            )
            for candidate_id, result in ranked
        ]
    )
    return JsonResponse(response.model_dump(mode="json"), status=200)


def _validated(request: HttpRequest, schema: type[BaseModel]) -> Any:
    payload = _parse_json_payload(request)
    if isinstance(payload, JsonResponse):
        return payload

    try:
        return schema.model_validate(payload)
    except ValidationError as exc:
        return JsonResponse(
            {
                "error": {
                    "code": "validation_error",
                    "message": "Invalid request payload",
                    "details": exc.errors(include_context=False, include_url=False),
                }
            },
            status=400,
        )


def _parse_json_payload(request: HttpRequest) -> dict[str, Any] | JsonResponse:
    if not request.body:
        return {}

    try:
        payload = json.loads(request.body)
    except json.JSONDecodeError:
        return _error_response("invalid_json", "Request body must be valid JSON", status=400)

    if not isinstance(payload, dict):
        return _error_response("invalid_json", "JSON body must be an object", status=400)

    return payload


def _error_response(code: str, message: str, status: int) -> JsonResponse:
    return JsonResponse({"error": {"code": code, "message": message}}, status=status)
