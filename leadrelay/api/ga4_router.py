"""GA4 Measurement Protocol relays.

Four request shapes are accepted for compatibility with the browser
trackers that call them; all of them end in
``MeasurementProtocolClient.send``.
"""
import time
from typing import Any, Dict
from fastapi import APIRouter, Body, Depends, Request
import orjson
import structlog
from .cors import apply_cors, preflight
from .schemas import (
    GA4BatchRequest,
    GA4EventRequest,
    GA4EventResponse,
    GA4MeasurementRequest,
    GA4MeasurementResponse,
    GA4RelayRequest,
    SuccessResponse,
    parse_body,
)
from ..errors import UpstreamError
from ..middleware.tracking import get_client_ip
from ..services.ga4 import MeasurementProtocolClient, generate_client_id, get_ga4_client

log = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["ga4"])

GA4_COOKIE = "__ga4_data"


def _now_micros() -> int:
    return int(time.time() * 1_000_000)


def _read_ga4_cookie(request: Request) -> Dict[str, Any]:
    raw = request.cookies.get(GA4_COOKIE)
    if not raw:
        return {}
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        log.warning("ga4.cookie_invalid", error=str(e))
        return {}
    return data if isinstance(data, dict) else {}


@router.post("/ga4", response_model=GA4EventResponse, response_model_exclude_none=True, dependencies=[Depends(apply_cors)])
async def send_event(
    body: Dict[str, Any] = Body(...),
    client: MeasurementProtocolClient = Depends(get_ga4_client),
):
    """Single event with engagement time and a server timestamp."""
    client.ensure_configured()
    req = parse_body(GA4EventRequest, body)

    response = await client.send(
        client_id=req.client_id,
        events=[{"name": req.event_name, "params": {**req.params, "engagement_time_msec": 100}}],
        timestamp_micros=_now_micros(),
    )
    if not response.is_success:
        raise UpstreamError("Error sending event to GA4", response.status_code, response.text)

    return GA4EventResponse(
        event=req.event_name,
        debugResponse=response.text if client.debug else None,
    )


@router.post("/ga4/event", dependencies=[Depends(apply_cors)])
async def send_batch(
    body: Dict[str, Any] = Body(...),
    client: MeasurementProtocolClient = Depends(get_ga4_client),
):
    """Pass-through of a client-built event batch."""
    client.ensure_configured()
    req = parse_body(GA4BatchRequest, body)

    response = await client.send(
        client_id=req.client_id,
        events=req.events,
        user_properties=req.user_properties,
        non_personalized_ads=req.non_personalized_ads,
    )
    if not response.is_success:
        raise UpstreamError(f"Error sending to GA4: {response.status_code}", response.status_code, response.text)
    return {"success": True, "message": "Event received"}


@router.post("/ga4-events", response_model=SuccessResponse, dependencies=[Depends(apply_cors)])
async def relay_event(
    request: Request,
    body: Dict[str, Any] = Body(...),
    client: MeasurementProtocolClient = Depends(get_ga4_client),
):
    """Event enriched with the caller's user agent and ip."""
    client.ensure_configured()
    req = parse_body(GA4RelayRequest, body)

    params = {
        **req.params,
        "user_agent": request.headers.get("user-agent", ""),
        "ip": get_client_ip(request) or "0.0.0.0",
    }
    response = await client.send(
        client_id=req.clientId,
        events=[{"name": req.eventName, "params": params}],
        user_id=req.userId,
        user_properties=req.userProperties,
    )
    if not response.is_success:
        # Upstream failures surface as a bad gateway here, whatever GA4 answered
        raise UpstreamError(f"GA4 API error: {response.status_code}", 502)
    return SuccessResponse()


@router.post("/ga4-measurement", response_model=GA4MeasurementResponse, dependencies=[Depends(apply_cors)])
async def measurement_event(
    request: Request,
    body: Dict[str, Any] = Body(...),
    client: MeasurementProtocolClient = Depends(get_ga4_client),
):
    """Event whose client id falls back to the ``__ga4_data`` cookie."""
    client.ensure_configured()
    req = parse_body(GA4MeasurementRequest, body)
    tracking = _read_ga4_cookie(request)

    client_id = req.client_id or tracking.get("client_id") or generate_client_id()
    params = {
        **req.params,
        "ip": get_client_ip(request) or "0.0.0.0",
        "user_agent": request.headers.get("user-agent", ""),
    }
    response = await client.send(
        client_id=client_id,
        events=[{"name": req.name, "params": params}],
        user_id=tracking.get("user_id") or req.user_id,
        non_personalized_ads=req.non_personalized_ads,
        timestamp_micros=req.timestamp_micros or _now_micros(),
    )
    if not response.is_success:
        raise UpstreamError(f"GA4 API error: {response.status_code}", response.status_code, response.text)

    return GA4MeasurementResponse(
        message=f"Event '{req.name}' sent to GA4",
        clientId=client_id,
    )


@router.options("/ga4", include_in_schema=False)
@router.options("/ga4/event", include_in_schema=False)
@router.options("/ga4-events", include_in_schema=False)
@router.options("/ga4-measurement", include_in_schema=False)
async def ga4_preflight(request: Request):
    return preflight(request)
