"""Meta Conversions API relay."""
from typing import Any, Dict
from fastapi import APIRouter, Body, Depends, Request
from .cors import apply_cors, preflight
from .schemas import MetaConversionRequest, MetaConversionResponse, parse_body
from ..errors import UpstreamError
from ..middleware.tracking import read_tracking_data
from ..services.hashing import hash_data, prepare_user_data
from ..services.meta import ConversionsApiClient, generate_event_id, get_meta_client

router = APIRouter(prefix="/api", tags=["meta"])


def build_server_event(req: MetaConversionRequest, tracking: Dict[str, Any]) -> Dict[str, Any]:
    """
    Server event from a browser payload.

    The client-supplied ``test_event_code`` is dropped (only the server one
    is forwarded), raw PII is hashed, and ip/user agent come from the
    tracking context when the browser did not send them.
    """
    extra = {k: v for k, v in (req.model_extra or {}).items() if k != "test_event_code"}

    user_data = prepare_user_data(req.user_data)
    if not user_data.get("client_ip_address") and tracking.get("ip"):
        user_data["client_ip_address"] = tracking["ip"]
    if not user_data.get("client_user_agent") and tracking.get("ua"):
        user_data["client_user_agent"] = tracking["ua"]
    for cookie_key in ("fbp", "fbc"):
        if not user_data.get(cookie_key) and tracking.get(cookie_key):
            user_data[cookie_key] = tracking[cookie_key]
    if tracking.get("external_id"):
        user_data["external_id"] = hash_data(tracking["external_id"])

    return {
        **extra,
        "event_name": req.event_name,
        "event_time": req.event_time,
        "event_id": req.event_id or generate_event_id(),
        "user_data": user_data,
    }


@router.post("/meta-conversions", response_model=MetaConversionResponse, dependencies=[Depends(apply_cors)])
@router.post("/meta-conversion", response_model=MetaConversionResponse, include_in_schema=False, dependencies=[Depends(apply_cors)])
async def send_conversion(
    request: Request,
    body: Dict[str, Any] = Body(...),
    client: ConversionsApiClient = Depends(get_meta_client),
):
    client.ensure_configured()
    req = parse_body(MetaConversionRequest, body)
    event = build_server_event(req, read_tracking_data(request))

    response = await client.send(event)
    try:
        response_data = response.json()
    except ValueError:
        response_data = response.text

    if not response.is_success:
        raise UpstreamError("Error sending to the Conversions API", response.status_code, response_data)

    return MetaConversionResponse(
        data=response_data,
        event_name=event["event_name"],
        event_id=event["event_id"],
    )


@router.options("/meta-conversions", include_in_schema=False)
@router.options("/meta-conversion", include_in_schema=False)
async def meta_preflight(request: Request):
    return preflight(request)
