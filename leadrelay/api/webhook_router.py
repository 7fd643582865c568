from typing import Any, Dict
from fastapi import APIRouter, Body, Depends, Request
from .cors import apply_cors, preflight
from .schemas import SuccessResponse, WebhookRequest, parse_body
from ..errors import DeliveryError, InvalidRequestError
from ..services.webhook import WebhookDispatcher, get_webhook_dispatcher, is_valid_webhook_url

router = APIRouter(prefix="/api", tags=["webhook"])


@router.post("/webhook", response_model=SuccessResponse, dependencies=[Depends(apply_cors)])
async def forward_webhook(
    body: Dict[str, Any] = Body(...),
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
):
    """Forward a payload to ``webhookUrl`` with retries."""
    req = parse_body(WebhookRequest, body)
    if not is_valid_webhook_url(req.webhookUrl):
        raise InvalidRequestError("Invalid webhook URL")

    result = await dispatcher.dispatch(req.webhookUrl, req.payload())
    if not result.success:
        raise DeliveryError(result.error or "Webhook delivery failed")
    return SuccessResponse()


@router.options("/webhook", include_in_schema=False)
async def webhook_preflight(request: Request):
    return preflight(request)
