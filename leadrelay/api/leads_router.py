from typing import Any, Dict
from fastapi import APIRouter, Body, Depends, Request
from .cors import apply_cors, preflight
from .schemas import LeadResponse
from ..middleware.tracking import read_tracking_data
from ..services.leads import LeadIntake, get_lead_intake

router = APIRouter(prefix="/api", tags=["leads"])


@router.post("/leads", response_model=LeadResponse, dependencies=[Depends(apply_cors)])
async def submit_lead(
    request: Request,
    body: Dict[str, Any] = Body(...),
    intake: LeadIntake = Depends(get_lead_intake),
):
    """Store a form submission and forward it to the CRM."""
    result = await intake.submit(body, tracking=read_tracking_data(request))
    return LeadResponse(**result)


@router.options("/leads", include_in_schema=False)
async def leads_preflight(request: Request):
    return preflight(request)
