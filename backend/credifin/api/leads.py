"""Lead and callback intake endpoints."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header

from credifin.api.deps import enforce_api_rate, get_client_ip
from credifin.domain.leads import schemas, service

router = APIRouter(tags=["leads"], dependencies=[Depends(enforce_api_rate)])


@router.post("/leads", response_model=schemas.LeadAccepted)
async def submit_lead(
    submission: schemas.LeadSubmission,
    ip: str = Depends(get_client_ip),
    user_agent: Optional[str] = Header(default=None, alias="User-Agent"),
) -> schemas.LeadAccepted:
    """Accept a phone-verified lead; `otpSignature`/`otpTimestamp` carry the verification token."""
    accepted = await service.accept_lead(submission, ip=ip, user_agent=user_agent)
    return schemas.LeadAccepted(lead_id=accepted.lead_id, reference_number=accepted.reference_number)


@router.post("/callback", response_model=schemas.CallbackAccepted)
async def request_callback(
    payload: schemas.CallbackRequest,
    ip: str = Depends(get_client_ip),
) -> schemas.CallbackAccepted:
    await service.request_callback(payload, ip=ip)
    return schemas.CallbackAccepted()
