"""Phone verification endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from credifin.api.deps import enforce_api_rate, get_client_ip
from credifin.domain.otp import schemas, service
from credifin.settings import settings

router = APIRouter(prefix="/otp", tags=["otp"], dependencies=[Depends(enforce_api_rate)])


@router.post("/send", response_model=schemas.SendOtpResponse, response_model_exclude_none=True)
async def send_otp(
    payload: schemas.SendOtpRequest,
    ip: str = Depends(get_client_ip),
) -> schemas.SendOtpResponse:
    """Issue a signed code for the phone. The code itself is only echoed outside production."""
    issued = await service.request_code(payload.phone, ip)
    return schemas.SendOtpResponse(
        timestamp=issued.issued_at,
        signature=issued.signature,
        remaining=issued.remaining,
        otp=None if settings.is_prod() else issued.code,
    )


@router.post("/verify", response_model=schemas.VerifyOtpResponse)
async def verify_otp(payload: schemas.VerifyOtpRequest) -> schemas.VerifyOtpResponse:
    token = await service.confirm_code(payload.phone, payload.otp, payload.signature, payload.timestamp)
    return schemas.VerifyOtpResponse(verification_token=token.token, timestamp=token.verified_at)
