"""Global error handlers mapping domain errors to `{error: ...}` JSON bodies."""

from __future__ import annotations

import logging
import math
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from credifin.domain.leads import policy as lead_policy
from credifin.domain.otp.policy import OtpError
from credifin.infra.clock import now_ms
from credifin.infra.rate_limit import RateLimited

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Something went wrong. Please try again."


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def error_response(
    request: Request,
    status_code: int,
    message: str,
    *,
    headers: Optional[dict[str, str]] = None,
    **extra: Any,
) -> JSONResponse:
    payload: dict[str, Any] = {"error": message, **extra}
    rid = _request_id(request)
    if rid:
        payload["request_id"] = rid
    return JSONResponse(status_code=status_code, content=payload, headers=headers)


def first_validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Validation failed"
    msg = str(errors[0].get("msg") or "Validation failed")
    return msg.removeprefix("Value error, ")


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        return error_response(request, exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        return error_response(request, status.HTTP_400_BAD_REQUEST, first_validation_message(exc))

    @app.exception_handler(RateLimited)
    async def rate_limited_handler(request: Request, exc: RateLimited):  # type: ignore[override]
        wait_seconds = max(1, math.ceil((exc.retry_after - now_ms()) / 1000))
        return error_response(
            request,
            status.HTTP_429_TOO_MANY_REQUESTS,
            exc.message,
            headers={"Retry-After": str(wait_seconds)},
            retryAfter=exc.retry_after,
        )

    @app.exception_handler(OtpError)
    async def otp_error_handler(request: Request, exc: OtpError):  # type: ignore[override]
        return error_response(request, status.HTTP_400_BAD_REQUEST, exc.message)

    @app.exception_handler(lead_policy.LeadError)
    async def lead_error_handler(request: Request, exc: lead_policy.LeadError):  # type: ignore[override]
        if isinstance(exc, lead_policy.DuplicateLead):
            return error_response(request, status.HTTP_409_CONFLICT, exc.message, leadId=exc.lead_id)
        if isinstance(exc, lead_policy.LeadStoreUnavailable):
            return error_response(request, status.HTTP_503_SERVICE_UNAVAILABLE, exc.message)
        return error_response(request, status.HTTP_400_BAD_REQUEST, exc.message)

    @app.exception_handler(Exception)
    async def unhandled_exc_handler(request: Request, exc: Exception):  # type: ignore[override]
        logger.error("unhandled_error", exc_info=exc)
        return error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, GENERIC_ERROR)
