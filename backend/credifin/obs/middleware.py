"""Request instrumentation: request ids, log context, metrics, access log."""

from __future__ import annotations

import time
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from credifin.infra.rate_limit import client_ip as resolve_client_ip
from credifin.obs import logging as obs_logging
from credifin.obs import metrics

REQUEST_ID_HEADER = "X-Request-Id"
_MAX_INBOUND_ID = 64

access_log = obs_logging.get_logger("credifin.http")


def _route_template(request: Request) -> str:
	# Matched route path keeps metric labels bounded (no raw ids or query strings)
	route = request.scope.get("route")
	return getattr(route, "path", None) or request.url.path


def _request_id(request: Request) -> str:
	inbound = request.headers.get(REQUEST_ID_HEADER, "").strip()
	if inbound and len(inbound) <= _MAX_INBOUND_ID:
		return inbound
	return uuid4().hex


class ObservabilityMiddleware(BaseHTTPMiddleware):
	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		request_id = _request_id(request)
		request.state.request_id = request_id
		token = obs_logging.bind_context(
			request_id=request_id,
			route=request.url.path,
			client_ip=resolve_client_ip(request),
		)
		started = time.perf_counter()
		status_code = 500
		try:
			response = await call_next(request)
			status_code = response.status_code
		except Exception:
			access_log.exception("http_request_error", extra={"method": request.method})
			raise
		finally:
			elapsed = time.perf_counter() - started
			metrics.observe_request(_route_template(request), request.method, status_code, elapsed)
			access_log.info(
				"http_request",
				extra={"method": request.method, "status": status_code, "latency_ms": round(elapsed * 1000, 3)},
			)
			obs_logging.reset_context(token)

		response.headers.setdefault(REQUEST_ID_HEADER, request_id)
		return response


def install(app) -> None:
	app.add_middleware(ObservabilityMiddleware)
