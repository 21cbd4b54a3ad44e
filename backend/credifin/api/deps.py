"""Shared request dependencies."""

from __future__ import annotations

from fastapi import Request

from credifin.infra import rate_limit


def get_client_ip(request: Request) -> str:
	return rate_limit.client_ip(request)


async def enforce_api_rate(request: Request) -> None:
	"""Blanket per-IP budget applied to every API route."""
	result = await rate_limit.check_rate_limit(rate_limit.API_BY_IP, rate_limit.client_ip(request))
	if not result.allowed:
		raise rate_limit.RateLimited(
			"Too many requests. Please slow down.",
			retry_after=result.reset_at,
			policy=result.policy,
		)
