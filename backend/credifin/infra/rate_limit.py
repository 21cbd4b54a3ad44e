"""Redis-backed sliding-window rate limiting.

Each (policy, identifier) pair owns a sorted set of request timestamps. A check
trims entries that fell out of the window, records the current request and
counts what is left, all inside one MULTI/EXEC pipeline so concurrent checks
for the same identifier never race on a read-then-write. A denied request is
taken back out, so ``reset_at`` is the moment the oldest allowed entry expires.
"""

from __future__ import annotations

import asyncio
import logging
import math
import uuid
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Tuple

from redis.exceptions import RedisError

from credifin.infra.clock import now_ms
from credifin.infra.redis import redis_client
from credifin.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

UNKNOWN_REMAINING = -1


@dataclass(frozen=True)
class RateLimitPolicy:
	name: str
	limit: int
	window_seconds: int
	prefix: str

	@property
	def window_ms(self) -> int:
		return self.window_seconds * 1000

	def key(self, identifier: str) -> str:
		return f"{self.prefix}:{identifier}"


@dataclass(frozen=True)
class RateLimitResult:
	allowed: bool
	remaining: int
	reset_at: int
	policy: str = ""

	@property
	def known(self) -> bool:
		return self.remaining != UNKNOWN_REMAINING


OTP_SEND_BY_IP = RateLimitPolicy("otp-send-by-ip", 3, 10 * 60, "ratelimit:otp:ip")
OTP_SEND_BY_PHONE = RateLimitPolicy("otp-send-by-phone", 3, 10 * 60, "ratelimit:otp:mobile")
OTP_VERIFY_BY_PHONE = RateLimitPolicy("otp-verify-by-phone", 5, 5 * 60, "ratelimit:otp:verify")
LEAD_SUBMIT_BY_IP = RateLimitPolicy("lead-submit-by-ip", 5, 60 * 60, "ratelimit:lead")
API_BY_IP = RateLimitPolicy("api-by-ip", 60, 60, "ratelimit:api")

POLICIES: Mapping[str, RateLimitPolicy] = {
	policy.name: policy
	for policy in (OTP_SEND_BY_IP, OTP_SEND_BY_PHONE, OTP_VERIFY_BY_PHONE, LEAD_SUBMIT_BY_IP, API_BY_IP)
}


class RateLimited(Exception):
	"""Raised when a rate limit budget is exhausted."""

	def __init__(self, message: str, *, retry_after: int, policy: str = ""):
		super().__init__(message)
		self.message = message
		self.retry_after = retry_after
		self.policy = policy


def minutes_until(reset_at: int, *, now: Optional[int] = None) -> int:
	"""Whole minutes (rounded up, at least 1) until ``reset_at``."""
	now = now if now is not None else now_ms()
	return max(1, math.ceil((reset_at - now) / 1000 / 60))


async def check_rate_limit(
	policy: RateLimitPolicy,
	identifier: str,
	*,
	now: Optional[int] = None,
) -> RateLimitResult:
	"""Count this request against ``policy`` for ``identifier``.

	Fails open: when the counter store is unreachable the request is allowed
	with ``remaining=-1`` and the failure is only logged.
	"""
	now = now if now is not None else now_ms()
	key = policy.key(identifier)
	member = f"{now}:{uuid.uuid4().hex}"
	try:
		async with redis_client.pipeline(transaction=True) as pipe:
			pipe.zremrangebyscore(key, "-inf", now - policy.window_ms)
			pipe.zadd(key, {member: now})
			pipe.zcard(key)
			pipe.zrange(key, 0, 0, withscores=True)
			pipe.pexpire(key, policy.window_ms)
			_, _, count, oldest, _ = await pipe.execute()
	except (RedisError, OSError, asyncio.TimeoutError):
		logger.warning(
			"rate_limit_unavailable",
			extra={"policy": policy.name},
			exc_info=True,
		)
		obs_metrics.inc_rate_limit_store_error(policy.name)
		return RateLimitResult(allowed=True, remaining=UNKNOWN_REMAINING, reset_at=0, policy=policy.name)

	count = int(count)
	oldest_score = int(oldest[0][1]) if oldest else now
	allowed = count <= policy.limit
	if not allowed:
		# Only allowed requests occupy the window
		count -= 1
		try:
			await redis_client.zrem(key, member)
		except (RedisError, OSError, asyncio.TimeoutError):
			logger.warning("rate_limit_unavailable", extra={"policy": policy.name}, exc_info=True)
	obs_metrics.inc_rate_limit(policy.name, allowed)
	return RateLimitResult(
		allowed=allowed,
		remaining=max(0, policy.limit - count),
		reset_at=oldest_score + policy.window_ms,
		policy=policy.name,
	)


async def check_all(
	checks: Iterable[Tuple[RateLimitPolicy, str]],
	*,
	now: Optional[int] = None,
) -> RateLimitResult:
	"""Run checks in order, stopping at the first denial.

	When every check allows, ``remaining`` is the smallest known budget left
	(or -1 if no store answered) and ``reset_at`` the latest reset.
	"""
	now = now if now is not None else now_ms()
	results: list[RateLimitResult] = []
	for policy, identifier in checks:
		result = await check_rate_limit(policy, identifier, now=now)
		if not result.allowed:
			return result
		results.append(result)
	known = [r.remaining for r in results if r.known]
	return RateLimitResult(
		allowed=True,
		remaining=min(known) if known else UNKNOWN_REMAINING,
		reset_at=max((r.reset_at for r in results), default=0),
	)


def client_ip(request) -> str:
	"""Best-effort client address from proxy headers."""
	headers = request.headers
	forwarded = headers.get("x-forwarded-for")
	if forwarded:
		first = forwarded.split(",")[0].strip()
		if first:
			return first
	real_ip = headers.get("x-real-ip")
	if real_ip:
		return real_ip.strip()
	cf_ip = headers.get("cf-connecting-ip")
	if cf_ip:
		return cf_ip.strip()
	client = getattr(request, "client", None)
	return client.host if client and client.host else "unknown"
