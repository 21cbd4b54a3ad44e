"""Shared Redis client for rate-limit counters and the token ledger.

Modules import ``redis_client`` once; the proxy lets tests and shutdown swap
the connection underneath without touching those references.
"""

from __future__ import annotations

import redis.asyncio as redis

from credifin.settings import settings


class RedisProxy:
	"""Forwards attribute access to whichever client is currently installed."""

	def __init__(self, client: redis.Redis):
		self._client: redis.Redis = client

	def set_client(self, client: redis.Redis) -> None:
		self._client = client

	def __getattr__(self, item):
		return getattr(self._client, item)


def _connect() -> redis.Redis:
	# Callers fail open on errors, so a dead Redis must fail fast
	return redis.from_url(
		settings.redis_url,
		decode_responses=True,
		socket_connect_timeout=1.0,
		socket_timeout=1.0,
	)


redis_client: RedisProxy = RedisProxy(_connect())


def set_redis_client(client: redis.Redis) -> None:
	redis_client.set_client(client)


async def close_redis() -> None:
	await redis_client.aclose()
