"""Liveness and readiness probes.

Readiness hinges on Postgres: without it no lead can be stored. Redis is only
reported, since rate limiting and the token ledger fail open without it.
"""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from credifin.infra import postgres
from credifin.infra.redis import redis_client
from credifin.obs import metrics

logger = logging.getLogger(__name__)

REQUIRED_MIGRATION = "0001"


async def _probe(
	name: str,
	check: Callable[[], Awaitable[Any]],
	mark: Callable[..., None],
	timeout: float,
) -> Tuple[Dict[str, Any], Any]:
	started = perf_counter()
	try:
		value = await asyncio.wait_for(check(), timeout=timeout)
	except Exception as exc:
		mark(False)
		logger.warning("readiness_probe_failed", extra={"probe": name}, exc_info=True)
		return {"ok": False, "error": str(exc) or type(exc).__name__}, None
	latency = perf_counter() - started
	mark(True, latency_seconds=latency)
	return {"ok": True, "latency_ms": round(latency * 1000, 2)}, value


async def _migration_version() -> Optional[str]:
	pool = await postgres.get_pool()
	async with pool.acquire() as conn:
		version = await conn.fetchval("SELECT max(version) FROM schema_migrations")
	return str(version) if version is not None else None


async def liveness() -> Dict[str, str]:
	return {"status": "ok"}


async def readiness() -> Tuple[int, Dict[str, Any]]:
	redis_state, _ = await _probe("redis", redis_client.ping, metrics.mark_redis, timeout=0.2)
	postgres_state, version = await _probe("postgres", _migration_version, metrics.mark_postgres, timeout=0.5)
	if postgres_state["ok"]:
		postgres_state["schema"] = version
		postgres_state["ok"] = version is not None and version >= REQUIRED_MIGRATION
	ready = postgres_state["ok"]
	return (
		200 if ready else 503,
		{
			"status": "ok" if ready and redis_state["ok"] else "degraded",
			"checks": {"redis": redis_state, "postgres": postgres_state},
		},
	)
