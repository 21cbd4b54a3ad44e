"""Process-wide asyncpg pool for the leads store."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import asyncpg

from credifin.settings import settings

logger = logging.getLogger(__name__)

_pool: Optional[asyncpg.pool.Pool] = None
_pool_lock = asyncio.Lock()


async def init_pool() -> asyncpg.pool.Pool:
	"""Create the pool once; concurrent callers share the same attempt."""
	global _pool
	async with _pool_lock:
		if _pool is None:
			_pool = await asyncpg.create_pool(
				dsn=settings.postgres_url,
				min_size=settings.postgres_min_pool_size,
				max_size=settings.postgres_max_pool_size,
				command_timeout=5,
				server_settings={"application_name": settings.service_name},
			)
			logger.info("postgres_pool_ready", extra={"max_size": settings.postgres_max_pool_size})
	return _pool



async def get_pool() -> asyncpg.pool.Pool:
	return _pool if _pool is not None else await init_pool()


async def close_pool() -> None:
	global _pool
	pool, _pool = _pool, None
	if pool is not None:
		await pool.close()
