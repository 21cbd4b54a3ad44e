"""FastAPI application entrypoint."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

import asyncpg
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from credifin.api import leads, ops, otp
from credifin.api.errors import install_error_handlers
from credifin.domain.otp.secret import get_signing_secret
from credifin.infra import postgres
from credifin.infra.redis import close_redis
from credifin.obs import init as obs_init
from credifin.settings import settings

logger = logging.getLogger(__name__)

DEV_ORIGINS = [
	"http://localhost:3000",
	"http://127.0.0.1:3000",
]


@asynccontextmanager
async def lifespan(app: FastAPI):
	# Raises SigningSecretMissing in production when OTP_SECRET is unset
	get_signing_secret()
	try:
		await postgres.init_pool()
	except (OSError, asyncio.TimeoutError, asyncpg.PostgresError) as exc:
		# Lead endpoints answer 503 until the database is reachable
		logger.warning("postgres_unavailable_at_startup", extra={"error": str(exc)})
	try:
		yield
	finally:
		await postgres.close_pool()
		await close_redis()


app = FastAPI(title="Credifin Leads API", lifespan=lifespan)
install_error_handlers(app)

allow_origins = list(settings.cors_allow_origins)
if not allow_origins:
	allow_origins = DEV_ORIGINS if settings.is_dev() else ["https://credifin.in"]

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=False,
	allow_methods=["GET", "POST", "OPTIONS"],
	allow_headers=["*"],
)
obs_init(app)

app.include_router(otp.router)
app.include_router(leads.router)
# Paths the existing front end calls
app.include_router(otp.router, prefix="/api", include_in_schema=False)
app.include_router(leads.router, prefix="/api", include_in_schema=False)
app.include_router(ops.router)
