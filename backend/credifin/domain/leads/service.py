"""Lead intake: gate verified leads and record callback requests."""

from __future__ import annotations

import asyncio
import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

import asyncpg
from redis.exceptions import RedisError

from credifin.domain.leads import catalog, policy
from credifin.domain.leads.repo import LeadRecord, LeadRepository
from credifin.domain.leads.schemas import CallbackRequest, LeadSubmission
from credifin.domain.otp import signing
from credifin.domain.otp.policy import VERIFICATION_VALIDITY_MS
from credifin.infra import rate_limit
from credifin.infra.clock import now_ms
from credifin.infra.postgres import get_pool
from credifin.infra.redis import redis_client
from credifin.obs import metrics as obs_metrics
from credifin.obs.logging import mask_phone
from credifin.settings import settings

logger = logging.getLogger(__name__)

REDEEMED_KEY_TEMPLATE = "otp:redeemed:{digest}"
_STORE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


@dataclass(frozen=True)
class AcceptedLead:
	lead_id: str
	reference_number: str


def _as_datetime(ms: int) -> datetime:
	return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def _redeemed_key(token: str) -> str:
	digest = hashlib.sha256(token.encode("utf-8")).hexdigest()
	return REDEEMED_KEY_TEMPLATE.format(digest=digest)


async def _redeem_token(token: str, lead_id: str, product: str) -> Optional[str]:
	"""Mark a verification token as spent by ``lead_id``.

	Returns None when this call spent it, otherwise the ``lead_id:product`` claim
	already recorded (empty if it vanished in between).
	"""
	key = _redeemed_key(token)
	try:
		if await redis_client.set(key, f"{lead_id}:{product}", nx=True, px=VERIFICATION_VALIDITY_MS):
			return None
		return await redis_client.get(key) or ""
	except (RedisError, OSError, asyncio.TimeoutError):
		logger.warning("token_ledger_unavailable", exc_info=True)
		return None


async def _release_token(token: str) -> None:
	try:
		await redis_client.delete(_redeemed_key(token))
	except (RedisError, OSError, asyncio.TimeoutError):
		logger.warning("token_ledger_unavailable", exc_info=True)


def _rate_limited(result: rate_limit.RateLimitResult, message: str) -> rate_limit.RateLimited:
	return rate_limit.RateLimited(message, retry_after=result.reset_at, policy=result.policy)


async def accept_lead(
	submission: LeadSubmission,
	*,
	ip: str,
	user_agent: Optional[str] = None,
	now: Optional[int] = None,
) -> AcceptedLead:
	"""Accept a lead backed by a fresh, unspent verification token.

	A repeat of the same phone and product inside an hour raises ``DuplicateLead``
	carrying the original id rather than creating a second record.
	"""
	now = now if now is not None else now_ms()
	verified_at = submission.otp_timestamp
	if not signing.verify_verification_token(submission.phone, submission.otp_signature, verified_at):
		obs_metrics.inc_lead("lead", "unverified")
		raise policy.VerificationRequired()
	if now - verified_at > VERIFICATION_VALIDITY_MS:
		obs_metrics.inc_lead("lead", "verification_expired")
		raise policy.VerificationExpired()

	result = await rate_limit.check_rate_limit(rate_limit.LEAD_SUBMIT_BY_IP, ip, now=now)
	if not result.allowed:
		obs_metrics.inc_lead("lead", "rate_limited")
		raise _rate_limited(result, "Too many submissions. Please try again later.")

	product = policy.product_key(submission.product_slug, submission.loan_type)
	attribution = submission.attribution
	record = LeadRecord(
		id=str(uuid4()),
		name=submission.name,
		phone=submission.phone,
		pincode=submission.pincode,
		loan_type=submission.loan_type,
		verified=True,
		created_at=_as_datetime(now),
		city=attribution.city,
		product_slug=attribution.product_slug,
		utm_source=attribution.utm_source,
		utm_medium=attribution.utm_medium,
		utm_campaign=attribution.utm_campaign,
		utm_term=attribution.utm_term,
		utm_content=attribution.utm_content,
		gclid=attribution.gclid,
		fbclid=attribution.fbclid,
		referrer=attribution.referrer,
		landing_page=attribution.landing_page,
		session_id=attribution.session_id,
		lead_score=attribution.lead_score,
		lead_tier=attribution.lead_tier,
		time_on_page=attribution.time_on_page,
		scroll_depth=attribution.scroll_depth,
		emi_calc_used=attribution.emi_calculator_used,
		ip_address=ip if ip != "unknown" else None,
		user_agent=user_agent[: policy.USER_AGENT_MAX_LEN] if user_agent else None,
	)

	try:
		pool = await get_pool()
		async with pool.acquire() as conn:
			repo = LeadRepository(conn)
			existing = await repo.find_recent(
				submission.phone,
				product,
				_as_datetime(now - policy.DUPLICATE_WINDOW_MS),
			)
			if existing:
				obs_metrics.inc_lead("lead", "duplicate")
				raise policy.DuplicateLead(existing)
			claim = await _redeem_token(submission.otp_signature, record.id, product)
			if claim is not None:
				claimed_id, _, claimed_product = claim.partition(":")
				if claimed_id and claimed_product == product:
					# Same lead still in flight from a double submit
					obs_metrics.inc_lead("lead", "duplicate")
					raise policy.DuplicateLead(claimed_id)
				obs_metrics.inc_lead("lead", "token_reused")
				raise policy.VerificationAlreadyUsed()
			try:
				await repo.insert(record)
			except _STORE_ERRORS:
				await _release_token(submission.otp_signature)
				raise
	except _STORE_ERRORS as exc:
		obs_metrics.inc_lead("lead", "store_unavailable")
		logger.error("lead_store_unavailable", exc_info=True)
		raise policy.LeadStoreUnavailable() from exc

	obs_metrics.inc_lead("lead", "created")
	logger.info(
		"lead_created",
		extra={
			"lead_id": record.id,
			"phone_masked": mask_phone(record.phone),
			"loan_type": catalog.display_name(record.loan_type),
			"lead_tier": record.lead_tier or "unscored",
			"source": record.utm_source or "direct",
			"has_gclid": bool(record.gclid),
		},
	)
	return AcceptedLead(
		lead_id=record.id,
		reference_number=policy.reference_number(settings.reference_prefix, record.id),
	)


async def request_callback(
	request: CallbackRequest,
	*,
	ip: str,
	now: Optional[int] = None,
) -> Optional[str]:
	"""Record an unverified callback lead.

	Returns the new lead id, or None when the phone already left a lead in the
	last 24 hours (the caller still reports success).
	"""
	now = now if now is not None else now_ms()
	result = await rate_limit.check_rate_limit(rate_limit.LEAD_SUBMIT_BY_IP, ip, now=now)
	if not result.allowed:
		obs_metrics.inc_lead("callback", "rate_limited")
		raise _rate_limited(result, "Too many requests. Please try again later.")

	record = LeadRecord(
		id=str(uuid4()),
		name=policy.CALLBACK_NAME,
		phone=request.phone,
		pincode=policy.CALLBACK_PINCODE,
		loan_type=request.product_slug or policy.CALLBACK_LOAN_TYPE,
		verified=False,
		created_at=_as_datetime(now),
		city=request.city,
		product_slug=request.product_slug,
		utm_source=request.source or policy.CALLBACK_SOURCE,
		lead_tier=policy.CALLBACK_TIER,
		ip_address=ip if ip != "unknown" else None,
	)
	try:
		pool = await get_pool()
		async with pool.acquire() as conn:
			repo = LeadRepository(conn)
			existing = await repo.find_recent_by_phone(
				request.phone,
				_as_datetime(now - policy.CALLBACK_DUPLICATE_WINDOW_MS),
			)
			if existing:
				obs_metrics.inc_lead("callback", "duplicate")
				return None
			await repo.insert(record)
	except _STORE_ERRORS as exc:
		obs_metrics.inc_lead("callback", "store_unavailable")
		logger.error("lead_store_unavailable", exc_info=True)
		raise policy.LeadStoreUnavailable() from exc

	obs_metrics.inc_lead("callback", "created")
	logger.info(
		"callback_requested",
		extra={"lead_id": record.id, "phone_masked": mask_phone(record.phone), "source": record.utm_source},
	)
	return record.id
