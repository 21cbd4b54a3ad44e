"""Phone verification flow: issue a signed code, then exchange it for a token.

    unverified --send--> code_issued --verify ok--> verified
                              ^   |
                              +---+ verify failed (wrong or expired code)

Nothing is stored between steps except rate-limit counters; every transition
is reconstructed from the signed payload the client carries.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Optional

from credifin.domain.otp import codes, policy, signing
from credifin.infra import rate_limit
from credifin.infra.clock import now_ms
from credifin.obs import metrics as obs_metrics
from credifin.obs.logging import mask_phone

logger = logging.getLogger(__name__)


class VerificationState(str, enum.Enum):
	UNVERIFIED = "unverified"
	CODE_ISSUED = "code_issued"
	VERIFIED = "verified"


@dataclass(frozen=True)
class IssuedCode:
	phone: str
	code: str
	issued_at: int
	signature: str
	remaining: int
	state: VerificationState = VerificationState.CODE_ISSUED


@dataclass(frozen=True)
class VerificationToken:
	phone: str
	token: str
	verified_at: int
	state: VerificationState = VerificationState.VERIFIED


def _send_limit_message(result: rate_limit.RateLimitResult, now: int) -> str:
	minutes = rate_limit.minutes_until(result.reset_at, now=now)
	if result.policy == rate_limit.OTP_SEND_BY_PHONE.name:
		return f"OTP already sent to this number. Please wait {minutes} minutes before requesting again."
	return f"Too many OTP requests. Please try again in {minutes} minutes."


async def request_code(phone: str, ip: str, *, now: Optional[int] = None) -> IssuedCode:
	"""Issue a signed code once both the IP and the phone budgets allow it."""
	now = now if now is not None else now_ms()
	result = await rate_limit.check_all(
		[
			(rate_limit.OTP_SEND_BY_IP, ip),
			(rate_limit.OTP_SEND_BY_PHONE, phone),
		],
		now=now,
	)
	if not result.allowed:
		obs_metrics.inc_otp("send", "rate_limited")
		raise rate_limit.RateLimited(
			_send_limit_message(result, now),
			retry_after=result.reset_at,
			policy=result.policy,
		)

	code = codes.generate_code()
	signature = signing.sign(phone, code, now)
	await codes.send_sms_code(phone, code)
	obs_metrics.inc_otp("send", "ok")
	logger.info("otp_issued", extra={"phone_masked": mask_phone(phone), "remaining": result.remaining})
	return IssuedCode(
		phone=phone,
		code=code,
		issued_at=now,
		signature=signature,
		remaining=result.remaining,
	)


async def confirm_code(
	phone: str,
	code: str,
	signature: str,
	issued_at: int,
	*,
	now: Optional[int] = None,
) -> VerificationToken:
	"""Check a code against its signed payload and mint a verification token.

	The attempt is counted before the code is compared, so an exhausted budget
	rejects even a correct guess.
	"""
	now = now if now is not None else now_ms()
	result = await rate_limit.check_rate_limit(rate_limit.OTP_VERIFY_BY_PHONE, phone, now=now)
	if not result.allowed:
		obs_metrics.inc_otp("verify", "rate_limited")
		minutes = rate_limit.minutes_until(result.reset_at, now=now)
		raise rate_limit.RateLimited(
			f"Too many verification attempts. Please request a new OTP in {minutes} minutes.",
			retry_after=result.reset_at,
			policy=result.policy,
		)
	if result.known and result.remaining <= policy.LOW_ATTEMPTS_THRESHOLD:
		logger.warning(
			"otp_verify_attempts_low",
			extra={"phone_masked": mask_phone(phone), "remaining": result.remaining},
		)

	check = signing.verify(phone, code, signature, issued_at, now=now)
	if not check.valid:
		obs_metrics.inc_otp("verify", check.reason or "invalid")
		if check.reason == "expired":
			raise policy.OtpExpired(check.error or policy.OTP_EXPIRED_MESSAGE)
		raise policy.OtpInvalid(check.error or policy.OTP_INVALID_MESSAGE)

	obs_metrics.inc_otp("verify", "ok")
	return VerificationToken(
		phone=phone,
		token=signing.sign_verification(phone, now),
		verified_at=now,
	)
