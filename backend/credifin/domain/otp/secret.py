"""Signing secret resolution."""

from __future__ import annotations

import logging

from credifin.domain.otp.policy import SigningSecretMissing
from credifin.settings import settings

logger = logging.getLogger(__name__)

DEV_FALLBACK_SECRET = "dev-only-secret-do-not-use-in-production"


def get_signing_secret() -> str:
	"""Return the HMAC key for OTP payloads and verification tokens.

	Production refuses to run without ``OTP_SECRET``; every other environment
	falls back to a fixed development key and says so in the logs.
	"""
	secret = settings.otp_secret
	if secret:
		return secret
	if settings.is_prod():
		raise SigningSecretMissing("OTP_SECRET environment variable is required in production")
	logger.warning("otp_secret_fallback", extra={"environment": settings.environment})
	return DEV_FALLBACK_SECRET
