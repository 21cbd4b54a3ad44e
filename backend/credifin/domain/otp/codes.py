"""OTP generation and the stub SMS sender."""

from __future__ import annotations

import hashlib
import logging
import random

from credifin.obs.logging import mask_phone

logger = logging.getLogger(__name__)
_RNG = random.SystemRandom()


def generate_code() -> str:
	"""Generate a 6-digit numeric OTP, uniform over 100000-999999."""
	return str(_RNG.randint(100000, 999999))


def _hash_number(phone: str) -> str:
	return hashlib.sha256(phone.encode("utf-8")).hexdigest()[:12]


async def send_sms_code(phone: str, code: str, *, template: str = "verify") -> None:
	"""Stub sending routine that logs the event without disclosing PII."""
	logger.info(
		"sms_stub_send",
		extra={"to_masked": mask_phone(phone), "hash": _hash_number(phone), "template": template, "code": "redacted"},
	)
