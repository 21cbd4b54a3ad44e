"""HMAC signatures for stateless OTP verification.

The server never stores issued codes. A send returns ``sign(phone, code, issued_at)``
to the client, and a later verify recomputes it from what the client echoes back.
The same key signs the verification token that the lead form presents afterwards.
"""

from __future__ import annotations

import binascii
import hashlib
import hmac
from dataclasses import dataclass
from typing import Literal, Optional

from credifin.domain.otp import policy
from credifin.domain.otp.secret import get_signing_secret
from credifin.infra.clock import now_ms


@dataclass(frozen=True)
class OtpCheck:
	valid: bool
	error: Optional[str] = None
	reason: Optional[Literal["expired", "invalid"]] = None


def _hmac_hex(message: str) -> str:
	key = get_signing_secret().encode("utf-8")
	return hmac.new(key, message.encode("utf-8"), hashlib.sha256).hexdigest()


def _hex_equal(presented: str, expected: str) -> bool:
	# Non-hex or odd-length input counts as a mismatch
	try:
		presented_bytes = bytes.fromhex(presented)
	except (ValueError, TypeError):
		return False
	return hmac.compare_digest(presented_bytes, binascii.unhexlify(expected))


def sign(phone: str, code: str, issued_at: int) -> str:
	return _hmac_hex(f"{phone}:{code}:{issued_at}")


def verify(
	phone: str,
	code: str,
	signature: str,
	issued_at: int,
	*,
	now: Optional[int] = None,
) -> OtpCheck:
	"""Check a code against its signed payload.

	Expiry is decided before the signature is recomputed. Any mismatch is
	reported with the same generic message.
	"""
	now = now if now is not None else now_ms()
	if now - issued_at > policy.OTP_VALIDITY_MS:
		return OtpCheck(valid=False, error=policy.OTP_EXPIRED_MESSAGE, reason="expired")
	if not _hex_equal(signature, sign(phone, code, issued_at)):
		return OtpCheck(valid=False, error=policy.OTP_INVALID_MESSAGE, reason="invalid")
	return OtpCheck(valid=True)


def sign_verification(phone: str, verified_at: int) -> str:
	return _hmac_hex(f"verified:{phone}:{verified_at}")


def verify_verification_token(phone: str, token: str, verified_at: int) -> bool:
	return _hex_equal(token, sign_verification(phone, verified_at))
