"""Constants, validation helpers, and errors for the phone verification flow."""

from __future__ import annotations

import re

PHONE_REGEX = re.compile(r"^[6-9]\d{9}$")
OTP_REGEX = re.compile(r"^\d{6}$")

OTP_VALIDITY_MINUTES = 10
OTP_VALIDITY_MS = OTP_VALIDITY_MINUTES * 60 * 1000
VERIFICATION_VALIDITY_MINUTES = 30
VERIFICATION_VALIDITY_MS = VERIFICATION_VALIDITY_MINUTES * 60 * 1000
LOW_ATTEMPTS_THRESHOLD = 2

OTP_EXPIRED_MESSAGE = "OTP has expired. Please request a new one."
OTP_INVALID_MESSAGE = "Invalid OTP. Please check and try again."


class OtpError(ValueError):
	"""Base class for verification failures reported back to the user."""

	def __init__(self, message: str):
		super().__init__(message)
		self.message = message


class OtpExpired(OtpError):
	"""The signed payload is older than the validity window."""


class OtpInvalid(OtpError):
	"""The code does not match the signed payload."""


class SigningSecretMissing(RuntimeError):
	"""No signing secret is configured in a production environment."""


def guard_phone(phone: str) -> str:
	if len(phone) != 10:
		raise ValueError("Phone number must be exactly 10 digits")
	if not PHONE_REGEX.fullmatch(phone):
		raise ValueError("Please enter a valid Indian mobile number")
	return phone


def guard_otp(code: str) -> str:
	if len(code) != 6:
		raise ValueError("OTP must be exactly 6 digits")
	if not OTP_REGEX.fullmatch(code):
		raise ValueError("OTP must contain only numbers")
	return code
