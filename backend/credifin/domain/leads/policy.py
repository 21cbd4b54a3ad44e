"""Validation rules, windows, and errors for lead intake."""

from __future__ import annotations

import re
from typing import Optional

NAME_REGEX = re.compile(r"^[a-zA-Z\s.'-]+$")
PINCODE_REGEX = re.compile(r"^[1-9][0-9]{5}$")
UNSAFE_MARKUP = (
	re.compile(r"<script", re.IGNORECASE),
	re.compile(r"javascript:", re.IGNORECASE),
	re.compile(r"on\w+=", re.IGNORECASE),
)

NAME_MIN_LEN = 2
NAME_MAX_LEN = 100
USER_AGENT_MAX_LEN = 500

DUPLICATE_WINDOW_MS = 60 * 60 * 1000
CALLBACK_DUPLICATE_WINDOW_MS = 24 * 60 * 60 * 1000

CALLBACK_NAME = "Callback Request"
CALLBACK_PINCODE = "000000"
CALLBACK_LOAN_TYPE = "general-enquiry"
CALLBACK_SOURCE = "exit_intent"
CALLBACK_TIER = "warm"


class LeadError(ValueError):
	"""Base class for lead intake failures reported back to the user."""

	def __init__(self, message: str):
		super().__init__(message)
		self.message = message


class VerificationRequired(LeadError):
	def __init__(self, message: str = "Phone verification required. Please verify your phone number."):
		super().__init__(message)


class VerificationExpired(LeadError):
	def __init__(self, message: str = "Phone verification expired. Please verify again."):
		super().__init__(message)


class VerificationAlreadyUsed(LeadError):
	def __init__(self, message: str = "This verification has already been used. Please verify your phone number again."):
		super().__init__(message)


class DuplicateLead(LeadError):
	"""An equivalent lead already exists; carries its id so callers can reuse it."""

	def __init__(
		self,
		lead_id: str,
		message: str = "You have already submitted an application. Our team will contact you soon.",
	):
		super().__init__(message)
		self.lead_id = lead_id


class LeadStoreUnavailable(LeadError):
	def __init__(self, message: str = "Database temporarily unavailable. Please try again."):
		super().__init__(message)


def guard_name(name: str) -> str:
	name = name.strip()
	if len(name) < NAME_MIN_LEN:
		raise ValueError("Name must be at least 2 characters")
	if len(name) > NAME_MAX_LEN:
		raise ValueError("Name must be less than 100 characters")
	if any(pattern.search(name) for pattern in UNSAFE_MARKUP):
		raise ValueError("Invalid characters in name")
	if not NAME_REGEX.fullmatch(name):
		raise ValueError("Name can only contain letters, spaces, dots, hyphens")
	return name


def guard_pincode(pincode: str) -> str:
	if len(pincode) != 6:
		raise ValueError("Pincode must be exactly 6 digits")
	if not PINCODE_REGEX.fullmatch(pincode):
		raise ValueError("Please enter a valid Indian pincode")
	return pincode


def product_key(product_slug: Optional[str], loan_type: str) -> str:
	"""Product a lead is filed under for duplicate detection."""
	return product_slug or loan_type


def reference_number(prefix: str, lead_id: str) -> str:
	return f"{prefix}{lead_id.replace('-', '')[-8:].upper()}"
