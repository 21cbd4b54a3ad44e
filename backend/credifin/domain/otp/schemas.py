"""Pydantic schemas for the OTP endpoints."""

from __future__ import annotations

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from credifin.domain.otp import policy


class SendOtpRequest(BaseModel):
	model_config = ConfigDict(str_strip_whitespace=True)

	phone: str

	@field_validator("phone")
	@classmethod
	def _phone(cls, value: str) -> str:
		return policy.guard_phone(value)


class SendOtpResponse(BaseModel):
	success: bool = True
	message: str = "OTP sent successfully"
	timestamp: int
	signature: str
	remaining: int
	# Only populated outside production
	otp: Optional[str] = None


class VerifyOtpRequest(BaseModel):
	model_config = ConfigDict(str_strip_whitespace=True)

	phone: str
	otp: str
	signature: Annotated[str, Field(min_length=1)]
	timestamp: Annotated[int, Field(gt=0)]

	@field_validator("phone")
	@classmethod
	def _phone(cls, value: str) -> str:
		return policy.guard_phone(value)

	@field_validator("otp")
	@classmethod
	def _otp(cls, value: str) -> str:
		return policy.guard_otp(value)


class VerifyOtpResponse(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

	success: bool = True
	message: str = "Phone verified successfully"
	verification_token: str
	timestamp: int
