"""Pydantic schemas for lead intake. Wire keys are camelCase."""

from __future__ import annotations

from typing import Annotated, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from credifin.domain.leads import catalog, policy
from credifin.domain.otp.policy import guard_phone


class _CamelModel(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


class LeadAttribution(_CamelModel):
	"""Optional marketing and engagement context sent with a lead."""

	city: Optional[str] = None
	product_slug: Optional[str] = None

	utm_source: Optional[str] = None
	utm_medium: Optional[str] = None
	utm_campaign: Optional[str] = None
	utm_term: Optional[str] = None
	utm_content: Optional[str] = None

	gclid: Optional[str] = None
	fbclid: Optional[str] = None

	referrer: Optional[str] = None
	landing_page: Optional[str] = None
	session_id: Optional[str] = None

	lead_score: Optional[Annotated[int, Field(ge=0, le=100)]] = None
	lead_tier: Optional[Literal["hot", "warm", "cold"]] = None
	time_on_page: Optional[Annotated[float, Field(ge=0)]] = None
	scroll_depth: Optional[Annotated[float, Field(ge=0, le=100)]] = None
	emi_calculator_used: Optional[bool] = None


class LeadSubmission(LeadAttribution):
	name: str
	phone: str
	pincode: str
	loan_type: str
	otp_signature: Annotated[str, Field(min_length=1)]
	otp_timestamp: Annotated[int, Field(gt=0)]

	@field_validator("name")
	@classmethod
	def _name(cls, value: str) -> str:
		return policy.guard_name(value)

	@field_validator("phone")
	@classmethod
	def _phone(cls, value: str) -> str:
		return guard_phone(value)

	@field_validator("pincode")
	@classmethod
	def _pincode(cls, value: str) -> str:
		return policy.guard_pincode(value)

	@field_validator("loan_type")
	@classmethod
	def _loan_type(cls, value: str) -> str:
		return catalog.guard_loan_type(value)

	@property
	def attribution(self) -> LeadAttribution:
		return LeadAttribution.model_validate(self.model_dump(include=set(LeadAttribution.model_fields)))


class LeadAccepted(_CamelModel):
	success: bool = True
	message: str = "Application submitted successfully"
	lead_id: str
	reference_number: str


class CallbackRequest(_CamelModel):
	phone: str
	product_slug: Optional[str] = None
	city: Optional[str] = None
	source: Optional[str] = None

	@field_validator("phone")
	@classmethod
	def _phone(cls, value: str) -> str:
		return guard_phone(value)


class CallbackAccepted(_CamelModel):
	success: bool = True
	message: str = "Callback request received"
