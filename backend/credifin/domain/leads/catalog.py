"""Loan products a lead can be filed against."""

from __future__ import annotations

from typing import Dict

LOAN_TYPES: Dict[str, str] = {
	"e-rickshaw-loan": "E-Rickshaw Loan",
	"ev-two-wheeler-loan": "EV Two Wheeler Loan",
	"home-loan": "Home Loan",
	"business-loan": "Business Loan",
	"loan-against-property": "Loan Against Property",
	"personal-loan": "Personal Loan",
	"car-loan": "Car Loan",
	"two-wheeler-loan": "Two Wheeler Loan",
	"commercial-vehicle-loan": "Commercial Vehicle Loan",
	"education-loan": "Education Loan",
}


def guard_loan_type(slug: str) -> str:
	if slug not in LOAN_TYPES:
		raise ValueError("Please select a valid loan type")
	return slug


def display_name(slug: str) -> str:
	return LOAN_TYPES.get(slug, slug.replace("-", " ").title())
