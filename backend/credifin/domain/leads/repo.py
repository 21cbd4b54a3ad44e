"""Postgres access for leads."""

from __future__ import annotations

from dataclasses import astuple, dataclass, fields
from datetime import datetime
from typing import Optional

import asyncpg


@dataclass
class LeadRecord:
	id: str
	name: str
	phone: str
	pincode: str
	loan_type: str
	verified: bool
	created_at: datetime
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
	lead_score: Optional[int] = None
	lead_tier: Optional[str] = None
	time_on_page: Optional[float] = None
	scroll_depth: Optional[float] = None
	emi_calc_used: Optional[bool] = None
	ip_address: Optional[str] = None
	user_agent: Optional[str] = None


_COLUMNS = tuple(field.name for field in fields(LeadRecord))
_INSERT_SQL = "INSERT INTO leads ({cols}) VALUES ({params})".format(
	cols=", ".join(_COLUMNS),
	params=", ".join(f"${idx}" for idx in range(1, len(_COLUMNS) + 1)),
)


class LeadRepository:
	def __init__(self, conn: asyncpg.Connection) -> None:
		self._conn = conn

	async def find_recent(self, phone: str, product: str, since: datetime) -> Optional[str]:
		"""Id of the newest lead for this phone and product created at or after ``since``."""
		row = await self._conn.fetchrow(
			"""
			SELECT id FROM leads
			WHERE phone = $1 AND COALESCE(product_slug, loan_type) = $2 AND created_at >= $3
			ORDER BY created_at DESC
			LIMIT 1
			""",
			phone,
			product,
			since,
		)
		return str(row["id"]) if row else None

	async def find_recent_by_phone(self, phone: str, since: datetime) -> Optional[str]:
		row = await self._conn.fetchrow(
			"""
			SELECT id FROM leads
			WHERE phone = $1 AND created_at >= $2
			ORDER BY created_at DESC
			LIMIT 1
			""",
			phone,
			since,
		)
		return str(row["id"]) if row else None

	async def insert(self, record: LeadRecord) -> str:
		await self._conn.execute(_INSERT_SQL, *astuple(record))
		return record.id
