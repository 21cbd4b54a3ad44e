"""JSON log lines with per-request context and PII scrubbing.

Every record is rendered as one JSON object. Request-scoped fields (request id,
route, client ip) come from a context variable bound by the HTTP middleware, and
anything passed through ``extra=`` is merged after scrubbing: credential-like
keys are redacted and phone-like keys are masked.
"""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from credifin.settings import settings

_LOGGER_NAME = "credifin"

_context: ContextVar[Optional[Mapping[str, str]]] = ContextVar("credifin_log_context", default=None)

REDACTED = "[redacted]"
_REDACT_KEYS = ("token", "secret", "signature", "authorization", "password", "otp", "code")
_PHONE_KEYS = ("phone", "mobile")
_MAX_STRING_LENGTH = 256

# Attributes every LogRecord has; anything else came in through extra=
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))) | {
	"message",
	"asctime",
	"taskName",
}


def bind_context(**fields: Optional[str]) -> Token:
	"""Layer ``fields`` over the current log context until ``reset_context``."""
	merged = dict(_context.get() or {})
	merged.update({key: value for key, value in fields.items() if value is not None})
	return _context.set(merged)


def reset_context(token: Token) -> None:
	_context.reset(token)


def current_request_id() -> Optional[str]:
	return (_context.get() or {}).get("request_id")


def mask_phone(phone: str) -> str:
	"""Mask a 10-digit mobile number for display and logs (98****3210)."""
	if len(phone) != 10:
		return phone
	return f"{phone[:2]}****{phone[-4:]}"


def scrub(key: str, value: Any) -> Any:
	lowered = key.lower()
	if any(word in lowered for word in _REDACT_KEYS):
		return REDACTED
	if isinstance(value, str):
		if any(word in lowered for word in _PHONE_KEYS):
			return mask_phone(value)
		if len(value) > _MAX_STRING_LENGTH:
			return value[:_MAX_STRING_LENGTH] + "..."
	if isinstance(value, dict):
		return {str(k): scrub(str(k), v) for k, v in value.items()}
	return value


class JSONLogFormatter(logging.Formatter):
	def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (match logging api)
		payload: Dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"msg": record.getMessage(),
			"logger": record.name,
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		payload.update(_context.get() or {})
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		for key, value in vars(record).items():
			if key in _RECORD_ATTRS or key in payload:
				continue
			payload[key] = scrub(key, value)
		return json.dumps(payload, separators=(",", ":"), default=str)


class InfoSampler(logging.Filter):
	"""Keep a configurable share of INFO records; everything else passes."""

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO:
			return True
		rate = settings.obs_log_sampling_rate_info
		return rate >= 1.0 or random.random() < rate


def configure_logging() -> logging.Logger:
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSampler())
	root = logging.getLogger()
	root.handlers[:] = [handler]
	root.setLevel(settings.obs_log_level)
	return logging.getLogger(_LOGGER_NAME)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or _LOGGER_NAME)
