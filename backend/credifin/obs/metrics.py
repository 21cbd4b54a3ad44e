"""Prometheus metrics for HTTP traffic, OTP flow, rate limiting and lead intake."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNTER = Counter(
	"credifin_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"credifin_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

OTP_EVENTS = Counter(
	"credifin_otp_events_total",
	"OTP send/verify outcomes",
	["action", "result"],
)

RATE_LIMIT_DECISIONS = Counter(
	"credifin_rate_limit_decisions_total",
	"Rate limit decisions per policy",
	["policy", "outcome"],
)

RATE_LIMIT_STORE_ERRORS = Counter(
	"credifin_rate_limit_store_errors_total",
	"Rate limit checks that failed open because the counter store was unreachable",
	["policy"],
)

LEAD_SUBMISSIONS = Counter(
	"credifin_lead_submissions_total",
	"Lead and callback submissions by result",
	["kind", "result"],
)

REDIS_UP = Gauge("credifin_redis_up", "Redis readiness (1=up)")
POSTGRES_UP = Gauge("credifin_postgres_up", "Postgres readiness (1=up)")
REDIS_LATENCY = Histogram(
	"credifin_redis_ping_seconds",
	"Redis ping latency in seconds",
	buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25),
)
POSTGRES_LATENCY = Histogram(
	"credifin_postgres_ping_seconds",
	"Postgres ping latency in seconds",
	buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25),
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_otp(action: str, result: str) -> None:
	OTP_EVENTS.labels(action=action, result=result).inc()


def inc_rate_limit(policy: str, allowed: bool) -> None:
	RATE_LIMIT_DECISIONS.labels(policy=policy, outcome="allowed" if allowed else "blocked").inc()


def inc_rate_limit_store_error(policy: str) -> None:
	RATE_LIMIT_STORE_ERRORS.labels(policy=policy).inc()


def inc_lead(kind: str, result: str) -> None:
	LEAD_SUBMISSIONS.labels(kind=kind, result=result).inc()


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)


def mark_postgres(ok: bool, *, latency_seconds: float | None = None) -> None:
	POSTGRES_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		POSTGRES_LATENCY.observe(latency_seconds)
