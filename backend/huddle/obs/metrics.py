"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNTER = Counter(
	"huddle_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"huddle_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

ACTIVITY_PUBLISHES = Counter(
	"huddle_activity_publishes_total",
	"Authoring submissions published (one per form, however many dates)",
)

ACTIVITY_RECORDS_CREATED = Counter(
	"huddle_activity_records_created_total",
	"Activity records created by publication or edit-time expansion",
	["source"],
)

ACTIVITY_DELETES = Counter(
	"huddle_activity_deletes_total",
	"Activities deleted by their owner",
)

ATTENDANCE_CONFIRMS = Counter(
	"huddle_attendance_confirms_total",
	"Attendance confirmations by evaluator verdict",
	["verdict"],
)

ATTENDANCE_CANCELS = Counter(
	"huddle_attendance_cancels_total",
	"Attendance entries removed by their user",
)

CHAT_POSTS = Counter(
	"huddle_activity_chat_posts_total",
	"Messages appended to activity chat feeds",
)

STORAGE_CLEANUP_FAILURES = Counter(
	"huddle_storage_cleanup_failures_total",
	"Best-effort image removals that failed",
)

IDEMPOTENCY = Counter(
	"huddle_idempotency_total",
	"Idempotency key lookups by outcome",
	["outcome"],
)

REDIS_UP = Gauge("huddle_redis_up", "Redis reachability from the last readiness probe")
REDIS_LATENCY = Histogram("huddle_redis_ping_seconds", "Redis ping latency in seconds")
POSTGRES_UP = Gauge("huddle_postgres_up", "Postgres reachability from the last readiness probe")
POSTGRES_LATENCY = Histogram("huddle_postgres_ping_seconds", "Postgres ping latency in seconds")


def observe_request(route: str, method: str, status: int, seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(seconds)


def inc_publish(records: int) -> None:
	ACTIVITY_PUBLISHES.inc()
	ACTIVITY_RECORDS_CREATED.labels(source="publish").inc(records)


def inc_siblings_created(records: int) -> None:
	if records > 0:
		ACTIVITY_RECORDS_CREATED.labels(source="edit").inc(records)


def inc_activity_delete() -> None:
	ACTIVITY_DELETES.inc()


def inc_attendance_confirm(verdict: str) -> None:
	ATTENDANCE_CONFIRMS.labels(verdict=verdict).inc()


def inc_attendance_cancel() -> None:
	ATTENDANCE_CANCELS.inc()


def inc_chat_post() -> None:
	CHAT_POSTS.inc()


def inc_storage_cleanup_failure() -> None:
	STORAGE_CLEANUP_FAILURES.inc()


def inc_idem(outcome: str) -> None:
	IDEMPOTENCY.labels(outcome=outcome).inc()


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)


def mark_postgres(ok: bool, *, latency_seconds: float | None = None) -> None:
	POSTGRES_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		POSTGRES_LATENCY.observe(latency_seconds)
