"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Summary


REQUEST_COUNTER = Counter(
	"helpinghands_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"helpinghands_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

EVENTS_CREATED = Counter(
	"helpinghands_events_created_total",
	"Events created",
)

EVENTS_UPDATED = Counter(
	"helpinghands_events_updated_total",
	"Events updated by their creator",
)

PARTICIPATION_OUTCOMES = Counter(
	"helpinghands_participation_total",
	"Join/leave attempts by outcome",
	["op", "result"],
)

JOIN_RETRIES = Counter(
	"helpinghands_join_retries_total",
	"Participant appends retried after a store conflict",
)

USER_INDEX_FAILURES = Counter(
	"helpinghands_user_index_failures_total",
	"Best-effort joined-events index writes that failed",
	["action"],
)

MEMBERSHIP_REPAIRS = Counter(
	"helpinghands_membership_repairs_total",
	"Membership repair tasks processed",
	["action", "result"],
)

MEMBERSHIP_REPAIR_QUEUE = Gauge(
	"helpinghands_membership_repair_queue_depth",
	"Pending membership repair tasks",
)

REDIS_UP = Gauge("helpinghands_redis_up", "Redis availability (1=up,0=down)")
REDIS_LATENCY = Summary("helpinghands_redis_latency_seconds", "Redis ping latency (seconds)")

POSTGRES_UP = Gauge("helpinghands_postgres_up", "Postgres availability (1=up,0=down)")
POSTGRES_LATENCY = Summary("helpinghands_postgres_latency_seconds", "Postgres ping latency (seconds)")

BACKGROUND_RUNS = Counter(
	"helpinghands_jobs_runs_total",
	"Background job executions",
	["name", "result"],
)

BACKGROUND_DURATION = Histogram(
	"helpinghands_jobs_duration_seconds",
	"Background job duration",
	["name"],
	buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 15.0, 30.0, 60.0),
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_event_created() -> None:
	EVENTS_CREATED.inc()


def inc_event_updated() -> None:
	EVENTS_UPDATED.inc()


def inc_participation(op: str, result: str) -> None:
	PARTICIPATION_OUTCOMES.labels(op=op, result=result).inc()


def inc_join_retry() -> None:
	JOIN_RETRIES.inc()


def inc_user_index_failure(action: str) -> None:
	USER_INDEX_FAILURES.labels(action=action).inc()


def inc_membership_repair(action: str, result: str) -> None:
	MEMBERSHIP_REPAIRS.labels(action=action, result=result).inc()


def set_membership_repair_depth(depth: int) -> None:
	MEMBERSHIP_REPAIR_QUEUE.set(depth)


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)


def mark_postgres(ok: bool, *, latency_seconds: float | None = None) -> None:
	POSTGRES_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		POSTGRES_LATENCY.observe(latency_seconds)


def record_job_run(name: str, *, result: str, duration_seconds: float | None = None) -> None:
	BACKGROUND_RUNS.labels(name=name, result=result).inc()
	if duration_seconds is not None:
		BACKGROUND_DURATION.labels(name=name).observe(duration_seconds)
