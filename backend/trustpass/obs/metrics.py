"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Summary

REQUEST_COUNTER = Counter(
	"trustpass_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"trustpass_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"trustpass_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"trustpass_socketio_events_total",
	"Socket.IO events emitted per namespace",
	["namespace", "event"],
)

USERS_REGISTERED = Counter(
	"trustpass_users_registered_total",
	"Successful user registrations",
)

CONNECTION_TRANSITIONS = Counter(
	"trustpass_connection_transitions_total",
	"Connection state transitions",
	["action"],
)

CONNECTION_REJECTS = Counter(
	"trustpass_connection_rejects_total",
	"Connection operations rejected",
	["reason"],
)

PASSES_CREATED = Counter(
	"trustpass_passes_created_total",
	"Interaction passes created",
	["kind"],
)

PASS_REJECTS = Counter(
	"trustpass_pass_rejects_total",
	"Interaction pass requests rejected",
	["reason"],
)

PASSES_EXPIRED = Counter(
	"trustpass_passes_expired_total",
	"Interaction passes expired by the sweep",
)

RATINGS_SUBMITTED = Counter(
	"trustpass_ratings_submitted_total",
	"Ratings accepted",
	["outcome"],
)

RATING_REJECTS = Counter(
	"trustpass_rating_rejects_total",
	"Ratings rejected",
	["reason"],
)

RATINGS_VOIDED = Counter(
	"trustpass_ratings_voided_total",
	"Unrevealed ratings removed when their pass expired",
)

PROXIMITY_QUERIES = Counter(
	"trustpass_proximity_queries_total",
	"Nearby queries served",
	["result"],
)

PROXIMITY_RESULTS = Summary(
	"trustpass_proximity_results",
	"Nearby counterparts returned per query",
)

LEADERBOARD_QUERIES = Counter(
	"trustpass_leaderboard_queries_total",
	"Leaderboard reads",
)

EVENTS_PUBLISHED = Counter(
	"trustpass_events_published_total",
	"Outbox events relayed",
	["type"],
)

REDIS_UP = Gauge("trustpass_redis_up", "Redis availability (1=up,0=down)")
REDIS_LATENCY = Summary("trustpass_redis_latency_seconds", "Redis ping latency (seconds)")

POSTGRES_UP = Gauge("trustpass_postgres_up", "Postgres availability (1=up,0=down)")
POSTGRES_LATENCY = Summary("trustpass_postgres_latency_seconds", "Postgres ping latency (seconds)")

BACKGROUND_RUNS = Counter(
	"trustpass_jobs_runs_total",
	"Background job executions",
	["name", "result"],
)

BACKGROUND_DURATION = Histogram(
	"trustpass_jobs_duration_seconds",
	"Background job duration",
	["name"],
	buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 15.0, 30.0, 60.0),
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str) -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event).inc()


def inc_user_registered() -> None:
	USERS_REGISTERED.inc()


def inc_connection_transition(action: str) -> None:
	CONNECTION_TRANSITIONS.labels(action=action).inc()


def inc_connection_reject(reason: str) -> None:
	CONNECTION_REJECTS.labels(reason=reason).inc()


def inc_pass_created(kind: str) -> None:
	PASSES_CREATED.labels(kind=kind).inc()


def inc_pass_reject(reason: str) -> None:
	PASS_REJECTS.labels(reason=reason).inc()


def inc_passes_expired(count: int = 1) -> None:
	if count > 0:
		PASSES_EXPIRED.inc(count)


def inc_rating_submitted(outcome: str) -> None:
	RATINGS_SUBMITTED.labels(outcome=outcome).inc()


def inc_rating_reject(reason: str) -> None:
	RATING_REJECTS.labels(reason=reason).inc()


def inc_ratings_voided(count: int = 1) -> None:
	if count > 0:
		RATINGS_VOIDED.inc(count)


def inc_proximity_query(result: str, count: int = 0) -> None:
	PROXIMITY_QUERIES.labels(result=result).inc()
	PROXIMITY_RESULTS.observe(count)


def inc_leaderboard_query() -> None:
	LEADERBOARD_QUERIES.inc()


def inc_event_published(event_type: str) -> None:
	EVENTS_PUBLISHED.labels(type=event_type).inc()


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
