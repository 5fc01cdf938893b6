from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

authz_role_cache_hit_total = Counter(
    "authz_role_cache_hit_total",
    "Role permission cache hits",
)

authz_role_cache_miss_total = Counter(
    "authz_role_cache_miss_total",
    "Role permission cache misses",
)

authz_role_lookups_total = Counter(
    "authz_role_lookups_total",
    "Role lookups issued against the store",
)

notification_events_written_total = Counter(
    "notification_events_written_total",
    "Notification events staged for writing by type",
    ["event_type"],
)

notification_events_skipped_total = Counter(
    "notification_events_skipped_total",
    "Notification events skipped for lack of recipients",
    ["event_type"],
)

side_effect_failures_total = Counter(
    "side_effect_failures_total",
    "Best-effort side effect failures by step",
    ["step"],
)

task_timer_sessions_total = Counter(
    "task_timer_sessions_total",
    "Stopped task timer sessions",
)

task_timer_session_seconds = Histogram(
    "task_timer_session_seconds",
    "Duration of stopped task timer sessions in seconds",
    buckets=(60, 300, 900, 1800, 3600, 7200, 14400, 28800, 86400),
)

approval_decisions_total = Counter(
    "approval_decisions_total",
    "Approval decisions by entity type and outcome",
    ["entity_type", "decision"],
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _normalize_route_template(path: str) -> str:
    return _PATH_PARAM_RE.sub("{id}", path)


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return _normalize_route_template(path_format)
        route_path = getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return _normalize_route_template(route_path)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    status_str = str(status)
    http_requests_total.labels(method=method, path=path, status=status_str).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_authz_role_cache_hit() -> None:
    authz_role_cache_hit_total.inc()


def observe_authz_role_cache_miss() -> None:
    authz_role_cache_miss_total.inc()


def observe_authz_role_lookups(count: int = 1) -> None:
    if count > 0:
        authz_role_lookups_total.inc(count)


def observe_notification_event(event_type: str, *, written: bool) -> None:
    if written:
        notification_events_written_total.labels(event_type=event_type).inc()
    else:
        notification_events_skipped_total.labels(event_type=event_type).inc()


def observe_side_effect_failure(step: str) -> None:
    side_effect_failures_total.labels(step=step).inc()


def observe_timer_session(duration_seconds: int) -> None:
    task_timer_sessions_total.inc()
    task_timer_session_seconds.observe(max(0, duration_seconds))


def observe_approval_decision(entity_type: str, decision: str) -> None:
    approval_decisions_total.labels(entity_type=entity_type, decision=decision).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
