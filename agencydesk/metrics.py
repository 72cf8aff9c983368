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

store_operations_total = Counter(
    "store_operations_total",
    "Total data store operations by table, operation and outcome",
    ["table", "operation", "outcome"],
)

store_operation_duration_seconds = Histogram(
    "store_operation_duration_seconds",
    "Data store operation duration in seconds",
    ["table", "operation"],
)

screen_mutations_total = Counter(
    "screen_mutations_total",
    "Total screen mutations by screen, action and outcome",
    ["screen", "action", "outcome"],
)

bulk_row_failures_total = Counter(
    "bulk_row_failures_total",
    "Rows that failed inside a bulk operation",
    ["screen", "action"],
)

email_dispatch_total = Counter(
    "email_dispatch_total",
    "Email dispatch requests by template and outcome",
    ["template", "outcome"],
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
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_store_operation(table: str, operation: str, outcome: str, duration: float) -> None:
    store_operations_total.labels(table=table, operation=operation, outcome=outcome).inc()
    store_operation_duration_seconds.labels(table=table, operation=operation).observe(duration)


def observe_screen_mutation(screen: str, action: str, outcome: str) -> None:
    screen_mutations_total.labels(screen=screen, action=action, outcome=outcome).inc()


def observe_bulk_failures(screen: str, action: str, count: int) -> None:
    if count > 0:
        bulk_row_failures_total.labels(screen=screen, action=action).inc(count)


def observe_email_dispatch(template: str, outcome: str) -> None:
    email_dispatch_total.labels(template=template, outcome=outcome).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
