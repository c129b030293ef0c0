"""Prometheus metrics helpers."""

from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

_REGISTRY = CollectorRegistry()

REQUEST_LATENCY = Histogram(
    "shades_api_request_duration_seconds",
    "Time spent processing API requests",
    ["method", "path", "status"],
    registry=_REGISTRY,
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 5],
)
REQUEST_COUNT = Counter(
    "shades_api_requests_total",
    "HTTP requests processed by the API",
    ["method", "path", "status"],
    registry=_REGISTRY,
)
REFRESH_RESULTS = Counter(
    "shades_refresh_total",
    "Status refresh outcomes",
    ["result"],
    registry=_REGISTRY,
)
REFRESH_DURATION = Histogram(
    "shades_refresh_duration_seconds",
    "Time spent fetching and applying controller status",
    ["result"],
    registry=_REGISTRY,
    buckets=[0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30],
)
REFRESH_COALESCED = Counter(
    "shades_refresh_coalesced_total",
    "Refresh requests that joined an operation already in flight",
    registry=_REGISTRY,
)
RETRY_ATTEMPT = Gauge(
    "shades_refresh_retry_attempt",
    "Consecutive failed polls since the last successful refresh",
    registry=_REGISTRY,
)
FAULTED_SHADES = Gauge(
    "shades_faulted_total",
    "Number of shades currently reporting a fault",
    registry=_REGISTRY,
)
COMMAND_RESULTS = Counter(
    "shades_commands_total",
    "Shade position command outcomes",
    ["result"],
    registry=_REGISTRY,
)


def get_registry() -> CollectorRegistry:
    """Return the registry holding the bridge metrics."""

    return _REGISTRY


def latest_metrics() -> bytes:
    """Render the latest metrics payload for scraping."""

    return generate_latest(_REGISTRY)


def observe_request(method: str, path: str, status: int, duration_seconds: float) -> None:
    """Record API request metrics."""

    status_str = str(status)
    REQUEST_COUNT.labels(method=method, path=path, status=status_str).inc()
    REQUEST_LATENCY.labels(method=method, path=path, status=status_str).observe(duration_seconds)


def observe_refresh(result: str, duration_seconds: float) -> None:
    """Record the outcome and duration of a status refresh."""

    REFRESH_RESULTS.labels(result=result).inc()
    REFRESH_DURATION.labels(result=result).observe(duration_seconds)


def record_refresh_coalesced() -> None:
    """Record a refresh request served by an in-flight operation."""

    REFRESH_COALESCED.inc()


def set_retry_attempt(attempt: int) -> None:
    RETRY_ATTEMPT.set(attempt)


def set_faulted_shades(count: int) -> None:
    FAULTED_SHADES.set(count)


def record_command_result(result: str) -> None:
    """Record the result of a shade position command."""

    COMMAND_RESULTS.labels(result=result).inc()


METRICS_CONTENT_TYPE = CONTENT_TYPE_LATEST
