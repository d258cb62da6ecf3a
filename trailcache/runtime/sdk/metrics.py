from __future__ import annotations

"""Prometheus metrics for the cache and fetch layers."""

from collections.abc import Sequence

from prometheus_client import (
    generate_latest,
    start_http_server,
    REGISTRY as global_registry,
)
from trailcache.foundation.common.metrics_factory import (
    get_or_create_counter,
    get_or_create_histogram,
    reset_metrics as reset_registered_metrics,
)

_REGISTERED_METRICS: set[str] = set()


def _counter(
    name: str,
    documentation: str,
    labelnames: Sequence[str] | None = None,
    **kwargs,
):
    metric = get_or_create_counter(name, documentation, labelnames, **kwargs)
    _REGISTERED_METRICS.add(getattr(metric, "_name", name))
    return metric


def _histogram(
    name: str,
    documentation: str,
    labelnames: Sequence[str] | None = None,
    **kwargs,
):
    metric = get_or_create_histogram(name, documentation, labelnames, **kwargs)
    _REGISTERED_METRICS.add(getattr(metric, "_name", name))
    return metric


# ---------------------------------------------------------------------------
# Query metrics
# ---------------------------------------------------------------------------
queries_total = _counter(
    "trailcache_queries",
    "Number of cache queries by outcome",
    ["result"],
)

missing_ranges_total = _counter(
    "trailcache_missing_ranges",
    "Number of missing ranges detected against cached coverage",
)

store_save_failures_total = _counter(
    "trailcache_store_save_failures",
    "Number of failed cache artifact writes",
)

# ---------------------------------------------------------------------------
# Fetch metrics
# ---------------------------------------------------------------------------
fetch_requests_total = _counter(
    "trailcache_fetch_requests",
    "Number of page requests sent to the event API",
)

fetch_errors_total = _counter(
    "trailcache_fetch_errors",
    "Number of gap fetches that failed",
)

fetch_duration_ms = _histogram(
    "trailcache_fetch_duration_ms",
    "Duration of a single gap fetch in milliseconds",
    buckets=(5, 25, 100, 250, 1000, 2500, 10000, 30000),
)

events_fetched_total = _counter(
    "trailcache_events_fetched",
    "Events returned by the event API",
)


def observe_query(result: str) -> None:
    """Count a finished query; ``result`` is ``hit``, ``miss``, ``partial`` or ``deadline``."""

    queries_total.labels(result=result).inc()


def observe_missing_ranges(count: int) -> None:
    if count:
        missing_ranges_total.inc(count)


def observe_fetch(duration_ms: float, events: int) -> None:
    fetch_duration_ms.observe(duration_ms)
    if events:
        events_fetched_total.inc(events)


def observe_fetch_failure() -> None:
    fetch_errors_total.inc()


def start_metrics_server(port: int = 8000) -> None:
    """Expose metrics via an HTTP server."""
    start_http_server(port, registry=global_registry)


def collect_metrics() -> str:
    """Return metrics in text exposition format."""
    text: str = generate_latest(global_registry).decode()
    return text


def reset_metrics() -> None:
    """Reset metric values for tests."""
    reset_registered_metrics(_REGISTERED_METRICS)


__all__ = [
    "collect_metrics",
    "events_fetched_total",
    "fetch_duration_ms",
    "fetch_errors_total",
    "fetch_requests_total",
    "missing_ranges_total",
    "observe_fetch",
    "observe_fetch_failure",
    "observe_missing_ranges",
    "observe_query",
    "queries_total",
    "reset_metrics",
    "start_metrics_server",
    "store_save_failures_total",
]
