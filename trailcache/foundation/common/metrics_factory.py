from __future__ import annotations

"""Utilities for idempotent Prometheus metric registration.

Modules declare their metrics at import time. Re-importing a module (or
reloading it in tests) must hand back the collector that is already
registered instead of tripping ``Duplicated timeseries`` errors, so every
metric goes through :func:`get_or_create_counter` and friends. A registry-wide
:func:`reset_metrics` clears recorded samples between tests.
"""

from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Dict, Tuple, TypeVar

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    REGISTRY as global_registry,
)
from prometheus_client.metrics import MetricWrapperBase

__all__ = [
    "get_or_create_counter",
    "get_or_create_gauge",
    "get_or_create_histogram",
    "get_metric_value",
    "register_reset_hook",
    "reset_metrics",
]

MetricT = TypeVar("MetricT", bound=MetricWrapperBase)
RegistryKey = Tuple[CollectorRegistry, str]

_METRIC_CACHE: Dict[RegistryKey, MetricWrapperBase] = {}
_RESET_CALLBACKS: Dict[RegistryKey, Callable[[], None]] = {}


def get_or_create_counter(
    name: str,
    documentation: str,
    labelnames: Sequence[str] | None = None,
    *,
    registry: CollectorRegistry | None = None,
) -> Counter:
    """Return an existing counter or register a new one."""

    reg = registry or global_registry
    metric = _get_or_create_metric(Counter, name, documentation, labelnames, registry=reg)
    _register_reset(metric, reg)
    return metric


def get_or_create_gauge(
    name: str,
    documentation: str,
    labelnames: Sequence[str] | None = None,
    *,
    registry: CollectorRegistry | None = None,
) -> Gauge:
    """Return an existing gauge or register a new one."""

    reg = registry or global_registry
    metric = _get_or_create_metric(Gauge, name, documentation, labelnames, registry=reg)
    _register_reset(metric, reg)
    return metric


def get_or_create_histogram(
    name: str,
    documentation: str,
    labelnames: Sequence[str] | None = None,
    *,
    registry: CollectorRegistry | None = None,
    buckets: Sequence[float] | None = None,
) -> Histogram:
    """Return an existing histogram or register a new one."""

    reg = registry or global_registry
    extra = {"buckets": tuple(buckets)} if buckets is not None else {}
    metric = _get_or_create_metric(
        Histogram, name, documentation, labelnames, registry=reg, **extra
    )
    _register_reset(metric, reg)
    return metric


def register_reset_hook(
    name: str,
    callback: Callable[[], None],
    *,
    registry: CollectorRegistry | None = None,
) -> None:
    """Register (or replace) the reset hook for ``name``."""

    reg = registry or global_registry
    _RESET_CALLBACKS[(reg, name)] = callback


def reset_metrics(
    names: Iterable[str] | None = None,
    *,
    registry: CollectorRegistry | None = None,
) -> None:
    """Invoke registered reset callbacks for ``names`` (all when ``None``)."""

    reg = registry or global_registry
    if names is None:
        keys = [key for key in _RESET_CALLBACKS if key[0] is reg]
    else:
        requested = set(names)
        keys = [key for key in _RESET_CALLBACKS if key[0] is reg and key[1] in requested]
    for key in keys:
        _RESET_CALLBACKS[key]()


def get_metric_value(
    metric: MetricWrapperBase,
    labels: Mapping[str, str] | None = None,
    *,
    suffix: str = "",
) -> float:
    """Return the current sample value for ``metric``.

    ``labels`` selects a labelled child; ``suffix`` picks a derived sample such
    as ``_total`` for counters or ``_count``/``_sum`` for histograms. Missing
    samples read as ``0.0``.
    """

    wanted = dict(labels or {})
    for family in metric.collect():
        for sample in family.samples:
            if suffix and not sample.name.endswith(suffix):
                continue
            if sample.name.endswith("_created"):
                continue
            if dict(sample.labels) != wanted:
                continue
            return float(sample.value)
    return 0.0


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _get_or_create_metric(
    metric_cls: type[MetricT],
    name: str,
    documentation: str,
    labelnames: Sequence[str] | None,
    *,
    registry: CollectorRegistry,
    **kwargs,
) -> MetricT:
    labels = tuple(labelnames or ())
    cache_key = (registry, name)
    cached = _METRIC_CACHE.get(cache_key)
    if cached is not None:
        if isinstance(cached, metric_cls) and _labels_match(cached, labels):
            return cached  # type: ignore[return-value]
        registry.unregister(cached)
        _METRIC_CACHE.pop(cache_key, None)

    existing = _lookup_metric(registry, name)
    if existing is not None:
        if not isinstance(existing, metric_cls):
            raise TypeError(
                f"Metric '{name}' already registered with incompatible type {type(existing)!r}"
            )
        if not _labels_match(existing, labels):
            registry.unregister(existing)
            existing = None
    if existing is None:
        metric = metric_cls(name, documentation, labels, registry=registry, **kwargs)
    else:
        metric = existing
    _METRIC_CACHE[cache_key] = metric
    return metric  # type: ignore[return-value]


def _register_reset(metric: MetricWrapperBase, registry: CollectorRegistry) -> None:
    name = getattr(metric, "_name", None)
    if not name:
        return
    _RESET_CALLBACKS[(registry, name)] = lambda: _default_reset(metric)


def _default_reset(metric: MetricWrapperBase) -> None:
    if tuple(getattr(metric, "_labelnames", ())):
        metric.clear()
        return

    if isinstance(metric, Counter):
        metric._value.set(0)  # type: ignore[attr-defined]
    elif isinstance(metric, Gauge):
        metric.set(0)
    elif isinstance(metric, Histogram):
        metric._sum.set(0)  # type: ignore[attr-defined]
        for bucket in getattr(metric, "_buckets", ()):  # type: ignore[attr-defined]
            bucket.set(0)


def _lookup_metric(registry: CollectorRegistry, name: str) -> MetricWrapperBase | None:
    collectors = getattr(registry, "_names_to_collectors", {})
    return collectors.get(name)


def _labels_match(metric: MetricWrapperBase, expected: Sequence[str]) -> bool:
    return tuple(getattr(metric, "_labelnames", ())) == tuple(expected)
