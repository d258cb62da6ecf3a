import pytest
from prometheus_client import CollectorRegistry, Gauge

from trailcache.foundation.common.metrics_factory import (
    get_metric_value,
    get_or_create_counter,
    get_or_create_gauge,
    get_or_create_histogram,
    register_reset_hook,
    reset_metrics,
)


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()


def test_counter_is_idempotent(registry):
    first = get_or_create_counter("demo_requests", "doc", registry=registry)
    second = get_or_create_counter("demo_requests", "doc", registry=registry)
    assert first is second


def test_label_change_replaces_metric(registry):
    plain = get_or_create_counter("demo_changes", "doc", registry=registry)
    labelled = get_or_create_counter("demo_changes", "doc", ["result"], registry=registry)
    assert plain is not labelled
    labelled.labels(result="hit").inc()
    assert get_metric_value(labelled, {"result": "hit"}) == 1


def test_foreign_metric_of_other_type_is_rejected(registry):
    Gauge("demo_kind", "doc", registry=registry)
    with pytest.raises(TypeError):
        get_or_create_histogram("demo_kind", "doc", registry=registry)


def test_registries_are_independent(registry):
    other = CollectorRegistry()
    a = get_or_create_counter("demo_scope", "doc", registry=registry)
    b = get_or_create_counter("demo_scope", "doc", registry=other)
    assert a is not b


def test_reset_clears_values(registry):
    counter = get_or_create_counter("demo_reset", "doc", registry=registry)
    gauge = get_or_create_gauge("demo_level", "doc", registry=registry)
    hist = get_or_create_histogram(
        "demo_latency", "doc", registry=registry, buckets=[1.0, 10.0]
    )
    counter.inc(3)
    gauge.set(7)
    hist.observe(5)

    reset_metrics(registry=registry)

    assert get_metric_value(counter) == 0
    assert get_metric_value(gauge) == 0
    assert get_metric_value(hist, suffix="_sum") == 0


def test_reset_selected_names_only(registry):
    a = get_or_create_counter("demo_a", "doc", registry=registry)
    b = get_or_create_counter("demo_b", "doc", registry=registry)
    a.inc()
    b.inc()
    reset_metrics(["demo_a"], registry=registry)
    assert get_metric_value(a) == 0
    assert get_metric_value(b) == 1


def test_custom_reset_hook(registry):
    calls = []
    register_reset_hook("demo_custom", lambda: calls.append(1), registry=registry)
    reset_metrics(registry=registry)
    assert calls == [1]


def test_missing_labelled_sample_reads_zero(registry):
    counter = get_or_create_counter("demo_labels", "doc", ["result"], registry=registry)
    assert get_metric_value(counter, {"result": "miss"}) == 0.0
