from .metrics_factory import (
    get_metric_value,
    get_or_create_counter,
    get_or_create_gauge,
    get_or_create_histogram,
    register_reset_hook,
    reset_metrics,
)

__all__ = [
    "get_metric_value",
    "get_or_create_counter",
    "get_or_create_gauge",
    "get_or_create_histogram",
    "register_reset_hook",
    "reset_metrics",
]
