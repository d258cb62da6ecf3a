"""Interval coverage cache for paginated audit-event APIs."""

from __future__ import annotations

from .runtime.sdk import (
    CoverageSet,
    EventRecord,
    Interval,
    IntervalStore,
    QueryOrchestrator,
    Store,
    TrailCacheError,
)
from .runtime.io import HttpAuditLogFetcher

__all__ = [
    "CoverageSet",
    "EventRecord",
    "HttpAuditLogFetcher",
    "Interval",
    "IntervalStore",
    "QueryOrchestrator",
    "Store",
    "TrailCacheError",
]
