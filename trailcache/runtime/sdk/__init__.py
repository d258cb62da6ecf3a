"""Interval algebra, persistent store and query orchestration."""

from .coverage import CoverageSet, merge_intervals, total_duration
from .data_io import EventFetcher, StoreBackend
from .events import (
    EventRecord,
    dedupe_events,
    filter_by_interval,
    filter_events_after,
    filter_events_before,
    sort_events_desc,
)
from .exceptions import (
    EventDetailsError,
    FetchError,
    InvalidFilterError,
    InvalidKeyError,
    InvalidTimeRangeError,
    QueryDeadlineExceeded,
    StoreCorruptError,
    StoreError,
    StoreIOError,
    TrailCacheError,
)
from .gaps import GapReport, diff, diff_multiple
from .interval import ONE_SECOND, Interval, SortedIntervals, overlaps, sort_intervals
from .orchestrator import QueryOrchestrator
from .store import IntervalStore, Store

__all__ = [
    "ONE_SECOND",
    "CoverageSet",
    "EventDetailsError",
    "EventFetcher",
    "EventRecord",
    "FetchError",
    "GapReport",
    "Interval",
    "IntervalStore",
    "InvalidFilterError",
    "InvalidKeyError",
    "InvalidTimeRangeError",
    "QueryDeadlineExceeded",
    "QueryOrchestrator",
    "SortedIntervals",
    "Store",
    "StoreBackend",
    "StoreCorruptError",
    "StoreError",
    "StoreIOError",
    "TrailCacheError",
    "dedupe_events",
    "diff",
    "diff_multiple",
    "filter_by_interval",
    "filter_events_after",
    "filter_events_before",
    "merge_intervals",
    "overlaps",
    "sort_events_desc",
    "sort_intervals",
    "total_duration",
]
