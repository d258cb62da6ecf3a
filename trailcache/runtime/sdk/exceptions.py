"""Exception types raised by the trailcache runtime."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .events import EventRecord
    from .interval import Interval

__all__ = [
    "TrailCacheError",
    "StoreError",
    "StoreCorruptError",
    "StoreIOError",
    "FetchError",
    "QueryDeadlineExceeded",
    "InvalidKeyError",
    "InvalidTimeRangeError",
    "InvalidFilterError",
    "EventDetailsError",
]


class TrailCacheError(Exception):
    """Base class for all trailcache errors."""
    pass


class StoreError(TrailCacheError):
    """Raised when the durable cache artifact cannot be used."""

    def __init__(self, message: str, *, path: Path | str | None = None) -> None:
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class StoreCorruptError(StoreError):
    """The artifact exists but cannot be deserialized."""
    pass


class StoreIOError(StoreError):
    """The artifact cannot be read or written."""
    pass


class FetchError(TrailCacheError):
    """A remote fetch for one interval failed part-way.

    ``events`` holds whatever was retrieved before the failure.
    """

    def __init__(
        self,
        message: str,
        *,
        interval: "Interval | None" = None,
        events: Sequence["EventRecord"] = (),
    ) -> None:
        super().__init__(message)
        self.interval = interval
        self.events = list(events)


class QueryDeadlineExceeded(TrailCacheError, TimeoutError):
    """The query budget ran out between gap fetches."""

    def __init__(self, message: str, *, events: Sequence["EventRecord"] = ()) -> None:
        super().__init__(message)
        self.events = list(events)


class InvalidKeyError(TrailCacheError, ValueError):
    """Raised when a cache key cannot be mapped to an artifact path."""
    pass


class InvalidTimeRangeError(TrailCacheError, ValueError):
    """Raised when ``--after``/``--until``/``--since`` cannot be resolved."""
    pass


class InvalidFilterError(TrailCacheError, ValueError):
    """Raised when an include/exclude filter is malformed."""
    pass


class EventDetailsError(TrailCacheError, ValueError):
    """Raised when a raw event payload cannot be interpreted."""
    pass
