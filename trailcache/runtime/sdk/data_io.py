from __future__ import annotations

"""Interfaces for I/O operations.

This module defines the abstract I/O interfaces used by the query
orchestrator. Concrete implementations live under ``trailcache.runtime.io``
(remote fetchers) and :mod:`trailcache.runtime.sdk.store` (persistence).
"""

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from .events import EventRecord
from .interval import Interval

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .store import Store


class EventFetcher(Protocol):
    """Retrieve every event in ``interval`` from the remote log.

    Implementations may page through the API and may return events slightly
    outside ``interval``. A failure after some pages raises
    :class:`~trailcache.runtime.sdk.exceptions.FetchError` carrying the
    events gathered so far.
    """

    async def fetch(self, interval: Interval) -> list[EventRecord]:
        ...


@runtime_checkable
class StoreBackend(Protocol):
    """Durable per-key storage of coverage and events."""

    def load(self, key: str) -> "Store":
        """Return the stored state for ``key``, creating it empty on first use."""
        ...

    def save_merge(self, existing: "Store", incoming: "Store") -> "Store":
        """Merge ``incoming`` into ``existing`` and persist the result."""
        ...


__all__ = ["EventFetcher", "StoreBackend"]
