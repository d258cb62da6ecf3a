from __future__ import annotations

"""Closed time ranges with adjacency-tolerant overlap checks."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Mapping

ONE_SECOND = timedelta(seconds=1)
"""Default adjacency tolerance: the event API reports whole seconds."""


def to_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime; naive values are taken as UTC."""

    if not isinstance(value, datetime):
        raise TypeError(f"expected datetime, got {type(value).__name__}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(raw: str) -> datetime:
    """Parse an ISO-8601 timestamp (``Z`` suffix accepted) into UTC."""

    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return to_utc(datetime.fromisoformat(text))


def tolerance_from_seconds(seconds: float | None) -> timedelta:
    if seconds is None:
        return ONE_SECOND
    if seconds < 0:
        raise ValueError("adjacency tolerance must be non-negative")
    return timedelta(seconds=seconds)


@dataclass(frozen=True, order=True)
class Interval:
    """Closed range ``[start, end]``.

    ``start <= end`` is not enforced; a single-instant interval has
    ``start == end``. Instances order by ``start`` then ``end``.
    """

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", to_utc(self.start))
        object.__setattr__(self, "end", to_utc(self.end))

    # ------------------------------------------------------------------
    @property
    def is_degenerate(self) -> bool:
        return self.start >= self.end

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    # ------------------------------------------------------------------
    def overlaps(self, other: "Interval", tolerance: timedelta = ONE_SECOND) -> bool:
        """Return ``True`` if the ranges intersect or sit within ``tolerance``.

        ``[10:00, 12:00]`` and ``[12:00:01, 14:00]`` overlap with the default
        one-second tolerance because no event can fall between them.
        """

        return self.end >= other.start - tolerance and self.start <= other.end + tolerance

    def contains(self, other: "Interval") -> bool:
        return self.start <= other.start and self.end >= other.end

    def contains_time(self, ts: datetime | None) -> bool:
        if ts is None:
            return False
        ts = to_utc(ts)
        return self.start <= ts <= self.end

    # ------------------------------------------------------------------
    def to_dict(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Interval":
        return cls(parse_timestamp(str(data["start"])), parse_timestamp(str(data["end"])))

    def __str__(self) -> str:
        return f"[{self.start.isoformat()}, {self.end.isoformat()}]"


def overlaps(a: Interval, b: Interval, tolerance: timedelta = ONE_SECOND) -> bool:
    """Functional form of :meth:`Interval.overlaps`."""

    return a.overlaps(b, tolerance)


class SortedIntervals(tuple):
    """Intervals ordered ascending by start.

    Only :func:`sort_intervals` builds instances, so passing an unsorted list
    where a ``SortedIntervals`` is required fails loudly.
    """

    __slots__ = ()


def sort_intervals(intervals: Iterable[Interval]) -> SortedIntervals:
    """Return ``intervals`` sorted ascending by start time."""

    return SortedIntervals(sorted(intervals, key=lambda iv: (iv.start, iv.end)))


__all__ = [
    "ONE_SECOND",
    "Interval",
    "SortedIntervals",
    "overlaps",
    "parse_timestamp",
    "sort_intervals",
    "to_utc",
    "tolerance_from_seconds",
]
