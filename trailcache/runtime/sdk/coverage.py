from __future__ import annotations

"""Coalescing of cached intervals into a minimal coverage set."""

from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, Iterator, Sequence

from .interval import ONE_SECOND, Interval, SortedIntervals, sort_intervals


def merge_intervals(
    intervals: SortedIntervals, tolerance: timedelta = ONE_SECOND
) -> list[Interval]:
    """Reduce sorted ``intervals`` to the minimal disjoint list covering them.

    Neighbours that overlap, or sit within ``tolerance`` of each other, are
    folded into one interval. Input must come from :func:`sort_intervals`.
    """

    if not isinstance(intervals, SortedIntervals):
        raise TypeError(
            "merge_intervals() requires SortedIntervals; call sort_intervals() first"
        )
    if not intervals:
        return []

    merged: list[Interval] = []
    current = intervals[0]
    for nxt in intervals[1:]:
        if current.overlaps(nxt, tolerance):
            current = Interval(
                min(current.start, nxt.start), max(current.end, nxt.end)
            )
        else:
            merged.append(current)
            current = nxt
    merged.append(current)
    return merged


@dataclass(frozen=True)
class CoverageSet:
    """Sorted, maximally coalesced intervals already cached for one key."""

    intervals: tuple[Interval, ...] = ()
    tolerance: timedelta = ONE_SECOND

    @classmethod
    def from_intervals(
        cls, intervals: Iterable[Interval], tolerance: timedelta = ONE_SECOND
    ) -> "CoverageSet":
        merged = merge_intervals(sort_intervals(intervals), tolerance)
        return cls(tuple(merged), tolerance)

    # ------------------------------------------------------------------
    def union(self, other: Iterable[Interval]) -> "CoverageSet":
        return CoverageSet.from_intervals([*self.intervals, *other], self.tolerance)

    def bounds(self) -> Interval | None:
        if not self.intervals:
            return None
        return Interval(self.intervals[0].start, self.intervals[-1].end)

    def covering(self, requested: Interval) -> Interval | None:
        """Return the member containing ``requested`` entirely, if any."""

        for cached in self.intervals:
            if cached.contains(requested):
                return cached
        return None

    def to_list(self) -> list[dict[str, str]]:
        return [iv.to_dict() for iv in self.intervals]

    # ------------------------------------------------------------------
    def __iter__(self) -> Iterator[Interval]:
        return iter(self.intervals)

    def __len__(self) -> int:
        return len(self.intervals)

    def __getitem__(self, index: int) -> Interval:
        return self.intervals[index]

    def __bool__(self) -> bool:
        return bool(self.intervals)


def total_duration(intervals: Sequence[Interval]) -> timedelta:
    """Sum of ``end - start`` across ``intervals``."""

    return sum((iv.duration for iv in intervals), timedelta())


__all__ = ["CoverageSet", "merge_intervals", "total_duration"]
