from __future__ import annotations

"""Missing-range computation against cached coverage."""

from dataclasses import dataclass
from datetime import timedelta

from .coverage import CoverageSet
from .interval import ONE_SECOND, Interval


@dataclass(frozen=True)
class GapReport:
    """Result of :func:`diff_multiple`.

    ``missing`` is in the visited order of the coverage set. ``full_overlap``
    is set when a single cached interval contains the whole request.
    """

    missing: tuple[Interval, ...]
    full_overlap: bool

    @property
    def needs_fetch(self) -> bool:
        return not self.full_overlap and bool(self.missing)


def diff(
    cached: Interval,
    requested: Interval,
    next_cached: Interval | None = None,
    tolerance: timedelta = ONE_SECOND,
) -> list[Interval]:
    """Return the parts of ``requested`` not covered by ``cached``.

    A trailing gap that runs into ``next_cached`` is clipped to end one
    tolerance unit before it. Gaps whose start passes their end are dropped.
    """

    if not cached.overlaps(requested, tolerance):
        return [requested]
    if cached == requested:
        return []

    gaps: list[Interval] = []
    if requested.start < cached.start:
        leading_end = cached.start - tolerance
        if requested.start <= leading_end:
            gaps.append(Interval(requested.start, leading_end))

    if requested.end > cached.end:
        trailing_start = cached.end + tolerance
        trailing_end = requested.end
        if next_cached is not None and next_cached.overlaps(
            Interval(trailing_start, trailing_end), tolerance
        ):
            trailing_end = next_cached.start - tolerance
        if trailing_start <= trailing_end:
            gaps.append(Interval(trailing_start, trailing_end))
    return gaps


def diff_multiple(
    requested: Interval,
    coverage: CoverageSet,
    tolerance: timedelta | None = None,
) -> GapReport:
    """Return every sub-range of ``requested`` that ``coverage`` lacks.

    Gaps are clipped so they start after the preceding cached member, so no
    returned range intersects the coverage. A single-second gap between two
    members collapses to ``start == end`` and is dropped.
    """

    tol = coverage.tolerance if tolerance is None else tolerance
    members = coverage.intervals
    missing: list[Interval] = []
    touched = False
    full_overlap = False

    for idx, cached in enumerate(members):
        if not cached.overlaps(requested, tol):
            continue
        touched = True
        next_cached = members[idx + 1] if idx + 1 < len(members) else None

        gaps = diff(cached, requested, next_cached, tol)
        if not gaps:
            if cached.contains(requested):
                full_overlap = True
            continue

        prev_cached = members[idx - 1] if idx > 0 else None
        for gap in gaps:
            # a leading gap never reaches back into the previous member
            if prev_cached is not None and gap.start <= prev_cached.end + tol:
                gap = Interval(prev_cached.end + tol, gap.end)
            # degenerate gaps count as empty
            if gap.start >= gap.end:
                continue
            if any(gap.overlaps(seen, tol) for seen in missing):
                continue
            missing.append(gap)

    if not touched:
        missing.append(requested)

    return GapReport(missing=tuple(missing), full_overlap=full_overlap)


__all__ = ["GapReport", "diff", "diff_multiple"]
