from __future__ import annotations

"""Answer time-range queries from the cache, fetching only what is missing."""

import asyncio
import logging
import time
from datetime import timedelta
from typing import Callable, Sequence

from . import metrics as sdk_metrics
from .data_io import EventFetcher, StoreBackend
from .events import EventRecord, dedupe_events, filter_by_interval, sort_events_desc
from .exceptions import FetchError, QueryDeadlineExceeded, StoreIOError
from .gaps import diff_multiple
from .interval import ONE_SECOND, Interval
from .store import Store

logger = logging.getLogger(__name__)


class QueryOrchestrator:
    """Serve ``query(key, interval)`` from a store backed by a remote fetcher.

    Each query loads the stored state, fetches the missing ranges newest
    first and saves everything it fetched in a single ``save_merge`` call.
    Output is ordered most recent first across cached and fetched events.
    """

    def __init__(
        self,
        store: StoreBackend,
        fetcher: EventFetcher,
        tolerance: timedelta = ONE_SECOND,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.fetcher = fetcher
        self.tolerance = tolerance
        self._clock = clock

    # ------------------------------------------------------------------
    async def query(
        self,
        key: str,
        requested: Interval,
        *,
        deadline_s: float | None = None,
    ) -> list[EventRecord]:
        started = self._clock()
        existing = self.store.load(key)
        report = diff_multiple(requested, existing.coverage, self.tolerance)
        cached = sort_events_desc(filter_by_interval(existing.events, requested))

        if report.full_overlap or not report.missing:
            logger.debug("cache hit for %s %s (%d events)", key, requested, len(cached))
            sdk_metrics.observe_query("hit")
            return cached

        missing = sorted(report.missing, key=lambda iv: iv.start, reverse=True)
        sdk_metrics.observe_missing_ranges(len(missing))
        logger.debug(
            "fetching %d missing range(s) for %s: %s",
            len(missing),
            key,
            ", ".join(str(gap) for gap in missing),
        )

        output: list[EventRecord] = []
        covered: list[Interval] = []
        fetched_events: list[EventRecord] = []
        pos = 0
        failures = 0

        for gap in missing:
            if deadline_s is not None and self._clock() - started >= deadline_s:
                self._save(existing, covered, fetched_events)
                sdk_metrics.observe_query("deadline")
                raise QueryDeadlineExceeded(
                    f"query for {key} exceeded its {deadline_s}s budget",
                    events=dedupe_events(output),
                )

            while pos < len(cached) and cached[pos].event_time > gap.end:  # type: ignore[operator]
                output.append(cached[pos])
                pos += 1

            try:
                fetched = await self._fetch_gap(gap)
            except FetchError as exc:
                failures += 1
                sdk_metrics.observe_fetch_failure()
                logger.warning("failed to fetch %s for %s: %s", gap, key, exc)
                output.extend(sort_events_desc(filter_by_interval(exc.events, gap)))
                continue
            except asyncio.CancelledError:
                logger.info("query for %s cancelled; saving fetched ranges", key)
                self._save(existing, covered, fetched_events)
                raise
            except Exception as exc:
                failures += 1
                sdk_metrics.observe_fetch_failure()
                logger.warning(
                    "failed to fetch %s for %s: %s", gap, key, exc, exc_info=True
                )
                continue

            in_bounds = sort_events_desc(filter_by_interval(fetched, gap))
            untimed = [e for e in fetched if e.event_time is None]
            dropped = len(fetched) - len(in_bounds) - len(untimed)
            if dropped:
                logger.debug("discarded %d event(s) outside %s", dropped, gap)
            output.extend(in_bounds)
            covered.append(gap)
            fetched_events.extend(in_bounds)
            fetched_events.extend(untimed)

        output.extend(cached[pos:])
        self._save(existing, covered, fetched_events)
        sdk_metrics.observe_query("partial" if failures else "miss")
        return dedupe_events(output)

    # ------------------------------------------------------------------
    async def _fetch_gap(self, gap: Interval) -> list[EventRecord]:
        t0 = time.perf_counter()
        events = await self.fetcher.fetch(gap)
        duration_ms = (time.perf_counter() - t0) * 1000
        sdk_metrics.observe_fetch(duration_ms, len(events))
        logger.debug("fetched %d event(s) for %s in %.1fms", len(events), gap, duration_ms)
        return list(events)

    def _save(
        self,
        existing: Store,
        covered: Sequence[Interval],
        events: Sequence[EventRecord],
    ) -> None:
        incoming = Store.incoming(existing.key, covered, events, self.tolerance)
        try:
            self.store.save_merge(existing, incoming)
        except StoreIOError as exc:
            logger.warning("failed to save cache for %s: %s", existing.key, exc)


__all__ = ["QueryOrchestrator"]
