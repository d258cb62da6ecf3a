"""Event factories and in-memory doubles shared by the trailcache tests."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Sequence

from trailcache.runtime.sdk.coverage import CoverageSet
from trailcache.runtime.sdk.events import EventRecord
from trailcache.runtime.sdk.exceptions import FetchError, StoreIOError
from trailcache.runtime.sdk.interval import ONE_SECOND, Interval
from trailcache.runtime.sdk.store import Store

BASE = datetime(2025, 3, 1, tzinfo=timezone.utc)


def at(hour: int, minute: int = 0, second: int = 0, *, day: int = 0) -> datetime:
    """UTC timestamp on the fixed test day (``day`` shifts forward)."""

    return BASE + timedelta(days=day, hours=hour, minutes=minute, seconds=second)


def iv(start: datetime, end: datetime) -> Interval:
    return Interval(start, end)


def raw_event(
    *,
    event_id: str = "evt",
    region: str = "us-east-1",
    issuer_user_name: str = "ManagedOpenShift-Installer-Role",
    issuer_arn: str = "arn:aws:iam::123456789012:role/ManagedOpenShift-Installer-Role",
    version: str = "1.09",
    error_code: str | None = None,
) -> str:
    payload: dict[str, Any] = {
        "eventVersion": version,
        "userIdentity": {
            "accountId": "123456789012",
            "sessionContext": {
                "sessionIssuer": {
                    "type": "Role",
                    "userName": issuer_user_name,
                    "arn": issuer_arn,
                }
            },
        },
        "awsRegion": region,
        "eventID": event_id,
    }
    if error_code is not None:
        payload["errorCode"] = error_code
    return json.dumps(payload)


def make_event(
    event_id: str,
    when: datetime | None,
    *,
    name: str = "RunInstances",
    username: str | None = "installer",
    resources: Sequence[dict[str, str]] = (),
    raw: str | None = None,
) -> EventRecord:
    return EventRecord(
        event_id=event_id,
        event_name=name,
        event_time=when,
        username=username,
        resources=tuple(resources),
        cloudtrail_event=raw if raw is not None else raw_event(event_id=event_id),
    )


class InMemoryStore:
    """StoreBackend double recording every save."""

    def __init__(
        self,
        coverage: Iterable[Interval] = (),
        events: Iterable[EventRecord] = (),
        *,
        tolerance: timedelta = ONE_SECOND,
        fail_save: bool = False,
    ) -> None:
        self.tolerance = tolerance
        self.state: dict[str, Store] = {}
        self._seed_coverage = list(coverage)
        self._seed_events = list(events)
        self.saves: list[tuple[Store, Store]] = []
        self.fail_save = fail_save

    def load(self, key: str) -> Store:
        if key not in self.state:
            self.state[key] = Store(
                key=key,
                coverage=CoverageSet.from_intervals(self._seed_coverage, self.tolerance),
                events=tuple(self._seed_events),
            )
        return self.state[key]

    def save_merge(self, existing: Store, incoming: Store) -> Store:
        self.saves.append((existing, incoming))
        if self.fail_save:
            raise StoreIOError("disk full", path="/nowhere")
        merged = Store(
            key=existing.key,
            coverage=existing.coverage.union(incoming.coverage),
            events=(*existing.events, *incoming.events),
        )
        self.state[existing.key] = merged
        return merged


class RecordingFetcher:
    """EventFetcher double serving events from a fixed remote log."""

    def __init__(
        self,
        remote: Iterable[EventRecord] = (),
        *,
        failures: dict[Interval, Sequence[EventRecord]] | None = None,
    ) -> None:
        self.remote = list(remote)
        self.failures = dict(failures or {})
        self.requests: list[Interval] = []

    async def fetch(self, interval: Interval) -> list[EventRecord]:
        self.requests.append(interval)
        if interval in self.failures:
            raise FetchError(
                "upstream unavailable",
                interval=interval,
                events=self.failures[interval],
            )
        return [e for e in self.remote if interval.contains_time(e.event_time)]
