from __future__ import annotations

"""Event records as returned by the audit API and stored in the cache."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Sequence

from .interval import Interval, parse_timestamp, to_utc

_KNOWN_KEYS = (
    "EventId",
    "EventName",
    "EventTime",
    "Username",
    "Resources",
    "CloudTrailEvent",
)


def _parse_event_time(raw: Any) -> datetime | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return to_utc(raw)
    if isinstance(raw, (int, float)):
        return datetime.fromtimestamp(float(raw), tz=timezone.utc)
    return parse_timestamp(str(raw))


@dataclass(frozen=True)
class EventRecord:
    """One audit event.

    Only the fields the tool reads are typed; everything else from the
    upstream payload is kept verbatim in ``extra`` so a record survives a
    store round-trip unchanged.
    """

    event_id: str | None = None
    event_name: str | None = None
    event_time: datetime | None = None
    username: str | None = None
    resources: tuple[Mapping[str, Any], ...] = ()
    cloudtrail_event: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        if self.event_time is not None:
            object.__setattr__(self, "event_time", to_utc(self.event_time))
        object.__setattr__(self, "resources", tuple(self.resources))

    # ------------------------------------------------------------------
    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EventRecord":
        if not isinstance(data, Mapping):
            raise TypeError("event record must be a mapping")
        resources = data.get("Resources") or ()
        return cls(
            event_id=data.get("EventId"),
            event_name=data.get("EventName"),
            event_time=_parse_event_time(data.get("EventTime")),
            username=data.get("Username"),
            resources=tuple(dict(r) for r in resources),
            cloudtrail_event=data.get("CloudTrailEvent"),
            extra={k: v for k, v in data.items() if k not in _KNOWN_KEYS},
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.extra)
        payload.update(
            {
                "EventId": self.event_id,
                "EventName": self.event_name,
                "EventTime": self.event_time.isoformat() if self.event_time else None,
                "Username": self.username,
                "Resources": [dict(r) for r in self.resources],
                "CloudTrailEvent": self.cloudtrail_event,
            }
        )
        return payload


def sort_events_desc(events: Iterable[EventRecord]) -> list[EventRecord]:
    """Most recent first; records without a timestamp go last.

    The sort is stable so untimed records keep their relative order.
    """

    timed: list[EventRecord] = []
    untimed: list[EventRecord] = []
    for event in events:
        (untimed if event.event_time is None else timed).append(event)
    timed.sort(key=lambda e: e.event_time, reverse=True)  # type: ignore[arg-type,return-value]
    return timed + untimed


def dedupe_events(events: Iterable[EventRecord]) -> list[EventRecord]:
    """Drop repeated ``event_id`` values, keeping the first occurrence.

    Records without an id cannot be matched and are all kept.
    """

    seen: set[str] = set()
    result: list[EventRecord] = []
    for event in events:
        if event.event_id is not None:
            if event.event_id in seen:
                continue
            seen.add(event.event_id)
        result.append(event)
    return result


def filter_by_interval(
    events: Iterable[EventRecord], interval: Interval
) -> list[EventRecord]:
    """Events whose timestamp lies inside ``interval`` (closed)."""

    return [e for e in events if interval.contains_time(e.event_time)]


def filter_events_after(
    events: Iterable[EventRecord], after: datetime
) -> list[EventRecord]:
    after = to_utc(after)
    return [e for e in events if e.event_time is not None and e.event_time >= after]


def filter_events_before(
    events: Iterable[EventRecord], before: datetime
) -> list[EventRecord]:
    before = to_utc(before)
    return [e for e in events if e.event_time is not None and e.event_time <= before]


def records_from_payload(items: Sequence[Mapping[str, Any]]) -> list[EventRecord]:
    return [EventRecord.from_dict(item) for item in items]


__all__ = [
    "EventRecord",
    "dedupe_events",
    "filter_by_interval",
    "filter_events_after",
    "filter_events_before",
    "records_from_payload",
    "sort_events_desc",
]
