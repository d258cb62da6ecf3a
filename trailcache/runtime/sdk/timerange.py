from __future__ import annotations

"""Resolve ``--after`` / ``--until`` / ``--since`` into a query interval."""

import re
from datetime import datetime, timedelta, timezone

from .exceptions import InvalidTimeRangeError
from .interval import Interval, to_utc

DEFAULT_SINCE = "1h"
TIME_FORMAT = "%Y-%m-%d,%H:%M:%S"

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(us|ms|s|m|h|d)")

_UNITS = {
    "us": timedelta(microseconds=1),
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
}


def parse_duration(text: str) -> timedelta:
    """Parse durations such as ``90m``, ``1h30m``, ``1.5h`` or ``2d``."""

    raw = text.strip()
    sign = 1
    if raw and raw[0] in "+-":
        sign = -1 if raw[0] == "-" else 1
        raw = raw[1:]
    if raw == "0":
        return timedelta()
    if not raw:
        raise InvalidTimeRangeError(f"invalid duration {text!r}")

    total = timedelta()
    pos = 0
    for match in _DURATION_PART.finditer(raw):
        if match.start() != pos:
            break
        total += _UNITS[match.group(2)] * float(match.group(1))
        pos = match.end()
    if pos != len(raw):
        raise InvalidTimeRangeError(
            f"invalid duration {text!r} (expected e.g. 30m, 2h, 1h30m, 1d)"
        )
    return total * sign


def parse_time(text: str) -> datetime:
    """Parse ``YYYY-MM-DD,HH:MM:SS`` as a UTC timestamp."""

    if text.count(",") != 1:
        raise InvalidTimeRangeError(
            f"invalid time {text!r}; expected format YYYY-MM-DD,HH:MM:SS"
        )
    try:
        parsed = datetime.strptime(text.strip(), TIME_FORMAT)
    except ValueError as exc:
        raise InvalidTimeRangeError(
            f"invalid time {text!r}; expected format YYYY-MM-DD,HH:MM:SS"
        ) from exc
    return parsed.replace(tzinfo=timezone.utc)


def parse_start_end_time(
    after: str | None,
    until: str | None,
    since: str | None = None,
    now: datetime | None = None,
) -> Interval:
    """Return the interval selected by the time flags.

    Both bounds given: exactly that range. Only ``after``: ``after + since``.
    Only ``until``: ``until - since``. Neither: the ``since`` window ending
    now. ``since`` defaults to one hour.
    """

    duration = parse_duration(since or DEFAULT_SINCE)
    if after and until:
        start, end = parse_time(after), parse_time(until)
    elif after:
        start = parse_time(after)
        end = start + duration
    elif until:
        end = parse_time(until)
        start = end - duration
    else:
        end = to_utc(now) if now is not None else datetime.now(timezone.utc)
        start = end - duration

    if start > end:
        raise InvalidTimeRangeError(
            f"start time {start.isoformat()} is after end time {end.isoformat()}"
        )
    return Interval(start, end)


__all__ = [
    "DEFAULT_SINCE",
    "TIME_FORMAT",
    "parse_duration",
    "parse_start_end_time",
    "parse_time",
]
