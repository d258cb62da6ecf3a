from __future__ import annotations

"""Human readable rendering of event records."""

import logging
from typing import Iterable, Sequence

import pandas as pd

from .event_details import console_link, extract_user_details
from .events import EventRecord
from .exceptions import EventDetailsError, InvalidFilterError

logger = logging.getLogger(__name__)

FORMAT_FIELDS: tuple[str, ...] = (
    "event",
    "time",
    "username",
    "arn",
    "resource-name",
    "resource-type",
)

_LABELS = {
    "username": "Username",
    "arn": "ARN",
    "resource-name": "Resource Name",
    "resource-type": "Resource Type",
}


def validate_format(fields: Iterable[str]) -> list[str]:
    """Normalize ``--print-format`` columns; unknown names raise."""

    normalized = [f.strip().lower() for f in fields if f.strip()]
    for column in normalized:
        if column not in FORMAT_FIELDS:
            raise InvalidFilterError(
                f"invalid table column: {column} (allowed: {', '.join(FORMAT_FIELDS)})"
            )
    return normalized


def _row(event: EventRecord) -> dict[str, object]:
    try:
        details = extract_user_details(event.cloudtrail_event)
    except EventDetailsError as exc:
        logger.debug("no event details for %s: %s", event.event_id, exc)
        details = None
    return {
        "event": event.event_name,
        "time": event.event_time,
        "username": event.username,
        "arn": (details.issuer_user_name or None) if details else None,
        "resource-name": [r["ResourceName"] for r in event.resources if r.get("ResourceName")],
        "resource-type": [r["ResourceType"] for r in event.resources if r.get("ResourceType")],
        "url": console_link(details) if details else None,
        "raw": event.cloudtrail_event,
    }


def events_frame(events: Iterable[EventRecord]) -> pd.DataFrame:
    """One row per event, oldest first; untimed events lead."""

    rows = [_row(e) for e in events]
    frame = pd.DataFrame(rows, columns=[*FORMAT_FIELDS, "url", "raw"])
    if frame.empty:
        return frame
    frame["time"] = pd.to_datetime(frame["time"], utc=True)
    return frame.sort_values("time", kind="stable", na_position="first").reset_index(
        drop=True
    )


def _format_line(row: pd.Series, fields: Sequence[str]) -> str:
    parts: list[str] = []
    for name in fields:
        value = row[name]
        if name in ("resource-name", "resource-type"):
            parts.extend(f"{_LABELS[name]}: {v}" for v in value)
            continue
        if value is None or (not isinstance(value, str) and pd.isna(value)):
            continue
        if name == "time":
            value = value.isoformat()
        label = _LABELS.get(name)
        parts.append(f"{label}: {value}" if label else str(value))
    return " | ".join(parts)


def render_events(
    events: Sequence[EventRecord],
    fields: Sequence[str] | None = None,
    print_url: bool = False,
    raw: bool = False,
) -> list[str]:
    """Return output lines for ``events`` in oldest-to-newest order.

    ``events`` is expected most recent first, as the query returns them;
    equal timestamps keep that order reversed.
    """

    columns = validate_format(fields) if fields else list(FORMAT_FIELDS)
    frame = events_frame(reversed(events))
    if raw:
        return [payload for payload in frame["raw"] if isinstance(payload, str) and payload]

    lines: list[str] = []
    for _, row in frame.iterrows():
        lines.append(_format_line(row, columns))
        if print_url and isinstance(row["raw"], str) and row["raw"]:
            url = row["url"]
            lines.append(url if isinstance(url, str) else "EventLink: <not available>")
    return lines


def render_table(events: Sequence[EventRecord], fields: Sequence[str] | None = None) -> str:
    columns = validate_format(fields) if fields else list(FORMAT_FIELDS)
    frame = events_frame(events)
    if frame.empty:
        return "No events found."
    frame = frame[columns].copy()
    for name in ("resource-name", "resource-type"):
        if name in frame:
            frame[name] = frame[name].map(", ".join)
    return frame.to_string(index=False)


__all__ = [
    "FORMAT_FIELDS",
    "events_frame",
    "render_events",
    "render_table",
    "validate_format",
]
