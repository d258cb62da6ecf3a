from __future__ import annotations

"""Include, exclude and ignore-list filters over event records."""

import logging
import re
from typing import Callable, Iterable, Sequence

from .event_details import extract_user_details
from .events import EventRecord
from .exceptions import EventDetailsError, InvalidFilterError

logger = logging.getLogger(__name__)

FILTER_KEYS: tuple[str, ...] = (
    "username",
    "event",
    "resource-name",
    "resource-type",
    "arn",
)

EventPredicate = Callable[[EventRecord], bool]


def validate_filters(filters: Iterable[str]) -> None:
    """Reject anything that is not ``key=value`` with a known key."""

    for item in filters:
        key, sep, _ = item.partition("=")
        if not sep:
            raise InvalidFilterError(
                f"invalid filter format: {item} (expected key=value)"
            )
        if key not in FILTER_KEYS:
            raise InvalidFilterError(
                f"invalid filter key: {key} (allowed: {', '.join(FILTER_KEYS)})"
            )


def parse_filters(filters: Iterable[str]) -> dict[str, list[str]]:
    parsed: dict[str, list[str]] = {}
    for item in filters:
        key, _, value = item.partition("=")
        parsed.setdefault(key, []).append(value)
    return parsed


def _issuer_user_name(event: EventRecord) -> str | None:
    try:
        return extract_user_details(event.cloudtrail_event).issuer_user_name
    except EventDetailsError as exc:
        logger.debug("no event details for %s: %s", event.event_id, exc)
        return None


def _resource_values(event: EventRecord, field_name: str) -> list[str]:
    return [
        r[field_name] for r in event.resources if r.get(field_name) is not None
    ]


def _matches(event: EventRecord, key: str, values: Sequence[str]) -> bool:
    if key == "username":
        return event.username is not None and event.username in values
    if key == "event":
        return event.event_name is not None and event.event_name in values
    if key == "resource-name":
        return any(v in values for v in _resource_values(event, "ResourceName"))
    if key == "resource-type":
        return any(v in values for v in _resource_values(event, "ResourceType"))
    if key == "arn":
        name = _issuer_user_name(event)
        return name is not None and name in values
    return False


def apply_inclusion_filters(
    events: Iterable[EventRecord], filters: Sequence[str]
) -> list[EventRecord]:
    """Keep events matching one value of every filter key."""

    parsed = parse_filters(filters)
    return [
        e for e in events if all(_matches(e, k, v) for k, v in parsed.items())
    ]


def apply_exclusion_filters(
    events: Iterable[EventRecord], filters: Sequence[str]
) -> list[EventRecord]:
    """Drop events matching any filter."""

    parsed = parse_filters(filters)
    return [
        e for e in events if not any(_matches(e, k, v) for k, v in parsed.items())
    ]


def include_exclude(
    events: Iterable[EventRecord],
    include: Sequence[str] = (),
    exclude: Sequence[str] = (),
) -> list[EventRecord]:
    result = list(events)
    if include:
        result = apply_inclusion_filters(result, include)
    if exclude:
        result = apply_exclusion_filters(result, exclude)
    return result


def merge_patterns(patterns: Iterable[str]) -> str:
    """Join ignore patterns into one alternation; empty when none are given."""

    return "|".join(p for p in patterns if p)


def is_ignored_event(event: EventRecord, merged_regex: str) -> bool:
    """Return ``True`` when ``event`` should be kept.

    Events whose username or session issuer ARN match ``merged_regex`` are
    dropped, as are events carrying neither.
    """

    if not merged_regex:
        return True
    try:
        regex = re.compile(merged_regex)
    except re.error as exc:
        raise InvalidFilterError(f"invalid ignore pattern {merged_regex!r}") from exc

    try:
        arn = extract_user_details(event.cloudtrail_event).issuer_arn
    except EventDetailsError as exc:
        logger.debug("no event details for %s: %s", event.event_id, exc)
        arn = ""

    if event.username is not None and regex.search(event.username):
        return False
    if arn and regex.search(arn):
        return False
    if not arn and event.username is None:
        return False
    return True


def ignore_list_filter(patterns: Iterable[str]) -> EventPredicate:
    merged = merge_patterns(patterns)
    return lambda event: is_ignored_event(event, merged)


def region_filter(region: str) -> EventPredicate:
    """Keep events recorded in ``region``."""

    def _keep(event: EventRecord) -> bool:
        try:
            return extract_user_details(event.cloudtrail_event).region == region
        except EventDetailsError:
            return False

    return _keep


PERMISSION_DENIED_PATTERN = re.compile(r".*Client.UnauthorizedOperation.*")


def is_forbidden_event(event: EventRecord) -> bool:
    """Return ``True`` when the event failed with an unauthorized-operation error."""

    try:
        error_code = extract_user_details(event.cloudtrail_event).error_code
    except EventDetailsError as exc:
        logger.debug("no event details for %s: %s", event.event_id, exc)
        return False
    return bool(error_code) and PERMISSION_DENIED_PATTERN.match(error_code) is not None


def apply_filters(
    records: Iterable[EventRecord], *predicates: EventPredicate
) -> list[EventRecord]:
    """Keep records accepted by every predicate."""

    if not predicates:
        return list(records)
    return [r for r in records if all(p(r) for p in predicates)]


__all__ = [
    "FILTER_KEYS",
    "EventPredicate",
    "PERMISSION_DENIED_PATTERN",
    "apply_exclusion_filters",
    "apply_filters",
    "apply_inclusion_filters",
    "ignore_list_filter",
    "include_exclude",
    "is_forbidden_event",
    "is_ignored_event",
    "merge_patterns",
    "parse_filters",
    "region_filter",
    "validate_filters",
]
