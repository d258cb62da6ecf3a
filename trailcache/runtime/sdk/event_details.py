from __future__ import annotations

"""Fields pulled out of the raw JSON payload carried by each event."""

import json
import re
from dataclasses import dataclass
from typing import Any, Mapping

from .exceptions import EventDetailsError

SUPPORTED_EVENT_VERSION_MAJOR = 1
MIN_SUPPORTED_EVENT_VERSION_MINOR = 8

_VERSION = re.compile(r"^\s*(\d+)\.(\d+)")


@dataclass(frozen=True)
class RawEventDetails:
    event_version: str = ""
    account_id: str = ""
    issuer_type: str = ""
    issuer_user_name: str = ""
    issuer_arn: str = ""
    region: str = ""
    event_id: str = ""
    error_code: str = ""


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key)
    return value if isinstance(value, Mapping) else {}


def _text(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    return value if isinstance(value, str) else ""


def extract_user_details(raw: str | None) -> RawEventDetails:
    """Parse the raw event JSON and return the identity fields.

    Raises :class:`EventDetailsError` for empty input, invalid JSON or an
    event version outside ``1.8`` .. ``1.x``.
    """

    if not raw:
        raise EventDetailsError("cannot parse an empty event payload")
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise EventDetailsError("could not decode raw event payload") from exc
    if not isinstance(data, Mapping):
        raise EventDetailsError("raw event payload must be a JSON object")

    version = _text(data, "eventVersion")
    match = _VERSION.match(version)
    if match is None:
        raise EventDetailsError(f"failed to parse event version {version!r}")
    major, minor = int(match.group(1)), int(match.group(2))
    if major != SUPPORTED_EVENT_VERSION_MAJOR or minor < MIN_SUPPORTED_EVENT_VERSION_MINOR:
        raise EventDetailsError(
            f"unexpected event version (got {version}, expected compatibility with "
            f"{SUPPORTED_EVENT_VERSION_MAJOR}.{MIN_SUPPORTED_EVENT_VERSION_MINOR})"
        )

    identity = _section(data, "userIdentity")
    issuer = _section(_section(identity, "sessionContext"), "sessionIssuer")
    return RawEventDetails(
        event_version=version,
        account_id=_text(identity, "accountId"),
        issuer_type=_text(issuer, "type"),
        issuer_user_name=_text(issuer, "userName"),
        issuer_arn=_text(issuer, "arn"),
        region=_text(data, "awsRegion"),
        event_id=_text(data, "eventID"),
        error_code=_text(data, "errorCode"),
    )


def console_link(details: RawEventDetails) -> str:
    """Return the web console URL of the event."""

    region = details.region
    return (
        f"https://{region}.console.aws.amazon.com/cloudtrailv2/home"
        f"?region={region}#/events/{details.event_id}"
    )


__all__ = [
    "MIN_SUPPORTED_EVENT_VERSION_MINOR",
    "SUPPORTED_EVENT_VERSION_MAJOR",
    "RawEventDetails",
    "console_link",
    "extract_user_details",
]
