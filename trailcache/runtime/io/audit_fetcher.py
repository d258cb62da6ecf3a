from __future__ import annotations

"""Paginated HTTP fetcher for a LookupEvents-style audit API.

The fetcher posts JSON lookups to ``fetch.base_url`` (usually a local signing
proxy) and follows ``NextToken`` until the API stops returning one. Hitting
the page limit first raises ``FetchError`` with the pages read so far, so the
interval is never treated as complete. Authentication is left to the endpoint
and the configured ``headers``.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

import httpx

from trailcache.foundation.config import FetchConfig
from trailcache.runtime.sdk import metrics as sdk_metrics
from trailcache.runtime.sdk.events import EventRecord, records_from_payload
from trailcache.runtime.sdk.exceptions import FetchError
from trailcache.runtime.sdk.interval import Interval

from .rate_limiter import SharedLimiter, get_shared_limiter

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_PAGE_SIZE = 50


class HttpAuditLogFetcher:
    """Fetch every event in an interval, page by page."""

    def __init__(
        self,
        config: FetchConfig,
        *,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if not config.base_url:
            raise ValueError("fetch.base_url must be configured")
        self.config = config
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep
        self._limiter: SharedLimiter | None = None

    async def __aenter__(self) -> "HttpAuditLogFetcher":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client when this fetcher created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout_s)
        return self._client

    def _get_limiter(self) -> SharedLimiter:
        if self._limiter is None:
            self._limiter = get_shared_limiter(
                str(self.config.base_url),
                max_concurrency=self.config.max_concurrency,
                min_interval_s=self.config.min_interval_s,
            )
        return self._limiter

    def build_payload(self, interval: Interval, next_token: str | None) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "StartTime": int(interval.start.timestamp()),
            "EndTime": int(interval.end.timestamp()),
            "MaxResults": max(1, min(int(self.config.page_size), MAX_PAGE_SIZE)),
        }
        if self.config.write_only:
            payload["LookupAttributes"] = [
                {"AttributeKey": "ReadOnly", "AttributeValue": "false"}
            ]
        if next_token:
            payload["NextToken"] = next_token
        return payload

    # ------------------------------------------------------------------
    async def fetch(self, interval: Interval) -> list[EventRecord]:
        events: list[EventRecord] = []
        next_token: str | None = None
        pages = 0
        max_pages = self.config.max_pages

        while True:
            payload = self.build_payload(interval, next_token)
            try:
                page = await self._with_retry(lambda: self._lookup(payload))
                records = records_from_payload(page.get("Events") or [])
            except (httpx.HTTPError, ValueError, TypeError) as exc:
                raise FetchError(
                    f"lookup for {interval} failed after {pages} page(s): {exc}",
                    interval=interval,
                    events=events,
                ) from exc
            pages += 1
            events.extend(records)

            next_token = page.get("NextToken") or None
            if next_token is None:
                break
            if max_pages is not None and pages >= max_pages:
                logger.warning(
                    "stopping %s after %d page(s); more events are available",
                    interval,
                    pages,
                )
                # a truncated interval must not be recorded as covered
                raise FetchError(
                    f"lookup for {interval} truncated at {pages} page(s)",
                    interval=interval,
                    events=events,
                )

        logger.debug("fetched %d event(s) in %d page(s) for %s", len(events), pages, interval)
        return events

    async def _lookup(self, payload: dict[str, Any]) -> dict[str, Any]:
        sdk_metrics.fetch_requests_total.inc()
        response = await self._get_client().post(
            str(self.config.base_url),
            json=payload,
            headers=dict(self.config.headers),
            timeout=self.config.timeout_s,
        )
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError("lookup response must be a JSON object")
        events = data.get("Events")
        if events is not None and not isinstance(events, list):
            raise ValueError("lookup response 'Events' must be a list")
        return data

    async def _with_retry(self, operation: Callable[[], Awaitable[T]]) -> T:
        attempt = 0
        backoff = float(self.config.retry_backoff_s)
        max_retries = max(1, int(self.config.max_retries))
        while True:
            attempt += 1
            try:
                async with self._get_limiter():
                    return await operation()
            except httpx.HTTPError as exc:
                if attempt >= max_retries or not _is_retryable(exc):
                    raise
                wait_s = backoff
                if _looks_like_rate_limit(exc) and self.config.penalty_backoff_s > 0:
                    wait_s = max(wait_s, float(self.config.penalty_backoff_s))
                logger.warning(
                    "lookup attempt %d/%d failed (%s); retrying in %.2fs",
                    attempt,
                    max_retries,
                    exc,
                    wait_s,
                )
                await self._sleep(wait_s)
                backoff = max(backoff, wait_s) * 2.0


def _looks_like_rate_limit(exc: Exception) -> bool:
    """Return ``True`` when ``exc`` is an HTTP 429 response."""

    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code == 429
    return False


def _is_retryable(exc: httpx.HTTPError) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, httpx.TransportError)


__all__ = ["HttpAuditLogFetcher", "MAX_PAGE_SIZE"]
