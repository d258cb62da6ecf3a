import json

import httpx
import pytest

from trailcache.foundation.common.metrics_factory import get_metric_value
from trailcache.foundation.config import FetchConfig
from trailcache.runtime.io.audit_fetcher import HttpAuditLogFetcher
from trailcache.runtime.sdk import metrics as sdk_metrics
from trailcache.runtime.sdk.exceptions import FetchError
from trailcache.runtime.sdk.orchestrator import QueryOrchestrator
from tests.helpers.events import InMemoryStore, at, iv

URL = "http://signing-proxy.local/lookup"


def _config(**overrides) -> FetchConfig:
    base = dict(base_url=URL, min_interval_s=0.0, retry_backoff_s=0.1, penalty_backoff_s=2.0)
    base.update(overrides)
    return FetchConfig(**base)


def _event(event_id: str, epoch: int) -> dict:
    return {"EventId": event_id, "EventName": "RunInstances", "EventTime": epoch}


class _Sleeps:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _fetcher(handler, sleeps=None, **overrides) -> HttpAuditLogFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpAuditLogFetcher(_config(**overrides), client=client, sleep=sleeps or _Sleeps())


@pytest.mark.asyncio
async def test_follows_next_token_and_builds_lookup_payload():
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        bodies.append(body)
        if "NextToken" not in body:
            return httpx.Response(200, json={"Events": [_event("a", 1740823200)], "NextToken": "t1"})
        return httpx.Response(200, json={"Events": [_event("b", 1740823100)]})

    fetcher = _fetcher(handler)
    events = await fetcher.fetch(iv(at(9), at(10)))

    assert [e.event_id for e in events] == ["a", "b"]
    assert events[0].event_time == at(10)
    assert bodies[0] == {
        "StartTime": 1740819600,
        "EndTime": 1740823200,
        "MaxResults": 50,
        "LookupAttributes": [{"AttributeKey": "ReadOnly", "AttributeValue": "false"}],
    }
    assert bodies[1]["NextToken"] == "t1"
    assert get_metric_value(sdk_metrics.fetch_requests_total) == 2


@pytest.mark.asyncio
async def test_read_events_included_when_not_write_only():
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"Events": []})

    await _fetcher(handler, write_only=False, page_size=500).fetch(iv(at(9), at(10)))
    assert "LookupAttributes" not in bodies[0]
    assert bodies[0]["MaxResults"] == 50


@pytest.mark.asyncio
async def test_page_limit_with_outstanding_token_is_a_fetch_error():
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(200, json={"Events": [_event(f"e{calls}", 1740823200)], "NextToken": "more"})

    with pytest.raises(FetchError) as excinfo:
        await _fetcher(handler, max_pages=3).fetch(iv(at(9), at(10)))
    assert calls == 3
    assert [e.event_id for e in excinfo.value.events] == ["e1", "e2", "e3"]


@pytest.mark.asyncio
async def test_page_limit_reached_on_last_page_is_complete():
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if "NextToken" not in body:
            return httpx.Response(200, json={"Events": [_event("a", 1740823200)], "NextToken": "t1"})
        return httpx.Response(200, json={"Events": [_event("b", 1740823100)]})

    events = await _fetcher(handler, max_pages=2).fetch(iv(at(9), at(10)))
    assert [e.event_id for e in events] == ["a", "b"]


@pytest.mark.asyncio
async def test_truncated_lookup_leaves_range_uncovered():
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if "NextToken" not in body:
            return httpx.Response(200, json={"Events": [_event("a", 1740823200)], "NextToken": "t1"})
        return httpx.Response(200, json={"Events": [_event("b", 1740821400)]})

    store = InMemoryStore()
    events = await QueryOrchestrator(store, _fetcher(handler, max_pages=1)).query(
        "k", iv(at(9), at(10))
    )

    assert [e.event_id for e in events] == ["a"]
    assert not store.state["k"].coverage
    assert store.state["k"].events == ()


@pytest.mark.asyncio
async def test_retries_server_errors_with_backoff():
    responses = iter([503, 500, 200])

    def handler(request: httpx.Request) -> httpx.Response:
        status = next(responses)
        if status != 200:
            return httpx.Response(status, json={"message": "unavailable"})
        return httpx.Response(200, json={"Events": [_event("a", 1740823200)]})

    sleeps = _Sleeps()
    events = await _fetcher(handler, sleeps, max_retries=3).fetch(iv(at(9), at(10)))
    assert [e.event_id for e in events] == ["a"]
    assert sleeps.calls == [0.1, 0.2]


@pytest.mark.asyncio
async def test_rate_limit_uses_penalty_backoff():
    responses = iter([429, 200])

    def handler(request: httpx.Request) -> httpx.Response:
        status = next(responses)
        if status == 429:
            return httpx.Response(429, json={"message": "ThrottlingException"})
        return httpx.Response(200, json={"Events": []})

    sleeps = _Sleeps()
    await _fetcher(handler, sleeps).fetch(iv(at(9), at(10)))
    assert sleeps.calls == [2.0]


@pytest.mark.asyncio
async def test_client_errors_are_not_retried():
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(403, json={"message": "denied"})

    with pytest.raises(FetchError):
        await _fetcher(handler).fetch(iv(at(9), at(10)))
    assert calls == 1


@pytest.mark.asyncio
async def test_failure_after_first_page_carries_partial_events():
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if "NextToken" not in body:
            return httpx.Response(200, json={"Events": [_event("a", 1740823200)], "NextToken": "t1"})
        return httpx.Response(500, json={"message": "boom"})

    with pytest.raises(FetchError) as excinfo:
        await _fetcher(handler, max_retries=2).fetch(iv(at(9), at(10)))

    assert [e.event_id for e in excinfo.value.events] == ["a"]
    assert excinfo.value.interval == iv(at(9), at(10))
    assert isinstance(excinfo.value.__cause__, httpx.HTTPStatusError)


@pytest.mark.asyncio
async def test_malformed_response_is_a_fetch_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=["not", "an", "object"])

    with pytest.raises(FetchError):
        await _fetcher(handler).fetch(iv(at(9), at(10)))


def test_base_url_is_required():
    with pytest.raises(ValueError):
        HttpAuditLogFetcher(FetchConfig())


@pytest.mark.asyncio
async def test_context_manager_closes_owned_client():
    async with HttpAuditLogFetcher(_config()) as fetcher:
        client = fetcher._get_client()
    assert client.is_closed
