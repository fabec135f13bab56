"""Tests for retry/backoff and status classification in fetch_with_policy."""

import httpx
import pytest

from regiq.ingest.http_client import (
    PermanentSourceError,
    RateLimitedError,
    RetryPolicy,
    TransientFetchError,
    fetch_with_policy,
)

URL = "https://api.example.gov/items.json"


@pytest.fixture
def sleeps(monkeypatch):
    """Record backoff delays instead of sleeping."""
    recorded = []

    async def fake_sleep(seconds):
        recorded.append(seconds)

    monkeypatch.setattr("regiq.ingest.http_client.asyncio.sleep", fake_sleep)
    return recorded


def _policy(**overrides) -> RetryPolicy:
    values = dict(name="test", max_attempts=3, base_delay=1.0, multiplier=2.0, max_delay=10.0, jitter=0.0)
    values.update(overrides)
    return RetryPolicy(**values)


def _client(responses):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        result = responses[min(len(calls), len(responses)) - 1]
        if isinstance(result, Exception):
            raise result
        return result

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), calls


@pytest.mark.asyncio
async def test_server_error_retried_with_exponential_backoff(sleeps):
    client, calls = _client([httpx.Response(503)])
    async with client:
        with pytest.raises(TransientFetchError) as exc_info:
            await fetch_with_policy(client, URL, _policy())

    assert len(calls) == 3
    assert sleeps == [1.0, 2.0]
    assert exc_info.value.attempts == 3


@pytest.mark.asyncio
async def test_not_found_is_permanent_and_not_retried(sleeps):
    client, calls = _client([httpx.Response(404)])
    async with client:
        with pytest.raises(PermanentSourceError) as exc_info:
            await fetch_with_policy(client, URL, _policy())

    assert len(calls) == 1
    assert sleeps == []
    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_rate_limit_honours_retry_after(sleeps):
    client, calls = _client([
        httpx.Response(429, headers={"Retry-After": "3"}),
        httpx.Response(200, json={"results": []}),
    ])
    async with client:
        response = await fetch_with_policy(client, URL, _policy())

    assert response.status_code == 200
    assert len(calls) == 2
    assert sleeps == [3.0]


@pytest.mark.asyncio
async def test_rate_limit_on_last_attempt_raises(sleeps):
    client, calls = _client([httpx.Response(429)])
    async with client:
        with pytest.raises(RateLimitedError):
            await fetch_with_policy(client, URL, _policy(max_attempts=2))

    assert len(calls) == 2
    assert sleeps == [1.0]


@pytest.mark.asyncio
async def test_transport_error_then_success(sleeps):
    request = httpx.Request("GET", URL)
    client, calls = _client([
        httpx.ConnectError("connection refused", request=request),
        httpx.Response(200, text="ok"),
    ])
    async with client:
        response = await fetch_with_policy(client, URL, _policy())

    assert response.text == "ok"
    assert len(calls) == 2
    assert sleeps == [1.0]


@pytest.mark.asyncio
async def test_source_headers_merged_over_defaults(sleeps):
    client, calls = _client([httpx.Response(200)])
    async with client:
        await fetch_with_policy(client, URL, _policy(), headers={"Accept": "application/json"})

    assert calls[0].headers["accept"] == "application/json"
    assert calls[0].headers["user-agent"].startswith("RegIQ-Sync")


def test_backoff_capped_at_max_delay():
    policy = _policy(base_delay=4.0, max_delay=10.0)
    assert policy.delay_for(1) == 4.0
    assert policy.delay_for(2) == 8.0
    assert policy.delay_for(3) == 10.0
