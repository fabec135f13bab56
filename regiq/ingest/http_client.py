"""Centralized HTTP fetching with per-source retry policies and status-aware errors."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Optional

import httpx

from regiq import metrics
from regiq.config import settings

logger = logging.getLogger(__name__)

# Retryable exceptions (transport errors)
RETRYABLE_EXC = (
    httpx.TimeoutException,
    httpx.ConnectError,
    httpx.RemoteProtocolError,
    httpx.ReadError,
)


class SourceFetchError(RuntimeError):
    """Base class for source-level fetch failures."""


class PermanentSourceError(SourceFetchError):
    """Raised for failures that retrying cannot fix (404, other 4xx, bad payload)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientFetchError(SourceFetchError):
    """Raised when a fetch still fails after all retry attempts (5xx, timeouts)."""

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class RateLimitedError(TransientFetchError):
    """Raised when rate limited (429) on the final attempt."""

    def __init__(self, retry_after: Optional[float] = None, attempts: int = 0):
        super().__init__("Rate limited", attempts=attempts)
        self.retry_after = retry_after


@dataclass(frozen=True)
class RetryPolicy:
    """Per-source retry and timeout configuration."""

    name: str = "default"
    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 10.0
    jitter: float = 0.0
    timeout: float = 30.0

    def delay_for(self, attempt: int) -> float:
        """Backoff before retrying after the given (1-based) failed attempt."""
        delay = min(self.base_delay * (self.multiplier ** (attempt - 1)), self.max_delay)
        if self.jitter > 0:
            delay += random.uniform(0, self.jitter)
        return delay

    @classmethod
    def from_settings(cls, name: str = "default", **overrides) -> "RetryPolicy":
        """Build a policy from the global retry settings with optional overrides."""
        values = {
            "name": name,
            "max_attempts": settings.retry_max_attempts,
            "base_delay": settings.retry_base_delay_seconds,
            "multiplier": settings.retry_multiplier,
            "max_delay": settings.retry_max_delay_seconds,
            "jitter": settings.retry_jitter_seconds,
            "timeout": settings.http_timeout_seconds,
        }
        values.update(overrides)
        return cls(**values)


def default_headers() -> dict[str, str]:
    """Headers sent with every source request."""
    return {
        "User-Agent": settings.user_agent,
        "Accept": "application/json, application/rss+xml, application/xml, text/xml, text/html, */*",
        "Accept-Language": "en-US, en; q=0.9",
        "Cache-Control": "no-cache",
    }


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


async def fetch_with_policy(
    client: httpx.AsyncClient,
    url: str,
    policy: RetryPolicy,
    headers: Optional[dict[str, str]] = None,
    params: Optional[dict] = None,
) -> httpx.Response:
    """
    Fetch URL with retry policy and status-aware error handling.

    Args:
        client: httpx AsyncClient instance
        url: URL to fetch
        policy: RetryPolicy configuration
        headers: Optional additional headers (merged with defaults)
        params: Optional query parameters

    Returns:
        httpx.Response on success (2xx)

    Raises:
        PermanentSourceError: 404 or any other non-retryable 4xx
        RateLimitedError: Still rate limited (429) after the last attempt
        TransientFetchError: 5xx or transport failure after the last attempt
    """
    hdrs = default_headers()
    if headers:
        hdrs.update(headers)

    last_exc: Exception | None = None

    for attempt in range(1, policy.max_attempts + 1):
        is_last = attempt >= policy.max_attempts
        try:
            resp = await client.get(
                url,
                headers=hdrs,
                params=params,
                timeout=policy.timeout,
                follow_redirects=True,
            )
        except RETRYABLE_EXC as e:
            if is_last:
                raise TransientFetchError(
                    f"{policy.name}: transport error ({type(e).__name__}) after "
                    f"{policy.max_attempts} attempts: {url}",
                    attempts=attempt,
                ) from e
            sleep_s = policy.delay_for(attempt)
            logger.warning(
                f"{policy.name}: Transport error ({type(e).__name__}), "
                f"retrying in {sleep_s:.1f}s (attempt {attempt}/{policy.max_attempts})"
            )
            metrics.record_retry(policy.name, type(e).__name__)
            last_exc = e
            await asyncio.sleep(sleep_s)
            continue

        sc = resp.status_code

        if 200 <= sc < 300:
            return resp

        if sc == 429:
            retry_after = _parse_retry_after(resp.headers.get("Retry-After"))
            if is_last:
                raise RateLimitedError(retry_after=retry_after, attempts=attempt)
            sleep_s = retry_after if retry_after is not None else policy.delay_for(attempt)
            sleep_s = min(sleep_s, policy.max_delay)
            logger.warning(
                f"{policy.name}: Rate limited (429), retrying in {sleep_s:.1f}s "
                f"(attempt {attempt}/{policy.max_attempts})"
            )
            metrics.record_retry(policy.name, "429")
            last_exc = RateLimitedError(retry_after=retry_after, attempts=attempt)
            await asyncio.sleep(sleep_s)
            continue

        if 500 <= sc < 600:
            if is_last:
                raise TransientFetchError(
                    f"{policy.name}: HTTP {sc} for {url} after {policy.max_attempts} attempts",
                    attempts=attempt,
                )
            sleep_s = policy.delay_for(attempt)
            logger.warning(
                f"{policy.name}: Server error {sc}, retrying in {sleep_s:.1f}s "
                f"(attempt {attempt}/{policy.max_attempts})"
            )
            metrics.record_retry(policy.name, str(sc))
            last_exc = TransientFetchError(f"{policy.name}: HTTP {sc} for {url}", attempts=attempt)
            await asyncio.sleep(sleep_s)
            continue

        # 404 and everything else left over is not worth retrying
        raise PermanentSourceError(f"{policy.name}: HTTP {sc} for {url}", status_code=sc)

    raise TransientFetchError(
        f"{policy.name}: failed after {policy.max_attempts} attempts: {url}",
        attempts=policy.max_attempts,
    ) from last_exc
