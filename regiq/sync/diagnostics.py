"""Source connectivity probe (no datastore writes)."""

import asyncio
import logging
import time
from contextlib import aclosing
from dataclasses import dataclass, field, replace
from typing import List, Optional

import httpx

from regiq.config import settings
from regiq.ingest.http_client import RetryPolicy
from regiq.ingest.sources.base import SourceDefinition
from regiq.normalize.mappers import normalizer

logger = logging.getLogger(__name__)

PROBE_TIMEOUT_SECONDS = 10.0


@dataclass
class SourceProbe:
    """Result of probing one source."""

    source: str
    agency: str
    description: str
    url: str
    success: bool = False
    records_seen: int = 0
    sample_titles: List[str] = field(default_factory=list)
    error: Optional[str] = None
    elapsed_ms: int = 0

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "agency": self.agency,
            "description": self.description,
            "url": self.url,
            "success": self.success,
            "recordsSeen": self.records_seen,
            "sampleTitles": list(self.sample_titles),
            "error": self.error,
            "elapsedMs": self.elapsed_ms,
        }


async def probe_source(
    definition: SourceDefinition,
    client: httpx.AsyncClient,
    sample_size: int = 3,
) -> SourceProbe:
    """Fetch the first page of a source once and normalize a few records."""
    config = definition.fetch_config()
    config = replace(
        config,
        urls=config.urls[:1],
        max_pages=1,
        retry=RetryPolicy(name=f"probe_{definition.name}", max_attempts=1, timeout=PROBE_TIMEOUT_SECONDS),
    )
    probe = SourceProbe(
        source=definition.name,
        agency=definition.agency,
        description=definition.description,
        url=config.urls[0] if config.urls else "",
    )

    fetcher = definition.create_fetcher(client)
    started = time.monotonic()
    try:
        async with aclosing(fetcher.fetch(config)) as records:
            async for raw in records:
                probe.records_seen += 1
                alert = normalizer.normalize(raw, definition)
                if alert is not None:
                    probe.sample_titles.append(alert.title)
                if probe.records_seen >= sample_size:
                    break
        probe.success = True
    except Exception as e:
        probe.error = f"{type(e).__name__}: {e}"
        logger.warning(f"Probe failed for {definition.name}: {probe.error}")
    finally:
        probe.elapsed_ms = int((time.monotonic() - started) * 1000)
        await fetcher.close()

    return probe


async def probe_sources(
    definitions: List[SourceDefinition],
    client: Optional[httpx.AsyncClient] = None,
    sample_size: int = 3,
) -> List[SourceProbe]:
    """
    Probe each source's first endpoint concurrently.

    Args:
        definitions: Sources to probe
        client: Optional shared HTTP client
        sample_size: Records to read per source

    Returns:
        One SourceProbe per definition, in order
    """
    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=settings.http_timeout_seconds, follow_redirects=True)
    try:
        return list(
            await asyncio.gather(*[probe_source(d, client, sample_size) for d in definitions])
        )
    finally:
        if owns_client:
            await client.aclose()
