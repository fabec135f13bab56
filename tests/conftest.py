"""Shared fixtures: throwaway SQLite datastore and mock HTTP plumbing."""

from typing import Callable, Dict, Union

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from regiq.db.models import Base
from regiq.ingest.fetchers.feed import FeedFetcher
from regiq.ingest.http_client import RetryPolicy
from regiq.ingest.sources.base import SourceDefinition

RSS_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Test feed</title>
    {items}
  </channel>
</rss>"""

ITEM_TEMPLATE = """<item>
      <title>{title}</title>
      <link>{link}</link>
      <description>{description}</description>
      <pubDate>{published}</pubDate>
    </item>"""


def rss(*items: dict) -> str:
    """Build an RSS document from item dicts (title/link/description/published)."""
    rendered = [
        ITEM_TEMPLATE.format(
            title=item.get("title", ""),
            link=item.get("link", ""),
            description=item.get("description", ""),
            published=item.get("published", ""),
        )
        for item in items
    ]
    return RSS_TEMPLATE.format(items="\n    ".join(rendered))


Route = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


def mock_client(routes: Dict[str, Route]) -> httpx.AsyncClient:
    """AsyncClient answering by URL host+path; unknown URLs get a 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        key = f"{request.url.host}{request.url.path}"
        route = routes.get(key)
        if route is None:
            return httpx.Response(404, text="not found")
        if callable(route):
            return route(request)
        # Fresh copy per request; responses are single-use once bound to a request
        return httpx.Response(route.status_code, headers=route.headers, content=route.content)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


NO_RETRY = RetryPolicy(name="test", max_attempts=1, base_delay=0, jitter=0, timeout=5.0)


def feed_source(name: str, url: str, **overrides) -> SourceDefinition:
    """Minimal RSS source definition that never retries."""
    values = dict(
        name=name,
        source_tag=name.upper(),
        agency="FDA",
        fetcher_class=FeedFetcher,
        urls=[url],
        description=f"{name} test feed",
        category="food-safety",
        retry=NO_RETRY,
    )
    values.update(overrides)
    return SourceDefinition(**values)


@pytest.fixture
async def session_factory(tmp_path):
    """Session factory bound to a fresh SQLite file with all tables created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'regiq_test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        yield factory
    finally:
        await engine.dispose()


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session
