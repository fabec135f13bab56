"""Tests for RSS/Atom parsing and the feed fetcher."""

import httpx
import pytest

from conftest import NO_RETRY, mock_client, rss
from regiq.ingest.base import FetchConfig
from regiq.ingest.fetchers.feed import FeedFetcher, parse_feed
from regiq.ingest.http_client import PermanentSourceError

ATOM = b"""<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Newsroom</title>
  <entry>
    <title>EPA sets pesticide tolerance</title>
    <link rel="alternate" href="https://www.epa.gov/news/1"/>
    <id>tag:epa.gov,2025:1</id>
    <updated>2025-01-06T10:00:00Z</updated>
    <summary>Tolerance for residues on crops.</summary>
    <category term="pesticides"/>
  </entry>
</feed>"""


def test_rss_items_parsed_in_document_order():
    content = rss(
        {"title": "First recall", "link": "https://fda.gov/1", "published": "Mon, 06 Jan 2025 15:30:00 GMT"},
        {"title": "Second recall", "link": "https://fda.gov/2", "description": "Details"},
    ).encode()

    records = parse_feed(content, "FDA", "https://fda.gov/rss.xml")

    assert [r.title for r in records] == ["First recall", "Second recall"]
    assert records[0].link == "https://fda.gov/1"
    assert records[0].published == "Mon, 06 Jan 2025 15:30:00 GMT"
    assert records[1].description == "Details"
    assert all(r.feed_url == "https://fda.gov/rss.xml" for r in records)


def test_atom_entries_use_alternate_link():
    records = parse_feed(ATOM, "EPA")

    assert len(records) == 1
    entry = records[0]
    assert entry.title == "EPA sets pesticide tolerance"
    assert entry.link == "https://www.epa.gov/news/1"
    assert entry.guid == "tag:epa.gov,2025:1"
    assert entry.published == "2025-01-06T10:00:00Z"
    assert entry.categories == ["pesticides"]


def test_malformed_feed_is_permanent_error():
    with pytest.raises(PermanentSourceError):
        parse_feed(b"<rss><channel><item>", "FTC")


@pytest.mark.asyncio
async def test_feed_fetcher_reads_every_url():
    client = mock_client({
        "feeds.example.gov/a.xml": httpx.Response(200, text=rss({"title": "A1"}, {"title": "A2"})),
        "feeds.example.gov/b.xml": httpx.Response(200, text=rss({"title": "B1"})),
    })
    config = FetchConfig(
        source="test",
        urls=["https://feeds.example.gov/a.xml", "https://feeds.example.gov/b.xml"],
        retry=NO_RETRY,
    )

    async with client:
        fetcher = FeedFetcher(client=client)
        titles = [record.title async for record in fetcher.fetch(config)]

    assert titles == ["A1", "A2", "B1"]
