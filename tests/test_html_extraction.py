"""Tests for CSS-selector extraction from HTML listing pages."""

import httpx
import pytest

from conftest import NO_RETRY, mock_client
from regiq.ingest.base import ExtractionRule, FetchConfig
from regiq.ingest.fetchers.html import HTMLFetcher, extract_items
from regiq.ingest.http_client import PermanentSourceError

PAGE = """<html><body>
<div class="view-content">
  <div class="views-row">
    <h3><a href="/news/closure-gulf">Emergency closure of Gulf shrimp fishery</a></h3>
    <time datetime="2025-01-06T00:00:00Z">January 6, 2025</time>
    <p>The fishery is closed after contamination was detected.</p>
  </div>
  <div class="views-row">
    <h3>Mercury advisory for swordfish</h3>
    <span class="date">January 3, 2025</span>
    <p>Consumers should limit swordfish intake.</p>
  </div>
  <div class="views-row">
    <h3>Third item</h3>
  </div>
</div>
</body></html>"""

RULE = ExtractionRule(
    item_selector=".view-content .views-row",
    title_selector="h2, h3",
    date_selector="time, .date",
    link_selector="a[href]",
)


def test_items_extracted_with_links_and_dates():
    records = extract_items(PAGE, RULE, "NOAA", "https://www.fisheries.noaa.gov/topic/fishing")

    assert len(records) == 3
    first, second = records[0], records[1]

    assert first.title == "Emergency closure of Gulf shrimp fishery"
    assert first.link == "https://www.fisheries.noaa.gov/news/closure-gulf"
    assert first.date_text == "2025-01-06T00:00:00Z"
    assert "contamination was detected" in first.text

    assert second.title == "Mercury advisory for swordfish"
    assert second.link == ""
    assert second.date_text == "January 3, 2025"
    assert second.page_url == "https://www.fisheries.noaa.gov/topic/fishing"


def test_max_items_limits_results():
    rule = ExtractionRule(item_selector=".views-row", title_selector="h3", max_items=2)
    records = extract_items(PAGE, rule, "NOAA", "https://example.gov/")
    assert len(records) == 2


def test_no_matching_nodes_returns_empty_list():
    rule = ExtractionRule(item_selector=".does-not-exist")
    assert extract_items(PAGE, rule, "NOAA", "https://example.gov/") == []


@pytest.mark.asyncio
async def test_html_fetcher_requires_extraction_rule():
    config = FetchConfig(source="noaa", urls=["https://example.gov/"], retry=NO_RETRY)
    fetcher = HTMLFetcher(client=mock_client({}))

    with pytest.raises(PermanentSourceError):
        async for _ in fetcher.fetch(config):
            pass


@pytest.mark.asyncio
async def test_html_fetcher_yields_records():
    client = mock_client({"www.fisheries.noaa.gov/topic/fishing": httpx.Response(200, text=PAGE)})
    config = FetchConfig(
        source="noaa",
        urls=["https://www.fisheries.noaa.gov/topic/fishing"],
        retry=NO_RETRY,
        extraction=RULE,
    )

    async with client:
        records = [r async for r in HTMLFetcher(client=client).fetch(config)]

    assert [r.title for r in records][:2] == [
        "Emergency closure of Gulf shrimp fishery",
        "Mercury advisory for swordfish",
    ]
