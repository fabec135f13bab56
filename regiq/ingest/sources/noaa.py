"""NOAA Fisheries pages scraped for seafood advisories and closures."""

from regiq.classify.urgency import UrgencyProfile
from regiq.ingest.base import ExtractionRule
from regiq.ingest.fetchers.html import HTMLFetcher
from regiq.ingest.sources.base import SourceDefinition, keyword_weights

NOAA_FISHERIES = SourceDefinition(
    name="noaa_fisheries",
    source_tag="NOAA",
    agency="NOAA",
    fetcher_class=HTMLFetcher,
    urls=[
        "https://www.fisheries.noaa.gov/national/seafood-commerce-certification/seafood-import-monitoring-program",
        "https://www.fisheries.noaa.gov/topic/recreational-fishing",
    ],
    description="NOAA Fisheries advisories and fishery closures",
    category="seafood",
    default_url="https://www.fisheries.noaa.gov/about-us/newsroom",
    extraction=ExtractionRule(
        item_selector="article, .news-item, .alert, .announcement, .view-content .views-row",
        title_selector="h2, h3, h4, .title, a",
        date_selector="time, .date, .field--name-field-release-date",
        link_selector="a[href]",
        max_items=20,
    ),
    relevance_keywords=[
        "advisory", "mercury", "contamination", "closure", "closed", "alert", "safety",
        "emergency", "suspension", "prohibition",
    ],
    title_prefix="NOAA Fisheries: ",
    min_text_length=20,
    min_title_length=10,
    urgency=UrgencyProfile(
        base_score=7,
        keyword_weights=keyword_weights(["closure", "mercury", "prohibition", "suspension"]),
    ),
    duplicate_window_days=30,
)
