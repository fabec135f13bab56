"""Declarative description of one regulatory source."""

from dataclasses import dataclass, field
from typing import Optional, Type

import httpx

from regiq.classify.urgency import DEFAULT_KEYWORD_WEIGHTS, UrgencyProfile
from regiq.config import settings
from regiq.dedupe.manager import DuplicatePolicy
from regiq.ingest.base import BaseFetcher, ExtractionRule, FetchConfig
from regiq.ingest.http_client import RetryPolicy
from regiq.normalize.processor import Alert


def keyword_weights(extra: list[str], weight: int = 2) -> dict[str, int]:
    """Default urgent keywords plus source-specific ones."""
    weights = dict(DEFAULT_KEYWORD_WEIGHTS)
    for keyword in extra:
        weights[keyword.lower()] = max(weights.get(keyword.lower(), 0), weight)
    return weights


@dataclass
class SourceDefinition:
    """Everything the orchestrator needs to sync one source."""

    name: str  # registry key, used in "sync_<name>" actions
    source_tag: str  # value stored in alerts.source
    agency: str
    fetcher_class: Type[BaseFetcher]
    urls: list[str]
    description: str = ""
    category: str = ""
    region: str = "US"
    default_url: str = ""

    # Fetching
    headers: dict[str, str] = field(default_factory=dict)
    retry: Optional[RetryPolicy] = None
    page_size: int = 100
    max_pages: int = 3
    extraction: Optional[ExtractionRule] = None
    lookback_days: Optional[int] = None

    # Normalization
    relevance_keywords: list[str] = field(default_factory=list)
    agency_keywords: dict[str, list[str]] = field(default_factory=dict)
    title_prefix: str = ""
    min_text_length: int = 0
    min_title_length: int = 0
    enforce_lookback: bool = False

    # Classification and dedup
    urgency: UrgencyProfile = field(default_factory=UrgencyProfile)
    duplicate_policy: DuplicatePolicy = DuplicatePolicy.SKIP_ONLY
    duplicate_window_days: Optional[int] = None
    writes_recalls: bool = False

    def fetch_config(self, days: Optional[int] = None) -> FetchConfig:
        """Build the per-run fetch configuration."""
        lookback = days or self.lookback_days or settings.default_lookback_days
        return FetchConfig(
            source=self.name,
            urls=list(self.urls),
            lookback_days=lookback,
            headers=dict(self.headers),
            retry=self.retry or RetryPolicy.from_settings(name=self.name),
            page_size=self.page_size,
            max_pages=self.max_pages,
            extraction=self.extraction,
        )

    def create_fetcher(self, client: Optional[httpx.AsyncClient] = None) -> BaseFetcher:
        return self.fetcher_class(client=client)

    def is_relevant(self, alert: Alert) -> bool:
        """True when the source has no relevance keywords or the alert mentions one."""
        if not self.relevance_keywords:
            return True
        text = f"{alert.title} {alert.summary}".lower()
        return any(k.lower() in text for k in self.relevance_keywords)
