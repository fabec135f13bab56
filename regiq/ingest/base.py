"""Base fetcher interface and raw record variants for regulatory sources."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Optional, Union

import httpx

from regiq.config import settings
from regiq.ingest.http_client import RetryPolicy


def _text(value: Any) -> str:
    """Coerce an optional raw field to a stripped string."""
    if value is None:
        return ""
    return str(value).strip()


@dataclass
class FDAEnforcementRecord:
    """openFDA enforcement report (food, drug or device recall)."""

    source: str
    recall_number: str
    product_description: str = ""
    reason_for_recall: str = ""
    classification: str = ""
    recall_initiation_date: str = ""
    report_date: str = ""
    termination_date: str = ""
    recalling_firm: str = ""
    distribution_pattern: str = ""
    state: str = ""
    city: str = ""
    country: str = ""
    product_type: str = ""
    status: str = ""
    raw: dict = field(default_factory=dict)
    fetched_at: datetime = None

    def __post_init__(self):
        if self.fetched_at is None:
            self.fetched_at = datetime.utcnow()

    @classmethod
    def from_api(cls, item: dict, source: str = "FDA") -> "FDAEnforcementRecord":
        return cls(
            source=source,
            recall_number=_text(item.get("recall_number") or item.get("event_id")),
            product_description=_text(item.get("product_description")),
            reason_for_recall=_text(item.get("reason_for_recall")),
            classification=_text(item.get("classification")),
            recall_initiation_date=_text(item.get("recall_initiation_date")),
            report_date=_text(item.get("report_date")),
            termination_date=_text(item.get("termination_date")),
            recalling_firm=_text(item.get("recalling_firm")),
            distribution_pattern=_text(item.get("distribution_pattern")),
            state=_text(item.get("state")),
            city=_text(item.get("city")),
            country=_text(item.get("country")),
            product_type=_text(item.get("product_type")),
            status=_text(item.get("status")),
            raw=item,
        )


@dataclass
class FSISRecallRecord:
    """USDA FSIS recall API entry."""

    source: str
    recall_number: str
    product_name: str = ""
    summary: str = ""
    reason: str = ""
    recall_class: str = ""
    recall_date: str = ""
    company_name: str = ""
    states: str = ""
    link: str = ""
    raw: dict = field(default_factory=dict)
    fetched_at: datetime = None

    def __post_init__(self):
        if self.fetched_at is None:
            self.fetched_at = datetime.utcnow()

    @classmethod
    def from_api(cls, item: dict, source: str = "FSIS") -> "FSISRecallRecord":
        # The FSIS content API uses Drupal "field_" names; older payloads use camelCase.
        return cls(
            source=source,
            recall_number=_text(
                item.get("field_recall_number") or item.get("recallNumber") or item.get("recall_number")
            ),
            product_name=_text(item.get("field_title") or item.get("productName") or item.get("product_name")),
            summary=_text(item.get("field_summary") or item.get("summary") or item.get("productDescription")),
            reason=_text(item.get("field_recall_reason") or item.get("reason") or item.get("reasonForRecall")),
            recall_class=_text(
                item.get("field_recall_classification") or item.get("recallClass") or item.get("recall_class")
            ),
            recall_date=_text(item.get("field_recall_date") or item.get("recallDate") or item.get("recall_date")),
            company_name=_text(item.get("field_establishment") or item.get("companyName")),
            states=_text(item.get("field_states") or item.get("distribution") or item.get("distributionPattern")),
            link=_text(item.get("field_recall_url") or item.get("link") or item.get("url")),
            raw=item,
        )


@dataclass
class CDCOutbreakRecord:
    """CDC NORS foodborne outbreak row (data.cdc.gov Socrata dataset)."""

    source: str
    year: str
    state: str = ""
    pathogen: str = ""
    food: str = ""
    illnesses: int = 0
    hospitalizations: int = 0
    deaths: int = 0
    raw: dict = field(default_factory=dict)
    fetched_at: datetime = None

    def __post_init__(self):
        if self.fetched_at is None:
            self.fetched_at = datetime.utcnow()

    @property
    def outbreak_key(self) -> str:
        return f"{self.year}-{self.state}-{self.pathogen}"

    @classmethod
    def from_api(cls, item: dict, source: str = "CDC") -> "CDCOutbreakRecord":
        def _int(value) -> int:
            try:
                return int(float(value))
            except (TypeError, ValueError):
                return 0

        return cls(
            source=source,
            year=_text(item.get("year")),
            state=_text(item.get("state")),
            pathogen=_text(item.get("etiology") or item.get("pathogen")),
            food=_text(item.get("food_vehicle") or item.get("food")),
            illnesses=_int(item.get("illnesses")),
            hospitalizations=_int(item.get("hospitalizations")),
            deaths=_int(item.get("deaths")),
            raw=item,
        )


@dataclass
class FeedEntryRecord:
    """A single RSS item or Atom entry."""

    source: str
    title: str = ""
    description: str = ""
    link: str = ""
    published: str = ""
    guid: str = ""
    feed_url: str = ""
    categories: list[str] = field(default_factory=list)
    raw: dict = field(default_factory=dict)
    fetched_at: datetime = None

    def __post_init__(self):
        if self.fetched_at is None:
            self.fetched_at = datetime.utcnow()


@dataclass
class ScrapedItemRecord:
    """A repeated DOM node extracted from an HTML page."""

    source: str
    title: str = ""
    text: str = ""
    link: str = ""
    date_text: str = ""
    page_url: str = ""
    raw: dict = field(default_factory=dict)
    fetched_at: datetime = None

    def __post_init__(self):
        if self.fetched_at is None:
            self.fetched_at = datetime.utcnow()


RawRecord = Union[
    FDAEnforcementRecord,
    FSISRecallRecord,
    CDCOutbreakRecord,
    FeedEntryRecord,
    ScrapedItemRecord,
]


@dataclass
class ExtractionRule:
    """CSS selectors used to pull repeated items out of an HTML page."""

    item_selector: str
    title_selector: str = "h2, h3, h4, .title, a"
    summary_selector: Optional[str] = None
    date_selector: Optional[str] = "time, .date"
    link_selector: str = "a[href]"
    max_items: int = 20


@dataclass
class FetchConfig:
    """What a fetcher needs to know about one source."""

    source: str
    urls: list[str]
    lookback_days: int = 30
    headers: dict[str, str] = field(default_factory=dict)
    retry: RetryPolicy = None
    page_size: int = 100
    max_pages: int = 3
    extraction: Optional[ExtractionRule] = None

    def __post_init__(self):
        if self.retry is None:
            self.retry = RetryPolicy.from_settings(name=self.source.lower())


class BaseFetcher(ABC):
    """Abstract base class for source fetchers.

    ``fetch`` returns a lazy, finite async iterator. Each call performs fresh
    network round trips; iterators are not restartable.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._http_client = client
        self._owns_client = client is None
        # Non-fatal fetch failures seen after records were already yielded
        self.partial_errors: list[str] = []

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=settings.http_timeout_seconds,
                follow_redirects=True,
            )
        return self._http_client

    async def close(self):
        """Close the HTTP client if this fetcher created it."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    @abstractmethod
    def fetch(self, config: FetchConfig) -> AsyncIterator[RawRecord]:
        """
        Fetch raw records for a source.

        Raises:
            PermanentSourceError: Non-retryable failure (404, malformed payload)
            TransientFetchError: Retries exhausted
        """
        raise NotImplementedError
