"""CDC NORS foodborne outbreak data (data.cdc.gov Socrata API)."""

import logging
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, Optional

from regiq.classify.urgency import UrgencyProfile
from regiq.dedupe.manager import DuplicatePolicy
from regiq.ingest.base import CDCOutbreakRecord, FetchConfig
from regiq.ingest.fetchers.json_api import JSONAPIFetcher
from regiq.ingest.sources.base import SourceDefinition, keyword_weights

logger = logging.getLogger(__name__)


class CDCOutbreakFetcher(JSONAPIFetcher):
    """
    Pages through NORS rows with ``$limit``/``$offset``.

    The dataset has one row per outbreak and food vehicle, so rows sharing
    year, state and pathogen are collapsed to the first one seen.
    """

    def build_params(self, config: FetchConfig, page: int) -> Optional[dict[str, Any]]:
        since_year = (datetime.utcnow() - timedelta(days=config.lookback_days)).year
        return {
            "$where": f"year>={since_year}",
            "$order": "year DESC",
            "$limit": config.page_size,
            "$offset": page * config.page_size,
        }

    def make_record(self, item: dict, config: FetchConfig) -> CDCOutbreakRecord:
        return CDCOutbreakRecord.from_api(item, source="CDC")

    async def fetch(self, config: FetchConfig) -> AsyncIterator[CDCOutbreakRecord]:
        seen: set[str] = set()
        collapsed = 0
        async for record in super().fetch(config):
            if record.outbreak_key in seen:
                collapsed += 1
                continue
            seen.add(record.outbreak_key)
            yield record
        if collapsed:
            logger.info(f"{config.source}: collapsed {collapsed} rows sharing an outbreak key")


CDC_OUTBREAKS = SourceDefinition(
    name="cdc_outbreaks",
    source_tag="CDC",
    agency="CDC",
    fetcher_class=CDCOutbreakFetcher,
    urls=["https://data.cdc.gov/resource/5xkq-dg7x.json"],
    description="CDC National Outbreak Reporting System (NORS)",
    category="foodborne-illness",
    default_url="https://www.cdc.gov/foodsafety/outbreaks/",
    page_size=1000,
    max_pages=10,
    lookback_days=365,
    urgency=UrgencyProfile(base_score=8, keyword_weights=keyword_weights(["foodborne", "multistate"])),
    duplicate_policy=DuplicatePolicy.UPSERT_BY_STRONG_KEY,
)
