"""openFDA enforcement reports (food, drug and device recalls)."""

from datetime import datetime, timedelta
from typing import Any, Optional

from regiq.classify.urgency import UrgencyProfile
from regiq.dedupe.manager import DuplicatePolicy
from regiq.ingest.base import FDAEnforcementRecord, FetchConfig
from regiq.ingest.fetchers.json_api import JSONAPIFetcher
from regiq.ingest.http_client import RetryPolicy
from regiq.ingest.sources.base import SourceDefinition, keyword_weights

OPENFDA_BASE_URL = "https://api.fda.gov"
ENFORCEMENT_ENDPOINTS = [
    "/food/enforcement.json",
    "/drug/enforcement.json",
    "/device/enforcement.json",
]


class OpenFDAEnforcementFetcher(JSONAPIFetcher):
    """Pages through openFDA enforcement results with ``limit``/``skip``."""

    def build_params(self, config: FetchConfig, page: int) -> Optional[dict[str, Any]]:
        end = datetime.utcnow()
        start = end - timedelta(days=config.lookback_days)
        return {
            "search": f"recall_initiation_date:[{start:%Y%m%d} TO {end:%Y%m%d}]",
            "sort": "recall_initiation_date:desc",
            "limit": config.page_size,
            "skip": page * config.page_size,
        }

    def is_empty_status(self, status_code: int) -> bool:
        # openFDA answers 404 NOT_FOUND when a search matches nothing
        return status_code == 404

    def make_record(self, item: dict, config: FetchConfig) -> FDAEnforcementRecord:
        return FDAEnforcementRecord.from_api(item, source="FDA")


FDA_ENFORCEMENT = SourceDefinition(
    name="fda_enforcement",
    source_tag="FDA",
    agency="FDA",
    fetcher_class=OpenFDAEnforcementFetcher,
    urls=[f"{OPENFDA_BASE_URL}{endpoint}" for endpoint in ENFORCEMENT_ENDPOINTS],
    description="openFDA food, drug and device enforcement reports",
    category="recall",
    default_url="https://www.fda.gov/safety/recalls-market-withdrawals-safety-alerts",
    retry=RetryPolicy.from_settings(name="fda_enforcement", timeout=45.0),
    page_size=1000,
    max_pages=3,
    urgency=UrgencyProfile(base_score=9, keyword_weights=keyword_weights(["undeclared", "listeria"])),
    duplicate_policy=DuplicatePolicy.UPSERT_BY_STRONG_KEY,
    writes_recalls=True,
)
