"""USDA FSIS recalls and public health alerts."""

from regiq.classify.urgency import UrgencyProfile
from regiq.dedupe.manager import DuplicatePolicy
from regiq.ingest.base import FetchConfig, FSISRecallRecord
from regiq.ingest.fetchers.json_api import JSONAPIFetcher
from regiq.ingest.sources.base import SourceDefinition, keyword_weights


class FSISRecallFetcher(JSONAPIFetcher):
    """The FSIS content API serves every recall in one JSON array."""

    def make_record(self, item: dict, config: FetchConfig) -> FSISRecallRecord:
        return FSISRecallRecord.from_api(item, source="FSIS")


FSIS_RECALLS = SourceDefinition(
    name="fsis_recalls",
    source_tag="FSIS",
    agency="FSIS",
    fetcher_class=FSISRecallFetcher,
    urls=["https://www.fsis.usda.gov/fsis-content/api/recalls"],
    description="USDA FSIS meat, poultry and egg product recalls",
    category="recall",
    default_url="https://www.fsis.usda.gov/recalls",
    max_pages=1,
    urgency=UrgencyProfile(
        base_score=9,
        keyword_weights=keyword_weights(["public health alert", "adulterated", "misbranded"]),
    ),
    duplicate_policy=DuplicatePolicy.UPSERT_BY_STRONG_KEY,
    writes_recalls=True,
    # The API has no date filter, so older recalls are dropped after normalization
    enforce_lookback=True,
)
