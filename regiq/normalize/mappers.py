"""Per-source mappers from raw record variants to the canonical Alert."""

import json
import logging
import re
from typing import TYPE_CHECKING, Callable, Optional

from regiq.ingest.base import (
    CDCOutbreakRecord,
    FDAEnforcementRecord,
    FeedEntryRecord,
    FSISRecallRecord,
    RawRecord,
    ScrapedItemRecord,
)
from regiq.normalize.processor import (
    Alert,
    NormalizationError,
    RecallDetails,
    clean_summary,
    collapse_whitespace,
    infer_product_types,
    normalize_external_id,
    normalize_recall_class,
    parse_date,
    resolve_published_date,
    strip_html,
)

if TYPE_CHECKING:
    from regiq.ingest.sources.base import SourceDefinition

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200


def _dump(raw: dict) -> str:
    return json.dumps(raw, default=str, sort_keys=True)


def _unique(values) -> list[str]:
    seen = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


def _pick_agency(source: "SourceDefinition", text: str) -> str:
    lowered = text.lower()
    for agency, keywords in source.agency_keywords.items():
        if any(k in lowered for k in keywords):
            return agency
    return source.agency


def _title(value: str, source: "SourceDefinition") -> str:
    title = collapse_whitespace(value)[:MAX_TITLE_LENGTH]
    if title and source.title_prefix and not title.startswith(source.title_prefix):
        title = f"{source.title_prefix}{title}"
    return title


def map_fda_enforcement(record: FDAEnforcementRecord, source: "SourceDefinition") -> Optional[Alert]:
    """openFDA enforcement report -> Alert (with recall details)."""
    title = _title(record.product_description or record.reason_for_recall, source)
    if not title:
        return None

    external_id = normalize_external_id(record.recall_number)
    if not external_id:
        raise NormalizationError(f"FDA record without recall_number: {title[:60]}")

    published, placeholder = resolve_published_date(
        record.recall_initiation_date or record.report_date,
        record.fetched_at,
        f"{source.name}:{external_id}",
    )
    classification = normalize_recall_class(record.classification)
    description = collapse_whitespace(record.product_description or record.reason_for_recall)
    inferred = infer_product_types(description)

    country = record.country or "United States"
    if country in ("US", "United States") and record.state:
        jurisdiction = record.state
    else:
        jurisdiction = country

    return Alert(
        external_id=external_id,
        source=source.source_tag,
        agency=source.agency,
        title=title,
        summary=clean_summary(record.reason_for_recall or record.product_description),
        full_content=_dump(record.raw),
        external_url=source.default_url,
        published_date=published,
        date_updated=parse_date(record.termination_date),
        date_is_placeholder=placeholder,
        jurisdiction=jurisdiction,
        locations=_unique([record.state, record.city, record.country]),
        product_types=_unique([record.product_type] + inferred),
        category=source.category,
        region=source.region,
        recall=RecallDetails(
            recall_number=external_id,
            product_name=description[:MAX_TITLE_LENGTH],
            product_description=description,
            classification=classification,
            reason=record.reason_for_recall,
            company_name=record.recalling_firm or "Unknown",
            distribution_pattern=record.distribution_pattern,
            product_type=inferred[0],
            recall_date=parse_date(record.recall_initiation_date),
            publish_date=parse_date(record.report_date) or published,
            agency_source=source.agency,
        ),
    )


def map_fsis_recall(record: FSISRecallRecord, source: "SourceDefinition") -> Optional[Alert]:
    """USDA FSIS recall -> Alert (with recall details)."""
    title = _title(strip_html(record.product_name), source)
    if not title:
        return None

    fallback_id = record.raw.get("id") or record.raw.get("nid")
    external_id = normalize_external_id(
        record.recall_number or (f"FSIS-{fallback_id}" if fallback_id else "")
    )
    if not external_id:
        raise NormalizationError(f"FSIS record without recall number: {title[:60]}")

    published, placeholder = resolve_published_date(
        record.recall_date, record.fetched_at, f"{source.name}:{external_id}"
    )
    summary = clean_summary(record.summary or record.reason)
    product_types = infer_product_types(f"{title} {summary}")
    if product_types == ["other"]:
        product_types = ["meat"]

    locations = [s.strip() for s in re.split(r"[,;]", record.states) if s.strip()]

    return Alert(
        external_id=external_id,
        source=source.source_tag,
        agency=source.agency,
        title=title,
        summary=summary,
        full_content=_dump(record.raw),
        external_url=record.link or source.default_url,
        published_date=published,
        date_is_placeholder=placeholder,
        locations=locations,
        product_types=product_types,
        category=source.category,
        region=source.region,
        recall=RecallDetails(
            recall_number=external_id,
            product_name=title,
            product_description=strip_html(record.summary),
            classification=normalize_recall_class(record.recall_class),
            reason=strip_html(record.reason),
            company_name=record.company_name or "Unknown",
            distribution_pattern=record.states,
            product_type=product_types[0],
            recall_date=parse_date(record.recall_date),
            publish_date=published,
            agency_source=source.agency,
        ),
    )


def map_cdc_outbreak(record: CDCOutbreakRecord, source: "SourceDefinition") -> Optional[Alert]:
    """NORS outbreak row -> Alert. Title and id are synthesized from year/state/pathogen."""
    pathogen = record.pathogen or "Unknown Pathogen"
    state = record.state or "Unknown"
    food = record.food or "Unknown"
    year = record.year or str(record.fetched_at.year)

    title = _title(f"{pathogen} Outbreak in {state} ({year})", source)
    external_id = normalize_external_id(
        re.sub(r"\s+", "-", f"CDC-OUTBREAK-{year}-{state}-{pathogen}")
    )
    published, placeholder = resolve_published_date(
        record.year, record.fetched_at, f"{source.name}:{external_id}"
    )

    summary = f"{pathogen} outbreak linked to {food} in {state}"
    if record.illnesses or record.hospitalizations or record.deaths:
        summary += (
            f" ({record.illnesses} illnesses, {record.hospitalizations} hospitalizations, "
            f"{record.deaths} deaths)"
        )

    return Alert(
        external_id=external_id,
        source=source.source_tag,
        agency=source.agency,
        title=title,
        summary=clean_summary(summary),
        full_content=_dump(record.raw),
        external_url=source.default_url,
        published_date=published,
        date_is_placeholder=placeholder,
        jurisdiction=state,
        locations=_unique([record.state]),
        product_types=infer_product_types(food),
        category=source.category,
        region=source.region,
    )


def map_feed_entry(record: FeedEntryRecord, source: "SourceDefinition") -> Optional[Alert]:
    """RSS/Atom entry -> Alert."""
    title = _title(strip_html(record.title), source)
    if not title:
        return None

    summary = clean_summary(record.description)
    external_id = normalize_external_id(record.link or record.guid or title)
    published, placeholder = resolve_published_date(
        record.published, record.fetched_at, f"{source.name}:{title[:60]}"
    )

    return Alert(
        external_id=external_id,
        source=source.source_tag,
        agency=_pick_agency(source, f"{title} {summary}"),
        title=title,
        summary=summary,
        full_content=_dump(record.raw),
        external_url=record.link or record.feed_url or source.default_url,
        published_date=published,
        date_is_placeholder=placeholder,
        product_types=infer_product_types(f"{title} {summary}"),
        category=source.category,
        region=source.region,
    )


def map_scraped_item(record: ScrapedItemRecord, source: "SourceDefinition") -> Optional[Alert]:
    """HTML listing node -> Alert."""
    text = collapse_whitespace(record.text)
    if len(text) < source.min_text_length:
        return None

    title = collapse_whitespace(record.title) or text[:100]
    if not title or len(title) < source.min_title_length:
        return None
    title = _title(title, source)

    external_id = normalize_external_id(record.link or title)
    published, placeholder = resolve_published_date(
        record.date_text, record.fetched_at, f"{source.name}:{title[:60]}"
    )
    summary = clean_summary(text)

    return Alert(
        external_id=external_id,
        source=source.source_tag,
        agency=_pick_agency(source, f"{title} {summary}"),
        title=title,
        summary=summary,
        full_content=_dump(record.raw),
        external_url=record.link or record.page_url or source.default_url,
        published_date=published,
        date_is_placeholder=placeholder,
        product_types=infer_product_types(f"{title} {summary}"),
        category=source.category,
        region=source.region,
    )


MAPPERS: dict[type, Callable[..., Optional[Alert]]] = {
    FDAEnforcementRecord: map_fda_enforcement,
    FSISRecallRecord: map_fsis_recall,
    CDCOutbreakRecord: map_cdc_outbreak,
    FeedEntryRecord: map_feed_entry,
    ScrapedItemRecord: map_scraped_item,
}


class AlertNormalizer:
    """Dispatch raw records to their mapper."""

    def normalize(self, raw: RawRecord, source: "SourceDefinition") -> Optional[Alert]:
        """
        Map a raw record to an Alert.

        Args:
            raw: Any RawRecord variant
            source: Definition of the source the record came from

        Returns:
            Alert, or None when the record has no usable title (dropped)

        Raises:
            NormalizationError: Unknown variant or missing strong key
        """
        mapper = MAPPERS.get(type(raw))
        if mapper is None:
            raise NormalizationError(f"No mapper for record type {type(raw).__name__}")

        alert = mapper(raw, source)
        if alert is None:
            logger.debug(f"{source.name}: dropped record without usable title")
        return alert


# Global normalizer instance
normalizer = AlertNormalizer()
