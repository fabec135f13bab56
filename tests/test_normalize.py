"""Tests for normalization helpers and per-source mappers."""

from datetime import datetime

import pytest

from regiq.classify.urgency import UrgencyContext, classify
from regiq.ingest.base import (
    CDCOutbreakRecord,
    FDAEnforcementRecord,
    FeedEntryRecord,
    FSISRecallRecord,
    ScrapedItemRecord,
)
from regiq.ingest.sources.cdc import CDC_OUTBREAKS
from regiq.ingest.sources.fda import FDA_ENFORCEMENT
from regiq.ingest.sources.fsis import FSIS_RECALLS
from regiq.ingest.sources.feeds import FDA_FOOD_SAFETY_RSS, FTC_RSS
from regiq.ingest.sources.noaa import NOAA_FISHERIES
from regiq.normalize.mappers import normalizer
from regiq.normalize.processor import (
    NormalizationError,
    compute_alert_hash,
    infer_product_types,
    normalize_recall_class,
    parse_date,
    strip_html,
    truncate_summary,
)

FETCHED_AT = datetime(2025, 1, 10, 12, 0, 0)


def test_entry_without_title_is_dropped():
    record = FeedEntryRecord(source="FTC", title="", description="Some notice", fetched_at=FETCHED_AT)
    assert normalizer.normalize(record, FTC_RSS) is None


def test_missing_date_uses_fetch_time_as_placeholder():
    record = FeedEntryRecord(
        source="FTC",
        title="FTC settles deceptive labeling case",
        link="https://www.ftc.gov/news/1",
        published="not a date",
        fetched_at=FETCHED_AT,
    )

    alert = normalizer.normalize(record, FTC_RSS)

    assert alert.published_date == FETCHED_AT
    assert alert.date_is_placeholder is True


def test_feed_entry_fields():
    record = FeedEntryRecord(
        source="FDA_FOOD_SAFETY",
        title="Acme recalls <b>cheese</b>",
        description="<p>Possible <i>Listeria</i> contamination &amp; illness</p>",
        link="https://www.fda.gov/safety/recalls/acme",
        published="Mon, 06 Jan 2025 15:30:00 GMT",
        fetched_at=FETCHED_AT,
    )

    alert = normalizer.normalize(record, FDA_FOOD_SAFETY_RSS)

    assert alert.title == "Acme recalls cheese"
    assert alert.summary == "Possible Listeria contamination & illness"
    assert alert.external_id == "HTTPS://WWW.FDA.GOV/SAFETY/RECALLS/ACME"
    assert alert.external_url == "https://www.fda.gov/safety/recalls/acme"
    assert alert.published_date == datetime(2025, 1, 6, 15, 30)
    assert alert.date_is_placeholder is False
    assert alert.source == "FDA_FOOD_SAFETY"
    assert alert.agency == "FDA"
    assert "dairy" in alert.product_types


def test_usda_items_in_fda_feed_attributed_to_fsis():
    record = FeedEntryRecord(
        source="FDA_FOOD_SAFETY",
        title="USDA announces recall of poultry products",
        published="2025-01-06",
        fetched_at=FETCHED_AT,
    )
    alert = normalizer.normalize(record, FDA_FOOD_SAFETY_RSS)
    assert alert.agency == "FSIS"


def test_fda_enforcement_mapping():
    record = FDAEnforcementRecord.from_api({
        "recall_number": " f-0123-2025 ",
        "product_description": "Ready-to-eat chicken salad",
        "reason_for_recall": "Potential Listeria monocytogenes contamination",
        "classification": "Class II",
        "recall_initiation_date": "20250106",
        "report_date": "20250108",
        "recalling_firm": "Acme Foods",
        "state": "CA",
        "country": "United States",
    })

    alert = normalizer.normalize(record, FDA_ENFORCEMENT)

    assert alert.external_id == "F-0123-2025"
    assert alert.source == "FDA"
    assert alert.published_date == datetime(2025, 1, 6)
    assert alert.jurisdiction == "CA"
    assert "meat" in alert.product_types
    assert alert.recall.classification == "Class II"
    assert alert.recall.company_name == "Acme Foods"
    assert alert.recall.publish_date == datetime(2025, 1, 8)
    assert alert.recall_class == "Class II"


def test_fda_record_without_recall_number_raises():
    record = FDAEnforcementRecord(source="FDA", recall_number="", product_description="Salad")
    with pytest.raises(NormalizationError):
        normalizer.normalize(record, FDA_ENFORCEMENT)


def _classified(record, source):
    alert = normalizer.normalize(record, source)
    context = UrgencyContext(
        profile=source.urgency,
        published_at=alert.published_date,
        recall_class=alert.recall_class,
    )
    return alert, classify(alert.classification_text, context, now=FETCHED_AT)


def test_unclassified_fda_recall_gets_no_class_bonus():
    def record(classification):
        return FDAEnforcementRecord(
            source="FDA",
            recall_number="F-0200-2025",
            product_description="Frozen vegetable medley",
            reason_for_recall="Undeclared allergen",
            classification=classification,
            report_date="20250108",
            fetched_at=FETCHED_AT,
        )

    unclassified, unclassified_urgency = _classified(record(""), FDA_ENFORCEMENT)
    class_two, class_two_urgency = _classified(record("Class II"), FDA_ENFORCEMENT)

    assert unclassified.recall.classification == ""
    assert unclassified.recall_class == ""
    assert class_two.recall_class == "Class II"
    assert class_two_urgency.score >= unclassified_urgency.score
    assert class_two_urgency.level.rank >= unclassified_urgency.level.rank


def test_fsis_public_health_alert_is_not_class_one():
    record = FSISRecallRecord(
        source="FSIS",
        recall_number="PHA-01082025",
        product_name="Ground pork products",
        summary="Products may contain foreign material",
        recall_class="Public Health Alert",
        recall_date="2025-01-08",
        fetched_at=FETCHED_AT,
    )

    alert, _ = _classified(record, FSIS_RECALLS)

    assert alert.recall.classification == ""
    assert alert.recall_class == ""


def test_cdc_outbreak_title_and_id_synthesized():
    record = CDCOutbreakRecord(
        source="CDC",
        year="2024",
        state="Multistate",
        pathogen="Salmonella Enteritidis",
        food="Eggs",
        illnesses=42,
        fetched_at=FETCHED_AT,
    )

    alert = normalizer.normalize(record, CDC_OUTBREAKS)

    assert alert.title == "Salmonella Enteritidis Outbreak in Multistate (2024)"
    assert alert.external_id == "CDC-OUTBREAK-2024-MULTISTATE-SALMONELLA-ENTERITIDIS"
    assert alert.published_date == datetime(2024, 1, 1)
    assert "42 illnesses" in alert.summary
    assert alert.product_types == ["eggs"]


def test_scraped_item_length_filters_and_prefix():
    short = ScrapedItemRecord(source="NOAA", title="Closure", text="Closure", fetched_at=FETCHED_AT)
    assert normalizer.normalize(short, NOAA_FISHERIES) is None

    item = ScrapedItemRecord(
        source="NOAA",
        title="Emergency closure of Gulf shrimp fishery",
        text="Emergency closure of Gulf shrimp fishery after contamination was detected",
        link="https://www.fisheries.noaa.gov/news/closure-gulf",
        date_text="January 6, 2025",
        fetched_at=FETCHED_AT,
    )
    alert = normalizer.normalize(item, NOAA_FISHERIES)

    assert alert.title == "NOAA Fisheries: Emergency closure of Gulf shrimp fishery"
    assert alert.published_date == datetime(2025, 1, 6)
    assert "seafood" in alert.product_types


def test_unknown_record_type_rejected():
    with pytest.raises(NormalizationError):
        normalizer.normalize(object(), FTC_RSS)


def test_hash_is_deterministic_and_date_sensitive():
    published = datetime(2025, 1, 6)
    first = compute_alert_hash("FDA", "f-0123-2025", published)
    second = compute_alert_hash("FDA", " F-0123-2025", published)
    later = compute_alert_hash("FDA", "F-0123-2025", datetime(2025, 2, 1))

    assert first == second
    assert first != later
    assert len(first) == 64


def test_strip_html_decodes_entities_and_collapses_whitespace():
    assert strip_html("<p>Recall of <b>cheese</b>\n\n &amp; milk</p>") == "Recall of cheese & milk"
    assert strip_html("  plain   text ") == "plain text"
    assert strip_html(None) == ""


def test_truncate_summary_bounds_length():
    text = "a" * 600
    truncated = truncate_summary(text, max_length=500)
    assert len(truncated) == 500
    assert truncated.endswith("...")
    assert truncate_summary("short", max_length=500) == "short"


@pytest.mark.parametrize("value,expected", [
    ("20250106", datetime(2025, 1, 6)),
    ("2025-01-06T10:00:00Z", datetime(2025, 1, 6, 10, 0)),
    ("Mon, 06 Jan 2025 15:30:00 GMT", datetime(2025, 1, 6, 15, 30)),
    ("01/06/2025", datetime(2025, 1, 6)),
    ("January 6, 2025", datetime(2025, 1, 6)),
    ("2024", datetime(2024, 1, 1)),
    ("", None),
    ("soon", None),
])
def test_parse_date_formats(value, expected):
    assert parse_date(value) == expected


def test_recall_class_normalization():
    assert normalize_recall_class("Class I") == "Class I"
    assert normalize_recall_class("class 2") == "Class II"
    assert normalize_recall_class("III") == "Class III"
    assert normalize_recall_class("Public Health Alert") == ""


def test_infer_product_types():
    assert infer_product_types("Ground beef and cheddar cheese") == ["meat", "dairy"]
    assert infer_product_types("Dietary supplement") == ["other"]
