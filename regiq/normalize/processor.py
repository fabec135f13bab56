"""Canonical alert shape and normalization helpers."""

import hashlib
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

from selectolax.parser import HTMLParser

from regiq.config import settings

logger = logging.getLogger(__name__)

# Product type keywords for free-text inference
PRODUCT_TYPE_KEYWORDS = {
    "meat": ["beef", "pork", "chicken", "meat", "turkey", "poultry", "sausage"],
    "dairy": ["milk", "cheese", "yogurt", "dairy", "butter", "ice cream"],
    "produce": ["lettuce", "spinach", "produce", "vegetable", "fruit", "sprouts"],
    "seafood": ["seafood", "fish", "shellfish", "shrimp", "oyster", "salmon", "tuna"],
    "eggs": ["egg products", "eggs"],
}

_DATE_FORMATS = (
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%b. %d, %Y",
    "%d %B %Y",
)

_CLASS_PATTERN = re.compile(r"\bclass\s+(iii|ii|i|3|2|1)\b", re.IGNORECASE)


class NormalizationError(Exception):
    """Raised when a raw record cannot be mapped to an Alert."""

    pass


@dataclass
class RecallDetails:
    """Recall-specific fields written to the ``recalls`` table."""

    recall_number: str
    product_name: str
    product_description: str = ""
    classification: str = ""
    reason: str = ""
    company_name: str = "Unknown"
    distribution_pattern: str = ""
    product_type: str = "other"
    recall_date: Optional[datetime] = None
    publish_date: Optional[datetime] = None
    agency_source: str = ""


@dataclass
class Alert:
    """Canonical normalized regulatory alert."""

    external_id: str
    source: str
    agency: str
    title: str
    summary: str
    full_content: str
    published_date: datetime
    external_url: str = ""
    date_updated: Optional[datetime] = None
    date_is_placeholder: bool = False
    urgency: str = "Low"
    urgency_score: int = 0
    jurisdiction: str = "United States"
    locations: list[str] = field(default_factory=list)
    product_types: list[str] = field(default_factory=list)
    category: str = ""
    region: str = "US"
    recall: Optional[RecallDetails] = None

    @property
    def hash(self) -> str:
        return compute_alert_hash(
            self.source, self.external_id, self.date_updated or self.published_date
        )

    @property
    def recall_class(self) -> str:
        """Recall class ("Class I".."Class III") if known, else ""."""
        if self.recall and self.recall.classification:
            return self.recall.classification
        return detect_recall_class(f"{self.title} {self.summary}")

    @property
    def classification_text(self) -> str:
        return f"{self.title} {self.summary}"


def collapse_whitespace(text: Optional[str]) -> str:
    """Collapse runs of whitespace to single spaces and strip the ends."""
    if not text:
        return ""
    return " ".join(text.split())


def strip_html(text: Optional[str]) -> str:
    """Remove markup and decode entities, returning whitespace-collapsed text."""
    if not text:
        return ""
    if "<" not in text and "&" not in text:
        return collapse_whitespace(text)

    parser = HTMLParser(text)
    node = parser.body or parser.root
    if node is None:
        return ""
    return collapse_whitespace(node.text(separator=" "))


def truncate_summary(text: str, max_length: Optional[int] = None) -> str:
    """Bound a summary to ``max_length`` characters, ending in "..." when cut."""
    if max_length is None:
        max_length = settings.summary_max_length
    if len(text) <= max_length:
        return text
    return text[: max_length - 3].rstrip() + "..."


def clean_summary(text: Optional[str], max_length: Optional[int] = None) -> str:
    """strip_html + truncate_summary."""
    return truncate_summary(strip_html(text), max_length)


def normalize_external_id(value) -> str:
    """Trim, upper-case and collapse whitespace in a source identifier."""
    if value is None:
        return ""
    return collapse_whitespace(str(value)).upper()


def compute_alert_hash(source: str, external_id: str, date_value) -> str:
    """
    Stable fingerprint for an alert.

    Args:
        source: Source tag
        external_id: Source-scoped identifier (normalized here)
        date_value: date_updated if known, else published_date

    Returns:
        sha256 hex digest of ``source:external_id:date``
    """
    if isinstance(date_value, datetime):
        date_part = date_value.isoformat()
    else:
        date_part = str(date_value or "")
    payload = f"{source}:{normalize_external_id(external_id)}:{date_part}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_date(value) -> Optional[datetime]:
    """
    Parse the date formats seen across sources.

    Handles openFDA ``YYYYMMDD``, ISO-8601, RFC-822 (RSS ``pubDate``),
    ``MM/DD/YYYY`` and long-form ``October 3, 2025``. Aware datetimes are
    converted to naive UTC. Returns None for empty or unrecognized input.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return _to_naive_utc(value)

    text = collapse_whitespace(str(value))
    if not text:
        return None

    if len(text) == 8 and text.isdigit():
        try:
            return datetime.strptime(text, "%Y%m%d")
        except ValueError:
            return None

    if len(text) == 4 and text.isdigit():
        return datetime(int(text), 1, 1)

    try:
        return _to_naive_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        pass

    try:
        return _to_naive_utc(parsedate_to_datetime(text))
    except (TypeError, ValueError, IndexError):
        pass

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue

    return None


def detect_recall_class(text: str) -> str:
    """Find "Class I/II/III" in free text."""
    match = _CLASS_PATTERN.search(text or "")
    if not match:
        return ""
    return normalize_recall_class(match.group(0))


def normalize_recall_class(value: Optional[str]) -> str:
    """Map raw classification strings ("Class II", "class 2", "II") to "Class I".."Class III"."""
    if not value:
        return ""
    lowered = value.lower().replace("class", "").strip()
    if lowered in ("iii", "3"):
        return "Class III"
    if lowered in ("ii", "2"):
        return "Class II"
    if lowered in ("i", "1"):
        return "Class I"
    return ""


def infer_product_types(text: str) -> list[str]:
    """Product categories mentioned in ``text``; ["other"] when nothing matches."""
    lowered = (text or "").lower()
    found = [
        product_type
        for product_type, keywords in PRODUCT_TYPE_KEYWORDS.items()
        if any(re.search(rf"\b{re.escape(k)}\b", lowered) for k in keywords)
    ]
    return found or ["other"]


def resolve_published_date(value, fetched_at: datetime, context: str) -> tuple[datetime, bool]:
    """
    Parse a published date, falling back to the fetch time.

    Returns:
        (published_date, date_is_placeholder)
    """
    parsed = parse_date(value)
    if parsed is not None:
        return parsed, False
    logger.warning(
        f"No usable published date for {context} (raw={str(value)[:40]!r}); "
        f"using fetch time {fetched_at.isoformat()} as placeholder"
    )
    return fetched_at, True
