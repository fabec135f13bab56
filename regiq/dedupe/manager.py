"""Duplicate detection and upsert policies for alerts."""

import logging
from dataclasses import replace
from enum import Enum
from typing import Optional

from regiq.config import settings
from regiq.db.models import Alert as AlertRow
from regiq.db.repository import AlertRepository, alert_values
from regiq.normalize.processor import Alert

logger = logging.getLogger(__name__)

# Fields compared to decide whether a strong-key match changed.
# Urgency is left out: its recency bonus drifts between runs on its own.
CHANGE_FIELDS = (
    "agency",
    "title",
    "summary",
    "full_content",
    "external_url",
    "published_date",
    "date_updated",
    "jurisdiction",
    "locations",
    "product_types",
    "category",
    "region",
)


class DuplicatePolicy(str, Enum):
    """How a source reconciles an incoming alert with stored ones."""

    SKIP_ONLY = "skip_only"
    UPSERT_BY_STRONG_KEY = "upsert_by_strong_key"


class UpsertAction(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    SKIPPED = "skipped"


def changed_fields(row: AlertRow, alert: Alert) -> list[str]:
    """Names of content fields whose stored value differs from ``alert``."""
    values = alert_values(alert)
    fields = CHANGE_FIELDS
    if alert.date_is_placeholder:
        # A placeholder date is the fetch time and says nothing about the item
        fields = tuple(f for f in fields if f != "published_date")
    return [name for name in fields if getattr(row, name) != values[name]]


class Deduplicator:
    """
    Applies one source's duplicate policy against the datastore.

    Every write is committed before returning, so a later record in the
    same run sees the earlier ones.
    """

    def __init__(
        self,
        repository: AlertRepository,
        policy: DuplicatePolicy = DuplicatePolicy.SKIP_ONLY,
        window_days: Optional[int] = None,
    ):
        self.repository = repository
        self.policy = policy
        self.window_days = window_days if window_days is not None else settings.duplicate_window_days

    async def find_existing(self, alert: Alert) -> Optional[AlertRow]:
        if self.policy == DuplicatePolicy.UPSERT_BY_STRONG_KEY:
            return await self.repository.find_by_strong_key(alert.source, alert.external_id)
        return await self.repository.find_recent_by_title(
            alert.title, alert.source, alert.published_date, self.window_days
        )

    async def is_duplicate(self, alert: Alert) -> bool:
        """
        Whether an equivalent alert is already stored.

        Skip-only: equal (title, source) published within the window of the
        candidate's published date. Strong key: equal (source, external_id).
        """
        return await self.find_existing(alert) is not None

    async def upsert(self, alert: Alert) -> UpsertAction:
        """
        Insert, update or skip an alert according to the policy.

        Returns:
            UpsertAction.INSERTED, UPDATED or SKIPPED
        """
        existing = await self.find_existing(alert)

        if existing is None:
            await self.repository.insert_alert(alert)
            return UpsertAction.INSERTED

        if self.policy == DuplicatePolicy.SKIP_ONLY:
            logger.debug(f"Duplicate skipped: {alert.source} '{alert.title[:60]}'")
            return UpsertAction.SKIPPED

        changes = changed_fields(existing, alert)
        if not changes:
            return UpsertAction.SKIPPED

        if alert.date_is_placeholder:
            alert = replace(
                alert,
                published_date=existing.published_date,
                date_is_placeholder=existing.date_is_placeholder,
            )

        logger.info(
            f"Updating {alert.source}:{alert.external_id} (changed: {', '.join(changes)})"
        )
        await self.repository.update_alert(existing, alert)
        return UpsertAction.UPDATED
