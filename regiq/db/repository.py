"""Datastore access for the sync pipeline."""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from regiq.db.models import Alert as AlertRow
from regiq.db.models import AlertSyncLog, DataFreshness, Recall, SyncLog
from regiq.normalize.processor import Alert, RecallDetails

logger = logging.getLogger(__name__)

# Alert columns rewritten when a strong-key source reports a change
CONTENT_FIELDS = (
    "agency",
    "title",
    "summary",
    "full_content",
    "external_url",
    "published_date",
    "date_updated",
    "date_is_placeholder",
    "urgency",
    "urgency_score",
    "jurisdiction",
    "locations",
    "product_types",
    "category",
    "region",
    "hash",
)


class DatastoreUnavailableError(RuntimeError):
    """Raised when the datastore cannot be reached at all."""

    pass


def alert_values(alert: Alert) -> dict:
    """Column values for an Alert row."""
    return {
        "external_id": alert.external_id,
        "source": alert.source,
        "agency": alert.agency,
        "title": alert.title,
        "summary": alert.summary,
        "full_content": alert.full_content,
        "external_url": alert.external_url,
        "published_date": alert.published_date,
        "date_updated": alert.date_updated,
        "date_is_placeholder": alert.date_is_placeholder,
        "urgency": alert.urgency,
        "urgency_score": alert.urgency_score,
        "jurisdiction": alert.jurisdiction,
        "locations": list(alert.locations),
        "product_types": list(alert.product_types),
        "category": alert.category,
        "region": alert.region,
        "hash": alert.hash,
    }


class AlertRepository:
    """Queries and writes used by the deduplicator and orchestrator."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def ping(self):
        """
        Check the datastore is reachable.

        Raises:
            DatastoreUnavailableError: If a trivial query fails
        """
        try:
            await self.db.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            raise DatastoreUnavailableError(f"Datastore unreachable: {e}") from e

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    async def find_recent_by_title(
        self,
        title: str,
        source: str,
        around: datetime,
        window_days: int,
    ) -> Optional[AlertRow]:
        """Alert with equal (title, source) published within ``window_days`` of ``around``."""
        window = timedelta(days=window_days)
        query = (
            select(AlertRow)
            .where(
                AlertRow.title == title,
                AlertRow.source == source,
                AlertRow.published_date >= around - window,
                AlertRow.published_date <= around + window,
            )
            .order_by(AlertRow.published_date.desc())
            .limit(1)
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def find_by_strong_key(self, source: str, external_id: str) -> Optional[AlertRow]:
        query = (
            select(AlertRow)
            .where(AlertRow.source == source, AlertRow.external_id == external_id)
            .order_by(AlertRow.id)
            .limit(1)
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def insert_alert(self, alert: Alert) -> AlertRow:
        row = AlertRow(**alert_values(alert))
        self.db.add(row)
        await self.db.commit()
        return row

    async def update_alert(self, row: AlertRow, alert: Alert) -> AlertRow:
        """Rewrite content fields in place; created_at is left untouched."""
        values = alert_values(alert)
        for name in CONTENT_FIELDS:
            setattr(row, name, values[name])
        row.updated_at = datetime.utcnow()
        await self.db.commit()
        return row

    async def count_alerts(self, source: Optional[str] = None) -> int:
        query = select(func.count(AlertRow.id))
        if source:
            query = query.where(AlertRow.source == source)
        result = await self.db.execute(query)
        return result.scalar_one()

    # ------------------------------------------------------------------
    # Recalls
    # ------------------------------------------------------------------

    async def upsert_recall(self, recall: RecallDetails, source: str) -> str:
        """Insert or update a recall by recall number. Returns "inserted" or "updated"."""
        result = await self.db.execute(
            select(Recall).where(Recall.recall_number == recall.recall_number)
        )
        row = result.scalar_one_or_none()

        values = {
            "product_name": recall.product_name,
            "product_description": recall.product_description,
            "classification": recall.classification or None,
            "reason": recall.reason,
            "company_name": recall.company_name,
            "distribution_pattern": recall.distribution_pattern,
            "product_type": recall.product_type,
            "recall_date": recall.recall_date,
            "publish_date": recall.publish_date,
            "source": source,
            "agency_source": recall.agency_source,
        }

        if row is None:
            self.db.add(Recall(recall_number=recall.recall_number, **values))
            action = "inserted"
        else:
            for name, value in values.items():
                setattr(row, name, value)
            row.updated_at = datetime.utcnow()
            action = "updated"

        await self.db.commit()
        return action

    # ------------------------------------------------------------------
    # Audit trail
    # ------------------------------------------------------------------

    async def create_sync_log(
        self,
        run_id: str,
        job_name: str,
        trigger: str,
        started_at: datetime,
    ) -> SyncLog:
        sync_log = SyncLog(
            run_id=run_id,
            job_name=job_name,
            trigger=trigger,
            status="running",
            started_at=started_at,
        )
        self.db.add(sync_log)
        await self.db.commit()
        await self.db.refresh(sync_log)
        return sync_log

    async def finalize_sync_log(
        self,
        sync_log_id: Optional[int],
        status: str,
        records_processed: int,
        records_synced: int,
        error_message: Optional[str],
        sync_metadata: dict,
        completed_at: datetime,
        run_id: Optional[str] = None,
        job_name: str = "sync_all",
        trigger: Optional[str] = None,
        started_at: Optional[datetime] = None,
    ) -> SyncLog:
        """Close out a run's sync_logs row, creating it if the run never opened one."""
        sync_log = await self.db.get(SyncLog, sync_log_id) if sync_log_id else None
        if sync_log is None:
            sync_log = SyncLog(
                run_id=run_id,
                job_name=job_name,
                trigger=trigger,
                started_at=started_at or completed_at,
            )
            self.db.add(sync_log)

        sync_log.status = status
        sync_log.records_processed = records_processed
        sync_log.records_synced = records_synced
        sync_log.error_message = error_message[:2000] if error_message else None
        sync_log.sync_metadata = sync_metadata
        sync_log.completed_at = completed_at
        await self.db.commit()
        return sync_log

    async def add_source_log(self, sync_log_id: Optional[int], result) -> AlertSyncLog:
        """Persist one source's SyncResult."""
        row = AlertSyncLog(
            sync_log_id=sync_log_id,
            source_name=result.source,
            status="success" if result.success else "failed",
            alerts_fetched=result.alerts_fetched,
            alerts_inserted=result.alerts_inserted,
            alerts_updated=result.alerts_updated,
            alerts_skipped=result.alerts_skipped,
            errors=list(result.errors),
            started_at=result.started_at,
            finished_at=result.finished_at,
        )
        self.db.add(row)
        await self.db.commit()
        return row

    async def update_freshness(
        self,
        source_name: str,
        success: bool,
        records_fetched: int,
        attempted_at: datetime,
        error_message: Optional[str] = None,
    ) -> DataFreshness:
        result = await self.db.execute(
            select(DataFreshness).where(DataFreshness.source_name == source_name)
        )
        row = result.scalar_one_or_none()
        if row is None:
            row = DataFreshness(source_name=source_name)
            self.db.add(row)

        row.last_attempt = attempted_at
        row.fetch_status = "success" if success else "failed"
        row.records_fetched = records_fetched
        row.error_message = error_message[:2000] if error_message else None
        if success:
            row.last_successful_fetch = attempted_at
        row.updated_at = datetime.utcnow()
        await self.db.commit()
        return row

    async def recent_sync_logs(self, limit: int = 20) -> list[SyncLog]:
        result = await self.db.execute(
            select(SyncLog).order_by(SyncLog.id.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def freshness(self) -> list[DataFreshness]:
        result = await self.db.execute(select(DataFreshness).order_by(DataFreshness.source_name))
        return list(result.scalars().all())
