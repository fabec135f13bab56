"""Sync orchestrator: fetch -> normalize -> classify -> dedupe -> log, per source."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional
from uuid import uuid4

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from regiq import metrics
from regiq.classify.urgency import UrgencyContext, classify
from regiq.config import settings
from regiq.db.repository import AlertRepository, DatastoreUnavailableError
from regiq.dedupe.manager import Deduplicator, UpsertAction
from regiq.ingest.base import RawRecord
from regiq.ingest.http_client import (
    PermanentSourceError,
    RateLimitedError,
    SourceFetchError,
    TransientFetchError,
)
from regiq.ingest.registry import SourceRegistry
from regiq.ingest.sources.base import SourceDefinition
from regiq.logging_config import get_logger
from regiq.normalize.mappers import normalizer

logger = logging.getLogger(__name__)

MAX_LOGGED_ERRORS = 50


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() + "Z" if value else None


def _error_type(exc: Exception) -> str:
    if isinstance(exc, RateLimitedError):
        return "429"
    if isinstance(exc, PermanentSourceError):
        return str(exc.status_code) if exc.status_code else "permanent"
    if isinstance(exc, TransientFetchError):
        return "transient"
    return type(exc).__name__


@dataclass
class SyncResult:
    """Outcome of one source within one run."""

    source: str
    success: bool = False
    started_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None
    alerts_fetched: int = 0
    alerts_inserted: int = 0
    alerts_updated: int = 0
    alerts_skipped: int = 0
    errors: List[str] = field(default_factory=list)
    fatal_error: Optional[str] = None
    record_errors: int = 0

    def record(self, action: UpsertAction):
        if action == UpsertAction.INSERTED:
            self.alerts_inserted += 1
        elif action == UpsertAction.UPDATED:
            self.alerts_updated += 1
        else:
            self.alerts_skipped += 1

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "success": self.success,
            "startTime": _iso(self.started_at),
            "endTime": _iso(self.finished_at),
            "alertsFetched": self.alerts_fetched,
            "alertsInserted": self.alerts_inserted,
            "alertsUpdated": self.alerts_updated,
            "alertsSkipped": self.alerts_skipped,
            "errors": list(self.errors),
        }


@dataclass
class SyncRunSummary:
    """Aggregate outcome of one orchestrator invocation."""

    run_id: str
    trigger: str = "manual"
    status: str = "pending"  # pending -> running -> success | partial_success | failed
    success: bool = False
    results: List[SyncResult] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def total_fetched(self) -> int:
        return sum(r.alerts_fetched for r in self.results)

    @property
    def total_inserted(self) -> int:
        return sum(r.alerts_inserted for r in self.results)

    @property
    def total_updated(self) -> int:
        return sum(r.alerts_updated for r in self.results)

    @property
    def total_skipped(self) -> int:
        return sum(r.alerts_skipped for r in self.results)

    @property
    def total_errors(self) -> int:
        return sum(len(r.errors) for r in self.results)

    def finish(self):
        """
        Derive the final status from per-source results.

        Every source was attempted by the time this runs, so the outcome is
        "success" or "partial_success"; "failed" belongs to runs that never
        reached a source. ``success`` is false when no source succeeded.
        """
        self.finished_at = datetime.utcnow()
        succeeded = [r for r in self.results if r.success]
        failed = [r for r in self.results if not r.success]

        self.status = "partial_success" if failed else "success"
        self.success = bool(succeeded) or not self.results

    def to_dict(self) -> dict:
        data = {
            "success": self.success,
            "status": self.status,
            "runId": self.run_id,
            "trigger": self.trigger,
            "totalFetched": self.total_fetched,
            "totalInserted": self.total_inserted,
            "totalUpdated": self.total_updated,
            "totalSkipped": self.total_skipped,
            "totalErrors": self.total_errors,
            "results": [r.to_dict() for r in self.results],
            "timestamp": _iso(self.finished_at or datetime.utcnow()),
        }
        if self.error:
            data["error"] = self.error
        return data


class SyncOrchestrator:
    """
    Runs configured sources and aggregates their results.

    Sources run in batches of ``batch_size`` concurrently with a pause between
    batches. One source failing never stops the others; one record failing
    never stops its source.
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
        sources: Optional[List[SourceDefinition]] = None,
        client: Optional[httpx.AsyncClient] = None,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
    ):
        if session_factory is None:
            from regiq.db.session import AsyncSessionLocal

            session_factory = AsyncSessionLocal
        self.session_factory = session_factory
        self.sources = sources
        self.client = client
        self.batch_size = batch_size or settings.sync_batch_size
        self.batch_delay = settings.sync_batch_delay_seconds if batch_delay is None else batch_delay

    def resolve_sources(self, names: Optional[List[str]] = None) -> List[SourceDefinition]:
        """
        Definitions to run, in configured order.

        Raises:
            ValueError: If a name is not configured
        """
        if self.sources is None:
            return SourceRegistry.resolve(names)
        if not names:
            return list(self.sources)
        by_name = {s.name: s for s in self.sources}
        unknown = [n for n in names if n not in by_name]
        if unknown:
            raise ValueError(f"Unknown source: {unknown[0]}. Available: {list(by_name.keys())}")
        return [by_name[n] for n in names]

    async def run_sync(
        self,
        source_names: Optional[List[str]] = None,
        days: Optional[int] = None,
        trigger: str = "manual",
        job_name: str = "sync_all",
        run_id: Optional[str] = None,
    ) -> SyncRunSummary:
        """
        Run one sync across the selected sources.

        Args:
            source_names: Registry names to run (all when None/empty)
            days: Lookback override in days
            trigger: "manual" or "scheduled"
            job_name: Name recorded in sync_logs
            run_id: Run identifier (generated when omitted)

        Returns:
            SyncRunSummary (never raises for source or record failures)
        """
        definitions = self.resolve_sources(source_names)
        summary = SyncRunSummary(run_id=run_id or uuid4().hex, trigger=trigger)
        run_log = get_logger(__name__, run_id=summary.run_id[:16], trigger=trigger)

        # Datastore reachability gates the whole run
        sync_log_id: Optional[int] = None
        try:
            async with self.session_factory() as db:
                repo = AlertRepository(db)
                await repo.ping()
                sync_log = await repo.create_sync_log(
                    run_id=summary.run_id,
                    job_name=job_name,
                    trigger=trigger,
                    started_at=summary.started_at,
                )
                sync_log_id = sync_log.id
        except (DatastoreUnavailableError, SQLAlchemyError, OSError) as e:
            summary.status = "failed"
            summary.success = False
            summary.error = str(e)
            summary.finished_at = datetime.utcnow()
            run_log.error(f"Sync run aborted, datastore unavailable: {e}")
            await self._write_failure_audit(summary, job_name)
            metrics.record_sync_run(trigger, summary.status)
            return summary

        summary.status = "running"
        run_log.info(
            f"Sync run started: {len(definitions)} sources, batch size {self.batch_size}"
        )

        client = self.client
        owns_client = client is None
        if owns_client:
            client = httpx.AsyncClient(timeout=settings.http_timeout_seconds, follow_redirects=True)

        try:
            for start in range(0, len(definitions), self.batch_size):
                batch = definitions[start : start + self.batch_size]
                outcomes = await asyncio.gather(
                    *[self.sync_source(d, days, client, sync_log_id) for d in batch],
                    return_exceptions=True,
                )
                for definition, outcome in zip(batch, outcomes):
                    if isinstance(outcome, BaseException):
                        run_log.error(f"Unguarded failure in {definition.name}: {outcome}")
                        outcome = SyncResult(
                            source=definition.name,
                            finished_at=datetime.utcnow(),
                            errors=[str(outcome)],
                            fatal_error=str(outcome),
                        )
                    summary.results.append(outcome)

                if start + self.batch_size < len(definitions) and self.batch_delay > 0:
                    await asyncio.sleep(self.batch_delay)
        finally:
            if owns_client:
                await client.aclose()

        summary.finish()
        await self._finalize_run_log(summary, sync_log_id, job_name)
        metrics.record_sync_run(trigger, summary.status)

        run_log.info(
            f"Sync run {summary.status}: fetched={summary.total_fetched} "
            f"inserted={summary.total_inserted} updated={summary.total_updated} "
            f"skipped={summary.total_skipped} errors={summary.total_errors}"
        )
        return summary

    async def sync_source(
        self,
        definition: SourceDefinition,
        days: Optional[int],
        client: Optional[httpx.AsyncClient],
        sync_log_id: Optional[int] = None,
    ) -> SyncResult:
        """Run one source end to end. Failures are recorded on the result, not raised."""
        result = SyncResult(source=definition.name)
        source_log = get_logger(__name__, sync_source=definition.name)
        config = definition.fetch_config(days)
        cutoff = datetime.utcnow() - timedelta(days=config.lookback_days)
        fetcher = definition.create_fetcher(client)
        started = time.monotonic()
        error_type = None

        try:
            async with self.session_factory() as db:
                repo = AlertRepository(db)
                deduplicator = Deduplicator(
                    repo,
                    policy=definition.duplicate_policy,
                    window_days=definition.duplicate_window_days,
                )
                async for raw in fetcher.fetch(config):
                    result.alerts_fetched += 1
                    try:
                        action = await self.process_record(raw, definition, deduplicator, repo, cutoff)
                    except Exception as e:
                        await db.rollback()
                        result.alerts_skipped += 1
                        result.record_errors += 1
                        if len(result.errors) < MAX_LOGGED_ERRORS:
                            result.errors.append(f"Record {result.alerts_fetched}: {e}")
                        source_log.warning(f"Record {result.alerts_fetched} failed: {e}")
                        continue
                    result.record(action)
                for message in fetcher.partial_errors:
                    if len(result.errors) < MAX_LOGGED_ERRORS:
                        result.errors.append(message)
        except SourceFetchError as e:
            error_type = _error_type(e)
            result.fatal_error = str(e)
            result.errors.append(str(e))
            source_log.error(f"Fetch failed for {definition.name}: {e}")
        except Exception as e:
            error_type = _error_type(e)
            result.fatal_error = str(e)
            result.errors.append(f"{type(e).__name__}: {e}")
            source_log.error(f"Sync failed for {definition.name}: {e}", exc_info=True)
        finally:
            await fetcher.close()

        result.finished_at = datetime.utcnow()
        written = result.alerts_inserted + result.alerts_updated
        result.success = result.fatal_error is None and (not result.record_errors or written > 0)

        duration = time.monotonic() - started
        if result.fatal_error is None:
            metrics.record_source_success(definition.name, duration)
        else:
            metrics.record_source_error(definition.name, error_type or "unknown", duration)
        metrics.record_alert_outcome(definition.name, "inserted", result.alerts_inserted)
        metrics.record_alert_outcome(definition.name, "updated", result.alerts_updated)
        metrics.record_alert_outcome(definition.name, "skipped", result.alerts_skipped)

        source_log.info(
            f"{definition.name}: fetched={result.alerts_fetched} inserted={result.alerts_inserted} "
            f"updated={result.alerts_updated} skipped={result.alerts_skipped} "
            f"errors={len(result.errors)} ({duration:.1f}s)"
        )

        await self._write_source_audit(result, sync_log_id)
        return result

    async def process_record(
        self,
        raw: RawRecord,
        definition: SourceDefinition,
        deduplicator: Deduplicator,
        repo: AlertRepository,
        cutoff: datetime,
    ) -> UpsertAction:
        """normalize -> filter -> classify -> upsert for one raw record."""
        alert = normalizer.normalize(raw, definition)
        if alert is None:
            return UpsertAction.SKIPPED

        if not definition.is_relevant(alert):
            return UpsertAction.SKIPPED

        if (
            definition.enforce_lookback
            and not alert.date_is_placeholder
            and alert.published_date < cutoff
        ):
            return UpsertAction.SKIPPED

        urgency = classify(
            alert.classification_text,
            UrgencyContext(
                profile=definition.urgency,
                published_at=None if alert.date_is_placeholder else alert.published_date,
                recall_class=alert.recall_class,
            ),
        )
        alert.urgency = urgency.level.value
        alert.urgency_score = urgency.score

        action = await deduplicator.upsert(alert)

        if definition.writes_recalls and alert.recall and action != UpsertAction.SKIPPED:
            await repo.upsert_recall(alert.recall, alert.source)

        return action

    async def _write_source_audit(self, result: SyncResult, sync_log_id: Optional[int]):
        try:
            async with self.session_factory() as db:
                repo = AlertRepository(db)
                if settings.sync_log_per_source:
                    await repo.add_source_log(sync_log_id, result)
                await repo.update_freshness(
                    source_name=result.source,
                    success=result.success,
                    records_fetched=result.alerts_fetched,
                    attempted_at=result.started_at,
                    error_message="; ".join(result.errors[:5]) if result.errors else None,
                )
        except Exception as e:
            logger.error(f"Failed to write audit rows for {result.source}: {e}")

    async def _finalize_run_log(self, summary: SyncRunSummary, sync_log_id: Optional[int], job_name: str):
        errors = [f"{r.source}: {err}" for r in summary.results for err in r.errors[:3]]
        try:
            async with self.session_factory() as db:
                await AlertRepository(db).finalize_sync_log(
                    sync_log_id,
                    status=summary.status,
                    records_processed=summary.total_fetched,
                    records_synced=summary.total_inserted + summary.total_updated,
                    error_message="\n".join(errors) if errors else None,
                    sync_metadata=summary.to_dict(),
                    completed_at=summary.finished_at,
                    run_id=summary.run_id,
                    job_name=job_name,
                    trigger=summary.trigger,
                    started_at=summary.started_at,
                )
        except Exception as e:
            logger.error(f"Failed to finalize sync log for run {summary.run_id[:16]}: {e}")

    async def _write_failure_audit(self, summary: SyncRunSummary, job_name: str):
        """Best-effort sync_logs row for a run that never started."""
        try:
            async with self.session_factory() as db:
                await AlertRepository(db).finalize_sync_log(
                    None,
                    status="failed",
                    records_processed=0,
                    records_synced=0,
                    error_message=summary.error,
                    sync_metadata=summary.to_dict(),
                    completed_at=summary.finished_at,
                    run_id=summary.run_id,
                    job_name=job_name,
                    trigger=summary.trigger,
                    started_at=summary.started_at,
                )
        except Exception as e:
            logger.error(f"Could not record failed sync run {summary.run_id[:16]}: {e}")
