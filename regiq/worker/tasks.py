"""Background sync task with run-lock coordination."""

import asyncio
import logging
from contextlib import suppress
from typing import Any, Dict, List, Optional
from uuid import uuid4

from redis.exceptions import RedisError

from regiq.config import settings
from regiq.sync.orchestrator import SyncOrchestrator, SyncRunSummary
from regiq.worker.sync_lock import SyncLockManager, sync_lock_manager

logger = logging.getLogger(__name__)


class SyncInProgressError(RuntimeError):
    """Raised when another sync run holds the lock."""

    def __init__(self, lock_info: Optional[Dict[str, Any]] = None):
        super().__init__("Sync already in progress")
        self.lock_info = lock_info or {}


class TaskRunner:
    """Runs sync jobs for both the scheduler and the HTTP trigger."""

    def __init__(
        self,
        orchestrator: Optional[SyncOrchestrator] = None,
        lock_manager: Optional[SyncLockManager] = None,
    ):
        self.orchestrator = orchestrator or SyncOrchestrator()
        self.lock_manager = lock_manager or sync_lock_manager

    async def close(self):
        """Clean up resources."""
        await self.lock_manager.close()

    async def scheduled_sync(self):
        """
        Sync every source (scheduled trigger).

        Called by APScheduler; a run already in progress is not an error here.
        """
        try:
            await self.sync_entrypoint(trigger="scheduled")
        except SyncInProgressError as e:
            holder = e.lock_info.get("run_id") or "unknown"
            logger.info(f"Scheduled sync skipped, run {holder[:16]} still in progress")

    async def sync_entrypoint(
        self,
        trigger: str = "scheduled",
        sources: Optional[List[str]] = None,
        days: Optional[int] = None,
        job_name: str = "sync_all",
    ) -> SyncRunSummary:
        """
        Unified sync entrypoint for scheduled and manual triggers.

        1. Takes the Redis run-lock (skipped when disabled; if Redis is down
           the run goes ahead unlocked)
        2. Keeps the lock alive with a heartbeat while the run executes
        3. Runs the orchestrator
        4. Releases the lock in a finally block

        Raises:
            SyncInProgressError: Another run holds the lock
            ValueError: Unknown source name
        """
        # Fail fast on bad source names before touching the lock
        self.orchestrator.resolve_sources(sources)

        run_id = uuid4().hex
        token: Optional[str] = None

        if settings.sync_lock_enabled:
            try:
                token = await self.lock_manager.acquire_lock(run_id, trigger=trigger)
            except (RedisError, OSError) as e:
                logger.warning(f"Sync lock unavailable ({e}); running {run_id[:16]} unlocked")
            else:
                if token is None:
                    try:
                        lock_info = await self.lock_manager.get_lock_info()
                    except (RedisError, OSError):
                        lock_info = None
                    raise SyncInProgressError(lock_info)

        heartbeat_task = None
        if token:
            heartbeat_task = asyncio.create_task(self.lock_manager.heartbeat(run_id, token))

        try:
            return await self.orchestrator.run_sync(
                source_names=sources,
                days=days,
                trigger=trigger,
                job_name=job_name,
                run_id=run_id,
            )
        finally:
            if heartbeat_task:
                heartbeat_task.cancel()
                with suppress(asyncio.CancelledError):
                    await heartbeat_task
            if token:
                await self.lock_manager.release_lock(run_id, token)


# Global task runner instance
task_runner = TaskRunner()
