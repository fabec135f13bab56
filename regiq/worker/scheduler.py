"""APScheduler job definitions."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from regiq.config import settings
from regiq.worker.tasks import task_runner

logger = logging.getLogger(__name__)


def setup_scheduler() -> AsyncIOScheduler:
    """
    Setup and configure APScheduler.

    A single interval job syncs every registered source each
    settings.sync_interval_minutes. Overlap with manual runs is handled by
    the Redis run-lock, and max_instances=1 stops the job overlapping itself.

    Returns:
        Configured scheduler instance
    """
    scheduler = AsyncIOScheduler()
    interval = max(1, int(settings.sync_interval_minutes))

    scheduler.add_job(
        task_runner.scheduled_sync,
        IntervalTrigger(minutes=interval),
        id="regulatory_sync",
        name="Sync regulatory alert sources",
        max_instances=1,
        coalesce=True,
        misfire_grace_time=600,
        replace_existing=True,
    )

    logger.info(f"Scheduler configured: regulatory sync every {interval} minutes")
    return scheduler
