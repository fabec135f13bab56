"""Sync trigger and status API endpoints."""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from regiq.api.deps import get_database, get_task_runner
from regiq.db.repository import AlertRepository
from regiq.sync.diagnostics import probe_sources
from regiq.worker.tasks import SyncInProgressError, TaskRunner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["sync"])


def _timestamp() -> str:
    return datetime.utcnow().isoformat() + "Z"


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    content = {"success": False, "error": message, "timestamp": _timestamp()}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


class SyncRequest(BaseModel):
    """Request body for triggering a sync."""
    days: Optional[int] = Field(default=None, ge=1, le=3650)
    action: Optional[str] = None
    sources: Optional[List[str]] = None


class SourceResponse(BaseModel):
    """Response model for a configured source."""
    name: str
    source_tag: str
    agency: str
    description: str
    category: str
    duplicate_policy: str
    urls: List[str]
    last_successful_fetch: Optional[datetime] = None
    fetch_status: Optional[str] = None


class SyncLogResponse(BaseModel):
    """Response model for a sync_logs row."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    run_id: Optional[str]
    job_name: str
    trigger: Optional[str]
    status: str
    records_processed: int
    records_synced: int
    error_message: Optional[str]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]


@router.post("")
async def trigger_sync(
    request: Optional[SyncRequest] = Body(default=None),
    runner: TaskRunner = Depends(get_task_runner),
):
    """
    Run a sync now.

    Actions: ``sync_all`` (default), ``sync_<source>`` for one source, and
    ``test_feeds`` to probe every source without writing anything.
    Returns 200 with the run summary (including partial failures), 400 for
    unknown actions or sources, 409 while another run holds the lock.
    """
    request = request or SyncRequest()
    action = request.action or "sync_all"

    try:
        if action == "test_feeds":
            definitions = runner.orchestrator.resolve_sources(request.sources)
            probes = await probe_sources(definitions, client=runner.orchestrator.client)
            return {
                "success": True,
                "action": action,
                "healthySources": sum(1 for p in probes if p.success),
                "totalSources": len(probes),
                "results": [p.to_dict() for p in probes],
                "timestamp": _timestamp(),
            }

        if action == "sync_all":
            names = request.sources
        elif action.startswith("sync_"):
            names = [action[len("sync_"):]]
        else:
            return _error(400, f"Unknown action: {action}")

        summary = await runner.sync_entrypoint(
            trigger="manual",
            sources=names,
            days=request.days,
            job_name=action,
        )
        return summary.to_dict()

    except ValueError as e:
        return _error(400, str(e))
    except SyncInProgressError as e:
        return _error(409, str(e), lockInfo=e.lock_info)
    except Exception as e:
        logger.error(f"Sync request failed: {e}", exc_info=True)
        return _error(500, str(e))


@router.get("/sources", response_model=List[SourceResponse])
async def list_sources(
    runner: TaskRunner = Depends(get_task_runner),
    db: AsyncSession = Depends(get_database),
):
    """List configured sources with their latest fetch status."""
    freshness = {row.source_name: row for row in await AlertRepository(db).freshness()}

    sources = []
    for definition in runner.orchestrator.resolve_sources():
        row = freshness.get(definition.name)
        sources.append(SourceResponse(
            name=definition.name,
            source_tag=definition.source_tag,
            agency=definition.agency,
            description=definition.description,
            category=definition.category,
            duplicate_policy=definition.duplicate_policy.value,
            urls=definition.urls,
            last_successful_fetch=row.last_successful_fetch if row else None,
            fetch_status=row.fetch_status if row else None,
        ))
    return sources


@router.get("/logs", response_model=List[SyncLogResponse])
async def list_sync_logs(
    limit: int = 20,
    db: AsyncSession = Depends(get_database),
):
    """Most recent sync runs, newest first."""
    limit = max(1, min(limit, 200))
    return await AlertRepository(db).recent_sync_logs(limit=limit)
