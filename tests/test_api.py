"""Tests for the HTTP sync trigger."""

import asyncio

import httpx
import pytest

from conftest import feed_source, mock_client, rss
from regiq.api.deps import get_database, get_task_runner
from regiq.config import settings
from regiq.main import app
from regiq.sync.orchestrator import SyncOrchestrator
from regiq.worker.tasks import TaskRunner


class StubLockManager:
    """In-memory stand-in for the Redis run-lock."""

    def __init__(self, token="token-1", info=None):
        self.token = token
        self.info = info
        self.released = []

    async def acquire_lock(self, run_id, trigger="manual", ttl_seconds=None):
        return self.token

    async def get_lock_info(self):
        return self.info

    async def release_lock(self, run_id, token):
        self.released.append(run_id)
        return True

    async def heartbeat(self, run_id, token, interval=60):
        await asyncio.sleep(3600)

    async def close(self):
        pass


FEED_ROUTES = {
    "feeds.example.gov/a.xml": httpx.Response(200, text=rss(
        {"title": "Recall of frozen berries", "link": "https://feeds.example.gov/1", "published": "2025-01-06"},
    )),
    "feeds.example.gov/b.xml": httpx.Response(200, text=rss(
        {"title": "Warning letter to snack maker", "link": "https://feeds.example.gov/2", "published": "2025-01-07"},
    )),
}


@pytest.fixture
async def source_client():
    async with mock_client(FEED_ROUTES) as client:
        yield client


@pytest.fixture
def lock_manager():
    return StubLockManager()


@pytest.fixture
async def api(session_factory, source_client, lock_manager, monkeypatch):
    """ASGI client with the runner and database bound to test doubles."""
    monkeypatch.setattr(settings, "sync_lock_enabled", True)

    orchestrator = SyncOrchestrator(
        session_factory,
        sources=[
            feed_source("feed_a", "https://feeds.example.gov/a.xml"),
            feed_source("feed_b", "https://feeds.example.gov/b.xml"),
        ],
        client=source_client,
        batch_delay=0,
    )
    runner = TaskRunner(orchestrator=orchestrator, lock_manager=lock_manager)

    async def get_test_database():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_task_runner] = lambda: runner
    app.dependency_overrides[get_database] = get_test_database

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_sync_all_without_body(api, lock_manager):
    response = await api.post("/api/sync")

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["status"] == "success"
    assert data["trigger"] == "manual"
    assert data["totalInserted"] == 2
    assert [r["source"] for r in data["results"]] == ["feed_a", "feed_b"]
    assert lock_manager.released == [data["runId"]]


@pytest.mark.asyncio
async def test_sync_single_source_action(api):
    response = await api.post("/api/sync", json={"action": "sync_feed_b", "days": 7})

    assert response.status_code == 200
    data = response.json()
    assert [r["source"] for r in data["results"]] == ["feed_b"]
    assert data["totalInserted"] == 1


@pytest.mark.asyncio
async def test_unknown_action_is_bad_request(api):
    response = await api.post("/api/sync", json={"action": "reindex"})

    assert response.status_code == 400
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_unknown_source_is_bad_request(api):
    response = await api.post("/api/sync", json={"action": "sync_nowhere"})

    assert response.status_code == 400
    assert "nowhere" in response.json()["error"]


@pytest.mark.asyncio
async def test_sync_rejected_while_another_run_holds_lock(api, lock_manager):
    lock_manager.token = None
    lock_manager.info = {"run_id": "a" * 32, "trigger": "scheduled"}

    response = await api.post("/api/sync")

    assert response.status_code == 409
    data = response.json()
    assert data["success"] is False
    assert data["lockInfo"]["trigger"] == "scheduled"


@pytest.mark.asyncio
async def test_test_feeds_probes_without_writing(api):
    response = await api.post("/api/sync", json={"action": "test_feeds"})

    assert response.status_code == 200
    data = response.json()
    assert data["totalSources"] == 2
    assert data["healthySources"] == 2
    assert data["results"][0]["sampleTitles"] == ["Recall of frozen berries"]

    logs = await api.get("/api/sync/logs")
    assert logs.json() == []


@pytest.mark.asyncio
async def test_logs_and_sources_after_run(api):
    await api.post("/api/sync")

    logs = (await api.get("/api/sync/logs")).json()
    assert len(logs) == 1
    assert logs[0]["status"] == "success"
    assert logs[0]["records_synced"] == 2

    sources = (await api.get("/api/sync/sources")).json()
    assert [s["name"] for s in sources] == ["feed_a", "feed_b"]
    assert all(s["fetch_status"] == "success" for s in sources)


@pytest.mark.asyncio
async def test_cors_preflight(api):
    response = await api.options(
        "/api/sync",
        headers={
            "Origin": "https://app.regiq.example",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "content-type, authorization",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"
    assert "POST" in response.headers["access-control-allow-methods"]


@pytest.mark.asyncio
async def test_health(api):
    response = await api.get("/health")
    assert response.json() == {"status": "healthy"}


def test_sync_log_response_reads_orm_rows():
    from datetime import datetime

    from regiq.api.routes.sync import SyncLogResponse
    from regiq.db.models import SyncLog

    row = SyncLog(
        id=7,
        run_id="abc123",
        job_name="sync_all",
        trigger="scheduled",
        status="partial_success",
        records_processed=4,
        records_synced=3,
        error_message=None,
        started_at=datetime(2025, 1, 10, 12, 0),
        completed_at=datetime(2025, 1, 10, 12, 1),
    )

    model = SyncLogResponse.model_validate(row)

    assert model.id == 7
    assert model.status == "partial_success"
    assert model.records_synced == 3
