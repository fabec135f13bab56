"""FastAPI dependencies."""

from sqlalchemy.ext.asyncio import AsyncSession

from regiq.db.session import get_db
from regiq.worker.tasks import TaskRunner, task_runner


async def get_database() -> AsyncSession:
    """Dependency for database session."""
    async for session in get_db():
        yield session
        break  # Only yield once, as FastAPI handles the session lifecycle


def get_task_runner() -> TaskRunner:
    """Dependency for the sync task runner (overridden in tests)."""
    return task_runner
