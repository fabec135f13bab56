"""Database engine and session factory."""

from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from regiq.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)

AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncIterator[AsyncSession]:
    """Yield a session and close it afterwards."""
    async with AsyncSessionLocal() as session:
        yield session


async def init_db():
    """Create tables that do not exist yet (alembic owns real migrations)."""
    from regiq.db.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
