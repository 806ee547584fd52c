"""Database session management.

The engine is owned by a :class:`Database` built in the application lifespan
and stored on ``app.state``; nothing connects at import time.
"""
import logging
from typing import Annotated, AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from storycraft.core.config import Settings
from storycraft.models import Base

logger = logging.getLogger(__name__)


class Database:
    """Async engine plus the session factory bound to it."""

    def __init__(self, url: str, **engine_kwargs):
        if not url:
            raise ValueError("DATABASE_URL environment variable is required")
        self.engine: AsyncEngine = create_async_engine(
            url,
            pool_pre_ping=True,
            echo=False,
            **engine_kwargs,
        )
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(settings.DATABASE_URL)

    async def create_all(self) -> None:
        """Create missing tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables verified")

    async def ping(self) -> None:
        async with self.session_factory() as session:
            await session.execute(text("SELECT 1"))

    async def dispose(self) -> None:
        await self.engine.dispose()


def get_database(request: Request) -> Database:
    return request.app.state.database


async def get_db(database: Annotated[Database, Depends(get_database)]) -> AsyncGenerator[AsyncSession, None]:
    """Get async database session."""
    async with database.session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


SessionDep = Annotated[AsyncSession, Depends(get_db)]
