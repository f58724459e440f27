"""Engine and session lifecycle.

One ``Database`` per process, configured by the API lifespan or the CLI.
Sessions never expire loaded rows on commit and never autoflush: the
workflow engine flushes explicitly before each conditional update.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from hr_workflow.config import get_settings
from hr_workflow.models import Base

logger = logging.getLogger(__name__)


def build_engine(url: str) -> AsyncEngine:
    if make_url(url).get_backend_name() == "sqlite":
        return create_async_engine(url)
    return create_async_engine(url, pool_pre_ping=True, pool_size=10, max_overflow=20)


class Database:
    def __init__(self) -> None:
        self.engine: AsyncEngine | None = None
        self.sessions: async_sessionmaker[AsyncSession] | None = None

    def configure(self, url: str | None = None) -> async_sessionmaker[AsyncSession]:
        """Create the engine on first use; later calls return the same factory."""
        if self.sessions is None:
            self.engine = build_engine(url or get_settings().database_url)
            self.sessions = async_sessionmaker(self.engine, expire_on_commit=False, autoflush=False)
            logger.debug("Database configured for %s", self.engine.url.render_as_string(hide_password=True))
        return self.sessions

    async def create_schema(self) -> None:
        """Create missing tables, including their status CHECK constraints."""
        self.configure()
        assert self.engine is not None
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
        self.engine = None
        self.sessions = None

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Unit of work: commit when the block succeeds, roll back otherwise."""
        async with self.configure()() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise


database = Database()
