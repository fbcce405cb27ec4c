"""Swap history database: engine, sessions and schema setup."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from crossroute.config import Settings, get_settings
from crossroute.history.models import Base

logger = logging.getLogger(__name__)


def async_database_url(url: str) -> str:
    """Route plain sqlite URLs through the aiosqlite driver."""
    if url.startswith("sqlite:///") and "aiosqlite" not in url:
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return url


class HistoryDatabase:
    """Owns the engine and session factory for swap history.

    Args:
        url: SQLAlchemy URL; ``sqlite:///`` is upgraded to aiosqlite
        echo: Log SQL statements
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = async_database_url(url)
        self.engine: AsyncEngine = create_async_engine(self.url, echo=echo)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "HistoryDatabase":
        settings = settings or get_settings()
        return cls(settings.database_url, echo=settings.debug and not settings.is_production)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session that commits on success and rolls back on error."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_tables(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> bool:
        """True if a trivial query succeeds."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning(f"History database unreachable: {e}")
            return False

    async def dispose(self) -> None:
        await self.engine.dispose()


_default: Optional[HistoryDatabase] = None


def get_history_database() -> HistoryDatabase:
    """Process-wide history database built from settings on first use."""
    global _default
    if _default is None:
        _default = HistoryDatabase.from_settings()
    return _default
