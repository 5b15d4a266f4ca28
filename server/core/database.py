"""Async database service with SQLModel and SQLAlchemy 2.0."""

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from sqlalchemy import text
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, select

from core.config import Settings
from core.logging import get_logger
from models.cache import CacheEntry

logger = get_logger(__name__)


class Database:
    """Async database service with SQLModel."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = None
        self.async_session = None

    async def startup(self):
        """Initialize database connection and create tables."""
        try:
            logging.getLogger("sqlalchemy.dialects").setLevel(logging.WARNING)

            engine_kwargs = {"echo": self.settings.database_echo, "future": True}
            # In-memory SQLite uses a static pool that rejects sizing arguments
            if ":memory:" not in self.settings.database_url:
                engine_kwargs["pool_size"] = self.settings.database_pool_size
                engine_kwargs["max_overflow"] = self.settings.database_max_overflow

            self.engine = create_async_engine(self.settings.database_url, **engine_kwargs)

            self.async_session = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)

            logger.info("Database initialized successfully")

        except Exception as e:
            logger.error("Database startup failed", error=str(e))
            raise

    async def shutdown(self):
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            logger.info("Database connections closed")

    @asynccontextmanager
    async def get_session(self):
        """Get async database session."""
        if not self.async_session:
            raise RuntimeError("Database not initialized")

        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def ping(self) -> bool:
        """Check database connectivity."""
        try:
            async with self.get_session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception:
            return False

    # ============================================================================
    # Content Cache
    #
    # These methods propagate errors; the cache store decides how a failing
    # backend degrades.
    # ============================================================================

    async def get_content_entry(self, namespace: str, key: str) -> Optional[CacheEntry]:
        """Get a content entry by key, regardless of expiry."""
        async with self.get_session() as session:
            stmt = select(CacheEntry).where(
                CacheEntry.key == key,
                CacheEntry.namespace == namespace
            )
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def upsert_content_entry(self, entry: CacheEntry) -> None:
        """Insert or fully replace a content entry in one statement.

        SQLite and PostgreSQL use INSERT ... ON CONFLICT DO UPDATE, so two
        writers racing on the same key both succeed and the later one wins.
        """
        values = entry.to_dict()
        async with self.get_session() as session:
            stmt = self._upsert_statement(values)
            if stmt is None:
                await session.merge(CacheEntry.from_dict(values))
            else:
                await session.execute(stmt)
            await session.commit()

    def _upsert_statement(self, values: dict):
        dialect = self.engine.dialect.name
        if dialect == "sqlite":
            insert = sqlite_insert
        elif dialect == "postgresql":
            insert = postgresql_insert
        else:
            return None
        stmt = insert(CacheEntry).values(**values)
        return stmt.on_conflict_do_update(
            index_elements=[CacheEntry.key],
            set_={column: stmt.excluded[column] for column in values if column != "key"}
        )

    async def get_recent_content_entries(self, namespace: str, now: float,
                                         limit: int) -> List[CacheEntry]:
        """Get unexpired entries for a namespace, newest first."""
        async with self.get_session() as session:
            stmt = (
                select(CacheEntry)
                .where(CacheEntry.namespace == namespace, CacheEntry.expires_at > now)
                .order_by(CacheEntry.created_at.desc())
                .limit(limit)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())
