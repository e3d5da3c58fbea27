"""
Database connection and session management

Provides async PostgreSQL connections with SQLModel. The engine is built
from explicit Settings; nothing is created at import time.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

from core.config import Settings
from core.errors import ConfigurationError

logger = logging.getLogger(__name__)


def normalize_database_url(url: str) -> str:
    """Convert postgresql:// to postgresql+asyncpg:// for async support."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    return url


class Database:
    """
    Async engine plus session factory.

    Usage:
        db = Database.from_settings(settings)
        async with db.session() as session:
            row = await session.get(CertificateHash, 1)
    """

    def __init__(
        self,
        url: str,
        pool_size: int = 5,
        max_overflow: int = 10,
        echo: bool = False,
        use_pgbouncer: bool = False
    ):
        if not url:
            raise ConfigurationError("DATABASE_URL is not configured", {'variable': 'DATABASE_URL'})

        self.url = normalize_database_url(url)
        engine_kwargs = {"echo": echo, "pool_pre_ping": True}
        if self.url.startswith("postgresql"):
            if use_pgbouncer:
                # NullPool for pgbouncer compatibility
                engine_kwargs["poolclass"] = NullPool
            else:
                engine_kwargs["pool_size"] = pool_size
                engine_kwargs["max_overflow"] = max_overflow

        self.engine = create_async_engine(self.url, **engine_kwargs)
        self.session_maker = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            echo=settings.db_echo,
            use_pgbouncer=settings.use_pgbouncer,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Session that commits on success and rolls back on error.

        Usage:
            async with db.session() as session:
                session.add(row)
        """
        async with self.session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def init_db(self) -> None:
        """
        Initialize database tables
        Should only be called once during deployment
        """
        # Register the table classes on SQLModel.metadata
        import core.models_sql  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        logger.info("Database tables initialized")

    async def close(self) -> None:
        """Close database connections."""
        await self.engine.dispose()
