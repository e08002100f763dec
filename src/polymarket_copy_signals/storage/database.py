"""Connection pool and session handling for the signal store.

One `DatabaseManager` is created per process and shared by the reconciler
workers, the evaluators and the publisher. Production runs on PostgreSQL
(or CockroachDB) through asyncpg; tests use a SQLite file through
aiosqlite.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from polymarket_copy_signals.storage.models import Base

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from polymarket_copy_signals.config import DatabaseSettings

logger = logging.getLogger(__name__)

# Connection-level failures: the current tick is aborted and retried on the next one.
STORE_UNAVAILABLE_ERRORS = (OperationalError, InterfaceError)

# Seconds a SQLite connection waits for the write lock held by another worker.
SQLITE_BUSY_TIMEOUT = 30


def normalize_database_url(database_url: str) -> str:
    """Map a plain ``postgresql://`` URL onto the asyncpg driver."""
    if database_url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + database_url[len("postgresql://") :]
    return database_url


def engine_options(
    database_url: str,
    *,
    pool_size: int,
    max_overflow: int,
    echo: bool = False,
) -> dict[str, Any]:
    """Engine keyword arguments for the URL's backend.

    SQLite keeps SQLAlchemy's default pool and gets a busy timeout instead
    of pool sizing.
    """
    options: dict[str, Any] = {"echo": echo}
    if make_url(database_url).get_backend_name() == "sqlite":
        options["connect_args"] = {"timeout": SQLITE_BUSY_TIMEOUT}
        return options
    options.update(pool_size=pool_size, max_overflow=max_overflow, pool_pre_ping=True)
    return options


class DatabaseManager:
    """Owns the async engine and hands out short-lived sessions.

    Each unit of work runs inside one session from `get_async_session()`,
    which commits on success and rolls back on error. The engine is
    created lazily so constructing a manager never touches the network.
    """

    def __init__(
        self,
        database_url: str,
        *,
        pool_size: int = 5,
        max_overflow: int = 10,
        echo: bool = False,
    ) -> None:
        if database_url.startswith("postgresql://"):
            logger.warning("Database URL has no async driver; using postgresql+asyncpg")
        self.database_url = normalize_database_url(database_url)
        self._options = engine_options(
            self.database_url, pool_size=pool_size, max_overflow=max_overflow, echo=echo
        )
        self._engine: AsyncEngine | None = None
        self._sessions: async_sessionmaker[AsyncSession] | None = None

    @classmethod
    def from_settings(cls, settings: DatabaseSettings) -> DatabaseManager:
        return cls(settings.url, pool_size=settings.pool_size, max_overflow=settings.max_overflow)

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = create_async_engine(self.database_url, **self._options)
        return self._engine

    def _session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._sessions is None:
            self._sessions = async_sessionmaker(bind=self.engine, expire_on_commit=False)
        return self._sessions

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    @asynccontextmanager
    async def get_async_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Open a session that commits on exit and rolls back on error.

        Yields:
            SQLAlchemy AsyncSession instance.
        """
        session = self._session_factory()()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def ping(self) -> None:
        """Run a trivial query; raises if the store is unreachable."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def init_schema_async(self) -> None:
        """Create the tracker tables that do not exist yet."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema initialized (%s)", self.dialect_name)

    async def dispose_async(self) -> None:
        """Close every pooled connection; the next session reconnects."""
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessions = None
        logger.info("Database connections disposed")
