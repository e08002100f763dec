"""Tests for the database manager."""

import pytest
from sqlalchemy import func, select

from polymarket_copy_signals.config import DatabaseSettings
from polymarket_copy_signals.storage.database import (
    SQLITE_BUSY_TIMEOUT,
    DatabaseManager,
    engine_options,
    normalize_database_url,
)
from polymarket_copy_signals.storage.models import WalletModel


class TestNormalizeDatabaseUrl:
    def test_adds_asyncpg_driver(self) -> None:
        assert normalize_database_url("postgresql://u:p@host/db") == "postgresql+asyncpg://u:p@host/db"

    def test_leaves_async_urls_alone(self) -> None:
        url = "sqlite+aiosqlite:///signals.db"
        assert normalize_database_url(url) == url


class TestEngineOptions:
    def test_postgres_pool_sizing(self) -> None:
        options = engine_options("postgresql+asyncpg://u@h/db", pool_size=7, max_overflow=3)
        assert options["pool_size"] == 7
        assert options["max_overflow"] == 3
        assert options["pool_pre_ping"] is True

    def test_sqlite_busy_timeout(self) -> None:
        options = engine_options("sqlite+aiosqlite:///x.db", pool_size=7, max_overflow=3)
        assert "pool_size" not in options
        assert options["connect_args"] == {"timeout": SQLITE_BUSY_TIMEOUT}


class TestDatabaseManager:
    def test_from_settings(self) -> None:
        settings = DatabaseSettings(DATABASE_URL="postgresql://u@h/db", DB_POOL_SIZE=9)
        manager = DatabaseManager.from_settings(settings)
        assert manager.database_url == "postgresql+asyncpg://u@h/db"

    @pytest.mark.asyncio
    async def test_ping_and_dialect(self, db) -> None:
        await db.ping()
        assert db.dialect_name == "sqlite"

    @pytest.mark.asyncio
    async def test_session_rolls_back_on_error(self, db) -> None:
        with pytest.raises(RuntimeError):
            async with db.get_async_session() as session:
                session.add(WalletModel(polymarket_proxy_wallet="0xrollback"))
                await session.flush()
                raise RuntimeError("abort")

        async with db.get_async_session() as session:
            count = await session.scalar(select(func.count()).select_from(WalletModel))
        assert count == 0

    @pytest.mark.asyncio
    async def test_dispose_allows_reconnect(self, db) -> None:
        await db.dispose_async()
        await db.ping()
