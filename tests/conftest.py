"""Pytest configuration and fixtures."""

from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from itertools import count
from typing import Any

import pytest

from polymarket_copy_signals.storage.database import DatabaseManager
from polymarket_copy_signals.storage.models import OUTCOME_PENDING
from polymarket_copy_signals.storage.repos import SignalDTO, SignalRepository, WalletDTO, WalletRepository

BASE_TIME = datetime(2026, 10, 1, 12, 0, tzinfo=UTC)

_addresses = count(1)


@pytest.fixture
async def db(tmp_path) -> AsyncIterator[DatabaseManager]:
    """File-backed SQLite database with the schema created."""
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path}/test.db")
    await manager.init_schema_async()
    yield manager
    await manager.dispose_async()


def proxy_address() -> str:
    return f"0x{next(_addresses):040x}"


async def create_wallet(db: DatabaseManager, **fields: Any) -> WalletDTO:
    """Insert a wallet and apply any metric fields given."""
    display_name = fields.pop("display_name", None)
    proxy = fields.pop("proxy_wallet", None) or proxy_address()
    async with db.get_async_session() as session:
        repo = WalletRepository(session)
        wallet = await repo.insert_if_absent(
            proxy,
            display_name=display_name,
            force_fetch=fields.pop("force_fetch", False),
        )
        assert wallet is not None
        if fields:
            await repo.update_metrics(
                wallet.id,
                win_rate=fields.get("win_rate", wallet.win_rate),
                losing_streak=fields.get("losing_streak", wallet.losing_streak),
                live_picks=fields.get("live_picks", wallet.live_picks),
                paused=fields.get("paused", wallet.paused),
            )
        result = await repo.get(wallet.id)
    assert result is not None
    return result


async def create_signal(
    db: DatabaseManager,
    wallet_id: int,
    market_slug: str,
    picked_outcome: str,
    *,
    asset: str | None = None,
    minutes: int = 0,
    **fields: Any,
) -> None:
    """Insert a signal; ``minutes`` offsets created_at from BASE_TIME."""
    fields.setdefault("event_slug", market_slug)
    fields.setdefault("outcome", OUTCOME_PENDING)
    if "pnl" in fields and fields["pnl"] is not None:
        fields["pnl"] = Decimal(str(fields["pnl"]))
    dto = SignalDTO(
        wallet_id=wallet_id,
        market_slug=market_slug,
        tx_hash=asset or f"{market_slug}-{picked_outcome}-{wallet_id}",
        picked_outcome=picked_outcome,
        created_at=BASE_TIME + timedelta(minutes=minutes),
        **fields,
    )
    async with db.get_async_session() as session:
        assert await SignalRepository(session).insert_if_absent(dto)
