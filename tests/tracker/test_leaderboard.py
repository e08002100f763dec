"""Tests for leaderboard ingestion."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from polymarket_copy_signals.ingestor.data_api import DataApiClient
from polymarket_copy_signals.ingestor.models import LeaderboardEntry
from polymarket_copy_signals.storage.repos import WalletRepository
from polymarket_copy_signals.tracker.leaderboard import LeaderboardIngestor, qualifies
from polymarket_copy_signals.tracker.reconciler import ReconcileResult, SignalReconciler


def entry(proxy: str, pnl: str, vol: str, name: str | None = None) -> LeaderboardEntry:
    return LeaderboardEntry(proxy_wallet=proxy, user_name=name, pnl=Decimal(pnl), vol=Decimal(vol))


class TestQualifies:
    @pytest.mark.parametrize(
        ("pnl", "vol", "expected"),
        [
            ("5000", "10000", True),
            ("4999", "10000", False),
            ("10000", "200000", False),
            ("10000", "199999", True),
        ],
    )
    def test_thresholds(self, pnl: str, vol: str, expected: bool) -> None:
        assert qualifies(entry("0x1", pnl, vol), pnl_min=Decimal("5000"), vol_mult=Decimal("20")) is expected


class TestLeaderboardIngestor:
    @pytest.fixture
    def client(self) -> MagicMock:
        mock = MagicMock(spec=DataApiClient)
        mock.get_leaderboard = AsyncMock(return_value=[])
        return mock

    @pytest.fixture
    def reconciler(self) -> MagicMock:
        mock = MagicMock(spec=SignalReconciler)
        mock.reconcile = AsyncMock(side_effect=lambda wallet: ReconcileResult(wallet_id=wallet.id))
        return mock

    def make_ingestor(self, db, client, reconciler) -> LeaderboardIngestor:
        return LeaderboardIngestor(
            db,
            client,
            reconciler,
            categories=["OVERALL", "POLITICS"],
            time_periods=["DAY"],
            limit=50,
            pnl_min=5000,
            vol_mult=20,
        )

    @pytest.mark.asyncio
    async def test_duplicate_across_buckets_inserted_once(self, db, client, reconciler) -> None:
        """Scenario: the same proxy in two buckets is tracked once."""
        client.get_leaderboard.return_value = [entry("0xaaa", "9000", "1000", "whale")]
        ingestor = self.make_ingestor(db, client, reconciler)

        stats = await ingestor.run()

        assert stats.buckets == 2
        assert stats.entries_seen == 2
        assert [w.proxy_wallet for w in stats.inserted] == ["0xaaa"]
        reconciler.reconcile.assert_awaited_once()
        async with db.get_async_session() as session:
            wallets = await WalletRepository(session).list_all()
        assert len(wallets) == 1
        assert wallets[0].display_name == "whale"
        assert wallets[0].force_fetch is True

    @pytest.mark.asyncio
    async def test_existing_wallet_not_reinserted(self, db, client, reconciler) -> None:
        client.get_leaderboard.return_value = [entry("0xbbb", "9000", "1000")]
        ingestor = self.make_ingestor(db, client, reconciler)

        await ingestor.run()
        second = await ingestor.run()

        assert second.inserted == []
        assert reconciler.reconcile.await_count == 1

    @pytest.mark.asyncio
    async def test_unqualified_entries_ignored(self, db, client, reconciler) -> None:
        client.get_leaderboard.return_value = [
            entry("0xsmall", "100", "10"),
            entry("0xchurn", "6000", "500000"),
        ]
        stats = await self.make_ingestor(db, client, reconciler).run()

        assert stats.qualified == 0
        assert stats.inserted == []
        reconciler.reconcile.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_queries_every_bucket(self, db, client, reconciler) -> None:
        await self.make_ingestor(db, client, reconciler).run()

        calls = [c.args for c in client.get_leaderboard.await_args_list]
        assert calls == [("OVERALL", "DAY", 50), ("POLITICS", "DAY", 50)]
