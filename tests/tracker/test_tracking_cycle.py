"""Store-backed tests across reconciliation, evaluation and the live-picks rebuild."""

from collections import Counter
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import create_signal, create_wallet

from polymarket_copy_signals.ingestor.data_api import DataApiClient
from polymarket_copy_signals.ingestor.models import Position
from polymarket_copy_signals.storage.models import OUTCOME_LOSS, OUTCOME_WIN
from polymarket_copy_signals.storage.repos import SignalRepository, WalletRepository
from polymarket_copy_signals.tracker.live_picks import LivePicksBuilder
from polymarket_copy_signals.tracker.metrics import MetricsEvaluator
from polymarket_copy_signals.tracker.reconciler import SignalReconciler


def position(asset: str, market_slug: str, picked: str, *, pnl: str | None = None, resolved: bool = False) -> Position:
    return Position(
        asset=asset,
        market_slug=market_slug,
        event_slug=market_slug,
        picked_outcome=picked,
        opposite_outcome="No" if picked == "Yes" else "Yes",
        side="BUY",
        cash_pnl=Decimal(pnl) if pnl is not None else None,
        resolved=resolved,
        title=market_slug.title(),
    )


@pytest.fixture
def client() -> MagicMock:
    mock = MagicMock(spec=DataApiClient)
    mock.get_positions = AsyncMock(return_value=[])
    mock.get_trades = AsyncMock(return_value=[])
    mock.get_event = AsyncMock(return_value=None)
    return mock


class TestTrackingCycle:
    @pytest.mark.asyncio
    async def test_metrics_reproduce_after_second_reconcile(self, db, client: MagicMock) -> None:
        wallet = await create_wallet(db, win_rate=80.0)
        client.get_positions.return_value = [
            position("a1", "rain", "Yes", pnl="12.3456789", resolved=True),
            position("a2", "snow", "No", pnl="-3.5", resolved=True),
            position("a3", "wind", "Yes", pnl="0.75"),
        ]
        reconciler = SignalReconciler(db, client, win_rate_threshold=70.0)
        evaluator = MetricsEvaluator(db, losing_streak_threshold=88, win_rate_threshold=70.0)

        await reconciler.reconcile(wallet)
        first = await evaluator.evaluate(wallet.id)
        again = await reconciler.reconcile(wallet)
        second = await evaluator.evaluate(wallet.id)

        assert (again.inserted, again.updated) == (0, 0)
        assert second == first
        assert first.win_rate == 50.0
        assert first.live_picks == 1

    @pytest.mark.asyncio
    async def test_wallet_paused_by_evaluator_leaves_live_picks(self, db) -> None:
        """Scenario: a long losing streak pauses the wallet and drops its picks."""
        loser = await create_wallet(db, win_rate=90.0)
        for i in range(88):
            await create_signal(db, loser.id, f"lost-{i}", "Yes", outcome=OUTCOME_LOSS, minutes=i)
        await create_signal(db, loser.id, "election", "Yes", minutes=100)

        steady = await create_wallet(db, win_rate=90.0)
        await create_signal(db, steady.id, "won", "Yes", outcome=OUTCOME_WIN)
        await create_signal(db, steady.id, "election", "Yes", minutes=100)

        builder = LivePicksBuilder(db, win_rate_threshold=0.0)
        before = await builder.rebuild()
        assert {row.wallet_id for row in before} == {loser.id, steady.id}

        evaluator = MetricsEvaluator(db, losing_streak_threshold=88, win_rate_threshold=0.0)
        await evaluator.evaluate_all()
        after = await builder.rebuild()

        async with db.get_async_session() as session:
            paused = await WalletRepository(session).paused_ids()
        assert paused == {loser.id}
        assert {row.wallet_id for row in after} == {steady.id}

    @pytest.mark.asyncio
    async def test_at_most_one_terminal_signal_per_market(self, db, client: MagicMock) -> None:
        wallet = await create_wallet(db)
        reconciler = SignalReconciler(db, client, win_rate_threshold=70.0)
        client.get_positions.return_value = [
            position("rain-yes", "rain", "Yes"),
            position("rain-no", "rain", "No"),
            position("snow-yes", "snow", "Yes"),
        ]
        await reconciler.reconcile(wallet)

        client.get_positions.return_value = [
            position("rain-no", "rain", "No", pnl="-5", resolved=True),
            position("rain-yes", "rain", "Yes", pnl="5", resolved=True),
            position("snow-yes", "snow", "Yes", pnl="-1", resolved=True),
            position("snow-no", "snow", "No", pnl="1", resolved=True),
        ]
        await reconciler.reconcile(wallet)
        await reconciler.reprocess(wallet)

        async with db.get_async_session() as session:
            signals = await SignalRepository(session).list_for_wallet(wallet.id)
        terminal_per_market = Counter(s.market_slug for s in signals if s.is_terminal)
        assert terminal_per_market == {"rain": 1, "snow": 1}
        by_asset = {s.tx_hash: s.outcome for s in signals}
        assert by_asset["rain-yes"] == OUTCOME_WIN
        assert by_asset["snow-yes"] == OUTCOME_LOSS
