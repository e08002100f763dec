"""Wallet metrics: market-level win rate, trailing losing streak, pause decision."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass

from polymarket_copy_signals.storage.database import STORE_UNAVAILABLE_ERRORS, DatabaseManager
from polymarket_copy_signals.storage.models import OUTCOME_LOSS, OUTCOME_WIN
from polymarket_copy_signals.storage.repos import SignalDTO, SignalRepository, WalletRepository
from polymarket_copy_signals.tracker.majority import strict_plurality

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WalletMetrics:
    win_rate: float
    losing_streak: int
    live_picks: int
    paused: bool
    counted_markets: int = 0


def market_win_rate(resolved: Sequence[SignalDTO]) -> tuple[float, int]:
    """Win rate over markets, one vote per market.

    Each market is represented by the first signal carrying its majority
    pick. Markets whose top picks tie contribute nothing.

    Returns:
        (win rate percentage, number of counted markets)
    """
    per_market: dict[str, list[SignalDTO]] = defaultdict(list)
    for signal in resolved:
        per_market[signal.market_slug].append(signal)

    wins = 0
    counted = 0
    for signals in per_market.values():
        pick = strict_plurality(s.picked_outcome for s in signals)
        if pick is None:
            continue
        representative = next(s for s in signals if s.picked_outcome == pick)
        counted += 1
        if representative.outcome == OUTCOME_WIN:
            wins += 1

    if counted == 0:
        return 0.0, 0
    return wins / counted * 100.0, counted


def trailing_losing_streak(resolved: Sequence[SignalDTO]) -> int:
    """Count LOSS signals from the most recent backwards, stopping at the first other outcome."""
    streak = 0
    for signal in reversed(resolved):
        if signal.outcome != OUTCOME_LOSS:
            break
        streak += 1
    return streak


def compute_wallet_metrics(
    resolved: Sequence[SignalDTO],
    live_picks: int,
    *,
    losing_streak_threshold: int,
    win_rate_threshold: float,
) -> WalletMetrics:
    """Compute metrics from resolved signals ordered oldest first."""
    win_rate, counted = market_win_rate(resolved)
    streak = trailing_losing_streak(resolved)
    paused = streak >= losing_streak_threshold or win_rate < win_rate_threshold
    return WalletMetrics(
        win_rate=win_rate,
        losing_streak=streak,
        live_picks=live_picks,
        paused=paused,
        counted_markets=counted,
    )


class MetricsEvaluator:
    """Recomputes and persists per-wallet metrics."""

    def __init__(
        self,
        db: DatabaseManager,
        *,
        losing_streak_threshold: int,
        win_rate_threshold: float,
    ) -> None:
        self._db = db
        self._losing_streak_threshold = losing_streak_threshold
        self._win_rate_threshold = win_rate_threshold

    async def evaluate(self, wallet_id: int) -> WalletMetrics:
        async with self._db.get_async_session() as session:
            signals = SignalRepository(session)
            resolved = await signals.list_resolved_for_wallet(wallet_id)
            live_picks = await signals.count_pending_for_wallet(wallet_id)
            metrics = compute_wallet_metrics(
                resolved,
                live_picks,
                losing_streak_threshold=self._losing_streak_threshold,
                win_rate_threshold=self._win_rate_threshold,
            )
            await WalletRepository(session).update_metrics(
                wallet_id,
                win_rate=metrics.win_rate,
                losing_streak=metrics.losing_streak,
                live_picks=metrics.live_picks,
                paused=metrics.paused,
            )

        logger.info(
            "Wallet %s: win_rate=%.2f%% losing_streak=%d live_picks=%d paused=%s",
            wallet_id,
            metrics.win_rate,
            metrics.losing_streak,
            metrics.live_picks,
            metrics.paused,
        )
        return metrics

    async def evaluate_all(self) -> dict[int, WalletMetrics]:
        """Evaluate every wallet; a failing wallet is logged and skipped."""
        async with self._db.get_async_session() as session:
            wallets = await WalletRepository(session).list_all()

        results: dict[int, WalletMetrics] = {}
        for wallet in wallets:
            try:
                results[wallet.id] = await self.evaluate(wallet.id)
            except STORE_UNAVAILABLE_ERRORS:
                raise
            except Exception as e:
                logger.error("Error evaluating wallet %s: %s", wallet.id, e)
        return results
