"""Rebuild of the live-picks projection.

For every eligible wallet the builder takes the wallet's Pending signals,
groups them per event and keeps the strict-plurality pick of each event.
The surviving (wallet, market, pick) rows are annotated with the number of
distinct wallets sharing the same (market, pick) and written as a full
replacement of `wallet_live_picks`.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence

from polymarket_copy_signals.storage.database import DatabaseManager
from polymarket_copy_signals.storage.models import OUTCOME_PENDING
from polymarket_copy_signals.storage.repos import (
    LivePickDTO,
    LivePickRepository,
    SignalDTO,
    SignalRepository,
    WalletDTO,
    WalletRepository,
)
from polymarket_copy_signals.tracker.majority import strict_plurality

logger = logging.getLogger(__name__)


def eligible_wallets(wallets: Iterable[WalletDTO], win_rate_threshold: float) -> list[WalletDTO]:
    return [w for w in wallets if not w.paused and w.win_rate >= win_rate_threshold]


def build_live_picks(
    signals: Sequence[SignalDTO],
    win_rates: dict[int, float],
) -> list[LivePickDTO]:
    """Derive the projection rows from Pending signals of eligible wallets.

    Args:
        signals: Pending signals with a pick, for eligible wallets only.
        win_rates: Current win rate per wallet id.

    Returns:
        Rows ordered by (market slug, pick, wallet id).
    """
    by_event: dict[tuple[int, str], list[SignalDTO]] = defaultdict(list)
    for signal in signals:
        if signal.outcome != OUTCOME_PENDING or not signal.picked_outcome or not signal.event_slug:
            continue
        by_event[(signal.wallet_id, signal.event_slug)].append(signal)

    # (wallet, market, pick) -> earliest signal carrying the event's winning pick
    chosen: dict[tuple[int, str, str], SignalDTO] = {}
    for group in by_event.values():
        pick = strict_plurality(s.picked_outcome for s in group)
        if pick is None:
            continue
        for signal in sorted(group, key=lambda s: (s.created_at is None, s.created_at, s.id or 0)):
            if signal.picked_outcome != pick:
                continue
            chosen.setdefault((signal.wallet_id, signal.market_slug, pick), signal)

    voters: dict[tuple[str, str], set[int]] = defaultdict(set)
    for wallet_id, market_slug, pick in chosen:
        voters[(market_slug, pick)].add(wallet_id)

    rows = []
    for (wallet_id, market_slug, pick), signal in sorted(
        chosen.items(), key=lambda item: (item[0][1], item[0][2], item[0][0])
    ):
        rows.append(
            LivePickDTO(
                wallet_id=wallet_id,
                market_slug=market_slug,
                event_slug=signal.event_slug,
                market_name=signal.market_name,
                picked_outcome=pick,
                side=signal.side,
                pnl=signal.pnl,
                outcome=signal.outcome,
                resolved_outcome=signal.resolved_outcome,
                vote_count=len(voters[(market_slug, pick)]),
                win_rate=win_rates.get(wallet_id, 0.0),
            )
        )
    return rows


class LivePicksBuilder:
    """Replaces the live-picks projection from current signals and wallet metrics."""

    def __init__(self, db: DatabaseManager, *, win_rate_threshold: float) -> None:
        self._db = db
        self._win_rate_threshold = win_rate_threshold

    async def rebuild(self) -> list[LivePickDTO]:
        async with self._db.get_async_session() as session:
            wallets = eligible_wallets(
                await WalletRepository(session).list_all(), self._win_rate_threshold
            )
            win_rates = {w.id: w.win_rate for w in wallets}
            signals = await SignalRepository(session).list_pending_for_wallets(win_rates)
            rows = build_live_picks(signals, win_rates)
            await LivePickRepository(session).replace_all(rows)

        logger.info(
            "Rebuilt wallet_live_picks: %d rows from %d eligible wallets", len(rows), len(win_rates)
        )
        return rows
