"""Leaderboard ingestion: discover profitable wallets and start tracking them."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from polymarket_copy_signals.ingestor.data_api import DataApiClient
from polymarket_copy_signals.ingestor.models import LeaderboardEntry
from polymarket_copy_signals.storage.database import DatabaseManager
from polymarket_copy_signals.storage.repos import WalletDTO, WalletRepository
from polymarket_copy_signals.tracker.reconciler import SignalReconciler

logger = logging.getLogger(__name__)


def qualifies(entry: LeaderboardEntry, *, pnl_min: Decimal, vol_mult: Decimal) -> bool:
    """Profitable enough, without volume dwarfing the profit."""
    return entry.pnl >= pnl_min and entry.vol < vol_mult * entry.pnl


@dataclass
class LeaderboardRunStats:
    buckets: int = 0
    entries_seen: int = 0
    qualified: int = 0
    inserted: list[WalletDTO] = field(default_factory=list)


class LeaderboardIngestor:
    """Fetches leaderboard pages across category/period buckets and inserts new wallets.

    Each new wallet is inserted with ``force_fetch`` set and reconciled
    immediately so its history is seeded before the next tick.
    """

    def __init__(
        self,
        db: DatabaseManager,
        client: DataApiClient,
        reconciler: SignalReconciler,
        *,
        categories: Sequence[str],
        time_periods: Sequence[str],
        limit: int = 50,
        pnl_min: float = 5000,
        vol_mult: float = 20,
    ) -> None:
        self._db = db
        self._client = client
        self._reconciler = reconciler
        self._categories = list(categories)
        self._time_periods = list(time_periods)
        self._limit = limit
        self._pnl_min = Decimal(str(pnl_min))
        self._vol_mult = Decimal(str(vol_mult))

    async def run(self) -> LeaderboardRunStats:
        stats = LeaderboardRunStats()
        seen: set[str] = set()

        for category in self._categories:
            for period in self._time_periods:
                stats.buckets += 1
                entries = await self._client.get_leaderboard(category, period, self._limit)
                stats.entries_seen += len(entries)
                for entry in entries:
                    if not qualifies(entry, pnl_min=self._pnl_min, vol_mult=self._vol_mult):
                        continue
                    stats.qualified += 1
                    if entry.proxy_wallet in seen:
                        continue
                    seen.add(entry.proxy_wallet)

                    wallet = await self._insert(entry)
                    if wallet is None:
                        continue
                    stats.inserted.append(wallet)
                    logger.info(
                        "New wallet %s (%s) from leaderboard %s/%s",
                        wallet.id,
                        wallet.label,
                        category,
                        period,
                    )
                    await self._reconciler.reconcile(wallet)

        logger.info(
            "Leaderboard ingestion: %d buckets, %d entries, %d qualified, %d new wallets",
            stats.buckets,
            stats.entries_seen,
            stats.qualified,
            len(stats.inserted),
        )
        return stats

    async def _insert(self, entry: LeaderboardEntry) -> WalletDTO | None:
        async with self._db.get_async_session() as session:
            return await WalletRepository(session).insert_if_absent(
                entry.proxy_wallet,
                display_name=entry.user_name,
                paused=False,
                force_fetch=True,
            )
