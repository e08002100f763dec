"""Publishing of market-wide majority picks.

The publisher reads the live-picks projection, finds per market the pick
backed by a strict plurality of unpaused wallets, and publishes each
majority that meets the minimum wallet count to the chat and the notes
document. Signals are marked sent only after both writes succeed, so a
failure is retried on the next tick.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError

from polymarket_copy_signals.alerter.formatter import confidence_tier, format_majority_signal
from polymarket_copy_signals.alerter.notes import NotesUpdater
from polymarket_copy_signals.alerter.telegram import TelegramChannel, TelegramError
from polymarket_copy_signals.storage.database import DatabaseManager
from polymarket_copy_signals.storage.models import OUTCOME_PENDING
from polymarket_copy_signals.storage.repos import LivePickDTO, LivePickRepository, SignalRepository, WalletRepository
from polymarket_copy_signals.tracker.majority import top_choice

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MajorityGroup:
    """A market whose wallets agree on one pick."""

    market_slug: str
    picked_outcome: str
    wallet_ids: tuple[int, ...]
    representative: LivePickDTO

    @property
    def vote_count(self) -> int:
        return len(self.wallet_ids)


def select_majorities(
    picks: Sequence[LivePickDTO],
    paused_ids: Collection[int],
    *,
    min_wallets: int,
) -> list[MajorityGroup]:
    """Per market, the strict-plurality pick with at least ``min_wallets`` voters.

    Picks from paused wallets and non-Pending rows are ignored. A market
    whose top picks tie is skipped.
    """
    voters: dict[str, dict[str, set[int]]] = defaultdict(lambda: defaultdict(set))
    first_pick: dict[tuple[str, str], LivePickDTO] = {}
    for pick in sorted(picks, key=lambda p: (p.market_slug, p.picked_outcome, p.wallet_id)):
        if pick.outcome != OUTCOME_PENDING or pick.wallet_id in paused_ids:
            continue
        voters[pick.market_slug][pick.picked_outcome].add(pick.wallet_id)
        first_pick.setdefault((pick.market_slug, pick.picked_outcome), pick)

    groups = []
    for market_slug in sorted(voters):
        by_pick = voters[market_slug]
        winner = top_choice({outcome: len(ids) for outcome, ids in by_pick.items()})
        if winner is None:
            logger.debug("Market %s has tied picks, no majority", market_slug)
            continue
        wallet_ids = tuple(sorted(by_pick[winner]))
        if len(wallet_ids) < min_wallets:
            continue
        groups.append(
            MajorityGroup(
                market_slug=market_slug,
                picked_outcome=winner,
                wallet_ids=wallet_ids,
                representative=first_pick[(market_slug, winner)],
            )
        )
    return groups


@dataclass
class PublishStats:
    candidates: int = 0
    published: list[MajorityGroup] = field(default_factory=list)
    already_sent: int = 0
    failed: int = 0


class SignalPublisher:
    """Sends majority signals to the chat and the notes document."""

    def __init__(
        self,
        db: DatabaseManager,
        channel: TelegramChannel,
        notes: NotesUpdater,
        *,
        thresholds: Mapping[int, int],
        min_wallets: int,
        timezone: str,
        force_send: bool = False,
        dry_run: bool = False,
    ) -> None:
        self._db = db
        self._channel = channel
        self._notes = notes
        self._thresholds = dict(thresholds)
        self._min_wallets = min_wallets
        self._tz = ZoneInfo(timezone)
        self._force_send = force_send
        self._dry_run = dry_run

    async def publish(self, now: datetime | None = None) -> PublishStats:
        now = now or datetime.now(UTC)
        stats = PublishStats()

        async with self._db.get_async_session() as session:
            picks = await LivePickRepository(session).list_pending()
            paused = await WalletRepository(session).paused_ids()

        if not picks:
            logger.info("No live picks to process.")
            return stats

        groups = select_majorities(picks, paused, min_wallets=self._min_wallets)
        stats.candidates = len(groups)

        for group in groups:
            if not self._force_send:
                async with self._db.get_async_session() as session:
                    unsent = await SignalRepository(session).has_unsent(
                        group.market_slug, group.picked_outcome, group.wallet_ids
                    )
                if not unsent:
                    stats.already_sent += 1
                    continue

            if await self._publish_group(group, now):
                stats.published.append(group)
            else:
                stats.failed += 1

        if stats.published or stats.failed:
            logger.info(
                "Published %d majority signals (%d failed, %d already sent)",
                len(stats.published),
                stats.failed,
                stats.already_sent,
            )
        return stats

    async def _publish_group(self, group: MajorityGroup, now: datetime) -> bool:
        rep = group.representative
        text = format_majority_signal(
            market_name=rep.market_name,
            market_slug=group.market_slug,
            event_slug=rep.event_slug,
            picked_outcome=group.picked_outcome,
            side=rep.side,
            vote_count=group.vote_count,
            thresholds=self._thresholds,
            moment=now,
            tz=self._tz,
        )

        if self._dry_run:
            logger.info("[dry-run] Would send majority signal:\n%s", text)
            return True

        try:
            await self._channel.send(text)
            await self._notes.update(text)
        except (TelegramError, SQLAlchemyError) as e:
            logger.error("Failed to publish signal for market %s: %s", group.market_slug, e)
            return False

        async with self._db.get_async_session() as session:
            marked = await SignalRepository(session).mark_sent(
                group.market_slug, group.picked_outcome, group.wallet_ids, now
            )

        logger.info(
            "Sent majority signal for market %s: %s (votes=%d, tier=%d, marked=%d)",
            rep.market_name or group.market_slug,
            group.picked_outcome,
            group.vote_count,
            confidence_tier(group.vote_count, self._thresholds),
            marked,
        )
        return True
