"""Daily summary of resolved and pending majority signals."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, datetime, time, timedelta
from zoneinfo import ZoneInfo

from polymarket_copy_signals.alerter.formatter import (
    RESULT_EMOJIS,
    confidence_stars,
    display_pick,
    escape_markdown,
    market_link,
)
from polymarket_copy_signals.alerter.publisher import select_majorities
from polymarket_copy_signals.alerter.telegram import TelegramChannel
from polymarket_copy_signals.storage.database import DatabaseManager
from polymarket_copy_signals.storage.models import OUTCOME_WIN
from polymarket_copy_signals.storage.repos import (
    LivePickRepository,
    SignalDTO,
    SignalRepository,
    WalletRepository,
)

logger = logging.getLogger(__name__)


def previous_day_bounds(now: datetime, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """UTC bounds of the calendar day before ``now`` in ``tz``."""
    today = now.astimezone(tz).date()
    start = datetime.combine(today - timedelta(days=1), time.min, tzinfo=tz)
    end = datetime.combine(today, time.min, tzinfo=tz)
    return start.astimezone(UTC), end.astimezone(UTC)


class DailySummary:
    """Builds and sends the once-a-day recap to the chat."""

    def __init__(
        self,
        db: DatabaseManager,
        channel: TelegramChannel,
        *,
        thresholds: Mapping[int, int],
        min_wallets: int,
        timezone: str,
        dry_run: bool = False,
    ) -> None:
        self._db = db
        self._channel = channel
        self._thresholds = dict(thresholds)
        self._min_wallets = min_wallets
        self._tz = ZoneInfo(timezone)
        self._dry_run = dry_run

    async def build(self, now: datetime | None = None) -> str:
        now = now or datetime.now(UTC)
        start, end = previous_day_bounds(now, self._tz)

        async with self._db.get_async_session() as session:
            resolved = await SignalRepository(session).list_resolved_between(start, end)
            picks = await LivePickRepository(session).list_pending()
            paused = await WalletRepository(session).paused_ids()

        # One line per (market, pick); the earliest resolution represents the group.
        results: dict[tuple[str, str | None], SignalDTO] = {}
        for signal in resolved:
            results.setdefault((signal.market_slug, signal.picked_outcome), signal)

        won = sum(1 for s in results.values() if s.outcome == OUTCOME_WIN)
        lost = len(results) - won
        day = start.astimezone(self._tz).date()

        lines = [f"Daily Summary: {day.isoformat()}", f"Resolved: {won} won, {lost} lost"]
        for signal in results.values():
            pick = display_pick(signal.picked_outcome, signal.side, signal.resolved_outcome)
            lines.append(
                f"{RESULT_EMOJIS[signal.outcome]} "
                f"{market_link(signal.market_name, signal.event_slug, signal.market_slug)}: "
                f"{escape_markdown(pick)}"
            )

        majorities = select_majorities(picks, paused, min_wallets=self._min_wallets)
        lines.append("")
        lines.append(f"Pending majorities: {len(majorities)}")
        for group in majorities:
            rep = group.representative
            stars = confidence_stars(group.vote_count, self._thresholds)
            pick = display_pick(group.picked_outcome, rep.side)
            lines.append(
                f"{stars} {market_link(rep.market_name, rep.event_slug, group.market_slug)}: "
                f"{escape_markdown(pick)} ({group.vote_count} votes)"
            )
        return "\n".join(lines)

    async def send(self, now: datetime | None = None) -> str:
        """Build the summary and send it; delivery errors propagate."""
        text = await self.build(now)
        if self._dry_run:
            logger.info("[dry-run] Would send daily summary:\n%s", text)
        else:
            await self._channel.send(text)
            logger.info("Daily summary sent")
        return text
