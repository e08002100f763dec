"""Per-wallet reconciliation of upstream positions and trades into signals.

The reconciler fetches a wallet's positions and latest trades, compares
them with the wallet's stored signals and writes the difference: new
signals are inserted, resolution fields of existing signals are updated.
Planning is a pure function (`plan_reconciliation`) so the write set can
be inspected without a database.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal

from polymarket_copy_signals.ingestor.data_api import DataApiClient
from polymarket_copy_signals.ingestor.models import Position, Trade
from polymarket_copy_signals.storage.database import DatabaseManager
from polymarket_copy_signals.storage.models import (
    OUTCOME_LOSS,
    OUTCOME_PENDING,
    OUTCOME_WIN,
    TERMINAL_OUTCOMES,
    quantize_pnl,
)
from polymarket_copy_signals.storage.repos import SignalDTO, SignalRepository, WalletDTO, WalletRepository

logger = logging.getLogger(__name__)


def classify_position(position: Position) -> tuple[str, str | None]:
    """Classify a position as (outcome, resolved_outcome).

    A resolved position with positive cash P&L is a WIN on the picked
    outcome; any other resolved position is a LOSS, resolved to the
    opposite outcome when known. Unresolved positions are Pending.
    """
    if not position.resolved:
        return OUTCOME_PENDING, None
    if position.cash_pnl is not None and position.cash_pnl > 0:
        return OUTCOME_WIN, position.picked_outcome
    return OUTCOME_LOSS, position.opposite_outcome or position.picked_outcome


@dataclass(frozen=True)
class SignalUpdate:
    """Resolution fields to write onto an existing signal."""

    signal_id: int
    pnl: Decimal | None
    outcome: str
    resolved_outcome: str | None
    outcome_at: datetime | None
    market_name: str | None = None


@dataclass
class ReconcilePlan:
    inserts: list[SignalDTO] = field(default_factory=list)
    updates: list[SignalUpdate] = field(default_factory=list)


@dataclass
class ReconcileResult:
    """Outcome of one wallet reconciliation."""

    wallet_id: int
    skipped: bool = False
    unpaused: bool = False
    positions_seen: int = 0
    trades_seen: int = 0
    inserted: int = 0
    updated: int = 0


def _plan_update(
    existing: SignalDTO,
    position: Position,
    title: str | None,
    now: datetime,
    *,
    may_resolve: bool,
) -> SignalUpdate | None:
    outcome, resolved_outcome = classify_position(position)
    pnl = quantize_pnl(position.cash_pnl)

    # Only one signal per market carries the resolution; the others keep their outcome.
    if outcome in TERMINAL_OUTCOMES and not may_resolve:
        outcome, resolved_outcome = existing.outcome, existing.resolved_outcome

    # Terminal outcomes are sticky.
    if existing.is_terminal and outcome not in TERMINAL_OUTCOMES:
        return None

    if outcome in TERMINAL_OUTCOMES:
        outcome_at = existing.outcome_at or now
    else:
        outcome_at = None

    market_name = title if title and not existing.market_name else None
    if (
        existing.pnl == pnl
        and existing.outcome == outcome
        and existing.resolved_outcome == resolved_outcome
        and market_name is None
    ):
        return None

    return SignalUpdate(
        signal_id=existing.id,  # type: ignore[arg-type]
        pnl=pnl,
        outcome=outcome,
        resolved_outcome=resolved_outcome,
        outcome_at=outcome_at,
        market_name=market_name,
    )


def plan_reconciliation(
    wallet: WalletDTO,
    existing: Sequence[SignalDTO],
    positions: Sequence[Position],
    trades: Sequence[Trade],
    *,
    titles: Mapping[str, str] | None = None,
    now: datetime | None = None,
) -> ReconcilePlan:
    """Compute the signal inserts and updates for one wallet.

    A market slug has at most one terminal signal. It is the signal that is
    already terminal, otherwise the earliest stored signal whose own
    position resolved, otherwise the first resolved position inserted in
    this pass. Other signals of that market only take the P&L and stay
    Pending.

    Args:
        wallet: The wallet being reconciled.
        existing: All stored signals of the wallet, oldest first.
        positions: Current positions from the venue.
        trades: Latest taker trades from the venue.
        titles: Fallback market names keyed by event slug.
        now: Timestamp used for new rows and resolution times.

    Returns:
        The plan; applying it twice against unchanged inputs is a no-op.
    """
    now = now or datetime.now(UTC)
    titles = titles or {}
    plan = ReconcilePlan()

    by_asset: dict[tuple[str, str], SignalDTO] = {}
    by_market: dict[str, list[SignalDTO]] = defaultdict(list)
    for signal in existing:
        by_asset.setdefault((signal.market_slug, signal.tx_hash), signal)
        by_market[signal.market_slug].append(signal)
    known_assets = {s.tx_hash for s in existing}
    stored_order = {s.id: i for i, s in enumerate(existing)}

    # Market slug -> id of the signal holding its terminal outcome (None: inserted this pass).
    resolver: dict[str, int | None] = {}
    for signal in existing:
        if signal.is_terminal:
            resolver.setdefault(signal.market_slug, signal.id)

    # Signals matched exactly by asset are not available as market-slug fallbacks.
    claimed = {
        by_asset[(p.market_slug, p.asset)].id
        for p in positions
        if (p.market_slug, p.asset) in by_asset
    }

    def title_for(record: Position | Trade) -> str | None:
        return record.title or titles.get(record.event_slug)

    matches: list[tuple[Position, SignalDTO | None]] = []
    for position in positions:
        match = by_asset.get((position.market_slug, position.asset))
        if match is None:
            candidates = [s for s in by_market.get(position.market_slug, []) if s.id not in claimed]
            if candidates:
                match = candidates[0]
                claimed.add(match.id)
            elif position.market_slug in by_market:
                continue
        matches.append((position, match))

    resolved_signals = sorted(
        (s for p, s in matches if s is not None and p.resolved),
        key=lambda s: stored_order[s.id],
    )
    for signal in resolved_signals:
        resolver.setdefault(signal.market_slug, signal.id)

    for position, match in matches:
        if match is not None:
            update = _plan_update(
                match,
                position,
                title_for(position),
                now,
                may_resolve=resolver.get(position.market_slug) == match.id,
            )
            if update is not None:
                plan.updates.append(update)
            continue

        if position.asset in known_assets:
            continue

        outcome, resolved_outcome = classify_position(position)
        if outcome in TERMINAL_OUTCOMES:
            if position.market_slug in resolver:
                outcome, resolved_outcome = OUTCOME_PENDING, None
            else:
                resolver[position.market_slug] = None
        plan.inserts.append(
            SignalDTO(
                wallet_id=wallet.id,
                market_slug=position.market_slug,
                event_slug=position.event_slug,
                market_name=title_for(position),
                picked_outcome=position.picked_outcome,
                opposite_outcome=position.opposite_outcome,
                side=position.side or "BUY",
                tx_hash=position.asset,
                pnl=quantize_pnl(position.cash_pnl),
                outcome=outcome,
                resolved_outcome=resolved_outcome,
                outcome_at=now if outcome in TERMINAL_OUTCOMES else None,
                win_rate=wallet.win_rate,
                created_at=position.timestamp or now,
            )
        )
        known_assets.add(position.asset)

    live_slugs = {p.market_slug for p in positions if p.cash_pnl is None}
    closed_assets = {p.asset for p in positions if p.cash_pnl is not None}
    for trade in trades:
        if trade.market_slug not in live_slugs:
            continue
        if trade.asset in known_assets or trade.asset in closed_assets:
            continue
        plan.inserts.append(
            SignalDTO(
                wallet_id=wallet.id,
                market_slug=trade.market_slug,
                event_slug=trade.event_slug,
                market_name=title_for(trade),
                picked_outcome=trade.picked_outcome,
                side=trade.side or "BUY",
                tx_hash=trade.asset,
                outcome=OUTCOME_PENDING,
                win_rate=wallet.win_rate,
                created_at=trade.timestamp or now,
            )
        )
        known_assets.add(trade.asset)

    return plan


class SignalReconciler:
    """Reconciles one wallet at a time against the venue.

    Upstream failures arrive as empty collections from the client and are
    treated as "no change". Store errors propagate to the caller.
    """

    def __init__(
        self,
        db: DatabaseManager,
        client: DataApiClient,
        *,
        win_rate_threshold: float,
    ) -> None:
        self._db = db
        self._client = client
        self._win_rate_threshold = win_rate_threshold

    async def reconcile(self, wallet: WalletDTO) -> ReconcileResult:
        result = ReconcileResult(wallet_id=wallet.id)

        if not wallet.proxy_wallet:
            logger.warning("Wallet %s has no proxy wallet, skipping", wallet.id)
            result.skipped = True
            return result

        paused = wallet.paused
        if paused and wallet.win_rate >= self._win_rate_threshold:
            async with self._db.get_async_session() as session:
                await WalletRepository(session).set_paused(wallet.id, False)
            paused = False
            result.unpaused = True
            logger.info("Wallet %s auto-unpaused (win_rate=%.2f%%)", wallet.id, wallet.win_rate)

        if paused and not wallet.force_fetch:
            result.skipped = True
            return result

        positions, trades = await asyncio.gather(
            self._client.get_positions(wallet.proxy_wallet),
            self._client.get_trades(wallet.proxy_wallet),
        )
        result.positions_seen = len(positions)
        result.trades_seen = len(trades)

        titles = await self._lookup_titles(positions, trades)
        now = datetime.now(UTC)

        async with self._db.get_async_session() as session:
            signals = SignalRepository(session)
            existing = await signals.list_for_wallet(wallet.id)
            plan = plan_reconciliation(wallet, existing, positions, trades, titles=titles, now=now)

            for dto in plan.inserts:
                if await signals.insert_if_absent(dto):
                    result.inserted += 1
            for update in plan.updates:
                await signals.update_resolution(
                    update.signal_id,
                    pnl=update.pnl,
                    outcome=update.outcome,
                    resolved_outcome=update.resolved_outcome,
                    outcome_at=update.outcome_at,
                    market_name=update.market_name,
                )
            result.updated = len(plan.updates)
            await WalletRepository(session).touch_last_checked(wallet.id, now)

        if result.inserted or result.updated:
            logger.info(
                "Wallet %s: %d positions, %d trades, inserted %d, updated %d",
                wallet.id,
                result.positions_seen,
                result.trades_seen,
                result.inserted,
                result.updated,
            )
        return result

    async def _lookup_titles(
        self, positions: Sequence[Position], trades: Sequence[Trade]
    ) -> dict[str, str]:
        missing = {r.event_slug for r in [*positions, *trades] if not r.title}
        titles: dict[str, str] = {}
        for slug in sorted(missing):
            event = await self._client.get_event(slug)
            if event is not None and event.title:
                titles[slug] = event.title
        return titles

    async def reprocess(self, wallet: WalletDTO) -> int:
        """Re-apply current position resolutions to every matching signal.

        Matches on (wallet, market slug, picked outcome). Pending duplicates
        of a pick take the P&L; only one signal per market becomes terminal.

        Returns:
            Number of signal rows updated.
        """
        if not wallet.proxy_wallet:
            return 0
        positions = await self._client.get_positions(wallet.proxy_wallet)
        if not positions:
            return 0

        updated = 0
        async with self._db.get_async_session() as session:
            signals = SignalRepository(session)
            for position in positions:
                outcome, resolved_outcome = classify_position(position)
                updated += await signals.update_resolution_by_pick(
                    wallet.id,
                    position.market_slug,
                    position.picked_outcome,
                    pnl=position.cash_pnl,
                    outcome=outcome,
                    resolved_outcome=resolved_outcome,
                )
        logger.debug("Reprocessed %d positions for wallet %s (%d rows)", len(positions), wallet.id, updated)
        return updated
