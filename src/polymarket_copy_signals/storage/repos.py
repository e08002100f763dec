"""Repository pattern implementations for data access.

This module provides data access abstractions for tracked wallets, their
signals, the live-picks projection and the notes document. Repositories
wrap a single `AsyncSession`; the caller owns the transaction through
`DatabaseManager.get_async_session()`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from polymarket_copy_signals.storage.models import (
    OUTCOME_PENDING,
    TERMINAL_OUTCOMES,
    NoteModel,
    SignalModel,
    WalletLivePickModel,
    WalletModel,
    quantize_pnl,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def _insert(session: AsyncSession, model: type[Any]) -> Any:
    """Return a dialect-specific INSERT supporting ON CONFLICT."""
    if session.get_bind().dialect.name == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)


@dataclass
class WalletDTO:
    """Data transfer object for tracked wallets."""

    id: int
    proxy_wallet: str | None
    display_name: str | None = None
    last_checked: datetime | None = None
    paused: bool = False
    losing_streak: int = 0
    win_rate: float = 0.0
    live_picks: int = 0
    force_fetch: bool = False
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: WalletModel) -> WalletDTO:
        return cls(
            id=model.id,
            proxy_wallet=model.polymarket_proxy_wallet,
            display_name=model.display_name,
            last_checked=model.last_checked,
            paused=model.paused,
            losing_streak=model.losing_streak,
            win_rate=model.win_rate,
            live_picks=model.live_picks,
            force_fetch=model.force_fetch,
            created_at=model.created_at,
        )

    @property
    def label(self) -> str:
        return self.display_name or self.proxy_wallet or f"wallet-{self.id}"


@dataclass
class SignalDTO:
    """Data transfer object for per-wallet signals.

    ``id`` is ``None`` for signals not yet persisted.
    """

    wallet_id: int
    market_slug: str
    tx_hash: str
    picked_outcome: str | None
    event_slug: str | None = None
    market_name: str | None = None
    opposite_outcome: str | None = None
    side: str = "BUY"
    pnl: Decimal | None = None
    outcome: str = OUTCOME_PENDING
    resolved_outcome: str | None = None
    outcome_at: datetime | None = None
    win_rate: float | None = None
    created_at: datetime | None = None
    signal_sent_at: datetime | None = None
    id: int | None = None

    @classmethod
    def from_model(cls, model: SignalModel) -> SignalDTO:
        return cls(
            id=model.id,
            wallet_id=model.wallet_id,
            market_slug=model.market_slug,
            event_slug=model.event_slug,
            market_name=model.market_name,
            picked_outcome=model.picked_outcome,
            opposite_outcome=model.opposite_outcome,
            side=model.side,
            tx_hash=model.tx_hash,
            pnl=model.pnl,
            outcome=model.outcome,
            resolved_outcome=model.resolved_outcome,
            outcome_at=model.outcome_at,
            win_rate=model.win_rate,
            created_at=model.created_at,
            signal_sent_at=model.signal_sent_at,
        )

    @property
    def is_terminal(self) -> bool:
        return self.outcome in TERMINAL_OUTCOMES


@dataclass
class LivePickDTO:
    """Data transfer object for rows of the live-picks projection."""

    wallet_id: int
    market_slug: str
    picked_outcome: str
    event_slug: str | None = None
    market_name: str | None = None
    side: str | None = None
    pnl: Decimal | None = None
    outcome: str = OUTCOME_PENDING
    resolved_outcome: str | None = None
    vote_count: int = 1
    win_rate: float = 0.0
    fetched_at: datetime | None = None

    @classmethod
    def from_model(cls, model: WalletLivePickModel) -> LivePickDTO:
        return cls(
            wallet_id=model.wallet_id,
            market_slug=model.market_slug,
            event_slug=model.event_slug,
            market_name=model.market_name,
            picked_outcome=model.picked_outcome,
            side=model.side,
            pnl=model.pnl,
            outcome=model.outcome,
            resolved_outcome=model.resolved_outcome,
            vote_count=model.vote_count,
            win_rate=model.win_rate,
            fetched_at=model.fetched_at,
        )


@dataclass
class NoteDTO:
    """Data transfer object for notes documents."""

    slug: str
    content: str
    public: bool = False
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, model: NoteModel) -> NoteDTO:
        return cls(
            slug=model.slug,
            content=model.content,
            public=model.public,
            updated_at=model.updated_at,
        )


class WalletRepository:
    """Repository for tracked wallets."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_all(self) -> list[WalletDTO]:
        result = await self.session.execute(select(WalletModel).order_by(WalletModel.id))
        return [WalletDTO.from_model(m) for m in result.scalars().all()]

    async def get(self, wallet_id: int) -> WalletDTO | None:
        model = await self.session.get(WalletModel, wallet_id)
        return WalletDTO.from_model(model) if model else None

    async def get_by_proxy(self, proxy_wallet: str) -> WalletDTO | None:
        result = await self.session.execute(
            select(WalletModel).where(WalletModel.polymarket_proxy_wallet == proxy_wallet.lower())
        )
        model = result.scalar_one_or_none()
        return WalletDTO.from_model(model) if model else None

    async def insert_if_absent(
        self,
        proxy_wallet: str,
        *,
        display_name: str | None = None,
        paused: bool = False,
        force_fetch: bool = True,
    ) -> WalletDTO | None:
        """Insert a wallet keyed by proxy address.

        Returns:
            The new wallet, or ``None`` if the proxy address already exists.
        """
        stmt = _insert(self.session, WalletModel).values(
            polymarket_proxy_wallet=proxy_wallet.lower(),
            display_name=display_name,
            paused=paused,
            force_fetch=force_fetch,
            losing_streak=0,
            win_rate=0.0,
            live_picks=0,
            created_at=datetime.now(UTC),
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["polymarket_proxy_wallet"])
        result = await self.session.execute(stmt.returning(WalletModel.id))
        wallet_id = result.scalar_one_or_none()
        if wallet_id is None:
            return None
        await self.session.flush()
        return await self.get(wallet_id)

    async def set_paused(self, wallet_id: int, paused: bool) -> None:
        await self.session.execute(
            update(WalletModel).where(WalletModel.id == wallet_id).values(paused=paused)
        )

    async def touch_last_checked(self, wallet_id: int, at: datetime | None = None) -> None:
        await self.session.execute(
            update(WalletModel)
            .where(WalletModel.id == wallet_id)
            .values(last_checked=at or datetime.now(UTC))
        )

    async def update_metrics(
        self,
        wallet_id: int,
        *,
        win_rate: float,
        losing_streak: int,
        live_picks: int,
        paused: bool,
        checked_at: datetime | None = None,
    ) -> None:
        await self.session.execute(
            update(WalletModel)
            .where(WalletModel.id == wallet_id)
            .values(
                win_rate=win_rate,
                losing_streak=losing_streak,
                live_picks=live_picks,
                paused=paused,
                last_checked=checked_at or datetime.now(UTC),
            )
        )

    async def paused_ids(self) -> set[int]:
        result = await self.session.execute(
            select(WalletModel.id).where(WalletModel.paused.is_(True))
        )
        return {row[0] for row in result.all()}

    async def bulk_unpause(self, win_rate_threshold: float) -> int:
        """Unpause every paused wallet whose win rate is at or above threshold."""
        result = await self.session.execute(
            update(WalletModel)
            .where(WalletModel.paused.is_(True))
            .where(WalletModel.win_rate >= win_rate_threshold)
            .values(paused=False)
        )
        return int(result.rowcount or 0)


class SignalRepository:
    """Repository for per-wallet signals."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_for_wallet(self, wallet_id: int) -> list[SignalDTO]:
        result = await self.session.execute(
            select(SignalModel)
            .where(SignalModel.wallet_id == wallet_id)
            .order_by(SignalModel.created_at, SignalModel.id)
        )
        return [SignalDTO.from_model(m) for m in result.scalars().all()]

    async def insert_if_absent(self, dto: SignalDTO) -> bool:
        """Insert a signal unless (wallet, market slug, asset) already exists.

        Returns:
            True if a row was inserted.
        """
        stmt = _insert(self.session, SignalModel).values(
            wallet_id=dto.wallet_id,
            market_slug=dto.market_slug,
            event_slug=dto.event_slug,
            market_name=dto.market_name,
            picked_outcome=dto.picked_outcome,
            opposite_outcome=dto.opposite_outcome,
            side=dto.side or "BUY",
            tx_hash=dto.tx_hash,
            pnl=dto.pnl,
            outcome=dto.outcome,
            resolved_outcome=dto.resolved_outcome,
            outcome_at=dto.outcome_at,
            win_rate=dto.win_rate,
            created_at=dto.created_at or datetime.now(UTC),
            signal_sent_at=dto.signal_sent_at,
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["wallet_id", "market_slug", "tx_hash"])
        result = await self.session.execute(stmt.returning(SignalModel.id))
        return result.scalar_one_or_none() is not None

    async def update_resolution(
        self,
        signal_id: int,
        *,
        pnl: Decimal | None,
        outcome: str,
        resolved_outcome: str | None,
        outcome_at: datetime | None,
        market_name: str | None = None,
    ) -> None:
        values: dict[str, Any] = {
            "pnl": pnl,
            "outcome": outcome,
            "resolved_outcome": resolved_outcome,
            "outcome_at": outcome_at,
        }
        if market_name:
            values["market_name"] = market_name
        await self.session.execute(
            update(SignalModel).where(SignalModel.id == signal_id).values(**values)
        )

    async def update_resolution_by_pick(
        self,
        wallet_id: int,
        market_slug: str,
        picked_outcome: str,
        *,
        pnl: Decimal | None,
        outcome: str,
        resolved_outcome: str | None,
    ) -> int:
        """Update every signal of a wallet carrying this (market, pick).

        Rows still Pending take the P&L. A terminal classification goes to
        one row only: the market's existing terminal signal when it carries
        this pick, otherwise the earliest row with this pick, and only while
        no other signal of the market is terminal. ``outcome_at`` is filled
        once, when a row first becomes terminal.
        """
        pnl = quantize_pnl(pnl)
        resolver_id: int | None = None
        if outcome in TERMINAL_OUTCOMES:
            rows = (
                await self.session.execute(
                    select(SignalModel.id, SignalModel.picked_outcome, SignalModel.outcome)
                    .where(SignalModel.wallet_id == wallet_id)
                    .where(SignalModel.market_slug == market_slug)
                    .order_by(SignalModel.created_at, SignalModel.id)
                )
            ).all()
            terminal = [row for row in rows if row.outcome in TERMINAL_OUTCOMES]
            if terminal:
                if terminal[0].picked_outcome == picked_outcome:
                    resolver_id = terminal[0].id
            else:
                resolver_id = next((row.id for row in rows if row.picked_outcome == picked_outcome), None)

        updated = 0
        if resolver_id is not None:
            result = await self.session.execute(
                update(SignalModel)
                .where(SignalModel.id == resolver_id)
                .values(
                    pnl=pnl,
                    outcome=outcome,
                    resolved_outcome=resolved_outcome,
                    outcome_at=sa.func.coalesce(SignalModel.outcome_at, datetime.now(UTC)),
                )
            )
            updated += int(result.rowcount or 0)

        stmt = (
            update(SignalModel)
            .where(SignalModel.wallet_id == wallet_id)
            .where(SignalModel.market_slug == market_slug)
            .where(SignalModel.picked_outcome == picked_outcome)
            .where(SignalModel.outcome == OUTCOME_PENDING)
        )
        if resolver_id is not None:
            stmt = stmt.where(SignalModel.id != resolver_id)
        result = await self.session.execute(stmt.values(pnl=pnl))
        return updated + int(result.rowcount or 0)

    async def list_resolved_for_wallet(self, wallet_id: int) -> list[SignalDTO]:
        """Resolved signals ordered by creation time, oldest first."""
        result = await self.session.execute(
            select(SignalModel)
            .where(SignalModel.wallet_id == wallet_id)
            .where(SignalModel.outcome.in_(TERMINAL_OUTCOMES))
            .order_by(SignalModel.created_at, SignalModel.id)
        )
        return [SignalDTO.from_model(m) for m in result.scalars().all()]

    async def count_pending_for_wallet(self, wallet_id: int) -> int:
        result = await self.session.execute(
            select(sa.func.count())
            .select_from(SignalModel)
            .where(SignalModel.wallet_id == wallet_id)
            .where(SignalModel.outcome == OUTCOME_PENDING)
        )
        return int(result.scalar_one())

    async def list_pending_for_wallets(self, wallet_ids: Iterable[int]) -> list[SignalDTO]:
        """Pending signals with a pick for the given wallets, oldest first."""
        ids = sorted(set(wallet_ids))
        if not ids:
            return []
        result = await self.session.execute(
            select(SignalModel)
            .where(SignalModel.wallet_id.in_(ids))
            .where(SignalModel.outcome == OUTCOME_PENDING)
            .where(SignalModel.picked_outcome.is_not(None))
            .order_by(SignalModel.created_at, SignalModel.id)
        )
        return [SignalDTO.from_model(m) for m in result.scalars().all()]

    async def has_unsent(
        self, market_slug: str, picked_outcome: str, wallet_ids: Sequence[int]
    ) -> bool:
        if not wallet_ids:
            return False
        result = await self.session.execute(
            select(SignalModel.id)
            .where(SignalModel.market_slug == market_slug)
            .where(SignalModel.picked_outcome == picked_outcome)
            .where(SignalModel.wallet_id.in_(list(wallet_ids)))
            .where(SignalModel.signal_sent_at.is_(None))
            .limit(1)
        )
        return result.first() is not None

    async def mark_sent(
        self,
        market_slug: str,
        picked_outcome: str,
        wallet_ids: Sequence[int],
        sent_at: datetime | None = None,
    ) -> int:
        """Set ``signal_sent_at`` on the group's signals that have none yet."""
        if not wallet_ids:
            return 0
        result = await self.session.execute(
            update(SignalModel)
            .where(SignalModel.market_slug == market_slug)
            .where(SignalModel.picked_outcome == picked_outcome)
            .where(SignalModel.wallet_id.in_(list(wallet_ids)))
            .where(SignalModel.signal_sent_at.is_(None))
            .values(signal_sent_at=sent_at or datetime.now(UTC))
        )
        return int(result.rowcount or 0)

    async def list_resolved_between(
        self, start: datetime, end: datetime, *, sent_only: bool = True
    ) -> list[SignalDTO]:
        """Signals that became terminal in ``[start, end)``."""
        stmt = (
            select(SignalModel)
            .where(SignalModel.outcome.in_(TERMINAL_OUTCOMES))
            .where(SignalModel.outcome_at >= start)
            .where(SignalModel.outcome_at < end)
            .order_by(SignalModel.outcome_at, SignalModel.id)
        )
        if sent_only:
            stmt = stmt.where(SignalModel.signal_sent_at.is_not(None))
        result = await self.session.execute(stmt)
        return [SignalDTO.from_model(m) for m in result.scalars().all()]


class LivePickRepository:
    """Repository for the derived live-picks projection."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def replace_all(self, picks: Sequence[LivePickDTO]) -> int:
        """Truncate the projection and insert the new row set.

        Runs inside the caller's transaction so readers never observe a
        half-built projection on a transactional store.
        """
        await self.session.execute(delete(WalletLivePickModel))
        if not picks:
            return 0
        now = datetime.now(UTC)
        rows = [
            {
                "wallet_id": p.wallet_id,
                "market_slug": p.market_slug,
                "event_slug": p.event_slug,
                "market_name": p.market_name,
                "picked_outcome": p.picked_outcome,
                "side": p.side,
                "pnl": p.pnl,
                "outcome": p.outcome,
                "resolved_outcome": p.resolved_outcome,
                "fetched_at": p.fetched_at or now,
                "vote_count": p.vote_count,
                "win_rate": p.win_rate,
            }
            for p in picks
        ]
        await self.session.execute(sa.insert(WalletLivePickModel), rows)
        return len(rows)

    async def list_pending(self) -> list[LivePickDTO]:
        result = await self.session.execute(
            select(WalletLivePickModel)
            .where(WalletLivePickModel.outcome == OUTCOME_PENDING)
            .order_by(WalletLivePickModel.market_slug, WalletLivePickModel.id)
        )
        return [LivePickDTO.from_model(m) for m in result.scalars().all()]

    async def list_for_wallet(self, wallet_id: int) -> list[LivePickDTO]:
        result = await self.session.execute(
            select(WalletLivePickModel)
            .where(WalletLivePickModel.wallet_id == wallet_id)
            .order_by(WalletLivePickModel.vote_count.desc(), WalletLivePickModel.id)
        )
        return [LivePickDTO.from_model(m) for m in result.scalars().all()]


class NoteRepository:
    """Repository for notes documents."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, slug: str) -> NoteDTO | None:
        result = await self.session.execute(select(NoteModel).where(NoteModel.slug == slug))
        model = result.scalar_one_or_none()
        return NoteDTO.from_model(model) if model else None

    async def save(self, slug: str, content: str, *, public: bool = True) -> None:
        """Write the note content, creating the note if it does not exist."""
        now = datetime.now(UTC)
        result = await self.session.execute(select(NoteModel).where(NoteModel.slug == slug))
        model = result.scalar_one_or_none()
        if model is None:
            self.session.add(NoteModel(slug=slug, content=content, public=public, updated_at=now))
        else:
            model.content = content
            model.public = public
            model.updated_at = now
        await self.session.flush()
