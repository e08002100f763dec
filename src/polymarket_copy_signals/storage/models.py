"""SQLAlchemy models for persistent storage.

This module defines the database schema for tracked wallets, their
per-market signals, the derived live-picks projection and the notes
document mirrored with published signals.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

OUTCOME_PENDING = "Pending"
OUTCOME_WIN = "WIN"
OUTCOME_LOSS = "LOSS"
TERMINAL_OUTCOMES = (OUTCOME_WIN, OUTCOME_LOSS)

# Scale of stored P&L columns.
PNL_QUANTUM = Decimal("0.000001")


def quantize_pnl(value: Decimal | None) -> Decimal | None:
    """Round a P&L to the precision the signal tables store."""
    if value is None:
        return None
    return value.quantize(PNL_QUANTUM)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class WalletModel(Base):
    """A tracked Polymarket account and its admission metrics."""

    __tablename__ = "wallets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    polymarket_proxy_wallet: Mapped[str | None] = mapped_column(
        String(42), nullable=True, unique=True
    )
    display_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_checked: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    paused: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    losing_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    win_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    live_picks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    force_fetch: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (Index("idx_wallets_paused_win_rate", "paused", "win_rate"),)


class SignalModel(Base):
    """One wallet's exposure to one market outcome."""

    __tablename__ = "signals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wallet_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("wallets.id", ondelete="CASCADE"), nullable=False
    )

    market_slug: Mapped[str] = mapped_column(String(255), nullable=False)
    event_slug: Mapped[str | None] = mapped_column(String(255), nullable=True)
    market_name: Mapped[str | None] = mapped_column(Text, nullable=True)

    picked_outcome: Mapped[str | None] = mapped_column(String(128), nullable=True)
    opposite_outcome: Mapped[str | None] = mapped_column(String(128), nullable=True)
    side: Mapped[str] = mapped_column(String(4), nullable=False, default="BUY")  # BUY/SELL

    # The venue asset id; idempotency key for the wallet's exposure.
    tx_hash: Mapped[str] = mapped_column(String(100), nullable=False)

    pnl: Mapped[Decimal | None] = mapped_column(Numeric(20, 6), nullable=True)
    outcome: Mapped[str] = mapped_column(String(10), nullable=False, default=OUTCOME_PENDING)
    resolved_outcome: Mapped[str | None] = mapped_column(String(128), nullable=True)
    outcome_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    win_rate: Mapped[float | None] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    signal_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("wallet_id", "market_slug", "tx_hash", name="uq_signals_wallet_market_asset"),
        Index("idx_signals_wallet_outcome", "wallet_id", "outcome"),
        Index("idx_signals_market_pick", "market_slug", "picked_outcome"),
        Index("idx_signals_outcome_at", "outcome_at"),
    )


class WalletLivePickModel(Base):
    """Derived projection: a wallet's current majority pick with vote totals.

    Truncated and rebuilt on every tracker tick.
    """

    __tablename__ = "wallet_live_picks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wallet_id: Mapped[int] = mapped_column(Integer, nullable=False)
    market_slug: Mapped[str] = mapped_column(String(255), nullable=False)
    event_slug: Mapped[str | None] = mapped_column(String(255), nullable=True)
    market_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    picked_outcome: Mapped[str] = mapped_column(String(128), nullable=False)
    side: Mapped[str | None] = mapped_column(String(4), nullable=True)
    pnl: Mapped[Decimal | None] = mapped_column(Numeric(20, 6), nullable=True)
    outcome: Mapped[str] = mapped_column(String(10), nullable=False, default=OUTCOME_PENDING)
    resolved_outcome: Mapped[str | None] = mapped_column(String(128), nullable=True)
    fetched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    vote_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    win_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    __table_args__ = (
        Index("idx_live_picks_market_pick", "market_slug", "picked_outcome"),
        Index("idx_live_picks_wallet", "wallet_id"),
    )


class NoteModel(Base):
    """Key-addressable text document carrying the human-readable signal log."""

    __tablename__ = "notes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
