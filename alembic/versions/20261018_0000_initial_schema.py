"""Initial schema for wallets, signals, live picks and notes.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Tracked wallets
    op.create_table(
        "wallets",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("polymarket_proxy_wallet", sa.String(42), nullable=True),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("last_checked", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paused", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("losing_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("win_rate", sa.Float(), nullable=False, server_default="0"),
        sa.Column("live_picks", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("force_fetch", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("polymarket_proxy_wallet"),
    )
    op.create_index("idx_wallets_paused_win_rate", "wallets", ["paused", "win_rate"])

    # Per-wallet signals
    op.create_table(
        "signals",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("wallet_id", sa.Integer(), nullable=False),
        sa.Column("market_slug", sa.String(255), nullable=False),
        sa.Column("event_slug", sa.String(255), nullable=True),
        sa.Column("market_name", sa.Text(), nullable=True),
        sa.Column("picked_outcome", sa.String(128), nullable=True),
        sa.Column("opposite_outcome", sa.String(128), nullable=True),
        sa.Column("side", sa.String(4), nullable=False, server_default="BUY"),
        sa.Column("tx_hash", sa.String(100), nullable=False),
        sa.Column("pnl", sa.Numeric(20, 6), nullable=True),
        sa.Column("outcome", sa.String(10), nullable=False, server_default="Pending"),
        sa.Column("resolved_outcome", sa.String(128), nullable=True),
        sa.Column("outcome_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("win_rate", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("signal_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["wallet_id"], ["wallets.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("wallet_id", "market_slug", "tx_hash", name="uq_signals_wallet_market_asset"),
    )
    op.create_index("idx_signals_wallet_outcome", "signals", ["wallet_id", "outcome"])
    op.create_index("idx_signals_market_pick", "signals", ["market_slug", "picked_outcome"])
    op.create_index("idx_signals_outcome_at", "signals", ["outcome_at"])

    # Live-picks projection (rebuilt every tick)
    op.create_table(
        "wallet_live_picks",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("wallet_id", sa.Integer(), nullable=False),
        sa.Column("market_slug", sa.String(255), nullable=False),
        sa.Column("event_slug", sa.String(255), nullable=True),
        sa.Column("market_name", sa.Text(), nullable=True),
        sa.Column("picked_outcome", sa.String(128), nullable=False),
        sa.Column("side", sa.String(4), nullable=True),
        sa.Column("pnl", sa.Numeric(20, 6), nullable=True),
        sa.Column("outcome", sa.String(10), nullable=False, server_default="Pending"),
        sa.Column("resolved_outcome", sa.String(128), nullable=True),
        sa.Column("fetched_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("vote_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("win_rate", sa.Float(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_live_picks_market_pick", "wallet_live_picks", ["market_slug", "picked_outcome"])
    op.create_index("idx_live_picks_wallet", "wallet_live_picks", ["wallet_id"])

    # Notes documents
    op.create_table(
        "notes",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("slug", sa.String(255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        sa.Column("public", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )


def downgrade() -> None:
    op.drop_table("notes")
    op.drop_index("idx_live_picks_wallet", table_name="wallet_live_picks")
    op.drop_index("idx_live_picks_market_pick", table_name="wallet_live_picks")
    op.drop_table("wallet_live_picks")
    op.drop_index("idx_signals_outcome_at", table_name="signals")
    op.drop_index("idx_signals_market_pick", table_name="signals")
    op.drop_index("idx_signals_wallet_outcome", table_name="signals")
    op.drop_table("signals")
    op.drop_index("idx_wallets_paused_win_rate", table_name="wallets")
    op.drop_table("wallets")
