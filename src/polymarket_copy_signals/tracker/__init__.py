"""Wallet tracking - reconciliation, metrics, live picks and wallet discovery."""

from polymarket_copy_signals.tracker.leaderboard import LeaderboardIngestor, LeaderboardRunStats
from polymarket_copy_signals.tracker.live_picks import LivePicksBuilder, build_live_picks
from polymarket_copy_signals.tracker.majority import strict_plurality, top_choice
from polymarket_copy_signals.tracker.metrics import (
    MetricsEvaluator,
    WalletMetrics,
    compute_wallet_metrics,
)
from polymarket_copy_signals.tracker.reconciler import (
    ReconcileResult,
    SignalReconciler,
    classify_position,
    plan_reconciliation,
)

__all__ = [
    "LeaderboardIngestor",
    "LeaderboardRunStats",
    "LivePicksBuilder",
    "MetricsEvaluator",
    "ReconcileResult",
    "SignalReconciler",
    "WalletMetrics",
    "build_live_picks",
    "classify_position",
    "compute_wallet_metrics",
    "plan_reconciliation",
    "strict_plurality",
    "top_choice",
]
