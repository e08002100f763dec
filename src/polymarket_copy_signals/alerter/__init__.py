"""Alerting - formatting and delivery of majority signals."""

from polymarket_copy_signals.alerter.formatter import (
    confidence_stars,
    confidence_tier,
    display_pick,
    format_majority_signal,
)
from polymarket_copy_signals.alerter.notes import NotesUpdater, upsert_block
from polymarket_copy_signals.alerter.publisher import (
    MajorityGroup,
    PublishStats,
    SignalPublisher,
    select_majorities,
)
from polymarket_copy_signals.alerter.summary import DailySummary
from polymarket_copy_signals.alerter.telegram import TelegramChannel, TelegramError

__all__ = [
    "DailySummary",
    "MajorityGroup",
    "NotesUpdater",
    "PublishStats",
    "SignalPublisher",
    "TelegramChannel",
    "TelegramError",
    "confidence_stars",
    "confidence_tier",
    "display_pick",
    "format_majority_signal",
    "select_majorities",
    "upsert_block",
]
