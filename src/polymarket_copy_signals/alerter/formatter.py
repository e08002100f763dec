"""Message formatting for majority signals and daily summaries.

Messages use Telegram's legacy Markdown (``parse_mode="Markdown"``), so only
underscore, asterisk, backtick and opening bracket need escaping inside
free text.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from zoneinfo import ZoneInfo

# Polymarket URLs
POLYMARKET_EVENT_URL = "https://polymarket.com/event/{slug}"

CONFIDENCE_GLYPH = "⭐"
RESULT_EMOJIS = {
    "WIN": "✅",
    "LOSS": "❌",
    "Pending": "⚪",
}

EVENT_SIGNAL_SENT = "Signal Sent"

_MARKDOWN_SPECIAL = ("_", "*", "`", "[")


def escape_markdown(text: str) -> str:
    """Escape special Telegram legacy Markdown characters."""
    for char in _MARKDOWN_SPECIAL:
        text = text.replace(char, f"\\{char}")
    return text


def confidence_tier(count: int, thresholds: Mapping[int, int]) -> int:
    """Highest tier whose threshold is at or below ``count`` (0 if none)."""
    tier = 0
    for level, threshold in sorted(thresholds.items()):
        if count >= threshold:
            tier = max(tier, level)
    return tier


def confidence_stars(count: int, thresholds: Mapping[int, int]) -> str:
    return CONFIDENCE_GLYPH * confidence_tier(count, thresholds)


def display_pick(picked_outcome: str | None, side: str | None, resolved_outcome: str | None = None) -> str:
    """Human-readable pick.

    A SELL is a bet against the picked outcome: it shows the resolved
    outcome when that differs from the pick, else ``NOT <pick>``.
    """
    if not picked_outcome or not side:
        return "Unknown"
    if side == "BUY":
        return picked_outcome
    if side == "SELL":
        if resolved_outcome == picked_outcome:
            return "Unknown"
        return resolved_outcome or f"NOT {picked_outcome}"
    return "Unknown"


def to_blockquote(text: str) -> str:
    return "\n".join(f"> {line}" for line in text.split("\n"))


def format_timestamp(moment: datetime, tz: ZoneInfo) -> str:
    """Render as ``10/18/2026, 7:05:09 AM`` in the given zone."""
    local = moment.astimezone(tz)
    clock = local.strftime("%I:%M:%S %p").lstrip("0")
    return f"{local.month}/{local.day}/{local.year}, {clock}"


def market_link(market_name: str | None, event_slug: str | None, market_slug: str) -> str:
    name = escape_markdown(market_name or market_slug)
    return f"[{name}]({POLYMARKET_EVENT_URL.format(slug=event_slug or market_slug)})"


def format_majority_signal(
    *,
    market_name: str | None,
    market_slug: str,
    event_slug: str | None,
    picked_outcome: str,
    side: str | None,
    vote_count: int,
    thresholds: Mapping[int, int],
    moment: datetime,
    tz: ZoneInfo,
    event_type: str = EVENT_SIGNAL_SENT,
) -> str:
    """Format a market-wide majority for chat and notes.

    The ``Market:`` line identifies the market in the notes document.
    """
    pick = escape_markdown(display_pick(picked_outcome, side))
    return "\n".join(
        [
            f"{event_type}: {format_timestamp(moment, tz)}",
            f"Market: {market_link(market_name, event_slug, market_slug)}",
            f"Pick: {pick}",
            f"Confidence: {confidence_stars(vote_count, thresholds)}",
            f"Votes: {vote_count}",
        ]
    )
