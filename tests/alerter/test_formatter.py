"""Tests for signal message formatting."""

from datetime import UTC, datetime
from zoneinfo import ZoneInfo

from polymarket_copy_signals.alerter.formatter import (
    confidence_stars,
    confidence_tier,
    display_pick,
    escape_markdown,
    format_majority_signal,
    format_timestamp,
    market_link,
    to_blockquote,
)

THRESHOLDS = {1: 2, 2: 5, 3: 10, 4: 20, 5: 50}
NEW_YORK = ZoneInfo("America/New_York")


class TestConfidence:
    def test_tiers(self) -> None:
        assert confidence_tier(1, THRESHOLDS) == 0
        assert confidence_tier(2, THRESHOLDS) == 1
        assert confidence_tier(4, THRESHOLDS) == 1
        assert confidence_tier(5, THRESHOLDS) == 2
        assert confidence_tier(500, THRESHOLDS) == 5

    def test_stars(self) -> None:
        assert confidence_stars(3, THRESHOLDS) == "⭐"
        assert confidence_stars(12, THRESHOLDS) == "⭐⭐⭐"
        assert confidence_stars(1, THRESHOLDS) == ""


class TestDisplayPick:
    def test_buy_shows_pick(self) -> None:
        assert display_pick("Yes", "BUY") == "Yes"

    def test_sell_shows_negation(self) -> None:
        assert display_pick("Yes", "SELL") == "NOT Yes"

    def test_sell_shows_contradicting_resolution(self) -> None:
        assert display_pick("Yes", "SELL", "No") == "No"

    def test_sell_resolved_to_pick_is_unknown(self) -> None:
        assert display_pick("Yes", "SELL", "Yes") == "Unknown"

    def test_missing_side_is_unknown(self) -> None:
        assert display_pick("Yes", None) == "Unknown"
        assert display_pick(None, "BUY") == "Unknown"


class TestHelpers:
    def test_escape_markdown(self) -> None:
        assert escape_markdown("a_b *c* [d]") == "a\\_b \\*c\\* \\[d]"

    def test_blockquote(self) -> None:
        assert to_blockquote("one\ntwo") == "> one\n> two"

    def test_timestamp_in_zone(self) -> None:
        moment = datetime(2026, 10, 18, 11, 5, 9, tzinfo=UTC)
        assert format_timestamp(moment, NEW_YORK) == "10/18/2026, 7:05:09 AM"

    def test_timestamp_afternoon(self) -> None:
        moment = datetime(2026, 1, 5, 17, 30, 0, tzinfo=UTC)
        assert format_timestamp(moment, NEW_YORK) == "1/5/2026, 12:30:00 PM"

    def test_market_link_falls_back_to_slug(self) -> None:
        assert market_link(None, None, "will-it-rain") == (
            "[will-it-rain](https://polymarket.com/event/will-it-rain)"
        )


class TestFormatMajoritySignal:
    def test_layout(self) -> None:
        text = format_majority_signal(
            market_name="Fed cuts rates?",
            market_slug="fed-cut",
            event_slug="fed-october",
            picked_outcome="No",
            side="BUY",
            vote_count=3,
            thresholds=THRESHOLDS,
            moment=datetime(2026, 10, 18, 11, 5, 9, tzinfo=UTC),
            tz=NEW_YORK,
        )

        assert text.split("\n") == [
            "Signal Sent: 10/18/2026, 7:05:09 AM",
            "Market: [Fed cuts rates?](https://polymarket.com/event/fed-october)",
            "Pick: No",
            "Confidence: ⭐",
            "Votes: 3",
        ]
