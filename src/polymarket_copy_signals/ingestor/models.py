"""Data models for records returned by the Polymarket Data API."""

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any


def _opt_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _opt_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Invalid decimal value: {value!r}") from e


def _opt_int(value: Any) -> int | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    return int(value)


def _opt_timestamp(value: Any) -> datetime | None:
    """Parse a unix timestamp in seconds (or milliseconds) to an aware datetime."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    ts = float(value)
    if ts <= 0:
        return None
    if ts > 1e12:
        ts /= 1000.0
    return datetime.fromtimestamp(ts, tz=UTC)


def derive_picked_outcome(outcome: str | None, outcome_index: int | None) -> str:
    """Return the outcome label, or a synthesized OPTION_<index> label."""
    if outcome:
        return outcome
    if outcome_index is not None:
        return f"OPTION_{outcome_index}"
    raise ValueError("Record has neither outcome nor outcomeIndex")


@dataclass(frozen=True)
class Position:
    """A wallet's current exposure to one market outcome (one asset)."""

    asset: str
    market_slug: str
    event_slug: str
    picked_outcome: str
    opposite_outcome: str | None
    side: str | None
    cash_pnl: Decimal | None
    resolved: bool
    title: str | None
    timestamp: datetime | None = None
    condition_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Position":
        """Create a Position from a `/positions` record.

        Raises:
            ValueError: If the record lacks an asset, a market identifier
                or an outcome.
        """
        asset = _opt_str(data.get("asset"))
        if not asset:
            raise ValueError("Position has no asset")

        slug = _opt_str(data.get("slug"))
        condition_id = _opt_str(data.get("conditionId"))
        event_slug = _opt_str(data.get("eventSlug"))
        market_slug = slug or condition_id or event_slug
        if not market_slug:
            raise ValueError("Position has no market identifier")

        side = _opt_str(data.get("side"))
        return cls(
            asset=asset,
            market_slug=market_slug,
            event_slug=event_slug or market_slug,
            picked_outcome=derive_picked_outcome(
                _opt_str(data.get("outcome")), _opt_int(data.get("outcomeIndex"))
            ),
            opposite_outcome=_opt_str(data.get("oppositeOutcome")),
            side=side.upper() if side else None,
            cash_pnl=_opt_decimal(data.get("cashPnl")),
            resolved=data.get("resolved") is True,
            title=_opt_str(data.get("title")),
            timestamp=_opt_timestamp(data.get("timestamp")),
            condition_id=condition_id,
        )


@dataclass(frozen=True)
class Trade:
    """A taker trade from the `/trades` feed."""

    asset: str
    market_slug: str
    event_slug: str
    picked_outcome: str
    side: str | None
    title: str | None
    timestamp: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Trade":
        """Create a Trade from a `/trades` record."""
        asset = _opt_str(data.get("asset"))
        if not asset:
            raise ValueError("Trade has no asset")

        slug = _opt_str(data.get("slug"))
        event_slug = _opt_str(data.get("eventSlug"))
        market_slug = slug or event_slug or _opt_str(data.get("conditionId"))
        if not market_slug:
            raise ValueError("Trade has no market identifier")

        side = _opt_str(data.get("side"))
        return cls(
            asset=asset,
            market_slug=market_slug,
            event_slug=event_slug or market_slug,
            picked_outcome=derive_picked_outcome(
                _opt_str(data.get("outcome")), _opt_int(data.get("outcomeIndex"))
            ),
            side=side.upper() if side else None,
            title=_opt_str(data.get("title")),
            timestamp=_opt_timestamp(data.get("timestamp")),
        )


@dataclass(frozen=True)
class LeaderboardEntry:
    """One row of `/v1/leaderboard`."""

    proxy_wallet: str
    user_name: str | None
    pnl: Decimal
    vol: Decimal

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LeaderboardEntry":
        proxy_wallet = _opt_str(data.get("proxyWallet"))
        if not proxy_wallet:
            raise ValueError("Leaderboard entry has no proxyWallet")
        return cls(
            proxy_wallet=proxy_wallet.lower(),
            user_name=_opt_str(data.get("userName")),
            pnl=_opt_decimal(data.get("pnl")) or Decimal("0"),
            vol=_opt_decimal(data.get("vol")) or Decimal("0"),
        )


@dataclass(frozen=True)
class EventInfo:
    """Subset of an `/events/<slug>` record used to label markets."""

    slug: str
    title: str | None
    closed: bool = False

    @classmethod
    def from_dict(cls, slug: str, data: dict[str, Any]) -> "EventInfo":
        if not isinstance(data, dict):
            raise TypeError("Event payload is not an object")
        return cls(
            slug=_opt_str(data.get("slug")) or slug,
            title=_opt_str(data.get("title")),
            closed=bool(data.get("closed", False)),
        )
