"""Data ingestion layer - Polymarket Data API access."""

from polymarket_copy_signals.ingestor.data_api import (
    DataApiClient,
    DataApiError,
    DataApiNotFoundError,
    DataApiTransientError,
    RateLimiter,
)
from polymarket_copy_signals.ingestor.models import (
    EventInfo,
    LeaderboardEntry,
    Position,
    Trade,
)

__all__ = [
    "DataApiClient",
    "DataApiError",
    "DataApiNotFoundError",
    "DataApiTransientError",
    "EventInfo",
    "LeaderboardEntry",
    "Position",
    "RateLimiter",
    "Trade",
]
