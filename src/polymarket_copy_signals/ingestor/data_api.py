"""Async client for the Polymarket Data API with rate limiting and retry logic."""

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any, TypeVar

import httpx

from polymarket_copy_signals.ingestor.models import (
    EventInfo,
    LeaderboardEntry,
    Position,
    Trade,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Constants
DEFAULT_DATA_API_URL = "https://data-api.polymarket.com"
DEFAULT_TIMEOUT_SECONDS = 20.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_REQUESTS_PER_SECOND = 10.0
DEFAULT_PAGE_SIZE = 100
TRADES_LIMIT = 100

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0",
    "Accept": "application/json",
}


class RateLimiter:
    """Minimum-interval rate limiter shared by concurrent callers."""

    def __init__(self, max_requests_per_second: float = DEFAULT_REQUESTS_PER_SECOND) -> None:
        self._min_interval = 1.0 / max_requests_per_second
        self._last_request_time: float = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until a request slot is available."""
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_request_time
            if elapsed < self._min_interval:
                await asyncio.sleep(self._min_interval - elapsed)
            self._last_request_time = time.monotonic()


class DataApiError(Exception):
    """Base exception for Data API errors."""


class DataApiNotFoundError(DataApiError):
    """Raised when a requested resource does not exist (404)."""


class DataApiTransientError(DataApiError):
    """Raised when all attempts failed on transport errors or non-2xx responses."""

    def __init__(self, message: str, last_exception: Exception | None = None) -> None:
        super().__init__(message)
        self.last_exception = last_exception


class DataApiClient:
    """Read-only client for wallet trades, positions, leaderboard and events.

    Every request is rate limited and retried with linear backoff. The
    public fetch methods never raise: transport failures surface as an
    empty collection (or ``None`` for events) so that callers treat them
    the same as "no change".

    Example:
        >>> client = DataApiClient()
        >>> positions = await client.get_positions("0xabc...")
        >>> await client.close()
    """

    def __init__(
        self,
        *,
        data_api_url: str = DEFAULT_DATA_API_URL,
        trades_api_url: str | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY,
        requests_per_second: float = DEFAULT_REQUESTS_PER_SECOND,
        page_size: int = DEFAULT_PAGE_SIZE,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            data_api_url: Base URL for positions, leaderboard and events.
            trades_api_url: Base URL for trades (defaults to data_api_url).
            timeout_seconds: Per-request timeout.
            max_retries: Attempts per request.
            retry_delay_seconds: Delay step; attempt n waits n * step.
            requests_per_second: Client-side rate limit.
            page_size: Page size for positions pagination.
            http_client: Optional preconfigured httpx client (tests).
        """
        self._data_url = data_api_url.rstrip("/")
        self._trades_url = (trades_api_url or data_api_url).rstrip("/")
        self._timeout = timeout_seconds
        self._max_retries = max(1, max_retries)
        self._retry_delay = retry_delay_seconds
        self._page_size = page_size
        self._rate_limiter = RateLimiter(requests_per_second)
        self._client = http_client
        self._owns_client = http_client is None

        # Event records are immutable once resolved; cache for the process lifetime.
        self._event_cache: dict[str, EventInfo | None] = {}
        self.skipped_records = 0

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout, headers=DEFAULT_HEADERS)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def _get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        """GET a JSON document with retries.

        Raises:
            DataApiNotFoundError: On 404 (not retried).
            DataApiTransientError: When every attempt failed.
        """
        client = await self._get_client()
        last_exception: Exception | None = None

        for attempt in range(1, self._max_retries + 1):
            await self._rate_limiter.acquire()
            try:
                response = await client.get(url, params=params, timeout=self._timeout)
                if response.status_code == 404:
                    raise DataApiNotFoundError(f"Not found: {url}")
                response.raise_for_status()
                return response.json()
            except DataApiNotFoundError:
                raise
            except (httpx.HTTPError, ValueError) as e:
                last_exception = e
                if attempt == self._max_retries:
                    break
                delay = self._retry_delay * attempt
                logger.warning(
                    "Attempt %d/%d for %s failed: %s. Retrying in %.1f seconds...",
                    attempt,
                    self._max_retries,
                    url,
                    e,
                    delay,
                )
                await asyncio.sleep(delay)

        raise DataApiTransientError(
            f"All {self._max_retries} attempts failed for {url}",
            last_exception=last_exception,
        )

    def _parse_records(self, data: Any, parser: Callable[[dict[str, Any]], T], kind: str) -> list[T]:
        if not isinstance(data, list):
            return []
        records: list[T] = []
        for raw in data:
            try:
                records.append(parser(raw))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                self.skipped_records += 1
                logger.debug("Skipping malformed %s record: %s", kind, e)
        return records

    async def get_trades(self, user: str) -> list[Trade]:
        """Fetch the latest taker trades for a proxy wallet."""
        if not user:
            return []
        params = {"limit": TRADES_LIMIT, "takerOnly": "true", "user": user}
        try:
            data = await self._get_json(f"{self._trades_url}/trades", params)
        except DataApiError as e:
            logger.error("Trade fetch error for %s: %s", user, e)
            return []
        return self._parse_records(data, Trade.from_dict, "trade")

    async def get_positions(self, user: str) -> list[Position]:
        """Fetch all positions for a proxy wallet, page by page.

        Pagination stops on an empty or short page. A failing page ends the
        walk but keeps the pages already fetched.
        """
        if not user:
            return []

        positions: list[Position] = []
        offset = 0
        while True:
            params = {
                "user": user,
                "limit": self._page_size,
                "offset": offset,
                "sizeThreshold": 1,
                "sortBy": "CURRENT",
                "sortDirection": "DESC",
            }
            try:
                data = await self._get_json(f"{self._data_url}/positions", params)
            except DataApiError as e:
                logger.error(
                    "Failed to fetch positions for wallet %s at offset %d: %s", user, offset, e
                )
                break
            if not isinstance(data, list) or not data:
                break
            positions.extend(self._parse_records(data, Position.from_dict, "position"))
            if len(data) < self._page_size:
                break
            offset += self._page_size

        logger.debug("Fetched %d total positions for wallet %s", len(positions), user)
        return positions

    async def get_leaderboard(
        self,
        category: str,
        time_period: str,
        limit: int = 50,
    ) -> list[LeaderboardEntry]:
        """Fetch one leaderboard page ordered by PnL."""
        params = {
            "category": category.upper(),
            "timePeriod": time_period.upper(),
            "orderBy": "PNL",
            "limit": limit,
        }
        try:
            data = await self._get_json(f"{self._data_url}/v1/leaderboard", params)
        except DataApiError as e:
            logger.error("Leaderboard fetch error (%s/%s): %s", category, time_period, e)
            return []
        return self._parse_records(data, LeaderboardEntry.from_dict, "leaderboard")

    async def get_event(self, slug: str) -> EventInfo | None:
        """Fetch an event by slug, cache-first.

        A 404 caches ``None`` so the miss is logged once. Transient failures
        are not cached.
        """
        if not slug:
            return None
        if slug in self._event_cache:
            return self._event_cache[slug]

        try:
            data = await self._get_json(f"{self._data_url}/events/{slug}")
        except DataApiNotFoundError:
            logger.info("Event %s not found (404)", slug)
            self._event_cache[slug] = None
            return None
        except DataApiError as e:
            logger.error("Event fetch error (%s): %s", slug, e)
            return None

        try:
            event = EventInfo.from_dict(slug, data)
        except (TypeError, ValueError) as e:
            self.skipped_records += 1
            logger.warning("Malformed event record for %s: %s", slug, e)
            return None
        self._event_cache[slug] = event
        return event

    @property
    def cached_events(self) -> int:
        return len(self._event_cache)
