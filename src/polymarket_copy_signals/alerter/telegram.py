"""Telegram delivery channel (Bot API ``sendMessage``)."""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"
DEFAULT_TIMEOUT_SECONDS = 15.0


class TelegramError(Exception):
    """Raised when a message could not be delivered."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TelegramChannel:
    """Sends Markdown messages to one group chat.

    With no bot token or chat id configured the channel is disabled and
    `send` is a logged no-op.
    """

    def __init__(
        self,
        bot_token: str | None,
        chat_id: str | None,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        api_base: str = TELEGRAM_API_BASE,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._timeout = timeout_seconds
        self._api_base = api_base.rstrip("/")
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def enabled(self) -> bool:
        return bool(self._bot_token and self._chat_id)

    async def send(self, text: str) -> bool:
        """Send ``text`` to the chat.

        Returns:
            True if delivered, False if the channel is disabled.

        Raises:
            TelegramError: On a transport failure or a non-2xx response.
        """
        if not self.enabled:
            logger.debug("Telegram credentials not configured, skipping message")
            return False

        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_client = True

        url = f"{self._api_base}/bot{self._bot_token}/sendMessage"
        payload = {"chat_id": self._chat_id, "text": text, "parse_mode": "Markdown"}
        try:
            resp = await self._client.post(url, json=payload)
        except httpx.HTTPError as e:
            raise TelegramError(f"Telegram request failed: {e}") from e

        if resp.status_code != 200:
            raise TelegramError(
                f"Telegram API error {resp.status_code}: {resp.text[:300]}",
                status_code=resp.status_code,
            )
        logger.debug("Telegram message sent successfully")
        return True

    async def close(self) -> None:
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
