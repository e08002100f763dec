"""Tests for the Telegram channel."""

import json

import httpx
import pytest

from polymarket_copy_signals.alerter.telegram import TelegramChannel, TelegramError


def make_channel(handler, token: str | None = "123:abc", chat_id: str | None = "-1001") -> TelegramChannel:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TelegramChannel(token, chat_id, api_base="https://telegram.test", http_client=http_client)


class TestTelegramChannel:
    @pytest.mark.asyncio
    async def test_send_posts_markdown(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        channel = make_channel(handler)
        assert await channel.send("*hello*") is True

        assert seen[0].url.path == "/bot123:abc/sendMessage"
        assert json.loads(seen[0].content) == {
            "chat_id": "-1001",
            "text": "*hello*",
            "parse_mode": "Markdown",
        }

    @pytest.mark.asyncio
    async def test_disabled_without_credentials(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        channel = make_channel(handler, token=None)
        assert channel.enabled is False
        assert await channel.send("hello") is False

    @pytest.mark.asyncio
    async def test_error_status_raises(self) -> None:
        channel = make_channel(lambda request: httpx.Response(400, text="Bad Request: can't parse entities"))

        with pytest.raises(TelegramError) as exc_info:
            await channel.send("[broken")
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_transport_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(TelegramError):
            await make_channel(handler).send("hello")
