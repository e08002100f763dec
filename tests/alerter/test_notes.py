"""Tests for the notes document."""

import pytest

from polymarket_copy_signals.alerter.notes import NotesUpdater, market_name_of, upsert_block
from polymarket_copy_signals.storage.repos import NoteRepository


def signal_text(name: str, votes: int) -> str:
    return f"Signal Sent: now\nMarket: [{name}](https://polymarket.com/event/x)\nPick: Yes\nVotes: {votes}"


class TestUpsertBlock:
    def test_first_block(self) -> None:
        assert upsert_block("", "Market: [A](u)") == "> Market: [A](u)"

    def test_appends_new_market(self) -> None:
        content = upsert_block("", signal_text("A", 2))
        content = upsert_block(content, signal_text("B", 2))

        blocks = content.split("\n\n")
        assert [market_name_of(b.replace("> ", "")) for b in blocks] == ["A", "B"]

    def test_replaces_same_market_in_place(self) -> None:
        content = upsert_block("", signal_text("A", 2))
        content = upsert_block(content, signal_text("B", 2))
        content = upsert_block(content, signal_text("A", 7))

        blocks = content.split("\n\n")
        assert len(blocks) == 2
        assert "> Votes: 7" in blocks[0]
        assert "> Votes: 2" in blocks[1]

    def test_market_name_with_regex_characters(self) -> None:
        content = upsert_block("", signal_text("BTC > $100k (2026)?", 2))
        content = upsert_block(content, signal_text("BTC > $100k (2026)?", 3))

        assert content.count("\n\n") == 0
        assert "> Votes: 3" in content


class TestNotesUpdater:
    @pytest.mark.asyncio
    async def test_update_creates_public_note(self, db) -> None:
        updater = NotesUpdater(db, "signals")
        await updater.update(signal_text("A", 2))
        await updater.update(signal_text("A", 4))

        async with db.get_async_session() as session:
            note = await NoteRepository(session).get("signals")

        assert note is not None
        assert note.public is True
        assert note.content == upsert_block("", signal_text("A", 4))
