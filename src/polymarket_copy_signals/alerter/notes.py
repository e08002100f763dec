"""Notes document mirroring published signals.

The document is a sequence of block quotes separated by blank lines, one
block per market. A block is identified by its ``> Market: [<name>]`` line;
publishing the same market again replaces its block in place.
"""

from __future__ import annotations

import logging
import re

from polymarket_copy_signals.alerter.formatter import to_blockquote
from polymarket_copy_signals.storage.database import DatabaseManager
from polymarket_copy_signals.storage.repos import NoteRepository

logger = logging.getLogger(__name__)

BLOCK_SEPARATOR = "\n\n"

_MARKET_NAME_RE = re.compile(r"^Market: \[(?P<name>.*?)\]\(", re.MULTILINE)


def market_name_of(text: str) -> str | None:
    match = _MARKET_NAME_RE.search(text)
    return match.group("name") if match else None


def upsert_block(content: str, text: str) -> str:
    """Replace the block for the same market, or append a new block."""
    block = to_blockquote(text)
    if not content:
        return block

    name = market_name_of(text)
    if name is not None:
        pattern = re.compile(rf"^> Market: \[{re.escape(name)}\]", re.MULTILINE)
        blocks = content.split(BLOCK_SEPARATOR)
        for i, existing in enumerate(blocks):
            if pattern.search(existing):
                blocks[i] = block
                return BLOCK_SEPARATOR.join(blocks)

    return f"{content}{BLOCK_SEPARATOR}{block}"


class NotesUpdater:
    def __init__(self, db: DatabaseManager, slug: str) -> None:
        self._db = db
        self.slug = slug

    async def update(self, text: str) -> None:
        """Write ``text`` into the note and make the note public."""
        async with self._db.get_async_session() as session:
            repo = NoteRepository(session)
            note = await repo.get(self.slug)
            content = upsert_block(note.content if note else "", text)
            await repo.save(self.slug, content, public=True)
        logger.debug("Updated note %s", self.slug)
