"""Author suppression check."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from situationcord.interfaces.store import MessageStore

log = structlog.get_logger()


class IgnoreGate:
    """Answers whether an author is on the ignore list.

    Suppression is a courtesy filter, so lookup errors fail open.
    """

    def __init__(self, store: MessageStore) -> None:
        self._store = store

    async def is_ignored(self, author_id: str) -> bool:
        try:
            ignored = await self._store.is_author_ignored(author_id)
        except Exception as e:
            log.warning("ignore_check_failed", author_id=author_id, error=str(e))
            return False

        if ignored:
            log.debug("author_ignored", author_id=author_id)
        return ignored
