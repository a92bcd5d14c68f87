"""Thread context retrieval and prompt formatting."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from situationcord.models.analysis import ThreadContextEntry

if TYPE_CHECKING:
    from situationcord.interfaces.store import MessageStore

log = structlog.get_logger()

EMPTY_THREAD_TEXT = "No previous messages in this thread."


class ThreadContextFetcher:
    """Loads the recent history of a thread, oldest message first.

    Context is an enrichment: a store failure is logged and yields an
    empty context rather than failing the run.
    """

    DEFAULT_LIMIT = 20

    def __init__(self, store: MessageStore, max_messages: int = DEFAULT_LIMIT) -> None:
        self._store = store
        self._max_messages = max_messages

    async def fetch(
        self,
        thread_id: str,
        exclude_message_id: str | None = None,
        limit: int | None = None,
    ) -> list[ThreadContextEntry]:
        """Return up to ``limit`` prior thread messages in chronological order.

        Args:
            thread_id: Thread to read
            exclude_message_id: Message being enriched; left out of its own context
            limit: Maximum messages; defaults to the configured cap

        Returns:
            Context entries ordered oldest to newest (possibly empty)
        """
        limit = limit or self._max_messages
        # One extra row so the excluded message does not cost a slot
        fetch_limit = limit + 1 if exclude_message_id else limit

        try:
            rows = await self._store.get_thread_messages(thread_id, fetch_limit)
        except Exception as e:
            log.warning("thread_context_fetch_failed", thread_id=thread_id, error=str(e))
            return []

        # Store returns newest first so LIMIT keeps the most recent rows
        prior = [row for row in rows if row.message_id != exclude_message_id][:limit]
        entries = [
            ThreadContextEntry(
                message_id=row.message_id,
                author=row.author_display_name or row.author_username,
                content=row.content,
                timestamp=row.timestamp.isoformat(),
                is_bot=row.author_bot,
            )
            for row in reversed(prior)
        ]

        log.debug("thread_context_fetched", thread_id=thread_id, count=len(entries))
        return entries


def format_thread_context(entries: list[ThreadContextEntry]) -> str:
    """Numbered, readable thread history for the analysis prompt."""
    if not entries:
        return EMPTY_THREAD_TEXT

    return "\n\n".join(
        f"[{index}] {entry.author}{' [BOT]' if entry.is_bot else ''} "
        f"({entry.timestamp}): {entry.content}"
        for index, entry in enumerate(entries, start=1)
    )


def format_thread_context_with_ids(entries: list[ThreadContextEntry]) -> str:
    """Thread history with explicit message ids for Q&A cross-referencing."""
    if not entries:
        return EMPTY_THREAD_TEXT

    return "\n\n".join(
        f"Message ID: {entry.message_id}\n"
        f"Author: {entry.author}{' [BOT]' if entry.is_bot else ''}\n"
        f"Content: {entry.content}\n---"
        for entry in entries
    )
