"""Abstract interface for the message data store."""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from ..models.message import IncomingMessage


@dataclass(frozen=True)
class StoredThreadMessage:
    """A thread message row joined with its author."""

    message_id: str
    content: str
    timestamp: datetime
    author_id: str
    author_username: str
    author_display_name: str | None
    author_bot: bool


@dataclass(frozen=True)
class AnalysisRecord:
    """One row of the analysis table, ready to insert.

    Numeric scores are fixed-point decimal strings.
    """

    message_key: str
    sentiment: str
    is_question: bool
    is_answer: bool
    answered_message_id: str | None
    needs_help: bool
    category_tags: tuple[str, ...]
    summary: str
    confidence_score: str
    severity_score: str
    severity_level: str
    severity_reason: str
    model_version: str


class MessageStore(Protocol):
    """Data store consumed by the ingestion worker and the pipeline."""

    async def save_message(self, message: IncomingMessage) -> str:
        """
        Upsert the author and insert the message row.

        Args:
            message: Parsed incoming message

        Returns:
            Internal storage key of the message row

        Raises:
            StoreError: If the write fails
        """
        ...

    async def get_message_key(self, message_id: str) -> str | None:
        """
        Resolve a message's internal key from its external id.

        Returns:
            The key, or None if the message has not been stored

        Raises:
            StoreError: If the lookup fails
        """
        ...

    async def insert_analysis(self, record: AnalysisRecord) -> str:
        """
        Insert one analysis row atomically.

        Every call creates a fresh row; there is no update path.

        Returns:
            Identifier of the new analysis row

        Raises:
            StoreError: If the insert fails
        """
        ...

    async def get_thread_messages(self, thread_id: str, limit: int) -> list[StoredThreadMessage]:
        """
        Fetch the most recent messages of a thread, newest first.

        Raises:
            StoreError: If the query fails
        """
        ...

    async def is_author_ignored(self, author_id: str) -> bool:
        """
        Check whether an author is on the ignore list.

        Raises:
            StoreError: If the lookup fails
        """
        ...

    async def ignore_author(
        self,
        author_id: str,
        reason: str | None = None,
        ignored_by: str | None = None,
    ) -> None:
        """Add an author to the ignore list (no-op if already present)."""
        ...

    async def unignore_author(self, author_id: str) -> bool:
        """Remove an author from the ignore list. Returns True if removed."""
        ...

    async def ping(self) -> None:
        """Verify connectivity. Raises StoreError on failure."""
        ...
