"""Data models for ingested chat messages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from ..utils.async_helpers import PayloadError

if TYPE_CHECKING:
    from .analysis import AnalysisResult


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, defaulting naive values to UTC."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass(frozen=True)
class MessageAuthor:
    """Author of a chat message."""

    id: str
    username: str
    display_name: str | None = None
    bot: bool = False

    @property
    def label(self) -> str:
        """Name shown to the model and in alerts."""
        return self.display_name or self.username


@dataclass(frozen=True)
class IncomingMessage:
    """Immutable snapshot of a chat message at ingestion time."""

    id: str
    content: str
    author: MessageAuthor
    channel_id: str
    timestamp: datetime
    channel_name: str | None = None
    thread_id: str | None = None  # None if not in a thread
    thread_name: str | None = None
    guild_id: str | None = None
    guild_name: str | None = None
    event_type: str = "messageCreate"

    # Original webhook payload, kept for ingestion of collector-only fields
    raw_event: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> IncomingMessage:
        """Build a message from a collector webhook payload.

        Args:
            payload: ``{eventType, timestamp, message: {...}}`` as posted by the bot.

        Returns:
            Parsed message.

        Raises:
            PayloadError: If required fields are missing or malformed.
        """
        try:
            message = payload["message"]
            author = message["author"]
            guild = message.get("guild") or {}

            return cls(
                id=str(message["id"]),
                content=message.get("content") or "",
                author=MessageAuthor(
                    id=str(author["id"]),
                    username=author["username"],
                    display_name=author.get("displayName"),
                    bot=bool(author.get("bot", False)),
                ),
                channel_id=str(message["channelId"]),
                channel_name=message.get("channelName"),
                thread_id=message.get("threadId"),
                thread_name=message.get("threadName"),
                guild_id=guild.get("id") or message.get("guildId"),
                guild_name=guild.get("name") or message.get("guildName"),
                timestamp=parse_timestamp(message["timestamp"]),
                event_type=payload.get("eventType", "messageCreate"),
                raw_event=payload,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise PayloadError(f"Malformed webhook payload: {e!r}") from e

    @property
    def is_threaded(self) -> bool:
        """True if the message was posted inside a thread."""
        return bool(self.thread_id)

    @property
    def jump_url(self) -> str | None:
        """Discord link to the message, when the guild is known."""
        if not self.guild_id:
            return None
        container = self.thread_id or self.channel_id
        return f"https://discord.com/channels/{self.guild_id}/{container}/{self.id}"


@dataclass(frozen=True)
class PipelineResult:
    """Consolidated outcome of one enrichment run."""

    message_id: str
    analysis: AnalysisResult
    answered_message_id: str | None
    analysis_id: str
    alert_sent: bool
    author_ignored: bool = False
    context_size: int = 0
