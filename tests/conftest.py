"""Shared test fixtures for SituationCord."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

import pytest
import structlog

from situationcord.config.schema import (
    AnthropicConfig,
    DatabaseConfig,
    LLMConfig,
    RetryConfig,
    SituationConfig,
)
from situationcord.interfaces.store import AnalysisRecord, StoredThreadMessage
from situationcord.models.message import IncomingMessage, MessageAuthor
from situationcord.models.schemas import MessageAnalysisSchema, QAReferenceSchema
from situationcord.utils.async_helpers import StepRunner, StoreError
from situationcord.utils.metrics import MetricsRegistry

BASE_TIME = datetime(2025, 1, 15, 12, 0, tzinfo=UTC)


@dataclass
class FakeStore:
    """In-memory MessageStore.

    ``fail`` maps method names to exceptions raised on every call.
    """

    messages: dict[str, tuple[str, IncomingMessage]] = field(default_factory=dict)
    analyses: list[tuple[str, AnalysisRecord]] = field(default_factory=list)
    ignored: dict[str, str | None] = field(default_factory=dict)
    fail: dict[str, Exception] = field(default_factory=dict)
    calls: list[str] = field(default_factory=list)

    def _enter(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail:
            raise self.fail[name]

    async def save_message(self, message: IncomingMessage) -> str:
        self._enter("save_message")
        if message.id not in self.messages:
            self.messages[message.id] = (uuid4().hex, message)
        return self.messages[message.id][0]

    async def get_message_key(self, message_id: str) -> str | None:
        self._enter("get_message_key")
        entry = self.messages.get(message_id)
        return entry[0] if entry else None

    async def insert_analysis(self, record: AnalysisRecord) -> str:
        self._enter("insert_analysis")
        analysis_id = uuid4().hex
        self.analyses.append((analysis_id, record))
        return analysis_id

    async def get_thread_messages(self, thread_id: str, limit: int) -> list[StoredThreadMessage]:
        self._enter("get_thread_messages")
        rows = [m for _, m in self.messages.values() if m.thread_id == thread_id]
        rows.sort(key=lambda m: m.timestamp, reverse=True)
        return [
            StoredThreadMessage(
                message_id=m.id,
                content=m.content,
                timestamp=m.timestamp,
                author_id=m.author.id,
                author_username=m.author.username,
                author_display_name=m.author.display_name,
                author_bot=m.author.bot,
            )
            for m in rows[:limit]
        ]

    async def is_author_ignored(self, author_id: str) -> bool:
        self._enter("is_author_ignored")
        return author_id in self.ignored

    async def ignore_author(
        self,
        author_id: str,
        reason: str | None = None,
        ignored_by: str | None = None,
    ) -> None:
        self._enter("ignore_author")
        self.ignored.setdefault(author_id, reason)

    async def unignore_author(self, author_id: str) -> bool:
        self._enter("unignore_author")
        if author_id not in self.ignored:
            return False
        del self.ignored[author_id]
        return True

    async def ping(self) -> None:
        self._enter("ping")

    def seed(self, message: IncomingMessage) -> None:
        """Store a message without recording a call."""
        self.messages[message.id] = (uuid4().hex, message)


class ScriptedLLM:
    """LLMProvider double returning queued responses per schema.

    A queued exception is raised instead of returned. The last queued
    response for a schema repeats once the earlier ones are consumed.
    """

    def __init__(self, model_name: str = "claude-test") -> None:
        self._model_name = model_name
        self.responses: dict[type, list[Any]] = {
            MessageAnalysisSchema: [],
            QAReferenceSchema: [],
        }
        self.calls: list[tuple[type, str, str]] = []

    @property
    def model_name(self) -> str:
        return self._model_name

    def queue(self, schema: type, response: Any) -> None:
        self.responses[schema].append(response)

    def calls_for(self, schema: type) -> list[tuple[type, str, str]]:
        return [call for call in self.calls if call[0] is schema]

    async def generate_structured(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: type,
        temperature: float | None = None,
    ) -> Any:
        self.calls.append((schema, system_prompt, user_prompt))
        queued = self.responses[schema]
        if not queued:
            raise AssertionError(f"No response queued for {schema.__name__}")
        response = queued.pop(0) if len(queued) > 1 else queued[0]
        if isinstance(response, Exception):
            raise response
        return response


def make_analysis_response(**overrides: Any) -> MessageAnalysisSchema:
    """Build a valid analysis response with overridable fields."""
    data: dict[str, Any] = {
        "sentiment": "neutral",
        "is_question": False,
        "is_answer": False,
        "needs_help": False,
        "category_tags": [],
        "summary": "General chatter",
        "confidence_score": 0.9,
        "severity_score": 10,
        "severity_level": "low",
        "severity_reason": "No issue reported",
    }
    data.update(overrides)
    return MessageAnalysisSchema.model_validate(data)


def make_message(
    message_id: str = "1001",
    content: str = "Hello there",
    author_id: str = "u1",
    thread_id: str | None = None,
    minutes: int = 0,
    username: str = "alice",
    display_name: str | None = "Alice",
    bot: bool = False,
    guild_id: str | None = "g1",
) -> IncomingMessage:
    """Build an incoming message at ``BASE_TIME + minutes``."""
    return IncomingMessage(
        id=message_id,
        content=content,
        author=MessageAuthor(id=author_id, username=username, display_name=display_name, bot=bot),
        channel_id="c1",
        channel_name="support",
        thread_id=thread_id,
        thread_name="Help thread" if thread_id else None,
        guild_id=guild_id,
        guild_name="Neon" if guild_id else None,
        timestamp=BASE_TIME + timedelta(minutes=minutes),
    )


def make_payload(
    message_id: str = "1001",
    content: str = "Hello there",
    thread_id: str | None = None,
) -> dict[str, Any]:
    """Build a collector webhook payload."""
    message: dict[str, Any] = {
        "id": message_id,
        "content": content,
        "channelId": "c1",
        "channelName": "support",
        "timestamp": "2025-01-15T12:00:00+00:00",
        "author": {"id": "u1", "username": "alice", "displayName": "Alice", "bot": False},
        "guild": {"id": "g1", "name": "Neon"},
    }
    if thread_id:
        message["threadId"] = thread_id
        message["threadName"] = "Help thread"
    return {"eventType": "messageCreate", "timestamp": "2025-01-15T12:00:01Z", "message": message}


@pytest.fixture(autouse=True)
def reset_state() -> Iterator[None]:
    """Fresh metrics and log context for every test."""
    MetricsRegistry.reset()
    structlog.contextvars.clear_contextvars()
    yield
    MetricsRegistry.reset()
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def config() -> SituationConfig:
    """Minimal valid configuration with alerts enabled."""
    return SituationConfig(
        llm=LLMConfig(provider="anthropic", anthropic=AnthropicConfig(api_key="sk-ant-test")),
        database=DatabaseConfig(url="postgresql://localhost/situationcord_test"),
        alerts={"endpoint": "https://alerts.example.com/hook"},
        retry=RetryConfig(max_attempts=3, initial_delay=0, max_delay=0),
    )


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def runner() -> StepRunner:
    """Step runner without backoff delays."""
    return StepRunner(max_attempts=3, initial_delay=0, max_delay=0)


@pytest.fixture
def store_error() -> StoreError:
    return StoreError("connection refused")
