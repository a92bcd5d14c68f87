"""PostgreSQL message store.

Implements the MessageStore protocol on top of a psycopg async connection
pool. Every public method maps ``psycopg.Error`` to ``StoreError`` so the
pipeline never sees driver exceptions.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import psycopg
import structlog
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import AsyncConnectionPool

from ...interfaces.store import StoredThreadMessage
from ...utils.async_helpers import StoreError

if TYPE_CHECKING:
    from ...config.schema import DatabaseConfig
    from ...interfaces.store import AnalysisRecord
    from ...models.message import IncomingMessage

log = structlog.get_logger()

UPSERT_AUTHOR = """
INSERT INTO discord_authors (id, username, display_name, is_bot, updated_at)
VALUES (%s, %s, %s, %s, now())
ON CONFLICT (id) DO UPDATE
SET username = EXCLUDED.username,
    display_name = EXCLUDED.display_name,
    is_bot = EXCLUDED.is_bot,
    updated_at = now()
"""

INSERT_MESSAGE = """
INSERT INTO discord_messages (
    id, message_id, content, author_id, channel_id, channel_name,
    thread_id, thread_name, guild_id, guild_name, message_timestamp, raw_event
)
VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
ON CONFLICT (message_id) DO NOTHING
RETURNING id
"""

SELECT_MESSAGE_KEY = "SELECT id FROM discord_messages WHERE message_id = %s"

INSERT_ANALYSIS = """
INSERT INTO message_analysis (
    id, message_id, sentiment, is_question, is_answer, answered_message_id,
    needs_help, category_tags, ai_summary, confidence_score, severity_score,
    severity_level, severity_reason, model_version, processed_at
)
VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s::numeric, %s::numeric, %s, %s, %s, now())
"""

SELECT_THREAD_MESSAGES = """
SELECT m.message_id, m.content, m.message_timestamp,
       a.id AS author_id, a.username, a.display_name, a.is_bot
FROM discord_messages m
JOIN discord_authors a ON a.id = m.author_id
WHERE m.thread_id = %s
ORDER BY m.message_timestamp DESC
LIMIT %s
"""

SELECT_IGNORED = "SELECT 1 FROM ignored_users WHERE user_id = %s"

INSERT_IGNORED = """
INSERT INTO ignored_users (id, user_id, reason, ignored_by, created_at)
VALUES (%s, %s, %s, %s, now())
ON CONFLICT (user_id) DO NOTHING
"""

DELETE_IGNORED = "DELETE FROM ignored_users WHERE user_id = %s"


def _new_key() -> str:
    return uuid4().hex


class PostgresStore:
    """MessageStore backed by PostgreSQL.

    Example:
        store = PostgresStore(config.database)
        await store.open()
        try:
            await store.save_message(message)
        finally:
            await store.close()
    """

    def __init__(self, config: DatabaseConfig, pool: AsyncConnectionPool | None = None) -> None:
        """Initialize the store.

        Args:
            config: Database configuration
            pool: Existing pool to use instead of creating one from config
        """
        self._config = config
        self._pool = pool
        self._owns_pool = pool is None

    async def open(self) -> None:
        """Open the connection pool and wait until it is usable."""
        if self._pool is not None:
            return

        self._pool = AsyncConnectionPool(
            conninfo=self._config.url,
            min_size=self._config.min_size,
            max_size=self._config.max_size,
            timeout=self._config.timeout,
            kwargs={"row_factory": dict_row},
            configure=self._configure_connection,
            open=False,
        )
        try:
            await self._pool.open(wait=True, timeout=self._config.timeout)
        except Exception as e:
            log.error("database_pool_open_failed", error=str(e))
            await self._pool.close()
            self._pool = None
            raise StoreError(f"Database pool initialization failed: {e}") from e

        log.info(
            "database_pool_opened",
            min_size=self._config.min_size,
            max_size=self._config.max_size,
        )

    async def close(self) -> None:
        """Close the pool if this store created it."""
        if self._pool is None or not self._owns_pool:
            return

        try:
            await asyncio.wait_for(self._pool.close(), timeout=30.0)
            log.info("database_pool_closed")
        except TimeoutError:
            log.warning("database_pool_close_timeout")
        finally:
            self._pool = None

    async def _configure_connection(self, conn: psycopg.AsyncConnection[Any]) -> None:
        await conn.set_autocommit(True)
        await conn.execute("SET timezone = 'UTC'")

    @asynccontextmanager
    async def _connection(self, operation: str) -> AsyncIterator[psycopg.AsyncConnection[Any]]:
        if self._pool is None:
            raise StoreError("Database pool not initialized. Call open() first.")

        try:
            async with self._pool.connection() as conn:
                yield conn
        except psycopg.Error as e:
            log.error("database_error", operation=operation, error=str(e))
            raise StoreError(f"{operation} failed: {e}") from e

    async def _fetch_one(self, operation: str, query: str, params: tuple[Any, ...]) -> Any:
        async with self._connection(operation) as conn, conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(query, params)
            return await cur.fetchone()

    async def save_message(self, message: IncomingMessage) -> str:
        """Upsert the author and insert the message row in one transaction.

        Re-delivery of the same message id returns the existing key.
        """
        async with self._connection("save_message") as conn, conn.transaction():
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    UPSERT_AUTHOR,
                    (
                        message.author.id,
                        message.author.username,
                        message.author.display_name,
                        message.author.bot,
                    ),
                )
                await cur.execute(
                    INSERT_MESSAGE,
                    (
                        _new_key(),
                        message.id,
                        message.content,
                        message.author.id,
                        message.channel_id,
                        message.channel_name,
                        message.thread_id,
                        message.thread_name,
                        message.guild_id,
                        message.guild_name,
                        message.timestamp,
                        Jsonb(message.raw_event),
                    ),
                )
                row = await cur.fetchone()
                if row is None:
                    await cur.execute(SELECT_MESSAGE_KEY, (message.id,))
                    row = await cur.fetchone()

        if row is None:
            raise StoreError(f"Message {message.id} was not persisted")

        log.debug("message_saved", message_id=message.id, key=row["id"])
        return str(row["id"])

    async def get_message_key(self, message_id: str) -> str | None:
        row = await self._fetch_one("get_message_key", SELECT_MESSAGE_KEY, (message_id,))
        return str(row["id"]) if row else None

    async def insert_analysis(self, record: AnalysisRecord) -> str:
        analysis_id = _new_key()
        async with self._connection("insert_analysis") as conn:
            await conn.execute(
                INSERT_ANALYSIS,
                (
                    analysis_id,
                    record.message_key,
                    record.sentiment,
                    record.is_question,
                    record.is_answer,
                    record.answered_message_id,
                    record.needs_help,
                    Jsonb(list(record.category_tags)),
                    record.summary,
                    record.confidence_score,
                    record.severity_score,
                    record.severity_level,
                    record.severity_reason,
                    record.model_version,
                ),
            )
        return analysis_id

    async def get_thread_messages(self, thread_id: str, limit: int) -> list[StoredThreadMessage]:
        async with self._connection("get_thread_messages") as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(SELECT_THREAD_MESSAGES, (thread_id, limit))
                rows = await cur.fetchall()

        return [
            StoredThreadMessage(
                message_id=row["message_id"],
                content=row["content"] or "",
                timestamp=row["message_timestamp"],
                author_id=row["author_id"],
                author_username=row["username"],
                author_display_name=row["display_name"],
                author_bot=bool(row["is_bot"]),
            )
            for row in rows
        ]

    async def is_author_ignored(self, author_id: str) -> bool:
        row = await self._fetch_one("is_author_ignored", SELECT_IGNORED, (author_id,))
        return row is not None

    async def ignore_author(
        self,
        author_id: str,
        reason: str | None = None,
        ignored_by: str | None = None,
    ) -> None:
        async with self._connection("ignore_author") as conn:
            await conn.execute(INSERT_IGNORED, (_new_key(), author_id, reason, ignored_by))
        log.info("author_added_to_ignore_list", author_id=author_id, reason=reason)

    async def unignore_author(self, author_id: str) -> bool:
        async with self._connection("unignore_author") as conn:
            cur = await conn.execute(DELETE_IGNORED, (author_id,))
            removed = cur.rowcount > 0
        log.info("author_removed_from_ignore_list", author_id=author_id, removed=removed)
        return removed

    async def ping(self) -> None:
        """Run ``SELECT 1`` against the pool."""
        row = await self._fetch_one("ping", "SELECT 1 AS ok", ())
        if not row or row["ok"] != 1:
            raise StoreError("Unexpected result from database check")
