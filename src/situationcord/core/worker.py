"""Ingestion worker that feeds webhook payloads through the pipeline.

This module implements the Worker class, the runtime entry point:
- Parses webhook payloads and persists each message before enrichment
- Runs pipelines for different messages concurrently, bounded by a semaphore
- Drains in-flight runs on shutdown
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Iterable
from typing import TYPE_CHECKING, Any

import structlog

from situationcord.core.pipeline import MessagePipeline
from situationcord.models.message import IncomingMessage
from situationcord.utils.async_helpers import StepRunner, with_timeout
from situationcord.utils.metrics import get_metrics

if TYPE_CHECKING:
    from situationcord.config.schema import SituationConfig
    from situationcord.interfaces.alerts import AlertSink
    from situationcord.interfaces.llm import LLMProvider
    from situationcord.interfaces.store import MessageStore
    from situationcord.models.message import PipelineResult

log = structlog.get_logger()


class WorkerError(Exception):
    """Base exception for worker errors."""


class StartupError(WorkerError):
    """Failed to start the worker."""


class Worker:
    """Runs the ingest-then-enrich flow for a stream of payloads.

    A payload is stored first; the pipeline then runs against the stored
    row. Pipeline failures are logged and counted but never undo the
    ingestion write.

    Example:
        worker = await create_worker(config)
        await worker.start()
        await worker.run(iter_payloads(sys.stdin))
        await worker.stop()
    """

    DEFAULT_SHUTDOWN_TIMEOUT = 30

    def __init__(
        self,
        config: SituationConfig,
        llm: LLMProvider,
        store: MessageStore,
        alert_sink: AlertSink | None = None,
        runner: StepRunner | None = None,
    ) -> None:
        """Initialize the Worker.

        Args:
            config: Application configuration
            llm: LLM provider adapter
            store: Message store adapter
            alert_sink: Alert sink adapter, or None when alerts are disabled
            runner: Step runner; built from ``config.retry`` when omitted
        """
        self._config = config
        self._store = store
        self._alert_sink = alert_sink

        metrics = get_metrics()
        self._runner = runner or StepRunner.from_config(
            config.retry,
            on_retry=lambda step: metrics.step_retries.inc(labels={"step": step}),
        )
        self._pipeline = MessagePipeline(config, llm, store, alert_sink, self._runner)

        self._semaphore = asyncio.Semaphore(config.runtime.max_concurrent)
        self._active_tasks: set[asyncio.Task[PipelineResult | None]] = set()

        self._messages_processed = 0
        self._errors_count = 0

    @property
    def pipeline(self) -> MessagePipeline:
        return self._pipeline

    @property
    def stats(self) -> dict[str, int]:
        """Return processing statistics."""
        return {
            "messages_processed": self._messages_processed,
            "errors_count": self._errors_count,
            "active_tasks": len(self._active_tasks),
        }

    async def start(self) -> None:
        """Open adapter resources that need it.

        Raises:
            StartupError: If the store cannot be opened
        """
        open_store = getattr(self._store, "open", None)
        if open_store is None:
            return

        try:
            await open_store()
        except Exception as e:
            log.exception("worker_startup_failed", error=str(e))
            raise StartupError(f"Failed to start worker: {e}") from e

        log.info("worker_started", max_concurrent=self._config.runtime.max_concurrent)

    async def stop(self) -> None:
        """Wait for in-flight runs, then release adapter resources."""
        log.info("worker_stopping", active_tasks=len(self._active_tasks))
        await self._wait_for_tasks()

        if self._alert_sink is not None:
            try:
                await self._alert_sink.close()
            except Exception as e:
                log.warning("alert_sink_close_error", error=str(e))

        close_store = getattr(self._store, "close", None)
        if close_store is not None:
            try:
                await close_store()
            except Exception as e:
                log.warning("store_close_error", error=str(e))

        log.info(
            "worker_stopped",
            messages_processed=self._messages_processed,
            errors=self._errors_count,
        )

    async def ingest(self, payload: dict[str, Any]) -> IncomingMessage:
        """Parse a payload and persist its message.

        Raises:
            PayloadError: If the payload is malformed
            StoreError: If the message cannot be written
        """
        get_metrics().messages_received.inc()
        message = IncomingMessage.from_payload(payload)
        await self._store.save_message(message)
        log.debug("message_ingested", message_id=message.id)
        return message

    async def process_payload(self, payload: dict[str, Any]) -> PipelineResult | None:
        """Ingest one payload and enrich it.

        This method respects the concurrency limit and never raises.

        Returns:
            The pipeline result, or None if ingestion or enrichment failed
        """
        async with self._semaphore:
            try:
                message = await self.ingest(payload)
            except Exception as e:
                log.error("message_ingest_failed", error=str(e), error_type=type(e).__name__)
                self._errors_count += 1
                return None

            metrics = get_metrics()
            metrics.active_tasks.inc()
            try:
                result = await with_timeout(
                    self._pipeline.run(message),
                    timeout=self._config.runtime.processing_timeout,
                    error_message=f"Pipeline for message {message.id} timed out",
                )
            except Exception as e:
                log.exception(
                    "message_processing_error",
                    message_id=message.id,
                    error=str(e),
                )
                self._errors_count += 1
                return None
            finally:
                metrics.active_tasks.dec()

            self._messages_processed += 1
            return result

    async def run(self, payloads: AsyncIterator[dict[str, Any]]) -> None:
        """Schedule a pipeline run per payload and wait for all of them.

        Runs start as soon as their payload arrives. Once
        ``runtime.max_concurrent`` runs are in flight, reading pauses until
        one of them finishes.
        """
        limit = self._config.runtime.max_concurrent
        log.info("worker_consuming_payloads", max_concurrent=limit)

        async for payload in payloads:
            task = asyncio.create_task(self.process_payload(payload))
            self._active_tasks.add(task)
            task.add_done_callback(self._active_tasks.discard)

            if len(self._active_tasks) >= limit:
                await asyncio.wait(set(self._active_tasks), return_when=asyncio.FIRST_COMPLETED)

        await self._wait_for_tasks()

    async def _wait_for_tasks(self) -> None:
        """Wait for active tasks to complete with timeout."""
        if not self._active_tasks:
            return

        log.info("waiting_for_active_tasks", count=len(self._active_tasks))

        done, pending = await asyncio.wait(
            set(self._active_tasks),
            timeout=self.DEFAULT_SHUTDOWN_TIMEOUT,
        )

        if pending:
            log.warning("cancelling_pending_tasks", count=len(pending))
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        log.info("tasks_completed", completed=len(done), cancelled=len(pending))


async def iter_payloads(lines: Iterable[str]) -> AsyncIterator[dict[str, Any]]:
    """Yield webhook payloads from JSON-lines text.

    Lines are read in a worker thread so a blocking source such as stdin
    never stalls the event loop. Blank lines are skipped; undecodable
    lines are logged and skipped.
    """
    source = iter(lines)
    line_number = 0

    while True:
        line = await asyncio.to_thread(next, source, None)
        if line is None:
            return
        line_number += 1

        line = line.strip()
        if not line:
            continue

        try:
            payload = json.loads(line)
        except json.JSONDecodeError as e:
            log.warning("payload_decode_failed", line=line_number, error=str(e))
            continue

        if not isinstance(payload, dict):
            log.warning("payload_not_object", line=line_number)
            continue

        yield payload


async def create_worker(config: SituationConfig) -> Worker:
    """Factory function to create a Worker with all dependencies.

    Raises:
        ValueError: If configuration is invalid
    """
    llm = await _create_llm_adapter(config)

    # Import here to avoid loading the database driver unless needed
    from situationcord.adapters.store.postgres import PostgresStore

    store = PostgresStore(config.database)

    alert_sink: AlertSink | None = None
    if config.alerts.endpoint:
        from situationcord.adapters.alerts.webhook import WebhookAlertSink

        alert_sink = WebhookAlertSink(config.alerts)
    else:
        log.warning("alerts_disabled_no_endpoint")

    return Worker(config, llm, store, alert_sink)


async def _create_llm_adapter(config: SituationConfig) -> LLMProvider:
    """Create an LLM adapter based on configuration.

    Raises:
        ValueError: If provider is not supported
    """
    provider = config.llm.provider

    if provider == "anthropic":
        if not config.llm.anthropic:
            raise ValueError("Anthropic configuration required when provider is 'anthropic'")
        from situationcord.adapters.llm.anthropic import AnthropicAdapter

        return AnthropicAdapter(config.llm.anthropic)

    raise ValueError(f"Unsupported LLM provider: {provider}")
