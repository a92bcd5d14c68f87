"""Tests for the ingestion Worker."""

from __future__ import annotations

import asyncio
import json
import threading
from collections.abc import AsyncIterator
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from conftest import FakeStore, ScriptedLLM, make_analysis_response, make_payload

from situationcord.config.schema import AlertConfig, SituationConfig
from situationcord.core.worker import StartupError, Worker, create_worker, iter_payloads
from situationcord.models.schemas import MessageAnalysisSchema
from situationcord.utils.async_helpers import LLMAnalysisError, StepRunner, StoreError
from situationcord.utils.metrics import get_metrics


@pytest.fixture
def worker(
    config: SituationConfig, llm: ScriptedLLM, store: FakeStore, runner: StepRunner
) -> Worker:
    llm.queue(MessageAnalysisSchema, make_analysis_response())
    return Worker(config, llm, store, AsyncMock(), runner)


async def _payload_stream(payloads: list[dict[str, Any]]) -> AsyncIterator[dict[str, Any]]:
    for payload in payloads:
        yield payload


class TestWorkerProcessing:
    """Test ingest-then-enrich processing."""

    @pytest.mark.asyncio
    async def test_ingests_before_pipeline(self, worker: Worker, store: FakeStore) -> None:
        result = await worker.process_payload(make_payload("m1", "hello"))

        assert result is not None
        assert result.message_id == "m1"
        assert "m1" in store.messages
        assert store.calls.index("save_message") < store.calls.index("get_message_key")
        assert worker.stats["messages_processed"] == 1
        assert get_metrics().messages_received.get() == 1

    @pytest.mark.asyncio
    async def test_malformed_payload(self, worker: Worker, store: FakeStore) -> None:
        result = await worker.process_payload({"eventType": "messageCreate"})

        assert result is None
        assert store.messages == {}
        assert worker.stats["errors_count"] == 1

    @pytest.mark.asyncio
    async def test_ingest_store_failure(self, worker: Worker, store: FakeStore) -> None:
        store.fail["save_message"] = StoreError("db down")

        assert await worker.process_payload(make_payload("m1")) is None
        assert store.analyses == []
        assert worker.stats["errors_count"] == 1

    @pytest.mark.asyncio
    async def test_pipeline_failure_keeps_message(
        self, worker: Worker, store: FakeStore
    ) -> None:
        store.fail["insert_analysis"] = StoreError("disk full")

        result = await worker.process_payload(make_payload("m1"))

        assert result is None
        assert "m1" in store.messages
        assert worker.stats["errors_count"] == 1
        assert worker.stats["messages_processed"] == 0
        assert get_metrics().active_tasks.get() == 0

    @pytest.mark.asyncio
    async def test_analyzer_failure_still_processed(
        self, config: SituationConfig, store: FakeStore, runner: StepRunner
    ) -> None:
        llm = ScriptedLLM()
        llm.queue(MessageAnalysisSchema, LLMAnalysisError("down"))
        worker = Worker(config, llm, store, AsyncMock(), runner)

        result = await worker.process_payload(make_payload("m1"))

        assert result is not None
        assert result.analysis.severity_score == 0
        assert worker.stats["errors_count"] == 0

    @pytest.mark.asyncio
    async def test_redelivery_keeps_one_message(self, worker: Worker, store: FakeStore) -> None:
        await worker.process_payload(make_payload("m1"))
        await worker.process_payload(make_payload("m1"))

        assert len(store.messages) == 1
        assert len(store.analyses) == 2

    @pytest.mark.asyncio
    async def test_retry_hook_counts_retries(
        self, config: SituationConfig, llm: ScriptedLLM, store: FakeStore
    ) -> None:
        """The default runner reports retries per step."""
        llm.queue(MessageAnalysisSchema, make_analysis_response())
        worker = Worker(config, llm, store, AsyncMock())
        original = store.insert_analysis
        attempts = 0

        async def flaky(record):  # type: ignore[no-untyped-def]
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise StoreError("reset")
            return await original(record)

        store.insert_analysis = flaky  # type: ignore[method-assign]

        assert await worker.process_payload(make_payload("m1")) is not None
        assert get_metrics().step_retries.get(labels={"step": "store_analysis"}) == 1


class TestWorkerRun:
    """Test the payload consumption loop."""

    @pytest.mark.asyncio
    async def test_run_processes_all(self, worker: Worker, store: FakeStore) -> None:
        payloads = [make_payload(f"m{i}") for i in range(4)]

        await worker.run(_payload_stream(payloads))

        assert len(store.messages) == 4
        assert len(store.analyses) == 4
        assert worker.stats["messages_processed"] == 4
        assert worker.stats["active_tasks"] == 0

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_others(
        self, worker: Worker, store: FakeStore
    ) -> None:
        payloads = [make_payload("m1"), {"bad": True}, make_payload("m2")]

        await worker.run(_payload_stream(payloads))

        assert set(store.messages) == {"m1", "m2"}
        assert worker.stats["errors_count"] == 1

    @pytest.mark.asyncio
    async def test_concurrency_limit(
        self, config: SituationConfig, store: FakeStore, runner: StepRunner
    ) -> None:
        config = config.model_copy(
            update={"runtime": config.runtime.model_copy(update={"max_concurrent": 2})}
        )
        llm = ScriptedLLM()
        llm.queue(MessageAnalysisSchema, make_analysis_response())
        worker = Worker(config, llm, store, AsyncMock(), runner)

        running = 0
        peak = 0
        original_run = worker.pipeline.run

        async def slow_run(message):  # type: ignore[no-untyped-def]
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return await original_run(message)

        with patch.object(worker.pipeline, "run", slow_run):
            await worker.run(_payload_stream([make_payload(f"m{i}") for i in range(6)]))

        assert peak == 2
        assert worker.stats["messages_processed"] == 6

    @pytest.mark.asyncio
    async def test_enrichment_starts_before_input_ends(
        self, config: SituationConfig, store: FakeStore, runner: StepRunner
    ) -> None:
        """Each line is read only after a slot frees up, so earlier runs finish first."""
        config = config.model_copy(
            update={"runtime": config.runtime.model_copy(update={"max_concurrent": 1})}
        )
        llm = ScriptedLLM()
        llm.queue(MessageAnalysisSchema, make_analysis_response())
        worker = Worker(config, llm, store, AsyncMock(), runner)
        stored_at_read: list[int] = []

        def lines():  # type: ignore[no-untyped-def]
            for index in range(3):
                stored_at_read.append(len(store.analyses))
                yield json.dumps(make_payload(f"m{index}")) + "\n"

        await worker.run(iter_payloads(lines()))

        assert stored_at_read == [0, 1, 2]
        assert len(store.analyses) == 3


class TestWorkerLifecycle:
    """Test start and stop."""

    @pytest.mark.asyncio
    async def test_start_opens_store(self, config: SituationConfig, llm: ScriptedLLM) -> None:
        store = MagicMock()
        store.open = AsyncMock()
        worker = Worker(config, llm, store)

        await worker.start()

        store.open.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_start_failure(self, config: SituationConfig, llm: ScriptedLLM) -> None:
        store = MagicMock()
        store.open = AsyncMock(side_effect=StoreError("refused"))
        worker = Worker(config, llm, store)

        with pytest.raises(StartupError, match="refused"):
            await worker.start()

    @pytest.mark.asyncio
    async def test_start_without_open(self, worker: Worker) -> None:
        await worker.start()

    @pytest.mark.asyncio
    async def test_stop_closes_adapters(self, config: SituationConfig, llm: ScriptedLLM) -> None:
        store = MagicMock()
        store.close = AsyncMock()
        sink = AsyncMock()
        worker = Worker(config, llm, store, sink)

        await worker.stop()

        sink.close.assert_awaited_once()
        store.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stop_tolerates_close_errors(
        self, config: SituationConfig, llm: ScriptedLLM
    ) -> None:
        store = MagicMock()
        store.close = AsyncMock(side_effect=StoreError("gone"))
        sink = AsyncMock()
        sink.close.side_effect = RuntimeError("closed twice")
        worker = Worker(config, llm, store, sink)

        await worker.stop()

        store.close.assert_awaited_once()


class TestIterPayloads:
    """Test JSON-lines payload decoding."""

    @pytest.mark.asyncio
    async def test_skips_blank_and_invalid(self) -> None:
        lines = [
            '{"message": {"id": "1"}}\n',
            "\n",
            "not json\n",
            "[1, 2]\n",
            '  {"message": {"id": "2"}}  ',
        ]

        payloads = [payload async for payload in iter_payloads(lines)]

        assert payloads == [{"message": {"id": "1"}}, {"message": {"id": "2"}}]

    @pytest.mark.asyncio
    async def test_empty_input(self) -> None:
        assert [payload async for payload in iter_payloads([])] == []

    @pytest.mark.asyncio
    async def test_blocking_source_does_not_stall_loop(self) -> None:
        """Other coroutines keep running while a read is blocked."""
        released = threading.Event()
        woke_by_release: list[bool] = []

        def lines():  # type: ignore[no-untyped-def]
            woke_by_release.append(released.wait(timeout=5))
            yield '{"message": {"id": "1"}}\n'

        async def release() -> None:
            await asyncio.sleep(0.01)
            released.set()

        async def collect() -> list[dict[str, Any]]:
            return [payload async for payload in iter_payloads(lines())]

        payloads, _ = await asyncio.gather(collect(), release())

        assert woke_by_release == [True]
        assert payloads == [{"message": {"id": "1"}}]


class TestCreateWorker:
    """Test the worker factory."""

    @pytest.mark.asyncio
    async def test_with_alert_endpoint(self, config: SituationConfig) -> None:
        with (
            patch("situationcord.adapters.llm.anthropic.AnthropicAdapter") as adapter_cls,
            patch("situationcord.adapters.alerts.webhook.WebhookAlertSink") as sink_cls,
        ):
            worker = await create_worker(config)

        adapter_cls.assert_called_once_with(config.llm.anthropic)
        sink_cls.assert_called_once_with(config.alerts)
        assert isinstance(worker, Worker)

    @pytest.mark.asyncio
    async def test_without_alert_endpoint(self, config: SituationConfig) -> None:
        config = config.model_copy(update={"alerts": AlertConfig()})

        with (
            patch("situationcord.adapters.llm.anthropic.AnthropicAdapter"),
            patch("situationcord.adapters.alerts.webhook.WebhookAlertSink") as sink_cls,
        ):
            worker = await create_worker(config)

        sink_cls.assert_not_called()
        assert worker._alert_sink is None

    @pytest.mark.asyncio
    async def test_missing_anthropic_section(self, config: SituationConfig) -> None:
        config = config.model_copy(
            update={"llm": config.llm.model_copy(update={"anthropic": None})}
        )

        with pytest.raises(ValueError, match="Anthropic configuration required"):
            await create_worker(config)
