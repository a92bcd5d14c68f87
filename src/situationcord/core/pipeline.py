"""Message enrichment pipeline orchestrator.

This module implements the MessagePipeline class that coordinates the
enrichment of one stored chat message:
1. Fetch thread context (threaded messages only)
2. Analyze the message with the LLM
3. Resolve the answered question (answers with context only)
4. Persist the analysis
5. Check the author ignore list
6. Dispatch an alert when severity qualifies and the author is not ignored

Every step runs through the injected StepRunner. Steps are strictly
sequential and forward-only: a failure after persistence leaves the
stored analysis in place.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import structlog

from situationcord.core.alert_dispatcher import AlertDispatcher
from situationcord.core.analysis_store import AnalysisRecorder
from situationcord.core.ignore_gate import IgnoreGate
from situationcord.core.message_analyzer import MessageAnalyzer
from situationcord.core.qa_resolver import QAResolver
from situationcord.core.thread_context import ThreadContextFetcher
from situationcord.models.analysis import NO_QA_REFERENCE
from situationcord.models.message import PipelineResult
from situationcord.utils.logging import bind_context, unbind_context
from situationcord.utils.metrics import Timer, get_metrics

if TYPE_CHECKING:
    from situationcord.config.schema import SituationConfig
    from situationcord.interfaces.alerts import AlertSink
    from situationcord.interfaces.llm import LLMProvider
    from situationcord.interfaces.store import MessageStore
    from situationcord.models.analysis import QAReference, ThreadContextEntry
    from situationcord.models.message import IncomingMessage
    from situationcord.utils.async_helpers import StepRunner

log = structlog.get_logger()


class MessagePipeline:
    """Orchestrates the enrichment steps for one message.

    Responsibilities:
    - Decide which optional steps run for a message
    - Hand every step to the StepRunner
    - Assemble the consolidated PipelineResult

    The pipeline holds no per-run state, so one instance can serve many
    concurrent runs.

    Example:
        pipeline = MessagePipeline(config, llm, store, alert_sink, runner)
        result = await pipeline.run(message)
    """

    def __init__(
        self,
        config: SituationConfig,
        llm: LLMProvider,
        store: MessageStore,
        alert_sink: AlertSink | None,
        runner: StepRunner,
    ) -> None:
        """Initialize the pipeline.

        Args:
            config: Application configuration
            llm: LLM provider for analysis and Q&A resolution
            store: Data store holding messages, analyses and the ignore list
            alert_sink: Alert destination, or None to disable alerting
            runner: Step runner owning the retry policy
        """
        self._config = config
        self._runner = runner
        self._threshold = config.pipeline.severity_threshold

        temperature = config.llm.anthropic.temperature if config.llm.anthropic else 0.1
        self._context = ThreadContextFetcher(store, config.pipeline.max_thread_context)
        self._analyzer = MessageAnalyzer(llm, temperature=temperature)
        self._resolver = QAResolver(llm, temperature=temperature)
        self._recorder = AnalysisRecorder(store)
        self._ignore_gate = IgnoreGate(store)
        self._dispatcher = AlertDispatcher(alert_sink) if alert_sink else None

    async def run(self, message: IncomingMessage) -> PipelineResult:
        """Enrich a message that has already been stored.

        Args:
            message: The ingested message

        Returns:
            Consolidated result of the run

        Raises:
            StepFailedError: If persistence or alert delivery fails after all retries
        """
        metrics = get_metrics()
        start_time = time.time()
        bind_context(message_id=message.id)

        log.info(
            "pipeline_started",
            author_id=message.author.id,
            channel_id=message.channel_id,
            thread_id=message.thread_id,
        )

        try:
            with Timer(metrics.processing_duration):
                result = await self._run_steps(message)
        except Exception as e:
            metrics.pipeline_failures.inc()
            log.error("pipeline_failed", error=str(e), error_type=type(e).__name__)
            raise
        finally:
            unbind_context("message_id")

        metrics.pipeline_runs.inc()
        log.info(
            "pipeline_complete",
            analysis_id=result.analysis_id,
            alert_sent=result.alert_sent,
            author_ignored=result.author_ignored,
            duration_seconds=round(time.time() - start_time, 2),
        )
        return result

    async def _run_steps(self, message: IncomingMessage) -> PipelineResult:
        # Step 1: Thread context
        context: list[ThreadContextEntry] = []
        if message.is_threaded:
            context = await self._runner.run(
                "fetch_thread_context",
                self._context.fetch,
                message.thread_id,
                message.id,
            )

        # Step 2: Analysis
        analysis = await self._runner.run(
            "analyze_message",
            self._analyzer.analyze,
            message.content,
            message.author.label,
            context,
        )

        # Step 3: Q&A resolution
        qa: QAReference = NO_QA_REFERENCE
        if analysis.is_answer and context:
            qa = await self._runner.run(
                "resolve_qa",
                self._resolver.resolve,
                message.content,
                context,
                message.id,
            )

        # Step 4: Persistence
        analysis_id = await self._runner.run(
            "store_analysis",
            self._recorder.record,
            message.id,
            analysis,
            qa.answered_message_id,
        )

        # Step 5: Ignore list
        author_ignored = await self._runner.run(
            "check_ignore_list",
            self._ignore_gate.is_ignored,
            message.author.id,
        )

        # Step 6: Alert
        alert_sent = False
        if analysis.qualifies_for_alert(self._threshold):
            if author_ignored:
                get_metrics().alerts_suppressed.inc()
                log.info(
                    "alert_suppressed_ignored_author",
                    author_id=message.author.id,
                    severity_score=analysis.severity_score,
                )
            elif self._dispatcher is None:
                log.info("alert_skipped_no_endpoint", severity_score=analysis.severity_score)
            else:
                await self._runner.run(
                    "dispatch_alert",
                    self._dispatcher.dispatch,
                    message,
                    analysis,
                )
                alert_sent = True

        return PipelineResult(
            message_id=message.id,
            analysis=analysis,
            answered_message_id=qa.answered_message_id,
            analysis_id=analysis_id,
            alert_sent=alert_sent,
            author_ignored=author_ignored,
            context_size=len(context),
        )
