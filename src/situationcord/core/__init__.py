"""Core business logic components.

This module exports the main business logic classes:
- Worker: Ingests payloads and runs pipelines concurrently
- MessagePipeline: Orchestrates the enrichment steps for one message
- MessageAnalyzer: Classifies a message with the LLM
- QAResolver: Links answers to the questions they resolve
- ThreadContextFetcher: Loads recent thread history
- AnalysisRecorder: Persists analysis results
- IgnoreGate: Checks the author ignore list
- AlertDispatcher: Sends alerts for qualifying messages
"""

from situationcord.core.alert_dispatcher import AlertDispatcher, build_alert_event
from situationcord.core.analysis_store import AnalysisRecorder, to_fixed
from situationcord.core.ignore_gate import IgnoreGate
from situationcord.core.message_analyzer import MessageAnalyzer, fallback_analysis
from situationcord.core.pipeline import MessagePipeline
from situationcord.core.qa_resolver import QAResolver
from situationcord.core.thread_context import (
    ThreadContextFetcher,
    format_thread_context,
    format_thread_context_with_ids,
)
from situationcord.core.worker import Worker, create_worker, iter_payloads

__all__ = [
    "AlertDispatcher",
    "AnalysisRecorder",
    "IgnoreGate",
    "MessageAnalyzer",
    "MessagePipeline",
    "QAResolver",
    "ThreadContextFetcher",
    "Worker",
    "build_alert_event",
    "create_worker",
    "fallback_analysis",
    "format_thread_context",
    "format_thread_context_with_ids",
    "iter_payloads",
    "to_fixed",
]
