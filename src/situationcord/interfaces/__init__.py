"""Protocol definitions for pluggable adapters."""

from .alerts import AlertEvent, AlertSink
from .llm import LLMProvider
from .store import AnalysisRecord, MessageStore, StoredThreadMessage

__all__ = [
    "AlertEvent",
    "AlertSink",
    "AnalysisRecord",
    "LLMProvider",
    "MessageStore",
    "StoredThreadMessage",
]
