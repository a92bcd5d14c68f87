"""Data models and transfer objects."""

from .analysis import (
    ALERT_LEVELS,
    NO_QA_REFERENCE,
    AnalysisResult,
    CategoryTag,
    QAReference,
    Sentiment,
    SeverityLevel,
    ThreadContextEntry,
)
from .message import IncomingMessage, MessageAuthor, PipelineResult
from .schemas import MessageAnalysisSchema, QAReferenceSchema

__all__ = [
    # Message models
    "MessageAuthor",
    "IncomingMessage",
    "PipelineResult",
    # Analysis models
    "Sentiment",
    "SeverityLevel",
    "CategoryTag",
    "ALERT_LEVELS",
    "ThreadContextEntry",
    "AnalysisResult",
    "QAReference",
    "NO_QA_REFERENCE",
    # LLM output schemas
    "MessageAnalysisSchema",
    "QAReferenceSchema",
]
