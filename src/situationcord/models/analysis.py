"""Data models for message analysis."""

from dataclasses import dataclass
from enum import StrEnum


class Sentiment(StrEnum):
    """Emotional tone of a message."""

    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"
    FRUSTRATED = "frustrated"
    URGENT = "urgent"


class SeverityLevel(StrEnum):
    """Categorical severity band."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class CategoryTag(StrEnum):
    """Closed support taxonomy."""

    FREE_LIMITS = "Free Limits"
    BILLING = "Billing"
    ACCOUNT = "Account"
    BAAS = "BaaS"
    CONSOLE = "Console"
    VERCEL = "Vercel"


ALERT_LEVELS = frozenset({SeverityLevel.HIGH, SeverityLevel.CRITICAL})


@dataclass(frozen=True)
class ThreadContextEntry:
    """A prior message in the same thread."""

    message_id: str
    author: str
    content: str
    timestamp: str  # ISO-8601
    is_bot: bool = False


@dataclass(frozen=True)
class AnalysisResult:
    """Structured model judgment about one message."""

    sentiment: Sentiment
    is_question: bool
    is_answer: bool
    needs_help: bool
    category_tags: frozenset[CategoryTag]
    summary: str
    confidence_score: float  # 0.0 to 1.0
    severity_score: float  # 0.0 to 100.0
    severity_level: SeverityLevel
    severity_reason: str
    model_version: str

    def qualifies_for_alert(self, threshold: float) -> bool:
        """Numeric threshold OR categorical high/critical level."""
        return self.severity_score >= threshold or self.severity_level in ALERT_LEVELS

    @property
    def sorted_tags(self) -> list[str]:
        """Category tags in taxonomy order."""
        return [tag.value for tag in CategoryTag if tag in self.category_tags]


@dataclass(frozen=True)
class QAReference:
    """Link from an answer message to the question it resolves."""

    answered_message_id: str | None
    confidence: float  # 0.0 to 1.0
    reasoning: str

    @property
    def matched(self) -> bool:
        """True if a question message was identified."""
        return self.answered_message_id is not None


NO_QA_REFERENCE = QAReference(answered_message_id=None, confidence=0.0, reasoning="")
