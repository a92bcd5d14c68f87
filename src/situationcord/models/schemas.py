"""Pydantic schemas for structured LLM output.

Each schema is sent to the model as a JSON schema and used to validate
the object the model returns. Numeric fields are clamped into their
declared ranges rather than rejected.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

from .analysis import CategoryTag, SeverityLevel, Sentiment


def _clamp(value: Any, low: float, high: float) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, int | float):
        return min(high, max(low, float(value)))
    return value


class MessageAnalysisSchema(BaseModel):
    """Validated message classification."""

    sentiment: Sentiment = Field(
        description=(
            "The emotional tone of the message: positive (helpful, satisfied), "
            "neutral (informational), negative (unhappy), frustrated (angry, blocked), "
            "or urgent (time-sensitive issue)"
        )
    )
    is_question: bool = Field(
        description="True if the message is asking a question that needs an answer"
    )
    is_answer: bool = Field(
        description="True if the message appears to be answering a previous question in the thread"
    )
    needs_help: bool = Field(
        description="True if the message indicates a problem or issue that requires assistance"
    )
    category_tags: list[CategoryTag] = Field(
        default_factory=list,
        max_length=len(CategoryTag),
        description="Relevant category tags. Multiple tags can apply.",
    )
    summary: str = Field(
        description="A brief one-sentence summary of the message content and intent",
    )
    confidence_score: float = Field(
        ge=0.0, le=1.0, description="Confidence level in this analysis from 0.0 to 1.0"
    )
    severity_score: float = Field(
        ge=0.0, le=100.0, description="Severity score from 0-100 per the severity rubric"
    )
    severity_level: SeverityLevel = Field(
        description="Categorical severity level: low, medium, high, or critical"
    )
    severity_reason: str = Field(
        description="Brief explanation of why this severity level was assigned",
    )

    @field_validator("confidence_score", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> Any:
        return _clamp(v, 0.0, 1.0)

    @field_validator("severity_score", mode="before")
    @classmethod
    def clamp_severity(cls, v: Any) -> Any:
        return _clamp(v, 0.0, 100.0)


class QAReferenceSchema(BaseModel):
    """Validated Q&A cross-reference."""

    answered_message_id: str | None = Field(
        description=(
            "The message ID of the question being answered, "
            "or null if no clear question is being answered"
        )
    )
    confidence: float = Field(
        ge=0.0, le=1.0, description="Confidence that this message answers the identified question"
    )
    reasoning: str = Field(
        description="Brief explanation of why this message-question pair was matched",
    )

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> Any:
        return _clamp(v, 0.0, 1.0)

    @field_validator("answered_message_id", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and v.strip().lower() in {"", "null", "none"}:
            return None
        if isinstance(v, int):
            return str(v)
        return v
