"""Persistence of analysis results."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

import structlog

from situationcord.interfaces.store import AnalysisRecord
from situationcord.utils.async_helpers import MessageNotFoundError
from situationcord.utils.metrics import get_metrics

if TYPE_CHECKING:
    from situationcord.interfaces.store import MessageStore
    from situationcord.models.analysis import AnalysisResult

log = structlog.get_logger()

# numeric(3,2) and numeric(5,2) columns
CONFIDENCE_PLACES = 2
SEVERITY_PLACES = 2


def to_fixed(value: float, places: int) -> str:
    """Render a float as a fixed-point decimal string.

    >>> to_fixed(72.5, 2)
    '72.50'
    """
    quantum = Decimal(1).scaleb(-places)
    return str(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def build_analysis_record(
    message_key: str,
    analysis: AnalysisResult,
    answered_message_id: str | None,
) -> AnalysisRecord:
    """Map an analysis onto the row shape the store inserts."""
    return AnalysisRecord(
        message_key=message_key,
        sentiment=analysis.sentiment.value,
        is_question=analysis.is_question,
        is_answer=analysis.is_answer,
        answered_message_id=answered_message_id,
        needs_help=analysis.needs_help,
        category_tags=tuple(analysis.sorted_tags),
        summary=analysis.summary,
        confidence_score=to_fixed(analysis.confidence_score, CONFIDENCE_PLACES),
        severity_score=to_fixed(analysis.severity_score, SEVERITY_PLACES),
        severity_level=analysis.severity_level.value,
        severity_reason=analysis.severity_reason,
        model_version=analysis.model_version,
    )


class AnalysisRecorder:
    """Writes exactly one analysis row per call.

    Errors propagate so the step runner can retry; a missing message row
    is raised as ``MessageNotFoundError`` and never swallowed.
    """

    def __init__(self, store: MessageStore) -> None:
        self._store = store

    async def record(
        self,
        message_id: str,
        analysis: AnalysisResult,
        answered_message_id: str | None,
    ) -> str:
        """Persist an analysis for a stored message.

        Args:
            message_id: External (Discord) message id
            analysis: Result to persist
            answered_message_id: Resolved question id, or None

        Returns:
            Identifier of the new analysis row

        Raises:
            MessageNotFoundError: If the message was never ingested
            StoreError: If the insert fails
        """
        message_key = await self._store.get_message_key(message_id)
        if message_key is None:
            log.error("analysis_target_missing", message_id=message_id)
            raise MessageNotFoundError(message_id)

        record = build_analysis_record(message_key, analysis, answered_message_id)
        analysis_id = await self._store.insert_analysis(record)

        get_metrics().analyses_stored.inc()
        log.info(
            "analysis_stored",
            analysis_id=analysis_id,
            severity_score=record.severity_score,
            answered_message_id=answered_message_id,
        )
        return analysis_id
