"""Alert event construction and delivery."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from situationcord.utils.metrics import get_metrics

if TYPE_CHECKING:
    from situationcord.interfaces.alerts import AlertEvent, AlertSink
    from situationcord.models.analysis import AnalysisResult
    from situationcord.models.message import IncomingMessage

log = structlog.get_logger()

ALERT_EVENT_TYPE = "support_alert"


def build_alert_event(message: IncomingMessage, analysis: AnalysisResult) -> AlertEvent:
    """Flatten a message and its analysis into a single-level alert event.

    Downstream consumers only accept scalar values, so category tags are
    joined into one comma-separated string.
    """
    return {
        "event_type": ALERT_EVENT_TYPE,
        "message_id": message.id,
        "content": message.content,
        "author_id": message.author.id,
        "author_username": message.author.username,
        "author_display_name": message.author.display_name,
        "author_bot": message.author.bot,
        "channel_id": message.channel_id,
        "channel_name": message.channel_name,
        "thread_id": message.thread_id,
        "thread_name": message.thread_name,
        "guild_id": message.guild_id,
        "guild_name": message.guild_name,
        "message_timestamp": message.timestamp.isoformat(),
        "message_url": message.jump_url,
        "sentiment": analysis.sentiment.value,
        "is_question": analysis.is_question,
        "is_answer": analysis.is_answer,
        "needs_help": analysis.needs_help,
        "category_tags": ", ".join(analysis.sorted_tags),
        "summary": analysis.summary,
        "confidence_score": analysis.confidence_score,
        "severity_score": analysis.severity_score,
        "severity_level": analysis.severity_level.value,
        "severity_reason": analysis.severity_reason,
        "model_version": analysis.model_version,
    }


class AlertDispatcher:
    """Sends one alert event per call to the configured sink.

    Delivery errors propagate; retrying is the step runner's job.
    """

    def __init__(self, sink: AlertSink) -> None:
        self._sink = sink

    async def dispatch(self, message: IncomingMessage, analysis: AnalysisResult) -> None:
        """Build and deliver the alert for a qualifying message.

        Raises:
            AlertDispatchError: If the endpoint rejects the event or is unreachable
        """
        event = build_alert_event(message, analysis)
        await self._sink.send(event)

        get_metrics().alerts_dispatched.inc(labels={"level": analysis.severity_level.value})
        log.info(
            "alert_dispatched",
            severity_score=analysis.severity_score,
            severity_level=analysis.severity_level.value,
        )
