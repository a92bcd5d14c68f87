"""Tests for alert construction and dispatch."""

from unittest.mock import AsyncMock

import pytest
from conftest import make_message

from situationcord.core.alert_dispatcher import AlertDispatcher, build_alert_event
from situationcord.models.analysis import AnalysisResult, CategoryTag, SeverityLevel, Sentiment
from situationcord.utils.async_helpers import AlertDispatchError
from situationcord.utils.metrics import get_metrics


@pytest.fixture
def analysis() -> AnalysisResult:
    return AnalysisResult(
        sentiment=Sentiment.URGENT,
        is_question=True,
        is_answer=False,
        needs_help=True,
        category_tags=frozenset({CategoryTag.ACCOUNT, CategoryTag.FREE_LIMITS}),
        summary="Locked out of account",
        confidence_score=0.95,
        severity_score=91.0,
        severity_level=SeverityLevel.CRITICAL,
        severity_reason="Account locked",
        model_version="claude-test",
    )


class TestBuildAlertEvent:
    """Test alert event flattening."""

    def test_all_values_are_scalars(self, analysis: AnalysisResult) -> None:
        event = build_alert_event(make_message("m1", thread_id="t1"), analysis)

        for key, value in event.items():
            assert not isinstance(value, list | dict | tuple | set), key

    def test_fields(self, analysis: AnalysisResult) -> None:
        message = make_message("m1", "I can't log in", thread_id="t1")

        event = build_alert_event(message, analysis)

        assert event["message_id"] == "m1"
        assert event["content"] == "I can't log in"
        assert event["author_id"] == "u1"
        assert event["author_username"] == "alice"
        assert event["author_display_name"] == "Alice"
        assert event["author_bot"] is False
        assert event["channel_id"] == "c1"
        assert event["thread_id"] == "t1"
        assert event["guild_name"] == "Neon"
        assert event["message_timestamp"] == "2025-01-15T12:00:00+00:00"
        assert event["message_url"] == "https://discord.com/channels/g1/t1/m1"
        assert event["sentiment"] == "urgent"
        assert event["severity_score"] == 91.0
        assert event["severity_level"] == "critical"
        assert event["needs_help"] is True
        assert event["model_version"] == "claude-test"

    def test_tags_joined(self, analysis: AnalysisResult) -> None:
        event = build_alert_event(make_message(), analysis)
        assert event["category_tags"] == "Free Limits, Account"

    def test_no_tags_is_empty_string(self, analysis: AnalysisResult) -> None:
        from dataclasses import replace

        event = build_alert_event(make_message(), replace(analysis, category_tags=frozenset()))
        assert event["category_tags"] == ""

    def test_channel_message_has_no_thread(self, analysis: AnalysisResult) -> None:
        event = build_alert_event(make_message(), analysis)
        assert event["thread_id"] is None
        assert event["thread_name"] is None


class TestAlertDispatcher:
    """Test delivery through the sink."""

    @pytest.mark.asyncio
    async def test_dispatch_sends_event(self, analysis: AnalysisResult) -> None:
        sink = AsyncMock()
        message = make_message("m1")

        await AlertDispatcher(sink).dispatch(message, analysis)

        sink.send.assert_awaited_once_with(build_alert_event(message, analysis))
        assert get_metrics().alerts_dispatched.get(labels={"level": "critical"}) == 1

    @pytest.mark.asyncio
    async def test_sink_error_propagates(self, analysis: AnalysisResult) -> None:
        sink = AsyncMock()
        sink.send.side_effect = AlertDispatchError("502", status_code=502)

        with pytest.raises(AlertDispatchError):
            await AlertDispatcher(sink).dispatch(make_message(), analysis)

        assert get_metrics().alerts_dispatched.get(labels={"level": "critical"}) == 0
