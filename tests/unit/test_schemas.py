"""Tests for LLM output schemas."""

import pytest
from conftest import make_analysis_response
from pydantic import ValidationError

from situationcord.models.analysis import CategoryTag, SeverityLevel, Sentiment
from situationcord.models.schemas import QAReferenceSchema


class TestMessageAnalysisSchema:
    """Test analysis output validation."""

    def test_valid_response(self) -> None:
        response = make_analysis_response(
            sentiment="frustrated",
            category_tags=["Billing", "Account"],
            severity_score=72.5,
            severity_level="high",
        )

        assert response.sentiment is Sentiment.FRUSTRATED
        assert response.category_tags == [CategoryTag.BILLING, CategoryTag.ACCOUNT]
        assert response.severity_score == 72.5
        assert response.severity_level is SeverityLevel.HIGH

    @pytest.mark.parametrize(("raw", "expected"), [(1.7, 1.0), (-0.2, 0.0), (0.42, 0.42)])
    def test_confidence_clamped(self, raw: float, expected: float) -> None:
        assert make_analysis_response(confidence_score=raw).confidence_score == expected

    @pytest.mark.parametrize(("raw", "expected"), [(150, 100.0), (-5, 0.0), (55, 55.0)])
    def test_severity_clamped(self, raw: float, expected: float) -> None:
        assert make_analysis_response(severity_score=raw).severity_score == expected

    def test_unknown_tag_rejected(self) -> None:
        with pytest.raises(ValidationError):
            make_analysis_response(category_tags=["Kubernetes"])

    def test_unknown_sentiment_rejected(self) -> None:
        with pytest.raises(ValidationError):
            make_analysis_response(sentiment="ecstatic")

    def test_unknown_level_rejected(self) -> None:
        with pytest.raises(ValidationError):
            make_analysis_response(severity_level="severe")

    def test_wordy_text_accepted(self) -> None:
        """A long explanation must not turn a real critical report into a fallback."""
        response = make_analysis_response(
            summary="s" * 2000,
            severity_score=95,
            severity_level="critical",
            severity_reason="r" * 1500,
        )

        assert len(response.summary) == 2000
        assert len(response.severity_reason) == 1500
        assert response.severity_level is SeverityLevel.CRITICAL

    def test_json_schema_lists_taxonomy(self) -> None:
        from situationcord.models.schemas import MessageAnalysisSchema

        schema_text = str(MessageAnalysisSchema.model_json_schema())
        for tag in CategoryTag:
            assert tag.value in schema_text


class TestQAReferenceSchema:
    """Test Q&A output validation."""

    def test_null_reference(self) -> None:
        response = QAReferenceSchema.model_validate(
            {"answered_message_id": None, "confidence": 0.1, "reasoning": "no question"}
        )
        assert response.answered_message_id is None

    @pytest.mark.parametrize("blank", ["", "null", "None", "  "])
    def test_blank_reference_is_null(self, blank: str) -> None:
        response = QAReferenceSchema.model_validate(
            {"answered_message_id": blank, "confidence": 0.1, "reasoning": "r"}
        )
        assert response.answered_message_id is None

    def test_integer_id_becomes_string(self) -> None:
        response = QAReferenceSchema.model_validate(
            {"answered_message_id": 1234, "confidence": 0.8, "reasoning": "r"}
        )
        assert response.answered_message_id == "1234"

    def test_confidence_clamped(self) -> None:
        response = QAReferenceSchema.model_validate(
            {"answered_message_id": "m1", "confidence": 3, "reasoning": "r"}
        )
        assert response.confidence == 1.0

    def test_long_reasoning_accepted(self) -> None:
        response = QAReferenceSchema.model_validate(
            {"answered_message_id": "m1", "confidence": 0.7, "reasoning": "because " * 300}
        )
        assert response.answered_message_id == "m1"
        assert len(response.reasoning) == len("because ") * 300
