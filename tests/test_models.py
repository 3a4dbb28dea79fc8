"""Tests for the core data models."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from memory_vault.models import (
    AnalysisResult,
    Capability,
    CollectionInsight,
    InsightKind,
    MemoryRecord,
    Mood,
    ProviderDescriptor,
    Sentiment,
)


class TestAnalysisResult:
    """Tests for AnalysisResult validation and serialization."""

    def test_defaults(self) -> None:
        result = AnalysisResult()

        assert result.sentiment == Sentiment.NEUTRAL
        assert result.mood == Mood.NEUTRAL
        assert result.confidence == 0.8
        assert result.is_fallback is False

    @pytest.mark.parametrize("raw,expected", [(1.7, 1.0), (-0.2, 0.0), (None, 0.8), (0.42, 0.42)])
    def test_confidence_is_clamped(self, raw, expected) -> None:
        assert AnalysisResult(confidence=raw).confidence == expected

    def test_serializes_camel_case(self) -> None:
        data = AnalysisResult(
            suggested_tags=["travel"],
            emotional_tone="Calm",
            related_memories=["mem-1"],
            is_fallback=True,
        ).to_dict()

        assert data["suggestedTags"] == ["travel"]
        assert data["emotionalTone"] == "Calm"
        assert data["relatedMemories"] == ["mem-1"]
        assert data["isFallback"] is True
        assert data["sentiment"] == "neutral"

    def test_accepts_camel_case_input(self) -> None:
        result = AnalysisResult.model_validate({"suggestedTags": ["work"], "mood": "excited"})

        assert result.suggested_tags == ["work"]
        assert result.mood == Mood.EXCITED

    def test_is_frozen(self) -> None:
        result = AnalysisResult()

        with pytest.raises(ValidationError):
            result.summary = "changed"

    def test_rejects_unknown_mood(self) -> None:
        with pytest.raises(ValidationError):
            AnalysisResult.model_validate({"mood": "furious"})


class TestCollectionInsight:
    def test_type_alias(self) -> None:
        insight = CollectionInsight.model_validate(
            {"type": "milestone", "title": "Ten!", "description": "Ten memories"}
        )

        assert insight.kind == InsightKind.MILESTONE
        assert insight.actionable is False
        assert insight.to_dict()["type"] == "milestone"

    def test_confidence_is_clamped(self) -> None:
        insight = CollectionInsight(
            kind=InsightKind.PATTERN, title="t", description="d", confidence=3
        )

        assert insight.confidence == 1.0


class TestMemoryRecord:
    def test_condensed_omits_content(self) -> None:
        memory = MemoryRecord(
            title="Beach day",
            content="Private details",
            mood=Mood.HAPPY,
            tags=["summer"],
            timestamp=datetime(2024, 7, 4, 12, 0, tzinfo=timezone.utc),
        )

        assert memory.condensed() == {
            "title": "Beach day",
            "mood": "happy",
            "tags": ["summer"],
            "timestamp": "2024-07-04T12:00:00+00:00",
        }

    def test_generated_id(self) -> None:
        assert MemoryRecord().id != MemoryRecord().id

    def test_from_camel_case_json(self) -> None:
        memory = MemoryRecord.model_validate(
            {"title": "t", "isPrivate": True, "timestamp": "2024-01-01T00:00:00Z"}
        )

        assert memory.is_private is True
        assert memory.timestamp.year == 2024


class TestProviderDescriptor:
    def test_supports(self) -> None:
        descriptor = ProviderDescriptor(name="x", capabilities=frozenset({Capability.ANALYZE}))

        assert descriptor.supports(Capability.ANALYZE)
        assert not descriptor.supports(Capability.TRANSCRIBE)
