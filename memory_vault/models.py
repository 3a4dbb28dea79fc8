"""Core data models for Memory Vault AI.

This module defines the structures that flow between the AI orchestration
service, its providers, and the UI layer. All models use Pydantic v2 for
validation and serialization, and serialize with camelCase aliases so the
JSON shape matches what remote providers are asked to return.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# =============================================================================
# Enums
# =============================================================================


class Sentiment(str, Enum):
    """Overall sentiment of a memory."""

    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class Mood(str, Enum):
    """Mood classification attached to every memory.

    Attributes:
        HAPPY: Positive, content experiences
        SAD: Negative or painful experiences
        NEUTRAL: No dominant emotional signal
        EXCITED: High-energy positive experiences
        REFLECTIVE: Thoughtful, introspective entries
    """

    HAPPY = "happy"
    SAD = "sad"
    NEUTRAL = "neutral"
    EXCITED = "excited"
    REFLECTIVE = "reflective"


class InsightKind(str, Enum):
    """Kinds of insight produced over a memory collection."""

    PATTERN = "pattern"
    SUGGESTION = "suggestion"
    MILESTONE = "milestone"
    REFLECTION = "reflection"


class Capability(str, Enum):
    """Operations a provider may implement.

    Attributes:
        TRANSCRIBE: Audio bytes to text
        ANALYZE: Single memory analysis
        SUMMARIZE_COLLECTION: Insight generation over a batch of memories
    """

    TRANSCRIBE = "transcribe"
    ANALYZE = "analyze"
    SUMMARIZE_COLLECTION = "summarize_collection"


# =============================================================================
# Shared Configuration
# =============================================================================


class _FrozenModel(BaseModel):
    """Base for immutable, camelCase-serialized models."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )


def _clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


# =============================================================================
# Analysis Models
# =============================================================================


class AnalysisResult(_FrozenModel):
    """AI (or heuristic) analysis of a single memory.

    Produced fresh on each analysis call and never mutated afterwards.

    Attributes:
        sentiment: Overall sentiment
        keywords: Key words extracted from the content, in order
        suggested_tags: Tags suggested for categorization, in order
        emotional_tone: Free-text description of the emotional tone
        summary: Short summary of the memory
        confidence: Confidence in the analysis (0.0 - 1.0)
        themes: Main themes identified
        mood: Mood classification
        related_memories: Connections to other memories, if any
        provider: Name of the provider that produced this result
        is_fallback: True when produced by the local heuristic analyzer
    """

    sentiment: Sentiment = Sentiment.NEUTRAL
    keywords: list[str] = Field(default_factory=list)
    suggested_tags: list[str] = Field(default_factory=list)
    emotional_tone: str = "Neutral"
    summary: str = ""
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    themes: list[str] = Field(default_factory=list)
    mood: Mood = Mood.NEUTRAL
    related_memories: list[str] = Field(default_factory=list)
    provider: str = ""
    is_fallback: bool = False

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        """Clamp provider-reported confidence into [0, 1]."""
        if v is None:
            return 0.8
        return _clamp_unit(v)

    def to_dict(self) -> dict[str, Any]:
        """Serialize with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class CollectionInsight(_FrozenModel):
    """An insight about a collection of memories.

    Attributes:
        kind: Insight kind (serialized as ``type``)
        title: Short title
        description: Human-readable description
        confidence: Confidence in the insight (0.0 - 1.0)
        actionable: Whether the user can act on this insight
    """

    kind: InsightKind = Field(alias="type")
    title: str
    description: str
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    actionable: bool = False

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        """Clamp provider-reported confidence into [0, 1]."""
        if v is None:
            return 0.8
        return _clamp_unit(v)

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the ``type`` key used by the UI."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# Memory Records
# =============================================================================


class MemoryRecord(_FrozenModel):
    """A recorded memory as held by the UI layer.

    Only title, mood, tags and timestamp are needed for collection insights;
    the rest is carried for completeness.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    title: str = ""
    content: str = ""
    mood: Mood = Mood.NEUTRAL
    tags: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    is_private: bool = False

    def condensed(self) -> dict[str, Any]:
        """Return the condensed summary sent to remote providers.

        Content is never included, only metadata.
        """
        return {
            "title": self.title,
            "mood": self.mood.value,
            "tags": list(self.tags),
            "timestamp": self.timestamp.isoformat(),
        }


# =============================================================================
# Provider Metadata
# =============================================================================


class ProviderDescriptor(_FrozenModel):
    """Name and capability set of a provider."""

    name: str
    capabilities: frozenset[Capability] = frozenset()

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities


class FeatureAvailability(_FrozenModel):
    """Which AI features the active provider offers."""

    transcription: bool = False
    analysis: bool = False
    insights: bool = False


class ConfigurationStatus(_FrozenModel):
    """Snapshot of the orchestration service configuration for display.

    Attributes:
        has_ai_provider: True when a remote provider is active
        provider_name: Display name of the active provider
        features: Per-feature availability
    """

    has_ai_provider: bool
    provider_name: str
    features: FeatureAvailability
