"""Heuristic Analyzer: Local Analysis When Remote AI Is Unavailable.

This module provides the deterministic, lexicon-based analysis used as the
fallback of last resort, and ``BasicAnalysisProvider``, the provider that is
active when no remote credential is configured.

The fallback is INTENTIONALLY LIMITED:
- Sentiment and mood come from fixed keyword lexicons
- Tags come from a small set of topic keyword groups
- Confidence is a fixed constant below genuine remote results

What fallback DOES provide:
- A well-formed AnalysisResult for any input text
- Mood pattern, growth milestone and "enable AI" insights over a collection

What fallback does NOT provide:
- Transcription (the spoken words cannot be guessed)
- Meaningful summaries, themes, or emotional tone

Example:
    >>> analyzer = HeuristicAnalyzer()
    >>> result = analyzer.analyze("I had an amazing trip with my family")
    >>> result.mood, result.suggested_tags
    (<Mood.EXCITED: 'excited'>, ['family', 'travel'])
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field

from memory_vault.ai.base import Provider, summarize_content
from memory_vault.models import (
    AnalysisResult,
    Capability,
    CollectionInsight,
    InsightKind,
    MemoryRecord,
    Mood,
    Sentiment,
)
from memory_vault.utils.logging import get_logger

logger = get_logger(__name__)


# =============================================================================
# Constants
# =============================================================================


BASIC_PROVIDER_NAME = "Basic Analysis"

HEURISTIC_CONFIDENCE = 0.6

HEURISTIC_EMOTIONAL_TONE = "Basic analysis - upgrade to AI for detailed insights"

HEURISTIC_THEMES = ("personal",)

DEFAULT_TAG = "general"

MAX_KEYWORDS = 5

ENABLE_AI_TITLE = "Enable AI Analysis"

ENABLE_AI_DESCRIPTION = (
    "Add an AI API key to unlock powerful insights about your memory patterns "
    "and emotional trends."
)

_PUNCTUATION_RE = re.compile(r"[^\w\s]")


@dataclass(frozen=True)
class Lexicon:
    """Keyword lists used by the heuristic analyzer.

    A token counts toward a list when it contains any of the list's words,
    so ``loved`` matches ``love``.
    """

    positive: tuple[str, ...] = (
        "happy", "joy", "amazing", "wonderful", "love",
        "excited", "great", "beautiful", "awesome", "fantastic",
    )
    negative: tuple[str, ...] = (
        "sad", "difficult", "hard", "pain", "loss",
        "worry", "stress", "angry", "frustrated", "disappointed",
    )
    excited: tuple[str, ...] = (
        "excited", "thrilled", "amazing", "incredible", "awesome", "fantastic",
    )
    reflective: tuple[str, ...] = (
        "think", "remember", "reflect", "consider", "ponder", "contemplate",
    )
    # Tested in order; the order of matches is the order of suggested tags
    topics: tuple[tuple[str, tuple[str, ...]], ...] = field(
        default=(
            ("work", ("work", "job")),
            ("family", ("family", "parent")),
            ("friends", ("friend",)),
            ("travel", ("travel", "trip")),
        )
    )


DEFAULT_LEXICON = Lexicon()


# =============================================================================
# Heuristic Analyzer
# =============================================================================


def _count_hits(tokens: list[str], words: tuple[str, ...]) -> int:
    return sum(1 for token in tokens if any(word in token for word in words))


class HeuristicAnalyzer:
    """Deterministic keyword-lexicon sentiment and mood classifier.

    Identical input always yields an identical result.

    Attributes:
        lexicon: Keyword lists driving classification.
    """

    def __init__(self, lexicon: Lexicon | None = None) -> None:
        self.lexicon = lexicon or DEFAULT_LEXICON

    def classify(self, content: str) -> tuple[Sentiment, Mood]:
        """Derive sentiment and mood from lexicon hits.

        Mood precedence: excited > reflective > happy/sad > neutral.
        """
        tokens = content.lower().split()
        positive = _count_hits(tokens, self.lexicon.positive)
        negative = _count_hits(tokens, self.lexicon.negative)
        excited = _count_hits(tokens, self.lexicon.excited)
        reflective = _count_hits(tokens, self.lexicon.reflective)

        if positive > negative:
            majority = Sentiment.POSITIVE
        elif negative > positive:
            majority = Sentiment.NEGATIVE
        else:
            majority = Sentiment.NEUTRAL

        if excited > 0:
            return Sentiment.POSITIVE, Mood.EXCITED
        if reflective > 0:
            return majority, Mood.REFLECTIVE
        if majority == Sentiment.POSITIVE:
            return majority, Mood.HAPPY
        if majority == Sentiment.NEGATIVE:
            return majority, Mood.SAD
        return Sentiment.NEUTRAL, Mood.NEUTRAL

    def extract_keywords(self, content: str) -> list[str]:
        """First few words longer than three characters, punctuation removed."""
        words = _PUNCTUATION_RE.sub("", content.lower()).split()
        return [word for word in words if len(word) > 3][:MAX_KEYWORDS]

    def suggest_tags(self, content: str, default: str | None = DEFAULT_TAG) -> list[str]:
        """Match content against the topic groups.

        Args:
            content: Memory text.
            default: Tag to return when nothing matches (None for an empty list).
        """
        lowered = content.lower()
        tags = [
            tag
            for tag, words in self.lexicon.topics
            if any(word in lowered for word in words)
        ]
        if not tags and default:
            tags.append(default)
        return tags

    def analyze(self, content: str, title: str | None = None) -> AnalysisResult:
        """Produce a heuristic AnalysisResult.

        The title is accepted for interface parity and not used.
        """
        sentiment, mood = self.classify(content)

        return AnalysisResult(
            sentiment=sentiment,
            keywords=self.extract_keywords(content),
            suggested_tags=self.suggest_tags(content),
            emotional_tone=HEURISTIC_EMOTIONAL_TONE,
            summary=summarize_content(content),
            related_memories=[],
            confidence=HEURISTIC_CONFIDENCE,
            themes=list(HEURISTIC_THEMES),
            mood=mood,
            provider=BASIC_PROVIDER_NAME,
            is_fallback=True,
        )

    def generate_insights(
        self,
        memories: Sequence[MemoryRecord],
        milestone_threshold: int = 5,
        active_provider: str | None = None,
        remote_failed: bool = False,
    ) -> list[CollectionInsight]:
        """Compute collection insights locally.

        Always returns at least one insight: the trailing suggestion.

        Args:
            memories: Full memory list (not just a sample).
            milestone_threshold: Collections larger than this get a milestone.
            active_provider: Name of the active remote provider; None when
                running on the heuristic provider.
            remote_failed: True when the remote provider was asked and failed.
        """
        insights: list[CollectionInsight] = []
        total = len(memories)

        # most_common keeps first-seen order among ties
        mood_counts = Counter(memory.mood.value for memory in memories)
        if mood_counts:
            mood, count = mood_counts.most_common(1)[0]
            insights.append(
                CollectionInsight(
                    kind=InsightKind.PATTERN,
                    title=f"Mood Pattern: {mood}",
                    description=(
                        f"Your memories show a tendency towards {mood} experiences "
                        f"({count} out of {total} memories)."
                    ),
                    confidence=0.7,
                    actionable=False,
                )
            )

        if total > milestone_threshold:
            insights.append(
                CollectionInsight(
                    kind=InsightKind.MILESTONE,
                    title="Memory Collection Growing",
                    description=(
                        f"You've captured {total} memories! "
                        "Your personal vault is expanding beautifully."
                    ),
                    confidence=1.0,
                    actionable=False,
                )
            )

        insights.append(self._suggestion(total, active_provider, remote_failed))
        return insights

    @staticmethod
    def _suggestion(
        total: int, active_provider: str | None, remote_failed: bool
    ) -> CollectionInsight:
        if active_provider is None:
            return CollectionInsight(
                kind=InsightKind.SUGGESTION,
                title=ENABLE_AI_TITLE,
                description=ENABLE_AI_DESCRIPTION,
                confidence=1.0,
                actionable=True,
            )
        if remote_failed:
            return CollectionInsight(
                kind=InsightKind.SUGGESTION,
                title="AI Insights Unavailable",
                description=(
                    f"{active_provider} could not generate insights right now, "
                    "so these are basic insights. Check your API key and internet "
                    "connection, then try again."
                ),
                confidence=1.0,
                actionable=True,
            )
        return CollectionInsight(
            kind=InsightKind.SUGGESTION,
            title="Keep Capturing Memories",
            description=(
                f"You have {total} memories in your collection. "
                "Keep capturing those precious moments!"
            ),
            confidence=1.0,
            actionable=True,
        )


# =============================================================================
# Basic Analysis Provider
# =============================================================================


class BasicAnalysisProvider(Provider):
    """Local provider used when no remote credential is configured.

    Analysis and collection insights only; it never transcribes.
    """

    name = BASIC_PROVIDER_NAME
    capabilities = frozenset({Capability.ANALYZE, Capability.SUMMARIZE_COLLECTION})
    is_remote = False

    def __init__(
        self,
        analyzer: HeuristicAnalyzer | None = None,
        milestone_threshold: int = 5,
    ) -> None:
        self.analyzer = analyzer or HeuristicAnalyzer()
        self.milestone_threshold = milestone_threshold

    async def analyze(self, content: str, title: str | None = None) -> AnalysisResult:
        return self.analyzer.analyze(content, title)

    async def generate_insights(
        self, memories: Sequence[MemoryRecord]
    ) -> list[CollectionInsight]:
        return self.analyzer.generate_insights(
            memories, milestone_threshold=self.milestone_threshold
        )
