"""REST-based remote providers.

Both providers talk to hosted inference APIs through ``HTTPTransport`` with a
bearer credential. Failures surface as ``AIClientError`` subclasses; retry and
fallback decisions belong to the orchestration service, not to providers.
"""

from __future__ import annotations

import json
from collections import Counter
from collections.abc import Sequence
from typing import Any

import httpx

from memory_vault.ai.base import Provider, parse_analysis, parse_insights, summarize_content
from memory_vault.ai.client import AIMalformedResponseError, HTTPTransport, extract_json
from memory_vault.ai.fallback import HeuristicAnalyzer
from memory_vault.ai.prompts import (
    ANALYSIS_PERSONA,
    INSIGHTS_PERSONA,
    build_analysis_prompt,
    build_insights_prompt,
)
from memory_vault.config import AISettings
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

_AUDIO_EXTENSIONS = {
    "audio/webm": "webm",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/mpeg": "mp3",
    "audio/mp4": "m4a",
    "audio/ogg": "ogg",
    "audio/flac": "flac",
}


def audio_filename(mime_type: str) -> str:
    return f"audio.{_AUDIO_EXTENSIONS.get(mime_type, 'webm')}"


# =============================================================================
# Groq
# =============================================================================


class GroqProvider(Provider):
    """Groq's OpenAI-compatible API: Whisper transcription and Llama chat.

    Attributes:
        settings: Model names and sampling parameters.
    """

    name = "Groq"
    capabilities = frozenset(
        {Capability.TRANSCRIBE, Capability.ANALYZE, Capability.SUMMARIZE_COLLECTION}
    )
    BASE_URL = "https://api.groq.com/openai/v1"

    def __init__(
        self,
        api_key: str,
        settings: AISettings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or AISettings()
        self._transport = HTTPTransport(
            self.name,
            self.BASE_URL,
            api_key,
            timeout_seconds=self.settings.analysis_timeout_seconds,
            client=client,
        )

    async def transcribe(self, audio: bytes, mime_type: str = "audio/webm") -> str:
        response = await self._transport.post(
            "/audio/transcriptions",
            files={"file": (audio_filename(mime_type), audio, mime_type)},
            data={
                "model": self.settings.groq_transcription_model,
                "language": "en",
                "response_format": "text",
            },
        )
        return response.text.strip()

    async def _chat(self, system: str, user: str, temperature: float) -> str:
        payload = {
            "model": self.settings.groq_model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": temperature,
            "max_tokens": self.settings.max_tokens,
        }
        data = await self._transport.post_json("/chat/completions", payload)
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise AIMalformedResponseError(
                "Groq response missing message content", original_error=e
            )

    async def analyze(self, content: str, title: str | None = None) -> AnalysisResult:
        text = await self._chat(
            ANALYSIS_PERSONA,
            build_analysis_prompt(content, title),
            temperature=self.settings.temperature,
        )
        return parse_analysis(extract_json(text), content, self.name)

    async def generate_insights(
        self, memories: Sequence[MemoryRecord]
    ) -> list[CollectionInsight]:
        condensed = [memory.condensed() for memory in memories]
        text = await self._chat(
            INSIGHTS_PERSONA,
            build_insights_prompt(condensed),
            temperature=0.8,
        )
        return parse_insights(extract_json(text), self.name)

    async def aclose(self) -> None:
        await self._transport.aclose()


# =============================================================================
# Hugging Face
# =============================================================================


class HuggingFaceProvider(Provider):
    """Hugging Face Inference API: Whisper transcription and a sentiment classifier.

    Analysis combines the remote sentiment label with local keyword and topic
    tag extraction. Collection insights are computed from mood counts without
    a remote call.
    """

    name = "Hugging Face"
    capabilities = frozenset(
        {Capability.TRANSCRIBE, Capability.ANALYZE, Capability.SUMMARIZE_COLLECTION}
    )
    BASE_URL = "https://api-inference.huggingface.co"
    CONFIDENCE = 0.75
    MAX_TAGS = 3

    # Checked in this order; the first MAX_TAGS matching topics win.
    TOPIC_TAGS: dict[str, tuple[str, ...]] = {
        "family": ("family", "mom", "dad", "sister", "brother", "child"),
        "work": ("work", "job", "office", "meeting", "project"),
        "travel": ("travel", "trip", "vacation", "flight", "hotel"),
        "food": ("food", "restaurant", "cooking", "recipe", "dinner"),
        "friends": ("friend", "buddy", "social", "party"),
        "nature": ("nature", "park", "tree", "outdoor", "hiking"),
    }

    def __init__(
        self,
        api_key: str,
        settings: AISettings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or AISettings()
        self._analyzer = HeuristicAnalyzer()
        self._transport = HTTPTransport(
            self.name,
            self.BASE_URL,
            api_key,
            timeout_seconds=self.settings.analysis_timeout_seconds,
            client=client,
        )

    async def transcribe(self, audio: bytes, mime_type: str = "audio/webm") -> str:
        response = await self._transport.post(
            f"/models/{self.settings.huggingface_transcription_model}",
            content=audio,
            headers={"Content-Type": mime_type},
        )
        try:
            data = response.json()
        except ValueError as e:
            raise AIMalformedResponseError(
                "Hugging Face returned invalid JSON", original_error=e
            )
        if not isinstance(data, dict):
            raise AIMalformedResponseError("Hugging Face transcription is not an object")
        return str(data.get("text") or "").strip()

    @staticmethod
    def _top_label(data: Any) -> str:
        """Pick the highest-scoring label from a classifier response.

        The API returns ``[[{label, score}, ...]]`` or ``[{label, score}, ...]``.
        """
        candidates = data
        if isinstance(candidates, list) and candidates and isinstance(candidates[0], list):
            candidates = candidates[0]
        if not isinstance(candidates, list) or not candidates:
            raise AIMalformedResponseError("Hugging Face returned no sentiment labels")
        try:
            best = max(candidates, key=lambda item: float(item.get("score", 0.0)))
            return str(best["label"]).lower()
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise AIMalformedResponseError(
                f"Unexpected sentiment payload: {json.dumps(data)[:200]}", original_error=e
            )

    def _topic_tags(self, content: str) -> list[str]:
        lowered = content.lower()
        tags = [
            tag
            for tag, words in self.TOPIC_TAGS.items()
            if any(word in lowered for word in words)
        ]
        return tags[: self.MAX_TAGS]

    def _mood_for(self, sentiment: Sentiment, content: str) -> Mood:
        lowered = content.lower()
        if sentiment == Sentiment.POSITIVE:
            return Mood.EXCITED if "excited" in lowered else Mood.HAPPY
        if sentiment == Sentiment.NEGATIVE:
            return Mood.SAD
        return Mood.REFLECTIVE if "think" in lowered else Mood.NEUTRAL

    async def analyze(self, content: str, title: str | None = None) -> AnalysisResult:
        data = await self._transport.post_json(
            f"/models/{self.settings.huggingface_sentiment_model}",
            {"inputs": content},
        )
        label = self._top_label(data)

        if "positive" in label:
            sentiment = Sentiment.POSITIVE
        elif "negative" in label:
            sentiment = Sentiment.NEGATIVE
        else:
            sentiment = Sentiment.NEUTRAL

        return AnalysisResult(
            sentiment=sentiment,
            keywords=self._analyzer.extract_keywords(content),
            suggested_tags=self._topic_tags(content),
            emotional_tone=f"{label} emotional tone",
            summary=summarize_content(content),
            confidence=self.CONFIDENCE,
            themes=["personal"],
            mood=self._mood_for(sentiment, content),
            provider=self.name,
            is_fallback=False,
        )

    async def generate_insights(
        self, memories: Sequence[MemoryRecord]
    ) -> list[CollectionInsight]:
        """Mood-count insights; the inference API has no suitable model for these."""
        insights = []

        if len(memories) > 5:
            insights.append(
                CollectionInsight(
                    kind=InsightKind.MILESTONE,
                    title="Memory Collection Growing",
                    description=(
                        f"You've captured {len(memories)} memories! "
                        "Your personal vault is expanding beautifully."
                    ),
                    confidence=1.0,
                    actionable=False,
                )
            )

        mood_counts = Counter(memory.mood.value for memory in memories)
        if mood_counts:
            mood, count = mood_counts.most_common(1)[0]
            insights.append(
                CollectionInsight(
                    kind=InsightKind.PATTERN,
                    title="Emotional Pattern Detected",
                    description=(
                        f"Your memories show a tendency toward {mood} moods "
                        f"({count} memories). This reflects your emotional landscape."
                    ),
                    confidence=0.8,
                    actionable=True,
                )
            )

        return insights

    async def aclose(self) -> None:
        await self._transport.aclose()
