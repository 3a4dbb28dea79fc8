"""Provider interface for the AI orchestration service.

A provider declares a name and a fixed capability set. It implements only the
coroutines that match its capabilities; the base class raises
``AIUnsupportedOperationError`` for the rest. The service checks
``supports()`` once at dispatch time instead of probing for methods.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, ClassVar

from pydantic import ValidationError

from memory_vault.ai.client import AIMalformedResponseError, AIUnsupportedOperationError
from memory_vault.models import (
    AnalysisResult,
    Capability,
    CollectionInsight,
    MemoryRecord,
    ProviderDescriptor,
)


class Provider:
    """Base class for analysis providers.

    Subclasses set ``name`` and ``capabilities`` and override the matching
    coroutines.

    Attributes:
        name: Display name shown in the UI.
        capabilities: Operations this provider implements.
        is_remote: False only for the local heuristic provider.
    """

    name: ClassVar[str] = "Provider"
    capabilities: ClassVar[frozenset[Capability]] = frozenset()
    is_remote: ClassVar[bool] = True

    @property
    def descriptor(self) -> ProviderDescriptor:
        return ProviderDescriptor(name=self.name, capabilities=self.capabilities)

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    async def transcribe(self, audio: bytes, mime_type: str = "audio/webm") -> str:
        raise AIUnsupportedOperationError(self.name, Capability.TRANSCRIBE.value)

    async def analyze(self, content: str, title: str | None = None) -> AnalysisResult:
        raise AIUnsupportedOperationError(self.name, Capability.ANALYZE.value)

    async def generate_insights(
        self, memories: Sequence[MemoryRecord]
    ) -> list[CollectionInsight]:
        raise AIUnsupportedOperationError(self.name, Capability.SUMMARIZE_COLLECTION.value)

    async def aclose(self) -> None:
        """Release network resources. No-op for local providers."""

    def __repr__(self) -> str:
        caps = ", ".join(sorted(c.value for c in self.capabilities))
        return f"<{self.__class__.__name__} name={self.name!r} capabilities=[{caps}]>"


# =============================================================================
# Response Parsing
# =============================================================================


def summarize_content(content: str, limit: int = 100) -> str:
    """Default summary: the first ``limit`` characters plus an ellipsis."""
    return content[:limit] + "..."


def parse_analysis(data: dict[str, Any], content: str, provider_name: str) -> AnalysisResult:
    """Build an AnalysisResult from a remote JSON object.

    Missing fields get the same defaults the UI expects; values that do not
    fit the model (unknown mood, non-list keywords, ...) make the response
    malformed.

    Raises:
        AIMalformedResponseError: If the payload does not validate.
    """
    payload = {
        "sentiment": data.get("sentiment") or "neutral",
        "keywords": data.get("keywords") or [],
        "suggestedTags": data.get("suggestedTags") or data.get("suggested_tags") or [],
        "emotionalTone": data.get("emotionalTone") or data.get("emotional_tone") or "Neutral",
        "summary": data.get("summary") or summarize_content(content),
        "relatedMemories": data.get("connections") or data.get("relatedMemories") or [],
        "confidence": data.get("confidence") or 0.8,
        "themes": data.get("themes") or [],
        "mood": data.get("mood") or "neutral",
        "provider": provider_name,
        "isFallback": False,
    }
    if isinstance(payload["sentiment"], str):
        payload["sentiment"] = payload["sentiment"].lower()
    if isinstance(payload["mood"], str):
        payload["mood"] = payload["mood"].lower()

    try:
        return AnalysisResult.model_validate(payload)
    except ValidationError as e:
        raise AIMalformedResponseError(
            f"{provider_name} returned an invalid analysis", original_error=e
        )


def parse_insights(data: dict[str, Any], provider_name: str) -> list[CollectionInsight]:
    """Build CollectionInsights from a remote ``{"insights": [...]}`` object.

    Raises:
        AIMalformedResponseError: If the list is missing or any entry is invalid.
    """
    raw = data.get("insights")
    if not isinstance(raw, list):
        raise AIMalformedResponseError(f"{provider_name} returned no insights list")

    normalized = []
    for item in raw:
        if isinstance(item, dict) and isinstance(item.get("type"), str):
            item = {**item, "type": item["type"].lower()}
        normalized.append(item)

    try:
        return [CollectionInsight.model_validate(item) for item in normalized]
    except ValidationError as e:
        raise AIMalformedResponseError(
            f"{provider_name} returned an invalid insight", original_error=e
        )
