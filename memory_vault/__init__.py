"""Memory Vault AI - transcription, analysis and insights for voice memories.

Quick Start:
    >>> import asyncio
    >>> from memory_vault import AIService
    >>> service = AIService()
    >>> result = asyncio.run(service.analyze("A wonderful day at the beach"))
    >>> print(result.mood, result.suggested_tags)

CLI Usage:
    $ memory-vault config set-key groq
    $ memory-vault analyze "I had an amazing trip with my family"
    $ memory-vault transcribe ./note.wav
"""

__version__ = "0.1.0"

from memory_vault.models import (
    AnalysisResult,
    Capability,
    CollectionInsight,
    ConfigurationStatus,
    InsightKind,
    MemoryRecord,
    Mood,
    ProviderDescriptor,
    Sentiment,
)
from memory_vault.ai.service import AIService

__all__ = [
    "__version__",
    "AIService",
    "AnalysisResult",
    "CollectionInsight",
    "MemoryRecord",
    "ConfigurationStatus",
    "ProviderDescriptor",
    "Sentiment",
    "Mood",
    "InsightKind",
    "Capability",
]
