"""AI module for Memory Vault AI.

The orchestration service selects one provider at startup and degrades to
the local heuristic analyzer whenever remote analysis is unavailable.

Exports:
    - AIService: Transcribe / analyze / summarize entry point
    - Provider and the concrete providers
    - HeuristicAnalyzer: Deterministic lexicon-based fallback
    - Exception hierarchy for typed error handling
"""

from memory_vault.ai.base import Provider
from memory_vault.ai.client import (
    AIAuthError,
    AIBadRequestError,
    AIClientError,
    AIMalformedResponseError,
    AIRateLimitError,
    AIServerError,
    AITimeoutError,
    AIUnsupportedOperationError,
)
from memory_vault.ai.fallback import BasicAnalysisProvider, HeuristicAnalyzer
from memory_vault.ai.gemini import GeminiProvider
from memory_vault.ai.providers import GroqProvider, HuggingFaceProvider
from memory_vault.ai.service import (
    AIService,
    TranscriptionError,
    TranscriptionErrorKind,
    select_provider,
)
from memory_vault.ai.speech import LocalSpeechRecognizer, SpeechRecognitionError

__all__ = [
    # Service
    "AIService",
    "select_provider",
    "TranscriptionError",
    "TranscriptionErrorKind",
    # Providers
    "Provider",
    "BasicAnalysisProvider",
    "GroqProvider",
    "HuggingFaceProvider",
    "GeminiProvider",
    "HeuristicAnalyzer",
    "LocalSpeechRecognizer",
    # Exceptions
    "AIClientError",
    "AIAuthError",
    "AIRateLimitError",
    "AIServerError",
    "AIBadRequestError",
    "AITimeoutError",
    "AIMalformedResponseError",
    "AIUnsupportedOperationError",
    "SpeechRecognitionError",
]
