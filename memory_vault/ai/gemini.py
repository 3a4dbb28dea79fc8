"""Gemini provider for Memory Vault AI.

This module is the only place that imports google-generativeai. SDK
exceptions are mapped onto the client exception hierarchy so the
orchestration service treats Gemini like any other provider.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from memory_vault.ai.base import Provider, parse_analysis, parse_insights
from memory_vault.ai.client import (
    AIAuthError,
    AIBadRequestError,
    AIClientError,
    AIMalformedResponseError,
    AIRateLimitError,
    AIServerError,
    AITimeoutError,
    extract_json,
)
from memory_vault.ai.prompts import (
    ANALYSIS_PERSONA,
    INSIGHTS_PERSONA,
    TRANSCRIPTION_PROMPT,
    build_analysis_prompt,
    build_insights_prompt,
)
from memory_vault.config import AISettings
from memory_vault.models import AnalysisResult, Capability, CollectionInsight, MemoryRecord
from memory_vault.utils.logging import get_logger

logger = get_logger(__name__)


class GeminiProvider(Provider):
    """Google Gemini: audio transcription, analysis, and collection insights.

    Attributes:
        settings: Model name and sampling parameters.
    """

    name = "Gemini"
    capabilities = frozenset(
        {Capability.TRANSCRIBE, Capability.ANALYZE, Capability.SUMMARIZE_COLLECTION}
    )

    def __init__(self, api_key: str, settings: AISettings | None = None) -> None:
        self.settings = settings or AISettings()
        genai.configure(api_key=api_key)
        logger.debug(f"Gemini provider initialized with model: {self.settings.gemini_model}")

    def _model(self, system_instruction: str | None, temperature: float) -> Any:
        generation_config = genai.GenerationConfig(
            temperature=temperature,
            max_output_tokens=self.settings.max_tokens,
        )
        return genai.GenerativeModel(
            model_name=self.settings.gemini_model,
            generation_config=generation_config,
            system_instruction=system_instruction,
        )

    async def _generate(
        self,
        contents: Any,
        system_instruction: str | None = None,
        temperature: float | None = None,
    ) -> str:
        model = self._model(
            system_instruction,
            self.settings.temperature if temperature is None else temperature,
        )
        try:
            response = await model.generate_content_async(contents)
        except Exception as e:
            raise self._map_exception(e)

        try:
            return response.text
        except ValueError as e:
            # Raised by the SDK when the candidate was blocked or empty
            raise AIMalformedResponseError(
                f"Could not extract text from Gemini response: {e}", original_error=e
            )

    def _map_exception(self, error: Exception) -> AIClientError:
        """Map SDK exceptions to the client exception hierarchy."""
        if isinstance(error, AIClientError):
            return error
        if isinstance(error, google_exceptions.ResourceExhausted):
            return AIRateLimitError(original_error=error)
        if isinstance(error, (google_exceptions.PermissionDenied, google_exceptions.Unauthenticated)):
            return AIAuthError(original_error=error)
        if isinstance(error, google_exceptions.DeadlineExceeded):
            return AITimeoutError(self.settings.analysis_timeout_seconds, original_error=error)
        if isinstance(error, google_exceptions.InvalidArgument):
            return AIBadRequestError(str(error), status_code=400, original_error=error)
        if isinstance(error, google_exceptions.InternalServerError):
            return AIServerError(status_code=500, original_error=error)
        if isinstance(error, google_exceptions.ServiceUnavailable):
            return AIServerError(status_code=503, original_error=error)
        if isinstance(error, google_exceptions.GoogleAPICallError):
            return AIServerError(str(error), original_error=error)
        return AIClientError(
            f"Gemini request failed: {error.__class__.__name__}", original_error=error
        )

    async def transcribe(self, audio: bytes, mime_type: str = "audio/webm") -> str:
        text = await self._generate(
            [TRANSCRIPTION_PROMPT, {"mime_type": mime_type, "data": audio}],
            temperature=0.0,
        )
        return text.strip()

    async def analyze(self, content: str, title: str | None = None) -> AnalysisResult:
        text = await self._generate(
            build_analysis_prompt(content, title),
            system_instruction=ANALYSIS_PERSONA,
        )
        return parse_analysis(extract_json(text), content, self.name)

    async def generate_insights(
        self, memories: Sequence[MemoryRecord]
    ) -> list[CollectionInsight]:
        condensed = [memory.condensed() for memory in memories]
        text = await self._generate(
            build_insights_prompt(condensed),
            system_instruction=INSIGHTS_PERSONA,
            temperature=0.8,
        )
        return parse_insights(extract_json(text), self.name)
