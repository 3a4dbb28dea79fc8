"""AI orchestration service for Memory Vault AI.

``AIService`` is the single entry point the UI layer talks to. It selects one
active provider when constructed, then for every request:

- races the remote call against a timeout,
- retries transcription with linear backoff (never after a rate limit),
- degrades to the local heuristic analyzer when analysis or insight
  generation fails, so those operations never raise.

Only ``transcribe`` may surface a final failure, as ``TranscriptionError``
carrying an explicit ``TranscriptionErrorKind``.

Example:
    >>> async with AIService(get_config()) as service:
    ...     print(service.provider_name)
    ...     result = await service.analyze("Walked the dog in the park")
    ...     insights = await service.summarize(memories)
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Awaitable, Callable, Sequence
from enum import Enum
from typing import Any, TypeVar

import httpx

from memory_vault.ai.base import Provider
from memory_vault.ai.client import (
    AIClientError,
    AIMalformedResponseError,
    AIRateLimitError,
    AITimeoutError,
)
from memory_vault.ai.fallback import BasicAnalysisProvider
from memory_vault.ai.gemini import GeminiProvider
from memory_vault.ai.providers import GroqProvider, HuggingFaceProvider
from memory_vault.ai.speech import LocalSpeechRecognizer
from memory_vault.config import (
    PROVIDER_PREFERENCE,
    AISettings,
    APIKeyManager,
    AppConfig,
    ConfigurationError,
    ProviderName,
    get_config,
    get_key_manager,
)
from memory_vault.models import (
    AnalysisResult,
    Capability,
    CollectionInsight,
    ConfigurationStatus,
    FeatureAvailability,
    MemoryRecord,
)
from memory_vault.utils.logging import LogContext, get_logger

logger = get_logger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


# =============================================================================
# Transcription Errors
# =============================================================================


class TranscriptionErrorKind(str, Enum):
    """Why transcription ultimately failed.

    Attributes:
        NO_PROVIDER: No remote provider is configured; only local
            recognition was available and it failed.
        PROVIDER_FAILED: A remote provider is configured but every attempt
            (and the local fallback) failed.
    """

    NO_PROVIDER = "no_provider"
    PROVIDER_FAILED = "provider_failed"


class TranscriptionError(AIClientError):
    """Every transcription avenue failed.

    Attributes:
        kind: Whether a remote provider was configured.
        provider_name: Active provider at the time of failure.
        last_error: Last error raised by the primary provider, if any.
    """

    def __init__(
        self,
        kind: TranscriptionErrorKind,
        provider_name: str,
        last_error: Exception | None = None,
    ) -> None:
        if kind == TranscriptionErrorKind.NO_PROVIDER:
            message = (
                "Speech recognition failed. Please check your microphone and try again, "
                "or add text manually below."
            )
        else:
            message = (
                f"Transcription failed with {provider_name}. Please check your API key "
                "and internet connection, or add text manually below."
            )
        super().__init__(message, retriable=False, original_error=last_error)
        self.kind = kind
        self.provider_name = provider_name
        self.last_error = last_error


# =============================================================================
# Provider Selection
# =============================================================================


def build_provider(
    name: ProviderName,
    api_key: str,
    settings: AISettings,
    http_client: httpx.AsyncClient | None = None,
) -> Provider:
    """Construct a remote provider by name."""
    name = ProviderName(name)
    if name == ProviderName.GROQ:
        return GroqProvider(api_key, settings, client=http_client)
    if name == ProviderName.HUGGINGFACE:
        return HuggingFaceProvider(api_key, settings, client=http_client)
    return GeminiProvider(api_key, settings)


def select_provider(
    config: AppConfig,
    fallback: BasicAnalysisProvider | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> Provider:
    """Pick the active provider from configuration.

    ``auto`` takes the first provider in preference order with a usable
    credential. An explicitly named provider without a usable key, local-only
    mode, or ``basic`` all select the heuristic provider.
    """
    fallback = fallback or BasicAnalysisProvider(
        milestone_threshold=config.ai.milestone_threshold
    )

    if config.privacy.local_only_mode:
        logger.info("Local-only mode enabled, using basic analysis provider")
        return fallback
    if config.ai.provider == "basic":
        return fallback

    if config.ai.provider == "auto":
        candidates: Sequence[ProviderName] = PROVIDER_PREFERENCE
    else:
        candidates = (ProviderName(config.ai.provider),)

    for name in candidates:
        try:
            key = get_key_manager(config, name).retrieve_key()
        except ConfigurationError as e:
            logger.warning(f"Could not read {name.value} API key: {e}")
            continue
        if APIKeyManager.is_usable_key(key):
            provider = build_provider(name, key.strip(), config.ai, http_client)
            logger.info(f"Using {provider.name} AI provider")
            return provider

    if config.ai.provider != "auto":
        logger.warning(f"No usable {config.ai.provider} API key found, using basic analysis")
    else:
        logger.info("No AI API key found, using fallback provider with local speech recognition")
    return fallback


# =============================================================================
# Orchestration Service
# =============================================================================


class AIService:
    """Orchestrates transcription, analysis and insight generation.

    Construct one per process and pass it to callers. The active provider is
    chosen once, here, and never changes for the life of the object.

    Attributes:
        config: Application configuration the service was built from.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        provider: Provider | None = None,
        fallback: BasicAnalysisProvider | None = None,
        speech_recognizer: LocalSpeechRecognizer | None = None,
        sleep: SleepFn = asyncio.sleep,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            config: Configuration (loaded from the default path if None).
            provider: Explicit active provider, bypassing selection.
            fallback: Heuristic provider used for degraded results.
            speech_recognizer: Local recognizer for the transcription fallback;
                built from ``config.speech`` when None and speech is enabled.
            sleep: Coroutine used for backoff delays.
            http_client: Shared httpx client for REST providers.
        """
        self.config = config or get_config()
        settings = self.config.ai

        self._fallback = fallback or BasicAnalysisProvider(
            milestone_threshold=settings.milestone_threshold
        )
        self._provider = provider or select_provider(
            self.config, fallback=self._fallback, http_client=http_client
        )

        if speech_recognizer is None and self.config.speech.enabled:
            speech_recognizer = LocalSpeechRecognizer(
                language=self.config.speech.language,
                timeout_seconds=settings.local_speech_timeout_seconds,
            )
        self._speech = speech_recognizer
        self._sleep = sleep

        self._request_ids = itertools.count(1)
        self._detached: dict[asyncio.Future[Any], int] = {}

    async def __aenter__(self) -> "AIService":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # =========================================================================
    # Provider Queries
    # =========================================================================

    @property
    def provider(self) -> Provider:
        return self._provider

    @property
    def provider_name(self) -> str:
        """Display name of the active provider."""
        return self._provider.name

    def is_ai_enabled(self) -> bool:
        """True when a remote provider is active."""
        return self._provider.is_remote

    def get_configuration_status(self) -> ConfigurationStatus:
        """Describe the active provider for display."""
        return ConfigurationStatus(
            has_ai_provider=self.is_ai_enabled(),
            provider_name=self.provider_name,
            features=FeatureAvailability(
                transcription=self._provider.supports(Capability.TRANSCRIBE),
                analysis=self._provider.supports(Capability.ANALYZE),
                insights=self._provider.supports(Capability.SUMMARIZE_COLLECTION),
            ),
        )

    @property
    def pending_detached(self) -> int:
        """Number of timed-out remote calls still running in the background."""
        return len(self._detached)

    # =========================================================================
    # Timeout Race
    # =========================================================================

    async def _race(self, coro: Awaitable[T], timeout: float, operation: str) -> T:
        """Await ``coro`` or fail with AITimeoutError, whichever comes first.

        A call that loses the race is not cancelled. It keeps running detached
        under its request id, and whatever it eventually produces is dropped.
        """
        request_id = next(self._request_ids)
        task = asyncio.ensure_future(coro)

        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task in done:
            return task.result()

        self._detached[task] = request_id
        task.add_done_callback(self._discard_late_result)
        logger.debug(f"{operation} request {request_id} timed out after {timeout}s, detaching")
        raise AITimeoutError(timeout, message=f"{operation} timeout after {timeout} seconds")

    def _discard_late_result(self, task: asyncio.Future[Any]) -> None:
        request_id = self._detached.pop(task, None)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.debug(f"Discarding late failure for request {request_id}: {error}")
        else:
            logger.debug(f"Discarding late response for request {request_id}")

    # =========================================================================
    # Transcription
    # =========================================================================

    async def transcribe(self, audio: bytes, mime_type: str = "audio/webm") -> str:
        """Transcribe a voice recording.

        Tries the active provider up to ``transcription_max_attempts`` times,
        then local speech recognition once.

        Raises:
            TranscriptionError: If every avenue failed.
        """
        settings = self.config.ai
        last_error: Exception | None = None

        if self._provider.supports(Capability.TRANSCRIBE):
            max_attempts = settings.transcription_max_attempts
            for attempt in range(1, max_attempts + 1):
                logger.info(
                    f"Transcription attempt {attempt}/{max_attempts} with {self.provider_name}"
                )
                try:
                    text = await self._race(
                        self._provider.transcribe(audio, mime_type),
                        settings.transcription_timeout_seconds,
                        "Transcription",
                    )
                    if text and text.strip():
                        return text.strip()
                    raise AIMalformedResponseError("Empty transcription result")

                except AIRateLimitError as e:
                    logger.warning(f"{self.provider_name} rate limit hit, not retrying: {e}")
                    last_error = e
                    break

                except Exception as e:
                    logger.warning(f"Transcription attempt {attempt} failed: {e}")
                    last_error = e

                if attempt < max_attempts:
                    await self._sleep(attempt * settings.retry_base_delay)
        else:
            logger.info(f"{self.provider_name} does not support transcription")

        text = await self._local_transcription(audio)
        if text:
            return text

        kind = (
            TranscriptionErrorKind.PROVIDER_FAILED
            if self._provider.is_remote
            else TranscriptionErrorKind.NO_PROVIDER
        )
        raise TranscriptionError(kind, self.provider_name, last_error=last_error)

    async def _local_transcription(self, audio: bytes) -> str | None:
        if self._speech is None:
            return None

        logger.info("Trying fallback transcription methods...")
        try:
            with LogContext("Local speech recognition", logger=logger):
                return await self._speech.transcribe(audio)
        except Exception as e:
            logger.warning(f"Fallback transcription failed: {e}")
            return None

    # =========================================================================
    # Analysis
    # =========================================================================

    def _uses_remote(self, capability: Capability) -> bool:
        return self._provider is not self._fallback and self._provider.supports(capability)

    async def analyze(self, content: str, title: str | None = None) -> AnalysisResult:
        """Analyze one memory. Never raises.

        Remote failures of any kind fall back to the heuristic analyzer
        without retrying.
        """
        if self._uses_remote(Capability.ANALYZE):
            remote_content = content[: self.config.privacy.max_content_chars]
            try:
                return await self._race(
                    self._provider.analyze(remote_content, title),
                    self.config.ai.analysis_timeout_seconds,
                    "Analysis",
                )
            except AIRateLimitError:
                logger.warning(
                    f"{self.provider_name} rate limit exceeded, falling back to basic analysis"
                )
            except Exception as e:
                logger.warning(f"AI analysis failed, using fallback: {e}")

        return await self._fallback.analyze(content, title)

    async def summarize(self, memories: Sequence[MemoryRecord]) -> list[CollectionInsight]:
        """Generate insights over a memory collection. Never raises.

        Only the first ``insight_sample_size`` memories are sent to a remote
        provider; the local fallback looks at the whole list.
        """
        memories = list(memories)
        settings = self.config.ai
        remote_failed = False

        if memories and self._uses_remote(Capability.SUMMARIZE_COLLECTION):
            sample = memories[: settings.insight_sample_size]
            try:
                insights = await self._race(
                    self._provider.generate_insights(sample),
                    settings.analysis_timeout_seconds,
                    "Insight generation",
                )
                if insights:
                    return insights
                logger.warning(f"{self.provider_name} returned no insights, using fallback")
            except AIRateLimitError:
                logger.warning(
                    f"{self.provider_name} rate limit exceeded, falling back to basic insights"
                )
            except Exception as e:
                logger.warning(f"AI insights generation failed, using fallback: {e}")
            remote_failed = True

        return self._fallback.analyzer.generate_insights(
            memories,
            milestone_threshold=settings.milestone_threshold,
            active_provider=self.provider_name if self.is_ai_enabled() else None,
            remote_failed=remote_failed,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def aclose(self) -> None:
        """Cancel detached calls and close provider connections."""
        for task in list(self._detached):
            task.cancel()
        self._detached.clear()
        await self._provider.aclose()
