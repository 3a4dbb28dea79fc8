"""Tests for the AI orchestration service.

Covers provider selection, transcription retry and fallback, analysis and
insight degradation, and the timeout race.
"""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import httpx
import pytest

from memory_vault.ai.client import AIRateLimitError, AIServerError, AITimeoutError
from memory_vault.ai.fallback import BASIC_PROVIDER_NAME, ENABLE_AI_TITLE
from memory_vault.ai.gemini import GeminiProvider
from memory_vault.ai.providers import GroqProvider, HuggingFaceProvider
from memory_vault.ai.service import (
    AIService,
    TranscriptionError,
    TranscriptionErrorKind,
    select_provider,
)
from memory_vault.config import AISettings, AppConfig, PrivacySettings, SpeechSettings
from memory_vault.models import Capability, InsightKind, Mood, Sentiment

GROQ_TEST_KEY = "gsk_" + "a1b2c3d4e5" * 4
GEMINI_TEST_KEY = "AIza" + "Xy9" * 12
HF_TEST_KEY = "hf_" + "q7w8e9r0t1" * 3


def _close(service: AIService) -> None:
    asyncio.run(service.aclose())


# =============================================================================
# Provider Selection
# =============================================================================


class TestProviderSelection:
    """Tests for choosing the active provider once at construction."""

    def test_no_keys_selects_basic(self) -> None:
        service = AIService(AppConfig())

        assert service.provider_name == BASIC_PROVIDER_NAME
        assert service.is_ai_enabled() is False

    def test_basic_status_features(self) -> None:
        status = AIService(AppConfig()).get_configuration_status()

        assert status.has_ai_provider is False
        assert status.provider_name == "Basic Analysis"
        assert status.features.transcription is False
        assert status.features.analysis is True
        assert status.features.insights is True

    def test_groq_key_selects_groq(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GROQ_API_KEY", GROQ_TEST_KEY)

        service = AIService(AppConfig())
        try:
            assert isinstance(service.provider, GroqProvider)
            assert service.provider_name == "Groq"
            assert service.is_ai_enabled() is True
            assert service.get_configuration_status().features.transcription is True
        finally:
            _close(service)

    def test_placeholder_key_is_ignored(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GROQ_API_KEY", "your_groq_api_key_here")

        service = AIService(AppConfig())

        assert service.provider_name == BASIC_PROVIDER_NAME

    def test_short_key_is_ignored(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GROQ_API_KEY", "abc")

        assert AIService(AppConfig()).provider_name == BASIC_PROVIDER_NAME

    def test_auto_prefers_groq_over_gemini(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GROQ_API_KEY", GROQ_TEST_KEY)
        monkeypatch.setenv("GEMINI_API_KEY", GEMINI_TEST_KEY)

        service = AIService(AppConfig())
        try:
            assert service.provider_name == "Groq"
        finally:
            _close(service)

    def test_gemini_key_selects_gemini(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GEMINI_API_KEY", GEMINI_TEST_KEY)

        with patch("memory_vault.ai.gemini.genai") as mock_genai:
            service = AIService(AppConfig())

        assert isinstance(service.provider, GeminiProvider)
        mock_genai.configure.assert_called_once_with(api_key=GEMINI_TEST_KEY)

    def test_huggingface_features(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("HUGGINGFACE_API_KEY", HF_TEST_KEY)

        service = AIService(AppConfig())
        try:
            assert isinstance(service.provider, HuggingFaceProvider)
            features = service.get_configuration_status().features
            assert features.transcription is True
            assert features.analysis is True
            assert features.insights is True
        finally:
            _close(service)

    def test_local_only_mode_ignores_keys(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GROQ_API_KEY", GROQ_TEST_KEY)
        config = AppConfig(privacy=PrivacySettings(local_only_mode=True))

        assert select_provider(config).name == BASIC_PROVIDER_NAME

    def test_explicit_provider_without_key_uses_basic(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("GROQ_API_KEY", GROQ_TEST_KEY)
        config = AppConfig(ai=AISettings(provider="huggingface"))

        assert select_provider(config).name == BASIC_PROVIDER_NAME

    def test_injected_provider_bypasses_selection(self, make_provider, basic_config) -> None:
        provider = make_provider()

        service = AIService(basic_config, provider=provider)

        assert service.provider is provider
        assert service.provider_name == "Scripted AI"


# =============================================================================
# Transcription
# =============================================================================


class TestTranscription:
    """Tests for retry, backoff, and fallback during transcription."""

    def test_first_attempt_success(self, make_provider, remote_config, sleep_recorder) -> None:
        provider = make_provider(transcripts=["  hello there  "])
        service = AIService(remote_config, provider=provider, sleep=sleep_recorder)

        text = asyncio.run(service.transcribe(b"audio"))

        assert text == "hello there"
        assert provider.transcribe_calls == 1
        assert sleep_recorder.delays == []

    def test_retries_with_linear_backoff(
        self, make_provider, remote_config, sleep_recorder
    ) -> None:
        provider = make_provider(
            transcripts=[AIServerError(), AIServerError(), "third time lucky"]
        )
        service = AIService(remote_config, provider=provider, sleep=sleep_recorder)

        text = asyncio.run(service.transcribe(b"audio"))

        assert text == "third time lucky"
        assert provider.transcribe_calls == 3
        assert sleep_recorder.delays == [1.0, 2.0]

    def test_rate_limit_stops_retrying(
        self, make_provider, remote_config, sleep_recorder, speech_ok
    ) -> None:
        provider = make_provider(transcripts=[AIRateLimitError(), "never reached"])
        service = AIService(
            remote_config, provider=provider, sleep=sleep_recorder, speech_recognizer=speech_ok
        )

        text = asyncio.run(service.transcribe(b"audio"))

        assert text == "words heard locally"
        assert provider.transcribe_calls == 1
        assert sleep_recorder.delays == []
        speech_ok.transcribe.assert_awaited_once_with(b"audio")

    def test_rate_limit_then_local_failure_reports_provider(
        self, make_provider, remote_config, sleep_recorder, speech_failing
    ) -> None:
        provider = make_provider(transcripts=[AIRateLimitError()])
        service = AIService(
            remote_config,
            provider=provider,
            sleep=sleep_recorder,
            speech_recognizer=speech_failing,
        )

        with pytest.raises(TranscriptionError) as exc_info:
            asyncio.run(service.transcribe(b"audio"))

        error = exc_info.value
        assert error.kind == TranscriptionErrorKind.PROVIDER_FAILED
        assert "Scripted AI" in str(error)
        assert "API key" in str(error)
        assert isinstance(error.last_error, AIRateLimitError)
        assert provider.transcribe_calls == 1

    def test_empty_text_counts_as_failure(
        self, make_provider, remote_config, sleep_recorder, speech_ok
    ) -> None:
        provider = make_provider(transcripts=["", "   ", ""])
        service = AIService(
            remote_config, provider=provider, sleep=sleep_recorder, speech_recognizer=speech_ok
        )

        text = asyncio.run(service.transcribe(b"audio"))

        assert text == "words heard locally"
        assert provider.transcribe_calls == 3
        assert sleep_recorder.delays == [1.0, 2.0]

    def test_local_fallback_runs_once_after_exhaustion(
        self, make_provider, remote_config, sleep_recorder, speech_failing
    ) -> None:
        provider = make_provider(transcripts=[AIServerError()] * 3)
        service = AIService(
            remote_config,
            provider=provider,
            sleep=sleep_recorder,
            speech_recognizer=speech_failing,
        )

        with pytest.raises(TranscriptionError):
            asyncio.run(service.transcribe(b"audio"))

        assert provider.transcribe_calls == 3
        assert speech_failing.transcribe.await_count == 1

    def test_basic_provider_uses_local_speech(self, basic_config, speech_ok) -> None:
        service = AIService(basic_config, speech_recognizer=speech_ok)

        assert asyncio.run(service.transcribe(b"audio")) == "words heard locally"

    def test_basic_provider_failure_mentions_microphone(
        self, basic_config, speech_failing
    ) -> None:
        service = AIService(basic_config, speech_recognizer=speech_failing)

        with pytest.raises(TranscriptionError) as exc_info:
            asyncio.run(service.transcribe(b"audio"))

        assert exc_info.value.kind == TranscriptionErrorKind.NO_PROVIDER
        assert "microphone" in str(exc_info.value)
        assert exc_info.value.last_error is None

    def test_error_kinds_have_distinct_messages(self) -> None:
        no_provider = TranscriptionError(TranscriptionErrorKind.NO_PROVIDER, "Basic Analysis")
        failed = TranscriptionError(TranscriptionErrorKind.PROVIDER_FAILED, "Groq")

        assert str(no_provider) != str(failed)
        assert "Groq" in str(failed)

    def test_attempt_timeout_detaches_call(self, make_provider, speech_failing) -> None:
        config = AppConfig(
            ai=AISettings(transcription_timeout_seconds=0.02, transcription_max_attempts=1),
            speech=SpeechSettings(enabled=False),
        )
        provider = make_provider(transcripts=["too late"], delay=5.0)

        async def scenario() -> tuple[BaseException, int, int]:
            service = AIService(config, provider=provider, speech_recognizer=speech_failing)
            with pytest.raises(TranscriptionError) as exc_info:
                await service.transcribe(b"audio")
            pending = service.pending_detached
            await service.aclose()
            return exc_info.value.last_error, pending, service.pending_detached

        last_error, pending, after_close = asyncio.run(scenario())

        assert isinstance(last_error, AITimeoutError)
        assert pending == 1
        assert after_close == 0


# =============================================================================
# Analysis
# =============================================================================


class TestAnalysis:
    """Tests for single-memory analysis and its fallback."""

    def test_basic_family_trip(self, basic_config, family_trip_text) -> None:
        result = asyncio.run(AIService(basic_config).analyze(family_trip_text))

        assert result.sentiment == Sentiment.POSITIVE
        assert result.mood == Mood.EXCITED
        assert result.suggested_tags == ["family", "travel"]
        assert result.confidence == 0.6
        assert result.is_fallback is True
        assert result.provider == "Basic Analysis"

    @pytest.mark.parametrize(
        "content",
        [
            "",
            "   ",
            "!!!",
            "héllo wörld 😀",
            "\x00\n\t",
            "{not json}",
            "a" * 200_000,
        ],
        ids=["empty", "whitespace", "punctuation", "non-ascii", "control", "brace", "long"],
    )
    def test_basic_analysis_of_degenerate_text(self, basic_config, content: str) -> None:
        result = asyncio.run(AIService(basic_config).analyze(content))

        assert 0.0 <= result.confidence <= 1.0
        assert result.mood in set(Mood)
        assert result.sentiment == Sentiment.NEUTRAL
        assert result.suggested_tags == ["general"]
        assert result.is_fallback is True

    def test_basic_analysis_is_deterministic(self, basic_config, family_trip_text) -> None:
        service = AIService(basic_config)

        first = asyncio.run(service.analyze(family_trip_text, "Trip"))
        second = asyncio.run(service.analyze(family_trip_text, "Trip"))

        assert first == second

    def test_remote_result_returned(self, make_provider, remote_config, remote_analysis) -> None:
        provider = make_provider(analysis=remote_analysis)
        service = AIService(remote_config, provider=provider)

        result = asyncio.run(service.analyze("A day in the hills"))

        assert result is remote_analysis
        assert provider.analyze_calls == ["A day in the hills"]

    def test_remote_content_is_truncated(
        self, make_provider, remote_config, remote_analysis
    ) -> None:
        provider = make_provider(analysis=remote_analysis)
        service = AIService(remote_config, provider=provider)

        asyncio.run(service.analyze("x" * 500))

        assert len(provider.analyze_calls[0]) == 100

    def test_rate_limit_falls_back_without_retry(
        self, make_provider, remote_config, family_trip_text
    ) -> None:
        provider = make_provider(analysis=AIRateLimitError())
        service = AIService(remote_config, provider=provider)

        result = asyncio.run(service.analyze(family_trip_text))

        assert len(provider.analyze_calls) == 1
        assert result.is_fallback is True
        assert result.mood == Mood.EXCITED

    def test_unexpected_error_never_escapes(self, make_provider, remote_config) -> None:
        provider = make_provider(analysis=RuntimeError("boom"))
        service = AIService(remote_config, provider=provider)

        result = asyncio.run(service.analyze("A quiet afternoon"))

        assert result.is_fallback is True

    def test_provider_without_analysis_uses_fallback(
        self, make_provider, remote_config
    ) -> None:
        provider = make_provider(capabilities=[Capability.TRANSCRIBE])
        service = AIService(remote_config, provider=provider)

        result = asyncio.run(service.analyze("A quiet afternoon"))

        assert result.is_fallback is True
        assert provider.analyze_calls == []

    def test_slow_remote_times_out_and_late_result_is_dropped(
        self, make_provider, remote_analysis
    ) -> None:
        config = AppConfig(
            ai=AISettings(analysis_timeout_seconds=0.02),
            speech=SpeechSettings(enabled=False),
        )
        provider = make_provider(analysis=remote_analysis, delay=0.1)

        async def scenario():
            service = AIService(config, provider=provider)
            result = await service.analyze("A slow day")
            pending = service.pending_detached
            await asyncio.sleep(0.3)
            return result, pending, service.pending_detached

        result, pending, later = asyncio.run(scenario())

        assert result.is_fallback is True
        assert pending == 1
        assert later == 0


# =============================================================================
# Collection Insights
# =============================================================================


class TestSummarize:
    """Tests for collection insight generation."""

    def test_empty_collection_on_basic(self, basic_config) -> None:
        insights = asyncio.run(AIService(basic_config).summarize([]))

        assert len(insights) == 1
        assert insights[0].kind == InsightKind.SUGGESTION
        assert insights[0].title == ENABLE_AI_TITLE

    def test_basic_collection_insights(self, basic_config, sample_memories) -> None:
        insights = asyncio.run(AIService(basic_config).summarize(sample_memories))

        kinds = [insight.kind for insight in insights]
        assert kinds == [InsightKind.PATTERN, InsightKind.MILESTONE, InsightKind.SUGGESTION]
        assert insights[0].title == "Mood Pattern: happy"
        assert "4 out of 8" in insights[0].description
        assert insights[-1].title == ENABLE_AI_TITLE

    def test_remote_insights_use_sample(
        self, make_provider, remote_config, sample_memories, remote_insights
    ) -> None:
        provider = make_provider(insights=remote_insights)
        service = AIService(remote_config, provider=provider)

        insights = asyncio.run(service.summarize(sample_memories))

        assert insights == remote_insights
        assert len(provider.insight_calls[0]) == 5
        assert provider.insight_calls[0] == sample_memories[:5]

    def test_remote_failure_names_provider(
        self, make_provider, remote_config, sample_memories
    ) -> None:
        provider = make_provider(insights=AIServerError())
        service = AIService(remote_config, provider=provider)

        insights = asyncio.run(service.summarize(sample_memories))

        assert insights[-1].title == "AI Insights Unavailable"
        assert "Scripted AI" in insights[-1].description
        assert insights[0].title == "Mood Pattern: happy"

    def test_empty_remote_list_falls_back(
        self, make_provider, remote_config, sample_memories
    ) -> None:
        provider = make_provider(insights=[])
        service = AIService(remote_config, provider=provider)

        insights = asyncio.run(service.summarize(sample_memories))

        assert insights[-1].title == "AI Insights Unavailable"

    def test_provider_without_insights_keeps_capturing(
        self, make_provider, remote_config, sample_memories
    ) -> None:
        provider = make_provider(capabilities=[Capability.TRANSCRIBE, Capability.ANALYZE])
        service = AIService(remote_config, provider=provider)

        insights = asyncio.run(service.summarize(sample_memories))

        assert provider.insight_calls == []
        assert insights[-1].title == "Keep Capturing Memories"
        assert "8 memories" in insights[-1].description

    def test_empty_collection_skips_remote(self, make_provider, remote_config) -> None:
        provider = make_provider(insights=AIServerError())
        service = AIService(remote_config, provider=provider)

        insights = asyncio.run(service.summarize([]))

        assert provider.insight_calls == []
        assert len(insights) == 1
        assert insights[0].title == "Keep Capturing Memories"


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:
    def test_context_manager_closes_provider(self, make_provider, basic_config) -> None:
        provider = make_provider()

        async def scenario() -> None:
            async with AIService(basic_config, provider=provider):
                pass

        asyncio.run(scenario())

        assert provider.closed is True

    def test_shared_http_client_stays_open(
        self, monkeypatch: pytest.MonkeyPatch, remote_config
    ) -> None:
        monkeypatch.setenv("GROQ_API_KEY", GROQ_TEST_KEY)

        async def scenario() -> httpx.AsyncClient:
            client = httpx.AsyncClient()
            async with AIService(remote_config, http_client=client) as service:
                assert service.provider_name == "Groq"
            return client

        client = asyncio.run(scenario())

        assert client.is_closed is False
        asyncio.run(client.aclose())
