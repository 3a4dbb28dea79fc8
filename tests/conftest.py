"""Central Pytest Fixtures for Memory Vault AI.

This module provides reusable test data, scripted providers, and an isolated
configuration environment across all test modules.

Fixtures included:
- Environment: isolated_env (autouse), config_path
- Configuration: basic_config, remote_config
- Core data: sample_memories, family_trip_text
- Providers: make_provider, speech_ok, speech_failing
- Utilities: sleep_recorder
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from memory_vault.ai.base import Provider
from memory_vault.ai.speech import SpeechRecognitionError
from memory_vault.config import AISettings, AppConfig, PrivacySettings, SpeechSettings
from memory_vault.models import (
    AnalysisResult,
    Capability,
    CollectionInsight,
    InsightKind,
    MemoryRecord,
    Mood,
    Sentiment,
)

PROVIDER_ENV_VARS = ("GROQ_API_KEY", "GEMINI_API_KEY", "HUGGINGFACE_API_KEY")


# =============================================================================
# Helper Classes
# =============================================================================


def _resolve(outcome: Any) -> Any:
    if isinstance(outcome, BaseException):
        raise outcome
    return outcome


class ScriptedProvider(Provider):
    """Remote provider whose responses are scripted by the test.

    Each transcription attempt consumes the next outcome; an exception
    outcome is raised instead of returned.
    """

    name = "Scripted AI"
    capabilities = frozenset(Capability)

    def __init__(
        self,
        transcripts: Sequence[Any] = (),
        analysis: Any = None,
        insights: Any = None,
        delay: float = 0.0,
        capabilities: Sequence[Capability] | None = None,
    ) -> None:
        self.transcripts = list(transcripts)
        self.analysis = analysis
        self.insights = insights
        self.delay = delay
        if capabilities is not None:
            self.capabilities = frozenset(capabilities)

        self.transcribe_calls = 0
        self.analyze_calls: list[str] = []
        self.insight_calls: list[list[MemoryRecord]] = []
        self.closed = False

    async def transcribe(self, audio: bytes, mime_type: str = "audio/webm") -> str:
        self.transcribe_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return _resolve(self.transcripts.pop(0))

    async def analyze(self, content: str, title: str | None = None) -> AnalysisResult:
        self.analyze_calls.append(content)
        if self.delay:
            await asyncio.sleep(self.delay)
        return _resolve(self.analysis)

    async def generate_insights(
        self, memories: Sequence[MemoryRecord]
    ) -> list[CollectionInsight]:
        self.insight_calls.append(list(memories))
        if self.delay:
            await asyncio.sleep(self.delay)
        return _resolve(self.insights)

    async def aclose(self) -> None:
        self.closed = True


class SleepRecorder:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


# =============================================================================
# Environment Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Strip provider keys from the environment and redirect the config dir."""
    for var in PROVIDER_ENV_VARS:
        # setenv first so the variable is restored to "unset" on teardown
        monkeypatch.setenv(var, "")
        monkeypatch.delenv(var)

    config_home = tmp_path / "xdg"
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))
    return config_home


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    """Path for a test configuration file (not created)."""
    return tmp_path / "config.yaml"


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def basic_config() -> AppConfig:
    """Configuration with no remote provider and no local speech recognition."""
    return AppConfig(
        ai=AISettings(provider="basic"),
        speech=SpeechSettings(enabled=False),
    )


@pytest.fixture
def remote_config() -> AppConfig:
    """Configuration used alongside an explicitly injected remote provider."""
    return AppConfig(
        ai=AISettings(
            transcription_timeout_seconds=0.5,
            analysis_timeout_seconds=0.5,
        ),
        speech=SpeechSettings(enabled=False),
        privacy=PrivacySettings(max_content_chars=100),
    )


# =============================================================================
# Data Fixtures
# =============================================================================


@pytest.fixture
def family_trip_text() -> str:
    return "I had an amazing trip with my family to the mountains"


@pytest.fixture
def sample_memories() -> list[MemoryRecord]:
    """Eight memories, mostly happy, spread over a week."""
    base = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)
    moods = [
        Mood.HAPPY,
        Mood.REFLECTIVE,
        Mood.HAPPY,
        Mood.SAD,
        Mood.HAPPY,
        Mood.EXCITED,
        Mood.NEUTRAL,
        Mood.HAPPY,
    ]
    return [
        MemoryRecord(
            id=f"mem-{i}",
            title=f"Memory {i}",
            content=f"Something that happened on day {i}",
            mood=mood,
            tags=["daily"],
            timestamp=base + timedelta(days=i),
        )
        for i, mood in enumerate(moods)
    ]


@pytest.fixture
def remote_analysis() -> AnalysisResult:
    return AnalysisResult(
        sentiment=Sentiment.POSITIVE,
        keywords=["mountains"],
        suggested_tags=["travel"],
        emotional_tone="Joyful",
        summary="A family trip",
        confidence=0.92,
        themes=["family"],
        mood=Mood.HAPPY,
        provider="Scripted AI",
    )


@pytest.fixture
def remote_insights() -> list[CollectionInsight]:
    return [
        CollectionInsight(
            kind=InsightKind.REFLECTION,
            title="Summer Joy",
            description="Your summer memories are mostly happy.",
            confidence=0.85,
            actionable=False,
        )
    ]


# =============================================================================
# Provider Fixtures
# =============================================================================


@pytest.fixture
def make_provider():
    """Factory for ScriptedProvider instances."""
    return ScriptedProvider


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def speech_ok() -> MagicMock:
    """Local recognizer that always hears the same words."""
    recognizer = MagicMock()
    recognizer.transcribe = AsyncMock(return_value="words heard locally")
    return recognizer


@pytest.fixture
def speech_failing() -> MagicMock:
    """Local recognizer that never detects speech."""
    recognizer = MagicMock()
    recognizer.transcribe = AsyncMock(
        side_effect=SpeechRecognitionError("No speech detected in audio")
    )
    return recognizer
