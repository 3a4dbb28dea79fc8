"""Local speech recognition fallback.

Used once, after the primary provider's transcription attempts are
exhausted. Recognition is best-effort: the recording must be readable as
WAV, AIFF or FLAC, and the free Google Web Speech endpoint used by the
SpeechRecognition package must be reachable. Any failure is reported as
``SpeechRecognitionError``.
"""

from __future__ import annotations

import asyncio
import io
import threading

from memory_vault.ai.client import AIClientError
from memory_vault.utils.logging import get_logger

logger = get_logger(__name__)


class SpeechRecognitionError(AIClientError):
    """Local recognition could not produce a transcript."""

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        super().__init__(message, retriable=False, original_error=original_error)


class LocalSpeechRecognizer:
    """Transcribe a recording with the SpeechRecognition package.

    The blocking recognizer runs in a daemon thread and is bounded by
    ``timeout_seconds``. A recognition that overruns is abandoned; its thread
    neither delays event loop shutdown nor keeps the process alive, and its
    result is dropped.

    Attributes:
        language: Recognition language tag (e.g. ``en-US``).
        timeout_seconds: Upper bound on one recognition.
    """

    name = "Local Speech Recognition"

    def __init__(self, language: str = "en-US", timeout_seconds: float = 30.0) -> None:
        self.language = language
        self.timeout_seconds = timeout_seconds

    async def transcribe(self, audio: bytes) -> str:
        """Recognize speech in ``audio``.

        Raises:
            SpeechRecognitionError: On timeout, unreadable audio, or no speech.
        """
        try:
            text = await asyncio.wait_for(
                self._recognize_in_daemon(audio), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            raise SpeechRecognitionError("Transcription timeout", original_error=e)

        text = text.strip()
        if not text:
            raise SpeechRecognitionError("No speech detected in audio")
        return text

    async def _recognize_in_daemon(self, audio: bytes) -> str:
        # Not the default executor: asyncio.run() joins that on shutdown
        loop = asyncio.get_running_loop()
        future: asyncio.Future[str] = loop.create_future()

        def settle(result: str | None, error: Exception | None) -> None:
            if future.done():
                return
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(result)

        def worker() -> None:
            try:
                result, error = self._recognize(audio), None
            except Exception as e:
                result, error = None, e
            try:
                loop.call_soon_threadsafe(settle, result, error)
            except RuntimeError:
                logger.debug("Local recognition finished after its event loop closed")

        threading.Thread(target=worker, name="local-speech", daemon=True).start()
        return await future

    def _recognize(self, audio: bytes) -> str:
        import speech_recognition as sr

        recognizer = sr.Recognizer()
        try:
            with sr.AudioFile(io.BytesIO(audio)) as source:
                recorded = recognizer.record(source)
        except (ValueError, EOFError) as e:
            raise SpeechRecognitionError(
                "Audio could not be replayed for recognition", original_error=e
            )

        try:
            return recognizer.recognize_google(recorded, language=self.language)
        except sr.UnknownValueError as e:
            raise SpeechRecognitionError("No speech detected in audio", original_error=e)
        except sr.RequestError as e:
            raise SpeechRecognitionError(f"Speech recognition failed: {e}", original_error=e)
