"""Logging for Memory Vault AI.

Everything logged under the ``memory_vault`` namespace may pass near API keys
and bearer headers, so redaction happens twice: on each AI module logger
(``get_logger``) and on every handler ``setup_logging`` installs, which also
catches records propagated from loggers created elsewhere in the package.

Example:
    >>> from memory_vault.utils.logging import get_logger, setup_logging
    >>> setup_logging("DEBUG")
    >>> logger = get_logger(__name__)
    >>> logger.debug("Authorization: Bearer gsk_...")  # printed as [REDACTED]
"""

from __future__ import annotations

import logging
import re
import time
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

PACKAGE_NAME = "memory_vault"

# Quieted to WARNING; httpx logs every request URL at INFO.
THIRD_PARTY_LOGGERS = (
    "httpx",
    "httpcore",
    "google.auth",
    "google.api_core",
    "google.generativeai",
    "urllib3",
    "asyncio",
)

FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

_stderr = Console(stderr=True)


# =============================================================================
# Redaction
# =============================================================================


class RedactingFilter(logging.Filter):
    """Replace API keys and bearer tokens in log records with ``[REDACTED]``.

    Key/value forms (``api_key=...``, ``token: ...``, ``Bearer ...``) keep the
    label and drop the value. Bare Groq (``gsk_``), Hugging Face (``hf_``) and
    Gemini (``AIza``) keys are replaced outright. The filter never drops a
    record.
    """

    LABELLED = [
        re.compile(r'(api_key\s*[=:]\s*)["\']?([a-zA-Z0-9_\-]{20,})["\']?', re.IGNORECASE),
        re.compile(r'(key\s*[=:]\s*)["\']?([a-zA-Z0-9_\-]{20,})["\']?', re.IGNORECASE),
        re.compile(r'(token\s*[=:]\s*)["\']?([a-zA-Z0-9_\-]{20,})["\']?', re.IGNORECASE),
        re.compile(r"(bearer\s+)([a-zA-Z0-9_\-]{20,})", re.IGNORECASE),
    ]
    BARE = [
        re.compile(r"\bgsk_[a-zA-Z0-9]{20,}\b"),
        re.compile(r"\bhf_[a-zA-Z0-9]{20,}\b"),
        re.compile(r"\bAIza[a-zA-Z0-9_\-]{30,}\b"),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self.redact(record.msg)
        if record.args and isinstance(record.args, tuple):
            record.args = tuple(
                self.redact(arg) if isinstance(arg, str) else arg for arg in record.args
            )
        return True

    def redact(self, text: str) -> str:
        for pattern in self.LABELLED:
            text = pattern.sub(r"\1[REDACTED]", text)
        for pattern in self.BARE:
            text = pattern.sub("[REDACTED]", text)
        return text


_redactor = RedactingFilter()


def get_logger(name: str) -> logging.Logger:
    """Module logger with key redaction attached.

    Used by the AI modules so records are scrubbed even when the host
    application installs its own handlers instead of calling ``setup_logging``.
    """
    logger = logging.getLogger(name)
    if _redactor not in logger.filters:
        logger.addFilter(_redactor)
    return logger


# =============================================================================
# Setup
# =============================================================================


def setup_logging(
    level: str = "WARNING",
    log_file: Path | None = None,
    quiet_third_party: bool = True,
) -> logging.Logger:
    """Route ``memory_vault`` records to stderr (and optionally a file).

    Calling it again replaces the handlers from the previous call.

    Args:
        level: Level name; unknown names fall back to INFO.
        log_file: Also append plain-text records here.
        quiet_third_party: Raise HTTP and SDK loggers to WARNING.

    Returns:
        The package logger.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    package_logger = logging.getLogger(PACKAGE_NAME)
    package_logger.setLevel(numeric_level)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    handlers: list[logging.Handler] = [
        RichHandler(
            console=_stderr,
            show_time=False,
            show_path=False,
            markup=False,
            rich_tracebacks=True,
        )
    ]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.addFilter(_redactor)
        package_logger.addHandler(handler)

    if quiet_third_party:
        for name in THIRD_PARTY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    package_logger.propagate = False
    package_logger.debug("Logging at %s%s", level.upper(), f" to {log_file}" if log_file else "")
    return package_logger


# =============================================================================
# Timing
# =============================================================================


class LogContext:
    """Log the start and duration of a block at ``level``.

    A block that raises is reported at WARNING with the exception text; the
    exception still propagates. Plain ``with`` is enough around an ``await``.

    Attributes:
        elapsed: Seconds spent in the block, set on exit.
    """

    def __init__(
        self,
        message: str,
        level: int = logging.DEBUG,
        logger: logging.Logger | None = None,
    ) -> None:
        self.message = message
        self.level = level
        self.logger = logger or logging.getLogger(PACKAGE_NAME)
        self.elapsed = 0.0
        self._started = 0.0

    def __enter__(self) -> "LogContext":
        self._started = time.perf_counter()
        self.logger.log(self.level, "%s...", self.message)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: Any,
    ) -> None:
        self.elapsed = time.perf_counter() - self._started
        if exc_type is None:
            self.logger.log(self.level, "%s took %.2fs", self.message, self.elapsed)
        else:
            self.logger.warning("%s failed after %.2fs: %s", self.message, self.elapsed, str(exc))
