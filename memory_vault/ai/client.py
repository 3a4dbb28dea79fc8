"""Shared client layer for remote analysis providers.

All remote providers raise errors from the hierarchy defined here, so the
orchestration service can react to a failure by kind (rate limit, timeout,
malformed response, ...) without knowing which provider produced it.

The module provides:
- Typed exceptions for predictable error handling
- ``HTTPTransport``, a thin async wrapper over ``httpx`` that applies bearer
  authentication and maps HTTP status codes onto the exception hierarchy
- ``extract_json`` for pulling a JSON document out of chatty model output

Security Rules:
- NEVER log API keys (ever, in any form)
- NEVER log full prompts or transcripts (they contain personal memories)
"""

from __future__ import annotations

import json
import re
from typing import Any

import httpx

from memory_vault.utils.logging import get_logger

logger = get_logger(__name__)


# =============================================================================
# Exception Hierarchy
# =============================================================================


class AIClientError(Exception):
    """Base exception for all AI provider errors.

    Attributes:
        message: Human-readable error description (safe to log).
        retriable: Whether the operation can be retried.
        details: Additional error context (may contain sensitive data, don't log).
        original_error: The underlying exception that caused this error.
    """

    def __init__(
        self,
        message: str,
        retriable: bool = False,
        details: dict[str, Any] | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.retriable = retriable
        self.details = details or {}
        self.original_error = original_error

    def __str__(self) -> str:
        return self.message


class AIAuthError(AIClientError):
    """API key is invalid or expired. Never retriable."""

    def __init__(
        self,
        message: str = "API authentication failed. Please check your API key.",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, retriable=False, original_error=original_error)


class AIRateLimitError(AIClientError):
    """The provider is throttling the caller.

    The orchestration service never retries immediately after this error.

    Attributes:
        retry_after_seconds: Suggested wait time, if the provider sent one.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded. Please wait a moment and try again.",
        retry_after_seconds: float | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, retriable=False, original_error=original_error)
        self.retry_after_seconds = retry_after_seconds


class AIServerError(AIClientError):
    """Server-side error (5xx). Retriable.

    Attributes:
        status_code: HTTP status code if available.
    """

    def __init__(
        self,
        message: str = "AI server error. The service may be temporarily unavailable.",
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, retriable=True, original_error=original_error)
        self.status_code = status_code


class AIBadRequestError(AIClientError):
    """Invalid request (4xx other than auth and rate limit). Not retriable.

    Attributes:
        status_code: HTTP status code if available.
    """

    def __init__(
        self,
        message: str = "Invalid request to AI service.",
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, retriable=False, original_error=original_error)
        self.status_code = status_code


class AITimeoutError(AIClientError):
    """Request timed out. Retriable.

    Attributes:
        timeout_seconds: The timeout duration that was exceeded.
    """

    def __init__(
        self,
        timeout_seconds: float,
        message: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        msg = message or f"Request timed out after {timeout_seconds} seconds"
        super().__init__(msg, retriable=True, original_error=original_error)
        self.timeout_seconds = timeout_seconds


class AIMalformedResponseError(AIClientError):
    """The provider answered, but the payload could not be parsed or validated.

    Treated like a transient failure.
    """

    def __init__(
        self,
        message: str = "Malformed response from AI provider.",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, retriable=True, original_error=original_error)


class AIUnsupportedOperationError(AIClientError):
    """The provider does not declare the requested capability."""

    def __init__(self, provider_name: str, operation: str) -> None:
        super().__init__(
            f"{provider_name} does not support {operation}",
            retriable=False,
        )
        self.provider_name = provider_name
        self.operation = operation


# =============================================================================
# JSON Extraction
# =============================================================================


_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def extract_json(text: str | None) -> dict[str, Any]:
    """Extract a JSON object from model output that may contain extra text.

    Handles markdown code fences and leading/trailing prose.

    Raises:
        AIMalformedResponseError: If no JSON object can be parsed.
    """
    if not text or not text.strip():
        raise AIMalformedResponseError("Empty response from AI provider")

    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]

    match = _JSON_OBJECT_RE.search(cleaned)
    if not match:
        raise AIMalformedResponseError("No JSON object found in AI response")

    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise AIMalformedResponseError(f"Failed to parse JSON response: {e}", original_error=e)

    if not isinstance(data, dict):
        raise AIMalformedResponseError("Expected a JSON object in AI response")
    return data


# =============================================================================
# HTTP Transport
# =============================================================================


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def raise_for_status(response: httpx.Response, provider_name: str) -> None:
    """Map an unsuccessful HTTP response onto the exception hierarchy.

    Raises:
        AIRateLimitError: 429.
        AIAuthError: 401 / 403.
        AIServerError: 5xx.
        AIBadRequestError: Any other non-2xx status.
    """
    status = response.status_code
    if status < 400:
        return

    if status == 429:
        raise AIRateLimitError(retry_after_seconds=_retry_after(response))
    if status in (401, 403):
        raise AIAuthError(f"{provider_name} rejected the API key ({status})")
    if status >= 500:
        raise AIServerError(
            f"{provider_name} API error: {status} - {response.reason_phrase}",
            status_code=status,
        )
    raise AIBadRequestError(
        f"{provider_name} API error: {status} - {response.reason_phrase}",
        status_code=status,
    )


class HTTPTransport:
    """Async HTTP transport shared by the REST-based providers.

    Wraps one ``httpx.AsyncClient`` with bearer authentication and translates
    transport failures into ``AIClientError`` subclasses. A client passed in by
    the caller stays open on ``aclose()``; only a client created here is closed.

    Attributes:
        provider_name: Display name used in error messages.
        base_url: Root URL of the provider API.
    """

    def __init__(
        self,
        provider_name: str,
        base_url: str,
        api_key: str,
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.provider_name = provider_name
        self.base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._headers = {"Authorization": f"Bearer {api_key}"}

    async def post(
        self,
        path: str,
        *,
        json_body: Any = None,
        content: bytes | None = None,
        files: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """POST to ``base_url + path`` and return a successful response.

        Raises:
            AIClientError: Mapped from HTTP status or transport failure.
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        request_headers = {**self._headers, **(headers or {})}

        try:
            response = await self._client.post(
                url,
                json=json_body,
                content=content,
                files=files,
                data=data,
                headers=request_headers,
            )
        except httpx.TimeoutException as e:
            raise AITimeoutError(self._timeout_seconds, original_error=e)
        except httpx.HTTPError as e:
            raise AIServerError(
                f"{self.provider_name} request failed: {e.__class__.__name__}",
                original_error=e,
            )

        if response.status_code >= 400:
            logger.debug(
                f"{self.provider_name} returned {response.status_code} for {path}"
            )
        raise_for_status(response, self.provider_name)
        return response

    async def post_json(self, path: str, payload: Any) -> Any:
        """POST a JSON payload and decode the JSON response.

        Raises:
            AIMalformedResponseError: If the body is not valid JSON.
        """
        response = await self.post(path, json_body=payload)
        try:
            return response.json()
        except ValueError as e:
            raise AIMalformedResponseError(
                f"{self.provider_name} returned invalid JSON", original_error=e
            )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
