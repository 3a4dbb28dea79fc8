"""Tests for the shared client layer: errors, JSON extraction, HTTP transport."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from memory_vault.ai.client import (
    AIAuthError,
    AIBadRequestError,
    AIMalformedResponseError,
    AIRateLimitError,
    AIServerError,
    AITimeoutError,
    HTTPTransport,
    extract_json,
    raise_for_status,
)


# =============================================================================
# Exceptions
# =============================================================================


class TestExceptions:
    def test_retriable_flags(self) -> None:
        assert AIServerError().retriable is True
        assert AITimeoutError(15).retriable is True
        assert AIMalformedResponseError().retriable is True
        assert AIRateLimitError().retriable is False
        assert AIAuthError().retriable is False
        assert AIBadRequestError().retriable is False

    def test_timeout_message(self) -> None:
        assert "15" in str(AITimeoutError(15))


# =============================================================================
# JSON Extraction
# =============================================================================


class TestExtractJson:
    def test_plain_object(self) -> None:
        assert extract_json('{"mood": "happy"}') == {"mood": "happy"}

    def test_code_fence(self) -> None:
        assert extract_json('```json\n{"mood": "sad"}\n```') == {"mood": "sad"}

    def test_surrounding_prose(self) -> None:
        text = 'Sure! Here is the analysis: {"sentiment": "positive"} Hope it helps.'

        assert extract_json(text) == {"sentiment": "positive"}

    @pytest.mark.parametrize("text", [None, "", "   ", "no json here", "{broken", "[1, 2]"])
    def test_malformed(self, text) -> None:
        with pytest.raises(AIMalformedResponseError):
            extract_json(text)


# =============================================================================
# Status Mapping
# =============================================================================


class TestRaiseForStatus:
    def test_success_passes(self) -> None:
        raise_for_status(httpx.Response(200), "Groq")

    def test_rate_limit_with_retry_after(self) -> None:
        response = httpx.Response(429, headers={"retry-after": "3"})

        with pytest.raises(AIRateLimitError) as exc_info:
            raise_for_status(response, "Groq")

        assert exc_info.value.retry_after_seconds == 3.0

    @pytest.mark.parametrize(
        "status,error_type",
        [(401, AIAuthError), (403, AIAuthError), (503, AIServerError), (422, AIBadRequestError)],
    )
    def test_status_mapping(self, status: int, error_type: type) -> None:
        with pytest.raises(error_type):
            raise_for_status(httpx.Response(status), "Groq")


# =============================================================================
# HTTP Transport
# =============================================================================


class TestHTTPTransport:
    def _transport(self, handler) -> HTTPTransport:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return HTTPTransport("Test", "https://api.example.com/v1/", "secret-key-123456", client=client)

    def test_post_json_sends_bearer(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            return httpx.Response(200, json={"ok": True})

        transport = self._transport(handler)

        async def scenario():
            try:
                return await transport.post_json("/echo", {"inputs": "x"})
            finally:
                await transport.aclose()

        assert asyncio.run(scenario()) == {"ok": True}
        assert seen["url"] == "https://api.example.com/v1/echo"
        assert seen["auth"] == "Bearer secret-key-123456"

    def test_timeout_maps_to_timeout_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        transport = self._transport(handler)

        with pytest.raises(AITimeoutError):
            asyncio.run(transport.post_json("/slow", {}))

    def test_connection_error_maps_to_server_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        transport = self._transport(handler)

        with pytest.raises(AIServerError):
            asyncio.run(transport.post_json("/down", {}))

    def test_invalid_json_body(self) -> None:
        transport = self._transport(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(AIMalformedResponseError):
            asyncio.run(transport.post_json("/html", {}))

    def test_aclose_leaves_injected_client_open(self) -> None:
        transport = self._transport(lambda request: httpx.Response(200, json={}))

        asyncio.run(transport.aclose())

        assert transport._client.is_closed is False

    def test_aclose_closes_own_client(self) -> None:
        transport = HTTPTransport("Test", "https://api.example.com", "secret-key-123456")

        asyncio.run(transport.aclose())

        assert transport._client.is_closed is True

