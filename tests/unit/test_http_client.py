# ABOUTME: Unit tests for the async HTTP client abstraction.
# ABOUTME: Tests the HttpClient protocol, BibliomergeHttpClient spacing, retries, cancellation and errors.

import asyncio
import time

import httpx
import pytest

from bibliomerge.metadata.http import (
    BibliomergeHttpClient,
    HttpClient,
    MetadataFetchError,
)


class FakeTransport(httpx.AsyncBaseTransport):
    """Fake async transport for httpx that returns canned responses."""

    def __init__(self, responses: list[httpx.Response] | None = None) -> None:
        self._responses = list(responses or [])
        self.requests: list[httpx.Request] = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self._responses:
            return self._responses.pop(0)
        return httpx.Response(200, json={"ok": True})

    @property
    def call_count(self) -> int:
        return len(self.requests)


def _client(transport: httpx.AsyncBaseTransport, **kwargs: float) -> BibliomergeHttpClient:
    kwargs.setdefault("min_request_interval", 0.0)
    kwargs.setdefault("retry_delay", 0.0)
    return BibliomergeHttpClient(transport=transport, **kwargs)


class TestHttpClientProtocol:
    """Tests for HttpClient protocol compliance."""

    def test_client_satisfies_protocol(self) -> None:
        """BibliomergeHttpClient satisfies the HttpClient protocol."""
        assert isinstance(_client(FakeTransport()), HttpClient)


class TestBibliomergeHttpClient:
    """Tests for BibliomergeHttpClient."""

    async def test_get_returns_json(self) -> None:
        """GET request returns the parsed JSON body and sends the params."""
        transport = FakeTransport()
        async with _client(transport) as client:
            result = await client.get("https://example.com/api", params={"q": "test"})
        assert result == {"ok": True}
        assert transport.requests[0].url.params["q"] == "test"

    async def test_user_agent_header(self) -> None:
        """Requests carry the bibliomerge User-Agent header."""
        transport = FakeTransport()
        async with _client(transport) as client:
            await client.get("https://example.com/api")
        assert transport.requests[0].headers["user-agent"].startswith("bibliomerge/")

    async def test_requests_are_spaced(self) -> None:
        """Consecutive requests are delayed by min_request_interval."""
        transport = FakeTransport()
        interval = 0.15
        async with _client(transport, min_request_interval=interval) as client:
            start = time.monotonic()
            await client.get("https://example.com/1")
            await client.get("https://example.com/2")
            elapsed = time.monotonic() - start

        assert elapsed >= interval
        assert transport.call_count == 2

    async def test_http_error_raises_metadata_fetch_error(self) -> None:
        """Non-retryable HTTP errors raise MetadataFetchError without retrying."""
        transport = FakeTransport([httpx.Response(404, json={"error": "not found"})])
        async with _client(transport) as client:
            with pytest.raises(MetadataFetchError, match="404") as exc_info:
                await client.get("https://example.com/missing")
        assert exc_info.value.status_code == 404
        assert transport.call_count == 1

    async def test_retries_transient_errors(self) -> None:
        """429 and 5xx responses are retried until one succeeds."""
        transport = FakeTransport(
            [httpx.Response(429), httpx.Response(503), httpx.Response(200, json={"done": 1})]
        )
        async with _client(transport, max_retries=3) as client:
            result = await client.get("https://example.com/flaky")
        assert result == {"done": 1}
        assert transport.call_count == 3

    async def test_retries_exhausted(self) -> None:
        """A persistent transient error fails after every attempt is used."""
        transport = FakeTransport([httpx.Response(500) for _ in range(3)])
        async with _client(transport, max_retries=2) as client:
            with pytest.raises(MetadataFetchError, match="after 3 attempts"):
                await client.get("https://example.com/down")
        assert transport.call_count == 3

    async def test_invalid_json(self) -> None:
        """A 200 response with a non-JSON body is a fetch error."""
        transport = FakeTransport([httpx.Response(200, text="<html>")])
        async with _client(transport) as client:
            with pytest.raises(MetadataFetchError, match="Invalid JSON"):
                await client.get("https://example.com/html")

    async def test_network_error(self) -> None:
        """Transport failures are wrapped in MetadataFetchError."""

        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(httpx.MockTransport(refuse)) as client:
            with pytest.raises(MetadataFetchError, match="Request failed"):
                await client.get("https://example.com/api")

    async def test_cancelled_before_request(self) -> None:
        """A set cancel event stops the request before it is sent."""
        transport = FakeTransport()
        cancel = asyncio.Event()
        cancel.set()
        async with _client(transport) as client:
            with pytest.raises(MetadataFetchError, match="cancelled"):
                await client.get("https://example.com/api", cancel=cancel)
        assert transport.call_count == 0
