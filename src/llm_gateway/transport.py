"""HTTP transport shared by all providers.

Buffered calls are retried on 5xx answers and network failures. Streaming
calls are never retried because a partially consumed body cannot be replayed.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from llm_gateway.errors import (
    AuthError,
    NetworkError,
    NotFoundError,
    ProviderError,
    RateLimitedError,
    RequestTimeoutError,
    StreamAbortedError,
    UpstreamApiError,
)
from llm_gateway.types import ProviderConfig

logger = logging.getLogger(__name__)

_STATUS_ERRORS: dict[int, tuple[type[ProviderError], str]] = {
    401: (AuthError, "Invalid API key or authentication failed."),
    404: (NotFoundError, "Model not found or endpoint does not exist."),
    429: (RateLimitedError, "Rate limit exceeded. Please try again later."),
}


def extract_error_message(response: httpx.Response) -> str:
    """Best-effort upstream error message from a read, non-2xx response."""
    fallback = f"HTTP {response.status_code}: {response.reason_phrase}"
    try:
        data = json.loads(response.content)
    except ValueError:
        text = response.text.strip()
        return text[:500] or fallback
    if not isinstance(data, dict):
        return fallback
    for key in ("error", "message", "detail"):
        value = data.get(key)
        if isinstance(value, str) and value:
            return value
        if isinstance(value, dict) and isinstance(value.get("message"), str):
            return value["message"]
    return fallback


def classify_response(provider: str, response: httpx.Response) -> ProviderError:
    """Map a non-2xx response to a typed error."""
    status = response.status_code
    detail = extract_error_message(response)
    if status in _STATUS_ERRORS:
        cls, message = _STATUS_ERRORS[status]
        if detail and not detail.startswith("HTTP "):
            message = f"{message} {detail}"
        return cls(provider, message, status_code=status)
    return UpstreamApiError(provider, detail, status_code=status)


class StreamingResponse:
    """Thin wrapper over an open streaming :class:`httpx.Response`."""

    def __init__(self, provider: str, response: httpx.Response) -> None:
        self._provider = provider
        self._response = response

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self._response.headers

    @property
    def is_closed(self) -> bool:
        return self._response.is_closed

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                yield chunk
        except (httpx.StreamClosed, httpx.StreamConsumed) as exc:
            raise StreamAbortedError(self._provider, "stream closed before it was fully read") from exc
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError(self._provider, f"stream read timed out: {exc}") from exc
        except httpx.DecodingError as exc:
            raise UpstreamApiError(self._provider, f"stream body could not be decoded: {exc}") from exc
        except httpx.RequestError as exc:
            raise NetworkError(self._provider, f"stream interrupted: {exc}") from exc


class HttpTransport:
    """Async HTTP client with auth headers, timeouts and fixed-delay retries."""

    def __init__(
        self,
        config: ProviderConfig,
        *,
        default_base_url: str,
        default_headers: dict[str, str] | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.provider = config.type
        self.timeout_s = config.timeout_ms / 1000
        self.retries = max(1, config.retries)
        self.retry_delay_s = max(0, config.retry_delay_ms) / 1000
        self.base_url = (config.base_url or default_base_url).rstrip("/")
        self._headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            **(default_headers or {}),
            **config.extra_headers,
        }
        if config.api_key:
            self._headers["Authorization"] = f"Bearer {config.api_key}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers,
            timeout=self.timeout_s,
            transport=http_transport,
        )

    @property
    def has_credentials(self) -> bool:
        return "Authorization" in self._headers

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def send(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        timeout_ms: int | None = None,
        retries: int | None = None,
    ) -> Any:
        """Issue a buffered request and return the decoded JSON body."""
        timeout_s = self.timeout_s if timeout_ms is None else timeout_ms / 1000
        attempts = self.retries if retries is None else max(1, retries)
        clean_params = {k: v for k, v in (params or {}).items() if v is not None} or None

        attempt = 0

        while True:
            attempt += 1
            error: ProviderError
            try:
                response = await asyncio.wait_for(
                    self._client.request(method, path, json=json, params=clean_params, timeout=timeout_s),
                    timeout=timeout_s,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
                error = RequestTimeoutError(self.provider, f"{method} {path} timed out after {timeout_s:.1f}s")
                if attempt >= attempts:
                    raise error from exc
            except httpx.DecodingError as exc:
                raise UpstreamApiError(self.provider, f"{method} {path} body could not be decoded: {exc}") from exc
            except httpx.RequestError as exc:
                error = NetworkError(self.provider, f"{method} {path} failed: {exc}")
                if attempt >= attempts:
                    raise error from exc
            else:
                if response.status_code < 400:
                    return self._json(response)
                error = classify_response(self.provider, response)
                if response.status_code < 500 or attempt >= attempts:
                    raise error

            logger.warning(
                "%s %s %s failed (%s, attempt %d/%d), retrying in %.1fs",
                self.provider, method, path, error.kind, attempt, attempts, self.retry_delay_s,
            )
            await asyncio.sleep(self.retry_delay_s)

    @asynccontextmanager
    async def stream(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        timeout_ms: int | None = None,
        accept: str = "text/event-stream",
    ) -> AsyncIterator[StreamingResponse]:
        """Open a streaming request. The connection is closed when the block exits.

        ``timeout_ms`` bounds the wait for the response headers only.
        """
        timeout_s = self.timeout_s if timeout_ms is None else timeout_ms / 1000
        request = self._client.build_request(
            method,
            path,
            json=json,
            headers={"Accept": accept, "Cache-Control": "no-cache"},
            timeout=httpx.Timeout(timeout_s, read=None),
        )
        try:
            response = await asyncio.wait_for(self._client.send(request, stream=True), timeout=timeout_s)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise RequestTimeoutError(
                self.provider, f"{method} {path} gave no response within {timeout_s:.1f}s"
            ) from exc
        except httpx.RequestError as exc:
            raise NetworkError(self.provider, f"{method} {path} failed: {exc}") from exc

        try:
            if response.status_code >= 400:
                try:
                    await response.aread()
                except httpx.RequestError as exc:
                    raise UpstreamApiError(
                        self.provider, f"HTTP {response.status_code}: error body unreadable ({exc})",
                        status_code=response.status_code,
                    ) from exc
                raise classify_response(self.provider, response)
            yield StreamingResponse(self.provider, response)
        finally:
            await response.aclose()

    def _json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamApiError(
                self.provider, f"response is not valid JSON: {response.text[:200]!r}", status_code=response.status_code
            ) from exc
