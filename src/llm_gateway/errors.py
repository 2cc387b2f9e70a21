"""Package specific exception hierarchy.

Every error carries a short ``kind`` string. Streaming calls report failures as
an ``ErrorEvent`` with the same ``kind`` and message the blocking call raises.
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base exception for the llm_gateway package."""

    kind = "gateway"


class UnsupportedProviderError(GatewayError):
    """Raised when a provider type has not been registered."""

    kind = "unsupported"

    def __init__(self, provider: str) -> None:
        super().__init__(f"Provider '{provider}' is not available.")
        self.provider = provider


class UnsupportedOperationError(GatewayError):
    """Raised before any network call when a provider lacks a capability."""

    kind = "unsupported"

    def __init__(self, provider: str, operation: str) -> None:
        super().__init__(f"{provider}: operation '{operation}' is not supported.")
        self.provider = provider
        self.operation = operation


class MalformedFrameError(GatewayError):
    """A single stream frame could not be parsed. Never fatal to a stream."""

    kind = "malformed_frame"

    def __init__(self, frame: str, reason: str) -> None:
        super().__init__(f"Malformed frame ({reason}): {frame[:200]!r}")
        self.frame = frame


class ProviderError(GatewayError):
    """Represents provider-specific HTTP, network or API errors."""

    kind = "api"

    def __init__(self, provider: str, message: str, status_code: int | None = None) -> None:
        suffix = f" (status {status_code})" if status_code is not None else ""
        super().__init__(f"{provider}: {message}{suffix}")
        self.provider = provider
        self.message = message
        self.status_code = status_code


class AuthError(ProviderError):
    """Invalid or missing credentials (HTTP 401)."""

    kind = "auth"


class RateLimitedError(ProviderError):
    """Upstream rate limit hit (HTTP 429)."""

    kind = "rate_limited"


class NotFoundError(ProviderError):
    """Unknown model or endpoint (HTTP 404)."""

    kind = "not_found"


class UpstreamApiError(ProviderError):
    """Any other non-2xx answer, carrying the upstream message."""

    kind = "api"


class RequestTimeoutError(ProviderError):
    """The request did not complete within its timeout."""

    kind = "timeout"


class NetworkError(ProviderError):
    """Connection-level failure (refused, reset, DNS...)."""

    kind = "network"


class StreamAbortedError(ProviderError):
    """The stream was read after the consumer or transport closed it."""

    kind = "stream_aborted"


class ToolLoopExceededError(GatewayError):
    """The model kept requesting tools past the iteration limit."""

    kind = "tool_loop"

    def __init__(self, max_iterations: int) -> None:
        super().__init__(f"Maximum tool execution iterations ({max_iterations}) exceeded")
        self.max_iterations = max_iterations


class StructuredOutputError(GatewayError):
    """The model answer could not be decoded as JSON."""

    kind = "structured_output"


_ERRORS_BY_KIND: dict[str, type[ProviderError]] = {
    cls.kind: cls
    for cls in (AuthError, RateLimitedError, NotFoundError, UpstreamApiError, RequestTimeoutError, NetworkError, StreamAbortedError)
}


def error_for_kind(kind: str, provider: str, message: str, status_code: int | None = None) -> ProviderError:
    """Rebuild the typed error an ``ErrorEvent`` stands for."""
    cls = _ERRORS_BY_KIND.get(kind, UpstreamApiError)
    return cls(provider, message, status_code=status_code)
