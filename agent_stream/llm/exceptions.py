"""
Error taxonomy for streamed LLM completions.

Two families live here:
- Provider errors, reported by the remote service inside a decoded chunk.
  ``RecoverableProviderError`` subclasses mean "poll the stream again",
  everything else is terminal.
- Stream errors, produced by this package while moving chunks from the
  background task to the consumer.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:                                        # pragma: no cover
    from .streaming.models import ProviderErrorPayload


class LLMError(Exception):
    """Base LLM error with rich context."""

    def __init__(
        self,
        message: str,
        provider: str = "unknown",
        model: str = "unknown",
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.model = model
        self.status_code = status_code
        self.response_data = response_data or {}


class ProviderError(LLMError):
    """Provider reported a logical error that ends the stream."""
    pass


class RecoverableProviderError(ProviderError):
    """Provider error after which the stream may simply be polled again."""
    pass


class RateLimitError(RecoverableProviderError):
    """Rate limit error with retry information."""

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class ProviderOverloadedError(RecoverableProviderError):
    """Provider is temporarily overloaded."""
    pass


class StreamError(LLMError):
    """Streaming-specific errors."""
    pass


class RetryableStreamError(StreamError):
    """A recoverable provider error observed by the background task."""

    def __init__(self, cause: BaseException):
        super().__init__(f"Retryable stream error: {cause}")
        self.cause = cause


class TerminalStreamError(StreamError):
    """An error that ended the background task before ``Finished``."""

    def __init__(self, cause: BaseException):
        super().__init__(f"Terminal stream error: {cause}")
        self.cause = cause


class ChunkDecodeError(StreamError):
    """A raw stream line could not be decoded into a chunk."""

    def __init__(self, message: str, raw_data: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.raw_data = raw_data


class ChannelClosedError(StreamError):
    """The other end of the completion channel is gone."""
    pass


RATE_LIMIT_CODES = frozenset({"rate_limit_exceeded", "rate_limit_error"})
OVERLOADED_CODES = frozenset({
    "overloaded_error", "server_overloaded", "server_error",
    "service_unavailable",
})


def classify_provider_error(
    payload: ProviderErrorPayload,
    provider: str = "unknown",
    model: str = "unknown",
) -> ProviderError:
    """Map an in-stream error payload onto the provider error taxonomy."""
    markers = {str(v) for v in (payload.code, payload.type) if v is not None}
    message = payload.message or "Provider reported an error"
    response_data = payload.model_dump(exclude_none=True)

    if markers & RATE_LIMIT_CODES:
        return RateLimitError(
            message, provider=provider, model=model, response_data=response_data
        )
    if markers & OVERLOADED_CODES:
        return ProviderOverloadedError(
            message, provider=provider, model=model, response_data=response_data
        )
    return ProviderError(
        message, provider=provider, model=model, response_data=response_data
    )
