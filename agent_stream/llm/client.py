"""
HTTP client that opens streamed chat completions.

The client performs the request, fails fast on a bad status or a
non-streaming response, and hands back a ``StreamedCompletionHandler``
wrapping the decoded SSE chunk stream.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING, Any

import httpx
import structlog
from pydantic import ValidationError

from agent_stream.logging_utils import log_operation

from .exceptions import ChunkDecodeError, ProviderError, RateLimitError
from .models import Message, ProviderConfig
from .streaming.channel import DEFAULT_CHANNEL_CAPACITY
from .streaming.handler import DEFAULT_RECEIVE_TIMEOUT, StreamedCompletionHandler
from .streaming.models import DecodeErrorPolicy, StreamResponse

if TYPE_CHECKING:                                        # pragma: no cover
    from agent_stream.config import Configuration

logger = structlog.get_logger(__name__)

HTTP_OK = 200
HTTP_TOO_MANY_REQUESTS = 429
STREAMING_CONTENT_TYPES = ("text/event-stream", "stream")


def parse_retry_after(value: str | None) -> float | None:
    """
    Seconds to wait from a ``Retry-After`` header.

    Accepts delay-seconds or an HTTP-date; a date in the past gives 0.0
    and anything unparseable gives ``None``.
    """
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    return max((when - datetime.now(UTC)).total_seconds(), 0.0)


class StreamingLLMClient:
    """HTTP client for streamed chat completions."""

    def __init__(
        self,
        provider_config: ProviderConfig,
        streaming_config: dict[str, Any] | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        streaming_config = streaming_config or {}
        self.provider_config = provider_config
        self.receive_timeout: float = streaming_config.get(
            "receive_timeout", DEFAULT_RECEIVE_TIMEOUT
        )
        self.channel_capacity: int = streaming_config.get(
            "channel_capacity", DEFAULT_CHANNEL_CAPACITY
        )
        self.decode_error_policy = DecodeErrorPolicy(
            streaming_config.get("decode_error_policy", DecodeErrorPolicy.SKIP.value)
        )

        self.client: httpx.AsyncClient = httpx.AsyncClient(
            base_url=provider_config.base_url,
            headers={"Authorization": f"Bearer {provider_config.api_key}"},
            timeout=httpx.Timeout(
                connect=provider_config.connect_timeout,
                read=provider_config.read_timeout,
                write=provider_config.write_timeout,
                pool=provider_config.pool_timeout,
            ),
            transport=transport,
        )

    @classmethod
    def from_configuration(
        cls,
        configuration: Configuration,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> StreamingLLMClient:
        """Build a client for the active provider in ``configuration``."""
        provider_config = ProviderConfig.from_dict(
            configuration.get_llm_config(), configuration.llm_api_key
        )
        return cls(
            provider_config,
            configuration.get_streaming_config(),
            transport=transport,
        )

    def build_payload(self, messages: list[Message | dict[str, Any]]) -> dict[str, Any]:
        config = self.provider_config
        return {
            "model": config.model,
            "messages": [
                m.to_api() if isinstance(m, Message) else m for m in messages
            ],
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
            "top_p": config.top_p,
            "stream": True,
        }

    @log_operation("open_completion")
    async def open_completion(
        self, messages: list[Message | dict[str, Any]]
    ) -> StreamedCompletionHandler:
        """
        Start a streamed completion and return its handler.

        Raises:
            RateLimitError: If the provider answers 429.
            ProviderError: On any other non-200 status, an unexpected
                content-type or an HTTP failure before streaming starts.
        """
        config = self.provider_config
        request = self.client.build_request(
            "POST", "/chat/completions", json=self.build_payload(messages)
        )

        try:
            response = await self.client.send(request, stream=True)
        except httpx.HTTPError as e:
            logger.error("HTTP error opening completion stream", error_message=str(e))
            raise ProviderError(
                f"HTTP error: {e!s}",
                provider=config.provider.value,
                model=config.model,
            ) from e

        if response.status_code != HTTP_OK:
            error_text = (await response.aread()).decode(errors="replace")
            await response.aclose()
            if response.status_code == HTTP_TOO_MANY_REQUESTS:
                raise RateLimitError(
                    f"Rate limited: {error_text}",
                    retry_after=parse_retry_after(response.headers.get("retry-after")),
                    provider=config.provider.value,
                    model=config.model,
                    status_code=response.status_code,
                )
            raise ProviderError(
                f"Streaming API error {response.status_code}: {error_text}",
                provider=config.provider.value,
                model=config.model,
                status_code=response.status_code,
            )

        content_type = response.headers.get("content-type", "")
        if not any(t in content_type for t in STREAMING_CONTENT_TYPES):
            await response.aclose()
            raise ProviderError(
                f"Expected streaming response, got content-type: {content_type}",
                provider=config.provider.value,
                model=config.model,
                status_code=response.status_code,
            )

        logger.info(
            "Completion stream opened",
            provider=config.provider.value,
            model=config.model,
        )
        return StreamedCompletionHandler.from_stream(
            self._decode_stream(response),
            channel_capacity=self.channel_capacity,
            receive_timeout=self.receive_timeout,
            decode_error_policy=self.decode_error_policy,
            provider=config.provider.value,
        )

    async def _decode_stream(
        self, response: httpx.Response
    ) -> AsyncGenerator[StreamResponse | ChunkDecodeError]:
        """Decode SSE ``data:`` lines into chunks until ``[DONE]``."""
        provider = self.provider_config.provider.value
        model = self.provider_config.model
        try:
            async for line in response.aiter_lines():
                if not line.startswith("data:"):
                    continue  # blank separators, comments, event names

                data = line[5:].strip()
                if data == "[DONE]":
                    break
                if not data:
                    continue

                try:
                    yield StreamResponse.model_validate_json(data)
                except ValidationError as e:
                    yield ChunkDecodeError(
                        f"Invalid stream chunk: {e}",
                        raw_data=data,
                        provider=provider,
                        model=model,
                    )
        except httpx.HTTPError as e:
            yield ChunkDecodeError(
                f"Stream transport error: {e!s}", provider=provider, model=model
            )
        finally:
            await response.aclose()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> StreamingLLMClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
