"""
Pull text deltas out of a decoded chunk stream.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import structlog

from ..exceptions import ChunkDecodeError, classify_provider_error
from .models import DecodeErrorPolicy, StreamResponse

CompletionStream = AsyncIterator[StreamResponse | ChunkDecodeError]

logger = structlog.get_logger(__name__)


async def poll_stream_for_tokens(
    stream: CompletionStream,
    decode_error_policy: DecodeErrorPolicy = DecodeErrorPolicy.SKIP,
    *,
    provider: str = "unknown",
) -> str | None:
    """
    Return the text of the next decoded chunk, or ``None`` once the stream
    is exhausted.

    A chunk carrying a provider error payload raises the classified
    provider error. Undecodable items are skipped or raised depending on
    ``decode_error_policy``. ``provider`` labels raised provider errors.
    """
    async for item in stream:
        if isinstance(item, ChunkDecodeError):
            if decode_error_policy is DecodeErrorPolicy.TERMINATE:
                raise item
            logger.warning(
                "Skipping undecodable stream chunk",
                error_message=str(item),
                raw_data=item.raw_data[:200],
            )
            continue

        if item.error is not None:
            raise classify_provider_error(
                item.error, provider=provider, model=item.model or "unknown"
            )

        return item.parse()

    return None
