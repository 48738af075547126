"""
LLM integration for streamed completions.

This package provides:
- Provider configuration and chat message models
- The provider and stream error taxonomy
- An httpx client that opens streamed completions (``llm.client``)
- The streamed completion handler (``llm.streaming``)
"""

from __future__ import annotations

from .exceptions import (
    ChannelClosedError,
    ChunkDecodeError,
    LLMError,
    ProviderError,
    ProviderOverloadedError,
    RateLimitError,
    RecoverableProviderError,
    RetryableStreamError,
    StreamError,
    TerminalStreamError,
)
from .models import Message, MessageRole, ProviderConfig, ProviderType

__all__ = [
    "ChannelClosedError",
    "ChunkDecodeError",
    # Exceptions
    "LLMError",
    # Models
    "Message",
    "MessageRole",
    "ProviderConfig",
    "ProviderError",
    "ProviderOverloadedError",
    "ProviderType",
    "RateLimitError",
    "RecoverableProviderError",
    "RetryableStreamError",
    "StreamError",
    "TerminalStreamError",
]
