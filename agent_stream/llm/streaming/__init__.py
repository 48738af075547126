"""
Streaming functionality for LLM completions.

This module contains:
- Chunk models and completion statuses
- The bounded completion channel
- The stream poller
- The streamed completion handler
"""

from __future__ import annotations

from .channel import (
    CompletionStreamReceiver,
    CompletionStreamSender,
    create_completion_channel,
)
from .handler import HandlerState, StreamedCompletionHandler
from .models import (
    CompletionStreamStatus,
    DecodeErrorPolicy,
    Finished,
    StreamChoice,
    StreamDelta,
    StreamResponse,
    Working,
)
from .poller import CompletionStream, poll_stream_for_tokens

__all__ = [
    "CompletionStream",
    "CompletionStreamReceiver",
    "CompletionStreamSender",
    "CompletionStreamStatus",
    "DecodeErrorPolicy",
    "Finished",
    "HandlerState",
    "StreamChoice",
    "StreamDelta",
    "StreamResponse",
    "StreamedCompletionHandler",
    "Working",
    "create_completion_channel",
    "poll_stream_for_tokens",
]
