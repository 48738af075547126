"""
Bounded single-producer/single-consumer channel between the background
streaming task and the consumer.

Either end may be closed. Closing the sender lets the receiver drain what is
buffered and then report end-of-channel (``None``). Closing the receiver
makes every subsequent ``send`` raise ``ChannelClosedError``, including a
``send`` already suspended on a full queue.
"""

from __future__ import annotations

import asyncio
import contextlib

from ..exceptions import ChannelClosedError, StreamError
from .models import CompletionStreamStatus

ChannelItem = CompletionStreamStatus | StreamError

DEFAULT_CHANNEL_CAPACITY = 100

_CLOSED = object()


class _ChannelState:
    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("channel capacity must be at least 1")
        self.queue: asyncio.Queue[object] = asyncio.Queue(maxsize=capacity)
        self.sender_closed = False
        self.receiver_closed = False


class CompletionStreamSender:
    """Producer end of the completion channel."""

    def __init__(self, state: _ChannelState):
        self._state = state

    async def send(self, item: ChannelItem) -> None:
        """Enqueue ``item``, waiting while the channel is full."""
        if self._state.receiver_closed:
            raise ChannelClosedError("Completion channel receiver is closed")
        if self._state.sender_closed:
            raise ChannelClosedError("Completion channel sender is closed")

        await self._state.queue.put(item)

        # The receiver may have been closed while we were waiting for room
        if self._state.receiver_closed:
            raise ChannelClosedError("Completion channel receiver is closed")

    def close(self) -> None:
        if self._state.sender_closed:
            return
        self._state.sender_closed = True
        # Wakes a receiver parked on an empty queue; a full queue needs no wakeup
        with contextlib.suppress(asyncio.QueueFull):
            self._state.queue.put_nowait(_CLOSED)


class CompletionStreamReceiver:
    """Consumer end of the completion channel."""

    def __init__(self, state: _ChannelState):
        self._state = state

    def qsize(self) -> int:
        return self._state.queue.qsize()

    async def recv(self) -> ChannelItem | None:
        """
        Wait for the next item.

        Returns ``None`` once the sender is closed and the buffer is drained,
        or when this receiver has been closed. Cancelling a pending ``recv``
        never loses an item.
        """
        state = self._state
        if state.receiver_closed:
            return None
        if state.sender_closed and state.queue.empty():
            return None

        item = await state.queue.get()
        if item is _CLOSED:
            return None
        return item  # type: ignore[return-value]

    def close(self) -> None:
        """Drop the receiving end and release a producer blocked on a full queue."""
        if self._state.receiver_closed:
            return
        self._state.receiver_closed = True
        while True:
            try:
                self._state.queue.get_nowait()
            except asyncio.QueueEmpty:
                break


def create_completion_channel(
    capacity: int = DEFAULT_CHANNEL_CAPACITY,
) -> tuple[CompletionStreamSender, CompletionStreamReceiver]:
    """Create a connected (sender, receiver) pair with the given capacity."""
    state = _ChannelState(capacity)
    return CompletionStreamSender(state), CompletionStreamReceiver(state)
