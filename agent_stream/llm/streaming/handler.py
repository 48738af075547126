"""
Streamed completion handler.

Bridges a decoded chunk stream into a timeout-bounded ``receive`` call:
a background task polls the stream and pushes statuses over a bounded
channel, while the consumer side accumulates text and, once the provider
finishes, pushes the full assistant message to the agent's cache.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncGenerator
from enum import Enum

from agent_stream.dispatch import DispatchError, EnvMessageSender, EnvRequest
from agent_stream.llm.exceptions import (
    ChannelClosedError,
    RecoverableProviderError,
    RetryableStreamError,
    StreamError,
    TerminalStreamError,
)
from agent_stream.llm.models import Message
from agent_stream.logging_utils import ContextualLogger, StreamErrorHandler

from .channel import (
    DEFAULT_CHANNEL_CAPACITY,
    CompletionStreamReceiver,
    CompletionStreamSender,
    create_completion_channel,
)
from .models import CompletionStreamStatus, DecodeErrorPolicy, Finished, Working
from .poller import CompletionStream, poll_stream_for_tokens

DEFAULT_RECEIVE_TIMEOUT = 1.0


async def _close_stream(stream: CompletionStream) -> None:
    """Run the stream's cleanup, e.g. releasing the HTTP response."""
    aclose = getattr(stream, "aclose", None)
    if aclose is None:
        return
    with contextlib.suppress(Exception):
        await aclose()


class HandlerState(Enum):
    """Lifecycle of a streamed completion handler."""
    IDLE = "idle"
    STREAMING = "streaming"
    FINISHED = "finished"
    FAILED = "failed"
    CLOSED = "closed"


class StreamedCompletionHandler:
    """
    Drives one streamed completion from the consumer side.

    Best used in a loop::

        while not handler.is_done:
            status = await handler.receive(agent_id, env_sender)
            ...
    """

    def __init__(
        self,
        stream: CompletionStream,
        sender: CompletionStreamSender,
        receiver: CompletionStreamReceiver,
        *,
        receive_timeout: float = DEFAULT_RECEIVE_TIMEOUT,
        decode_error_policy: DecodeErrorPolicy = DecodeErrorPolicy.SKIP,
        provider: str = "unknown",
    ):
        if receive_timeout <= 0:
            raise ValueError("receive_timeout must be positive")

        # Taken together, exactly once, by _spawn()
        self._stream: CompletionStream | None = aiter(stream)
        self._sender: CompletionStreamSender | None = sender
        self._receiver = receiver

        self.receive_timeout = receive_timeout
        self.decode_error_policy = decode_error_policy
        self.provider = provider

        self._content_parts: list[str] = []
        self._task: asyncio.Task[None] | None = None
        self._spawn_count = 0
        self._notified = False
        self.state = HandlerState.IDLE
        self.last_error: BaseException | None = None
        self._log = ContextualLogger({"component": "streamed_completion"})

    @classmethod
    def from_stream(
        cls,
        stream: CompletionStream,
        *,
        channel_capacity: int = DEFAULT_CHANNEL_CAPACITY,
        receive_timeout: float = DEFAULT_RECEIVE_TIMEOUT,
        decode_error_policy: DecodeErrorPolicy = DecodeErrorPolicy.SKIP,
        provider: str = "unknown",
    ) -> StreamedCompletionHandler:
        """Build a handler around ``stream`` with a fresh channel."""
        sender, receiver = create_completion_channel(channel_capacity)
        return cls(
            stream,
            sender,
            receiver,
            receive_timeout=receive_timeout,
            decode_error_policy=decode_error_policy,
            provider=provider,
        )

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(state={self.state.value}, "
            f"spawned={self.spawned}, content_length={len(self.content)})"
        )

    @property
    def content(self) -> str:
        """All text received so far, in arrival order."""
        return "".join(self._content_parts)

    @property
    def spawned(self) -> bool:
        return self._stream is None and self._sender is None

    @property
    def spawn_count(self) -> int:
        return self._spawn_count

    @property
    def notified(self) -> bool:
        return self._notified

    @property
    def is_done(self) -> bool:
        return self.state in (
            HandlerState.FINISHED, HandlerState.FAILED, HandlerState.CLOSED
        )

    # ------------------------------------------------------------------ #
    # Consumer side                                                      #
    # ------------------------------------------------------------------ #

    async def receive(
        self, agent_id: str, sender: EnvMessageSender
    ) -> CompletionStreamStatus | None:
        """
        Return the next status, or ``None`` if nothing usable arrived.

        ``None`` covers a timeout, end of channel, a swallowed stream error
        and a failed cache push alike; ``state`` and ``last_error`` tell
        them apart. On ``Finished`` the full message is pushed to the
        agent's cache before ``Finished`` is returned.
        """
        if self.state is HandlerState.CLOSED:
            return None

        if not self.spawned:
            self._spawn()

        try:
            item = await asyncio.wait_for(
                self._receiver.recv(), timeout=self.receive_timeout
            )
        except TimeoutError:
            self._log.debug(
                "Receiver got nothing in time",
                agent_id=agent_id,
                timeout_s=self.receive_timeout,
            )
            return None

        if item is None:
            if self.state is HandlerState.STREAMING:
                # Producer went away without a terminal status
                self.state = HandlerState.FAILED
            return None

        if isinstance(item, Working):
            self._content_parts.append(item.token)
            return Working(item.token)

        if isinstance(item, Finished):
            return await self._finish(agent_id, sender)

        self._record_stream_error(item, agent_id)
        return None

    async def stream_tokens(
        self,
        agent_id: str,
        sender: EnvMessageSender,
        *,
        max_idle_polls: int | None = None,
    ) -> AsyncGenerator[str]:
        """
        Yield text deltas until the handler is done.

        Empty polls are tolerated; with ``max_idle_polls`` set, that many
        consecutive empty polls end the iteration early.
        """
        idle_polls = 0
        while not self.is_done:
            status = await self.receive(agent_id, sender)
            if isinstance(status, Working):
                idle_polls = 0
                yield status.token
            elif isinstance(status, Finished):
                return
            else:
                idle_polls += 1
                if max_idle_polls is not None and idle_polls >= max_idle_polls:
                    self._log.warning(
                        "Giving up on idle completion stream",
                        agent_id=agent_id,
                        idle_polls=idle_polls,
                    )
                    return

    async def _finish(
        self, agent_id: str, sender: EnvMessageSender
    ) -> CompletionStreamStatus | None:
        if self._notified:
            return Finished()

        content = self.content
        self._log.info(
            "Stream finished",
            agent_id=agent_id,
            content_length=len(content),
        )
        request = EnvRequest.push_to_cache(agent_id, Message.assistant(content))
        try:
            async with sender.lock() as endpoint:
                await endpoint.send(request)
        except DispatchError as e:
            self.last_error = e
            self.state = HandlerState.FAILED
            StreamErrorHandler.log_error(
                e, "push_to_cache", {"agent_id": agent_id}, level="warning"
            )
            return None

        self._notified = True
        self.state = HandlerState.FINISHED
        return Finished()

    def _record_stream_error(self, error: StreamError, agent_id: str) -> None:
        self.last_error = error
        if isinstance(error, TerminalStreamError):
            self.state = HandlerState.FAILED
        StreamErrorHandler.log_error(
            error, "receive", {"agent_id": agent_id}, level="warning"
        )

    # ------------------------------------------------------------------ #
    # Producer side                                                      #
    # ------------------------------------------------------------------ #

    def _spawn(self) -> None:
        """Move the stream and the sender into a background task, once."""
        stream, tx = self._stream, self._sender
        if stream is None or tx is None:
            return
        self._stream = None
        self._sender = None

        self._task = asyncio.create_task(
            self._run_stream(stream, tx), name="completion-stream"
        )
        self._spawn_count += 1
        self.state = HandlerState.STREAMING
        self._log.info("Completion task took stream and sender")

    async def _run_stream(
        self, stream: CompletionStream, tx: CompletionStreamSender
    ) -> None:
        try:
            await self._pump(stream, tx)
        except ChannelClosedError:
            self._log.debug("Receiver closed, stopping completion task")
        finally:
            tx.close()
            await _close_stream(stream)

    async def _pump(
        self, stream: CompletionStream, tx: CompletionStreamSender
    ) -> None:
        while True:
            try:
                token = await poll_stream_for_tokens(
                    stream, self.decode_error_policy, provider=self.provider
                )
            except RecoverableProviderError as e:
                self._log.warning(
                    "Recoverable provider error, polling again",
                    error_message=str(e),
                )
                await tx.send(RetryableStreamError(e))
                continue
            except Exception as e:
                StreamErrorHandler.log_error(e, "poll_stream_for_tokens")
                await tx.send(TerminalStreamError(e))
                return

            if token is None:
                self._log.debug("Got status", status="finished")
                await tx.send(Finished())
                return

            self._log.debug("Got status", status="working", token_length=len(token))
            await tx.send(Working(token))

    # ------------------------------------------------------------------ #
    # Teardown                                                           #
    # ------------------------------------------------------------------ #

    def close(self) -> None:
        """
        Drop the receiving end; the background task exits on its next send.

        A stream that was never spawned is only released here; ``aclose``
        also closes it.
        """
        self._receiver.close()
        if not self.spawned:
            self._stream = None
            if self._sender is not None:
                self._sender.close()
                self._sender = None
        if not self.is_done:
            self.state = HandlerState.CLOSED

    async def aclose(self) -> None:
        """Close, shut the stream and wait for the background task to exit."""
        unspawned = self._stream
        self.close()
        if unspawned is not None:
            await _close_stream(unspawned)
        if self._task is not None and not self._task.done():
            # A task parked on the stream never reaches a send
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    async def __aenter__(self) -> StreamedCompletionHandler:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
