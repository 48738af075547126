"""
In-process messaging between agents and their environment.

Agents submit ``EnvRequest`` values through a shared, lock-guarded
``EnvMessageSender``. A ``Dispatcher`` drains the requests and applies them
to a ``MessageCache`` holding each agent's message history.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections import defaultdict
from typing import Literal

import structlog
from pydantic import BaseModel

from agent_stream.llm.models import Message

logger = structlog.get_logger(__name__)

DEFAULT_INBOX_SIZE = 100


class DispatchError(Exception):
    """A request could not be handed to the dispatcher."""
    pass


class EnvRequest(BaseModel):
    """Request from an agent to its environment."""
    kind: Literal["push_to_cache"]
    agent_id: str
    message: Message

    @classmethod
    def push_to_cache(cls, agent_id: str, message: Message) -> EnvRequest:
        return cls(kind="push_to_cache", agent_id=agent_id, message=message)


class MessageCache:
    """Per-agent message history."""

    def __init__(self):
        self._messages: defaultdict[str, list[Message]] = defaultdict(list)

    def push(self, agent_id: str, message: Message) -> None:
        self._messages[agent_id].append(message)

    def messages(self, agent_id: str) -> list[Message]:
        return list(self._messages.get(agent_id, []))


class EnvRequestSender:
    """Send endpoint of a dispatcher inbox."""

    def __init__(self, dispatcher: Dispatcher):
        self._dispatcher = dispatcher

    async def send(self, request: EnvRequest) -> None:
        """
        Hand ``request`` to the dispatcher.

        Raises:
            DispatchError: If the dispatcher is closed, or its inbox stays
                full for longer than the dispatcher's send timeout.
        """
        dispatcher = self._dispatcher
        if dispatcher.closed:
            raise DispatchError("Dispatcher is closed")
        try:
            await asyncio.wait_for(
                dispatcher.inbox.put(request), timeout=dispatcher.send_timeout
            )
        except TimeoutError as e:
            raise DispatchError(
                f"Dispatcher inbox full after {dispatcher.send_timeout}s"
            ) from e


class EnvMessageSender:
    """
    Shared, lock-guarded handle to an ``EnvRequestSender``.

    Usage::

        async with env_sender.lock() as endpoint:
            await endpoint.send(request)
    """

    def __init__(self, endpoint: EnvRequestSender):
        self._endpoint = endpoint
        self._lock = asyncio.Lock()

    @contextlib.asynccontextmanager
    async def lock(self):
        async with self._lock:
            yield self._endpoint

    async def send(self, request: EnvRequest) -> None:
        async with self.lock() as endpoint:
            await endpoint.send(request)


class Dispatcher:
    """Consumes environment requests and applies them to the message cache."""

    def __init__(
        self,
        cache: MessageCache | None = None,
        *,
        inbox_size: int = DEFAULT_INBOX_SIZE,
        send_timeout: float = 1.0,
    ):
        self.cache = cache or MessageCache()
        self.inbox: asyncio.Queue[EnvRequest] = asyncio.Queue(maxsize=inbox_size)
        self.send_timeout = send_timeout
        self.closed = False
        self._processed = 0

    def sender(self) -> EnvMessageSender:
        """Create a new guarded sender bound to this dispatcher."""
        return EnvMessageSender(EnvRequestSender(self))

    @property
    def processed_count(self) -> int:
        return self._processed

    def handle(self, request: EnvRequest) -> None:
        """Apply a single request."""
        if request.kind == "push_to_cache":
            self.cache.push(request.agent_id, request.message)
            logger.debug(
                "Pushed message to cache",
                agent_id=request.agent_id,
                message_id=request.message.id,
                content_length=len(request.message.content),
            )
        self._processed += 1

    def drain(self) -> int:
        """Apply every queued request without waiting; returns how many."""
        count = 0
        while True:
            try:
                request = self.inbox.get_nowait()
            except asyncio.QueueEmpty:
                return count
            self.handle(request)
            count += 1

    async def run(self) -> None:
        """Process requests until cancelled or closed."""
        while not self.closed:
            request = await self.inbox.get()
            self.handle(request)

    def close(self) -> None:
        """Stop accepting requests. Already queued requests stay drainable."""
        self.closed = True
