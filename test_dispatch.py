"""
Tests for the in-process environment dispatcher.
"""

import asyncio
import contextlib

import pytest

from agent_stream.dispatch import DispatchError, Dispatcher, EnvRequest, MessageCache
from agent_stream.llm.models import Message, MessageRole


def test_message_cache_keeps_per_agent_order():
    cache = MessageCache()
    cache.push("a", Message.user("one"))
    cache.push("b", Message.user("other"))
    cache.push("a", Message.assistant("two"))

    assert [m.content for m in cache.messages("a")] == ["one", "two"]
    assert [m.content for m in cache.messages("b")] == ["other"]
    assert cache.messages("missing") == []


def test_push_to_cache_request():
    request = EnvRequest.push_to_cache("agent-1", Message.assistant("hi"))

    assert request.kind == "push_to_cache"
    assert request.message.role is MessageRole.ASSISTANT


@pytest.mark.asyncio
async def test_sender_delivers_to_cache():
    dispatcher = Dispatcher()
    sender = dispatcher.sender()

    await sender.send(EnvRequest.push_to_cache("agent-1", Message.assistant("hello")))

    assert dispatcher.drain() == 1
    assert dispatcher.processed_count == 1
    assert dispatcher.cache.messages("agent-1")[0].content == "hello"


@pytest.mark.asyncio
async def test_lock_context_yields_endpoint():
    dispatcher = Dispatcher()
    sender = dispatcher.sender()

    async with sender.lock() as endpoint:
        await endpoint.send(EnvRequest.push_to_cache("x", Message.assistant("m")))

    assert dispatcher.inbox.qsize() == 1


@pytest.mark.asyncio
async def test_closed_dispatcher_rejects_requests():
    dispatcher = Dispatcher()
    dispatcher.close()

    with pytest.raises(DispatchError, match="closed"):
        await dispatcher.sender().send(
            EnvRequest.push_to_cache("x", Message.assistant("m"))
        )


@pytest.mark.asyncio
async def test_full_inbox_times_out():
    dispatcher = Dispatcher(inbox_size=1, send_timeout=0.01)
    sender = dispatcher.sender()
    request = EnvRequest.push_to_cache("x", Message.assistant("m"))

    await sender.send(request)
    with pytest.raises(DispatchError, match="inbox full"):
        await sender.send(request)


@pytest.mark.asyncio
async def test_run_processes_requests():
    dispatcher = Dispatcher()
    sender = dispatcher.sender()
    runner = asyncio.create_task(dispatcher.run())

    for i in range(3):
        await sender.send(EnvRequest.push_to_cache("agent", Message.assistant(str(i))))
    for _ in range(100):
        if dispatcher.processed_count == 3:
            break
        await asyncio.sleep(0.01)

    runner.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await runner

    assert [m.content for m in dispatcher.cache.messages("agent")] == ["0", "1", "2"]
