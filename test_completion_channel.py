"""
Tests for the bounded completion channel.
"""

import asyncio

import pytest

from agent_stream.llm.exceptions import ChannelClosedError, TerminalStreamError
from agent_stream.llm.streaming import Finished, Working, create_completion_channel


@pytest.mark.asyncio
async def test_items_delivered_in_order():
    sender, receiver = create_completion_channel(capacity=10)

    await sender.send(Working("a"))
    await sender.send(Working("b"))
    await sender.send(Finished())

    assert await receiver.recv() == Working("a")
    assert await receiver.recv() == Working("b")
    assert await receiver.recv() == Finished()


@pytest.mark.asyncio
async def test_errors_travel_as_items():
    sender, receiver = create_completion_channel()
    error = TerminalStreamError(RuntimeError("boom"))

    await sender.send(error)

    assert await receiver.recv() is error


@pytest.mark.asyncio
async def test_closed_sender_drains_then_reports_end():
    sender, receiver = create_completion_channel()
    await sender.send(Working("last"))
    sender.close()

    assert await receiver.recv() == Working("last")
    assert await receiver.recv() is None
    assert await receiver.recv() is None


@pytest.mark.asyncio
async def test_full_channel_closed_sender_reports_end():
    sender, receiver = create_completion_channel(capacity=1)
    await sender.send(Working("only"))
    sender.close()

    assert await receiver.recv() == Working("only")
    assert await receiver.recv() is None


@pytest.mark.asyncio
async def test_sender_close_wakes_waiting_receiver():
    sender, receiver = create_completion_channel()

    waiter = asyncio.create_task(receiver.recv())
    await asyncio.sleep(0)
    sender.close()

    assert await asyncio.wait_for(waiter, timeout=1.0) is None


@pytest.mark.asyncio
async def test_send_after_receiver_close_fails():
    sender, receiver = create_completion_channel()
    receiver.close()

    with pytest.raises(ChannelClosedError):
        await sender.send(Working("x"))


@pytest.mark.asyncio
async def test_receiver_close_releases_blocked_sender():
    sender, receiver = create_completion_channel(capacity=1)
    await sender.send(Working("fills"))

    blocked = asyncio.create_task(sender.send(Working("waits")))
    await asyncio.sleep(0.01)
    assert not blocked.done()

    receiver.close()

    with pytest.raises(ChannelClosedError):
        await asyncio.wait_for(blocked, timeout=1.0)


@pytest.mark.asyncio
async def test_cancelled_recv_loses_nothing():
    sender, receiver = create_completion_channel()

    with pytest.raises(TimeoutError):
        await asyncio.wait_for(receiver.recv(), timeout=0.01)

    await sender.send(Working("after timeout"))

    assert await receiver.recv() == Working("after timeout")


def test_capacity_must_be_positive():
    with pytest.raises(ValueError, match="capacity must be at least 1"):
        create_completion_channel(capacity=0)
