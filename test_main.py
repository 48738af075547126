"""
Test the command-line completion runner against a mocked provider.
"""

import io
import json

import httpx
import pytest

from agent_stream.config import Configuration
from agent_stream.dispatch import Dispatcher
from agent_stream.llm.client import StreamingLLMClient
from agent_stream import main as main_module
from agent_stream.main import cli, run_completion

CONFIG = {
    "llm": {
        "active": "openai",
        "providers": {
            "openai": {"base_url": "https://api.openai.com/v1", "model": "gpt-test"}
        },
    },
    "streaming": {
        "receive_timeout_ms": 1000,
        "channel_capacity": 10,
        "decode_error_policy": "skip",
        "dispatch_timeout_ms": 1000,
    },
}


def sse(*deltas):
    body = "".join(
        f"data: {json.dumps({'choices': [{'delta': {'content': d}}]})}\n\n"
        for d in deltas
    )
    return (body + "data: [DONE]\n\n").encode()


@pytest.mark.asyncio
async def test_run_completion_prints_and_caches(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    configuration = Configuration.from_dict(CONFIG)
    transport = httpx.MockTransport(
        lambda request: httpx.Response(
            200,
            headers={"content-type": "text/event-stream"},
            content=sse("Hel", "lo", " world"),
        )
    )
    real_factory = StreamingLLMClient.from_configuration.__func__
    monkeypatch.setattr(
        StreamingLLMClient,
        "from_configuration",
        classmethod(lambda cls, conf: real_factory(cls, conf, transport=transport)),
    )

    out = io.StringIO()
    dispatcher = Dispatcher()

    content = await run_completion(
        configuration, "Say hello", agent_id="agent-1", dispatcher=dispatcher, out=out
    )

    assert content == "Hello world"
    assert out.getvalue() == "Hello world\n"
    assert [m.content for m in dispatcher.cache.messages("agent-1")] == ["Hello world"]


def test_cli_exits_quietly_on_keyboard_interrupt(monkeypatch):
    def interrupted_run(coro):
        coro.close()
        raise KeyboardInterrupt

    monkeypatch.setattr(main_module.asyncio, "run", interrupted_run)

    with pytest.raises(SystemExit) as exc_info:
        cli()

    assert exc_info.value.code == 130
