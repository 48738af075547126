"""
Command-line entry point: stream one completion to stdout and record the
assistant reply in the agent's message cache.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys

from agent_stream.config import Configuration
from agent_stream.dispatch import Dispatcher
from agent_stream.llm.client import StreamingLLMClient
from agent_stream.llm.models import Message
from agent_stream.logging_utils import operation_context

DEFAULT_AGENT_ID = "cli"


async def run_completion(
    configuration: Configuration,
    prompt: str,
    *,
    agent_id: str = DEFAULT_AGENT_ID,
    dispatcher: Dispatcher | None = None,
    out=sys.stdout,
) -> str:
    """Stream a reply to ``prompt``; returns the accumulated text."""
    streaming_config = configuration.get_streaming_config()
    dispatcher = dispatcher or Dispatcher(
        send_timeout=streaming_config["dispatch_timeout"]
    )
    env_sender = dispatcher.sender()
    dispatcher_task = asyncio.create_task(dispatcher.run())

    try:
        async with (
            StreamingLLMClient.from_configuration(configuration) as client,
            operation_context("completion", context={"agent_id": agent_id}),
        ):
            handler = await client.open_completion([Message.user(prompt)])
            async with handler:
                async for token in handler.stream_tokens(agent_id, env_sender):
                    out.write(token)
                    out.flush()
            out.write("\n")
            if handler.last_error is not None:
                logging.warning(f"Completion ended with error: {handler.last_error}")
            return handler.content
    finally:
        dispatcher.close()
        dispatcher_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await dispatcher_task
        dispatcher.drain()
        logging.debug(f"Dispatcher handled {dispatcher.processed_count} request(s)")


async def main() -> None:
    """Main entry point."""
    configuration = Configuration()
    level = configuration.get_logging_config().get("level", "INFO")
    logging.basicConfig(
        level=level, format="%(asctime)s - %(levelname)s - %(message)s"
    )

    prompt = " ".join(sys.argv[1:]) or sys.stdin.read()
    if not prompt.strip():
        logging.error("No prompt given")
        sys.exit(2)

    await run_completion(configuration, prompt)


def cli() -> None:
    # asyncio.run cancels the main task on Ctrl-C, then re-raises here
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logging.info("Keyboard interrupt received, shutting down...")
        sys.exit(130)


if __name__ == "__main__":
    cli()
