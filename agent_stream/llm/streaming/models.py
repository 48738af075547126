"""
Streaming chunk models and completion statuses.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class StreamDelta(BaseModel):
    """Incremental piece of one choice."""
    model_config = ConfigDict(extra="ignore")

    role: str | None = None
    content: str | None = None


class StreamChoice(BaseModel):
    """One candidate completion inside a chunk."""
    model_config = ConfigDict(extra="ignore")

    index: int = 0
    delta: StreamDelta = Field(default_factory=StreamDelta)
    finish_reason: str | None = None


class ProviderErrorPayload(BaseModel):
    """Error object some providers embed in a stream chunk."""
    model_config = ConfigDict(extra="ignore")

    message: str | None = None
    type: str | None = None
    code: str | int | None = None


class StreamResponse(BaseModel):
    """One decoded chunk of a streamed chat completion."""
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    model: str | None = None
    choices: list[StreamChoice] = Field(default_factory=list)
    error: ProviderErrorPayload | None = None

    def parse(self) -> str:
        """Text delta of the first choice, empty when the chunk carries none."""
        if not self.choices:
            return ""
        return self.choices[0].delta.content or ""


class DecodeErrorPolicy(Enum):
    """What the poller does with a chunk that failed to decode."""
    SKIP = "skip"
    TERMINATE = "terminate"


@dataclass(frozen=True)
class Working:
    """More content arrived."""
    token: str


@dataclass(frozen=True)
class Finished:
    """The provider signalled the end of generation."""


CompletionStreamStatus = Working | Finished
