"""
Core LLM models shared by the client, the streaming handler and the
dispatcher:
- Provider configuration
- Chat message structure
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ProviderType(Enum):
    """Supported LLM providers."""
    OPENAI = "openai"
    OPENROUTER = "openrouter"
    GROQ = "groq"


class MessageRole(Enum):
    """OpenAI-compatible message roles."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class Message(BaseModel):
    """A single chat message as stored in an agent's history."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> Message:
        return cls(role=MessageRole.ASSISTANT, content=content)

    def to_api(self) -> dict[str, Any]:
        """Render as an OpenAI-compatible request message."""
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class ProviderConfig:
    """Provider configuration."""
    provider: ProviderType
    base_url: str
    model: str
    api_key: str

    temperature: float = 0.7
    max_tokens: int = 4096
    top_p: float = 1.0

    # Connection settings
    connect_timeout: float = 10.0
    read_timeout: float = 60.0
    write_timeout: float = 10.0
    pool_timeout: float = 10.0

    @classmethod
    def from_dict(cls, config: dict[str, Any], api_key: str) -> ProviderConfig:
        """Build from an ``llm.providers.<name>`` config block."""
        required_keys = ["base_url", "model"]
        for key in required_keys:
            if key not in config:
                raise ValueError(
                    f"Required LLM configuration parameter '{key}' not found. "
                    "All LLM parameters must be explicitly configured."
                )

        http_config = config.get("http_client", {})
        return cls(
            provider=detect_provider_type(config["base_url"]),
            base_url=config["base_url"],
            model=config["model"],
            api_key=api_key,
            temperature=config.get("temperature", 0.7),
            max_tokens=config.get("max_tokens", 4096),
            top_p=config.get("top_p", 1.0),
            connect_timeout=http_config.get("connect_timeout", 10.0),
            read_timeout=http_config.get("read_timeout", 60.0),
            write_timeout=http_config.get("write_timeout", 10.0),
            pool_timeout=http_config.get("pool_timeout", 10.0),
        )


def detect_provider_type(base_url: str) -> ProviderType:
    """Detect provider type from base URL."""
    base_url_lower = base_url.lower()

    if "openai.com" in base_url_lower:
        return ProviderType.OPENAI
    if "openrouter.ai" in base_url_lower:
        return ProviderType.OPENROUTER
    if "groq.com" in base_url_lower:
        return ProviderType.GROQ

    return ProviderType.OPENAI
