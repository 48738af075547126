"""Configuration management for agent-stream."""

import os
from typing import Any

import yaml
from dotenv import load_dotenv

from agent_stream.llm.streaming.models import DecodeErrorPolicy

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), "config.yaml")


class Configuration:
    """Manages configuration and environment variables for agent-stream."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables."""
        self.load_env()  # Load .env for API keys
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self._config = self._load_yaml_config(self.config_path)

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    @staticmethod
    def _load_yaml_config(config_path: str) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> "Configuration":
        """Build a configuration from an in-memory dict (no file access)."""
        instance = cls.__new__(cls)
        cls.load_env()
        instance.config_path = None
        instance._config = config
        return instance

    @property
    def llm_api_key(self) -> str:
        """Get the API key for the active LLM provider.

        Returns:
            The API key as a string.

        Raises:
            ValueError: If the API key is not found in environment variables.
        """
        llm_config = self._config.get("llm", {})
        active_provider = llm_config.get("active", "openai")

        provider_key_map = {
            "openai": "OPENAI_API_KEY",
            "groq": "GROQ_API_KEY",
            "openrouter": "OPENROUTER_API_KEY",
        }

        env_key = provider_key_map.get(active_provider)
        if not env_key:
            raise ValueError(
                f"Unknown provider '{active_provider}' - no API key mapping found"
            )

        api_key = os.getenv(env_key)
        if not api_key:
            raise ValueError(
                f"API key '{env_key}' not found in environment variables "
                f"for provider '{active_provider}'"
            )

        return api_key

    def get_llm_config(self) -> dict[str, Any]:
        """Get active LLM provider configuration from YAML.

        Returns:
            Active LLM provider configuration dictionary.
        """
        llm_config = self._config.get("llm", {})
        active_provider = llm_config.get("active", "openai")
        providers = llm_config.get("providers", {})

        if active_provider not in providers:
            raise ValueError(
                f"Active provider '{active_provider}' not found in providers config"
            )

        return providers[active_provider]

    def get_streaming_config(self) -> dict[str, Any]:
        """Get streaming configuration from YAML.

        Returns:
            Streaming configuration with timeouts converted to seconds:
            ``receive_timeout``, ``channel_capacity``,
            ``decode_error_policy`` and ``dispatch_timeout``.

        Raises:
            ValueError: If required streaming parameters are missing or invalid.
        """
        streaming_config = self._config.get("streaming", {})

        required_keys = [
            "receive_timeout_ms", "channel_capacity", "decode_error_policy",
            "dispatch_timeout_ms",
        ]
        for key in required_keys:
            if key not in streaming_config:
                raise ValueError(
                    f"streaming.{key} must be explicitly configured "
                    "in config.yaml under streaming"
                )

        receive_timeout_ms = streaming_config["receive_timeout_ms"]
        capacity = streaming_config["channel_capacity"]
        policy = streaming_config["decode_error_policy"]
        dispatch_timeout_ms = streaming_config["dispatch_timeout_ms"]

        if not isinstance(receive_timeout_ms, int | float) or receive_timeout_ms <= 0:
            raise ValueError("streaming.receive_timeout_ms must be positive")
        if not isinstance(capacity, int) or capacity < 1:
            raise ValueError("streaming.channel_capacity must be at least 1")
        valid_policies = [p.value for p in DecodeErrorPolicy]
        if policy not in valid_policies:
            raise ValueError(
                f"streaming.decode_error_policy must be one of {valid_policies}, "
                f"got '{policy}'"
            )
        if not isinstance(dispatch_timeout_ms, int | float) or dispatch_timeout_ms <= 0:
            raise ValueError("streaming.dispatch_timeout_ms must be positive")

        return {
            "receive_timeout": receive_timeout_ms / 1000,
            "channel_capacity": capacity,
            "decode_error_policy": policy,
            "dispatch_timeout": dispatch_timeout_ms / 1000,
        }

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML.

        Returns:
            Logging configuration dictionary.
        """
        return self._config.get("logging", {})
