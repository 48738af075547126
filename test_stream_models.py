"""
Tests for chunk models and provider error classification.
"""

import pytest
from pydantic import ValidationError

from agent_stream.llm.exceptions import (
    ProviderError,
    ProviderOverloadedError,
    RateLimitError,
    RecoverableProviderError,
    classify_provider_error,
)
from agent_stream.llm.streaming.models import (
    ProviderErrorPayload,
    StreamResponse,
)

OPENAI_CHUNK = (
    '{"id":"chatcmpl-1","object":"chat.completion.chunk","created":1,'
    '"model":"gpt-4o-mini","system_fingerprint":"fp",'
    '"choices":[{"index":0,"delta":{"role":"assistant","content":"Hi"},'
    '"logprobs":null,"finish_reason":null}]}'
)


def test_openai_chunk_decodes():
    response = StreamResponse.model_validate_json(OPENAI_CHUNK)

    assert response.id == "chatcmpl-1"
    assert response.choices[0].delta.role == "assistant"
    assert response.parse() == "Hi"
    assert response.error is None


def test_final_chunk_has_empty_text():
    response = StreamResponse.model_validate_json(
        '{"choices":[{"index":0,"delta":{},"finish_reason":"stop"}]}'
    )

    assert response.parse() == ""
    assert response.choices[0].finish_reason == "stop"


def test_parse_uses_first_choice():
    response = StreamResponse.model_validate({
        "choices": [
            {"index": 0, "delta": {"content": "first"}},
            {"index": 1, "delta": {"content": "second"}},
        ]
    })

    assert response.parse() == "first"


def test_error_chunk_decodes():
    response = StreamResponse.model_validate_json(
        '{"error":{"message":"slow down","type":"requests","code":"rate_limit_exceeded"}}'
    )

    assert response.choices == []
    assert response.error.code == "rate_limit_exceeded"


def test_malformed_chunk_rejected():
    with pytest.raises(ValidationError):
        StreamResponse.model_validate_json('{"choices": [')
    with pytest.raises(ValidationError):
        StreamResponse.model_validate_json('{"choices": "nope"}')


class TestClassifyProviderError:
    def test_rate_limit_is_recoverable(self):
        error = classify_provider_error(
            ProviderErrorPayload(message="slow down", code="rate_limit_exceeded"),
            provider="openai",
            model="gpt-test",
        )

        assert isinstance(error, RateLimitError)
        assert isinstance(error, RecoverableProviderError)
        assert str(error) == "slow down"
        assert error.provider == "openai"
        assert error.response_data["code"] == "rate_limit_exceeded"

    def test_overloaded_type_is_recoverable(self):
        error = classify_provider_error(ProviderErrorPayload(type="server_error"))

        assert isinstance(error, ProviderOverloadedError)

    def test_unknown_code_is_terminal(self):
        error = classify_provider_error(
            ProviderErrorPayload(message="bad key", code="invalid_api_key")
        )

        assert type(error) is ProviderError
        assert not isinstance(error, RecoverableProviderError)

    def test_numeric_code_and_missing_message(self):
        error = classify_provider_error(ProviderErrorPayload(code=500))

        assert type(error) is ProviderError
        assert str(error) == "Provider reported an error"
