"""Tests for LiteLLM client wrapper."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from docchat.errors import LLMProviderError
from docchat.rag.llm_client import (
    LLMClient,
    count_tokens,
    get_context_window,
    provider_of,
    validate_api_key,
)

MESSAGES = [{"role": "user", "content": "Hi"}]


def _response(content):
    response = MagicMock()
    response.choices[0].message.content = content
    return response


# ------------------------------------------------------------------
# validate_api_key
# ------------------------------------------------------------------


def test_validate_api_key_raises_if_missing(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(EnvironmentError, match="OPENAI_API_KEY"):
        validate_api_key("openai/gpt-4o")


def test_validate_api_key_passes_if_set(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-key")
    validate_api_key("openai/gpt-4o")  # should not raise


def test_validate_api_key_anthropic(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    with pytest.raises(EnvironmentError, match="ANTHROPIC_API_KEY"):
        validate_api_key("anthropic/claude-3-5-sonnet-20241022")


def test_validate_api_key_ollama_no_key_required():
    # Ollama is local, no env var needed
    validate_api_key("ollama/llama2")


def test_validate_api_key_unknown_provider_is_not_checked(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    validate_api_key("someprovider/some-model")


def test_validate_api_key_bare_model_is_openai(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(EnvironmentError, match="OPENAI_API_KEY"):
        validate_api_key("gpt-4o-mini")


@pytest.mark.parametrize(
    ("model", "provider"),
    [
        ("openai/text-embedding-3-small", "openai"),
        ("Anthropic/claude-3-5-haiku-20241022", "anthropic"),
        ("ollama_chat/llama3/instruct", "ollama_chat"),
        ("gpt-4o", "openai"),
    ],
)
def test_provider_of(model, provider):
    assert provider_of(model) == provider


# ------------------------------------------------------------------
# LLMClient.complete()
# ------------------------------------------------------------------


def test_complete_returns_content():
    with patch(
        "docchat.rag.llm_client.litellm.acompletion",
        AsyncMock(return_value=_response("Hello, world!")),
    ):
        result = asyncio.run(LLMClient("openai/gpt-4o").complete(MESSAGES))

    assert result == "Hello, world!"


def test_complete_returns_empty_string_on_none_content():
    with patch(
        "docchat.rag.llm_client.litellm.acompletion",
        AsyncMock(return_value=_response(None)),
    ):
        result = asyncio.run(LLMClient("openai/gpt-4o").complete(MESSAGES))

    assert result == ""


def test_complete_passes_params_to_litellm():
    client = LLMClient(
        "openai/gpt-4o-mini", max_tokens=512, temperature=0.5, timeout=12.0, num_retries=3
    )
    with patch(
        "docchat.rag.llm_client.litellm.acompletion",
        AsyncMock(return_value=_response("ok")),
    ) as mock_c:
        asyncio.run(client.complete(MESSAGES))

    call_kwargs = mock_c.call_args.kwargs
    assert call_kwargs["model"] == "openai/gpt-4o-mini"
    assert call_kwargs["messages"] == MESSAGES
    assert call_kwargs["max_tokens"] == 512
    assert call_kwargs["temperature"] == 0.5
    assert call_kwargs["num_retries"] == 3
    assert call_kwargs["timeout"] == 12.0


def test_complete_provider_error_wrapped():
    with patch(
        "docchat.rag.llm_client.litellm.acompletion",
        AsyncMock(side_effect=RuntimeError("rate limited")),
    ):
        with pytest.raises(LLMProviderError, match="rate limited"):
            asyncio.run(LLMClient("openai/gpt-4o").complete(MESSAGES))


def test_complete_timeout_wrapped():
    async def _slow(**kwargs):
        await asyncio.sleep(1)

    with patch("docchat.rag.llm_client.litellm.acompletion", side_effect=_slow):
        with pytest.raises(LLMProviderError, match="timed out"):
            asyncio.run(LLMClient("openai/gpt-4o", timeout=0.05).complete(MESSAGES))


def test_complete_empty_choices_wrapped():
    response = MagicMock()
    response.choices = []
    with patch(
        "docchat.rag.llm_client.litellm.acompletion", AsyncMock(return_value=response)
    ):
        with pytest.raises(LLMProviderError, match="malformed"):
            asyncio.run(LLMClient("openai/gpt-4o").complete(MESSAGES))


# ------------------------------------------------------------------
# count_tokens()
# ------------------------------------------------------------------


def test_count_tokens_uses_litellm():
    with patch("docchat.rag.llm_client.litellm.token_counter", return_value=42):
        result = count_tokens("openai/gpt-4o", "some text")
    assert result == 42


def test_count_tokens_fallback_on_error():
    with patch(
        "docchat.rag.llm_client.litellm.token_counter", side_effect=Exception("unsupported")
    ):
        result = count_tokens("unknown/model", "a" * 100)
    assert result == 25


def test_count_tokens_fallback_minimum_one():
    with patch(
        "docchat.rag.llm_client.litellm.token_counter", side_effect=Exception("err")
    ):
        result = count_tokens("x", "")
    assert result == 1


# ------------------------------------------------------------------
# get_context_window()
# ------------------------------------------------------------------


def test_get_context_window_uses_litellm_info():
    with patch(
        "docchat.rag.llm_client.litellm.get_model_info",
        return_value={"max_input_tokens": 128_000},
    ):
        result = get_context_window("openai/gpt-4o")
    assert result == 128_000


def test_get_context_window_fallback_table():
    with patch(
        "docchat.rag.llm_client.litellm.get_model_info", side_effect=Exception("err")
    ):
        result = get_context_window("openai/gpt-4o-mini")
    assert result == 128_000


def test_get_context_window_unknown_model_returns_default():
    with patch(
        "docchat.rag.llm_client.litellm.get_model_info", side_effect=Exception("err")
    ):
        result = get_context_window("totally/unknown-model")
    assert result == 8_192
