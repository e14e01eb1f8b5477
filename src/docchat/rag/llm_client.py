"""Chat completions through LiteLLM, plus the token helpers generation needs.

Rephrasing and answering share ``LLMClient.complete()``; only their messages
differ. LiteLLM retries transient provider errors itself (``num_retries``).
The whole call, retries included, is bounded by ``timeout`` and every failure
comes back as LLMProviderError.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass

import litellm

from docchat.errors import LLMProviderError

logger = logging.getLogger(__name__)

litellm.suppress_debug_info = True

# Environment variable that must hold each provider's key; None for local servers.
_KEY_ENV_VARS: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,
    "ollama_chat": None,
}

_DEFAULT_CONTEXT_WINDOW = 8_192

# Consulted only when LiteLLM has no metadata for the model.
_KNOWN_CONTEXT_WINDOWS: dict[str, int] = {
    "openai/gpt-4o": 128_000,
    "openai/gpt-4o-mini": 128_000,
    "openai/gpt-3.5-turbo": 16_384,
    "anthropic/claude-3-5-sonnet-20241022": 200_000,
    "anthropic/claude-3-5-haiku-20241022": 200_000,
    "groq/llama3-70b-8192": 8_192,
}


def provider_of(model: str) -> str:
    """Provider prefix of a LiteLLM model string; bare names are OpenAI models."""
    return model.split("/", 1)[0].lower() if "/" in model else "openai"


def validate_api_key(model: str) -> None:
    """Fail early when the key *model*'s provider needs is not exported.

    Unknown providers are not checked; LiteLLM reports them on first use.

    Raises:
        EnvironmentError: If the provider's key variable is unset or empty.
    """
    provider = provider_of(model)
    env_var = _KEY_ENV_VARS.get(provider)
    if env_var and not os.environ.get(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. Set the {env_var} environment variable."
        )


def count_tokens(model: str, text: str) -> int:
    """Tokens in *text* for *model*, or about one per four characters if LiteLLM cannot tell."""
    try:
        return litellm.token_counter(model=model, text=text)
    except Exception:
        # No tokenizer for this model.
        return max(1, len(text) // 4)


def get_context_window(model: str) -> int:
    """Input context size of *model* in tokens."""
    try:
        info = litellm.get_model_info(model)
    except Exception:
        return _KNOWN_CONTEXT_WINDOWS.get(model, _DEFAULT_CONTEXT_WINDOW)
    return info.get("max_input_tokens") or info.get("max_tokens") or _DEFAULT_CONTEXT_WINDOW


@dataclass
class LLMClient:
    """Chat-completion handle for one model.

    Attributes:
        model: LiteLLM model string (provider/model format).
        max_tokens: Maximum output tokens per call.
        temperature: Sampling temperature (0 = deterministic).
        timeout: Seconds allowed for one call, retries included.
        num_retries: LiteLLM retries on transient errors.
    """

    model: str
    max_tokens: int = 1024
    temperature: float = 0.0
    timeout: float = 60.0
    num_retries: int = 2

    async def complete(self, messages: list[dict[str, str]]) -> str:
        """Send OpenAI-style *messages* and return the first choice's text.

        Raises:
            LLMProviderError: On provider failure or timeout.
        """
        try:
            response = await asyncio.wait_for(
                litellm.acompletion(
                    model=self.model,
                    messages=messages,
                    max_tokens=self.max_tokens,
                    temperature=self.temperature,
                    num_retries=self.num_retries,
                    timeout=self.timeout,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise LLMProviderError(
                f"LLM '{self.model}' timed out after {self.timeout:.0f}s."
            ) from exc
        except Exception as exc:
            raise LLMProviderError(f"LLM '{self.model}' call failed: {exc}") from exc

        try:
            content = response.choices[0].message.content or ""
        except (AttributeError, IndexError, TypeError) as exc:
            raise LLMProviderError(
                f"LLM '{self.model}' returned a malformed response."
            ) from exc
        logger.debug("LLM %s returned %d characters", self.model, len(content))
        return content
