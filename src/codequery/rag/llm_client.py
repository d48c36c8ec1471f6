"""LiteLLM client wrapper with retry, backoff, and API key validation.

All completion and embedding calls of both pipelines route through this module.
LiteLLM's built-in retry is used (``num_retries``, exponential backoff); the
pipelines themselves never retry, they only surface failures.
"""

from __future__ import annotations

import os

import litellm

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


def provider_of(model: str) -> str:
    return model.split("/")[0].lower() if "/" in model else "openai"


def api_key_env(model: str) -> str | None:
    """Name of the env var holding the API key for *model*.

    None when no key is checked: local models, and providers not listed above
    (they may authenticate some other way, e.g. vertex_ai or bedrock).
    """
    return _PROVIDER_ENV.get(provider_of(model))


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = provider_of(model)
    env_var = api_key_env(model)

    if env_var is None:
        return

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


class LLMClient:
    """Async text-generation + embedding client bound to fixed models.

    Args:
        prompt_model: LiteLLM completion model (provider/model format).
        embedding_model: LiteLLM embedding model.
        num_retries: Retries on transient errors (exponential backoff).
        max_tokens: Maximum output tokens per completion.
        temperature: Sampling temperature (0 = deterministic).
    """

    def __init__(
        self,
        prompt_model: str,
        embedding_model: str,
        num_retries: int = 3,
        max_tokens: int = 2048,
        temperature: float = 0.0,
    ) -> None:
        self.prompt_model = prompt_model
        self.embedding_model = embedding_model
        self.num_retries = num_retries
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def complete(self, prompt: str) -> str:
        """Send *prompt* as a single user message. Returns the content string.

        Raises:
            litellm.exceptions.APIError: On persistent API failure after retries.
        """
        response = await litellm.acompletion(
            model=self.prompt_model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            num_retries=self.num_retries,
        )
        return response.choices[0].message.content or ""

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in one request. Returns one vector per text, in order."""
        if not texts:
            return []
        response = await litellm.aembedding(
            model=self.embedding_model,
            input=texts,
            num_retries=self.num_retries,
        )
        return [item["embedding"] for item in response.data]
