"""AI provider factory."""

from __future__ import annotations

from receiptsieve.ai.anthropic_provider import AnthropicProvider
from receiptsieve.ai.base import LLMProvider
from receiptsieve.ai.ollama import OllamaProvider

DEFAULT_PROVIDER = "anthropic"


def parse_model_spec(model_spec: str) -> tuple[str, str]:
    """Split 'provider:model' into its parts.

    A spec without a colon names an Anthropic model. Everything after the
    first colon is the model, so Ollama tags like 'ollama:qwen2.5:7b' survive.
    """
    provider_name, sep, model_name = model_spec.partition(":")
    if not sep:
        provider_name, model_name = DEFAULT_PROVIDER, model_spec
    if not model_name:
        raise ValueError(f"No model name in {model_spec!r}")
    return provider_name, model_name


def get_provider(model_spec: str, config: dict | None = None) -> tuple[LLMProvider, str]:
    """Return (provider_instance, model_name) for a 'provider:model' spec."""
    provider_name, model_name = parse_model_spec(model_spec)
    config = config or {}

    if provider_name == "anthropic":
        return AnthropicProvider(default_model=model_name), model_name
    if provider_name == "ollama":
        provider = OllamaProvider(
            base_url=config.get("ollama_base_url", "http://localhost:11434"),
            api_key=config.get("ollama_api_key", ""),
            default_model=model_name,
        )
        return provider, model_name
    raise ValueError(f"Unknown AI provider: {provider_name!r}. Use 'anthropic' or 'ollama'.")
