"""Provider registry and construction."""

from dataclasses import dataclass

from .base import BaseAIProvider


@dataclass(frozen=True)
class ProviderInfo:
    label: str
    requires_key: bool
    key_env: str | None = None


SUPPORTED_PROVIDERS: dict[str, ProviderInfo] = {
    "anthropic": ProviderInfo("Anthropic (Claude)", True, "ANTHROPIC_API_KEY"),
    "openai": ProviderInfo("OpenAI (GPT)", True, "OPENAI_API_KEY"),
    "gemini": ProviderInfo("Google (Gemini)", True, "GOOGLE_API_KEY"),
    "ollama": ProviderInfo("Ollama (local)", False),
    "none": ProviderInfo("None (deterministic rules only)", False),
}


def get_provider(
    provider_name: str,
    api_key: str | None = None,
    model: str | None = None,
    api_base: str | None = None,
) -> BaseAIProvider | None:
    """Build the named provider. Returns None for "none".

    SDKs are imported lazily so only the selected backend needs to load.

    Raises:
        ValueError: If provider_name is not one of SUPPORTED_PROVIDERS.
    """
    provider_name = provider_name.lower()
    if provider_name not in SUPPORTED_PROVIDERS:
        raise ValueError(
            f"Unknown provider: {provider_name}. Valid options: {', '.join(SUPPORTED_PROVIDERS)}"
        )

    if provider_name == "anthropic":
        from .anthropic_provider import AnthropicProvider

        return AnthropicProvider(api_key=api_key, model=model)
    if provider_name == "openai":
        from .openai_provider import OpenAIProvider

        return OpenAIProvider(api_key=api_key, model=model, api_base=api_base)
    if provider_name == "gemini":
        from .gemini_provider import GeminiProvider

        return GeminiProvider(api_key=api_key, model=model)
    if provider_name == "ollama":
        from .ollama_provider import OllamaProvider

        return OllamaProvider(api_base=api_base, model=model)
    return None
