"""
Provider Adapters Package

Contains implementations for each supported AI provider.
To add a new provider:
1. Create a new file implementing BaseProvider
2. Import it here and add to PROVIDER_REGISTRY
"""

from festival_ingest.core.config import Settings
from festival_ingest.services.ai.providers.anthropic import AnthropicProvider
from festival_ingest.services.ai.providers.base import BaseProvider
from festival_ingest.services.ai.providers.openai import CustomProvider, OpenAIProvider

# Registry mapping settings.ai_provider -> provider class
PROVIDER_REGISTRY: dict[str, type[BaseProvider]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
    "custom": CustomProvider,
}


def create_provider(settings: Settings) -> BaseProvider:
    """Build the configured provider."""
    try:
        provider_cls = PROVIDER_REGISTRY[settings.ai_provider]
    except KeyError:
        raise ValueError(f"Unknown AI provider: {settings.ai_provider}") from None

    if provider_cls is CustomProvider and not settings.ai_api_url:
        raise ValueError("ai_api_url is required for the custom provider")

    return provider_cls(
        model=settings.ai_model,
        api_key=settings.ai_api_key,
        api_url=settings.ai_api_url,
        max_tokens=settings.ai_max_tokens,
    )


__all__ = [
    "PROVIDER_REGISTRY",
    "AnthropicProvider",
    "BaseProvider",
    "CustomProvider",
    "OpenAIProvider",
    "create_provider",
]
