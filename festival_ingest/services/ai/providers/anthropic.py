"""
Anthropic Provider

Adapter for Anthropic API (Claude models).
"""

from festival_ingest.services.ai.providers.base import BaseProvider


class AnthropicProvider(BaseProvider):
    """Anthropic provider adapter.

    Uses Anthropic's OpenAI-compatible endpoint.
    """

    DEFAULT_URL = "https://api.anthropic.com/v1/"

    @property
    def provider_name(self) -> str:
        return "anthropic"
