"""
OpenAI Provider

Adapter for OpenAI API (GPT models) and any OpenAI-compatible endpoint.
"""

from festival_ingest.services.ai.providers.base import BaseProvider


class OpenAIProvider(BaseProvider):
    """OpenAI provider adapter.

    Default URL: https://api.openai.com/v1
    """

    DEFAULT_URL = "https://api.openai.com/v1"

    @property
    def provider_name(self) -> str:
        return "openai"


class CustomProvider(BaseProvider):
    """Generic OpenAI-compatible endpoint (Ollama, vLLM, ...).

    The endpoint URL must come from settings.
    """

    @property
    def provider_name(self) -> str:
        return "custom"
