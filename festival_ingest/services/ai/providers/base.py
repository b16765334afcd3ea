"""
Base Provider Implementation

Common functionality shared across all provider adapters.
"""

import structlog
from openai import AsyncOpenAI

from festival_ingest.core.exceptions import ExternalServiceError
from festival_ingest.services.ai.interface import CompletionProvider

logger = structlog.get_logger()


class BaseProvider(CompletionProvider):
    """Base class for OpenAI-compatible providers.

    OpenAI, Anthropic and most self-hosted servers accept the OpenAI chat
    completions format, so subclasses only differ in defaults.
    """

    DEFAULT_URL: str | None = None

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        api_url: str | None = None,
        max_tokens: int = 4000,
        client: AsyncOpenAI | None = None,
    ):
        self.model = model
        self.api_key = api_key
        self.api_url = api_url or self.DEFAULT_URL
        self.max_tokens = max_tokens
        self._client = client

    @property
    def provider_name(self) -> str:
        return "base"

    @property
    def model_name(self) -> str:
        return self.model

    def _get_client(self) -> AsyncOpenAI:
        """Get or create OpenAI client."""
        if self._client is None:
            self._client = AsyncOpenAI(
                base_url=self.api_url,
                # Local servers don't need a key
                api_key=self.api_key or "not-required",
                default_headers=self._get_default_headers(),
            )
        return self._client

    def _get_default_headers(self) -> dict[str, str]:
        """Get default headers for requests.

        Override in subclasses for provider-specific headers.
        """
        return {}

    async def complete(self, prompt: str) -> str:
        logger.info(
            "ai_complete_start",
            provider=self.provider_name,
            model=self.model_name,
            prompt_len=len(prompt),
        )

        client = self._get_client()
        response = await client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=self.max_tokens,
        )

        if not response.choices:
            raise ExternalServiceError("AI provider returned no choices", service=self.provider_name)

        text = response.choices[0].message.content or ""

        usage = None
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        logger.info(
            "ai_complete_success",
            provider=self.provider_name,
            model=self.model_name,
            response_len=len(text),
            usage=usage,
        )
        return text

    async def health_check(self) -> bool:
        """Check if provider is reachable."""
        try:
            client = self._get_client()
            # Simple models list call to verify connectivity
            await client.models.list()
            return True
        except Exception as e:
            logger.warning(
                "ai_health_check_failed",
                provider=self.provider_name,
                error=str(e),
            )
            return False
