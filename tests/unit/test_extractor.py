"""
Unit tests for AI extraction: prompts, response parsing and providers.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from festival_ingest.core.exceptions import ExternalServiceError
from festival_ingest.services.ai.interface import CompletionProvider
from festival_ingest.services.ai.providers import (
    AnthropicProvider,
    CustomProvider,
    OpenAIProvider,
    create_provider,
)
from festival_ingest.services.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from festival_ingest.services.extraction import FestivalExtractor, parse_json_object
from festival_ingest.services.extraction.extractor import ResponseParseError
from festival_ingest.services.extraction.prompts import (
    MAX_CONTENT_LENGTH,
    TRUNCATION_MARKER,
    build_extraction_prompt,
    build_minimal_prompt,
    build_retry_prompt,
    truncate_content,
)


class FakeProvider(CompletionProvider):
    def __init__(self, response: str | None = None, error: Exception | None = None):
        self.response = response
        self.error = error
        self.prompts: list[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.response

    async def health_check(self) -> bool:
        return True

    @property
    def provider_name(self) -> str:
        return "fake"

    @property
    def model_name(self) -> str:
        return "fake-model"


# =============================================================================
# Prompts
# =============================================================================


class TestPrompts:
    """Prompt construction."""

    def test_extraction_prompt_contains_url_and_content(self):
        """Test prompt embeds source URL and content."""
        prompt = build_extraction_prompt("Friday night social", "https://festival.example/")

        assert "https://festival.example/" in prompt
        assert "Friday night social" in prompt
        assert '"startDate"' in prompt

    def test_truncation(self):
        """Test content over the limit is cut and marked."""
        content = "x" * (MAX_CONTENT_LENGTH + 10)
        truncated = truncate_content(content)

        assert truncated.endswith(TRUNCATION_MARKER)
        assert len(truncated) == MAX_CONTENT_LENGTH + len(TRUNCATION_MARKER)
        assert truncate_content("short") == "short"

    def test_retry_prompt_states_previous_confidence(self):
        """Test retry prompt mentions previous confidence and threshold."""
        prompt = build_retry_prompt("content", "https://festival.example/", 0.62, 0.85)

        assert "0.62" in prompt
        assert "0.85" in prompt
        assert "content" in prompt

    def test_minimal_prompt(self):
        """Test minimal prompt is just the schema request."""
        prompt = build_minimal_prompt("https://festival.example/")
        assert "https://festival.example/" in prompt
        assert '"name"' in prompt


# =============================================================================
# Response parsing
# =============================================================================


class TestParseJsonObject:
    """Brace-delimited JSON extraction."""

    def test_plain_object(self):
        assert parse_json_object('{"name": "Camp Hollywood"}') == {"name": "Camp Hollywood"}

    def test_object_inside_prose_and_fences(self):
        """Test surrounding text and markdown fences are ignored."""
        text = 'Here you go:\n```json\n{"name": "ILHC", "tags": ["lindy"]}\n```\nEnjoy!'
        assert parse_json_object(text) == {"name": "ILHC", "tags": ["lindy"]}

    def test_no_object(self):
        with pytest.raises(ResponseParseError, match="No valid JSON"):
            parse_json_object("I could not find any festival.")

    def test_invalid_json(self):
        with pytest.raises(ResponseParseError, match="Invalid JSON"):
            parse_json_object("{name: 'unquoted'}")


# =============================================================================
# Extractor
# =============================================================================


class TestFestivalExtractor:
    """Provider call and result mapping."""

    @pytest.mark.asyncio
    async def test_success(self):
        """Test parsed data is returned with the raw response."""
        provider = FakeProvider('{"name": "Herrang Dance Camp"}')
        extractor = FestivalExtractor(provider)

        result = await extractor.extract("page content", "https://herrang.example/")

        assert result.success is True
        assert result.data == {"name": "Herrang Dance Camp"}
        assert result.raw_response == '{"name": "Herrang Dance Camp"}'
        assert "page content" in provider.prompts[0]

    @pytest.mark.asyncio
    async def test_parse_failure(self):
        """Test unparsable output maps to EXTRACTION_PARSE_ERROR."""
        extractor = FestivalExtractor(FakeProvider("Sorry, no data."))

        result = await extractor.extract("content", "https://festival.example/")

        assert result.success is False
        assert result.error_code == "EXTRACTION_PARSE_ERROR"
        assert result.raw_response == "Sorry, no data."

    @pytest.mark.asyncio
    async def test_provider_error(self):
        """Test unexpected provider errors map to EXTERNAL_SERVICE_ERROR."""
        extractor = FestivalExtractor(FakeProvider(error=ConnectionError("reset by peer")))

        result = await extractor.extract("content", "https://festival.example/")

        assert result.success is False
        assert result.error_code == "EXTERNAL_SERVICE_ERROR"
        assert "reset by peer" in result.error

    @pytest.mark.asyncio
    async def test_breaker_opens_after_failures(self):
        """Test three provider failures open the breaker and the next call short-circuits."""
        provider = FakeProvider(error=ConnectionError("down"))
        breaker = CircuitBreaker("extraction", CircuitBreakerConfig(failure_threshold=3))
        extractor = FestivalExtractor(provider, breaker=breaker)

        for _ in range(3):
            await extractor.extract("content", "https://festival.example/")
        result = await extractor.extract("content", "https://festival.example/")

        assert len(provider.prompts) == 3
        assert result.success is False
        assert "Circuit breaker open" in result.error

    @pytest.mark.asyncio
    async def test_extract_with_custom_prompt(self):
        """Test a pre-built prompt is sent unchanged."""
        provider = FakeProvider('{"name": "Snowball"}')
        extractor = FestivalExtractor(provider)
        prompt = build_minimal_prompt("https://snowball.example/")

        result = await extractor.extract_with_prompt(prompt)

        assert result.data == {"name": "Snowball"}
        assert provider.prompts == [prompt]


# =============================================================================
# Providers
# =============================================================================


class TestProviders:
    """OpenAI-compatible provider adapters."""

    def _client(self, content: str | None, choices: bool = True) -> MagicMock:
        response = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=content))] if choices else [],
            usage=SimpleNamespace(prompt_tokens=10, completion_tokens=5, total_tokens=15),
        )
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=response)
        return client

    @pytest.mark.asyncio
    async def test_complete_returns_message_content(self):
        """Test the first choice's content is returned."""
        client = self._client('{"name": "Lindy Shock"}')
        provider = OpenAIProvider(model="gpt-4o-mini", api_key="k", client=client)

        assert await provider.complete("prompt") == '{"name": "Lindy Shock"}'

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["messages"] == [{"role": "user", "content": "prompt"}]
        assert kwargs["max_tokens"] == 4000

    @pytest.mark.asyncio
    async def test_no_choices_raises(self):
        """Test an empty choices list raises ExternalServiceError."""
        provider = OpenAIProvider(model="m", client=self._client(None, choices=False))

        with pytest.raises(ExternalServiceError):
            await provider.complete("prompt")

    @pytest.mark.asyncio
    async def test_health_check_lists_models(self):
        client = MagicMock()
        client.models.list = AsyncMock(return_value=[])

        assert await OpenAIProvider(model="m", client=client).health_check() is True
        client.models.list.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_health_check_failure_is_false(self):
        """Test an unreachable provider reports unhealthy instead of raising."""
        client = MagicMock()
        client.models.list = AsyncMock(side_effect=ConnectionError("refused"))

        assert await OpenAIProvider(model="m", client=client).health_check() is False

    def test_create_provider_from_settings(self, settings):
        """Test the configured provider class and defaults are used."""
        provider = create_provider(settings)

        assert isinstance(provider, AnthropicProvider)
        assert provider.api_url == AnthropicProvider.DEFAULT_URL
        assert provider.max_tokens == 4000

    def test_custom_provider_requires_url(self, settings):
        """Test the custom provider needs an explicit base URL."""
        with pytest.raises(ValueError, match="ai_api_url"):
            create_provider(settings.model_copy(update={"ai_provider": "custom"}))

        provider = create_provider(settings.model_copy(
            update={"ai_provider": "custom", "ai_api_url": "http://llm.internal:8000/v1"}
        ))
        assert isinstance(provider, CustomProvider)
        assert provider.api_url == "http://llm.internal:8000/v1"
