"""
Festival Extractor

Sends crawled content to the configured completion provider and pulls the
festival JSON object out of the response. Failures come back as
``ExtractionResult(success=False)``; nothing is retried here.
"""

import json
import re
from dataclasses import dataclass
from typing import Any

import structlog

from festival_ingest.core.exceptions import FestivalIngestError
from festival_ingest.services.ai.interface import CompletionProvider
from festival_ingest.services.circuit_breaker import CircuitBreaker
from festival_ingest.services.extraction.prompts import build_extraction_prompt

logger = structlog.get_logger()

# First "{" through last "}" of the response
JSON_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)


class ResponseParseError(ValueError):
    """Model response did not contain a usable JSON object."""


@dataclass
class ExtractionResult:
    success: bool
    data: dict[str, Any] | None = None
    raw_response: str | None = None
    error: str | None = None
    error_code: str | None = None


def parse_json_object(text: str) -> dict[str, Any]:
    """Extract and decode the brace-delimited JSON object in ``text``.

    Raises:
        ResponseParseError: No object found, invalid JSON, or not an object
    """
    match = JSON_OBJECT_PATTERN.search(text or "")
    if not match:
        raise ResponseParseError("No valid JSON found in response")

    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ResponseParseError(f"Invalid JSON in response: {e.msg}") from e

    if not isinstance(parsed, dict):
        raise ResponseParseError("Response JSON is not an object")
    return parsed


class FestivalExtractor:
    """AI extraction client guarded by a circuit breaker."""

    def __init__(self, provider: CompletionProvider, breaker: CircuitBreaker | None = None):
        self.provider = provider
        self.breaker = breaker
        self.log = logger.bind(component="FestivalExtractor")

    async def extract(self, content: str, source_url: str) -> ExtractionResult:
        prompt = build_extraction_prompt(content, source_url)
        return await self.extract_with_prompt(prompt)

    async def extract_with_prompt(self, prompt: str) -> ExtractionResult:
        """Run an already-built prompt (retry/minimal variants) through the provider."""
        try:
            if self.breaker is None:
                response = await self.provider.complete(prompt)
            else:
                response = await self.breaker.call(lambda: self.provider.complete(prompt))
        except FestivalIngestError as e:
            self.log.warning("extraction_call_failed", error=e.message, code=e.code)
            return ExtractionResult(success=False, error=e.message, error_code=e.code)
        except Exception as e:
            self.log.warning("extraction_call_failed", error=str(e), error_type=type(e).__name__)
            return ExtractionResult(
                success=False,
                error=f"AI provider error: {e}",
                error_code="EXTERNAL_SERVICE_ERROR",
            )

        try:
            data = parse_json_object(response)
        except ResponseParseError as e:
            self.log.warning("extraction_parse_failed", error=str(e), response_len=len(response or ""))
            return ExtractionResult(
                success=False,
                raw_response=response,
                error=str(e),
                error_code="EXTRACTION_PARSE_ERROR",
            )

        self.log.info("extraction_parsed", keys=sorted(data.keys()))
        return ExtractionResult(success=True, data=data, raw_response=response)
