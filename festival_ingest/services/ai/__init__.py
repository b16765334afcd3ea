"""
AI Service Package

Provider abstraction for the extraction client:
- CompletionProvider interface (prompt in, text out)
- OpenAI-compatible adapters (Anthropic, OpenAI, custom endpoints)
"""

from festival_ingest.services.ai.interface import CompletionProvider
from festival_ingest.services.ai.providers import PROVIDER_REGISTRY, create_provider

__all__ = [
    "CompletionProvider",
    "PROVIDER_REGISTRY",
    "create_provider",
]
