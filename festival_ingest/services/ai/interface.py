"""
Completion Provider Interface

Abstract base class defining the contract that all AI providers must implement.
"""

from abc import ABC, abstractmethod


class CompletionProvider(ABC):
    """Abstract interface for AI providers.

    The extraction client only needs prompt in, text out. Providers raise
    on transport or API errors; the caller wraps them in a circuit breaker.
    """

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        """Send a single-turn prompt and return the model's text response.

        Args:
            prompt: Full prompt including the content to extract from

        Returns:
            Raw response text
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the provider is reachable and working.

        Returns:
            True if provider is healthy, False otherwise
        """
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get the provider name for logging."""
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Get the model name being used."""
        pass
