"""
Exception hierarchy for Festival Ingest.

Every error carries a stable ``code`` so pipeline entry points can turn it
into a failure result without inspecting message text.
"""

from typing import Any


class FestivalIngestError(Exception):
    """Base exception for all festival ingest errors."""

    code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        if code:
            self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class SecurityError(FestivalIngestError):
    """URL or content rejected by a security check."""

    code = "SECURITY_ERROR"


class ValidationError(FestivalIngestError):
    """Input failed schema or business-rule validation."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None, details: dict[str, Any] | None = None):
        self.field = field
        super().__init__(message, details=details)


class ExternalServiceError(FestivalIngestError):
    """A dependency (AI provider, geocoder, remote site) failed."""

    code = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, message: str, service: str, details: dict[str, Any] | None = None):
        self.service = service
        super().__init__(message, details=details)


class CircuitOpenError(ExternalServiceError):
    """Call short-circuited because the dependency's breaker is open."""

    def __init__(self, service: str, retry_after: float):
        self.retry_after = retry_after
        super().__init__(
            f"Service {service} temporarily unavailable. Circuit breaker open. "
            f"Retry after {int(retry_after)}s.",
            service=service,
            details={"retry_after": int(retry_after)},
        )


class FetchError(ExternalServiceError):
    """Page could not be retrieved or had no usable content."""

    def __init__(self, message: str, url: str | None = None):
        self.url = url
        super().__init__(message, service="http", details={"url": url} if url else None)


class ConflictError(FestivalIngestError):
    """Import would duplicate an existing festival."""

    code = "CONFLICT_ERROR"


class DatabaseError(FestivalIngestError):
    """Custom database error for better error handling"""

    code = "DATABASE_ERROR"

    def __init__(self, message: str, original_error: Exception | None = None):
        self.original_error = original_error
        super().__init__(message)


class OperationTimeoutError(FestivalIngestError):
    """An operation exceeded its deadline."""

    code = "TIMEOUT_ERROR"


class FetchTimeoutError(OperationTimeoutError):
    """The shared crawl deadline expired."""
