"""
Festival ingestion pipeline.

Two entry points, both of which always return a result object and never
raise:
- scrape_festival_url: URL check, crawl, AI extraction, normalization, scoring
- import_festival_data: validation, duplicate check, transactional import

All collaborators are passed in; ``FestivalPipeline.from_settings`` wires
the default ones.
"""

import time
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from festival_ingest.core.config import Settings, get_settings
from festival_ingest.core.exceptions import FestivalIngestError
from festival_ingest.core.logging import bind_pipeline_context
from festival_ingest.core.models import FestivalData, PipelineStage
from festival_ingest.db.database import create_engine, create_session_factory
from festival_ingest.services.ai.interface import CompletionProvider
from festival_ingest.services.ai.providers import create_provider
from festival_ingest.services.circuit_breaker import CircuitBreakerRegistry
from festival_ingest.services.confidence import calculate_confidence
from festival_ingest.services.duplicates import DatabaseDuplicateDetector, DuplicateDetector
from festival_ingest.services.extraction import FestivalExtractor, normalize_festival_data
from festival_ingest.services.geocoding import Geocoder, GoogleGeocoder
from festival_ingest.services.importer import FestivalImporter, ImportOptions, ImportResult
from festival_ingest.services.progress import LoggingProgressNotifier, ProgressNotifier, SafeNotifier
from festival_ingest.services.url_guard import UrlGuard
from festival_ingest.services.validation import ValidationEngine
from festival_ingest.services.web_crawler import WebCrawler

logger = structlog.get_logger()

INTERNAL_ERROR_MESSAGE = "An unexpected error occurred"


@dataclass
class ScrapeMetadata:
    url: str
    timestamp: datetime
    processing_time_ms: int = 0
    pages_explored: int = 0


@dataclass
class ScrapeResult:
    success: bool
    metadata: ScrapeMetadata
    data: FestivalData | None = None
    confidence: float = 0.0
    error: str | None = None
    error_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "data": self.data.model_dump(mode="json") if self.data else None,
            "confidence": round(self.confidence, 3),
            "error": self.error,
            "error_code": self.error_code,
            "metadata": {
                **asdict(self.metadata),
                "timestamp": self.metadata.timestamp.isoformat(),
            },
        }


@dataclass
class _OwnedResources:
    http_client: httpx.AsyncClient | None = None
    engine: AsyncEngine | None = None


class FestivalPipeline:
    """Scrape and import festivals."""

    def __init__(
        self,
        settings: Settings,
        url_guard: UrlGuard,
        crawler: WebCrawler,
        extractor: FestivalExtractor,
        importer: FestivalImporter,
        notifier: ProgressNotifier | None = None,
    ):
        self.settings = settings
        self.url_guard = url_guard
        self.crawler = crawler
        self.extractor = extractor
        self.importer = importer
        self.notifier = notifier or LoggingProgressNotifier()
        self._owned = _OwnedResources()
        self.log = logger.bind(component="FestivalPipeline")

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        provider: CompletionProvider | None = None,
        geocoder: Geocoder | None = None,
        duplicate_detector: DuplicateDetector | None = None,
        notifier: ProgressNotifier | None = None,
        breakers: CircuitBreakerRegistry | None = None,
    ) -> "FestivalPipeline":
        """Wire the default collaborators; anything passed in is used as-is."""
        settings = settings or get_settings()
        owned = _OwnedResources()

        if http_client is None:
            http_client = httpx.AsyncClient(
                timeout=settings.http_request_timeout,
                headers={"User-Agent": settings.crawler_user_agent},
            )
            owned.http_client = http_client

        if session_factory is None:
            owned.engine = create_engine(settings)
            session_factory = create_session_factory(owned.engine)

        breakers = breakers or CircuitBreakerRegistry.from_settings(settings)
        url_guard = UrlGuard.from_settings(settings)

        crawler = WebCrawler(
            http_client,
            url_guard,
            breaker=breakers.http,
            max_pages=settings.crawler_max_pages,
            timeout=settings.crawler_timeout,
            user_agent=settings.crawler_user_agent,
        )
        extractor = FestivalExtractor(provider or create_provider(settings), breaker=breakers.extraction)

        if geocoder is None:
            geocoder = GoogleGeocoder(
                http_client,
                settings.google_maps_api_key,
                breaker=breakers.geocoding,
                cache_ttl=settings.geocoding_cache_ttl,
                batch_size=settings.geocoding_batch_size,
                batch_delay=settings.geocoding_batch_delay,
            )

        importer = FestivalImporter(
            session_factory,
            ValidationEngine(block_severity=settings.validation_block_severity),
            duplicate_detector=duplicate_detector or DatabaseDuplicateDetector(session_factory),
            geocoder=geocoder,
        )

        pipeline = cls(settings, url_guard, crawler, extractor, importer, notifier=notifier)
        pipeline._owned = owned
        return pipeline

    async def aclose(self) -> None:
        """Close the HTTP client and engine this pipeline created itself."""
        if self._owned.http_client is not None:
            await self._owned.http_client.aclose()
        if self._owned.engine is not None:
            await self._owned.engine.dispose()

    async def __aenter__(self) -> "FestivalPipeline":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # =========================================================================
    # Scrape
    # =========================================================================

    async def scrape_festival_url(self, url: str, session_id: str | None = None) -> ScrapeResult:
        """Crawl ``url`` and extract festival data. Never raises."""
        started = time.perf_counter()
        metadata = ScrapeMetadata(url=url, timestamp=datetime.now(UTC))
        notify = SafeNotifier(self.notifier, session_id)

        def finish(result: ScrapeResult) -> ScrapeResult:
            metadata.processing_time_ms = int((time.perf_counter() - started) * 1000)
            return result

        with bind_pipeline_context("scrape", session_id, source_url=url[:200]):
            try:
                result = await self._scrape(url, metadata, notify)
            except FestivalIngestError as e:
                self.log.warning("scrape_failed", error=e.message, code=e.code)
                await notify.error(e.code, e.message)
                return finish(ScrapeResult(
                    success=False, metadata=metadata, error=e.message, error_code=e.code,
                ))
            except Exception:
                self.log.exception("scrape_unexpected_error")
                await notify.error("INTERNAL_ERROR", INTERNAL_ERROR_MESSAGE)
                return finish(ScrapeResult(
                    success=False, metadata=metadata,
                    error=INTERNAL_ERROR_MESSAGE, error_code="INTERNAL_ERROR",
                ))

            finish(result)
            if result.success:
                await notify.completion(result.to_dict(), f"Extracted {result.data.name}")
            else:
                await notify.error(result.error_code or "EXTRACTION_ERROR", result.error or "")
            self.log.info(
                "scrape_complete",
                success=result.success,
                confidence=round(result.confidence, 3),
                pages_explored=metadata.pages_explored,
                processing_time_ms=metadata.processing_time_ms,
            )
            return result

    async def _scrape(self, url: str, metadata: ScrapeMetadata, notify: SafeNotifier) -> ScrapeResult:
        safe_url = await self.url_guard.ensure_safe(url)
        metadata.url = safe_url

        await notify.progress(PipelineStage.FETCHING, 10, "Fetching festival website")
        exploration = await self.crawler.fetch_with_exploration(safe_url)
        metadata.pages_explored = exploration.pages_explored
        await notify.progress(
            PipelineStage.EXPLORING, 30, f"Explored {exploration.pages_explored} pages"
        )

        await notify.progress(PipelineStage.EXTRACTING, 50, "Extracting festival data")
        extraction = await self.extractor.extract(exploration.content, safe_url)
        if not extraction.success:
            return ScrapeResult(
                success=False,
                metadata=metadata,
                error=extraction.error,
                error_code=extraction.error_code or "EXTRACTION_ERROR",
            )

        festival = normalize_festival_data(
            extraction.data,
            source_url=safe_url,
            default_missing_dates_to_today=self.settings.default_missing_dates_to_today,
        )

        await notify.progress(PipelineStage.SCORING, 80, "Scoring extraction")
        confidence = calculate_confidence(festival)
        if confidence < self.settings.confidence_threshold:
            self.log.warning(
                "low_confidence_extraction",
                confidence=round(confidence, 3),
                threshold=self.settings.confidence_threshold,
            )

        await notify.progress(PipelineStage.COMPLETED, 100, "Extraction complete", confidence)
        return ScrapeResult(success=True, metadata=metadata, data=festival, confidence=confidence)

    # =========================================================================
    # Import
    # =========================================================================

    async def import_festival_data(
        self,
        data: FestivalData | Mapping[str, Any],
        options: ImportOptions | None = None,
        session_id: str | None = None,
    ) -> ImportResult:
        """Validate and persist festival data. Never raises."""
        notify = SafeNotifier(self.notifier, session_id)

        with bind_pipeline_context("import", session_id):
            try:
                result = await self.importer.import_festival(data, options, notifier=notify)
            except Exception:
                self.log.exception("import_unexpected_error")
                await notify.error("INTERNAL_ERROR", INTERNAL_ERROR_MESSAGE)
                return ImportResult(
                    success=False, errors=[INTERNAL_ERROR_MESSAGE], error_code="INTERNAL_ERROR"
                )

            if result.success:
                await notify.progress(PipelineStage.COMPLETED, 100, "Import complete")
                await notify.completion(result.to_dict(), f"Imported festival {result.festival_id}")
            else:
                await notify.error(result.error_code or "IMPORT_ERROR", "; ".join(result.errors))
            return result
