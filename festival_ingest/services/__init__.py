"""
Services package.

- pipeline: scrape and import entry points
- web_crawler / url_guard: guarded multi-page fetching
- extraction / ai: LLM-backed structured extraction
- confidence / validation / duplicates: scoring and gates before import
- importer / slugs: transactional persistence
- geocoding / circuit_breaker / progress: supporting services
"""

from festival_ingest.services.importer import FestivalImporter, ImportOptions, ImportResult
from festival_ingest.services.pipeline import FestivalPipeline, ScrapeMetadata, ScrapeResult

__all__ = [
    "FestivalImporter",
    "FestivalPipeline",
    "ImportOptions",
    "ImportResult",
    "ScrapeMetadata",
    "ScrapeResult",
]
