"""
Extraction Package

- FestivalExtractor: prompt building, provider call, JSON parsing
- normalize_festival_data: raw model output to FestivalData
"""

from festival_ingest.services.extraction.extractor import (
    ExtractionResult,
    FestivalExtractor,
    parse_json_object,
)
from festival_ingest.services.extraction.normalizer import normalize_festival_data, parse_date

__all__ = [
    "ExtractionResult",
    "FestivalExtractor",
    "normalize_festival_data",
    "parse_date",
    "parse_json_object",
]
