"""
Core package initialization.
"""

from festival_ingest.core.config import Settings, get_settings
from festival_ingest.core.models import (
    Currency,
    FestivalData,
    MatchType,
    MusicianData,
    PipelineStage,
    PriceData,
    PriceType,
    Severity,
    TeacherData,
    VenueData,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Enums
    "Severity",
    "PriceType",
    "Currency",
    "MatchType",
    "PipelineStage",
    # Models
    "FestivalData",
    "VenueData",
    "TeacherData",
    "MusicianData",
    "PriceData",
]
