"""
Core models and types for Festival Ingest.

Enums shared by the services and the ORM layer, plus the immutable
value objects that flow through the scrape/import pipeline.
"""

from datetime import date
from enum import Enum, IntEnum

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Enums
# =============================================================================


class Severity(IntEnum):
    """Validation issue severity. Ordered, so thresholds compare directly."""
    INFO = 10
    WARNING = 20
    ERROR = 30
    CRITICAL = 40

    @property
    def label(self) -> str:
        return self.name.lower()


class PriceType(str, Enum):
    EARLY_BIRD = "early_bird"
    REGULAR = "regular"
    LATE = "late"
    STUDENT = "student"
    LOCAL = "local"
    VIP = "vip"
    DONATION = "donation"


class Currency(str, Enum):
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    CHF = "CHF"


class MatchType(str, Enum):
    """Duplicate match strength."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class PipelineStage(str, Enum):
    """Stages reported on the progress channel."""
    FETCHING = "fetching"
    EXPLORING = "exploring"
    EXTRACTING = "extracting"
    SCORING = "scoring"
    VALIDATING = "validating"
    DUPLICATES = "duplicates"
    GEOCODING = "geocoding"
    IMPORTING = "importing"
    COMPLETED = "completed"


# =============================================================================
# Base Models
# =============================================================================


class BaseSchema(BaseModel):
    """Base schema with common configuration."""
    model_config = ConfigDict(from_attributes=True)


class FrozenSchema(BaseModel):
    """Immutable value object. Stages derive copies via ``model_copy``."""
    model_config = ConfigDict(frozen=True, from_attributes=True)


# =============================================================================
# Festival Data (value objects)
# =============================================================================


class VenueData(FrozenSchema):
    name: str
    address: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    postal_code: str | None = None
    latitude: float | None = None
    longitude: float | None = None


class TeacherData(FrozenSchema):
    name: str
    specialties: list[str] = Field(default_factory=list)


class MusicianData(FrozenSchema):
    name: str
    genres: list[str] = Field(default_factory=list)


class PriceData(FrozenSchema):
    type: PriceType = PriceType.REGULAR
    amount: float = 0.0
    currency: Currency = Currency.USD
    deadline: date | None = None
    description: str | None = None


class FestivalData(FrozenSchema):
    """Structured festival record produced by extraction + normalization."""
    name: str
    description: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    timezone: str | None = None
    registration_deadline: date | None = None
    website: str | None = None
    registration_url: str | None = None
    email: str | None = None
    phone: str | None = None
    facebook: str | None = None
    instagram: str | None = None
    source_url: str | None = None
    venue: VenueData | None = None
    teachers: list[TeacherData] = Field(default_factory=list)
    musicians: list[MusicianData] = Field(default_factory=list)
    prices: list[PriceData] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
