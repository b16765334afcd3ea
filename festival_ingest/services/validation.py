"""
Validation engine for festival data.

Three passes over a festival record:
1. Structural: pydantic schema (types, ranges, URL/email formats)
2. Business rules: dates, durations, prices, people metadata
3. Quality: completeness and plausibility warnings

Each finding is a ValidationIssue with an ordered Severity. A report is
valid when no issue reaches the configured blocking severity.
"""

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any

import structlog
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as SchemaError

from festival_ingest.core.models import (
    Currency,
    FestivalData,
    MusicianData,
    PriceData,
    PriceType,
    Severity,
    TeacherData,
    VenueData,
)
from festival_ingest.core.sanitize import contains_dangerous_content
from festival_ingest.services.confidence import is_valid_web_url

logger = structlog.get_logger()

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^\+?[\d\s\-().]+$")

MAX_AGE_DAYS = 365
MAX_DURATION_DAYS = 30
MIN_COMPLETENESS = 0.5
MIN_DESCRIPTION_LENGTH = 50


# =============================================================================
# Schema
# =============================================================================


def _aliases(name: str, camel: str) -> AliasChoices:
    return AliasChoices(name, camel)


class _Schema(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class VenueSchema(_Schema):
    name: str = Field(min_length=1)
    address: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    postal_code: str | None = Field(None, validation_alias=_aliases("postal_code", "postalCode"))
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)


class TeacherSchema(_Schema):
    name: str = Field(min_length=1)
    specialties: list[str] = Field(
        default_factory=list, validation_alias=_aliases("specialties", "specializations")
    )


class MusicianSchema(_Schema):
    name: str = Field(min_length=1)
    genres: list[str] = Field(default_factory=list, validation_alias=_aliases("genres", "genre"))


class PriceSchema(_Schema):
    type: PriceType
    amount: float
    currency: Currency
    deadline: date | None = None
    description: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def lower_type(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("currency", mode="before")
    @classmethod
    def upper_currency(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v


class FestivalSchema(_Schema):
    """Structural contract for a festival record (camelCase or snake_case keys)."""

    name: str = Field(min_length=1)
    description: str | None = None
    start_date: date = Field(validation_alias=_aliases("start_date", "startDate"))
    end_date: date = Field(validation_alias=_aliases("end_date", "endDate"))
    timezone: str | None = None
    registration_deadline: date | None = Field(
        None, validation_alias=_aliases("registration_deadline", "registrationDeadline")
    )
    website: str | None = None
    registration_url: str | None = Field(
        None, validation_alias=_aliases("registration_url", "registrationUrl")
    )
    email: str | None = None
    phone: str | None = None
    facebook: str | None = None
    instagram: str | None = None
    source_url: str | None = Field(None, validation_alias=_aliases("source_url", "sourceUrl"))
    venue: VenueSchema | None = None
    teachers: list[TeacherSchema] = Field(default_factory=list)
    musicians: list[MusicianSchema] = Field(default_factory=list)
    prices: list[PriceSchema] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)

    @field_validator("website", "registration_url")
    @classmethod
    def check_web_url(cls, v: str | None) -> str | None:
        if v and not is_valid_web_url(v):
            raise ValueError("must be a valid http(s) URL")
        return v or None

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str | None) -> str | None:
        if v and not EMAIL_PATTERN.match(v):
            raise ValueError("must be a valid email address")
        return v or None


# =============================================================================
# Report types
# =============================================================================


@dataclass
class ValidationIssue:
    field: str
    message: str
    severity: Severity
    code: str

    def to_dict(self) -> dict[str, str]:
        return {
            "field": self.field,
            "message": self.message,
            "severity": self.severity.label,
            "code": self.code,
        }


@dataclass
class ValidationReport:
    is_valid: bool
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)
    confidence: float = 0.0
    completeness: float = 0.0
    normalized_data: FestivalData | None = None

    @property
    def issues(self) -> list[ValidationIssue]:
        return [*self.errors, *self.warnings]


def _loc_to_path(loc: tuple[Any, ...]) -> str:
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path or "root"


def _normalize_terms(values: list[str]) -> list[str]:
    """Lower-case, trim, drop empties and duplicates (order kept)."""
    seen: dict[str, None] = {}
    for value in values:
        term = value.strip().lower()
        if term:
            seen.setdefault(term, None)
    return list(seen)


# =============================================================================
# Validation Engine
# =============================================================================


class ValidationEngine:
    """Schema, business-rule and quality validation for festival records."""

    def __init__(
        self,
        block_severity: Severity = Severity.ERROR,
        today: Callable[[], date] = date.today,
    ):
        self.block_severity = block_severity
        self._today = today
        self.log = logger.bind(component="ValidationEngine")

    def validate(self, data: FestivalData | Mapping[str, Any]) -> ValidationReport:
        if isinstance(data, FestivalData):
            raw = data.model_dump(mode="json")
        elif isinstance(data, Mapping):
            raw = dict(data)
        else:
            issue = ValidationIssue("root", "Festival data must be an object", Severity.CRITICAL, "SCHEMA_VALIDATION")
            return ValidationReport(is_valid=False, errors=[issue])

        issues: list[ValidationIssue] = []
        parsed: FestivalSchema | None = None

        try:
            parsed = FestivalSchema.model_validate(raw)
        except SchemaError as e:
            for err in e.errors():
                issues.append(ValidationIssue(
                    field=_loc_to_path(err["loc"]),
                    message=err["msg"],
                    severity=Severity.ERROR,
                    code="SCHEMA_VALIDATION",
                ))

        normalized = None
        completeness = 0.0
        if parsed is not None:
            normalized = self._normalize(parsed)
            issues.extend(self._check_structure(normalized))
            issues.extend(self._check_business_rules(normalized))
            completeness = self.completeness(normalized)
            issues.extend(self._check_quality(normalized, completeness))

        errors = [i for i in issues if i.severity >= Severity.ERROR]
        warnings = [i for i in issues if i.severity < Severity.ERROR]
        is_valid = not any(i.severity >= self.block_severity for i in issues)
        confidence = self._confidence(issues, completeness, normalized)

        self.log.info(
            "validation_complete",
            is_valid=is_valid,
            errors=len(errors),
            warnings=len(warnings),
            confidence=round(confidence, 3),
        )

        return ValidationReport(
            is_valid=is_valid,
            errors=errors,
            warnings=warnings,
            confidence=confidence,
            completeness=completeness,
            normalized_data=normalized,
        )

    # =========================================================================
    # Passes
    # =========================================================================

    def _check_structure(self, data: FestivalData) -> list[ValidationIssue]:
        issues = []
        if data.start_date and data.end_date and data.end_date < data.start_date:
            issues.append(ValidationIssue(
                "end_date", "End date must not be before start date",
                Severity.ERROR, "INVALID_DATE_RANGE",
            ))

        for name in ("name", "description"):
            value = getattr(data, name)
            if value and contains_dangerous_content(value):
                issues.append(ValidationIssue(
                    name, "Contains potentially dangerous content",
                    Severity.ERROR, "UNSAFE_CONTENT",
                ))
        return issues

    def _check_business_rules(self, data: FestivalData) -> list[ValidationIssue]:
        issues = []
        today = self._today()

        if data.start_date and data.start_date < today - timedelta(days=MAX_AGE_DAYS):
            issues.append(ValidationIssue(
                "start_date", f"Festival started more than {MAX_AGE_DAYS} days ago",
                Severity.WARNING, "DATE_TOO_OLD",
            ))

        if data.start_date and data.end_date and (data.end_date - data.start_date).days > MAX_DURATION_DAYS:
            issues.append(ValidationIssue(
                "end_date", f"Festival lasts longer than {MAX_DURATION_DAYS} days",
                Severity.WARNING, "DURATION_TOO_LONG",
            ))

        for i, teacher in enumerate(data.teachers):
            if not teacher.specialties:
                issues.append(ValidationIssue(
                    f"teachers[{i}].specialties", f"Teacher {teacher.name} has no specialties",
                    Severity.WARNING, "MISSING_SPECIALTIES",
                ))

        for i, musician in enumerate(data.musicians):
            if not musician.genres:
                issues.append(ValidationIssue(
                    f"musicians[{i}].genres", f"Musician {musician.name} has no genre",
                    Severity.WARNING, "MISSING_GENRE",
                ))

        for i, price in enumerate(data.prices):
            if price.amount <= 0:
                issues.append(ValidationIssue(
                    f"prices[{i}].amount", "Price amount must be positive",
                    Severity.ERROR, "INVALID_PRICE_AMOUNT",
                ))
            if price.deadline and data.start_date and price.deadline > data.start_date:
                issues.append(ValidationIssue(
                    f"prices[{i}].deadline", "Price deadline is after the festival start",
                    Severity.ERROR, "INVALID_DEADLINE",
                ))

        return issues

    def _check_quality(self, data: FestivalData, completeness: float) -> list[ValidationIssue]:
        issues = []

        if data.venue is None or not data.venue.city:
            issues.append(ValidationIssue(
                "venue.city", "Venue city is missing", Severity.WARNING, "MISSING_CITY",
            ))

        if not data.website and not data.registration_url:
            issues.append(ValidationIssue(
                "website", "No website or registration URL", Severity.WARNING, "MISSING_CONTACT_INFO",
            ))

        if completeness < MIN_COMPLETENESS:
            issues.append(ValidationIssue(
                "root", f"Data is only {completeness:.0%} complete",
                Severity.WARNING, "LOW_COMPLETENESS",
            ))

        if "test" in data.name.lower():
            issues.append(ValidationIssue(
                "name", "Festival name looks like test data", Severity.WARNING, "SUSPICIOUS_NAME",
            ))

        if data.phone and not PHONE_PATTERN.match(data.phone):
            issues.append(ValidationIssue(
                "phone", "Phone number format may be invalid", Severity.WARNING, "INVALID_PHONE_FORMAT",
            ))

        if data.description and len(data.description) < MIN_DESCRIPTION_LENGTH:
            issues.append(ValidationIssue(
                "description", "Description is quite short", Severity.INFO, "SHORT_DESCRIPTION",
            ))

        return issues

    # =========================================================================
    # Scoring / normalization
    # =========================================================================

    @staticmethod
    def completeness(data: FestivalData) -> float:
        checks = [data.name, data.description, data.website, data.registration_url]
        if data.venue is not None:
            checks += [data.venue.name, data.venue.address, data.venue.city, data.venue.country]
        checks += [data.teachers, data.musicians, data.prices, data.tags]
        return sum(1 for value in checks if value) / len(checks)

    @staticmethod
    def _confidence(
        issues: list[ValidationIssue],
        completeness: float,
        data: FestivalData | None,
    ) -> float:
        score = 1.0
        for issue in issues:
            if issue.severity == Severity.CRITICAL:
                score -= 0.30
            elif issue.severity == Severity.ERROR:
                score -= 0.15
            elif issue.severity == Severity.WARNING:
                score -= 0.05

        score += 0.10 * completeness
        if data and data.name and data.start_date and data.end_date and data.venue and data.venue.name:
            score += 0.05

        return min(max(score, 0.0), 1.0)

    @staticmethod
    def _normalize(parsed: FestivalSchema) -> FestivalData:
        venue = None
        if parsed.venue is not None:
            venue = VenueData(**parsed.venue.model_dump())

        return FestivalData(
            **parsed.model_dump(exclude={"venue", "teachers", "musicians", "prices", "tags"}),
            venue=venue,
            teachers=[
                TeacherData(name=t.name, specialties=_normalize_terms(t.specialties))
                for t in parsed.teachers
            ],
            musicians=[
                MusicianData(name=m.name, genres=_normalize_terms(m.genres))
                for m in parsed.musicians
            ],
            prices=[PriceData(**p.model_dump()) for p in parsed.prices],
            tags=_normalize_terms(parsed.tags),
        )
