"""
Festival data normalizer.

Turns the loosely-typed JSON a model returns into a FestivalData value.
Every field is coerced on its own: bad values are dropped or replaced by
a default, never raised on. Keys are accepted in camelCase (as the prompt
asks for) and snake_case.
"""

import math
import re
from datetime import date, datetime
from typing import Any

import structlog

from festival_ingest.core.models import (
    Currency,
    FestivalData,
    MusicianData,
    PriceData,
    PriceType,
    TeacherData,
    VenueData,
)
from festival_ingest.core.sanitize import clean_string

logger = structlog.get_logger()


# =============================================================================
# Limits and defaults
# =============================================================================

MAX_TEACHERS = 20
MAX_MUSICIANS = 20
MAX_SPECIALTIES = 10
MAX_GENRES = 10
MAX_TAGS = 50
MAX_PRICES = 10

DEFAULT_FESTIVAL_NAME = "Unknown Festival"
DEFAULT_VENUE_NAME = "Unknown Venue"
DEFAULT_TEACHER_NAME = "Unknown Teacher"
DEFAULT_MUSICIAN_NAME = "Unknown Musician"

DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d.%m.%Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
    "%d %b %Y",
)

LEADING_NUMBER = re.compile(r"^\s*[-+]?\d+(?:[.,]\d+)?")


# =============================================================================
# Field coercion
# =============================================================================


def _pick(raw: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def parse_date(value: Any) -> date | None:
    """Best-effort date parsing; None when unparsable."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def _parse_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = LEADING_NUMBER.match(value)
        if not match:
            return None
        number = float(match.group(0).replace(",", "."))
    else:
        return None
    return None if math.isnan(number) or math.isinf(number) else number


def _coordinate(value: Any, limit: float) -> float | None:
    number = _parse_float(value)
    if number is None or not -limit <= number <= limit:
        return None
    return number


def _string_list(value: Any, cap: int) -> list[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    items = (clean_string(v, max_length=100) for v in value)
    return [v for v in items if v][:cap]


def _price_type(value: Any) -> PriceType:
    if isinstance(value, str):
        key = re.sub(r"[\s-]+", "_", value.strip().lower())
        try:
            return PriceType(key)
        except ValueError:
            pass
    return PriceType.REGULAR


def _currency(value: Any) -> Currency:
    if isinstance(value, str):
        try:
            return Currency(value.strip().upper())
        except ValueError:
            pass
    return Currency.USD


# =============================================================================
# Nested records
# =============================================================================


def _normalize_venue(raw: Any) -> VenueData | None:
    if not isinstance(raw, dict):
        return None
    return VenueData(
        name=clean_string(raw.get("name")) or DEFAULT_VENUE_NAME,
        address=clean_string(raw.get("address")),
        city=clean_string(raw.get("city")),
        state=clean_string(raw.get("state")),
        country=clean_string(raw.get("country")),
        postal_code=clean_string(_pick(raw, "postalCode", "postal_code")),
        latitude=_coordinate(raw.get("latitude"), 90),
        longitude=_coordinate(raw.get("longitude"), 180),
    )


def _normalize_teachers(raw: Any) -> list[TeacherData]:
    if not isinstance(raw, list):
        return []
    teachers = []
    for item in raw[:MAX_TEACHERS]:
        if isinstance(item, str):
            item = {"name": item}
        if not isinstance(item, dict):
            continue
        teachers.append(TeacherData(
            name=clean_string(item.get("name")) or DEFAULT_TEACHER_NAME,
            specialties=_string_list(
                _pick(item, "specialties", "specializations"), MAX_SPECIALTIES
            ),
        ))
    return teachers


def _normalize_musicians(raw: Any) -> list[MusicianData]:
    if not isinstance(raw, list):
        return []
    musicians = []
    for item in raw[:MAX_MUSICIANS]:
        if isinstance(item, str):
            item = {"name": item}
        if not isinstance(item, dict):
            continue
        musicians.append(MusicianData(
            name=clean_string(item.get("name")) or DEFAULT_MUSICIAN_NAME,
            genres=_string_list(_pick(item, "genres", "genre"), MAX_GENRES),
        ))
    return musicians


def _normalize_prices(raw: Any) -> list[PriceData]:
    if not isinstance(raw, list):
        return []
    prices = []
    for item in raw[:MAX_PRICES]:
        if not isinstance(item, dict):
            continue
        amount = _parse_float(item.get("amount"))
        prices.append(PriceData(
            type=_price_type(item.get("type")),
            amount=amount if amount is not None and amount >= 0 else 0.0,
            currency=_currency(item.get("currency")),
            deadline=parse_date(item.get("deadline")),
            description=clean_string(item.get("description")),
        ))
    return prices


# =============================================================================
# Entry point
# =============================================================================


def normalize_festival_data(
    raw: dict[str, Any],
    source_url: str | None = None,
    default_missing_dates_to_today: bool = True,
    today: date | None = None,
) -> FestivalData:
    """Coerce raw extraction output into FestivalData.

    Args:
        raw: Decoded JSON object from the model
        source_url: URL the content was crawled from
        default_missing_dates_to_today: Fill a missing start date with today
            and a missing end date with the start date
        today: Override for the current date (tests)

    Returns:
        Normalized, immutable FestivalData
    """
    start_date = parse_date(_pick(raw, "startDate", "start_date"))
    end_date = parse_date(_pick(raw, "endDate", "end_date"))

    if default_missing_dates_to_today and (start_date is None or end_date is None):
        today = today or date.today()
        logger.warning(
            "missing_date_defaulted",
            source_url=source_url,
            start_missing=start_date is None,
            end_missing=end_date is None,
        )
        start_date = start_date or today
        end_date = end_date or start_date

    # Kept as extracted; ValidationEngine rejects the range with INVALID_DATE_RANGE
    if start_date and end_date and end_date < start_date:
        logger.warning(
            "invalid_date_range",
            source_url=source_url,
            start_date=start_date.isoformat(),
            end_date=end_date.isoformat(),
        )

    return FestivalData(
        name=clean_string(raw.get("name")) or DEFAULT_FESTIVAL_NAME,
        description=clean_string(raw.get("description")),
        start_date=start_date,
        end_date=end_date,
        timezone=clean_string(raw.get("timezone"), max_length=100),
        registration_deadline=parse_date(_pick(raw, "registrationDeadline", "registration_deadline")),
        website=clean_string(raw.get("website")),
        registration_url=clean_string(_pick(raw, "registrationUrl", "registration_url")),
        email=clean_string(raw.get("email")),
        phone=clean_string(raw.get("phone")),
        facebook=clean_string(raw.get("facebook")),
        instagram=clean_string(raw.get("instagram")),
        source_url=source_url or clean_string(_pick(raw, "sourceUrl", "source_url")),
        venue=_normalize_venue(raw.get("venue")),
        teachers=_normalize_teachers(raw.get("teachers")),
        musicians=_normalize_musicians(raw.get("musicians")),
        prices=_normalize_prices(raw.get("prices")),
        tags=_string_list(raw.get("tags"), MAX_TAGS),
    )
