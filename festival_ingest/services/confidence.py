"""
Confidence scoring for extracted festival data.

Weighted completeness over required and optional fields, adjusted for date
consistency and a usable website, normalized to [0, 1].
"""

from urllib.parse import urlparse

from festival_ingest.core.models import FestivalData

REQUIRED_WEIGHTS = {
    "name": 0.20,
    "start_date": 0.20,
    "end_date": 0.10,
    "venue.name": 0.15,
    "venue.city": 0.10,
    "venue.country": 0.10,
}

OPTIONAL_WEIGHTS = {
    "description": 0.05,
    "website": 0.05,
    "registration_url": 0.05,
    "teachers": 0.02,
    "musicians": 0.02,
    "prices": 0.03,
    "tags": 0.03,
}

MAX_SCORE = sum(REQUIRED_WEIGHTS.values()) + sum(OPTIONAL_WEIGHTS.values())

DATE_ORDER_BONUS = 0.05
DATE_ORDER_PENALTY = 0.10
VALID_WEBSITE_BONUS = 0.02


def _field_value(data: FestivalData, path: str):
    value = data
    for part in path.split("."):
        value = getattr(value, part, None)
        if value is None:
            return None
    return value


def _is_present(value) -> bool:
    if value is None:
        return False
    if isinstance(value, (str, list, tuple)):
        return len(value) > 0
    return True


def is_valid_web_url(value: str | None) -> bool:
    if not value:
        return False
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def calculate_confidence(data: FestivalData) -> float:
    """Score how trustworthy/complete an extraction looks, in [0, 1]."""
    score = 0.0
    for path, weight in (*REQUIRED_WEIGHTS.items(), *OPTIONAL_WEIGHTS.items()):
        if _is_present(_field_value(data, path)):
            score += weight

    if data.start_date and data.end_date:
        if data.start_date <= data.end_date:
            score += DATE_ORDER_BONUS
        else:
            score -= DATE_ORDER_PENALTY

    if is_valid_web_url(data.website):
        score += VALID_WEBSITE_BONUS

    return min(max(score / MAX_SCORE, 0.0), 1.0)
