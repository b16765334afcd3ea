"""
Duplicate detection for festival imports.

DuplicateDetector is the contract the importer consults before writing.
DatabaseDuplicateDetector compares the candidate against stored events by
exact name, fuzzy name similarity and date overlap.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from difflib import SequenceMatcher

import structlog
from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from festival_ingest.core.models import FestivalData, MatchType
from festival_ingest.db.models import EventModel

logger = structlog.get_logger()

# Similarity thresholds
HIGH_THRESHOLD = 0.85
MEDIUM_THRESHOLD = 0.70
LOW_THRESHOLD = 0.50

NAME_WEIGHT = 0.6
DATE_WEIGHT = 0.4

STOPWORDS = {"the", "and", "for", "with", "festival", "swing", "blues"}

MAX_CANDIDATES = 50


@dataclass
class DuplicateMatch:
    match_type: MatchType
    existing_id: int | None
    existing_name: str
    similarity: float


@dataclass
class DuplicateReport:
    has_duplicates: bool = False
    festivals: list[DuplicateMatch] = field(default_factory=list)

    @property
    def high_matches(self) -> list[DuplicateMatch]:
        return [m for m in self.festivals if m.match_type == MatchType.HIGH]


class DuplicateDetector(ABC):
    """Contract for pre-import duplicate checks."""

    @abstractmethod
    async def detect_duplicates(self, data: FestivalData) -> DuplicateReport:
        pass


class NullDuplicateDetector(DuplicateDetector):
    """Never reports duplicates."""

    async def detect_duplicates(self, data: FestivalData) -> DuplicateReport:
        return DuplicateReport()


# =============================================================================
# Similarity helpers
# =============================================================================


def extract_keywords(text: str) -> list[str]:
    words = re.sub(r"[^\w\s]", " ", text.lower()).split()
    return [w for w in words if len(w) > 2 and w not in STOPWORDS]


def name_similarity(a: str, b: str) -> float:
    """Similarity ratio of two names after case/punctuation folding."""
    def fold(s: str) -> str:
        return " ".join(re.sub(r"[^\w\s]", " ", s.lower()).split())

    left, right = fold(a), fold(b)
    if not left or not right:
        return 0.0
    return SequenceMatcher(None, left, right).ratio()


def date_overlap(start_a: date, end_a: date, start_b: date, end_b: date) -> float:
    """Overlapping days relative to the shorter of the two ranges (inclusive)."""
    overlap = (min(end_a, end_b) - max(start_a, start_b)).days + 1
    if overlap <= 0:
        return 0.0
    shortest = min((end_a - start_a).days, (end_b - start_b).days) + 1
    return min(overlap / shortest, 1.0) if shortest > 0 else 0.0


def classify(similarity: float, with_dates: bool) -> MatchType | None:
    if similarity >= HIGH_THRESHOLD:
        return MatchType.HIGH
    if similarity >= MEDIUM_THRESHOLD:
        return MatchType.MEDIUM
    if with_dates and similarity >= LOW_THRESHOLD:
        return MatchType.LOW
    return None


# =============================================================================
# Database-backed detector
# =============================================================================


class DatabaseDuplicateDetector(DuplicateDetector):
    """Finds similar festivals among persisted events.

    Best-effort: a failing lookup is logged and reported as no duplicates.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self.log = logger.bind(component="DuplicateDetector")

    async def detect_duplicates(self, data: FestivalData) -> DuplicateReport:
        try:
            async with self.session_factory() as session:
                matches = await self._find_matches(session, data)
        except Exception as e:
            self.log.error("duplicate_detection_failed", error=str(e), festival=data.name)
            return DuplicateReport()

        matches.sort(key=lambda m: m.similarity, reverse=True)
        self.log.info(
            "duplicate_detection_complete",
            festival=data.name,
            matches=len(matches),
            high=sum(1 for m in matches if m.match_type == MatchType.HIGH),
        )
        return DuplicateReport(has_duplicates=bool(matches), festivals=matches)

    async def _find_matches(self, session: AsyncSession, data: FestivalData) -> list[DuplicateMatch]:
        matches: list[DuplicateMatch] = []

        exact = (await session.execute(
            select(EventModel.id, EventModel.name)
            .where(func.lower(EventModel.name) == data.name.lower())
        )).all()
        for event_id, name in exact:
            matches.append(DuplicateMatch(MatchType.HIGH, event_id, name, 1.0))

        conditions = [
            func.lower(EventModel.name).contains(keyword)
            for keyword in extract_keywords(data.name)
        ]
        if data.start_date and data.end_date:
            conditions.append(and_(
                EventModel.start_date <= data.end_date,
                EventModel.end_date >= data.start_date,
            ))
        if not conditions:
            return matches

        stmt = select(
            EventModel.id, EventModel.name, EventModel.start_date, EventModel.end_date
        ).where(or_(*conditions))
        if exact:
            stmt = stmt.where(EventModel.id.not_in([row[0] for row in exact]))

        rows = (await session.execute(stmt.limit(MAX_CANDIDATES))).all()
        for event_id, name, start, end in rows:
            similarity = name_similarity(data.name, name)
            overlap = 0.0
            if data.start_date and data.end_date and start and end:
                overlap = date_overlap(data.start_date, data.end_date, start, end)

            if overlap > 0:
                similarity = NAME_WEIGHT * similarity + DATE_WEIGHT * overlap

            match_type = classify(similarity, with_dates=overlap > 0)
            if match_type is not None:
                matches.append(DuplicateMatch(match_type, event_id, name, round(similarity, 3)))

        return matches
