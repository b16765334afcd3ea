"""
Transactional festival importer.

Validates a festival record, checks for duplicates, then writes the event
and everything hanging off it inside a single transaction:
venue (reused by name + city), event, teachers and musicians (reused by
name, their specialties/genres replaced), link rows, prices and tags.
Either all of it lands or none of it does.
"""

import asyncio
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy import delete, func, insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from festival_ingest.core.exceptions import ConflictError, DatabaseError, ValidationError
from festival_ingest.core.models import FestivalData, PipelineStage, VenueData
from festival_ingest.db.models import (
    EventModel,
    EventMusicianModel,
    EventPriceModel,
    EventTagModel,
    EventTeacherModel,
    MusicianGenreModel,
    MusicianModel,
    TeacherModel,
    TeacherSpecialtyModel,
    VenueModel,
)
from festival_ingest.services.duplicates import DuplicateDetector
from festival_ingest.services.geocoding import Geocoder
from festival_ingest.services.progress import SafeNotifier
from festival_ingest.services.slugs import SlugGenerator
from festival_ingest.services.validation import ValidationEngine

logger = structlog.get_logger()


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class ImportOptions:
    skip_duplicates: bool = True
    geocode_venue: bool = False
    validate_only: bool = False


@dataclass
class ImportStats:
    venues_created: int = 0
    teachers_created: int = 0
    musicians_created: int = 0
    prices_created: int = 0
    tags_created: int = 0


@dataclass
class ImportResult:
    success: bool
    festival_id: int | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    stats: ImportStats = field(default_factory=ImportStats)
    error_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class _PersonSpec:
    """Teacher or musician table layout for the shared reuse-or-create path."""
    model: type
    attr_model: type
    fk: str
    attr: str


TEACHERS = _PersonSpec(TeacherModel, TeacherSpecialtyModel, "teacher_id", "specialty")
MUSICIANS = _PersonSpec(MusicianModel, MusicianGenreModel, "musician_id", "genre")


def _raw_error(error: Exception) -> str:
    """Driver message without the SQL statement SQLAlchemy wraps around it."""
    orig = getattr(error, "orig", None)
    return str(orig) if orig is not None else str(error)


def insert_ignoring_conflicts(session: AsyncSession, model: type):
    """INSERT that skips rows violating a unique constraint."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(model).on_conflict_do_nothing()
    if dialect == "sqlite":
        return sqlite_insert(model).on_conflict_do_nothing()
    return insert(model)


# =============================================================================
# Importer
# =============================================================================


class FestivalImporter:
    """Validate, de-duplicate and persist one festival atomically."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        validator: ValidationEngine,
        duplicate_detector: DuplicateDetector | None = None,
        geocoder: Geocoder | None = None,
    ):
        self.session_factory = session_factory
        self.validator = validator
        self.duplicate_detector = duplicate_detector
        self.geocoder = geocoder
        self.log = logger.bind(component="FestivalImporter")

    async def import_festival(
        self,
        data: FestivalData | Mapping[str, Any],
        options: ImportOptions | None = None,
        notifier: SafeNotifier | None = None,
    ) -> ImportResult:
        options = options or ImportOptions()
        notifier = notifier or SafeNotifier(None, None)

        # 1. Validation gate
        await notifier.progress(PipelineStage.VALIDATING, 10, "Validating festival data")
        report = self.validator.validate(data)
        warnings = [f"{w.field}: {w.message}" for w in report.warnings]

        if not report.is_valid or report.normalized_data is None:
            self.log.info("import_rejected_validation", errors=len(report.errors))
            return ImportResult(
                success=False,
                errors=[f"{e.field}: {e.message}" for e in report.errors] or ["Validation failed"],
                warnings=warnings,
                error_code=ValidationError.code,
            )

        festival = report.normalized_data

        # 2. Duplicate gate
        if self.duplicate_detector is not None:
            await notifier.progress(PipelineStage.DUPLICATES, 30, "Checking for duplicates")
            duplicates = await self.duplicate_detector.detect_duplicates(festival)
            high = duplicates.high_matches
            if high and options.skip_duplicates:
                self.log.info("import_rejected_duplicate", existing=high[0].existing_name)
                return ImportResult(
                    success=False,
                    errors=[f"Exact duplicate found: {high[0].existing_name}"],
                    warnings=warnings,
                    error_code=ConflictError.code,
                )
            for match in duplicates.festivals:
                warnings.append(
                    f"Possible duplicate ({match.match_type.value}): "
                    f"{match.existing_name} (similarity {match.similarity:.2f})"
                )

        if options.validate_only:
            return ImportResult(success=True, warnings=warnings)

        # 3. Transaction
        await notifier.progress(PipelineStage.IMPORTING, 60, "Saving festival")
        # Once started, the transaction finishes even if the caller is cancelled
        write = asyncio.ensure_future(self._write(festival, options, warnings))
        try:
            festival_id, stats = await asyncio.shield(write)
        except asyncio.CancelledError:
            write.add_done_callback(self._log_detached_write)
            raise
        except Exception as e:
            self.log.error("import_failed", error=_raw_error(e), error_type=type(e).__name__)
            return ImportResult(
                success=False,
                errors=[f"Database import failed: {_raw_error(e)}"],
                warnings=warnings,
                error_code=DatabaseError.code,
            )

        self.log.info("import_complete", festival_id=festival_id, **asdict(stats))
        return ImportResult(success=True, festival_id=festival_id, warnings=warnings, stats=stats)

    def _log_detached_write(self, task: asyncio.Task) -> None:
        """Outcome of a write whose caller was cancelled."""
        if task.cancelled():
            self.log.warning("detached_import_cancelled")
            return
        error = task.exception()
        if error is not None:
            self.log.error(
                "detached_import_failed", error=_raw_error(error), error_type=type(error).__name__
            )
            return
        festival_id, _ = task.result()
        self.log.info("detached_import_complete", festival_id=festival_id)

    async def _write(
        self,
        data: FestivalData,
        options: ImportOptions,
        warnings: list[str],
    ) -> tuple[int, ImportStats]:
        stats = ImportStats()

        async with self.session_factory() as session:
            async with session.begin():
                slugs = SlugGenerator(session)

                venue_id = None
                if data.venue is not None:
                    venue_id, created = await self._resolve_venue(
                        session, slugs, data.venue, options, warnings
                    )
                    stats.venues_created += int(created)

                event = EventModel(
                    name=data.name,
                    slug=await slugs.generate(EventModel, data.name),
                    description=data.description,
                    start_date=data.start_date,
                    end_date=data.end_date,
                    registration_deadline=data.registration_deadline,
                    timezone=data.timezone,
                    venue_id=venue_id,
                    website=data.website,
                    registration_url=data.registration_url,
                    email=data.email,
                    phone=data.phone,
                    facebook=data.facebook,
                    instagram=data.instagram,
                    source_url=data.source_url,
                    scraped_at=datetime.now(UTC) if data.source_url else None,
                )
                session.add(event)
                await session.flush()

                teacher_ids, stats.teachers_created = await self._resolve_people(
                    session, slugs, TEACHERS, [(t.name, t.specialties) for t in data.teachers]
                )
                await self._link(session, EventTeacherModel, "teacher_id", event.id, teacher_ids)

                musician_ids, stats.musicians_created = await self._resolve_people(
                    session, slugs, MUSICIANS, [(m.name, m.genres) for m in data.musicians]
                )
                await self._link(session, EventMusicianModel, "musician_id", event.id, musician_ids)

                stats.prices_created = await self._create_prices(session, event.id, data)
                stats.tags_created = await self._create_tags(session, event.id, data.tags)

                return event.id, stats

    # =========================================================================
    # Venue
    # =========================================================================

    async def _resolve_venue(
        self,
        session: AsyncSession,
        slugs: SlugGenerator,
        venue: VenueData,
        options: ImportOptions,
        warnings: list[str],
    ) -> tuple[int, bool]:
        stmt = select(VenueModel).where(func.lower(VenueModel.name) == venue.name.lower())
        if venue.city:
            stmt = stmt.where(func.lower(VenueModel.city) == venue.city.lower())
        else:
            stmt = stmt.where(VenueModel.city.is_(None))

        existing = (await session.execute(stmt.limit(1))).scalar_one_or_none()
        if existing is not None:
            return existing.id, False

        latitude, longitude = venue.latitude, venue.longitude
        if (
            options.geocode_venue
            and self.geocoder is not None
            and (latitude is None or longitude is None)
            and venue.address
            and venue.city
        ):
            result = await self.geocoder.geocode_address(venue.address, venue.city, venue.country)
            if result.success:
                latitude, longitude = result.latitude, result.longitude
            else:
                warnings.append(f"Geocoding failed for venue {venue.name}: {result.error}")

        row = VenueModel(
            name=venue.name,
            slug=await slugs.generate(VenueModel, venue.name),
            address=venue.address,
            city=venue.city,
            state=venue.state,
            country=venue.country,
            postal_code=venue.postal_code,
            latitude=latitude,
            longitude=longitude,
        )
        session.add(row)
        await session.flush()
        return row.id, True

    # =========================================================================
    # Teachers / Musicians
    # =========================================================================

    async def _resolve_people(
        self,
        session: AsyncSession,
        slugs: SlugGenerator,
        spec: _PersonSpec,
        people: list[tuple[str, list[str]]],
    ) -> tuple[list[int], int]:
        """Reuse people by case-insensitive name, create the rest.

        Returns the ids of all referenced people and how many were created.
        """
        # Same name twice in one payload is one person
        wanted: dict[str, tuple[str, list[str]]] = {}
        for name, terms in people:
            key = name.lower()
            if key in wanted:
                merged = wanted[key][1]
                merged.extend(t for t in terms if t not in merged)
            else:
                wanted[key] = (name, list(dict.fromkeys(terms)))

        if not wanted:
            return [], 0

        rows = await session.execute(
            select(spec.model).where(func.lower(spec.model.name).in_(list(wanted)))
        )
        existing: dict[str, Any] = {}
        for row in rows.scalars():
            existing.setdefault(row.name.lower(), row)

        reused_ids = [existing[key].id for key in wanted if key in existing]
        if reused_ids:
            await session.execute(
                delete(spec.attr_model).where(getattr(spec.attr_model, spec.fk).in_(reused_ids))
            )

        # Sequential: each slug must see the ones issued before it
        created = []
        for key, (name, _) in wanted.items():
            if key not in existing:
                row = spec.model(name=name, slug=await slugs.generate(spec.model, name))
                session.add(row)
                created.append((key, row))
        if created:
            await session.flush()

        ids = {key: row.id for key, row in existing.items()}
        ids.update({key: row.id for key, row in created})

        attr_rows = [
            {spec.fk: ids[key], spec.attr: term}
            for key, (_, terms) in wanted.items()
            for term in terms
        ]
        if attr_rows:
            await session.execute(insert_ignoring_conflicts(session, spec.attr_model), attr_rows)

        return [ids[key] for key in wanted], len(created)

    async def _link(
        self,
        session: AsyncSession,
        model: type,
        fk: str,
        event_id: int,
        ids: list[int],
    ) -> None:
        if not ids:
            return
        await session.execute(
            insert_ignoring_conflicts(session, model),
            [{"event_id": event_id, fk: person_id} for person_id in ids],
        )

    # =========================================================================
    # Prices / Tags
    # =========================================================================

    async def _create_prices(self, session: AsyncSession, event_id: int, data: FestivalData) -> int:
        rows: dict[tuple, dict[str, Any]] = {}
        for price in data.prices:
            key = (price.type, price.amount, price.currency)
            rows.setdefault(key, {
                "event_id": event_id,
                "type": price.type.value.upper(),
                "amount": price.amount,
                "currency": price.currency.value,
                "deadline": price.deadline,
                "description": price.description,
            })
        if rows:
            await session.execute(insert_ignoring_conflicts(session, EventPriceModel), list(rows.values()))
        return len(rows)

    async def _create_tags(self, session: AsyncSession, event_id: int, tags: list[str]) -> int:
        unique = list(dict.fromkeys(t.strip().lower() for t in tags if t.strip()))
        if unique:
            await session.execute(
                insert_ignoring_conflicts(session, EventTagModel),
                [{"event_id": event_id, "tag": tag} for tag in unique],
            )
        return len(unique)
