"""
Unit tests for the transactional festival importer.
"""

import asyncio
import copy
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import func, select

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
from festival_ingest.services.duplicates import DatabaseDuplicateDetector
from festival_ingest.services.geocoding import GeocodeResult, Geocoder, ReverseGeocodeResult
from festival_ingest.services.importer import FestivalImporter, ImportOptions
from festival_ingest.services.validation import ValidationEngine

pytestmark = pytest.mark.asyncio


class FakeGeocoder(Geocoder):
    def __init__(self, result: GeocodeResult):
        self.result = result
        self.calls: list[tuple] = []

    async def geocode_address(self, address, city=None, country=None) -> GeocodeResult:
        self.calls.append((address, city, country))
        return self.result

    async def reverse_geocode(self, latitude, longitude) -> ReverseGeocodeResult:
        return ReverseGeocodeResult(success=False, error="not used")


@pytest.fixture
def importer(session_factory, today):
    return FestivalImporter(
        session_factory,
        ValidationEngine(today=lambda: today),
        duplicate_detector=DatabaseDuplicateDetector(session_factory),
    )


async def _count(session_factory, model) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


def _other_festival(payload: dict) -> dict:
    """Different festival reusing venue and teachers."""
    other = copy.deepcopy(payload)
    other["name"] = "Balboa Rendezvous"
    other["startDate"] = "2031-03-10"
    other["endDate"] = "2031-03-12"
    for price in other["prices"]:
        price["deadline"] = None
    return other


# =============================================================================
# Happy path
# =============================================================================


class TestImportFestival:

    async def test_creates_all_records(self, importer, session_factory, festival_payload):
        """Test a valid payload creates event, venue, people, prices and tags."""
        result = await importer.import_festival(festival_payload)

        assert result.success is True
        assert result.festival_id is not None
        assert result.errors == []
        assert result.stats.venues_created == 1
        assert result.stats.teachers_created == 2
        assert result.stats.musicians_created == 1
        assert result.stats.prices_created == 2
        assert result.stats.tags_created == 3

        async with session_factory() as session:
            event = await session.get(EventModel, result.festival_id)
            assert event.slug == "lindy-focus"
            assert event.venue_id is not None

            price_types = (await session.execute(
                select(EventPriceModel.type).where(EventPriceModel.event_id == event.id)
            )).scalars().all()
            assert sorted(price_types) == ["EARLY_BIRD", "REGULAR"]

            tags = (await session.execute(
                select(EventTagModel.tag).where(EventTagModel.event_id == event.id)
            )).scalars().all()
            assert sorted(tags) == ["lindy hop", "live music", "swing"]

            specialties = (await session.execute(
                select(TeacherSpecialtyModel.specialty)
                .join(TeacherModel, TeacherModel.id == TeacherSpecialtyModel.teacher_id)
                .where(TeacherModel.name == "Skye Humphries")
            )).scalars().all()
            assert sorted(specialties) == ["lindy hop", "solo jazz"]

    async def test_result_to_dict(self, importer, festival_payload):
        """Test the result serializes with nested stats."""
        result = await importer.import_festival(festival_payload)
        payload = result.to_dict()

        assert payload["success"] is True
        assert payload["stats"]["teachers_created"] == 2

    async def test_validate_only_writes_nothing(self, importer, session_factory, festival_payload):
        """Test validate_only returns success without touching the database."""
        result = await importer.import_festival(
            festival_payload, ImportOptions(validate_only=True)
        )

        assert result.success is True
        assert result.festival_id is None
        assert await _count(session_factory, EventModel) == 0

    async def test_duplicate_people_in_payload_merged(self, importer, session_factory, festival_payload):
        """Test the same teacher twice in one payload is stored once."""
        festival_payload["teachers"].append({"name": "skye humphries", "specialties": ["Balboa"]})

        result = await importer.import_festival(festival_payload)

        assert result.success is True
        assert result.stats.teachers_created == 2
        assert await _count(session_factory, TeacherModel) == 2
        assert await _count(session_factory, EventTeacherModel) == 2


# =============================================================================
# Gates
# =============================================================================


class TestImportGates:

    async def test_validation_failure(self, importer, session_factory, festival_payload):
        """Test blocking validation errors stop the import."""
        festival_payload["prices"][0]["deadline"] = "2031-02-01"

        result = await importer.import_festival(festival_payload)

        assert result.success is False
        assert result.error_code == "VALIDATION_ERROR"
        assert any("prices[0].deadline" in e for e in result.errors)
        assert await _count(session_factory, EventModel) == 0

    async def test_exact_duplicate_rejected(self, importer, session_factory, festival_payload):
        """Test importing the same festival twice is rejected the second time."""
        first = await importer.import_festival(festival_payload)
        second = await importer.import_festival(festival_payload)

        assert first.success is True
        assert second.success is False
        assert second.error_code == "CONFLICT_ERROR"
        assert second.errors == ["Exact duplicate found: Lindy Focus"]
        assert await _count(session_factory, EventModel) == 1

    async def test_validate_only_reports_duplicate(self, importer, session_factory, festival_payload):
        """Test a dry run still runs the duplicate check."""
        await importer.import_festival(festival_payload)

        result = await importer.import_festival(
            festival_payload, ImportOptions(validate_only=True)
        )

        assert result.success is False
        assert result.error_code == "CONFLICT_ERROR"
        assert await _count(session_factory, EventModel) == 1

    async def test_duplicate_allowed_reuses_entities(self, importer, session_factory, festival_payload):
        """Test allowing duplicates creates a new event but reuses venue and people."""
        await importer.import_festival(festival_payload)
        second = await importer.import_festival(
            festival_payload, ImportOptions(skip_duplicates=False)
        )

        assert second.success is True
        assert second.stats.venues_created == 0
        assert second.stats.teachers_created == 0
        assert second.stats.musicians_created == 0
        assert any("Possible duplicate (high)" in w for w in second.warnings)

        async with session_factory() as session:
            event = await session.get(EventModel, second.festival_id)
            assert event.slug == "lindy-focus-2"

        assert await _count(session_factory, VenueModel) == 1
        assert await _count(session_factory, TeacherModel) == 2
        assert await _count(session_factory, MusicianModel) == 1


# =============================================================================
# Reuse and atomicity
# =============================================================================


class TestImportPersistence:

    async def test_reused_teacher_specialties_replaced(self, importer, session_factory, festival_payload):
        """Test a reused teacher's specialties are replaced by the new import."""
        await importer.import_festival(festival_payload)

        other = _other_festival(festival_payload)
        other["teachers"] = [{"name": "SKYE HUMPHRIES", "specialties": ["Balboa"]}]
        result = await importer.import_festival(other)

        assert result.success is True
        assert result.stats.teachers_created == 0

        async with session_factory() as session:
            specialties = (await session.execute(
                select(TeacherSpecialtyModel.specialty)
                .join(TeacherModel, TeacherModel.id == TeacherSpecialtyModel.teacher_id)
                .where(TeacherModel.name == "Skye Humphries")
            )).scalars().all()
        assert specialties == ["balboa"]

    async def test_failure_rolls_back_everything(self, importer, session_factory, festival_payload):
        """Test a failure late in the write leaves no partial rows behind."""
        with patch.object(
            FestivalImporter, "_create_prices", new=AsyncMock(side_effect=RuntimeError("boom"))
        ):
            result = await importer.import_festival(festival_payload)

        assert result.success is False
        assert result.error_code == "DATABASE_ERROR"
        assert result.errors == ["Database import failed: boom"]

        for model in (
            EventModel,
            VenueModel,
            TeacherModel,
            MusicianModel,
            TeacherSpecialtyModel,
            MusicianGenreModel,
            EventTeacherModel,
            EventMusicianModel,
            EventPriceModel,
            EventTagModel,
        ):
            assert await _count(session_factory, model) == 0

    async def test_geocodes_new_venue(self, session_factory, today, festival_payload):
        """Test a new venue without coordinates is geocoded when asked."""
        geocoder = FakeGeocoder(GeocodeResult(success=True, latitude=35.57, longitude=-82.6))
        importer = FestivalImporter(
            session_factory, ValidationEngine(today=lambda: today), geocoder=geocoder
        )

        result = await importer.import_festival(festival_payload, ImportOptions(geocode_venue=True))

        assert result.success is True
        assert geocoder.calls == [("1 Resort Dr", "Asheville", "USA")]
        async with session_factory() as session:
            venue = (await session.execute(select(VenueModel))).scalar_one()
        assert (venue.latitude, venue.longitude) == (35.57, -82.6)

    async def test_geocoding_failure_is_a_warning(self, session_factory, today, festival_payload):
        """Test a failed geocode does not fail the import."""
        geocoder = FakeGeocoder(GeocodeResult(success=False, error="ZERO_RESULTS"))
        importer = FestivalImporter(
            session_factory, ValidationEngine(today=lambda: today), geocoder=geocoder
        )

        result = await importer.import_festival(festival_payload, ImportOptions(geocode_venue=True))

        assert result.success is True
        assert any("Geocoding failed" in w for w in result.warnings)

    async def test_cancelled_caller_write_failure_logged(self, importer, festival_payload):
        """Test a write that outlives its cancelled caller still reports its failure."""
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_failing_write(*args):
            started.set()
            await release.wait()
            raise RuntimeError("disk full")

        importer.log = MagicMock()
        with patch.object(FestivalImporter, "_write", new=slow_failing_write):
            task = asyncio.create_task(importer.import_festival(festival_payload))
            await started.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

            release.set()
            for _ in range(100):
                if importer.log.error.called:
                    break
                await asyncio.sleep(0)

        importer.log.error.assert_called_once()
        assert importer.log.error.call_args.args[0] == "detached_import_failed"
        assert importer.log.error.call_args.kwargs["error"] == "disk full"
