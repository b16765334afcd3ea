"""
Pytest configuration and fixtures for Festival Ingest tests.
"""

from collections.abc import AsyncGenerator
from datetime import date
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from festival_ingest.core.config import Settings
from festival_ingest.db.database import Base, create_session_factory
from festival_ingest.db import models  # noqa: F401


@pytest.fixture
def settings() -> Settings:
    """Settings for tests: in-memory database, no DNS lookups."""
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite://",
        resolve_dns=False,
        ai_api_key="test-key",
        google_maps_api_key="maps-key",
    )


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory sqlite database per test.

    StaticPool keeps every session on the same connection, otherwise each
    connection would see its own empty in-memory database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
def festival_payload() -> dict[str, Any]:
    """A complete, valid festival record as a client would send it."""
    return {
        "name": "Lindy Focus",
        "description": "A week of swing dancing with workshops, live bands and social dancing every night.",
        "startDate": "2030-12-27",
        "endDate": "2031-01-01",
        "website": "https://lindyfocus.com",
        "registrationUrl": "https://lindyfocus.com/register",
        "email": "info@lindyfocus.com",
        "phone": "+1 828 555 0100",
        "venue": {
            "name": "Crowne Plaza Resort",
            "address": "1 Resort Dr",
            "city": "Asheville",
            "state": "NC",
            "country": "USA",
            "postalCode": "28806",
        },
        "teachers": [
            {"name": "Skye Humphries", "specialties": ["Lindy Hop", "Solo Jazz"]},
            {"name": "Naomi Uyama", "specialties": ["Lindy Hop"]},
        ],
        "musicians": [
            {"name": "Gordon Webster", "genres": ["Swing"]},
        ],
        "prices": [
            {"type": "early_bird", "amount": 250, "currency": "USD", "deadline": "2030-09-01"},
            {"type": "regular", "amount": 300, "currency": "USD"},
        ],
        "tags": ["Lindy Hop", "swing", "Live Music"],
    }


@pytest.fixture
def today() -> date:
    return date(2030, 6, 1)
