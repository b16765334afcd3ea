"""
SQLAlchemy ORM models for Festival Ingest.

Organized into sections:
- Core Entities (events, venues, teachers, musicians)
- Event Children (prices, tags)
- Link Tables
- Person Attributes (specialties, genres)
"""

from datetime import date, datetime

from sqlalchemy import (
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from festival_ingest.db.database import Base


class TimestampMixin:
    """Mixin for created_at and updated_at columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )


# ==============================================================================
# Core Entities
# ==============================================================================


class VenueModel(Base, TimestampMixin):
    """Physical venue. Reused across festivals by (name, city)."""

    __tablename__ = "venues"
    __table_args__ = (
        Index("idx_venues_name_city", "name", "city"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(1000), nullable=False)
    address: Mapped[str | None] = mapped_column(String(1000))
    city: Mapped[str | None] = mapped_column(String(255))
    state: Mapped[str | None] = mapped_column(String(255))
    country: Mapped[str | None] = mapped_column(String(255))
    postal_code: Mapped[str | None] = mapped_column(String(50))
    latitude: Mapped[float | None] = mapped_column(Float)
    longitude: Mapped[float | None] = mapped_column(Float)

    events: Mapped[list["EventModel"]] = relationship(back_populates="venue")


class EventModel(Base, TimestampMixin):
    """A festival edition. Always created fresh per import."""

    __tablename__ = "events"
    __table_args__ = (
        Index("idx_events_dates", "start_date", "end_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(1000), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    registration_deadline: Mapped[date | None] = mapped_column(Date)
    timezone: Mapped[str | None] = mapped_column(String(100))
    venue_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("venues.id", ondelete="SET NULL"), index=True
    )

    # Contact / links
    website: Mapped[str | None] = mapped_column(String(1000))
    registration_url: Mapped[str | None] = mapped_column(String(1000))
    email: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(100))
    facebook: Mapped[str | None] = mapped_column(String(1000))
    instagram: Mapped[str | None] = mapped_column(String(1000))

    # Provenance
    source_url: Mapped[str | None] = mapped_column(String(1000))
    scraped_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    venue: Mapped["VenueModel"] = relationship(back_populates="events")
    prices: Mapped[list["EventPriceModel"]] = relationship(
        back_populates="event", cascade="all, delete-orphan"
    )
    tags: Mapped[list["EventTagModel"]] = relationship(
        back_populates="event", cascade="all, delete-orphan"
    )


class TeacherModel(Base, TimestampMixin):
    """Dance teacher. Identity is the case-insensitive name."""

    __tablename__ = "teachers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(1000), nullable=False, index=True)

    specialties: Mapped[list["TeacherSpecialtyModel"]] = relationship(
        back_populates="teacher", cascade="all, delete-orphan"
    )


class MusicianModel(Base, TimestampMixin):
    """Band or musician. Identity is the case-insensitive name."""

    __tablename__ = "musicians"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(1000), nullable=False, index=True)

    genres: Mapped[list["MusicianGenreModel"]] = relationship(
        back_populates="musician", cascade="all, delete-orphan"
    )


# ==============================================================================
# Event Children
# ==============================================================================


class EventPriceModel(Base):
    __tablename__ = "event_prices"
    __table_args__ = (
        UniqueConstraint("event_id", "type", "amount", "currency", name="uq_event_prices"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)  # EARLY_BIRD, REGULAR, ...
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    deadline: Mapped[date | None] = mapped_column(Date)
    description: Mapped[str | None] = mapped_column(String(1000))

    event: Mapped["EventModel"] = relationship(back_populates="prices")


class EventTagModel(Base):
    __tablename__ = "event_tags"
    __table_args__ = (
        UniqueConstraint("event_id", "tag", name="uq_event_tags"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tag: Mapped[str] = mapped_column(String(100), nullable=False)

    event: Mapped["EventModel"] = relationship(back_populates="tags")


# ==============================================================================
# Link Tables
# ==============================================================================


class EventTeacherModel(Base):
    __tablename__ = "event_teachers"
    __table_args__ = (
        UniqueConstraint("event_id", "teacher_id", name="uq_event_teachers"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    teacher_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("teachers.id", ondelete="CASCADE"), nullable=False, index=True
    )


class EventMusicianModel(Base):
    __tablename__ = "event_musicians"
    __table_args__ = (
        UniqueConstraint("event_id", "musician_id", name="uq_event_musicians"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    musician_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("musicians.id", ondelete="CASCADE"), nullable=False, index=True
    )


# ==============================================================================
# Person Attributes
# ==============================================================================


class TeacherSpecialtyModel(Base):
    __tablename__ = "teacher_specialties"
    __table_args__ = (
        UniqueConstraint("teacher_id", "specialty", name="uq_teacher_specialties"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    teacher_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("teachers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    specialty: Mapped[str] = mapped_column(String(100), nullable=False)

    teacher: Mapped["TeacherModel"] = relationship(back_populates="specialties")


class MusicianGenreModel(Base):
    __tablename__ = "musician_genres"
    __table_args__ = (
        UniqueConstraint("musician_id", "genre", name="uq_musician_genres"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    musician_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("musicians.id", ondelete="CASCADE"), nullable=False, index=True
    )
    genre: Mapped[str] = mapped_column(String(100), nullable=False)

    musician: Mapped["MusicianModel"] = relationship(back_populates="genres")
