"""
Database package initialization.
"""

from festival_ingest.db.database import (
    Base,
    check_database_health,
    close_db,
    create_engine,
    create_session_factory,
    init_db,
)
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

__all__ = [
    # Database
    "Base",
    "create_engine",
    "create_session_factory",
    "init_db",
    "close_db",
    "check_database_health",
    # Models
    "EventModel",
    "VenueModel",
    "TeacherModel",
    "MusicianModel",
    "EventPriceModel",
    "EventTagModel",
    "EventTeacherModel",
    "EventMusicianModel",
    "TeacherSpecialtyModel",
    "MusicianGenreModel",
]
