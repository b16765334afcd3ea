"""
Unique slug generation.

One SlugGenerator lives for one import transaction. It remembers every slug
it handed out so entities created in the same transaction (not yet visible
to a fresh query) never collide.
"""

import re
from collections import defaultdict

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from festival_ingest.db.models import EventModel, MusicianModel, TeacherModel, VenueModel

DEFAULT_SLUGS = {
    EventModel: "festival",
    VenueModel: "venue",
    TeacherModel: "teacher",
    MusicianModel: "musician",
}

MAX_SLUG_LENGTH = 200


def slugify(text: str) -> str:
    """Lower-case, keep [a-z0-9], spaces and dashes become single dashes."""
    slug = text.lower()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")[:MAX_SLUG_LENGTH].rstrip("-")


class SlugGenerator:
    """Per-transaction unique slug allocator."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._issued: dict[type, set[str]] = defaultdict(set)

    async def generate(self, model: type, text: str) -> str:
        """Return a slug for ``text`` unique within ``model``'s table.

        Collisions get ``-2``, ``-3``, ... appended.
        """
        base = slugify(text or "") or DEFAULT_SLUGS[model]

        taken = set(self._issued[model])
        rows = await self.session.execute(
            select(model.slug).where(or_(model.slug == base, model.slug.like(f"{base}-%")))
        )
        taken.update(rows.scalars().all())

        candidate = base
        suffix = 1
        while candidate in taken:
            suffix += 1
            candidate = f"{base}-{suffix}"

        self._issued[model].add(candidate)
        return candidate
