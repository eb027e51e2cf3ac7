"""Create the catalog schema and seed default categories and languages."""

import asyncio
import os
import sys

# Add parent dir to path to find app modules
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.ext.asyncio import AsyncEngine

from database import Base, async_session_maker, engine
import models  # noqa: F401
from services.errors import ConflictError
from services.lookups import CATEGORY_LOOKUP, LANGUAGE_LOOKUP, create_lookup_service

DEFAULT_CATEGORIES = [
    {"name": "Documentaries", "description": "Educational and informative documentaries", "sort_order": 1},
    {"name": "Podcasts", "description": "Audio content and discussions", "sort_order": 2},
    {"name": "Lectures", "description": "Educational lectures and presentations", "sort_order": 3},
    {"name": "Interviews", "description": "Conversations and interviews", "sort_order": 4},
]
DEFAULT_LANGUAGES = [
    {"name": "English", "code": "en", "sort_order": 1},
    {"name": "Arabic", "code": "ar", "sort_order": 2},
    {"name": "French", "code": "fr", "sort_order": 3},
    {"name": "Spanish", "code": "es", "sort_order": 4},
]


class _NoCache:
    """Seeding runs offline; cache invalidation is a no-op."""

    async def invalidate_prefix(self, prefix: str) -> int:
        return 0


async def seed_catalog(target_engine: AsyncEngine = engine, session_maker=async_session_maker) -> dict:
    async with target_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    created = {"categories": 0, "languages": 0}
    cache = _NoCache()
    for lookup, rows in ((CATEGORY_LOOKUP, DEFAULT_CATEGORIES), (LANGUAGE_LOOKUP, DEFAULT_LANGUAGES)):
        for row in rows:
            async with session_maker() as db:
                try:
                    await create_lookup_service(lookup, payload=row, db=db, cache=cache)
                except ConflictError:
                    print(f"↩️  {lookup.label} '{row['name']}' already exists, skipping")
                    continue
            created[lookup.entity_type] += 1
            print(f"✅ Created {lookup.label.lower()} '{row['name']}'")
    return created


async def main():
    print("🚀 Seeding catalog lookup tables...")
    created = await seed_catalog()
    print(f"📊 Done: {created['categories']} categories, {created['languages']} languages created.")
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
