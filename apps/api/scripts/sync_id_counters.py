"""Raise each id counter to at least the highest id stored in its table."""

import asyncio
import os
import sys

# Add parent dir to path to find app modules
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import func, select

from database import async_session_maker, engine
from models.id_counter import IdCounter
from services.id_allocator import COUNTED_MODELS


async def sync_id_counters(session_maker=async_session_maker) -> dict:
    """Return {entity_type: counter value after sync}."""
    synced = {}
    async with session_maker() as db:
        for entity_type, model in COUNTED_MODELS.items():
            max_id = int((await db.execute(select(func.max(model.id)))).scalar() or 0)
            counter = (
                await db.execute(select(IdCounter).where(IdCounter.name == entity_type))
            ).scalar_one_or_none()
            if counter is None:
                db.add(IdCounter(name=entity_type, value=max_id, version=1))
                synced[entity_type] = max_id
            elif int(counter.value or 0) < max_id:
                counter.value = max_id
                counter.version = int(counter.version or 0) + 1
                synced[entity_type] = max_id
            else:
                synced[entity_type] = int(counter.value or 0)
        await db.commit()
    return synced


async def main():
    print("🔧 Syncing id counters with stored data...")
    synced = await sync_id_counters()
    for entity_type, value in synced.items():
        print(f"✅ {entity_type}: counter at {value}")
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
