"""Collision-free integer id allocation per entity type.

Each attempt runs in its own short transaction: read the counter row, skip
past any id already taken in the entity table, then compare-and-set the
counter on its version. A lost race (version moved, concurrent first insert,
or a lock timeout) discards the attempt and starts over, so no caller ever
sees a partially reserved id.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Dict, Type

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from config import settings
from models.category import Category
from models.id_counter import IdCounter
from models.language import Language
from models.program import Program
from services.errors import QueryError

logger = logging.getLogger(__name__)

COUNTED_MODELS: Dict[str, Type] = {
    "programs": Program,
    "categories": Category,
    "languages": Language,
}


class _CounterConflict(Exception):
    """Another allocator moved the counter between our read and write."""


async def _id_in_use(session: AsyncSession, model: Type, candidate: int) -> bool:
    result = await session.execute(select(model.id).where(model.id == candidate).limit(1))
    return result.scalar_one_or_none() is not None


async def _attempt(engine: AsyncEngine, entity_type: str, model: Type) -> int:
    async with AsyncSession(engine, expire_on_commit=False) as session:
        async with session.begin():
            counter = (
                await session.execute(
                    select(IdCounter.value, IdCounter.version).where(IdCounter.name == entity_type)
                )
            ).one_or_none()
            current, version = (int(counter.value or 0), int(counter.version or 0)) if counter else (0, None)

            candidate = current + 1
            while await _id_in_use(session, model, candidate):
                logger.warning("id_counter_drift entity=%s id=%s already in use", entity_type, candidate)
                candidate += 1

            if version is None:
                session.add(IdCounter(name=entity_type, value=candidate, version=1))
                await session.flush()
            else:
                result = await session.execute(
                    update(IdCounter)
                    .where(IdCounter.name == entity_type, IdCounter.version == version)
                    .values(value=candidate, version=version + 1)
                )
                if result.rowcount != 1:
                    raise _CounterConflict(entity_type)
    return candidate


async def allocate_id(entity_type: str, engine: AsyncEngine) -> int:
    """Reserve the next unused integer id for entity_type."""
    model = COUNTED_MODELS.get(entity_type)
    if model is None:
        raise ValueError(f"Unknown entity type for id allocation: {entity_type}")

    attempts = max(int(settings.ID_ALLOCATION_MAX_ATTEMPTS), 1)
    for attempt in range(1, attempts + 1):
        try:
            allocated = await _attempt(engine, entity_type, model)
        except (_CounterConflict, IntegrityError, OperationalError) as exc:
            logger.info("id_allocation_retry entity=%s attempt=%s reason=%s", entity_type, attempt, type(exc).__name__)
            await asyncio.sleep(random.uniform(0, 0.01 * attempt))
            continue
        logger.debug("id_allocated entity=%s id=%s", entity_type, allocated)
        return allocated

    raise QueryError(f"Could not allocate a {entity_type} id after {attempts} attempts.")
