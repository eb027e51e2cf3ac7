"""Category and Language lookup-table CRUD with cache-aside reads."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models.category import Category
from models.language import Language
from models.program import Program
from services.cache import CacheStore
from services.errors import BadRequestError, ConflictError, NotFoundError, QueryError
from services.id_allocator import allocate_id
from services.query_builder import run_store_query

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LookupTable:
    entity_type: str
    label: str
    model: Any
    program_column: Any
    unique_fields: Tuple[str, ...]
    extra_fields: Tuple[str, ...]
    conflict_message: str

    @property
    def cache_prefix(self) -> str:
        return f"{self.entity_type}:"

    @property
    def writable_fields(self) -> Tuple[str, ...]:
        return ("name",) + self.extra_fields + ("is_active", "sort_order")


CATEGORY_LOOKUP = LookupTable(
    entity_type="categories",
    label="Category",
    model=Category,
    program_column=Program.category_id,
    unique_fields=("name",),
    extra_fields=("description",),
    conflict_message="Category name already exists",
)
LANGUAGE_LOOKUP = LookupTable(
    entity_type="languages",
    label="Language",
    model=Language,
    program_column=Program.language_id,
    unique_fields=("name", "code"),
    extra_fields=("code",),
    conflict_message="Language name or code already exists",
)


def _iso(value: Any) -> Any:
    return value.isoformat() if isinstance(value, datetime) else value


def _serialize(lookup: LookupTable, row: Any, program_count: int) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"id": row.id, "name": row.name}
    for name in lookup.extra_fields:
        payload[name] = getattr(row, name)
    payload.update(
        {
            "isActive": row.is_active is not False,
            "sortOrder": row.sort_order or 0,
            "createdAt": _iso(row.created_at),
            "updatedAt": _iso(row.updated_at),
            "programCount": program_count,
        }
    )
    return payload


async def _program_counts(lookup: LookupTable, db: AsyncSession) -> Dict[int, int]:
    result = await run_store_query(
        db,
        select(lookup.program_column, func.count())
        .where(lookup.program_column.is_not(None))
        .group_by(lookup.program_column),
    )
    return {int(ref_id): int(count) for ref_id, count in result.all()}


async def _get_row(lookup: LookupTable, row_id: int, db: AsyncSession) -> Any:
    result = await run_store_query(db, select(lookup.model).where(lookup.model.id == row_id))
    row = result.scalar_one_or_none()
    if row is None:
        raise NotFoundError(f"{lookup.label} not found")
    return row


async def _ensure_unique(lookup: LookupTable, values: Dict[str, Any], db: AsyncSession, exclude_id: Any = None) -> None:
    for name in lookup.unique_fields:
        value = values.get(name)
        if value is None:
            continue
        column = getattr(lookup.model, name)
        result = await run_store_query(db, select(lookup.model.id).where(column == value).limit(1))
        existing_id = result.scalar_one_or_none()
        if existing_id is not None and existing_id != exclude_id:
            raise ConflictError(lookup.conflict_message)


async def _commit(lookup: LookupTable, db: AsyncSession) -> None:
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise ConflictError(lookup.conflict_message) from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        raise QueryError(f"Catalog store write failed: {exc.__class__.__name__}") from exc


async def create_lookup_service(
    lookup: LookupTable,
    *,
    payload: Dict[str, Any],
    db: AsyncSession,
    cache: CacheStore,
) -> Dict[str, Any]:
    name = str(payload.get("name") or "").strip()
    if not name:
        raise BadRequestError("name is required.")
    values = {field: payload.get(field) for field in lookup.extra_fields}
    values["name"] = name
    for field in lookup.unique_fields:
        if not values.get(field):
            raise BadRequestError(f"{field} is required.")
    await _ensure_unique(lookup, values, db)

    row_id = await allocate_id(lookup.entity_type, db.bind)
    now = datetime.now(timezone.utc)
    row = lookup.model(
        id=row_id,
        is_active=True,
        sort_order=int(payload.get("sort_order") or 0),
        created_at=now,
        updated_at=now,
        **values,
    )
    db.add(row)
    await _commit(lookup, db)
    await db.refresh(row)
    await cache.invalidate_prefix(lookup.cache_prefix)

    logger.info("lookup_create table=%s id=%s name=%s", lookup.entity_type, row_id, name)
    return _serialize(lookup, row, 0)


async def list_lookups_service(
    lookup: LookupTable,
    *,
    active_only: bool,
    db: AsyncSession,
    cache: CacheStore,
) -> Dict[str, Any]:
    cache_key = f"{lookup.cache_prefix}{'active' if active_only else 'all'}"
    cached = await cache.get(cache_key)
    if cached is not None:
        return {"data": cached, "source": "cache"}

    statement = select(lookup.model).order_by(lookup.model.sort_order.asc(), lookup.model.name.asc())
    if active_only:
        statement = statement.where(lookup.model.is_active.is_(True))
    rows = (await run_store_query(db, statement)).scalars().all()
    counts = await _program_counts(lookup, db)
    data: List[Dict[str, Any]] = [_serialize(lookup, row, counts.get(row.id, 0)) for row in rows]

    await cache.set(cache_key, data, settings.LOOKUP_CACHE_TTL_SECONDS)
    return {"data": data, "source": "store"}


async def get_lookup_service(
    lookup: LookupTable,
    *,
    row_id: int,
    db: AsyncSession,
    cache: CacheStore,
) -> Dict[str, Any]:
    cache_key = f"{lookup.cache_prefix}{row_id}"
    cached = await cache.get(cache_key)
    if cached is not None:
        return {"data": cached, "source": "cache"}

    row = await _get_row(lookup, row_id, db)
    counts = await _program_counts(lookup, db)
    data = _serialize(lookup, row, counts.get(row.id, 0))
    await cache.set(cache_key, data, settings.LOOKUP_CACHE_TTL_SECONDS)
    return {"data": data, "source": "store"}


async def update_lookup_service(
    lookup: LookupTable,
    *,
    row_id: int,
    patch: Dict[str, Any],
    db: AsyncSession,
    cache: CacheStore,
) -> Dict[str, Any]:
    row = await _get_row(lookup, row_id, db)
    fields = {name: patch[name] for name in lookup.writable_fields if name in patch}
    if "name" in fields and not str(fields["name"] or "").strip():
        raise BadRequestError("name cannot be empty.")
    await _ensure_unique(lookup, fields, db, exclude_id=row_id)

    for name, value in fields.items():
        setattr(row, name, value)
    row.updated_at = datetime.now(timezone.utc)
    await _commit(lookup, db)
    await db.refresh(row)
    await cache.invalidate_prefix(lookup.cache_prefix)

    logger.info("lookup_update table=%s id=%s fields=%s", lookup.entity_type, row_id, sorted(fields))
    counts = await _program_counts(lookup, db)
    return _serialize(lookup, row, counts.get(row.id, 0))


async def remove_lookup_service(
    lookup: LookupTable,
    *,
    row_id: int,
    db: AsyncSession,
    cache: CacheStore,
) -> None:
    row = await _get_row(lookup, row_id, db)
    referenced = await run_store_query(
        db,
        select(Program.id).where(lookup.program_column == row_id).limit(1),
    )
    if referenced.scalar_one_or_none() is not None:
        raise BadRequestError(f"Cannot delete {lookup.label.lower()} with associated programs")

    await db.delete(row)
    await _commit(lookup, db)
    await cache.invalidate_prefix(lookup.cache_prefix)
    logger.info("lookup_delete table=%s id=%s", lookup.entity_type, row_id)
