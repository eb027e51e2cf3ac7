"""Program catalog orchestration: create/read/update/delete/search/counters.

Reads are cache-aside: probe the cache, fall back to the store, assemble, and
write back with a bounded TTL. Writes end by invalidating the affected keys.
Cache failures never surface here (see services.cache); store failures do.
"""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models.category import Category
from models.language import Language
from models.program import CONTENT_TYPES, PROGRAM_STATUSES, VIDEO_SOURCES, VIDEO_TYPES, Program
from services.assembler import PlaceholderReason, assemble_programs
from services.cache import CacheStore
from services.errors import BadRequestError, NotFoundError, QueryError
from services.id_allocator import allocate_id
from services.lookups import CATEGORY_LOOKUP, LANGUAGE_LOOKUP
from services.query_builder import (
    ProgramQuery,
    build_pagination,
    execute_program_query,
    normalize_page,
    run_store_query,
)
from services.search import ProgramSearchPort, schedule_search_log
from services.single_flight import SingleFlight
from services.visibility import (
    ensure_can_create,
    ensure_can_mutate,
    is_visible,
    normalize_role,
    status_filter_for,
)

logger = logging.getLogger(__name__)

PROGRAM_LIST_PREFIX = "programs:"
PROGRAM_DETAIL_PREFIX = "program:"
SOURCE_CACHE = "cache"
SOURCE_STORE = "store"

WRITABLE_FIELDS = (
    "title",
    "description",
    "duration",
    "publish_date",
    "status",
    "content_type",
    "video_source",
    "video_type",
    "thumbnail_url",
    "video_url",
    "audio_url",
    "youtube_url",
    "youtube_video_id",
    "youtube_thumbnail",
    "uploaded_video_url",
    "file_size",
    "file_name",
    "tags",
    "is_active",
    "category_id",
    "language_id",
)
NON_NULLABLE_FIELDS = {"title", "status", "content_type", "video_source", "video_type", "tags", "is_active"}
CHOICE_FIELDS = {
    "status": PROGRAM_STATUSES,
    "content_type": CONTENT_TYPES,
    "video_source": VIDEO_SOURCES,
    "video_type": VIDEO_TYPES,
}
COUNTER_COLUMNS = {
    "viewCount": Program.view_count,
    "likeCount": Program.like_count,
}

_rebuilds = SingleFlight()


def _list_cache_key(kind: str, role: str, signature: Dict[str, Any]) -> str:
    digest = hashlib.sha1(json.dumps(signature, sort_keys=True, default=str).encode("utf-8")).hexdigest()
    return f"{PROGRAM_LIST_PREFIX}{kind}:{role}:{digest}"


def _detail_cache_key(program_id: int) -> str:
    return f"{PROGRAM_DETAIL_PREFIX}{program_id}"


def _parse_publish_date(value: Any) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError as exc:
        raise BadRequestError("publishDate must be an ISO date (YYYY-MM-DD).") from exc


def _clean_fields(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Keep writable fields only and validate their values."""
    fields = {name: payload[name] for name in WRITABLE_FIELDS if name in payload}
    for name, value in fields.items():
        if value is None and name in NON_NULLABLE_FIELDS:
            raise BadRequestError(f"{name} cannot be null.")
        if name in CHOICE_FIELDS and value is not None and value not in CHOICE_FIELDS[name]:
            raise BadRequestError(f"Invalid {name}: {value}")
    if "title" in fields and not str(fields["title"]).strip():
        raise BadRequestError("title cannot be empty.")
    if "publish_date" in fields:
        fields["publish_date"] = _parse_publish_date(fields["publish_date"])
    if "tags" in fields:
        fields["tags"] = [str(tag) for tag in fields["tags"]]
    return fields


async def _ensure_reference(db: AsyncSession, model: Any, ref_id: Any, label: str) -> None:
    if ref_id is None:
        raise BadRequestError(f"{label} not found")
    result = await run_store_query(db, select(model.id).where(model.id == ref_id).limit(1))
    if result.scalar_one_or_none() is None:
        raise BadRequestError(f"{label} not found")


async def _get_program(db: AsyncSession, program_id: int) -> Program:
    result = await run_store_query(db, select(Program).where(Program.id == program_id))
    program = result.scalar_one_or_none()
    if program is None:
        raise NotFoundError("Program not found")
    return program


async def _commit(db: AsyncSession) -> None:
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise QueryError(f"Catalog store write failed: {exc.__class__.__name__}") from exc


async def _assemble_one(program: Program, db: AsyncSession) -> Dict[str, Any]:
    return (await assemble_programs([program], db))[0]


def _cacheable(records: List[Dict[str, Any]]) -> bool:
    """Pages with a failed reference lookup are served but never cached."""
    return not any(
        PlaceholderReason.LOOKUP_FAILED.value in record.get("unresolved", {}).values()
        for record in records
    )


async def _invalidate_program(cache: CacheStore, program_id: Optional[int] = None) -> None:
    if program_id is not None:
        await cache.delete(_detail_cache_key(program_id))
    await cache.invalidate_prefix(PROGRAM_LIST_PREFIX)
    # lookup rows carry programCount
    await cache.invalidate_prefix(CATEGORY_LOOKUP.cache_prefix)
    await cache.invalidate_prefix(LANGUAGE_LOOKUP.cache_prefix)


async def create_program_service(
    *,
    payload: Dict[str, Any],
    caller_id: str,
    caller_role: str,
    db: AsyncSession,
    cache: CacheStore,
) -> Dict[str, Any]:
    ensure_can_create(caller_role)
    fields = _clean_fields(payload)
    if not fields.get("title"):
        raise BadRequestError("title is required.")

    await _ensure_reference(db, Category, fields.get("category_id"), "Category")
    await _ensure_reference(db, Language, fields.get("language_id"), "Language")

    program_id = await allocate_id("programs", db.bind)
    now = datetime.now(timezone.utc)
    program = Program(
        id=program_id,
        title=fields["title"],
        description=fields.get("description") or "",
        duration=fields.get("duration"),
        publish_date=fields.get("publish_date"),
        status=fields.get("status") or "draft",
        content_type=fields.get("content_type") or "video",
        video_source=fields.get("video_source") or "youtube",
        video_type=fields.get("video_type") or "other",
        thumbnail_url=fields.get("thumbnail_url"),
        video_url=fields.get("video_url"),
        audio_url=fields.get("audio_url"),
        youtube_url=fields.get("youtube_url"),
        youtube_video_id=fields.get("youtube_video_id"),
        youtube_thumbnail=fields.get("youtube_thumbnail"),
        uploaded_video_url=fields.get("uploaded_video_url"),
        file_size=fields.get("file_size"),
        file_name=fields.get("file_name"),
        tags=fields.get("tags") or [],
        is_active=fields.get("is_active", True),
        category_id=fields["category_id"],
        language_id=fields["language_id"],
        view_count=0,
        like_count=0,
        created_by=caller_id,
        created_at=now,
        updated_at=now,
    )
    db.add(program)
    await _commit(db)
    await db.refresh(program)
    await _invalidate_program(cache)

    logger.info("program_create id=%s caller=%s status=%s", program_id, caller_id, program.status)
    return await _assemble_one(program, db)


async def list_programs_service(
    *,
    filters: Dict[str, Any],
    sort_by: Optional[str],
    sort_order: Optional[str],
    page: Any,
    limit: Any,
    caller_role: Optional[str],
    db: AsyncSession,
    cache: CacheStore,
) -> Dict[str, Any]:
    role = normalize_role(caller_role)
    query = ProgramQuery.from_params(filters, sort_by=sort_by, sort_order=sort_order, page=page, limit=limit)
    query.required_status = status_filter_for(role)
    cache_key = _list_cache_key("list", role, query.signature())

    cached = await cache.get(cache_key)
    if cached is not None:
        return {**cached, "source": SOURCE_CACHE}

    async def _load() -> Dict[str, Any]:
        records, total = await execute_program_query(query, db)
        result = {
            "data": await assemble_programs(records, db),
            "pagination": build_pagination(query.page, query.limit, total),
        }
        if _cacheable(result["data"]):
            await cache.set(cache_key, result, settings.PROGRAM_LIST_CACHE_TTL_SECONDS)
        return result

    result = await _rebuilds.run(cache_key, _load)
    return {**result, "source": SOURCE_STORE}


async def find_program_service(
    *,
    program_id: int,
    caller_id: Optional[str],
    caller_role: Optional[str],
    db: AsyncSession,
    cache: CacheStore,
) -> Dict[str, Any]:
    cache_key = _detail_cache_key(program_id)
    cached = await cache.get(cache_key)
    if cached is not None:
        if not is_visible(caller_role, cached, caller_id):
            raise NotFoundError("Program not found")
        return {"data": cached, "source": SOURCE_CACHE}

    async def _load() -> Dict[str, Any]:
        program = await _get_program(db, program_id)
        record = await _assemble_one(program, db)
        if _cacheable([record]):
            await cache.set(cache_key, record, settings.PROGRAM_DETAIL_CACHE_TTL_SECONDS)
        return record

    record = await _rebuilds.run(cache_key, _load)
    if not is_visible(caller_role, record, caller_id):
        raise NotFoundError("Program not found")
    return {"data": record, "source": SOURCE_STORE}


async def update_program_service(
    *,
    program_id: int,
    patch: Dict[str, Any],
    caller_id: Optional[str],
    caller_role: Optional[str],
    db: AsyncSession,
    cache: CacheStore,
) -> Dict[str, Any]:
    program = await _get_program(db, program_id)
    ensure_can_mutate(caller_role, program, caller_id, "update")

    fields = _clean_fields(patch)
    if "category_id" in fields:
        await _ensure_reference(db, Category, fields["category_id"], "Category")
    if "language_id" in fields:
        await _ensure_reference(db, Language, fields["language_id"], "Language")

    # Any status may follow any other; there is no transition table.
    for name, value in fields.items():
        setattr(program, name, value)
    program.updated_at = datetime.now(timezone.utc)

    await _commit(db)
    await db.refresh(program)
    await _invalidate_program(cache, program_id)

    logger.info("program_update id=%s caller=%s fields=%s", program_id, caller_id, sorted(fields))
    return await _assemble_one(program, db)


async def remove_program_service(
    *,
    program_id: int,
    caller_id: Optional[str],
    caller_role: Optional[str],
    db: AsyncSession,
    cache: CacheStore,
) -> None:
    program = await _get_program(db, program_id)
    ensure_can_mutate(caller_role, program, caller_id, "delete")

    await db.delete(program)
    await _commit(db)
    await _invalidate_program(cache, program_id)
    logger.info("program_delete id=%s caller=%s", program_id, caller_id)


async def search_programs_service(
    *,
    term: Optional[str],
    page: Any,
    limit: Any,
    caller_id: Optional[str],
    ip_address: Optional[str],
    user_agent: Optional[str],
    db: AsyncSession,
    cache: CacheStore,
    search_port: ProgramSearchPort,
) -> Dict[str, Any]:
    raw_term = str(term or "")
    schedule_search_log(
        db.bind,
        raw_term,
        user_id=caller_id,
        ip_address=ip_address,
        user_agent=user_agent,
    )

    resolved_page, resolved_limit = normalize_page(page, limit)
    cache_key = _list_cache_key(
        "search",
        "public",
        {
            "term": raw_term.lower(),
            "page": resolved_page,
            "limit": resolved_limit,
            "port": type(search_port).__name__,
        },
    )
    cached = await cache.get(cache_key)
    if cached is not None:
        return {**cached, "source": SOURCE_CACHE}

    records, total = await search_port.search(raw_term, page=resolved_page, limit=resolved_limit, db=db)
    result = {
        "data": await assemble_programs(records, db),
        "pagination": build_pagination(resolved_page, resolved_limit, total),
    }
    if _cacheable(result["data"]):
        await cache.set(cache_key, result, settings.PROGRAM_LIST_CACHE_TTL_SECONDS)
    return {**result, "source": SOURCE_STORE}


async def increment_counter_service(
    *,
    program_id: int,
    counter: str,
    caller_role: Optional[str],
    db: AsyncSession,
) -> int:
    """Atomically add one to viewCount/likeCount and return the new value.

    Programs the caller cannot see count as missing. Cached copies are left
    alone and catch up when their TTL expires.
    """
    column = COUNTER_COLUMNS.get(counter)
    if column is None:
        raise BadRequestError(f"Unknown counter: {counter}")

    statement = update(Program).where(Program.id == program_id)
    required_status = status_filter_for(caller_role)
    if required_status is not None:
        statement = statement.where(Program.status == required_status)
    result = await run_store_query(
        db,
        statement.values({column: column + 1}).execution_options(synchronize_session=False),
    )
    if result.rowcount == 0:
        await db.rollback()
        raise NotFoundError("Program not found")
    await _commit(db)

    value = (await run_store_query(db, select(column).where(Program.id == program_id))).scalar()
    return int(value or 0)
