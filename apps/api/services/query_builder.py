"""Filter, sort and page parameters to store queries for programs.

Filters are an ordered tuple of predicate objects. The list query and the
count query are both built from the same `where_clauses()` output, so they
cannot disagree on which rows match.
"""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models.program import CONTENT_TYPES, PROGRAM_STATUSES, VIDEO_SOURCES, Program
from services.errors import BadRequestError, QueryError

DEFAULT_SORT_FIELD = "createdAt"
SORT_COLUMNS = {
    "createdAt": Program.created_at,
    "updatedAt": Program.updated_at,
    "publishDate": Program.publish_date,
    "title": Program.title,
    "duration": Program.duration,
    "viewCount": Program.view_count,
    "likeCount": Program.like_count,
    "id": Program.id,
}


def _choice(allowed: Sequence[str]) -> Callable[[Any], str]:
    def _coerce(value: Any) -> str:
        text = str(value).strip().lower()
        if text not in allowed:
            raise ValueError(f"expected one of {', '.join(allowed)}")
        return text

    return _coerce


def _positive_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("expected an integer")
    number = int(str(value).strip())
    if number < 1:
        raise ValueError("expected a positive integer")
    return number


@dataclass(frozen=True)
class EqualityPredicate:
    """One optional `column == value` filter, addressed by its public name."""

    name: str
    column: Any
    coerce: Callable[[Any], Any]

    def normalize(self, value: Any) -> Any:
        try:
            return self.coerce(value)
        except (TypeError, ValueError) as exc:
            raise BadRequestError(f"Invalid value for {self.name}: {exc}") from exc

    def clause(self, value: Any):
        return self.column == value


PROGRAM_PREDICATES: Tuple[EqualityPredicate, ...] = (
    EqualityPredicate("status", Program.status, _choice(PROGRAM_STATUSES)),
    EqualityPredicate("categoryId", Program.category_id, _positive_int),
    EqualityPredicate("languageId", Program.language_id, _positive_int),
    EqualityPredicate("contentType", Program.content_type, _choice(CONTENT_TYPES)),
    EqualityPredicate("videoSource", Program.video_source, _choice(VIDEO_SOURCES)),
)
FILTER_NAMES = tuple(predicate.name for predicate in PROGRAM_PREDICATES)
_STATUS_PREDICATE = PROGRAM_PREDICATES[0]


def normalize_page(page: Any, limit: Any) -> Tuple[int, int]:
    """1-indexed page and bounded page size; absent or non-positive values use defaults."""
    try:
        resolved_page = int(page)
    except (TypeError, ValueError):
        resolved_page = 1
    try:
        resolved_limit = int(limit)
    except (TypeError, ValueError):
        resolved_limit = settings.DEFAULT_PAGE_SIZE
    if resolved_page < 1:
        resolved_page = 1
    if resolved_limit < 1:
        resolved_limit = settings.DEFAULT_PAGE_SIZE
    return resolved_page, min(resolved_limit, settings.MAX_PAGE_SIZE)


def build_pagination(page: int, limit: int, total: int) -> Dict[str, Any]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": max(1, math.ceil(total / limit)) if limit else 1,
        "hasNext": page * limit < total,
        "hasPrev": page > 1,
    }


@dataclass
class ProgramQuery:
    """Normalized list query. `required_status` is set by the visibility policy."""

    filters: Dict[str, Any] = field(default_factory=dict)
    sort_by: str = DEFAULT_SORT_FIELD
    sort_order: str = "DESC"
    page: int = 1
    limit: int = 10
    required_status: Optional[str] = None

    @classmethod
    def from_params(
        cls,
        filters: Optional[Dict[str, Any]] = None,
        *,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
        page: Any = None,
        limit: Any = None,
    ) -> "ProgramQuery":
        raw = filters or {}
        normalized: Dict[str, Any] = {}
        for predicate in PROGRAM_PREDICATES:
            value = raw.get(predicate.name)
            if value is None or value == "":
                continue
            normalized[predicate.name] = predicate.normalize(value)

        resolved_sort = sort_by if sort_by in SORT_COLUMNS else DEFAULT_SORT_FIELD
        resolved_order = "ASC" if str(sort_order or "").strip().upper() == "ASC" else "DESC"
        resolved_page, resolved_limit = normalize_page(page, limit)
        return cls(
            filters=normalized,
            sort_by=resolved_sort,
            sort_order=resolved_order,
            page=resolved_page,
            limit=resolved_limit,
        )

    def signature(self) -> Dict[str, Any]:
        """Deterministic description of the query, used for cache keys."""
        return {
            "filters": {name: self.filters[name] for name in FILTER_NAMES if name in self.filters},
            "requiredStatus": self.required_status,
            "sortBy": self.sort_by,
            "sortOrder": self.sort_order,
            "page": self.page,
            "limit": self.limit,
        }

    def where_clauses(self) -> List[Any]:
        clauses: List[Any] = []
        if self.required_status is not None:
            clauses.append(_STATUS_PREDICATE.clause(self.required_status))
        for predicate in PROGRAM_PREDICATES:
            if predicate.name in self.filters:
                clauses.append(predicate.clause(self.filters[predicate.name]))
        return clauses

    def order_by(self) -> List[Any]:
        column = SORT_COLUMNS.get(self.sort_by, SORT_COLUMNS[DEFAULT_SORT_FIELD])
        if self.sort_order == "ASC":
            return [column.asc(), Program.id.asc()]
        return [column.desc(), Program.id.desc()]

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def build_program_queries(query: ProgramQuery):
    """Return (page statement, count statement) sharing one filter set."""
    clauses = query.where_clauses()
    page_stmt = (
        select(Program)
        .where(*clauses)
        .order_by(*query.order_by())
        .offset(query.offset)
        .limit(query.limit)
    )
    count_stmt = select(func.count()).select_from(Program).where(*clauses)
    return page_stmt, count_stmt


async def run_store_query(db: AsyncSession, statement: Any):
    """Execute statement with the store timeout; failures become QueryError."""
    try:
        return await asyncio.wait_for(db.execute(statement), timeout=settings.STORE_TIMEOUT_SECONDS)
    except asyncio.TimeoutError as exc:
        raise QueryError("Catalog store query timed out. Try again.") from exc
    except SQLAlchemyError as exc:
        raise QueryError(f"Catalog store query failed: {exc.__class__.__name__}") from exc


async def execute_program_query(query: ProgramQuery, db: AsyncSession) -> Tuple[List[Program], int]:
    page_stmt, count_stmt = build_program_queries(query)
    records = list((await run_store_query(db, page_stmt)).scalars().all())
    total = int((await run_store_query(db, count_stmt)).scalar() or 0)
    return records, total
