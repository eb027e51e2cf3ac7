"""Program search port and the bounded in-memory substring implementation."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Set, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from config import settings
from models.program import Program
from models.search_log import SearchLog
from services.query_builder import run_store_query
from services.visibility import PUBLIC_STATUS

logger = logging.getLogger(__name__)


class ProgramSearchPort(ABC):
    """Anything that can answer a published-program text search page."""

    @abstractmethod
    async def search(
        self,
        term: str,
        *,
        page: int,
        limit: int,
        db: AsyncSession,
    ) -> Tuple[List[Program], int]:
        """Return (page of matching published programs, total matches)."""


class InMemorySubstringSearch(ProgramSearchPort):
    """Case-insensitive substring match over the most recent published programs.

    Only the newest `window_size` published programs are scanned; matches older
    than the window are not found.
    """

    def __init__(self, window_size: Optional[int] = None):
        self.window_size = max(int(window_size or settings.SEARCH_WINDOW_SIZE), 1)

    async def search(
        self,
        term: str,
        *,
        page: int,
        limit: int,
        db: AsyncSession,
    ) -> Tuple[List[Program], int]:
        statement = (
            select(Program)
            .where(Program.status == PUBLIC_STATUS)
            .order_by(Program.created_at.desc(), Program.id.desc())
            .limit(self.window_size)
        )
        window = (await run_store_query(db, statement)).scalars().all()
        needle = str(term or "").lower()
        matched = [
            program
            for program in window
            if needle in (program.title or "").lower() or needle in (program.description or "").lower()
        ]
        start = (page - 1) * limit
        return matched[start:start + limit], len(matched)


_default_search_port = InMemorySubstringSearch()


def get_search_port() -> ProgramSearchPort:
    return _default_search_port


_pending_log_tasks: Set[asyncio.Task] = set()


async def _write_search_log(
    engine: AsyncEngine,
    term: str,
    user_id: Optional[str],
    ip_address: Optional[str],
    user_agent: Optional[str],
) -> None:
    try:
        async with AsyncSession(engine) as session:
            session.add(
                SearchLog(
                    search_term=term,
                    user_id=user_id,
                    ip_address=ip_address,
                    user_agent=user_agent,
                )
            )
            await session.commit()
    except SQLAlchemyError as exc:
        logger.warning("search_log_write_failed term=%s error=%s", term, exc)


def schedule_search_log(
    engine: AsyncEngine,
    term: str,
    *,
    user_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> asyncio.Task:
    """Record a search in the background; the caller never waits on it."""
    logger.info("program_search term=%s user=%s ip=%s", term, user_id, ip_address)
    task = asyncio.create_task(_write_search_log(engine, term, user_id, ip_address, user_agent))
    _pending_log_tasks.add(task)
    task.add_done_callback(_pending_log_tasks.discard)
    return task


async def wait_for_pending_search_logs() -> None:
    if _pending_log_tasks:
        await asyncio.gather(*list(_pending_log_tasks), return_exceptions=True)
