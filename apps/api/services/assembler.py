"""Denormalize stored programs into response payloads.

Each foreign reference resolves independently to a `Resolution`: either the
referenced row or a placeholder reason. A missing or failing reference never
aborts the record; it shows up as a labeled placeholder and is listed under
`unresolved` so callers can tell why.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models.category import Category
from models.language import Language
from models.program import Program
from models.program_metadata import ProgramMetadata
from models.user_profile import UserProfile

logger = logging.getLogger(__name__)

UNKNOWN_CATEGORY = "Unknown Category"
UNKNOWN_LANGUAGE = "Unknown Language"
UNKNOWN_USER = "Unknown User"


class PlaceholderReason(str, Enum):
    MISSING_REFERENCE = "missing_reference"
    NOT_FOUND = "not_found"
    LOOKUP_FAILED = "lookup_failed"


@dataclass(frozen=True)
class Resolution:
    value: Any = None
    reason: Optional[PlaceholderReason] = None

    @property
    def ok(self) -> bool:
        return self.reason is None

    @classmethod
    def resolved(cls, value: Any) -> "Resolution":
        return cls(value=value)

    @classmethod
    def placeholder(cls, reason: PlaceholderReason) -> "Resolution":
        return cls(reason=reason)


def _iso(value: Any) -> Optional[str]:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return None


class ReferenceResolver:
    """Looks up referenced rows, memoized for the lifetime of one assembly batch."""

    def __init__(self, db: AsyncSession):
        self._db = db
        self._memo: Dict[Tuple[str, Any], Resolution] = {}

    async def resolve(self, model: Any, ref_id: Any) -> Resolution:
        if ref_id is None or ref_id == "":
            return Resolution.placeholder(PlaceholderReason.MISSING_REFERENCE)
        memo_key = (model.__tablename__, ref_id)
        if memo_key in self._memo:
            return self._memo[memo_key]

        try:
            # savepoint: a failed lookup must not abort the surrounding transaction
            async with self._db.begin_nested():
                result = await self._db.execute(select(model).where(model.id == ref_id).limit(1))
                row = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.warning("reference_lookup_failed table=%s id=%s error=%s", model.__tablename__, ref_id, exc)
            resolution = Resolution.placeholder(PlaceholderReason.LOOKUP_FAILED)
        else:
            if row is None:
                resolution = Resolution.placeholder(PlaceholderReason.NOT_FOUND)
            else:
                resolution = Resolution.resolved(row)
        self._memo[memo_key] = resolution
        return resolution

    async def metadata(self, program_id: Any) -> Resolution:
        try:
            async with self._db.begin_nested():
                result = await self._db.execute(
                    select(ProgramMetadata)
                    .where(ProgramMetadata.program_id == program_id)
                    .order_by(ProgramMetadata.id.asc())
                )
                rows = result.scalars().all()
        except SQLAlchemyError as exc:
            logger.warning("metadata_lookup_failed program=%s error=%s", program_id, exc)
            return Resolution.placeholder(PlaceholderReason.LOOKUP_FAILED)
        return Resolution.resolved([{"key": row.key or "unknown", "value": row.value or ""} for row in rows])


async def assemble_program(program: Program, resolver: ReferenceResolver) -> Dict[str, Any]:
    category = await resolver.resolve(Category, program.category_id)
    language = await resolver.resolve(Language, program.language_id)
    creator = await resolver.resolve(UserProfile, program.created_by)
    metadata = await resolver.metadata(program.id)

    unresolved = {
        name: resolution.reason.value
        for name, resolution in (
            ("category", category),
            ("language", language),
            ("createdBy", creator),
            ("metadata", metadata),
        )
        if not resolution.ok
    }

    return {
        "id": program.id,
        "title": program.title,
        "description": program.description or "",
        "duration": program.duration or 0,
        "publishDate": _iso(program.publish_date),
        "status": program.status,
        "thumbnailUrl": program.thumbnail_url or program.youtube_thumbnail,
        "videoUrl": program.video_url or program.youtube_url or program.uploaded_video_url,
        "audioUrl": program.audio_url,
        "viewCount": program.view_count or 0,
        "likeCount": program.like_count or 0,
        "isActive": program.is_active is not False,
        "createdAt": _iso(program.created_at),
        "updatedAt": _iso(program.updated_at),
        "category": {
            "id": program.category_id,
            "name": category.value.name if category.ok else UNKNOWN_CATEGORY,
        },
        "language": {
            "id": program.language_id,
            "name": language.value.name if language.ok else UNKNOWN_LANGUAGE,
            "code": language.value.code if language.ok else "",
        },
        "contentType": program.content_type,
        "videoSource": program.video_source,
        "youtubeUrl": program.youtube_url,
        "youtubeVideoId": program.youtube_video_id,
        "youtubeThumbnail": program.youtube_thumbnail,
        "uploadedVideoUrl": program.uploaded_video_url,
        "videoType": program.video_type or "other",
        "tags": list(program.tags or []),
        "fileSize": program.file_size,
        "fileName": program.file_name,
        "createdBy": {
            "id": program.created_by or "unknown",
            "username": creator.value.username if creator.ok else UNKNOWN_USER,
        },
        "metadata": metadata.value if metadata.ok else [],
        "unresolved": unresolved,
    }


async def assemble_programs(programs: Sequence[Program], db: AsyncSession) -> List[Dict[str, Any]]:
    resolver = ReferenceResolver(db)
    return [await assemble_program(program, resolver) for program in programs]
