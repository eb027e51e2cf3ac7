"""Program catalog router."""

from __future__ import annotations

from datetime import date
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from routers.auth_scope import AuthContext, get_auth_context, get_optional_auth_context
from routers.envelope import envelope
from routers.rate_limit import client_identifier, rate_limit
from services.cache import CacheStore, get_cache_store
from services.programs import (
    create_program_service,
    find_program_service,
    increment_counter_service,
    list_programs_service,
    remove_program_service,
    search_programs_service,
    update_program_service,
)
from services.search import ProgramSearchPort, get_search_port

router = APIRouter()


class ProgramFields(BaseModel):
    """Writable program fields; counters are server-managed and ignored if sent."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    duration: Optional[int] = Field(default=None, ge=1)
    publish_date: Optional[date] = Field(default=None, alias="publishDate")
    status: Optional[Literal["draft", "published", "archived"]] = None
    category_id: Optional[int] = Field(default=None, ge=1, alias="categoryId")
    language_id: Optional[int] = Field(default=None, ge=1, alias="languageId")
    content_type: Optional[Literal["video", "podcast"]] = Field(default=None, alias="contentType")
    video_source: Optional[Literal["youtube", "upload", "external"]] = Field(default=None, alias="videoSource")
    video_type: Optional[Literal["podcast", "documentary", "lecture", "other"]] = Field(default=None, alias="videoType")
    thumbnail_url: Optional[str] = Field(default=None, alias="thumbnailUrl")
    video_url: Optional[str] = Field(default=None, alias="videoUrl")
    audio_url: Optional[str] = Field(default=None, alias="audioUrl")
    youtube_url: Optional[str] = Field(default=None, alias="youtubeUrl")
    youtube_video_id: Optional[str] = Field(default=None, alias="youtubeVideoId")
    youtube_thumbnail: Optional[str] = Field(default=None, alias="youtubeThumbnail")
    uploaded_video_url: Optional[str] = Field(default=None, alias="uploadedVideoUrl")
    file_size: Optional[int] = Field(default=None, ge=0, alias="fileSize")
    file_name: Optional[str] = Field(default=None, alias="fileName")
    tags: Optional[List[str]] = None
    is_active: Optional[bool] = Field(default=None, alias="isActive")


class CreateProgramRequest(ProgramFields):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    category_id: int = Field(ge=1, alias="categoryId")
    language_id: int = Field(ge=1, alias="languageId")


class UpdateProgramRequest(ProgramFields):
    pass


@router.get("")
async def list_programs(
    page: Optional[str] = Query(default=None),
    limit: Optional[str] = Query(default=None),
    status: Optional[str] = Query(default=None),
    category_id: Optional[str] = Query(default=None, alias="categoryId"),
    language_id: Optional[str] = Query(default=None, alias="languageId"),
    content_type: Optional[str] = Query(default=None, alias="contentType"),
    video_source: Optional[str] = Query(default=None, alias="videoSource"),
    sort_by: Optional[str] = Query(default=None, alias="sortBy"),
    sort_order: Optional[str] = Query(default=None, alias="sortOrder"),
    auth: AuthContext = Depends(get_optional_auth_context),
    db: AsyncSession = Depends(get_db),
    cache: CacheStore = Depends(get_cache_store),
):
    result = await list_programs_service(
        filters={
            "status": status,
            "categoryId": category_id,
            "languageId": language_id,
            "contentType": content_type,
            "videoSource": video_source,
        },
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
        caller_role=auth.role,
        db=db,
        cache=cache,
    )
    return envelope(
        "Programs retrieved successfully",
        result["data"],
        pagination=result["pagination"],
        source=result["source"],
    )


@router.get("/search")
async def search_programs(
    request: Request,
    search: Optional[str] = Query(default=""),
    page: Optional[str] = Query(default=None),
    limit: Optional[str] = Query(default=None),
    _rate_limit: None = Depends(
        rate_limit("program_search", limit=settings.SEARCH_RATE_LIMIT_PER_MINUTE, window_seconds=60)
    ),
    auth: AuthContext = Depends(get_optional_auth_context),
    db: AsyncSession = Depends(get_db),
    cache: CacheStore = Depends(get_cache_store),
    search_port: ProgramSearchPort = Depends(get_search_port),
):
    result = await search_programs_service(
        term=search,
        page=page,
        limit=limit,
        caller_id=auth.user_id,
        ip_address=client_identifier(request),
        user_agent=request.headers.get("user-agent"),
        db=db,
        cache=cache,
        search_port=search_port,
    )
    return envelope(
        "Search results retrieved successfully",
        result["data"],
        pagination=result["pagination"],
        source=result["source"],
    )


@router.get("/{program_id}")
async def get_program(
    program_id: int,
    auth: AuthContext = Depends(get_optional_auth_context),
    db: AsyncSession = Depends(get_db),
    cache: CacheStore = Depends(get_cache_store),
):
    result = await find_program_service(
        program_id=program_id,
        caller_id=auth.user_id,
        caller_role=auth.role,
        db=db,
        cache=cache,
    )
    return envelope("Program retrieved successfully", result["data"], source=result["source"])


@router.post("")
async def create_program(
    request: CreateProgramRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
    cache: CacheStore = Depends(get_cache_store),
):
    program = await create_program_service(
        payload=request.model_dump(exclude_unset=True),
        caller_id=auth.user_id,
        caller_role=auth.role,
        db=db,
        cache=cache,
    )
    return envelope("Program created successfully", program)


@router.patch("/{program_id}")
async def update_program(
    program_id: int,
    request: UpdateProgramRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
    cache: CacheStore = Depends(get_cache_store),
):
    program = await update_program_service(
        program_id=program_id,
        patch=request.model_dump(exclude_unset=True),
        caller_id=auth.user_id,
        caller_role=auth.role,
        db=db,
        cache=cache,
    )
    return envelope("Program updated successfully", program)


@router.delete("/{program_id}")
async def delete_program(
    program_id: int,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
    cache: CacheStore = Depends(get_cache_store),
):
    await remove_program_service(
        program_id=program_id,
        caller_id=auth.user_id,
        caller_role=auth.role,
        db=db,
        cache=cache,
    )
    return envelope("Program deleted successfully")


@router.post("/{program_id}/increment-view")
async def increment_view(
    program_id: int,
    auth: AuthContext = Depends(get_optional_auth_context),
    db: AsyncSession = Depends(get_db),
):
    views = await increment_counter_service(
        program_id=program_id, counter="viewCount", caller_role=auth.role, db=db
    )
    return envelope("View count incremented successfully", {"id": program_id, "viewCount": views})


@router.post("/{program_id}/like")
async def like_program(
    program_id: int,
    auth: AuthContext = Depends(get_optional_auth_context),
    db: AsyncSession = Depends(get_db),
):
    likes = await increment_counter_service(
        program_id=program_id, counter="likeCount", caller_role=auth.role, db=db
    )
    return envelope("Like count incremented successfully", {"id": program_id, "likeCount": likes})
