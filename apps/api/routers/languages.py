"""Language lookup router."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, require_roles
from routers.envelope import envelope
from services.cache import CacheStore, get_cache_store
from services.lookups import (
    LANGUAGE_LOOKUP,
    create_lookup_service,
    get_lookup_service,
    list_lookups_service,
    remove_lookup_service,
    update_lookup_service,
)
from services.visibility import ROLE_ADMIN

router = APIRouter()


class CreateLanguageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    code: str = Field(min_length=2, max_length=5)
    sort_order: Optional[int] = Field(default=None, ge=0, alias="sortOrder")


class UpdateLanguageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(default=None, min_length=1)
    code: Optional[str] = Field(default=None, min_length=2, max_length=5)
    is_active: Optional[bool] = Field(default=None, alias="isActive")
    sort_order: Optional[int] = Field(default=None, ge=0, alias="sortOrder")


@router.get("")
async def list_languages(
    db: AsyncSession = Depends(get_db),
    cache: CacheStore = Depends(get_cache_store),
):
    result = await list_lookups_service(LANGUAGE_LOOKUP, active_only=False, db=db, cache=cache)
    return envelope("Languages retrieved successfully", result["data"], source=result["source"])


@router.get("/active")
async def list_active_languages(
    db: AsyncSession = Depends(get_db),
    cache: CacheStore = Depends(get_cache_store),
):
    result = await list_lookups_service(LANGUAGE_LOOKUP, active_only=True, db=db, cache=cache)
    return envelope("Active languages retrieved successfully", result["data"], source=result["source"])


@router.get("/{language_id}")
async def get_language(
    language_id: int,
    db: AsyncSession = Depends(get_db),
    cache: CacheStore = Depends(get_cache_store),
):
    result = await get_lookup_service(LANGUAGE_LOOKUP, row_id=language_id, db=db, cache=cache)
    return envelope("Language retrieved successfully", result["data"], source=result["source"])


@router.post("")
async def create_language(
    request: CreateLanguageRequest,
    _admin: AuthContext = Depends(require_roles(ROLE_ADMIN)),
    db: AsyncSession = Depends(get_db),
    cache: CacheStore = Depends(get_cache_store),
):
    language = await create_lookup_service(
        LANGUAGE_LOOKUP,
        payload=request.model_dump(exclude_unset=True),
        db=db,
        cache=cache,
    )
    return envelope("Language created successfully", language)


@router.patch("/{language_id}")
async def update_language(
    language_id: int,
    request: UpdateLanguageRequest,
    _admin: AuthContext = Depends(require_roles(ROLE_ADMIN)),
    db: AsyncSession = Depends(get_db),
    cache: CacheStore = Depends(get_cache_store),
):
    language = await update_lookup_service(
        LANGUAGE_LOOKUP,
        row_id=language_id,
        patch=request.model_dump(exclude_unset=True),
        db=db,
        cache=cache,
    )
    return envelope("Language updated successfully", language)


@router.delete("/{language_id}")
async def delete_language(
    language_id: int,
    _admin: AuthContext = Depends(require_roles(ROLE_ADMIN)),
    db: AsyncSession = Depends(get_db),
    cache: CacheStore = Depends(get_cache_store),
):
    await remove_lookup_service(LANGUAGE_LOOKUP, row_id=language_id, db=db, cache=cache)
    return envelope("Language deleted successfully")
