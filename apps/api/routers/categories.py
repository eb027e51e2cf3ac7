"""Category lookup router."""

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
    CATEGORY_LOOKUP,
    create_lookup_service,
    get_lookup_service,
    list_lookups_service,
    remove_lookup_service,
    update_lookup_service,
)
from services.visibility import ROLE_ADMIN

router = APIRouter()


class CreateCategoryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    description: Optional[str] = None
    sort_order: Optional[int] = Field(default=None, ge=0, alias="sortOrder")


class UpdateCategoryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    is_active: Optional[bool] = Field(default=None, alias="isActive")
    sort_order: Optional[int] = Field(default=None, ge=0, alias="sortOrder")


@router.get("")
async def list_categories(
    db: AsyncSession = Depends(get_db),
    cache: CacheStore = Depends(get_cache_store),
):
    result = await list_lookups_service(CATEGORY_LOOKUP, active_only=False, db=db, cache=cache)
    return envelope("Categories retrieved successfully", result["data"], source=result["source"])


@router.get("/active")
async def list_active_categories(
    db: AsyncSession = Depends(get_db),
    cache: CacheStore = Depends(get_cache_store),
):
    result = await list_lookups_service(CATEGORY_LOOKUP, active_only=True, db=db, cache=cache)
    return envelope("Active categories retrieved successfully", result["data"], source=result["source"])


@router.get("/{category_id}")
async def get_category(
    category_id: int,
    db: AsyncSession = Depends(get_db),
    cache: CacheStore = Depends(get_cache_store),
):
    result = await get_lookup_service(CATEGORY_LOOKUP, row_id=category_id, db=db, cache=cache)
    return envelope("Category retrieved successfully", result["data"], source=result["source"])


@router.post("")
async def create_category(
    request: CreateCategoryRequest,
    _admin: AuthContext = Depends(require_roles(ROLE_ADMIN)),
    db: AsyncSession = Depends(get_db),
    cache: CacheStore = Depends(get_cache_store),
):
    category = await create_lookup_service(
        CATEGORY_LOOKUP,
        payload=request.model_dump(exclude_unset=True),
        db=db,
        cache=cache,
    )
    return envelope("Category created successfully", category)


@router.patch("/{category_id}")
async def update_category(
    category_id: int,
    request: UpdateCategoryRequest,
    _admin: AuthContext = Depends(require_roles(ROLE_ADMIN)),
    db: AsyncSession = Depends(get_db),
    cache: CacheStore = Depends(get_cache_store),
):
    category = await update_lookup_service(
        CATEGORY_LOOKUP,
        row_id=category_id,
        patch=request.model_dump(exclude_unset=True),
        db=db,
        cache=cache,
    )
    return envelope("Category updated successfully", category)


@router.delete("/{category_id}")
async def delete_category(
    category_id: int,
    _admin: AuthContext = Depends(require_roles(ROLE_ADMIN)),
    db: AsyncSession = Depends(get_db),
    cache: CacheStore = Depends(get_cache_store),
):
    await remove_lookup_service(CATEGORY_LOOKUP, row_id=category_id, db=db, cache=cache)
    return envelope("Category deleted successfully")
