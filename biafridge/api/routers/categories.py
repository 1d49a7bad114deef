"""
Categories Router
Handles item categories, scoped to one fridge.
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from biafridge.api.dependencies import (
    ensure_fridge_member,
    get_current_user_id,
    require_fridge_member,
)
from biafridge.api.schemas import (
    CategoryCreate,
    CategoryUpdate,
    CategoryResponse,
    MessageResponse,
)
from biafridge.api.services.fridge_store import CategoryStore
from biafridge.shared.database import get_session
from biafridge.shared.models import Category, Fridge

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "",
    response_model=list[CategoryResponse],
    summary="List categories",
    description="Categories of a fridge, by name",
)
async def list_categories(
    fridge: Fridge = Depends(require_fridge_member),
    session: AsyncSession = Depends(get_session),
) -> list[Category]:
    return await CategoryStore(session).list_for_fridge(fridge.id)


@router.post(
    "",
    response_model=CategoryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create category",
    description="Create a category; names are unique within a fridge",
)
async def create_category(
    request: CategoryCreate,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> Category:
    await ensure_fridge_member(session, request.fridge_id, user_id)
    category = await CategoryStore(session).create(request.fridge_id, request.name, request.color)
    logger.info(f"Category {category.id} created in fridge {request.fridge_id}")
    return category


@router.put(
    "/{category_id}",
    response_model=CategoryResponse,
    summary="Update category",
    description="Rename or recolour a category",
)
async def update_category(
    category_id: str,
    request: CategoryUpdate,
    fridge: Fridge = Depends(require_fridge_member),
    session: AsyncSession = Depends(get_session),
) -> Category:
    return await CategoryStore(session).update(
        category_id, fridge.id, name=request.name, color=request.color
    )


@router.delete(
    "/{category_id}",
    response_model=MessageResponse,
    summary="Delete category",
    description="Delete a category; its items become uncategorised",
)
async def delete_category(
    category_id: str,
    fridge: Fridge = Depends(require_fridge_member),
    session: AsyncSession = Depends(get_session),
) -> MessageResponse:
    await CategoryStore(session).delete(category_id, fridge.id)
    return MessageResponse(message="Category deleted successfully")
