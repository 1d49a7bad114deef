"""
Fridge Items Router
Handles perishable items of a fridge the caller belongs to.
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from biafridge.api.dependencies import (
    ensure_fridge_member,
    get_current_user_id,
    require_fridge_member,
)
from biafridge.api.errors import NotFound, ValidationError
from biafridge.api.schemas import (
    FridgeItemCreate,
    FridgeItemUpdate,
    FridgeItemResponse,
    ClearItemsResponse,
    MessageResponse,
)
from biafridge.api.services.fridge_store import CategoryStore, ItemStore
from biafridge.api.services.notification_emitter import NotificationEmitter
from biafridge.shared.database import get_session
from biafridge.shared.models import Fridge, FridgeItem, NotificationType

logger = logging.getLogger(__name__)

router = APIRouter()


async def _member_item(session: AsyncSession, item_id: str, user_id: str) -> FridgeItem:
    item = await ItemStore(session).get(item_id)
    if item is None:
        raise NotFound("Item not found")
    await ensure_fridge_member(session, item.fridge_id, user_id)
    return item


async def _check_category(session: AsyncSession, category_id, fridge_id: str) -> None:
    if category_id and await CategoryStore(session).get(category_id, fridge_id) is None:
        raise ValidationError("Category not found in fridge")


@router.get(
    "",
    response_model=list[FridgeItemResponse],
    summary="List items",
    description="Items of a fridge, newest first",
)
async def list_items(
    fridge: Fridge = Depends(require_fridge_member),
    session: AsyncSession = Depends(get_session),
) -> list[FridgeItem]:
    return await ItemStore(session).list_for_fridge(fridge.id)


@router.post(
    "",
    response_model=FridgeItemResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add item",
    description="Add an item to a fridge",
)
async def create_item(
    request: FridgeItemCreate,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> FridgeItem:
    """Add an item and emit first-item / expiring-tomorrow notifications."""
    await ensure_fridge_member(session, request.fridge_id, user_id)
    await _check_category(session, request.category_id, request.fridge_id)

    items = ItemStore(session)
    item = await items.create(
        fridge_id=request.fridge_id,
        user_id=user_id,
        name=request.name,
        expiry_date=request.expiry_date,
        category_id=request.category_id,
        is_opened=request.is_opened,
        opened_date=request.opened_date,
    )

    notifications = NotificationEmitter(session)
    if not await notifications.has_received(user_id, NotificationType.FIRST_ITEM_ADDED):
        await notifications.first_item_added(user_id, item.fridge_id, item.id)
    await notifications.notify_if_expiring(item)

    logger.info(f"Item {item.id} added to fridge {item.fridge_id} by {user_id}")
    return item


@router.put(
    "/{item_id}",
    response_model=FridgeItemResponse,
    summary="Update item",
    description="Update an item's fields",
)
async def update_item(
    item_id: str,
    request: FridgeItemUpdate,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> FridgeItem:
    item = await _member_item(session, item_id, user_id)
    fields = {
        key: value
        for key, value in request.model_dump(exclude_unset=True).items()
        # only these two may be cleared
        if value is not None or key in ("category_id", "opened_date")
    }
    if fields.get("category_id"):
        await _check_category(session, fields["category_id"], item.fridge_id)

    item = await ItemStore(session).update(item_id, **fields)
    await NotificationEmitter(session).notify_if_expiring(item)
    return item


@router.delete(
    "/{item_id}",
    response_model=MessageResponse,
    summary="Delete item",
    description="Delete an item",
)
async def delete_item(
    item_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> MessageResponse:
    await _member_item(session, item_id, user_id)
    if not await ItemStore(session).delete(item_id):
        raise NotFound("Item not found")
    return MessageResponse(message="Item deleted successfully")


@router.delete(
    "",
    response_model=ClearItemsResponse,
    summary="Clear fridge",
    description="Delete every item of a fridge",
)
async def clear_items(
    fridge: Fridge = Depends(require_fridge_member),
    session: AsyncSession = Depends(get_session),
) -> ClearItemsResponse:
    deleted = await ItemStore(session).clear(fridge.id)
    return ClearItemsResponse(message="All items cleared successfully", deleted_count=deleted)
