"""
Notifications Router
Handles the caller's notification feed and the expiring-items check.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from biafridge.api.dependencies import get_current_user_id
from biafridge.api.schemas import (
    NotificationResponse,
    UnreadCountResponse,
    ExpiringCheckResponse,
    MessageResponse,
    CountResponse,
)
from biafridge.api.services.notification_emitter import (
    NotificationEmitter,
    notification_to_dict,
)
from biafridge.shared.database import get_session

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "",
    response_model=List[NotificationResponse],
    summary="List notifications",
    description="Newest-first notifications, including pending fridge invites",
)
async def list_notifications(
    read: Optional[bool] = None,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> List[dict]:
    return await NotificationEmitter(session).list_for_user(user_id, read=read)


@router.get(
    "/unread-count",
    response_model=UnreadCountResponse,
    summary="Unread count",
    description="Unread notifications plus pending invites without a stored notification",
)
async def unread_count(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> UnreadCountResponse:
    return UnreadCountResponse(count=await NotificationEmitter(session).unread_count(user_id))


@router.post(
    "/check-expiring-items",
    response_model=ExpiringCheckResponse,
    summary="Check expiring items",
    description="Notify fridge members about unopened items expiring tomorrow",
)
async def check_expiring_items(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> ExpiringCheckResponse:
    result = await NotificationEmitter(session).check_expiring_items()
    return ExpiringCheckResponse(**result)


@router.patch(
    "/read-all",
    response_model=CountResponse,
    summary="Mark all as read",
    description="Mark every notification of the caller as read",
)
async def mark_all_read(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> CountResponse:
    count = await NotificationEmitter(session).mark_all_read(user_id)
    return CountResponse(message="All notifications marked as read", count=count)


@router.patch(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark as read",
    description="Mark notification as read",
)
async def mark_notification_read(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> dict:
    notification = await NotificationEmitter(session).mark_read(notification_id, user_id)
    return notification_to_dict(notification)


@router.delete(
    "",
    response_model=CountResponse,
    summary="Delete all notifications",
    description="Delete every notification of the caller",
)
async def delete_all_notifications(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> CountResponse:
    count = await NotificationEmitter(session).delete_all(user_id)
    return CountResponse(message="All notifications deleted", count=count)


@router.delete(
    "/{notification_id}",
    response_model=MessageResponse,
    summary="Delete notification",
    description="Delete one notification",
)
async def delete_notification(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> MessageResponse:
    await NotificationEmitter(session).delete(notification_id, user_id)
    return MessageResponse(message="Notification deleted")
