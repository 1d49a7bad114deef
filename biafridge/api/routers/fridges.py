"""
Fridges Router
Handles the personal-fridge ensure protocol, listing, renaming and leaving.
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from biafridge.api.dependencies import get_current_user_id
from biafridge.api.schemas import (
    EnsureFridgeRequest,
    EnsureFridgeResponse,
    FridgeResponse,
    FridgeRenameRequest,
    FridgeRenameResponse,
    LeaveFridgeResponse,
)
from biafridge.api.services.profile_resolver import ProfileResolver
from biafridge.shared.database import get_session

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/ensure",
    response_model=EnsureFridgeResponse,
    status_code=status.HTTP_200_OK,
    summary="Ensure personal fridge",
    description="Idempotently create the caller's profile and personal fridge and return the fridge id",
)
async def ensure_fridge(
    request: EnsureFridgeRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> EnsureFridgeResponse:
    result = await ProfileResolver(session).ensure_for_caller(user_id, request.name)
    return EnsureFridgeResponse(fridge_id=result.fridge_id, members=result.members)


@router.get(
    "",
    response_model=list[FridgeResponse],
    summary="List fridges",
    description="Every fridge the caller belongs to, personal fridge first",
)
async def list_fridges(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> list[FridgeResponse]:
    views = await ProfileResolver(session).list_fridges(user_id)
    return [FridgeResponse.model_validate(view) for view in views]


@router.put(
    "/{fridge_id}/name",
    response_model=FridgeRenameResponse,
    summary="Rename fridge",
    description="Rename a fridge the caller belongs to",
)
async def rename_fridge(
    fridge_id: str,
    request: FridgeRenameRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> FridgeRenameResponse:
    fridge = await ProfileResolver(session).rename_fridge(fridge_id, user_id, request.name)
    logger.info(f"Fridge {fridge_id} renamed by {user_id}")
    return FridgeRenameResponse(fridge_id=fridge.id, name=fridge.name)


@router.post(
    "/{fridge_id}/leave",
    response_model=LeaveFridgeResponse,
    summary="Leave fridge",
    description="Leave a shared fridge. The last member leaving deletes it.",
)
async def leave_fridge(
    fridge_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> LeaveFridgeResponse:
    deleted = await ProfileResolver(session).leave_fridge(fridge_id, user_id)
    return LeaveFridgeResponse(
        message="Fridge deleted" if deleted else "You left the fridge",
        fridge_deleted=deleted,
    )
