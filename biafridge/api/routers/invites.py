"""
Invites Router
Handles fridge-share and account invites, previews, and acceptance.
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from biafridge.api.dependencies import get_current_user_id, get_mailer
from biafridge.api.schemas import (
    InviteCreate,
    InviteCreateResponse,
    InviteAcceptRequest,
    InviteAcceptResponse,
    InvitePreviewResponse,
    CheckUserResponse,
)
from biafridge.api.services.account_store import AccountStore
from biafridge.api.services.invite_manager import InviteManager
from biafridge.api.services.mail_service import MailSender
from biafridge.shared.database import get_session

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=InviteCreateResponse,
    summary="Invite to share a fridge",
    description=(
        "Invite an existing user to a new shared fridge, created when the invite "
        "is accepted. Emails without an account get has_account=false."
    ),
)
async def create_invite(
    request: InviteCreate,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    mailer: MailSender = Depends(get_mailer),
) -> InviteCreateResponse:
    outcome = await InviteManager(session, mailer).create_fridge_invite(
        user_id, request.invitee_email, request.fridge_name
    )
    return InviteCreateResponse.model_validate(outcome)


@router.post(
    "/account-invite",
    response_model=InviteCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Invite to sign up",
    description="Invite somebody without an account to sign up and share a fridge",
)
async def create_account_invite(
    request: InviteCreate,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    mailer: MailSender = Depends(get_mailer),
) -> InviteCreateResponse:
    outcome = await InviteManager(session, mailer).create_account_invite(
        user_id, request.invitee_email, request.fridge_name
    )
    return InviteCreateResponse.model_validate(outcome)


@router.post(
    "/accept",
    response_model=InviteAcceptResponse,
    summary="Accept invite",
    description="Accept an invite. Repeating the call returns the same fridge.",
)
async def accept_invite(
    request: InviteAcceptRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    mailer: MailSender = Depends(get_mailer),
) -> InviteAcceptResponse:
    # Only an address the caller controls may be stored on their profile
    email = await AccountStore(session).email_of(user_id)
    outcome = await InviteManager(session, mailer).accept(
        request.token, user_id, email, request.name
    )
    return InviteAcceptResponse.model_validate(outcome)


@router.get(
    "/check-user/{target_user_id}",
    response_model=CheckUserResponse,
    summary="Check user",
    description="Whether a user identity has an account",
)
async def check_user(
    target_user_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> CheckUserResponse:
    has_account = await AccountStore(session).has_account(target_user_id)
    return CheckUserResponse(user_id=target_user_id, has_account=has_account)


@router.get(
    "/{token}",
    response_model=InvitePreviewResponse,
    summary="Preview invite",
    description="Invite details shown before accepting",
)
async def get_invite(
    token: str,
    session: AsyncSession = Depends(get_session),
    mailer: MailSender = Depends(get_mailer),
) -> InvitePreviewResponse:
    return InvitePreviewResponse(**await InviteManager(session, mailer).get_invite(token))
