"""
Authentication Router
Handles email/password sign-up and verification, Google sign-in, login, and
password reset.
"""

import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from biafridge.api.config import get_settings
from biafridge.api.dependencies import get_current_user_id, get_google_verifier, get_mailer
from biafridge.api.errors import Forbidden, NotFound
from biafridge.api.schemas import (
    CheckEmailResponse,
    SignupRequest,
    SignupResponse,
    LoginRequest,
    GoogleAuthRequest,
    TokenResponse,
    UserResponse,
    PasswordResetRequest,
    PasswordResetConfirm,
    PasswordResetResponse,
    MessageResponse,
)
from biafridge.api.security import create_access_token
from biafridge.api.services.account_store import AccountStore
from biafridge.api.services.google_identity import GoogleTokenVerifier
from biafridge.api.services.mail_service import (
    MailSender,
    frontend_link,
    password_reset_email,
    verification_email,
)
from biafridge.api.services.notification_emitter import NotificationEmitter
from biafridge.api.services.profile_resolver import ProfileResolver
from biafridge.shared.database import get_session

settings = get_settings()
logger = logging.getLogger(__name__)

router = APIRouter()


async def _token_response(session: AsyncSession, user_id: str) -> TokenResponse:
    profile = await ProfileResolver(session).get_profile(user_id)
    account = await AccountStore(session).get(user_id)
    access_token, _ = create_access_token(user_id)
    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        expires_in=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=UserResponse(
            user_id=user_id,
            email=profile.email if profile else (account.email if account else None),
            name=profile.name if profile else (account.name if account else None),
            fridge_id=profile.fridge_id if profile else None,
            email_verified=account.email_verified if account else None,
        ),
    )


@router.get(
    "/check-email/{email}",
    response_model=CheckEmailResponse,
    summary="Check email",
    description="Report whether an email is registered and with which sign-in method",
)
async def check_email(
    email: str,
    session: AsyncSession = Depends(get_session),
) -> CheckEmailResponse:
    return CheckEmailResponse(**await AccountStore(session).check_email(email))


@router.post(
    "/signup",
    response_model=SignupResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Sign up",
    description="Create an email/password account with its personal fridge and send a verification email",
)
async def signup(
    request: SignupRequest,
    session: AsyncSession = Depends(get_session),
    mailer: MailSender = Depends(get_mailer),
) -> SignupResponse:
    """Create account, personal fridge and welcome notification."""
    account = await AccountStore(session).create_account(
        request.email, request.password, request.name
    )
    user_id = account.id
    email = account.email
    name = account.name
    token = account.email_verification_token

    ensured = await ProfileResolver(session).ensure(user_id, email, name)
    await NotificationEmitter(session).account_created(user_id)

    link = frontend_link(settings, "verify-email", token)
    subject, html = verification_email(name, link, settings.EMAIL_VERIFICATION_EXPIRY_HOURS)
    sent = await mailer.send(email, subject, html)
    if not sent:
        logger.info(f"Verification link (email not sent): {link}")

    logger.info(f"New user signed up: {user_id}")

    return SignupResponse(
        message=(
            "Account created successfully. Please check your email to verify your account."
            if sent
            else "Account created but verification email could not be sent."
        ),
        user_id=user_id,
        fridge_id=ensured.fridge_id,
        email_sent=sent,
        verification_link=None if sent else link,
    )


@router.get(
    "/verify-email",
    response_model=MessageResponse,
    summary="Verify email",
    description="Consume an email verification token",
)
async def verify_email(
    token: str = Query(""),
    session: AsyncSession = Depends(get_session),
) -> MessageResponse:
    await AccountStore(session).verify_email(token)
    return MessageResponse(message="Email verified successfully. You can now sign in.")


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="User login",
    description="Authenticate with email and password and return a JWT",
)
async def login(
    request: LoginRequest,
    session: AsyncSession = Depends(get_session),
) -> TokenResponse:
    account = await AccountStore(session).authenticate(request.email, request.password)
    user_id, email, name = account.id, account.email, account.name
    await ProfileResolver(session).ensure(user_id, email, name)

    logger.info(f"User logged in: {user_id}")
    return await _token_response(session, user_id)


@router.post(
    "/google-signup",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Google sign-up",
    description="Register a verified Google identity with its personal fridge",
)
async def google_signup(
    request: GoogleAuthRequest,
    session: AsyncSession = Depends(get_session),
    verifier: GoogleTokenVerifier = Depends(get_google_verifier),
) -> TokenResponse:
    identity = await verifier.verify(request.id_token)
    user_id = identity.user_id
    name = request.name or identity.name
    email = await AccountStore(session).register_google_identity(user_id, identity.email)

    resolver = ProfileResolver(session)
    # The profile is the account of a Google identity; create it before ensure's gate
    await resolver.ensure_profile(user_id, email, name)
    await resolver.ensure(user_id, email, name)
    await NotificationEmitter(session).account_created(user_id)

    logger.info(f"New Google user signed up: {user_id}")
    return await _token_response(session, user_id)


@router.post(
    "/google-login",
    response_model=TokenResponse,
    summary="Google login",
    description="Sign in with a verified Google identity that already has a profile",
)
async def google_login(
    request: GoogleAuthRequest,
    session: AsyncSession = Depends(get_session),
    verifier: GoogleTokenVerifier = Depends(get_google_verifier),
) -> TokenResponse:
    identity = await verifier.verify(request.id_token)
    user_id = identity.user_id
    if await AccountStore(session).get(user_id) is not None:
        raise Forbidden("This account signs in with email and password")

    resolver = ProfileResolver(session)
    if await resolver.get_profile(user_id) is None:
        raise Forbidden("Account not found. Please sign up first.", needs_signup=True)
    await resolver.ensure(user_id, identity.email, request.name or identity.name)

    logger.info(f"Google user logged in: {user_id}")
    return await _token_response(session, user_id)


@router.post(
    "/password-reset/request",
    response_model=PasswordResetResponse,
    summary="Request password reset",
    description="Email a password reset link. Unknown emails get the same answer.",
)
async def request_password_reset(
    request: PasswordResetRequest,
    session: AsyncSession = Depends(get_session),
    mailer: MailSender = Depends(get_mailer),
) -> PasswordResetResponse:
    message = "If an account exists for this email, a reset link has been sent."
    issued = await AccountStore(session).request_password_reset(request.email)
    if issued is None:
        return PasswordResetResponse(message=message)

    account, token = issued
    link = frontend_link(settings, "reset-password", token)
    subject, html = password_reset_email(account.name, link)
    sent = await mailer.send(account.email, subject, html)
    if not sent:
        logger.info(f"Password reset link (email not sent): {link}")
        return PasswordResetResponse(message=message, email_sent=False, reset_link=link)
    return PasswordResetResponse(message=message, email_sent=True)


@router.post(
    "/password-reset/confirm",
    response_model=MessageResponse,
    summary="Reset password",
    description="Set a new password with a reset token",
)
async def confirm_password_reset(
    request: PasswordResetConfirm,
    session: AsyncSession = Depends(get_session),
) -> MessageResponse:
    await AccountStore(session).reset_password(request.token, request.new_password)
    return MessageResponse(message="Password has been reset. You can now sign in.")


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get current user",
    description="Get the current user's profile",
)
async def get_current_user_info(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> UserResponse:
    profile = await ProfileResolver(session).get_profile(user_id)
    account = await AccountStore(session).get(user_id)
    if profile is None and account is None:
        raise NotFound("User not found")
    return UserResponse(
        user_id=user_id,
        email=profile.email if profile else account.email,
        name=profile.name if profile else account.name,
        fridge_id=profile.fridge_id if profile else None,
        email_verified=account.email_verified if account else None,
    )
