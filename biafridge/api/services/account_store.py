"""
Account Store

Email/password credentials, email verification and password reset, plus the
identity lookups ("does this user / email have an account?") the rest of the
service layer relies on.
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from biafridge.shared.models import Account, Profile
from biafridge.shared.timeutils import utcnow
from biafridge.api.config import Settings, get_settings
from biafridge.api.errors import (
    Conflict,
    EmailNotVerified,
    Forbidden,
    InvalidCredentials,
    ValidationError,
)
from biafridge.api.security import hash_password, verify_password

logger = logging.getLogger(__name__)


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def _new_token() -> str:
    return secrets.token_hex(32)


class AccountStore:
    """Credential accounts keyed by unique, normalized email."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.clock = clock

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get(self, account_id: str) -> Optional[Account]:
        result = await self.session.execute(select(Account).where(Account.id == account_id))
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> Optional[Account]:
        result = await self.session.execute(
            select(Account).where(Account.email == normalize_email(email))
        )
        return result.scalar_one_or_none()

    async def _profile_by_user(self, user_id: str) -> Optional[Profile]:
        result = await self.session.execute(select(Profile).where(Profile.user_id == user_id))
        return result.scalar_one_or_none()

    async def _profile_by_email(self, email: str) -> Optional[Profile]:
        result = await self.session.execute(
            select(Profile).where(Profile.email == normalize_email(email)).limit(1)
        )
        return result.scalar_one_or_none()

    async def has_account(self, user_id: str) -> bool:
        """True when the identity has a profile or a credential account."""
        if await self._profile_by_user(user_id) is not None:
            return True
        return await self.get(user_id) is not None

    async def email_has_account(self, email: str) -> bool:
        if not normalize_email(email):
            return False
        if await self.get_by_email(email) is not None:
            return True
        return await self._profile_by_email(email) is not None

    async def user_id_for_email(self, email: str) -> Optional[str]:
        """Identity owning an email, from its profile or else its credential account."""
        if not normalize_email(email):
            return None
        profile = await self._profile_by_email(email)
        if profile is not None:
            return profile.user_id
        account = await self.get_by_email(email)
        return account.id if account is not None else None

    async def email_of(self, user_id: str) -> Optional[str]:
        """
        The email an identity has proved it controls

        That is the credential account's email, or for a Google identity the
        one its last verified sign-in stored on the profile.
        """
        account = await self.get(user_id)
        if account is not None:
            return account.email
        profile = await self._profile_by_user(user_id)
        return profile.email if profile is not None else None

    async def check_email(self, email: str) -> dict:
        """
        Report how an email is registered

        Returns:
            {"exists": bool, "has_google_account": bool, "is_email_verified": bool | None}
        """
        account = await self.get_by_email(email)
        if account is not None:
            return {
                "exists": True,
                "has_google_account": False,
                "is_email_verified": account.email_verified,
            }
        if await self._profile_by_email(email) is not None:
            return {"exists": True, "has_google_account": True, "is_email_verified": None}
        return {"exists": False, "has_google_account": False, "is_email_verified": None}

    # ------------------------------------------------------------------
    # Sign-up & verification
    # ------------------------------------------------------------------

    def _validate_password(self, password: Optional[str]) -> None:
        if not password or len(password) < self.settings.PASSWORD_MIN_LENGTH:
            raise ValidationError(
                f"Password must be at least {self.settings.PASSWORD_MIN_LENGTH} characters long"
            )

    async def create_account(self, email: str, password: str, name: str) -> Account:
        """
        Create an unverified account with a fresh verification token

        Raises:
            ValidationError: missing fields or a too-short password
            Conflict: the email belongs to an account or a Google-linked profile
        """
        email = normalize_email(email)
        if not email or not password or not name or not name.strip():
            raise ValidationError("Email, password, and name are required")
        self._validate_password(password)

        if await self.get_by_email(email) is not None:
            raise Conflict("Email already registered. Please sign in instead.")
        if await self._profile_by_email(email) is not None:
            raise Conflict("This email is already linked to a Google account. Please sign in with Google.")

        account = Account(
            email=email,
            password_hash=hash_password(password),
            name=name.strip(),
            email_verification_token=_new_token(),
            email_verification_expires_at=self.clock()
            + timedelta(hours=self.settings.EMAIL_VERIFICATION_EXPIRY_HOURS),
        )
        self.session.add(account)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise Conflict("Email already registered. Please sign in instead.")

        logger.info(f"Account created: {account.id}")
        return account

    async def verify_email(self, token: str) -> Account:
        if not token:
            raise ValidationError("Verification token is required")
        result = await self.session.execute(
            select(Account).where(
                Account.email_verification_token == token,
                Account.email_verification_expires_at > self.clock(),
            )
        )
        account = result.scalar_one_or_none()
        if account is None:
            raise ValidationError("Invalid or expired verification token")

        account.email_verified = True
        account.email_verification_token = None
        account.email_verification_expires_at = None
        await self.session.commit()
        logger.info(f"Email verified for account {account.id}")
        return account

    async def authenticate(self, email: str, password: str) -> Account:
        if not email or not password:
            raise ValidationError("Email and password are required")
        account = await self.get_by_email(email)
        if account is None or not verify_password(password, account.password_hash):
            raise InvalidCredentials()
        if not account.email_verified:
            raise EmailNotVerified()
        return account

    # ------------------------------------------------------------------
    # Google identities
    # ------------------------------------------------------------------

    async def register_google_identity(self, user_id: str, email: str) -> str:
        """
        Check that a Google identity may register. Returns the normalized email.

        The profile itself is created by the ProfileResolver.
        """
        email = normalize_email(email)
        if not user_id or not email:
            raise ValidationError("user_id and email are required")
        if await self.get(user_id) is not None:
            raise Forbidden("This account signs in with email and password")
        if await self._profile_by_user(user_id) is not None:
            raise Conflict("Account already exists. Please sign in instead.")
        if await self.get_by_email(email) is not None:
            raise Conflict(
                "This email is already registered with an email/password account. "
                "Please sign in with your password instead."
            )
        if await self._profile_by_email(email) is not None:
            raise Conflict("This email is already linked to a Google account. Please sign in with Google instead.")
        return email

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    async def request_password_reset(self, email: str) -> Optional[tuple[Account, str]]:
        """Issue a reset token. Returns None (silently) for unknown emails."""
        account = await self.get_by_email(email)
        if account is None:
            logger.info("Password reset requested for unknown email")
            return None

        token = _new_token()
        account.password_reset_token = token
        account.password_reset_expires_at = self.clock() + timedelta(
            hours=self.settings.PASSWORD_RESET_EXPIRY_HOURS
        )
        await self.session.commit()
        return account, token

    async def reset_password(self, token: str, new_password: str) -> Account:
        if not token:
            raise ValidationError("Reset token is required")
        self._validate_password(new_password)

        result = await self.session.execute(
            select(Account).where(
                Account.password_reset_token == token,
                Account.password_reset_expires_at > self.clock(),
            )
        )
        account = result.scalar_one_or_none()
        if account is None:
            raise ValidationError("Invalid or expired reset token")

        account.password_hash = hash_password(new_password)
        account.password_reset_token = None
        account.password_reset_expires_at = None
        # Proving control of the mailbox also verifies it
        account.email_verified = True
        await self.session.commit()
        logger.info(f"Password reset for account {account.id}")
        return account
