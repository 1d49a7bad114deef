"""
Profile Resolver

``ensure`` guarantees that a user identity has a profile anchored to an
existing fridge that lists the user as a member. It is a convergent
procedure: every step is a find-or-create keyed on a unique column, so
concurrent or repeated calls end in the same state.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from biafridge.shared.models import Fridge, Profile
from biafridge.api.errors import Forbidden, FridgeNotFound, NotFound, ValidationError
from biafridge.api.services.account_store import AccountStore, normalize_email
from biafridge.api.services.fridge_store import FridgeStore, ItemStore

logger = logging.getLogger(__name__)

SHARED_FRIDGE_DISPLAY_NAME = "Shared Fridge"


def is_personal(fridge: Fridge, profile: Optional[Profile]) -> bool:
    """A fridge is personal to a user iff it is their profile's anchor."""
    return profile is not None and fridge.id == profile.fridge_id


@dataclass
class EnsureResult:
    fridge_id: str
    members: list[str]
    profile: Profile


@dataclass
class FridgeView:
    fridge_id: str
    name: str
    members: list[str]
    is_personal: bool
    created_at: object


class ProfileResolver:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.fridges = FridgeStore(session)
        self.items = ItemStore(session)
        self.accounts = AccountStore(session)

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        result = await self.session.execute(
            select(Profile)
            .where(Profile.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _gate(self, user_id: str, email: Optional[str]) -> None:
        if not email or await self.accounts.has_account(user_id):
            return
        if not await self.accounts.email_has_account(email):
            raise Forbidden("Account not found. Please sign up first.", needs_signup=True)

    async def _create_profile(
        self,
        user_id: str,
        email: Optional[str],
        name: Optional[str],
        allow_shared_anchor: bool = True,
    ) -> Profile:
        fridge = await self.fridges.find_personal_candidacy(user_id)
        if fridge is None and allow_shared_anchor:
            fridge = await self.fridges.find_any_containing(user_id)
        if fridge is None:
            fridge = await self.fridges.create_personal(user_id, name)
        fridge_id = fridge.id

        profile = Profile(
            user_id=user_id,
            email=normalize_email(email) or None,
            name=name.strip() if name else None,
            fridge_id=fridge_id,
        )
        self.session.add(profile)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            existing = await self.get_profile(user_id)
            if existing is None:
                raise
            logger.info(f"Profile for {user_id} created concurrently; reusing it")
            return existing

        logger.info(f"Profile created for {user_id} anchored to fridge {fridge_id}")
        return profile

    async def _refresh_contact(
        self, profile: Profile, email: Optional[str], name: Optional[str]
    ) -> Profile:
        changed = False
        email = normalize_email(email)
        if email and email != profile.email:
            profile.email = email
            changed = True
        if name and name.strip() and name.strip() != profile.name:
            profile.name = name.strip()
            changed = True
        if changed:
            await self.session.commit()
        return profile

    async def ensure_profile(
        self,
        user_id: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
        allow_shared_anchor: bool = True,
    ) -> Profile:
        """
        Find-or-create the profile and refresh its contact fields.

        With ``allow_shared_anchor=False`` a new profile is only ever anchored
        to a personal fridge, never to a shared one the user already joined.
        """
        profile = await self.get_profile(user_id)
        if profile is None:
            return await self._create_profile(user_id, email, name, allow_shared_anchor)
        return await self._refresh_contact(profile, email, name)

    async def ensure(
        self,
        user_id: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
    ) -> EnsureResult:
        """
        Ensure the user has a profile and a personal fridge they belong to

        Raises:
            ValidationError: no user_id
            Forbidden: unknown identity whose email has no account either
            FridgeNotFound: the profile points at a fridge that does not exist
        """
        if not user_id:
            raise ValidationError("user_id is required")
        await self._gate(user_id, email)

        profile = await self.ensure_profile(user_id, email, name)
        fridge_id = profile.fridge_id

        fridge = await self.fridges.get(fridge_id)
        if fridge is None:
            raise FridgeNotFound(fridge_id, user_id)

        if user_id not in fridge.members:
            fridge = await self.fridges.add_member(fridge_id, user_id)
            moved = await self.items.repoint_user_items(user_id, fridge_id)
            logger.warning(
                f"Repaired membership of {user_id} in fridge {fridge_id}; repointed {moved} items"
            )

        return EnsureResult(fridge_id=fridge_id, members=fridge.members, profile=profile)

    async def ensure_for_caller(self, user_id: str, name: Optional[str] = None) -> EnsureResult:
        """
        ``ensure`` for an authenticated caller.

        The email is never taken from the caller. Invites are routed by
        profile email, so only an address the identity has proved it
        controls may land there.
        """
        if not await self.accounts.has_account(user_id):
            raise Forbidden("Account not found. Please sign up first.", needs_signup=True)
        return await self.ensure(user_id, await self.accounts.email_of(user_id), name)

    # ========================================================================
    # FRIDGE LISTING & MANAGEMENT
    # ========================================================================

    async def list_fridges(self, user_id: str) -> list[FridgeView]:
        """Every fridge containing the user, personal first, then newest first."""
        profile = await self.get_profile(user_id)
        fridges = await self.fridges.list_for_member(user_id)
        views = [
            FridgeView(
                fridge_id=fridge.id,
                name=fridge.name or SHARED_FRIDGE_DISPLAY_NAME,
                members=fridge.members,
                is_personal=is_personal(fridge, profile),
                created_at=fridge.created_at,
            )
            for fridge in fridges
        ]
        # stable sort keeps newest-first within each group
        views.sort(key=lambda view: not view.is_personal)
        return views

    async def _member_fridge(self, fridge_id: str, user_id: str) -> Fridge:
        fridge = await self.fridges.get(fridge_id)
        if fridge is None:
            raise NotFound("Fridge not found")
        if user_id not in fridge.members:
            raise Forbidden("You are not a member of this fridge")
        return fridge

    async def rename_fridge(self, fridge_id: str, user_id: str, name: str) -> Fridge:
        if not name or not name.strip():
            raise ValidationError("Fridge name is required")
        await self._member_fridge(fridge_id, user_id)
        return await self.fridges.rename(fridge_id, name)

    async def leave_fridge(self, fridge_id: str, user_id: str) -> bool:
        """
        Remove the user from a shared fridge

        Returns True when the user was the last member and the fridge was
        deleted along with its items, categories and invites.
        """
        fridge = await self._member_fridge(fridge_id, user_id)
        profile = await self.get_profile(user_id)
        if is_personal(fridge, profile):
            raise ValidationError("You cannot leave your personal fridge")

        remaining = [member for member in fridge.members if member != user_id]
        if not remaining:
            await self.fridges.delete(fridge_id)
            return True

        await self.fridges.remove_member(fridge_id, user_id)
        logger.info(f"User {user_id} left fridge {fridge_id}")
        return False
