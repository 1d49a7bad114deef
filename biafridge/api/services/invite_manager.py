"""
Invite Lifecycle Manager

Creates fridge-share and account-creation invites and accepts them. The
shared fridge is only created when an invite is accepted. Acceptance is a
convergent procedure: a retried or concurrent second request returns the
same fridge without creating another one or re-applying side effects.

Every store write commits on its own, so attribute values needed after a
possible rollback are copied out of ORM objects up front.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import select, update, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from biafridge.shared.models import Invite, InviteStatus, InviteType
from biafridge.shared.timeutils import utcnow
from biafridge.api.config import Settings, get_settings
from biafridge.api.errors import (
    Conflict,
    Expired,
    FridgeNotFound,
    InviterProfileMissing,
    NotFound,
    ValidationError,
)
from biafridge.api.services import invite_state as states
from biafridge.api.services.account_store import AccountStore, normalize_email
from biafridge.api.services.fridge_store import CategoryStore, FridgeStore, ItemStore
from biafridge.api.services.mail_service import (
    MailSender,
    account_invite_email,
    fridge_invite_email,
    frontend_link,
)
from biafridge.api.services.notification_emitter import NotificationEmitter
from biafridge.api.services.profile_resolver import ProfileResolver

logger = logging.getLogger(__name__)


@dataclass
class InviteOutcome:
    """Result of creating an invite. ``link`` is set whenever mail was not delivered."""
    has_account: bool
    invite_id: Optional[str] = None
    token: Optional[str] = None
    expires_at: Optional[datetime] = None
    email_sent: bool = False
    link: Optional[str] = None


@dataclass
class AcceptOutcome:
    fridge_id: str
    already_accepted: bool = False


@dataclass(frozen=True)
class _InviteSnapshot:
    id: str
    token: str
    inviter_id: str
    invitee_email: str
    invite_type: InviteType
    fridge_name: Optional[str]
    fridge_id: Optional[str]
    expires_at: datetime

    @classmethod
    def of(cls, invite: Invite) -> "_InviteSnapshot":
        return cls(
            id=invite.id,
            token=invite.token,
            inviter_id=invite.inviter_id,
            invitee_email=invite.invitee_email,
            invite_type=invite.invite_type,
            fridge_name=invite.fridge_name,
            fridge_id=invite.fridge_id,
            expires_at=invite.expires_at,
        )


class InviteManager:
    def __init__(
        self,
        session: AsyncSession,
        mailer: MailSender,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.mailer = mailer
        self.settings = settings or get_settings()
        self.clock = clock
        self.accounts = AccountStore(session, self.settings, clock)
        self.fridges = FridgeStore(session)
        self.items = ItemStore(session)
        self.categories = CategoryStore(session)
        self.profiles = ProfileResolver(session)
        self.notifications = NotificationEmitter(session, clock)

    # ========================================================================
    # LOOKUP
    # ========================================================================

    async def _load(self, token: str) -> Optional[Invite]:
        result = await self.session.execute(
            select(Invite)
            .where(Invite.token == token)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _store_expired(self, invite_id: str) -> None:
        await self.session.execute(
            update(Invite)
            .where(Invite.id == invite_id, Invite.status == InviteStatus.PENDING)
            .values(status=InviteStatus.EXPIRED, updated_at=self.clock())
        )
        await self.session.commit()
        logger.info(f"Invite {invite_id} expired")

    async def get_invite(self, token: str) -> dict:
        """Preview an invite, expiring it lazily."""
        invite = await self._load(token)
        if invite is None:
            raise NotFound("Invite not found")
        snapshot = _InviteSnapshot.of(invite)

        state = states.current_state(invite, self.clock())
        if isinstance(state, states.Expired) and invite.status == InviteStatus.PENDING:
            await self._store_expired(snapshot.id)

        inviter = await self.profiles.get_profile(snapshot.inviter_id)
        return {
            "token": snapshot.token,
            "invite_type": snapshot.invite_type.value,
            "fridge_name": snapshot.fridge_name,
            "fridge_id": state.fridge_id if isinstance(state, states.Accepted) else None,
            "inviter_name": inviter.name if inviter else None,
            "invitee_email": snapshot.invitee_email,
            "status": states.status_of(state).value,
            "expires_at": snapshot.expires_at,
        }

    # ========================================================================
    # CREATION
    # ========================================================================

    async def _prepare(self, inviter_id: str, invitee_email: str, fridge_name: Optional[str]):
        email = normalize_email(invitee_email)
        if not inviter_id or not email:
            raise ValidationError("inviter_id and invitee_email are required")

        inviter = await self.profiles.get_profile(inviter_id)
        if inviter is None:
            raise NotFound("Inviter profile not found")

        if not fridge_name or not fridge_name.strip():
            raise ValidationError("fridge_name is required when creating a shared fridge")
        if inviter.email and inviter.email == email:
            raise ValidationError("You cannot invite yourself")
        return inviter, email, fridge_name.strip()

    async def _persist(
        self, inviter_id: str, email: str, fridge_name: str, invite_type: InviteType
    ) -> _InviteSnapshot:
        invite = Invite(
            token=secrets.token_urlsafe(32),
            inviter_id=inviter_id,
            invitee_email=email,
            invite_type=invite_type,
            fridge_name=fridge_name,
            fridge_id=None,
            status=InviteStatus.PENDING,
            expires_at=self.clock() + timedelta(hours=self.settings.INVITE_EXPIRY_HOURS),
        )
        self.session.add(invite)
        await self.session.commit()
        logger.info(f"Invite {invite.id} ({invite_type.value}) created by {inviter_id}")
        return _InviteSnapshot.of(invite)

    async def _mail(self, to: str, subject: str, html: str, from_name: str, link: str) -> bool:
        # The invite is already committed; delivery failure only changes the outcome
        sent = await self.mailer.send(to, subject, html, from_name=from_name)
        if not sent:
            logger.info(f"Invite link (email not sent): {link}")
        return sent

    async def create_fridge_invite(
        self, inviter_id: str, invitee_email: str, fridge_name: Optional[str]
    ) -> InviteOutcome:
        """
        Invite an existing user to a shared fridge that is created on acceptance

        Returns an outcome with ``has_account=False`` and persists nothing when
        the email belongs to no account.
        """
        inviter, email, fridge_name = await self._prepare(inviter_id, invitee_email, fridge_name)
        inviter_name = inviter.name or "Bia Fridge"

        invitee_id = await self.accounts.user_id_for_email(email)
        if invitee_id is None:
            return InviteOutcome(has_account=False)

        snapshot = await self._persist(inviter_id, email, fridge_name, InviteType.FRIDGE)

        link = frontend_link(self.settings, "invite/accept", snapshot.token)
        subject, html = fridge_invite_email(inviter_name, fridge_name, link, self.settings.INVITE_EXPIRY_HOURS)
        sent = await self._mail(email, subject, html, inviter_name, link)

        try:
            await self.notifications.fridge_invite(
                invitee_id, snapshot.id, snapshot.token, fridge_name, inviter_name
            )
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to record invite notification for {invitee_id}: {e}")

        return InviteOutcome(
            has_account=True,
            invite_id=snapshot.id,
            token=snapshot.token,
            expires_at=snapshot.expires_at,
            email_sent=sent,
            link=None if sent else link,
        )

    async def create_account_invite(
        self, inviter_id: str, invitee_email: str, fridge_name: Optional[str]
    ) -> InviteOutcome:
        """Invite somebody without an account to sign up and share a fridge."""
        inviter, email, fridge_name = await self._prepare(inviter_id, invitee_email, fridge_name)
        inviter_name = inviter.name or "Bia Fridge"

        if await self.accounts.email_has_account(email):
            raise Conflict("This email already has an account. Send a fridge invite instead.")

        snapshot = await self._persist(inviter_id, email, fridge_name, InviteType.ACCOUNT)

        link = frontend_link(self.settings, "signup", snapshot.token)
        subject, html = account_invite_email(inviter_name, fridge_name, link, self.settings.INVITE_EXPIRY_HOURS)
        sent = await self._mail(email, subject, html, inviter_name, link)

        return InviteOutcome(
            has_account=False,
            invite_id=snapshot.id,
            token=snapshot.token,
            expires_at=snapshot.expires_at,
            email_sent=sent,
            link=None if sent else link,
        )

    # ========================================================================
    # ACCEPTANCE
    # ========================================================================

    async def accept(
        self,
        token: str,
        user_id: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
    ) -> AcceptOutcome:
        """
        Accept an invite on behalf of ``user_id``

        Raises:
            ValidationError: missing token/user, own invite, or no fridge name
            NotFound: unknown token
            Expired: the invite is past its expiry
            IntegrityViolation: the inviter has no profile
        """
        if not token or not user_id:
            raise ValidationError("token and user_id are required")

        invite = await self._load(token)
        if invite is None:
            raise NotFound("Invite not found")
        snapshot = _InviteSnapshot.of(invite)

        state = states.current_state(invite, self.clock())
        if isinstance(state, states.Accepted):
            return AcceptOutcome(fridge_id=state.fridge_id, already_accepted=True)
        if isinstance(state, states.Expired):
            await self._store_expired(snapshot.id)
            raise Expired("Invite has expired")

        if snapshot.inviter_id == user_id:
            raise ValidationError("You cannot accept your own invite")

        fridge_id = await self._resolve_shared_fridge(snapshot, user_id)
        await self.profiles.ensure_profile(user_id, email, name, allow_shared_anchor=False)

        if snapshot.invite_type == InviteType.ACCOUNT:
            await self._migrate_inviter(snapshot.inviter_id, fridge_id)

        if not await self._mark_accepted(snapshot.id, user_id, fridge_id):
            # Another request finished first, or the invite expired meanwhile
            invite = await self._load(token)
            state = states.current_state(invite, self.clock())
            if isinstance(state, states.Accepted):
                return AcceptOutcome(fridge_id=state.fridge_id, already_accepted=True)
            await self._store_expired(snapshot.id)
            raise Expired("Invite has expired")

        await self._announce(snapshot, user_id, fridge_id, name)
        logger.info(f"Invite {snapshot.id} accepted by {user_id}; fridge {fridge_id}")
        return AcceptOutcome(fridge_id=fridge_id)

    async def _resolve_shared_fridge(self, snapshot: _InviteSnapshot, user_id: str) -> str:
        if snapshot.fridge_id:
            fridge = await self.fridges.get(snapshot.fridge_id)
            if fridge is None:
                raise FridgeNotFound(snapshot.fridge_id)
            await self.fridges.add_member(snapshot.fridge_id, user_id)
            return snapshot.fridge_id

        if not snapshot.fridge_name or not snapshot.fridge_name.strip():
            raise ValidationError("Fridge name not found in invite")
        if await self.profiles.get_profile(snapshot.inviter_id) is None:
            raise InviterProfileMissing(snapshot.inviter_id)

        fridge = await self.fridges.create(
            [snapshot.inviter_id, user_id], name=snapshot.fridge_name.strip()
        )
        new_fridge_id = fridge.id

        # Compare-and-set: only one request may attach its fridge
        result = await self.session.execute(
            update(Invite)
            .where(Invite.id == snapshot.id, Invite.fridge_id.is_(None))
            .values(fridge_id=new_fridge_id, updated_at=self.clock())
        )
        await self.session.commit()
        if result.rowcount == 1:
            return new_fridge_id

        await self.fridges.delete(new_fridge_id)
        winner = await self.session.execute(select(Invite.fridge_id).where(Invite.id == snapshot.id))
        winner_fridge_id = winner.scalar_one()
        logger.info(f"Invite {snapshot.id} raced; adopting fridge {winner_fridge_id}")
        await self.fridges.add_member(winner_fridge_id, user_id)
        return winner_fridge_id

    async def _migrate_inviter(self, inviter_id: str, shared_fridge_id: str) -> None:
        """Move the inviter's personal inventory into the new shared fridge."""
        inviter = await self.profiles.get_profile(inviter_id)
        if inviter is None:
            raise InviterProfileMissing(inviter_id)
        source_fridge_id = inviter.fridge_id
        if source_fridge_id == shared_fridge_id:
            return

        await self.categories.move_all(source_fridge_id, shared_fridge_id)
        moved = await self.items.move_fridge_items(source_fridge_id, shared_fridge_id)

        inviter.fridge_id = shared_fridge_id
        await self.session.commit()
        logger.info(
            f"Moved {moved} items of {inviter_id} from {source_fridge_id} to {shared_fridge_id}"
        )

    async def _mark_accepted(self, invite_id: str, user_id: str, fridge_id: str) -> bool:
        """Compare-and-set pending to accepted. False when another request won."""
        now = self.clock()
        next_state = states.accept(states.Pending(), fridge_id)
        result = await self.session.execute(
            update(Invite)
            .where(
                Invite.id == invite_id,
                Invite.status == InviteStatus.PENDING,
                Invite.expires_at >= now,
            )
            .values(
                status=states.status_of(next_state),
                fridge_id=next_state.fridge_id,
                accepted_by=user_id,
                accepted_at=now,
                updated_at=now,
            )
        )
        await self.session.commit()
        return result.rowcount == 1

    async def _announce(
        self, snapshot: _InviteSnapshot, user_id: str, fridge_id: str, name: Optional[str]
    ) -> None:
        try:
            inviter = await self.profiles.get_profile(snapshot.inviter_id)
            invitee = await self.profiles.get_profile(user_id)
            inviter_name = inviter.name if inviter and inviter.name else "Someone"
            invitee_name = (invitee.name if invitee and invitee.name else None) or name or "Someone"

            await self.notifications.fridge_joined(snapshot.inviter_id, fridge_id, snapshot.fridge_name, invitee_name)
            await self.notifications.fridge_joined(user_id, fridge_id, snapshot.fridge_name, inviter_name)
            await self.notifications.mark_invite_read(user_id, snapshot.token)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to record acceptance notifications for invite {snapshot.id}: {e}")

    # ========================================================================
    # MAINTENANCE
    # ========================================================================

    async def purge_expired(self, now: Optional[datetime] = None) -> dict:
        """
        Expire overdue pending invites and delete expired ones past retention
        """
        now = now or self.clock()
        expired = await self.session.execute(
            update(Invite)
            .where(Invite.status == InviteStatus.PENDING, Invite.expires_at < now)
            .values(status=InviteStatus.EXPIRED, updated_at=now)
        )
        cutoff = now - timedelta(days=self.settings.INVITE_RETENTION_DAYS)
        deleted = await self.session.execute(
            delete(Invite).where(Invite.status == InviteStatus.EXPIRED, Invite.expires_at < cutoff)
        )
        await self.session.commit()
        logger.info(f"Invite sweep: {expired.rowcount} expired, {deleted.rowcount} deleted")
        return {"expired": expired.rowcount, "deleted": deleted.rowcount}
