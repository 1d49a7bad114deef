"""Notification Emitter: durable per-user notifications and the expiring-item check."""

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from biafridge.shared.models import (
    FridgeItem,
    Invite,
    InviteStatus,
    InviteType,
    Notification,
    NotificationType,
    Profile,
)
from biafridge.shared.timeutils import day_window, utcnow
from biafridge.api.errors import NotFound
from biafridge.api.services.fridge_store import FridgeStore, ItemStore

logger = logging.getLogger(__name__)

LIST_LIMIT = 100


def notification_to_dict(notification: Notification) -> dict:
    return {
        "id": notification.id,
        "user_id": notification.user_id,
        "type": notification.type.value,
        "title": notification.title,
        "message": notification.message,
        "read": notification.read,
        "meta": dict(notification.meta or {}),
        "created_at": notification.created_at,
        "synthetic": False,
    }


class NotificationEmitter:
    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.session = session
        self.clock = clock

    # ========================================================================
    # EMIT
    # ========================================================================

    async def emit(
        self,
        user_id: str,
        type: NotificationType,
        title: str,
        message: str,
        meta: Optional[dict] = None,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            meta={k: v for k, v in (meta or {}).items() if v is not None},
            read=False,
            created_at=self.clock(),
        )
        self.session.add(notification)
        await self.session.commit()
        logger.info(f"Notification {type.value} created for user {user_id}")
        return notification

    async def account_created(self, user_id: str) -> Notification:
        now = self.clock()
        return await self.emit(
            user_id,
            NotificationType.ACCOUNT_CREATED,
            "Welcome to Bia!",
            f"Your account was created on {now:%A, %B} {now.day}, {now.year} at {now:%H:%M}. "
            "Start adding items to your fridge!",
        )

    async def first_item_added(self, user_id: str, fridge_id: str, item_id: str) -> Notification:
        return await self.emit(
            user_id,
            NotificationType.FIRST_ITEM_ADDED,
            "First Item Added! 🎉",
            "Congratulations! You've added your first item to your fridge.",
            {"fridge_id": fridge_id, "item_id": item_id},
        )

    async def item_expiring_tomorrow(
        self, user_id: str, fridge_id: str, item_id: str, item_name: str
    ) -> Notification:
        return await self.emit(
            user_id,
            NotificationType.ITEM_EXPIRING_TOMORROW,
            f'"{item_name}" expires tomorrow',
            f'Don\'t forget! "{item_name}" expires tomorrow. Consider using it soon!',
            {"fridge_id": fridge_id, "item_id": item_id},
        )

    async def fridge_invite(
        self, user_id: str, invite_id: str, invite_token: str, fridge_name: str, inviter_name: str
    ) -> Notification:
        return await self.emit(
            user_id,
            NotificationType.FRIDGE_INVITE,
            *self._invite_copy(fridge_name, inviter_name),
            {"invite_id": invite_id, "invite_token": invite_token},
        )

    async def fridge_joined(
        self, user_id: str, fridge_id: str, fridge_name: Optional[str], other_name: str
    ) -> Notification:
        name = fridge_name or "Shared Fridge"
        return await self.emit(
            user_id,
            NotificationType.FRIDGE_JOINED,
            f'Sharing "{name}"',
            f'You and {other_name} now share "{name}".',
            {"fridge_id": fridge_id},
        )

    @staticmethod
    def _invite_copy(fridge_name: Optional[str], inviter_name: str) -> tuple[str, str]:
        return (
            f'Invitation to "{fridge_name}"',
            f'{inviter_name} invited you to join "{fridge_name}". Click to accept!',
        )

    # ========================================================================
    # READ
    # ========================================================================

    async def has_received(self, user_id: str, type: NotificationType) -> bool:
        result = await self.session.execute(
            select(Notification.id)
            .where(Notification.user_id == user_id, Notification.type == type)
            .limit(1)
        )
        return result.first() is not None

    async def _profile(self, user_id: str) -> Optional[Profile]:
        result = await self.session.execute(select(Profile).where(Profile.user_id == user_id))
        return result.scalar_one_or_none()

    async def _pending_invites_for(self, email: str) -> list[Invite]:
        result = await self.session.execute(
            select(Invite)
            .where(
                Invite.invitee_email == email,
                Invite.invite_type == InviteType.FRIDGE,
                Invite.status == InviteStatus.PENDING,
                Invite.expires_at > self.clock(),
            )
            .order_by(Invite.created_at.desc())
        )
        return list(result.scalars().all())

    async def _stored_invite_tokens(self, user_id: str, tokens: list[str]) -> set[str]:
        if not tokens:
            return set()
        token_col = Notification.meta["invite_token"].as_string()
        result = await self.session.execute(
            select(token_col).where(
                Notification.user_id == user_id,
                Notification.type == NotificationType.FRIDGE_INVITE,
                token_col.in_(tokens),
            )
        )
        return {row[0] for row in result.all()}

    async def _unrepresented_invites(self, user_id: str) -> list[Invite]:
        """Pending invites for the user's email that have no stored notification row."""
        profile = await self._profile(user_id)
        if profile is None or not profile.email:
            return []
        invites = await self._pending_invites_for(profile.email)
        stored = await self._stored_invite_tokens(user_id, [invite.token for invite in invites])
        return [invite for invite in invites if invite.token not in stored]

    async def list_for_user(self, user_id: str, read: Optional[bool] = None) -> list[dict]:
        """
        Newest-first notifications for a user

        Stored rows are merged with synthesized entries for pending fridge
        invites that have no stored row yet. Synthesized entries are unread,
        so they are omitted when ``read`` is True.
        """
        query = select(Notification).where(Notification.user_id == user_id)
        if read is not None:
            query = query.where(Notification.read.is_(read))
        result = await self.session.execute(
            query.order_by(Notification.created_at.desc()).limit(LIST_LIMIT)
        )
        entries = [notification_to_dict(n) for n in result.scalars().all()]

        if read is not True:
            for invite in await self._unrepresented_invites(user_id):
                inviter = await self._profile(invite.inviter_id)
                title, message = self._invite_copy(invite.fridge_name, inviter.name if inviter and inviter.name else "Someone")
                entries.append({
                    "id": f"invite_{invite.id}",
                    "user_id": user_id,
                    "type": NotificationType.FRIDGE_INVITE.value,
                    "title": title,
                    "message": message,
                    "read": False,
                    "meta": {"invite_id": invite.id, "invite_token": invite.token},
                    "created_at": invite.created_at,
                    "synthetic": True,
                })

        entries.sort(key=lambda entry: entry["created_at"], reverse=True)
        return entries[:LIST_LIMIT]

    async def unread_count(self, user_id: str) -> int:
        result = await self.session.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.read.is_(False),
            )
        )
        return result.scalar_one() + len(await self._unrepresented_invites(user_id))

    # ========================================================================
    # UPDATE / DELETE
    # ========================================================================

    async def mark_read(self, notification_id: str, user_id: str) -> Notification:
        result = await self.session.execute(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
            )
        )
        notification = result.scalar_one_or_none()
        if notification is None:
            raise NotFound("Notification not found")
        notification.read = True
        await self.session.commit()
        return notification

    async def mark_all_read(self, user_id: str) -> int:
        result = await self.session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
            .values(read=True)
        )
        await self.session.commit()
        return result.rowcount

    async def mark_invite_read(self, user_id: str, invite_token: str) -> int:
        result = await self.session.execute(
            update(Notification)
            .where(
                Notification.user_id == user_id,
                Notification.type == NotificationType.FRIDGE_INVITE,
                Notification.meta["invite_token"].as_string() == invite_token,
            )
            .values(read=True)
        )
        await self.session.commit()
        return result.rowcount

    async def delete(self, notification_id: str, user_id: str) -> None:
        result = await self.session.execute(
            delete(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
            )
        )
        if result.rowcount == 0:
            await self.session.rollback()
            raise NotFound("Notification not found")
        await self.session.commit()

    async def delete_all(self, user_id: str) -> int:
        result = await self.session.execute(
            delete(Notification).where(Notification.user_id == user_id)
        )
        await self.session.commit()
        return result.rowcount

    # ========================================================================
    # EXPIRING ITEMS
    # ========================================================================

    async def _already_notified(self, user_id: str, item_id: str, day: date) -> bool:
        start, end = day_window(day)
        result = await self.session.execute(
            select(Notification.id).where(
                Notification.user_id == user_id,
                Notification.type == NotificationType.ITEM_EXPIRING_TOMORROW,
                Notification.meta["item_id"].as_string() == item_id,
                Notification.created_at >= start,
                Notification.created_at < end,
            ).limit(1)
        )
        return result.first() is not None

    async def _notify_members(self, item: FridgeItem, today: date) -> int:
        fridge = await FridgeStore(self.session).get(item.fridge_id)
        if fridge is None:
            logger.warning(f"Item {item.id} points at missing fridge {item.fridge_id}")
            return 0

        created = 0
        for member_id in fridge.members:
            if await self._already_notified(member_id, item.id, today):
                continue
            await self.item_expiring_tomorrow(member_id, item.fridge_id, item.id, item.name)
            created += 1
        return created

    async def check_expiring_items(self, today: Optional[date] = None) -> dict:
        """
        Notify every member of a fridge about its unopened items expiring tomorrow

        At most one notification per (user, item) per calendar day.
        """
        today = today or self.clock().date()
        items = await ItemStore(self.session).expiring_on(today + timedelta(days=1))

        created = 0
        for item in items:
            created += await self._notify_members(item, today)

        logger.info(f"Expiring items checked: {len(items)} items, {created} notifications")
        return {"notifications_created": created, "items_checked": len(items)}

    async def notify_if_expiring(self, item: FridgeItem) -> int:
        """Apply the expiring-tomorrow rule to a single item at write time."""
        today = self.clock().date()
        if item.is_opened or item.expiry_date != today + timedelta(days=1):
            return 0
        return await self._notify_members(item, today)
