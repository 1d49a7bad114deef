"""
Fridge, item and category persistence.

Every write commits immediately. Multi-step procedures built on top of these
stores (ensure, invite acceptance) converge by re-execution instead of relying
on an enclosing transaction.
"""

import logging
from datetime import date
from typing import Iterable, Optional

from sqlalchemy import select, update, delete, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from biafridge.shared.models import Category, Fridge, FridgeItem, FridgeMember, Invite
from biafridge.shared.timeutils import utcnow
from biafridge.api.errors import Conflict, NotFound, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_COLOR = "#6200ee"


def personal_fridge_name(name: Optional[str]) -> Optional[str]:
    """``"Anna's Fridge"``, or ``"James' Fridge"`` when the name ends in s."""
    if not name or not name.strip():
        return None
    trimmed = name.strip()
    if trimmed.lower().endswith("s"):
        return f"{trimmed}' Fridge"
    return f"{trimmed}'s Fridge"


class FridgeStore:
    """Fridges and their flat member sets."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _select(self):
        # Memberships change underneath loaded objects; always reload them.
        return select(Fridge).execution_options(populate_existing=True)

    async def get(self, fridge_id: Optional[str]) -> Optional[Fridge]:
        if not fridge_id:
            return None
        result = await self.session.execute(self._select().where(Fridge.id == fridge_id))
        return result.scalar_one_or_none()

    async def create(
        self,
        members: Iterable[str],
        name: Optional[str] = None,
        personal_owner: Optional[str] = None,
    ) -> Fridge:
        """Insert a fridge with the given members (order kept, duplicates dropped)."""
        fridge = Fridge(
            name=name,
            personal_owner=personal_owner,
            memberships=[FridgeMember(user_id=user_id) for user_id in dict.fromkeys(members)],
        )
        self.session.add(fridge)
        await self.session.commit()
        logger.info(f"Created fridge {fridge.id} ({name or 'unnamed'})")
        return await self.get(fridge.id)

    async def create_personal(self, user_id: str, name: Optional[str] = None) -> Fridge:
        """Find-or-create the fridge keyed by ``personal_owner == user_id``."""
        existing = await self._by_personal_owner(user_id)
        if existing is not None:
            return existing
        try:
            return await self.create([user_id], name=personal_fridge_name(name), personal_owner=user_id)
        except IntegrityError:
            await self.session.rollback()
            logger.info(f"Personal fridge for {user_id} created concurrently; reusing it")
            existing = await self._by_personal_owner(user_id)
            if existing is None:
                raise
            return existing

    async def add_member(self, fridge_id: str, user_id: str) -> Fridge:
        """Add ``user_id`` to the member set. No-op when already present."""
        fridge = await self.get(fridge_id)
        if fridge is None:
            raise NotFound("Fridge not found")
        if user_id in fridge.members:
            return fridge

        self.session.add(FridgeMember(fridge_id=fridge_id, user_id=user_id))
        try:
            await self.session.commit()
        except IntegrityError:
            # A concurrent request inserted the same membership
            await self.session.rollback()
        return await self.get(fridge_id)

    async def remove_member(self, fridge_id: str, user_id: str) -> Optional[Fridge]:
        await self.session.execute(
            delete(FridgeMember).where(
                FridgeMember.fridge_id == fridge_id,
                FridgeMember.user_id == user_id,
            )
        )
        await self.session.commit()
        return await self.get(fridge_id)

    async def rename(self, fridge_id: str, name: str) -> Fridge:
        if not name or not name.strip():
            raise ValidationError("Fridge name is required")
        await self.session.execute(
            update(Fridge)
            .where(Fridge.id == fridge_id)
            .values(name=name.strip(), updated_at=utcnow())
        )
        await self.session.commit()
        fridge = await self.get(fridge_id)
        if fridge is None:
            raise NotFound("Fridge not found")
        return fridge

    async def _by_personal_owner(self, user_id: str) -> Optional[Fridge]:
        result = await self.session.execute(self._select().where(Fridge.personal_owner == user_id))
        return result.scalar_one_or_none()

    async def find_personal_candidacy(self, user_id: str) -> Optional[Fridge]:
        """
        Fridge that can serve as the user's personal fridge

        Preference: the fridge created as their personal fridge, else the
        oldest fridge whose member set is exactly ``{user_id}`` and that is
        not somebody else's personal fridge.
        """
        fridge = await self._by_personal_owner(user_id)
        if fridge is not None:
            return fridge

        solo_fridges = (
            select(FridgeMember.fridge_id)
            .group_by(FridgeMember.fridge_id)
            .having(func.count(FridgeMember.id) == 1)
        )
        result = await self.session.execute(
            self._select()
            .join(FridgeMember, FridgeMember.fridge_id == Fridge.id)
            .where(
                FridgeMember.user_id == user_id,
                Fridge.id.in_(solo_fridges),
                or_(Fridge.personal_owner.is_(None), Fridge.personal_owner == user_id),
            )
            .order_by(Fridge.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_any_containing(self, user_id: str) -> Optional[Fridge]:
        result = await self.session.execute(
            self._select()
            .join(FridgeMember, FridgeMember.fridge_id == Fridge.id)
            .where(FridgeMember.user_id == user_id)
            .order_by(FridgeMember.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_for_member(self, user_id: str) -> list[Fridge]:
        """All fridges containing the user, newest first."""
        result = await self.session.execute(
            self._select()
            .join(FridgeMember, FridgeMember.fridge_id == Fridge.id)
            .where(FridgeMember.user_id == user_id)
            .order_by(Fridge.created_at.desc())
        )
        return list(result.scalars().all())

    async def delete(self, fridge_id: str) -> None:
        """Delete a fridge together with its items, categories and invites."""
        await self.session.execute(delete(FridgeItem).where(FridgeItem.fridge_id == fridge_id))
        await self.session.execute(delete(Category).where(Category.fridge_id == fridge_id))
        await self.session.execute(delete(Invite).where(Invite.fridge_id == fridge_id))
        await self.session.execute(delete(FridgeMember).where(FridgeMember.fridge_id == fridge_id))
        await self.session.execute(delete(Fridge).where(Fridge.id == fridge_id))
        await self.session.commit()
        logger.info(f"Deleted fridge {fridge_id}")


class ItemStore:
    """Perishable items, each stored in exactly one fridge."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_for_fridge(self, fridge_id: str) -> list[FridgeItem]:
        result = await self.session.execute(
            select(FridgeItem)
            .where(FridgeItem.fridge_id == fridge_id)
            .order_by(FridgeItem.created_at.desc())
        )
        return list(result.scalars().all())

    async def get(self, item_id: str) -> Optional[FridgeItem]:
        result = await self.session.execute(
            select(FridgeItem)
            .where(FridgeItem.id == item_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        fridge_id: str,
        user_id: str,
        name: str,
        expiry_date: date,
        category_id: Optional[str] = None,
        is_opened: bool = False,
        opened_date: Optional[date] = None,
    ) -> FridgeItem:
        if not name or not name.strip():
            raise ValidationError("Name and expiry date are required")
        item = FridgeItem(
            fridge_id=fridge_id,
            user_id=user_id,
            name=name.strip(),
            expiry_date=expiry_date,
            category_id=category_id,
            is_opened=is_opened,
            opened_date=opened_date,
        )
        self.session.add(item)
        await self.session.commit()
        return item

    async def update(self, item_id: str, **fields) -> FridgeItem:
        item = await self.get(item_id)
        if item is None:
            raise NotFound("Item not found")
        for key, value in fields.items():
            setattr(item, key, value)
        if item.is_opened and item.opened_date is None:
            item.opened_date = utcnow().date()
        await self.session.commit()
        return item

    async def delete(self, item_id: str) -> bool:
        result = await self.session.execute(delete(FridgeItem).where(FridgeItem.id == item_id))
        await self.session.commit()
        return result.rowcount > 0

    async def clear(self, fridge_id: str) -> int:
        result = await self.session.execute(delete(FridgeItem).where(FridgeItem.fridge_id == fridge_id))
        await self.session.commit()
        logger.info(f"Cleared {result.rowcount} items from fridge {fridge_id}")
        return result.rowcount

    async def repoint_user_items(self, user_id: str, fridge_id: str) -> int:
        """Move items created by ``user_id`` in other fridges into ``fridge_id``."""
        result = await self.session.execute(
            update(FridgeItem)
            .where(FridgeItem.user_id == user_id, FridgeItem.fridge_id != fridge_id)
            # categories are fridge-scoped and do not travel
            .values(fridge_id=fridge_id, category_id=None, updated_at=utcnow())
        )
        await self.session.commit()
        return result.rowcount

    async def move_fridge_items(self, from_fridge_id: str, to_fridge_id: str) -> int:
        """Move every item of one fridge into another."""
        result = await self.session.execute(
            update(FridgeItem)
            .where(FridgeItem.fridge_id == from_fridge_id)
            .values(fridge_id=to_fridge_id, updated_at=utcnow())
        )
        await self.session.commit()
        return result.rowcount

    async def expiring_on(self, day: date, fridge_id: Optional[str] = None) -> list[FridgeItem]:
        """Unopened items whose expiry date is ``day``."""
        query = select(FridgeItem).where(
            FridgeItem.expiry_date == day,
            FridgeItem.is_opened.is_(False),
        )
        if fridge_id is not None:
            query = query.where(FridgeItem.fridge_id == fridge_id)
        result = await self.session.execute(query.order_by(FridgeItem.created_at))
        return list(result.scalars().all())


class CategoryStore:
    """Categories, unique by name within a fridge."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_for_fridge(self, fridge_id: str) -> list[Category]:
        result = await self.session.execute(
            select(Category).where(Category.fridge_id == fridge_id).order_by(Category.name)
        )
        return list(result.scalars().all())

    async def get(self, category_id: str, fridge_id: str) -> Optional[Category]:
        result = await self.session.execute(
            select(Category).where(Category.id == category_id, Category.fridge_id == fridge_id)
        )
        return result.scalar_one_or_none()

    async def _by_name(self, fridge_id: str, name: str) -> Optional[Category]:
        result = await self.session.execute(
            select(Category).where(Category.fridge_id == fridge_id, Category.name == name)
        )
        return result.scalar_one_or_none()

    async def create(self, fridge_id: str, name: str, color: Optional[str] = None) -> Category:
        if not name or not name.strip():
            raise ValidationError("Category name is required")
        name = name.strip()
        if await self._by_name(fridge_id, name) is not None:
            raise Conflict("Category with this name already exists")

        category = Category(fridge_id=fridge_id, name=name, color=color or DEFAULT_CATEGORY_COLOR)
        self.session.add(category)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise Conflict("Category with this name already exists")
        return category

    async def update(
        self,
        category_id: str,
        fridge_id: str,
        name: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Category:
        category = await self.get(category_id, fridge_id)
        if category is None:
            raise NotFound("Category not found in fridge")
        if name and name.strip():
            category.name = name.strip()
        if color:
            category.color = color
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise Conflict("Category with this name already exists")
        return category

    async def delete(self, category_id: str, fridge_id: str) -> None:
        result = await self.session.execute(
            delete(Category).where(Category.id == category_id, Category.fridge_id == fridge_id)
        )
        if result.rowcount == 0:
            await self.session.rollback()
            raise NotFound("Category not found in fridge")
        await self.session.execute(
            update(FridgeItem)
            .where(FridgeItem.fridge_id == fridge_id, FridgeItem.category_id == category_id)
            .values(category_id=None)
        )
        await self.session.commit()

    async def move_all(self, from_fridge_id: str, to_fridge_id: str) -> int:
        """
        Move every category of one fridge into another

        A category whose name already exists in the target is merged: its
        items are pointed at the target's category and the source row is
        dropped. Returns the number of categories handled.
        """
        moved = 0
        for category in await self.list_for_fridge(from_fridge_id):
            clash = await self._by_name(to_fridge_id, category.name)
            if clash is None:
                await self.session.execute(
                    update(Category)
                    .where(Category.id == category.id)
                    .values(fridge_id=to_fridge_id, updated_at=utcnow())
                )
            else:
                await self.session.execute(
                    update(FridgeItem)
                    .where(FridgeItem.category_id == category.id)
                    .values(category_id=clash.id)
                )
                await self.session.execute(delete(Category).where(Category.id == category.id))
            await self.session.commit()
            moved += 1
        return moved
