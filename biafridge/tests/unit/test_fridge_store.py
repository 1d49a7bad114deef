"""
Unit Tests for fridge, item and category persistence

Tests:
- Personal fridge naming
- Membership find-or-create
- Personal fridge candidacy
- Item moves and expiry queries
- Category uniqueness and merging
"""

from datetime import date

import pytest
from sqlalchemy import func, select

from biafridge.api.errors import Conflict, NotFound
from biafridge.api.services.fridge_store import (
    CategoryStore,
    FridgeStore,
    ItemStore,
    personal_fridge_name,
)
from biafridge.shared.models import Fridge


# ============================================================================
# Naming
# ============================================================================

class TestPersonalFridgeName:
    def test_possessive(self):
        assert personal_fridge_name("Max") == "Max's Fridge"

    def test_name_ending_in_s(self):
        assert personal_fridge_name("Chris") == "Chris' Fridge"

    def test_name_ending_in_capital_s(self):
        assert personal_fridge_name("JAMES") == "JAMES' Fridge"

    def test_name_is_trimmed(self):
        assert personal_fridge_name("  Anna  ") == "Anna's Fridge"

    def test_empty_name_has_no_fridge_name(self):
        assert personal_fridge_name("") is None
        assert personal_fridge_name("   ") is None
        assert personal_fridge_name(None) is None


# ============================================================================
# Fridges
# ============================================================================

class TestFridgeStore:
    async def test_create_keeps_member_order_and_drops_duplicates(self, session):
        fridge = await FridgeStore(session).create(["x", "y", "x"], name="Family")
        assert fridge.members == ["x", "y"]
        assert fridge.name == "Family"

    async def test_add_member_is_idempotent(self, session):
        store = FridgeStore(session)
        fridge = await store.create(["x"])
        await store.add_member(fridge.id, "y")
        fridge = await store.add_member(fridge.id, "y")
        assert fridge.members == ["x", "y"]

    async def test_add_member_to_missing_fridge(self, session):
        with pytest.raises(NotFound):
            await FridgeStore(session).add_member("missing", "y")

    async def test_remove_member(self, session):
        store = FridgeStore(session)
        fridge = await store.create(["x", "y"])
        fridge = await store.remove_member(fridge.id, "x")
        assert fridge.members == ["y"]

    async def test_create_personal_is_find_or_create(self, session):
        store = FridgeStore(session)
        first = await store.create_personal("x", "Max")
        second = await store.create_personal("x", "Max")

        assert first.id == second.id
        assert first.name == "Max's Fridge"
        assert first.members == ["x"]
        count = await session.execute(select(func.count(Fridge.id)))
        assert count.scalar_one() == 1

    async def test_candidacy_prefers_personal_owner(self, session):
        store = FridgeStore(session)
        await store.create(["x"], name="Old solo fridge")
        personal = await store.create_personal("x", "Max")

        candidate = await store.find_personal_candidacy("x")
        assert candidate.id == personal.id

    async def test_candidacy_falls_back_to_solo_fridge(self, session):
        store = FridgeStore(session)
        await store.create(["x", "y"], name="Shared")
        solo = await store.create(["x"], name="Legacy")

        candidate = await store.find_personal_candidacy("x")
        assert candidate.id == solo.id

    async def test_candidacy_ignores_shared_fridges(self, session):
        store = FridgeStore(session)
        await store.create(["x", "y"], name="Shared")

        assert await store.find_personal_candidacy("x") is None
        assert (await store.find_any_containing("x")).name == "Shared"

    async def test_candidacy_ignores_someone_elses_personal_fridge(self, session):
        store = FridgeStore(session)
        other = await store.create_personal("y", "Yan")
        # y left and x was added: still y's personal fridge
        await store.add_member(other.id, "x")
        await store.remove_member(other.id, "y")

        assert await store.find_personal_candidacy("x") is None

    async def test_list_for_member(self, session):
        store = FridgeStore(session)
        await store.create(["x"], name="A")
        await store.create(["x", "y"], name="B")
        await store.create(["y"], name="C")

        names = {fridge.name for fridge in await store.list_for_member("x")}
        assert names == {"A", "B"}

    async def test_rename(self, session):
        store = FridgeStore(session)
        fridge = await store.create(["x"], name="A")
        fridge = await store.rename(fridge.id, "  Kitchen ")
        assert fridge.name == "Kitchen"

    async def test_delete_removes_items_and_categories(self, session):
        store = FridgeStore(session)
        fridge = await store.create(["x"])
        category = await CategoryStore(session).create(fridge.id, "Dairy")
        await ItemStore(session).create(fridge.id, "x", "Milk", date(2025, 3, 12), category_id=category.id)

        await store.delete(fridge.id)

        assert await store.get(fridge.id) is None
        assert await ItemStore(session).list_for_fridge(fridge.id) == []
        assert await CategoryStore(session).list_for_fridge(fridge.id) == []


# ============================================================================
# Items
# ============================================================================

class TestItemStore:
    async def test_update_sets_opened_date(self, session):
        fridge = await FridgeStore(session).create(["x"])
        items = ItemStore(session)
        item = await items.create(fridge.id, "x", "Milk", date(2025, 3, 12))

        item = await items.update(item.id, is_opened=True)
        assert item.is_opened is True
        assert item.opened_date is not None

    async def test_update_missing_item(self, session):
        with pytest.raises(NotFound):
            await ItemStore(session).update("missing", name="x")

    async def test_delete_and_clear(self, session):
        fridge = await FridgeStore(session).create(["x"])
        items = ItemStore(session)
        milk = await items.create(fridge.id, "x", "Milk", date(2025, 3, 12))
        await items.create(fridge.id, "x", "Eggs", date(2025, 3, 20))
        await items.create(fridge.id, "x", "Ham", date(2025, 3, 15))

        assert await items.delete(milk.id) is True
        assert await items.delete(milk.id) is False
        assert await items.clear(fridge.id) == 2

    async def test_repoint_user_items(self, session):
        store = FridgeStore(session)
        home = await store.create(["x"])
        other = await store.create(["x", "y"])
        category = await CategoryStore(session).create(other.id, "Dairy")
        items = ItemStore(session)
        mine = await items.create(other.id, "x", "Milk", date(2025, 3, 12), category_id=category.id)
        theirs = await items.create(other.id, "y", "Eggs", date(2025, 3, 12))

        assert await items.repoint_user_items("x", home.id) == 1

        mine = await items.get(mine.id)
        assert mine.fridge_id == home.id
        assert mine.category_id is None
        assert (await items.get(theirs.id)).fridge_id == other.id

    async def test_expiring_on_skips_opened_items(self, session):
        fridge = await FridgeStore(session).create(["x"])
        items = ItemStore(session)
        tomorrow = date(2025, 3, 11)
        await items.create(fridge.id, "x", "Milk", tomorrow)
        await items.create(fridge.id, "x", "Jam", tomorrow, is_opened=True)
        await items.create(fridge.id, "x", "Eggs", date(2025, 3, 20))

        expiring = await items.expiring_on(tomorrow)
        assert [item.name for item in expiring] == ["Milk"]


# ============================================================================
# Categories
# ============================================================================

class TestCategoryStore:
    async def test_default_color(self, session):
        fridge = await FridgeStore(session).create(["x"])
        category = await CategoryStore(session).create(fridge.id, "Dairy")
        assert category.color == "#6200ee"

    async def test_duplicate_name_conflicts(self, session):
        fridge = await FridgeStore(session).create(["x"])
        categories = CategoryStore(session)
        await categories.create(fridge.id, "Dairy")
        with pytest.raises(Conflict):
            await categories.create(fridge.id, "Dairy")

    async def test_same_name_in_other_fridge(self, session):
        store = FridgeStore(session)
        first = await store.create(["x"])
        second = await store.create(["x"])
        categories = CategoryStore(session)
        await categories.create(first.id, "Dairy")
        await categories.create(second.id, "Dairy")

    async def test_delete_uncategorises_items(self, session):
        fridge = await FridgeStore(session).create(["x"])
        categories = CategoryStore(session)
        category = await categories.create(fridge.id, "Dairy")
        items = ItemStore(session)
        item = await items.create(fridge.id, "x", "Milk", date(2025, 3, 12), category_id=category.id)

        await categories.delete(category.id, fridge.id)

        assert (await items.get(item.id)).category_id is None
        with pytest.raises(NotFound):
            await categories.delete(category.id, fridge.id)

    async def test_move_all_merges_name_clashes(self, session):
        store = FridgeStore(session)
        source = await store.create(["x"])
        target = await store.create(["x", "y"])
        categories = CategoryStore(session)
        source_dairy = await categories.create(source.id, "Dairy")
        await categories.create(source.id, "Meat")
        target_dairy = await categories.create(target.id, "Dairy")
        items = ItemStore(session)
        milk = await items.create(source.id, "x", "Milk", date(2025, 3, 12), category_id=source_dairy.id)

        assert await categories.move_all(source.id, target.id) == 2

        names = sorted(c.name for c in await categories.list_for_fridge(target.id))
        assert names == ["Dairy", "Meat"]
        assert await categories.list_for_fridge(source.id) == []
        assert (await items.get(milk.id)).category_id == target_dairy.id
