"""
Clear Shared Fridges

Deletes every fridge that is not some profile's personal fridge, together
with its items, categories, memberships and invites. Personal fridges and
profiles are left untouched.

    python -m biafridge.scripts.clear_shared_fridges
"""

import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from biafridge.api.services.fridge_store import FridgeStore
from biafridge.shared.database import close_database, get_session_context
from biafridge.shared.models import Fridge, Profile

logger = logging.getLogger(__name__)


async def clear_shared_fridges(session: AsyncSession) -> int:
    """Delete all non-personal fridges. Returns how many were deleted."""
    personal_ids = set((await session.execute(select(Profile.fridge_id))).scalars().all())
    result = await session.execute(select(Fridge.id, Fridge.name))
    shared = [(fridge_id, name) for fridge_id, name in result.all() if fridge_id not in personal_ids]

    logger.info(f"Found {len(personal_ids)} personal fridges, {len(shared)} shared fridges to delete")

    store = FridgeStore(session)
    for fridge_id, name in shared:
        await store.delete(fridge_id)
        logger.info(f"Deleted fridge {fridge_id} (name: {name or 'unnamed'})")
    return len(shared)


async def main() -> int:
    try:
        async with get_session_context() as session:
            deleted = await clear_shared_fridges(session)
    finally:
        await close_database()
    print(f"Successfully deleted {deleted} shared fridges")
    return deleted


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(main())
