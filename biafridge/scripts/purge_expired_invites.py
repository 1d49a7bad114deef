"""
Expired Invite Sweep

Marks overdue pending invites as expired and deletes expired invites older
than INVITE_RETENTION_DAYS. Run periodically:

    python -m biafridge.scripts.purge_expired_invites
"""

import asyncio
import logging

from biafridge.api.services.invite_manager import InviteManager
from biafridge.api.services.mail_service import LoggingMailSender
from biafridge.shared.database import close_database, get_session_context

logger = logging.getLogger(__name__)


async def main() -> dict:
    try:
        async with get_session_context() as session:
            result = await InviteManager(session, LoggingMailSender()).purge_expired()
    finally:
        await close_database()
    print(f"Expired {result['expired']} invites, deleted {result['deleted']}")
    return result


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(main())
