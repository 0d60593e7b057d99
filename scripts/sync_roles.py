"""Recompute every user's coarse role from access profile membership."""

import asyncio
import logging

from tidesk.core.logging import setup_logging
from tidesk.db.session import SessionLocal
from tidesk.services.access_profile import AccessProfileService

logger = logging.getLogger(__name__)


async def sync_roles() -> None:
    async with SessionLocal() as session:  # type: ignore[call-arg]
        result = await AccessProfileService().resync_roles(session)
        await session.commit()
    logger.info("Checked %d user(s), changed %d role(s)", result["users"], result["changed"])


if __name__ == "__main__":
    setup_logging()
    asyncio.run(sync_roles())
