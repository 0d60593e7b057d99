import asyncio
import logging

from tidesk.core.config import get_settings
from tidesk.core.database import seed_defaults
from tidesk.core.exceptions import ConflictError
from tidesk.core.logging import setup_logging
from tidesk.db.base import Base
from tidesk.db.session import SessionLocal, engine
from tidesk.services.access_profile import AccessProfileService
from tidesk.services.auth import AuthService

logger = logging.getLogger(__name__)


async def seed() -> None:
    """Seed reserved profiles, the admin account and two development users.

    Returns:
        None
    """

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with SessionLocal() as session:  # type: ignore[call-arg]
        ids = await seed_defaults(session)
        await session.commit()
        logger.info("Seeded profiles %s", sorted(ids))

        auth = AuthService()
        profiles = AccessProfileService()
        try:
            agent = await auth.register(session, name="Agente Dev", email="agent@example.com", password="agent123")
            await profiles.link_user(session, ids[get_settings().AGENT_PROFILE_NAME], agent.id)
            await session.commit()
            logger.info("Seeded agent user")
        except ConflictError:
            await session.rollback()
            logger.info("Agent user already exists; skipping seeding")

        try:
            await auth.register(session, name="Dev User", email="dev@example.com", password="secret123")
            logger.info("Seeded dev user")
        except ConflictError:
            await session.rollback()
            logger.info("Dev user already exists; skipping seeding")


if __name__ == "__main__":
    setup_logging()
    asyncio.run(seed())
