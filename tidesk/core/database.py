"""
Database bootstrap for TIDESK.
Runs Alembic migrations, reports schema status and seeds the reserved access
profiles, their default grants and the administrator account.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import inspect, text
from sqlalchemy.ext.asyncio import AsyncSession

from tidesk.core.config import get_settings
from tidesk.core.permissions import Action, Resource
from tidesk.core.security import hash_password
from tidesk.core.timeutils import utcnow
from tidesk.db.session import SessionLocal, engine
from tidesk.repositories.access_profile import AccessProfileRepository
from tidesk.repositories.user import UserRepository

logger = logging.getLogger(__name__)

ALEMBIC_INI = Path(__file__).resolve().parents[2] / "alembic.ini"

EXPECTED_TABLES = [
    "users", "access_profiles", "permissions", "user_access_profiles",
    "access_profile_pages", "groups", "forms", "tickets",
]

_CRUD = (Action.CREATE, Action.VIEW, Action.EDIT, Action.DELETE)


def _admin_grants() -> List[Tuple[str, str]]:
    grants = [(resource.value, action.value) for resource in Resource for action in _CRUD]
    grants.append((Resource.APPROVE.value, Action.APPROVE.value))
    grants.append((Resource.APPROVE.value, Action.REJECT.value))
    return grants


AGENT_GRANTS: List[Tuple[str, str]] = [
    ("tickets", "view"), ("tickets", "edit"),
    ("approve", "view"), ("approve", "approve"), ("approve", "reject"),
    ("track", "view"), ("track", "edit"),
    ("history", "view"),
    ("reports", "view"),
    ("forms", "view"),
    ("pages", "view"),
]

USER_GRANTS: List[Tuple[str, str]] = [
    ("tickets", "view"), ("tickets", "create"),
    ("history", "view"),
    ("forms", "view"),
    ("pages", "view"),
]


def default_profiles() -> Dict[str, Dict[str, Any]]:
    """Reserved profiles keyed by name, with description and default grants."""
    settings = get_settings()
    return {
        settings.ADMIN_PROFILE_NAME: {
            "description": "Acesso total ao sistema",
            "grants": _admin_grants(),
        },
        settings.AGENT_PROFILE_NAME: {
            "description": "Atendimento e aprovação de tickets",
            "grants": AGENT_GRANTS,
        },
        settings.USER_PROFILE_NAME: {
            "description": "Abertura e acompanhamento dos próprios tickets",
            "grants": USER_GRANTS,
        },
    }


class DatabaseManager:
    """
    Migration runner and schema health checks.
    Alembic's upgrade is synchronous, so async callers hand it to a worker thread.
    """

    def __init__(self, config_path: Optional[str] = None):
        self.settings = get_settings()
        self.alembic_cfg = Config(config_path or str(ALEMBIC_INI))
        self.alembic_cfg.set_main_option("sqlalchemy.url", str(self.settings.DB_URL))

    async def get_current_revision(self) -> Optional[str]:
        async with engine.connect() as connection:
            tables = await connection.run_sync(lambda conn: inspect(conn).get_table_names())
            if "alembic_version" not in tables:
                return None
            result = await connection.execute(text("SELECT version_num FROM alembic_version"))
            row = result.fetchone()
            return row[0] if row else None

    def get_available_revisions(self) -> List[str]:
        script_dir = ScriptDirectory.from_config(self.alembic_cfg)
        return list(reversed([revision.revision for revision in script_dir.walk_revisions()]))

    async def run_migrations_async(self, target_revision: Optional[str] = None) -> bool:
        """Run Alembic migrations from an async context without event-loop conflicts."""
        try:
            rev = target_revision or "heads"
            await asyncio.to_thread(command.upgrade, self.alembic_cfg, rev)
            logger.info("Successfully ran migrations to %s", rev)
            return True
        except Exception as e:
            logger.error("Error running migrations: %s", e)
            return False

    async def check_database_health(self) -> Dict[str, Any]:
        """Connectivity and schema check, reported as healthy | degraded | unhealthy."""
        health: Dict[str, Any] = {"status": "healthy", "checks": {}, "timestamp": utcnow().isoformat()}
        try:
            async with engine.connect() as connection:
                await connection.execute(text("SELECT 1"))
                tables = await connection.run_sync(lambda conn: inspect(conn).get_table_names())
            health["checks"]["connectivity"] = {"status": "pass"}

            current = await self.get_current_revision()
            available = self.get_available_revisions()
            latest = available[-1] if available else None
            health["checks"]["migrations"] = {
                "status": "pass" if current == latest else "warn",
                "current_revision": current,
                "latest_revision": latest,
            }

            missing = [table for table in EXPECTED_TABLES if table not in tables]
            health["checks"]["schema"] = {
                "status": "pass" if not missing else "fail",
                "total_tables": len(tables),
                "missing_tables": missing,
            }
            if missing:
                health["status"] = "unhealthy"
            elif health["checks"]["migrations"]["status"] == "warn":
                health["status"] = "degraded"
        except Exception as e:
            logger.error("Database health check failed: %s", e)
            health["status"] = "unhealthy"
            health["error"] = str(e)
        return health


async def seed_defaults(session: AsyncSession) -> Dict[str, int]:
    """Create the reserved profiles, their default grants and the admin account.

    Idempotent: existing profiles keep their grants, only missing pairs are added.
    Does not commit.

    Returns:
        Mapping of profile name to id.
    """

    settings = get_settings()
    profiles = AccessProfileRepository()
    users = UserRepository()
    ids: Dict[str, int] = {}

    for name, data in default_profiles().items():
        profile = await profiles.get_by_name(session, name)
        if profile is None:
            profile = await profiles.create(session, name=name, description=data["description"])
            logger.info("Created access profile '%s'", name)
        await profiles.add_grants(session, profile.id, data["grants"])
        ids[name] = profile.id

    admin = await users.get_by_email(session, settings.ADMIN_EMAIL)
    if admin is None:
        admin = await users.create(
            session,
            name=settings.ADMIN_NAME,
            email=settings.ADMIN_EMAIL,
            hashed_password=hash_password(settings.ADMIN_PASSWORD),
            role="admin",
        )
        logger.info("Created admin user %s", settings.ADMIN_EMAIL)
    admin_profile_id = ids[settings.ADMIN_PROFILE_NAME]
    if not await profiles.is_linked(session, admin_profile_id, admin.id):
        await profiles.link_user(session, admin_profile_id, admin.id)
    if admin.role != "admin":
        await users.set_role(session, admin.id, "admin")
    return ids


# Global database manager instance
db_manager = DatabaseManager()


async def initialize_database() -> None:
    """Run migrations (when enabled) and seed defaults."""
    logger.info("Initializing database...")
    if db_manager.settings.RUN_MIGRATIONS_ON_STARTUP:
        logger.info("Running database migrations...")
        if not await db_manager.run_migrations_async():
            raise RuntimeError("Failed to run database migrations")

    async with SessionLocal() as session:
        await seed_defaults(session)
        await session.commit()
    logger.info("Database ready")


async def check_database_ready() -> bool:
    health = await db_manager.check_database_health()
    return health["status"] in ["healthy", "degraded"]
