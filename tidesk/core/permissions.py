"""
Permission resolution for TIDESK.

A user's effective permission set is the union of the (resource, action) grants
of every access profile they belong to. Users whose stored coarse role is
``admin`` additionally receive every resource x action combination. Results
are cached per user for a short TTL and invalidated explicitly whenever
profile grants or membership change.
"""

import logging
from enum import Enum
from typing import FrozenSet, Iterable, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tidesk.core.cache import PermissionCache
from tidesk.core.config import get_settings
from tidesk.core.exceptions import StorageFailure
from tidesk.core.identity import CoarseRole
from tidesk.repositories.access_profile import AccessProfileRepository
from tidesk.repositories.user import UserRepository

logger = logging.getLogger(__name__)


class Resource(str, Enum):
    TICKETS = "tickets"
    FORMS = "forms"
    PAGES = "pages"
    USERS = "users"
    CATEGORIES = "categories"
    REPORTS = "reports"
    HISTORY = "history"
    APPROVE = "approve"
    TRACK = "track"
    CONFIG = "config"
    AGENDA = "agenda"
    WEBHOOKS = "webhooks"
    PROJECTS = "projects"


class Action(str, Enum):
    CREATE = "create"
    VIEW = "view"
    EDIT = "edit"
    DELETE = "delete"
    APPROVE = "approve"
    REJECT = "reject"


def permission_key(resource, action) -> str:
    """Render a grant as the ``"resource:action"`` key used in permission sets."""
    resource = resource.value if isinstance(resource, Enum) else str(resource)
    action = action.value if isinstance(action, Enum) else str(action)
    return f"{resource}:{action}"


ALL_PERMISSION_KEYS: FrozenSet[str] = frozenset(
    permission_key(resource, action) for resource in Resource for action in Action
)


class PermissionResolver:
    """Computes, caches and checks effective permission sets."""

    def __init__(self, cache: Optional[PermissionCache] = None) -> None:
        settings = get_settings()
        self.cache = cache or PermissionCache(ttl_seconds=settings.PERMISSION_CACHE_TTL_SECONDS)
        self.profile_repo = AccessProfileRepository()
        self.user_repo = UserRepository()

    async def get_effective_permissions(self, session: AsyncSession, user_id: int) -> FrozenSet[str]:
        """Return the effective ``resource:action`` set for a user.

        Unknown users resolve to an empty set.

        Raises:
            StorageFailure: If the profile/grant lookup fails.
        """
        cached = self.cache.get(user_id)
        if cached is not None:
            return cached

        try:
            pairs = await self.profile_repo.grant_pairs_for_user(session, user_id)
            role = await self.user_repo.get_role(session, user_id)
        except SQLAlchemyError as exc:
            logger.exception("Permission lookup failed for user %s", user_id)
            raise StorageFailure("Failed to resolve permissions", {"user_id": user_id}) from exc

        permissions = {permission_key(resource, action) for resource, action in pairs}
        if role == CoarseRole.ADMIN.value:
            permissions |= ALL_PERMISSION_KEYS

        result = frozenset(permissions)
        self.cache.set(user_id, result)
        return result

    async def is_admin(self, session: AsyncSession, user_id: int) -> bool:
        try:
            role = await self.user_repo.get_role(session, user_id)
        except SQLAlchemyError as exc:
            logger.exception("Role lookup failed for user %s", user_id)
            raise StorageFailure("Failed to resolve user role", {"user_id": user_id}) from exc
        return role == CoarseRole.ADMIN.value

    async def has_permission(self, session: AsyncSession, user_id: int, resource, action) -> bool:
        # Stored admin role wins without looking at cached grants
        if await self.is_admin(session, user_id):
            return True
        permissions = await self.get_effective_permissions(session, user_id)
        return permission_key(resource, action) in permissions

    async def has_any_permission(
        self, session: AsyncSession, user_id: int, pairs: Iterable[Tuple[object, object]]
    ) -> bool:
        if await self.is_admin(session, user_id):
            return True
        permissions = await self.get_effective_permissions(session, user_id)
        return any(permission_key(resource, action) in permissions for resource, action in pairs)

    def invalidate(self, user_id: int) -> None:
        self.cache.invalidate(user_id)

    def invalidate_all(self) -> None:
        self.cache.invalidate_all()

    def sweep_expired(self) -> int:
        return self.cache.sweep_expired()


# Process-wide resolver shared by every request
permission_resolver = PermissionResolver()
