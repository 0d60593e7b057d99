"""
Access profile administration.

Every mutation of grants, page lists or membership ends by flushing the whole
permission cache. Linking to a reserved admin or agent profile promotes the stored coarse role;
unlinking recomputes it from the remaining profiles (admin, then agent, then user).
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from tidesk.core.config import get_settings
from tidesk.core.exceptions import ConflictError, ErrorHandler, NotFoundError, ValidationError
from tidesk.core.identity import CoarseRole
from tidesk.core.permissions import Action, PermissionResolver, Resource, permission_resolver
from tidesk.db.models import AccessProfile, User
from tidesk.repositories.access_profile import AccessProfileRepository
from tidesk.repositories.user import UserRepository

logger = logging.getLogger(__name__)


def normalize_grants(grants: Iterable[Any]) -> List[Tuple[str, str]]:
    """Validate grants given as ``"resource:action"`` strings or (resource, action) pairs."""
    result: List[Tuple[str, str]] = []
    seen: Set[Tuple[str, str]] = set()
    for grant in grants or []:
        if isinstance(grant, str):
            resource, _, action = grant.partition(":")
        elif isinstance(grant, dict):
            resource, action = grant.get("resource", ""), grant.get("action", "")
        else:
            resource, action = grant
        try:
            pair = (Resource(resource).value, Action(action).value)
        except ValueError:
            raise ValidationError(f"Unknown permission '{resource}:{action}'", {"permission": f"{resource}:{action}"})
        if pair not in seen:
            seen.add(pair)
            result.append(pair)
    return result


def role_for_profiles(profile_names: Set[str]) -> CoarseRole:
    settings = get_settings()
    if settings.ADMIN_PROFILE_NAME in profile_names:
        return CoarseRole.ADMIN
    if settings.AGENT_PROFILE_NAME in profile_names:
        return CoarseRole.AGENT
    return CoarseRole.USER


class AccessProfileService:
    """CRUD over access profiles with role sync and cache invalidation."""

    def __init__(self, resolver: Optional[PermissionResolver] = None) -> None:
        self.repo = AccessProfileRepository()
        self.user_repo = UserRepository()
        self.resolver = resolver or permission_resolver

    async def list_profiles(self, session: AsyncSession) -> List[Dict[str, Any]]:
        items = []
        for profile in await self.repo.list_all(session):
            items.append(
                {
                    "id": profile.id,
                    "name": profile.name,
                    "description": profile.description,
                    "permission_count": await self.repo.count_grants(session, profile.id),
                    "user_count": await self.repo.count_users(session, profile.id),
                    "created_at": profile.created_at,
                }
            )
        return items

    async def get_profile(self, session: AsyncSession, profile_id: int) -> Dict[str, Any]:
        profile = await self._require(session, profile_id)
        grants = await self.repo.list_grants(session, profile_id)
        users = await self.repo.list_users(session, profile_id)
        return {
            "id": profile.id,
            "name": profile.name,
            "description": profile.description,
            "permissions": [f"{g.resource}:{g.action}" for g in grants],
            "pages": await self.repo.list_pages(session, profile_id),
            "users": [{"id": u.id, "name": u.name, "email": u.email, "role": u.role} for u in users],
            "created_at": profile.created_at,
            "updated_at": profile.updated_at,
        }

    async def create_profile(
        self,
        session: AsyncSession,
        name: str,
        description: Optional[str] = None,
        permissions: Iterable[Any] = (),
        pages: Iterable[str] = (),
    ) -> AccessProfile:
        name = ErrorHandler.validate_required_text(name, "name")
        grants = normalize_grants(permissions)
        if await self.repo.name_taken(session, name):
            raise ConflictError("An access profile with this name already exists", {"name": name})

        profile = await self.repo.create(session, name=name, description=description)
        await self.repo.add_grants(session, profile.id, grants)
        await self.repo.replace_pages(session, profile.id, pages or [])
        self.resolver.invalidate_all()
        logger.info("Created access profile %s (%s)", profile.id, name)
        return profile

    async def update_profile(
        self,
        session: AsyncSession,
        profile_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        permissions: Optional[Iterable[Any]] = None,
        pages: Optional[Iterable[str]] = None,
    ) -> AccessProfile:
        """Partial update; given permission/page lists replace the stored ones."""
        profile = await self._require(session, profile_id)
        if name is not None:
            name = ErrorHandler.validate_required_text(name, "name")
            if await self.repo.name_taken(session, name, exclude_id=profile_id):
                raise ConflictError("An access profile with this name already exists", {"name": name})
            profile.name = name
        if description is not None:
            profile.description = description
        if permissions is not None:
            await self.repo.replace_grants(session, profile_id, normalize_grants(permissions))
        if pages is not None:
            await self.repo.replace_pages(session, profile_id, pages)
        await session.flush()
        self.resolver.invalidate_all()
        logger.info("Updated access profile %s", profile_id)
        return profile

    async def delete_profile(self, session: AsyncSession, profile_id: int) -> None:
        await self._require(session, profile_id)
        linked = await self.repo.count_users(session, profile_id)
        if linked:
            raise ConflictError(
                "Cannot delete a profile that still has linked users",
                {"profile_id": profile_id, "user_count": linked},
            )
        await self.repo.delete(session, profile_id)
        self.resolver.invalidate_all()
        logger.info("Deleted access profile %s", profile_id)

    async def link_user(self, session: AsyncSession, profile_id: int, user_id: int) -> CoarseRole:
        """Link a user and return the resulting coarse role."""
        profile = await self._require(session, profile_id)
        user = await self.user_repo.get_by_id(session, user_id)
        if user is None:
            raise NotFoundError("User not found", {"user_id": user_id})
        if await self.repo.is_linked(session, profile_id, user_id):
            raise ConflictError("User is already linked to this profile", {"profile_id": profile_id, "user_id": user_id})

        await self.repo.link_user(session, profile_id, user_id)
        role = await self._promote_on_link(session, profile, user)
        self.resolver.invalidate_all()
        logger.info("Linked user %s to access profile %s (role %s)", user_id, profile_id, role.value)
        return role

    async def unlink_user(self, session: AsyncSession, profile_id: int, user_id: int) -> CoarseRole:
        await self._require(session, profile_id)
        await self.repo.unlink_user(session, profile_id, user_id)
        role = await self._sync_role(session, user_id)
        self.resolver.invalidate_all()
        logger.info("Unlinked user %s from access profile %s (role %s)", user_id, profile_id, role.value)
        return role

    async def resync_roles(self, session: AsyncSession) -> Dict[str, int]:
        """Recompute every user's coarse role from profile membership."""
        changed = 0
        users = await self.user_repo.list_all(session)
        for user in users:
            role = role_for_profiles(await self.repo.profile_names_for_user(session, user.id))
            if user.role != role.value:
                logger.info("Resync: user %s %s -> %s", user.id, user.role, role.value)
                await self.user_repo.set_role(session, user.id, role.value)
                changed += 1
        self.resolver.invalidate_all()
        return {"users": len(users), "changed": changed}

    async def my_permissions(self, session: AsyncSession, user_id: int) -> Dict[str, Any]:
        permissions = await self.resolver.get_effective_permissions(session, user_id)
        return {
            "user_id": user_id,
            "permissions": sorted(permissions),
            "pages": await self.repo.pages_for_user(session, user_id),
        }

    async def _promote_on_link(self, session: AsyncSession, profile: AccessProfile, user: User) -> CoarseRole:
        """Only the reserved admin and agent profiles change the role on link."""
        settings = get_settings()
        if profile.name == settings.ADMIN_PROFILE_NAME:
            await self.user_repo.set_role(session, user.id, CoarseRole.ADMIN.value)
            return CoarseRole.ADMIN
        if profile.name == settings.AGENT_PROFILE_NAME:
            names = await self.repo.profile_names_for_user(session, user.id)
            if settings.ADMIN_PROFILE_NAME not in names:
                await self.user_repo.set_role(session, user.id, CoarseRole.AGENT.value)
                return CoarseRole.AGENT
        return CoarseRole(user.role)

    async def _sync_role(self, session: AsyncSession, user_id: int) -> CoarseRole:
        role = role_for_profiles(await self.repo.profile_names_for_user(session, user_id))
        await self.user_repo.set_role(session, user_id, role.value)
        return role

    async def _require(self, session: AsyncSession, profile_id: int) -> AccessProfile:
        profile = await self.repo.get_by_id(session, profile_id)
        if profile is None:
            raise NotFoundError("Access profile not found", {"profile_id": profile_id})
        return profile
