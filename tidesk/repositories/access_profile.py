from typing import Iterable, List, Optional, Set, Tuple
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tidesk.db.models import AccessProfile, AccessProfilePage, Grant, User, UserAccessProfile


class AccessProfileRepository:
    """Repository for access profiles, their grants, page allow-lists and user links."""

    async def list_all(self, session: AsyncSession) -> List[AccessProfile]:
        res = await session.execute(select(AccessProfile).order_by(AccessProfile.name))
        return list(res.scalars().all())

    async def get_by_id(self, session: AsyncSession, profile_id: int) -> Optional[AccessProfile]:
        return await session.get(AccessProfile, profile_id)

    async def get_by_name(self, session: AsyncSession, name: str) -> Optional[AccessProfile]:
        res = await session.execute(select(AccessProfile).where(AccessProfile.name == name))
        return res.scalar_one_or_none()

    async def name_taken(self, session: AsyncSession, name: str, exclude_id: Optional[int] = None) -> bool:
        stmt = select(AccessProfile.id).where(AccessProfile.name == name)
        if exclude_id is not None:
            stmt = stmt.where(AccessProfile.id != exclude_id)
        res = await session.execute(stmt)
        return res.first() is not None

    async def create(self, session: AsyncSession, name: str, description: Optional[str] = None) -> AccessProfile:
        entity = AccessProfile(name=name, description=description)
        session.add(entity)
        await session.flush()
        return entity

    async def delete(self, session: AsyncSession, profile_id: int) -> None:
        await session.execute(delete(Grant).where(Grant.access_profile_id == profile_id))
        await session.execute(delete(AccessProfilePage).where(AccessProfilePage.access_profile_id == profile_id))
        await session.execute(delete(UserAccessProfile).where(UserAccessProfile.access_profile_id == profile_id))
        await session.execute(delete(AccessProfile).where(AccessProfile.id == profile_id))

    # Grants

    async def list_grants(self, session: AsyncSession, profile_id: int) -> List[Grant]:
        res = await session.execute(
            select(Grant).where(Grant.access_profile_id == profile_id).order_by(Grant.resource, Grant.action)
        )
        return list(res.scalars().all())

    async def count_grants(self, session: AsyncSession, profile_id: int) -> int:
        res = await session.execute(select(func.count(Grant.id)).where(Grant.access_profile_id == profile_id))
        return int(res.scalar_one())

    async def replace_grants(
        self, session: AsyncSession, profile_id: int, grants: Iterable[Tuple[str, str]]
    ) -> None:
        await session.execute(delete(Grant).where(Grant.access_profile_id == profile_id))
        await self.add_grants(session, profile_id, grants)

    async def add_grants(self, session: AsyncSession, profile_id: int, grants: Iterable[Tuple[str, str]]) -> None:
        """Insert grants, silently skipping pairs the profile already holds."""
        existing = {(g.resource, g.action) for g in await self.list_grants(session, profile_id)}
        for resource, action in grants:
            if (resource, action) in existing:
                continue
            existing.add((resource, action))
            session.add(Grant(access_profile_id=profile_id, resource=resource, action=action))
        await session.flush()

    async def grant_pairs_for_user(self, session: AsyncSession, user_id: int) -> Set[Tuple[str, str]]:
        """Union of (resource, action) grants across every profile linked to the user."""
        stmt = (
            select(Grant.resource, Grant.action)
            .join(UserAccessProfile, UserAccessProfile.access_profile_id == Grant.access_profile_id)
            .where(UserAccessProfile.user_id == user_id)
        )
        res = await session.execute(stmt)
        return {(resource, action) for resource, action in res.all()}

    # Pages

    async def list_pages(self, session: AsyncSession, profile_id: int) -> List[str]:
        res = await session.execute(
            select(AccessProfilePage.page_path)
            .where(AccessProfilePage.access_profile_id == profile_id)
            .order_by(AccessProfilePage.page_path)
        )
        return list(res.scalars().all())

    async def replace_pages(self, session: AsyncSession, profile_id: int, pages: Iterable[str]) -> None:
        await session.execute(delete(AccessProfilePage).where(AccessProfilePage.access_profile_id == profile_id))
        seen: Set[str] = set()
        for page_path in pages:
            if not page_path or page_path in seen:
                continue
            seen.add(page_path)
            session.add(AccessProfilePage(access_profile_id=profile_id, page_path=page_path))
        await session.flush()

    async def pages_for_user(self, session: AsyncSession, user_id: int) -> List[str]:
        stmt = (
            select(AccessProfilePage.page_path)
            .join(UserAccessProfile, UserAccessProfile.access_profile_id == AccessProfilePage.access_profile_id)
            .where(UserAccessProfile.user_id == user_id)
            .distinct()
            .order_by(AccessProfilePage.page_path)
        )
        res = await session.execute(stmt)
        return list(res.scalars().all())

    # Membership

    async def list_users(self, session: AsyncSession, profile_id: int) -> List[User]:
        stmt = (
            select(User)
            .join(UserAccessProfile, UserAccessProfile.user_id == User.id)
            .where(UserAccessProfile.access_profile_id == profile_id)
            .order_by(User.name)
        )
        res = await session.execute(stmt)
        return list(res.scalars().all())

    async def count_users(self, session: AsyncSession, profile_id: int) -> int:
        res = await session.execute(
            select(func.count(UserAccessProfile.id)).where(UserAccessProfile.access_profile_id == profile_id)
        )
        return int(res.scalar_one())

    async def is_linked(self, session: AsyncSession, profile_id: int, user_id: int) -> bool:
        res = await session.execute(
            select(UserAccessProfile.id).where(
                UserAccessProfile.access_profile_id == profile_id,
                UserAccessProfile.user_id == user_id,
            )
        )
        return res.first() is not None

    async def link_user(self, session: AsyncSession, profile_id: int, user_id: int) -> UserAccessProfile:
        entity = UserAccessProfile(user_id=user_id, access_profile_id=profile_id)
        session.add(entity)
        await session.flush()
        return entity

    async def unlink_user(self, session: AsyncSession, profile_id: int, user_id: int) -> int:
        res = await session.execute(
            delete(UserAccessProfile).where(
                UserAccessProfile.access_profile_id == profile_id,
                UserAccessProfile.user_id == user_id,
            )
        )
        return res.rowcount or 0

    async def profile_names_for_user(self, session: AsyncSession, user_id: int) -> Set[str]:
        stmt = (
            select(AccessProfile.name)
            .join(UserAccessProfile, UserAccessProfile.access_profile_id == AccessProfile.id)
            .where(UserAccessProfile.user_id == user_id)
        )
        res = await session.execute(stmt)
        return set(res.scalars().all())
