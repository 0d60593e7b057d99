from typing import List, Optional
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tidesk.core.timeutils import utcnow
from tidesk.db.models import User


class UserRepository:
    """Repository for `User` operations."""

    async def get_by_id(self, session: AsyncSession, user_id: int) -> Optional[User]:
        return await session.get(User, user_id)

    async def get_by_email(self, session: AsyncSession, email: str) -> Optional[User]:
        """Fetch a user by login email.

        Args:
            session: Async database session.
            email: Email to search.

        Returns:
            Optional[User]: Found user or None.
        """

        stmt = select(User).where(User.email == email.strip().lower())
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_role(self, session: AsyncSession, user_id: int) -> Optional[str]:
        """Return the stored coarse role, or None for an unknown user."""

        result = await session.execute(select(User.role).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def list_all(self, session: AsyncSession) -> List[User]:
        result = await session.execute(select(User).order_by(User.id))
        return list(result.scalars().all())

    async def create(
        self,
        session: AsyncSession,
        name: str,
        email: str,
        hashed_password: str,
        role: str = "user",
    ) -> User:
        """Create a new `User`.

        Args:
            session: Async database session.
            name: Display name.
            email: Login email (stored lower-cased).
            hashed_password: Hashed password.
            role: Initial coarse role.

        Returns:
            User: Persisted entity.
        """

        entity = User(name=name, email=email.strip().lower(), hashed_password=hashed_password, role=role, active=True)
        session.add(entity)
        await session.flush()
        return entity

    async def set_role(self, session: AsyncSession, user_id: int, role: str) -> None:
        await session.execute(
            update(User).where(User.id == user_id).values(role=role, updated_at=utcnow())
        )
