from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from tidesk.core.security import create_access_token, hash_password
from tidesk.repositories.access_profile import AccessProfileRepository
from tidesk.repositories.user import UserRepository


async def create_user(
    session: AsyncSession,
    email: str,
    role: str = "user",
    profile_id: Optional[int] = None,
    name: str = "Test User",
    password: str = "test123456",
) -> Dict[str, object]:
    """Insert a user, optionally link a profile, and mint a bearer token."""
    user = await UserRepository().create(
        session, name=name, email=email, hashed_password=hash_password(password), role=role
    )
    if profile_id is not None:
        await AccessProfileRepository().link_user(session, profile_id, user.id)
    await session.commit()
    token = create_access_token(user.id, role)
    return {"user": user, "token": token, "headers": {"Authorization": f"Bearer {token}"}}
