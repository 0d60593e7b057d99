import logging
from typing import Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from tidesk.core.config import get_settings
from tidesk.core.exceptions import AuthenticationError, ConflictError
from tidesk.core.identity import CoarseRole
from tidesk.core.security import create_access_token, hash_password, verify_password
from tidesk.db.models import User
from tidesk.repositories.access_profile import AccessProfileRepository
from tidesk.repositories.user import UserRepository

logger = logging.getLogger(__name__)


class AuthService:
    """Authentication service handling register and login flows."""

    def __init__(self) -> None:
        self.user_repo = UserRepository()
        self.profile_repo = AccessProfileRepository()

    async def register(self, session: AsyncSession, name: str, email: str, password: str) -> User:
        """Register a plain user and link it to the default user profile.

        Args:
            session: Async database session.
            name: Display name.
            email: Login email.
            password: Plain password.

        Returns:
            User: Created entity.
        """

        if await self.user_repo.get_by_email(session, email):
            raise ConflictError("Email already registered", {"email": email.strip().lower()})

        user = await self.user_repo.create(
            session,
            name=name.strip(),
            email=email,
            hashed_password=hash_password(password),
            role=CoarseRole.USER.value,
        )

        profile = await self.profile_repo.get_by_name(session, get_settings().USER_PROFILE_NAME)
        if profile is not None:
            await self.profile_repo.link_user(session, profile.id, user.id)
        else:
            logger.warning("Default user profile missing; user %s registered without profile", user.id)

        await session.commit()
        logger.info("Registered user %s", user.id)
        return user

    async def authenticate(self, session: AsyncSession, email: str, password: str) -> Tuple[str, User]:
        """Verify credentials and issue an access token.

        Returns:
            Tuple of access token and user entity.
        """

        user = await self.user_repo.get_by_email(session, email)
        if not user or not verify_password(password, user.hashed_password):
            raise AuthenticationError("Invalid credentials")
        if not user.active:
            raise AuthenticationError("User inactive")

        token = create_access_token(user.id, user.role)
        logger.info("User %s logged in", user.id)
        return token, user
