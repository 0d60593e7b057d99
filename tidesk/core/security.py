import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from tidesk.core.config import get_settings
from tidesk.core.timeutils import utcnow


logger = logging.getLogger(__name__)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

JWT_ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    """Hash a plain password using bcrypt.

    Args:
        password: Plain text password.

    Returns:
        Hashed password string.
    """

    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a hashed password.

    Args:
        plain_password: Plain text password.
        hashed_password: Previously hashed password.

    Returns:
        True if password matches; False otherwise.
    """

    return pwd_context.verify(plain_password, hashed_password)


def create_jwt_token(subject: str, expires_in: int, claims: Optional[Dict[str, Any]] = None) -> str:
    """Create a signed JWT token.

    Args:
        subject: Token subject (the user id).
        expires_in: Expiration time in seconds.
        claims: Optional claims to include.

    Returns:
        Signed JWT token string.
    """

    now = utcnow()
    payload: Dict[str, Any] = {"sub": subject, "iat": now, "exp": now + timedelta(seconds=expires_in)}
    if claims:
        payload.update(claims)
    return jwt.encode(payload, get_settings().JWT_SECRET, algorithm=JWT_ALGORITHM)


def create_access_token(user_id: int, role: str) -> str:
    """Issue an access token carrying the user id and coarse role."""

    expires = get_settings().ACCESS_EXPIRES_MIN * 60
    return create_jwt_token(subject=str(user_id), expires_in=expires, claims={"role": role})


def verify_jwt_token(token: str) -> Optional[Dict[str, Any]]:
    """Verify a JWT token and return its payload if valid.

    Args:
        token: JWT token string.

    Returns:
        Decoded payload dict if valid; None otherwise.
    """

    try:
        return jwt.decode(token, get_settings().JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError as exc:
        logger.warning("JWT verification failed: %s", exc)
        return None
