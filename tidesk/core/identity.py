"""
Credential and identity gate.
Turns a bearer credential into a verified Principal before any permission or
ticket logic runs.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from fastapi import Header, Request

from tidesk.core.exceptions import AuthenticationError
from tidesk.core.security import verify_jwt_token

logger = logging.getLogger(__name__)


class CoarseRole(str, Enum):
    """Stored role label kept in sync with profile membership."""
    ADMIN = "admin"
    AGENT = "agent"
    USER = "user"


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: CoarseRole

    @property
    def is_admin(self) -> bool:
        return self.role == CoarseRole.ADMIN

    @property
    def is_staff(self) -> bool:
        return self.role in (CoarseRole.ADMIN, CoarseRole.AGENT)


def resolve_principal(token: Optional[str]) -> Principal:
    """Verify a bearer token and extract the identity claims.

    Raises:
        AuthenticationError: When the token is missing, invalid, expired or
            carries malformed claims.
    """
    if not token:
        raise AuthenticationError("Authentication token not provided")

    payload = verify_jwt_token(token)
    if not payload:
        raise AuthenticationError("Invalid or expired token")

    try:
        user_id = int(payload.get("sub"))
        role = CoarseRole(payload.get("role", CoarseRole.USER.value))
    except (TypeError, ValueError):
        raise AuthenticationError("Token carries malformed identity claims")

    return Principal(user_id=user_id, role=role)


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization.split(" ", 1)[1].strip() or None
    return None


async def get_current_principal(request: Request, authorization: Optional[str] = Header(None)) -> Principal:
    """Resolve the principal from the Authorization header or access_token cookie."""

    token = extract_bearer_token(authorization) or request.cookies.get("access_token")
    if not token:
        logger.debug("No authentication token found for %s", request.url.path)
    return resolve_principal(token)
