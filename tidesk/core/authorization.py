"""
Access decision dependencies for TIDESK.
Composes the identity gate with the permission resolver into guards that every
protected route declares. Any failure while resolving permissions aborts the
request; nothing here ever falls back to allowing access.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, FrozenSet, Iterable, Tuple

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tidesk.core.exceptions import AuthorizationDenied
from tidesk.core.identity import Principal, get_current_principal
from tidesk.core.permissions import permission_key, permission_resolver
from tidesk.db.session import get_db

logger = logging.getLogger(__name__)


@dataclass
class AuthorizationContext:
    """Verified principal plus the effective permission set it was checked against."""

    principal: Principal
    permissions: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def user_id(self) -> int:
        return self.principal.user_id

    def has_permission(self, resource, action) -> bool:
        """Check if the user has a specific permission."""
        return permission_key(resource, action) in self.permissions

    def has_any_permission(self, pairs: Iterable[Tuple[object, object]]) -> bool:
        """Check if the user has any of the specified permissions."""
        return any(self.has_permission(resource, action) for resource, action in pairs)


def require_permission(resource, action) -> Callable:
    """Dependency factory requiring one ``resource:action`` grant."""
    required = permission_key(resource, action)

    async def dependency(
        session: AsyncSession = Depends(get_db),
        principal: Principal = Depends(get_current_principal),
    ) -> AuthorizationContext:
        allowed = await permission_resolver.has_permission(session, principal.user_id, resource, action)
        if not allowed:
            logger.warning(
                "Permission denied: user %s (%s) lacks %s",
                principal.user_id, principal.role.value, required,
            )
            raise AuthorizationDenied(
                "Access denied. You do not have permission to perform this action.",
                required=required,
            )
        permissions = await permission_resolver.get_effective_permissions(session, principal.user_id)
        return AuthorizationContext(principal=principal, permissions=permissions)

    return dependency


def require_any_permission(*pairs: Tuple[object, object]) -> Callable:
    """Dependency factory requiring at least one of the given grants."""
    required = [permission_key(resource, action) for resource, action in pairs]

    async def dependency(
        session: AsyncSession = Depends(get_db),
        principal: Principal = Depends(get_current_principal),
    ) -> AuthorizationContext:
        allowed = await permission_resolver.has_any_permission(session, principal.user_id, pairs)
        if not allowed:
            logger.warning(
                "Permission denied: user %s (%s) lacks all of %s",
                principal.user_id, principal.role.value, required,
            )
            raise AuthorizationDenied(
                "Access denied. You do not have permission to perform this action.",
                required=" | ".join(required),
            )
        permissions = await permission_resolver.get_effective_permissions(session, principal.user_id)
        return AuthorizationContext(principal=principal, permissions=permissions)

    return dependency


async def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Dependency to require the admin coarse role."""
    if not principal.is_admin:
        raise AuthorizationDenied("Access denied. Administrators only.", required="role:admin")
    return principal


async def require_agent(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Dependency to require the agent or admin coarse role."""
    if not principal.is_staff:
        raise AuthorizationDenied("Access denied. Agents and administrators only.", required="role:agent")
    return principal
