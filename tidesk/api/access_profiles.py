from __future__ import annotations
import logging
from typing import List
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from tidesk.core.authorization import require_admin
from tidesk.core.exceptions import BusinessLogicError, business_exception_to_http
from tidesk.core.identity import Principal, get_current_principal
from tidesk.core.permissions import permission_resolver
from tidesk.db.session import get_db
from tidesk.schemas.access_profiles import (
    AccessProfileCreate,
    AccessProfileDetail,
    AccessProfileSummary,
    AccessProfileUpdate,
    LinkUserRequest,
    MembershipResponse,
    MyPermissionsResponse,
)
from tidesk.schemas.tickets import MessageResponse
from tidesk.services.access_profile import AccessProfileService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/access-profiles", tags=["access-profiles"])


async def _commit(session: AsyncSession) -> None:
    await session.commit()
    # Sets cached between the flush and the commit saw the old rows
    permission_resolver.invalidate_all()


@router.get("/me/permissions", response_model=MyPermissionsResponse)
async def my_permissions(
    session: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> MyPermissionsResponse:
    """Effective permissions and allowed pages of the caller."""

    try:
        data = await AccessProfileService().my_permissions(session, principal.user_id)
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    return MyPermissionsResponse(**data)


@router.get("", response_model=List[AccessProfileSummary])
async def list_profiles(
    session: AsyncSession = Depends(get_db),
    _: Principal = Depends(require_admin),
) -> List[AccessProfileSummary]:
    items = await AccessProfileService().list_profiles(session)
    return [AccessProfileSummary(**item) for item in items]


@router.get("/{profile_id}", response_model=AccessProfileDetail)
async def get_profile(
    profile_id: int,
    session: AsyncSession = Depends(get_db),
    _: Principal = Depends(require_admin),
) -> AccessProfileDetail:
    try:
        data = await AccessProfileService().get_profile(session, profile_id)
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    return AccessProfileDetail(**data)


@router.post("", response_model=AccessProfileDetail, status_code=status.HTTP_201_CREATED)
async def create_profile(
    payload: AccessProfileCreate,
    session: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_admin),
) -> AccessProfileDetail:
    svc = AccessProfileService()
    try:
        profile = await svc.create_profile(
            session,
            name=payload.name,
            description=payload.description,
            permissions=payload.permissions,
            pages=payload.pages,
        )
        await _commit(session)
        data = await svc.get_profile(session, profile.id)
    except BusinessLogicError as e:
        logger.warning("Access profile creation by %s failed: %s", principal.user_id, e)
        raise business_exception_to_http(e)
    return AccessProfileDetail(**data)


@router.put("/{profile_id}", response_model=AccessProfileDetail)
async def update_profile(
    profile_id: int,
    payload: AccessProfileUpdate,
    session: AsyncSession = Depends(get_db),
    _: Principal = Depends(require_admin),
) -> AccessProfileDetail:
    svc = AccessProfileService()
    try:
        await svc.update_profile(
            session,
            profile_id,
            name=payload.name,
            description=payload.description,
            permissions=payload.permissions,
            pages=payload.pages,
        )
        await _commit(session)
        data = await svc.get_profile(session, profile_id)
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    return AccessProfileDetail(**data)


@router.delete("/{profile_id}", response_model=MessageResponse)
async def delete_profile(
    profile_id: int,
    session: AsyncSession = Depends(get_db),
    _: Principal = Depends(require_admin),
) -> MessageResponse:
    try:
        await AccessProfileService().delete_profile(session, profile_id)
        await _commit(session)
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    return MessageResponse(message="Access profile deleted", details={"profile_id": profile_id})


@router.post("/{profile_id}/users", response_model=MembershipResponse, status_code=status.HTTP_201_CREATED)
async def link_user(
    profile_id: int,
    payload: LinkUserRequest,
    session: AsyncSession = Depends(get_db),
    _: Principal = Depends(require_admin),
) -> MembershipResponse:
    try:
        role = await AccessProfileService().link_user(session, profile_id, payload.user_id)
        await _commit(session)
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    return MembershipResponse(message="User linked to profile", user_id=payload.user_id, role=role.value)


@router.delete("/{profile_id}/users/{user_id}", response_model=MembershipResponse)
async def unlink_user(
    profile_id: int,
    user_id: int,
    session: AsyncSession = Depends(get_db),
    _: Principal = Depends(require_admin),
) -> MembershipResponse:
    try:
        role = await AccessProfileService().unlink_user(session, profile_id, user_id)
        await _commit(session)
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    return MembershipResponse(message="User unlinked from profile", user_id=user_id, role=role.value)
