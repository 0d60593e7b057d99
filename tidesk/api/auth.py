import logging
from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from tidesk.core.config import get_settings
from tidesk.core.exceptions import BusinessLogicError, NotFoundError, business_exception_to_http
from tidesk.core.identity import Principal, get_current_principal
from tidesk.db.session import get_db
from tidesk.repositories.user import UserRepository
from tidesk.schemas.auth import LoginRequest, MeResponse, RegisterRequest, TokenResponse
from tidesk.services.auth import AuthService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", response_model=MeResponse, status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterRequest, session: AsyncSession = Depends(get_db)) -> MeResponse:
    """Register a new plain user linked to the default user profile."""

    try:
        user = await AuthService().register(session, name=payload.name, email=payload.email, password=payload.password)
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    return MeResponse.model_validate(user)


@router.post("/login", response_model=TokenResponse)
async def login(payload: LoginRequest, response: Response, session: AsyncSession = Depends(get_db)) -> TokenResponse:
    """Authenticate and return a bearer token; the token is also set as a cookie."""

    try:
        token, user = await AuthService().authenticate(session, email=payload.email, password=payload.password)
    except BusinessLogicError as e:
        logger.info("Failed login for %s", payload.email)
        raise business_exception_to_http(e)

    response.set_cookie(
        key="access_token",
        value=token,
        httponly=True,
        max_age=get_settings().ACCESS_EXPIRES_MIN * 60,
        path="/",
        samesite="lax",
        secure=False,
    )
    return TokenResponse(access_token=token, user=MeResponse.model_validate(user))


@router.get("/me", response_model=MeResponse)
async def me(
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_db),
) -> MeResponse:
    user = await UserRepository().get_by_id(session, principal.user_id)
    if user is None:
        raise business_exception_to_http(NotFoundError("User not found", {"user_id": principal.user_id}))
    if not user.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User inactive")
    return MeResponse.model_validate(user)
