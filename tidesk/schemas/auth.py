from typing import Optional
from pydantic import BaseModel, ConfigDict, EmailStr, constr


class TokenResponse(BaseModel):
    """JWT token response payload.

    Attributes:
        access_token: Bearer token carrying user id and coarse role.
        token_type: OAuth2 token type, defaults to 'bearer'.
        user: Authenticated user summary.
    """

    access_token: str
    token_type: str = "bearer"
    user: "MeResponse"


class LoginRequest(BaseModel):
    """Login payload with email and password."""

    email: EmailStr
    password: constr(min_length=6)  # type: ignore[valid-type]


class RegisterRequest(BaseModel):
    """Registration payload with name, email and password.

    Attributes:
        name: Full name.
        email: User email address.
        password: Plain password.
    """

    name: constr(min_length=2)  # type: ignore[valid-type]
    email: EmailStr
    password: constr(min_length=6)  # type: ignore[valid-type]


class MeResponse(BaseModel):
    """Authenticated user profile payload."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: Optional[EmailStr]
    role: str
    active: bool


TokenResponse.model_rebuild()
