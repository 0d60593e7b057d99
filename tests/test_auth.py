"""
Tests for registration, login and the identity gate.
"""

from datetime import timedelta

import pytest
from fastapi import status
from httpx import AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from tidesk.core.config import get_settings
from tidesk.core.exceptions import AuthenticationError, ConflictError
from tidesk.core.identity import CoarseRole, extract_bearer_token, resolve_principal
from tidesk.core.security import create_access_token, create_jwt_token
from tidesk.core.timeutils import utcnow
from tidesk.repositories.access_profile import AccessProfileRepository
from tidesk.repositories.user import UserRepository
from tidesk.services.auth import AuthService


@pytest.mark.unit
class TestIdentityGate:

    def test_resolves_valid_token(self):
        principal = resolve_principal(create_access_token(12, "agent"))

        assert principal.user_id == 12
        assert principal.role is CoarseRole.AGENT
        assert principal.is_staff
        assert not principal.is_admin

    def test_missing_token(self):
        with pytest.raises(AuthenticationError):
            resolve_principal(None)

    def test_garbage_token(self):
        with pytest.raises(AuthenticationError):
            resolve_principal("not.a.jwt")

    def test_expired_token(self):
        token = create_jwt_token(subject="12", expires_in=-60, claims={"role": "user"})
        with pytest.raises(AuthenticationError):
            resolve_principal(token)

    def test_wrong_signature(self):
        now = utcnow()
        token = jwt.encode(
            {"sub": "12", "role": "admin", "iat": now, "exp": now + timedelta(hours=1)},
            "some-other-secret",
            algorithm="HS256",
        )
        with pytest.raises(AuthenticationError):
            resolve_principal(token)

    def test_unknown_role_claim(self):
        token = create_jwt_token(subject="12", expires_in=60, claims={"role": "superuser"})
        with pytest.raises(AuthenticationError):
            resolve_principal(token)

    def test_extract_bearer_token(self):
        assert extract_bearer_token("Bearer abc") == "abc"
        assert extract_bearer_token("bearer abc") == "abc"
        assert extract_bearer_token("Basic abc") is None
        assert extract_bearer_token(None) is None


@pytest.mark.unit
class TestAuthService:

    async def test_register_links_default_profile(self, db_session: AsyncSession, profiles):
        user = await AuthService().register(db_session, name="Maria", email="Maria@Example.com", password="segredo1")

        assert user.email == "maria@example.com"
        assert user.role == "user"
        names = await AccessProfileRepository().profile_names_for_user(db_session, user.id)
        assert names == {get_settings().USER_PROFILE_NAME}

    async def test_register_duplicate_email(self, db_session: AsyncSession, profiles):
        svc = AuthService()
        await svc.register(db_session, name="Maria", email="maria@example.com", password="segredo1")

        with pytest.raises(ConflictError):
            await svc.register(db_session, name="Outra", email="MARIA@example.com", password="segredo2")

    async def test_authenticate(self, db_session: AsyncSession, profiles):
        svc = AuthService()
        user = await svc.register(db_session, name="João", email="joao@example.com", password="segredo1")

        token, authenticated = await svc.authenticate(db_session, "joao@example.com", "segredo1")

        assert authenticated.id == user.id
        assert resolve_principal(token).user_id == user.id

    async def test_authenticate_wrong_password(self, db_session: AsyncSession, profiles):
        svc = AuthService()
        await svc.register(db_session, name="João", email="joao@example.com", password="segredo1")

        with pytest.raises(AuthenticationError):
            await svc.authenticate(db_session, "joao@example.com", "errado99")

    async def test_inactive_user_cannot_login(self, db_session: AsyncSession, profiles):
        svc = AuthService()
        user = await svc.register(db_session, name="João", email="joao@example.com", password="segredo1")
        user.active = False
        await db_session.commit()

        with pytest.raises(AuthenticationError):
            await svc.authenticate(db_session, "joao@example.com", "segredo1")


@pytest.mark.integration
class TestAuthAPI:

    async def test_register_login_me(self, client: AsyncClient, profiles):
        registered = await client.post(
            "/api/auth/register",
            json={"name": "Ana Souza", "email": "ana@example.com", "password": "segredo1"},
        )
        assert registered.status_code == status.HTTP_201_CREATED
        assert registered.json()["role"] == "user"

        login = await client.post("/api/auth/login", json={"email": "ana@example.com", "password": "segredo1"})
        assert login.status_code == status.HTTP_200_OK
        token = login.json()["access_token"]
        assert login.json()["token_type"] == "bearer"
        assert "access_token=" in login.headers.get("set-cookie", "")

        me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == status.HTTP_200_OK
        assert me.json()["email"] == "ana@example.com"

    async def test_duplicate_registration(self, client: AsyncClient, plain_user):
        response = await client.post(
            "/api/auth/register",
            json={"name": "Outro", "email": "user@example.com", "password": "segredo1"},
        )

        assert response.status_code == status.HTTP_409_CONFLICT

    async def test_bad_credentials(self, client: AsyncClient, plain_user):
        response = await client.post("/api/auth/login", json={"email": "user@example.com", "password": "errado99"})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["detail"]["type"] == "authentication_failed"
        assert response.headers["www-authenticate"] == "Bearer"

    async def test_seeded_admin_can_login(self, client: AsyncClient, profiles):
        settings = get_settings()
        response = await client.post(
            "/api/auth/login", json={"email": settings.ADMIN_EMAIL, "password": settings.ADMIN_PASSWORD}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["user"]["role"] == "admin"

    async def test_me_with_cookie(self, client: AsyncClient, plain_user):
        client.cookies.set("access_token", plain_user["token"])
        response = await client.get("/api/auth/me")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["id"] == plain_user["user"].id

    async def test_me_with_expired_token(self, client: AsyncClient, plain_user):
        token = create_jwt_token(subject=str(plain_user["user"].id), expires_in=-1, claims={"role": "user"})
        response = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    async def test_seeded_admin_role(self, db_session: AsyncSession, profiles):
        admin = await UserRepository().get_by_email(db_session, get_settings().ADMIN_EMAIL)
        assert admin.role == "admin"
