"""
Tests for access profile administration: CRUD, membership, coarse-role
synchronisation and permission cache invalidation.
"""

import pytest
from fastapi import status
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from tidesk.core.config import get_settings
from tidesk.core.exceptions import ConflictError, NotFoundError, ValidationError
from tidesk.core.identity import CoarseRole
from tidesk.core.permissions import Action, Resource, permission_resolver
from tidesk.repositories.user import UserRepository
from tidesk.services.access_profile import AccessProfileService, normalize_grants
from tests.helpers import create_user


@pytest.mark.unit
class TestNormalizeGrants:

    def test_accepts_strings_pairs_and_dicts(self):
        grants = normalize_grants(["tickets:view", ("forms", "create"), {"resource": "pages", "action": "view"}])
        assert grants == [("tickets", "view"), ("forms", "create"), ("pages", "view")]

    def test_drops_duplicates(self):
        assert normalize_grants(["tickets:view", "tickets:view"]) == [("tickets", "view")]

    def test_unknown_permission(self):
        with pytest.raises(ValidationError):
            normalize_grants(["tickets:fly"])


@pytest.mark.unit
class TestAccessProfileService:

    async def test_create_and_get(self, db_session: AsyncSession, profiles):
        svc = AccessProfileService()
        profile = await svc.create_profile(
            db_session,
            name="Financeiro",
            description="Relatórios",
            permissions=["reports:view", "reports:view", "history:view"],
            pages=["/reports", "/reports"],
        )
        await db_session.commit()

        data = await svc.get_profile(db_session, profile.id)
        assert data["name"] == "Financeiro"
        assert data["permissions"] == ["history:view", "reports:view"]
        assert data["pages"] == ["/reports"]
        assert data["users"] == []

    async def test_duplicate_name(self, db_session: AsyncSession, profiles):
        svc = AccessProfileService()
        with pytest.raises(ConflictError):
            await svc.create_profile(db_session, name=get_settings().AGENT_PROFILE_NAME)

    async def test_delete_refuses_linked_profile(self, db_session: AsyncSession, profiles, plain_user):
        svc = AccessProfileService()
        with pytest.raises(ConflictError):
            await svc.delete_profile(db_session, profiles[get_settings().USER_PROFILE_NAME])

    async def test_delete_unlinked_profile(self, db_session: AsyncSession, profiles):
        svc = AccessProfileService()
        profile = await svc.create_profile(db_session, name="Temporário", permissions=["tickets:view"])
        await db_session.commit()

        await svc.delete_profile(db_session, profile.id)
        await db_session.commit()

        with pytest.raises(NotFoundError):
            await svc.get_profile(db_session, profile.id)

    async def test_link_admin_profile_promotes(self, db_session: AsyncSession, profiles, plain_user):
        svc = AccessProfileService()
        user_id = plain_user["user"].id

        role = await svc.link_user(db_session, profiles[get_settings().ADMIN_PROFILE_NAME], user_id)
        await db_session.commit()

        assert role is CoarseRole.ADMIN
        assert await UserRepository().get_role(db_session, user_id) == "admin"

    async def test_agent_profile_does_not_demote_admin(self, db_session: AsyncSession, profiles, admin_user):
        svc = AccessProfileService()
        user_id = admin_user["user"].id

        role = await svc.link_user(db_session, profiles[get_settings().AGENT_PROFILE_NAME], user_id)

        assert role is CoarseRole.ADMIN
        assert await UserRepository().get_role(db_session, user_id) == "admin"

    async def test_link_custom_profile_keeps_role(self, db_session: AsyncSession, profiles, agent_user):
        svc = AccessProfileService()
        custom = await svc.create_profile(db_session, name="Projetos", permissions=["projects:view"])

        role = await svc.link_user(db_session, custom.id, agent_user["user"].id)

        assert role is CoarseRole.AGENT

    async def test_duplicate_link(self, db_session: AsyncSession, profiles, plain_user):
        svc = AccessProfileService()
        with pytest.raises(ConflictError):
            await svc.link_user(db_session, profiles[get_settings().USER_PROFILE_NAME], plain_user["user"].id)

    async def test_link_unknown_user(self, db_session: AsyncSession, profiles):
        svc = AccessProfileService()
        with pytest.raises(NotFoundError):
            await svc.link_user(db_session, profiles[get_settings().USER_PROFILE_NAME], 4242)

    async def test_unlink_recomputes_role(self, db_session: AsyncSession, profiles, plain_user):
        settings = get_settings()
        svc = AccessProfileService()
        user_id = plain_user["user"].id
        await svc.link_user(db_session, profiles[settings.AGENT_PROFILE_NAME], user_id)
        await svc.link_user(db_session, profiles[settings.ADMIN_PROFILE_NAME], user_id)

        assert await svc.unlink_user(db_session, profiles[settings.ADMIN_PROFILE_NAME], user_id) is CoarseRole.AGENT
        assert await svc.unlink_user(db_session, profiles[settings.AGENT_PROFILE_NAME], user_id) is CoarseRole.USER
        assert await UserRepository().get_role(db_session, user_id) == "user"

    async def test_mutations_flush_cache(self, db_session: AsyncSession, profiles, plain_user):
        user_id = plain_user["user"].id
        await permission_resolver.get_effective_permissions(db_session, user_id)
        assert user_id in permission_resolver.cache

        await AccessProfileService().create_profile(db_session, name="Qualquer")

        assert user_id not in permission_resolver.cache

    async def test_promotion_visible_on_next_check(self, db_session: AsyncSession, profiles, plain_user):
        user_id = plain_user["user"].id
        assert not await permission_resolver.has_permission(db_session, user_id, Resource.APPROVE, Action.APPROVE)

        await AccessProfileService().link_user(db_session, profiles[get_settings().AGENT_PROFILE_NAME], user_id)
        await db_session.commit()

        assert await permission_resolver.has_permission(db_session, user_id, Resource.APPROVE, Action.APPROVE)

    async def test_resync_roles(self, db_session: AsyncSession, profiles):
        settings = get_settings()
        drifted = await create_user(db_session, "drift@example.com", role="admin",
                                    profile_id=profiles[settings.USER_PROFILE_NAME])
        agent = await create_user(db_session, "agent2@example.com", role="user",
                                  profile_id=profiles[settings.AGENT_PROFILE_NAME])

        result = await AccessProfileService().resync_roles(db_session)
        await db_session.commit()

        repo = UserRepository()
        assert result["changed"] == 2
        assert await repo.get_role(db_session, drifted["user"].id) == "user"
        assert await repo.get_role(db_session, agent["user"].id) == "agent"

    async def test_my_permissions_includes_pages(self, db_session: AsyncSession, profiles, plain_user):
        svc = AccessProfileService()
        await svc.update_profile(db_session, profiles[get_settings().USER_PROFILE_NAME], pages=["/tickets", "/novo"])
        await db_session.commit()

        data = await svc.my_permissions(db_session, plain_user["user"].id)

        assert "tickets:create" in data["permissions"]
        assert data["pages"] == ["/novo", "/tickets"]


@pytest.mark.integration
class TestAccessProfilesAPI:

    async def test_requires_admin(self, client: AsyncClient, agent_user):
        response = await client.get("/api/access-profiles", headers=agent_user["headers"])

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["detail"]["type"] == "forbidden"

    async def test_requires_authentication(self, client: AsyncClient, profiles):
        response = await client.get("/api/access-profiles")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["detail"]["type"] == "authentication_failed"

    async def test_list_profiles(self, client: AsyncClient, admin_user):
        response = await client.get("/api/access-profiles", headers=admin_user["headers"])

        assert response.status_code == status.HTTP_200_OK
        names = {p["name"] for p in response.json()}
        settings = get_settings()
        assert {settings.ADMIN_PROFILE_NAME, settings.AGENT_PROFILE_NAME, settings.USER_PROFILE_NAME} <= names

    async def test_create_update_delete(self, client: AsyncClient, admin_user):
        created = await client.post(
            "/api/access-profiles",
            json={"name": "Suporte N2", "permissions": ["tickets:view", "track:edit"], "pages": ["/tickets"]},
            headers=admin_user["headers"],
        )
        assert created.status_code == status.HTTP_201_CREATED
        profile_id = created.json()["id"]

        updated = await client.put(
            f"/api/access-profiles/{profile_id}",
            json={"permissions": ["tickets:view"]},
            headers=admin_user["headers"],
        )
        assert updated.status_code == status.HTTP_200_OK
        assert updated.json()["permissions"] == ["tickets:view"]
        assert updated.json()["pages"] == ["/tickets"]

        deleted = await client.delete(f"/api/access-profiles/{profile_id}", headers=admin_user["headers"])
        assert deleted.status_code == status.HTTP_200_OK

    async def test_create_invalid_permission(self, client: AsyncClient, admin_user):
        response = await client.post(
            "/api/access-profiles",
            json={"name": "Ruim", "permissions": ["tickets:fly"]},
            headers=admin_user["headers"],
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["detail"]["type"] == "validation_error"

    async def test_link_and_unlink(self, client: AsyncClient, admin_user, plain_user, profiles):
        agent_profile = profiles[get_settings().AGENT_PROFILE_NAME]
        user_id = plain_user["user"].id

        linked = await client.post(
            f"/api/access-profiles/{agent_profile}/users",
            json={"user_id": user_id},
            headers=admin_user["headers"],
        )
        assert linked.status_code == status.HTTP_201_CREATED
        assert linked.json()["role"] == "agent"

        duplicate = await client.post(
            f"/api/access-profiles/{agent_profile}/users",
            json={"user_id": user_id},
            headers=admin_user["headers"],
        )
        assert duplicate.status_code == status.HTTP_409_CONFLICT
        assert duplicate.json()["detail"]["type"] == "conflict"

        unlinked = await client.delete(
            f"/api/access-profiles/{agent_profile}/users/{user_id}", headers=admin_user["headers"]
        )
        assert unlinked.status_code == status.HTTP_200_OK
        assert unlinked.json()["role"] == "user"

    async def test_my_permissions(self, client: AsyncClient, plain_user):
        response = await client.get("/api/access-profiles/me/permissions", headers=plain_user["headers"])

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["user_id"] == plain_user["user"].id
        assert "tickets:create" in body["permissions"]
        assert "approve:approve" not in body["permissions"]
