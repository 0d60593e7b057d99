"""
Tests for periodic jobs and database seeding.
"""

import asyncio

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tidesk.core.config import get_settings
from tidesk.core.database import AGENT_GRANTS, USER_GRANTS, seed_defaults
from tidesk.core.jobs import PeriodicJob
from tidesk.db.models import AccessProfile, Grant, User
from tidesk.repositories.access_profile import AccessProfileRepository


@pytest.mark.unit
class TestPeriodicJob:

    async def test_runs_repeatedly_until_stopped(self):
        calls = []

        async def tick():
            calls.append(1)

        job = PeriodicJob("tick", 0.01, tick, run_immediately=True)
        job.start()
        await asyncio.sleep(0.05)
        await job.stop()

        assert len(calls) >= 2
        assert not job.running
        count = len(calls)
        await asyncio.sleep(0.03)
        assert len(calls) == count

    async def test_failures_do_not_stop_the_job(self):
        def broken():
            raise RuntimeError("boom")

        job = PeriodicJob("broken", 0.01, broken, run_immediately=True)
        job.start()
        await asyncio.sleep(0.04)
        await job.stop()

        assert job.failures >= 2
        assert job.runs == 0

    async def test_sync_callable(self):
        job = PeriodicJob("sync", 60, lambda: 3)
        await job.run_once()
        assert job.runs == 1

    def test_interval_must_be_positive(self):
        with pytest.raises(ValueError):
            PeriodicJob("bad", 0, lambda: None)


@pytest.mark.unit
class TestSeedDefaults:

    async def test_seed_is_idempotent(self, db_session: AsyncSession):
        first = await seed_defaults(db_session)
        await db_session.commit()
        second = await seed_defaults(db_session)
        await db_session.commit()

        assert first == second
        profiles = await db_session.execute(select(func.count(AccessProfile.id)))
        assert profiles.scalar_one() == 3
        users = await db_session.execute(select(func.count(User.id)))
        assert users.scalar_one() == 1

    async def test_default_grants(self, db_session: AsyncSession):
        settings = get_settings()
        ids = await seed_defaults(db_session)
        repo = AccessProfileRepository()

        agent = {(g.resource, g.action) for g in await repo.list_grants(db_session, ids[settings.AGENT_PROFILE_NAME])}
        user = {(g.resource, g.action) for g in await repo.list_grants(db_session, ids[settings.USER_PROFILE_NAME])}
        admin = {(g.resource, g.action) for g in await repo.list_grants(db_session, ids[settings.ADMIN_PROFILE_NAME])}

        assert agent == set(AGENT_GRANTS)
        assert user == set(USER_GRANTS)
        assert ("approve", "approve") in admin
        assert ("approve", "reject") in admin
        assert ("tickets", "approve") not in admin
        assert ("webhooks", "delete") in admin

    async def test_admin_linked_to_admin_profile(self, db_session: AsyncSession):
        settings = get_settings()
        ids = await seed_defaults(db_session)
        admin = (await db_session.execute(select(User).where(User.email == settings.ADMIN_EMAIL))).scalar_one()

        assert admin.role == "admin"
        assert await AccessProfileRepository().is_linked(db_session, ids[settings.ADMIN_PROFILE_NAME], admin.id)
        grants = await db_session.execute(select(func.count(Grant.id)))
        assert grants.scalar_one() > 0
