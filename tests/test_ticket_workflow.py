"""
Tests for the ticket lifecycle: approval guards, scheduling, status edits and
the closed -> resolved sweep.
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from tidesk.core.exceptions import InvalidStateTransition, NotFoundError, ValidationError
from tidesk.core.ticket_workflow import TicketStatus, TicketWorkflowEngine
from tidesk.db.models import Form
from tidesk.repositories.ticket import TicketRepository

PAST = datetime(2026, 1, 10, 12, 0)


async def _ticket(session: AsyncSession, status: str, updated_at: datetime = PAST):
    ticket = await TicketRepository().create(
        session,
        ticket_number=1,
        title="Monitor piscando",
        description="",
        status=status,
        needs_approval=status == "pending_approval",
        created_at=PAST,
        updated_at=updated_at,
    )
    await session.commit()
    return ticket


@pytest.fixture
def engine() -> TicketWorkflowEngine:
    return TicketWorkflowEngine(resolve_after_hours=24)


@pytest.mark.unit
class TestInitialStatus:

    def test_without_form(self):
        assert TicketWorkflowEngine.initial_status() is TicketStatus.OPEN

    def test_form_with_linked_user(self):
        assert TicketWorkflowEngine.initial_status(Form(linked_user_id=3)) is TicketStatus.PENDING_APPROVAL

    def test_form_with_linked_group(self):
        assert TicketWorkflowEngine.initial_status(Form(linked_group_id=1)) is TicketStatus.PENDING_APPROVAL

    def test_unrouted_form(self):
        assert TicketWorkflowEngine.initial_status(Form()) is TicketStatus.OPEN


@pytest.mark.unit
class TestApproval:

    async def test_approve_pending(self, db_session: AsyncSession, engine):
        ticket = await _ticket(db_session, "pending_approval")

        approved = await engine.approve(db_session, ticket.id)

        assert approved.status == "open"
        assert approved.updated_at > PAST

    async def test_reject_pending(self, db_session: AsyncSession, engine):
        ticket = await _ticket(db_session, "pending_approval")

        rejected = await engine.reject(db_session, ticket.id)

        assert rejected.status == "rejected"

    @pytest.mark.parametrize("status", ["open", "in_progress", "scheduled", "resolved", "closed", "rejected"])
    async def test_approve_requires_pending(self, db_session: AsyncSession, engine, status):
        ticket = await _ticket(db_session, status)

        with pytest.raises(InvalidStateTransition) as exc_info:
            await engine.approve(db_session, ticket.id)

        assert exc_info.value.details["current_status"] == status
        reloaded = await TicketRepository().get_by_id(db_session, ticket.id)
        assert reloaded.status == status
        assert reloaded.updated_at == PAST

    async def test_second_decision_is_rejected(self, db_session: AsyncSession, engine):
        ticket = await _ticket(db_session, "pending_approval")
        await engine.approve(db_session, ticket.id)

        with pytest.raises(InvalidStateTransition):
            await engine.reject(db_session, ticket.id)

    async def test_unknown_ticket(self, db_session: AsyncSession, engine):
        with pytest.raises(NotFoundError):
            await engine.approve(db_session, 999)


@pytest.mark.unit
class TestScheduling:

    async def test_schedule_from_any_status(self, db_session: AsyncSession, engine):
        ticket = await _ticket(db_session, "closed")
        when = datetime(2026, 2, 1, 13, 0)

        scheduled = await engine.schedule(db_session, ticket.id, when)

        assert scheduled.status == "scheduled"
        assert scheduled.scheduled_at == when

    async def test_unschedule_reopens_and_clears_time(self, db_session: AsyncSession, engine):
        ticket = await _ticket(db_session, "open")
        await engine.schedule(db_session, ticket.id, datetime(2026, 2, 1, 13, 0))

        reopened = await engine.unschedule(db_session, ticket.id)

        assert reopened.status == "open"
        assert reopened.scheduled_at is None

    async def test_schedule_unknown_ticket(self, db_session: AsyncSession, engine):
        with pytest.raises(NotFoundError):
            await engine.schedule(db_session, 999, datetime(2026, 2, 1, 13, 0))


@pytest.mark.unit
class TestSetStatus:

    async def test_any_status_to_any_status(self, db_session: AsyncSession, engine):
        ticket = await _ticket(db_session, "rejected")

        updated = await engine.set_status(db_session, ticket.id, "in_progress", {"assigned_to": None})

        assert updated.status == "in_progress"

    async def test_invalid_status(self, db_session: AsyncSession, engine):
        ticket = await _ticket(db_session, "open")

        with pytest.raises(ValidationError):
            await engine.set_status(db_session, ticket.id, "archived")

    async def test_edit_refuses_status(self, db_session: AsyncSession, engine):
        ticket = await _ticket(db_session, "open")

        with pytest.raises(ValidationError):
            await engine.edit(db_session, ticket.id, {"status": "closed"})


@pytest.mark.unit
class TestClosedSweep:

    async def test_threshold(self, db_session: AsyncSession, engine):
        now = datetime(2026, 1, 22, 12, 0)
        stale = await _ticket(db_session, "closed", updated_at=now - timedelta(hours=25))
        fresh = await _ticket(db_session, "closed", updated_at=now - timedelta(hours=23))
        other = await _ticket(db_session, "open", updated_at=now - timedelta(hours=48))

        count = await engine.resolve_stale_closed(db_session, now=now)
        await db_session.commit()

        repo = TicketRepository()
        assert count == 1
        swept = await repo.get_by_id(db_session, stale.id)
        assert swept.status == "resolved"
        assert swept.updated_at == now
        assert (await repo.get_by_id(db_session, fresh.id)).status == "closed"
        assert (await repo.get_by_id(db_session, other.id)).status == "open"

    async def test_idempotent(self, db_session: AsyncSession, engine):
        now = datetime(2026, 1, 22, 12, 0)
        await _ticket(db_session, "closed", updated_at=now - timedelta(hours=30))

        assert await engine.resolve_stale_closed(db_session, now=now) == 1
        assert await engine.resolve_stale_closed(db_session, now=now) == 0
