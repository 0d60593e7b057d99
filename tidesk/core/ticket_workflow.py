"""
Ticket lifecycle state machine for TIDESK.
Guards the approval transitions, applies scheduling side effects and runs the
passive closed -> resolved sweep. Permission checks happen before the engine
is reached; the engine only decides whether a transition is legal.
"""

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tidesk.core.config import get_settings
from tidesk.core.exceptions import InvalidStateTransition, NotFoundError, StorageFailure, ValidationError
from tidesk.core.timeutils import utcnow
from tidesk.db.models import Form, Ticket
from tidesk.repositories.ticket import TicketRepository

logger = logging.getLogger(__name__)


class TicketStatus(str, Enum):
    """Ticket statuses. Order only matters for display."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    SCHEDULED = "scheduled"
    PENDING_APPROVAL = "pending_approval"
    RESOLVED = "resolved"
    CLOSED = "closed"
    REJECTED = "rejected"


class TicketPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TicketWorkflowEngine:
    """Validates and applies ticket status transitions."""

    def __init__(self, resolve_after_hours: Optional[int] = None) -> None:
        self.repo = TicketRepository()
        self.resolve_after = timedelta(
            hours=resolve_after_hours if resolve_after_hours is not None else get_settings().CLOSED_TICKET_RESOLVE_HOURS
        )

    @staticmethod
    def initial_status(form: Optional[Form] = None) -> TicketStatus:
        """Submissions of forms with an approval routing target start pending approval."""
        if form is not None and form.needs_approval:
            return TicketStatus.PENDING_APPROVAL
        return TicketStatus.OPEN

    async def approve(self, session: AsyncSession, ticket_id: int) -> Ticket:
        return await self._decide(session, ticket_id, TicketStatus.OPEN)

    async def reject(self, session: AsyncSession, ticket_id: int) -> Ticket:
        return await self._decide(session, ticket_id, TicketStatus.REJECTED)

    async def schedule(self, session: AsyncSession, ticket_id: int, scheduled_at: datetime) -> Ticket:
        """Move any ticket to ``scheduled`` at the given time."""
        return await self._apply(
            session,
            ticket_id,
            {"status": TicketStatus.SCHEDULED.value, "scheduled_at": scheduled_at},
        )

    async def unschedule(self, session: AsyncSession, ticket_id: int) -> Ticket:
        return await self._apply(
            session,
            ticket_id,
            {"status": TicketStatus.OPEN.value, "scheduled_at": None},
        )

    async def edit(self, session: AsyncSession, ticket_id: int, values: Dict[str, Any]) -> Ticket:
        """Field edit without a status change."""
        if "status" in values:
            raise ValidationError("Use set_status to change the ticket status")
        return await self._apply(session, ticket_id, values)

    async def set_status(
        self,
        session: AsyncSession,
        ticket_id: int,
        status: Any,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Ticket:
        """Generic editor: any enumerated status is accepted from any status."""
        try:
            new_status = TicketStatus(status)
        except ValueError:
            raise ValidationError(
                f"Invalid ticket status '{status}'",
                {"allowed": [s.value for s in TicketStatus]},
            )
        values = dict(extra or {})
        values["status"] = new_status.value
        return await self._apply(session, ticket_id, values)

    async def resolve_stale_closed(self, session: AsyncSession, now: Optional[datetime] = None) -> int:
        """Move tickets closed for longer than the threshold to ``resolved``.

        Idempotent: the filter only matches rows still in ``closed``.
        """
        now = now or utcnow()
        threshold = now - self.resolve_after
        try:
            count = await self.repo.resolve_closed_before(session, threshold, now)
        except SQLAlchemyError as exc:
            logger.exception("Closed ticket sweep failed")
            raise StorageFailure("Failed to resolve closed tickets") from exc
        if count:
            logger.info("Closed ticket sweep resolved %d ticket(s)", count)
        return count

    async def _decide(self, session: AsyncSession, ticket_id: int, target: TicketStatus) -> Ticket:
        """approve/reject: only legal from pending_approval."""
        try:
            affected = await self.repo.update_fields(
                session,
                ticket_id,
                {"status": target.value, "updated_at": utcnow()},
                status=TicketStatus.PENDING_APPROVAL.value,
            )
            if affected:
                return await self._reload(session, ticket_id)
            ticket = await self.repo.get_by_id(session, ticket_id)
        except SQLAlchemyError as exc:
            raise StorageFailure("Failed to update ticket", {"ticket_id": ticket_id}) from exc

        if ticket is None:
            raise NotFoundError("Ticket not found", {"ticket_id": ticket_id})
        raise InvalidStateTransition(
            "Ticket is not pending approval",
            {"ticket_id": ticket_id, "current_status": ticket.status, "requested_status": target.value},
        )

    async def _apply(self, session: AsyncSession, ticket_id: int, values: Dict[str, Any]) -> Ticket:
        values = dict(values)
        values["updated_at"] = utcnow()
        try:
            affected = await self.repo.update_fields(session, ticket_id, values)
        except SQLAlchemyError as exc:
            raise StorageFailure("Failed to update ticket", {"ticket_id": ticket_id}) from exc
        if not affected:
            raise NotFoundError("Ticket not found", {"ticket_id": ticket_id})
        return await self._reload(session, ticket_id)

    async def _reload(self, session: AsyncSession, ticket_id: int) -> Ticket:
        try:
            ticket = await self.repo.get_by_id(session, ticket_id)
        except SQLAlchemyError as exc:
            raise StorageFailure("Failed to load ticket", {"ticket_id": ticket_id}) from exc
        if ticket is None:
            raise NotFoundError("Ticket not found", {"ticket_id": ticket_id})
        return ticket
