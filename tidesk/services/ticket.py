import logging
import secrets
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from tidesk.core.exceptions import AuthorizationDenied, ErrorHandler, NotFoundError, ValidationError
from tidesk.core.identity import Principal
from tidesk.core.ticket_identifier import TicketIdentifierCodec, ticket_codec
from tidesk.core.ticket_workflow import TicketPriority, TicketStatus, TicketWorkflowEngine
from tidesk.core.timeutils import to_storage, utcnow
from tidesk.db.models import Form, Ticket
from tidesk.db.session import SessionLocal
from tidesk.repositories.form import FormRepository
from tidesk.repositories.ticket import TicketRepository
from tidesk.repositories.user import UserRepository

logger = logging.getLogger(__name__)


def _priority(value: Optional[str]) -> str:
    try:
        return TicketPriority(value or TicketPriority.MEDIUM.value).value
    except ValueError:
        raise ValidationError(
            f"Invalid priority '{value}'", {"allowed": [p.value for p in TicketPriority]}
        )


class TicketService:
    """Ticket creation, lookup by composite identifier and lifecycle operations."""

    def __init__(
        self,
        codec: Optional[TicketIdentifierCodec] = None,
        workflow: Optional[TicketWorkflowEngine] = None,
    ) -> None:
        self.repo = TicketRepository()
        self.form_repo = FormRepository()
        self.user_repo = UserRepository()
        self.codec = codec or ticket_codec
        self.workflow = workflow or TicketWorkflowEngine()

    def to_payload(self, ticket: Ticket) -> Dict[str, Any]:
        """Serializable view of a ticket including its composite identifier."""
        return {
            "id": ticket.id,
            "ticket_number": ticket.ticket_number,
            "ticket_id": (
                self.codec.encode(ticket.created_at, ticket.ticket_number)
                if ticket.ticket_number is not None
                else None
            ),
            "title": ticket.title,
            "description": ticket.description,
            "status": ticket.status,
            "priority": ticket.priority,
            "user_id": ticket.user_id,
            "assigned_to": ticket.assigned_to,
            "assigned_at": ticket.assigned_at,
            "form_id": ticket.form_id,
            "needs_approval": ticket.needs_approval,
            "scheduled_at": ticket.scheduled_at,
            "created_at": ticket.created_at,
            "updated_at": ticket.updated_at,
        }

    async def create_ticket(
        self,
        session: AsyncSession,
        title: str,
        description: str = "",
        priority: Optional[str] = None,
        user_id: Optional[int] = None,
        form: Optional[Form] = None,
    ) -> Ticket:
        """Insert a ticket with the next daily number. Does not commit."""
        title = ErrorHandler.validate_required_text(title, "title")

        status = self.workflow.initial_status(form)
        ticket_number = await self.codec.next_ticket_number(session)
        now = utcnow()
        ticket = await self.repo.create(
            session,
            ticket_number=ticket_number,
            title=title,
            description=description or "",
            status=status.value,
            priority=_priority(priority),
            user_id=user_id,
            form_id=form.id if form is not None else None,
            needs_approval=status is TicketStatus.PENDING_APPROVAL,
            created_at=now,
            updated_at=now,
        )
        logger.info(
            "Created ticket %s (%s) status=%s",
            ticket.id, self.codec.encode(ticket.created_at, ticket_number), status.value,
        )
        return ticket

    async def submit_form(
        self,
        session: AsyncSession,
        public_url: str,
        data: Dict[str, Any],
        user_id: Optional[int] = None,
    ) -> Ticket:
        """Create a ticket from a public form submission."""
        form = await FormService(self.form_repo).get_public_form(session, public_url)

        description = "\n\n".join(f"**{key}:** {value}" for key, value in (data or {}).items())
        return await self.create_ticket(
            session,
            title=f"Submissão: {form.name}",
            description=description,
            priority=TicketPriority.MEDIUM.value,
            user_id=user_id,
            form=form,
        )

    async def get_ticket(self, session: AsyncSession, ref: str, principal: Optional[Principal] = None) -> Ticket:
        """Load by composite identifier or raw id; plain users only see their own."""
        ticket_id = await self.codec.resolve(session, ref)
        ticket = await self.repo.get_by_id(session, ticket_id)
        if ticket is None:
            raise NotFoundError("Ticket not found", {"ticket": str(ref)})
        if principal is not None and not principal.is_staff and ticket.user_id != principal.user_id:
            raise NotFoundError("Ticket not found", {"ticket": str(ref)})
        return ticket

    async def list_tickets(self, session: AsyncSession, principal: Principal) -> List[Ticket]:
        owner = None if principal.is_staff else principal.user_id
        return await self.repo.list_recent(session, user_id=owner)

    async def update_ticket(
        self, session: AsyncSession, ref: str, principal: Principal, changes: Dict[str, Any]
    ) -> Ticket:
        """Apply an edit; status and assignee are only honoured for staff."""
        ticket_id = await self.codec.resolve(session, ref)
        ticket = await self.repo.get_by_id(session, ticket_id)
        if ticket is None:
            raise NotFoundError("Ticket not found", {"ticket": str(ref)})
        if not principal.is_staff and ticket.user_id != principal.user_id:
            raise AuthorizationDenied("Access denied", required="tickets:edit")

        values: Dict[str, Any] = {}
        if changes.get("title"):
            values["title"] = changes["title"].strip()
        if changes.get("description"):
            values["description"] = changes["description"]
        if changes.get("priority"):
            values["priority"] = _priority(changes["priority"])
        if principal.is_staff and changes.get("assigned_to"):
            assignee = ErrorHandler.validate_positive_integer(changes["assigned_to"], "assigned_to")
            if await self.user_repo.get_by_id(session, assignee) is None:
                raise ValidationError("Assignee not found", {"assigned_to": assignee})
            values["assigned_to"] = assignee
            values["assigned_at"] = utcnow()

        if principal.is_staff and changes.get("status"):
            return await self.workflow.set_status(session, ticket_id, changes["status"], values)
        return await self.workflow.edit(session, ticket_id, values)

    async def delete_ticket(self, session: AsyncSession, ref: str) -> int:
        ticket_id = await self.codec.resolve(session, ref)
        if not await self.repo.delete(session, ticket_id):
            raise NotFoundError("Ticket not found", {"ticket": str(ref)})
        logger.info("Deleted ticket %s", ticket_id)
        return ticket_id

    async def approve(self, session: AsyncSession, ref: str) -> Ticket:
        ticket_id = await self.codec.resolve(session, ref)
        ticket = await self.workflow.approve(session, ticket_id)
        logger.info("Ticket %s approved", ticket_id)
        return ticket

    async def reject(self, session: AsyncSession, ref: str) -> Ticket:
        ticket_id = await self.codec.resolve(session, ref)
        ticket = await self.workflow.reject(session, ticket_id)
        logger.info("Ticket %s rejected", ticket_id)
        return ticket

    async def schedule(self, session: AsyncSession, ref: str, scheduled_at: datetime) -> Ticket:
        ticket_id = await self.codec.resolve(session, ref)
        return await self.workflow.schedule(session, ticket_id, to_storage(scheduled_at))

    async def unschedule(self, session: AsyncSession, ref: str) -> Ticket:
        ticket_id = await self.codec.resolve(session, ref)
        return await self.workflow.unschedule(session, ticket_id)


class FormService:
    """Form definitions whose public submissions open tickets."""

    def __init__(self, repo: Optional[FormRepository] = None) -> None:
        self.repo = repo or FormRepository()
        self.user_repo = UserRepository()

    async def list_forms(self, session: AsyncSession) -> List[Form]:
        return await self.repo.list_all(session)

    async def get_public_form(self, session: AsyncSession, ref: str) -> Form:
        form = await self.repo.get_by_public_ref(session, ref)
        if form is None:
            raise NotFoundError("Form not found", {"public_url": ref})
        return form

    async def create_form(
        self,
        session: AsyncSession,
        name: str,
        created_by: int,
        description: Optional[str] = None,
        linked_user_id: Optional[int] = None,
        linked_group_id: Optional[int] = None,
    ) -> Form:
        name = ErrorHandler.validate_required_text(name, "name")
        if linked_user_id is not None and await self.user_repo.get_by_id(session, linked_user_id) is None:
            raise ValidationError("Linked user not found", {"linked_user_id": linked_user_id})
        if linked_group_id is not None and await self.repo.get_group(session, linked_group_id) is None:
            raise ValidationError("Linked group not found", {"linked_group_id": linked_group_id})

        public_url = secrets.token_hex(16)
        while await self.repo.get_by_public_url(session, public_url) is not None:
            public_url = secrets.token_hex(16)

        form = await self.repo.create(
            session,
            name=name,
            description=description,
            public_url=public_url,
            created_by=created_by,
            linked_user_id=linked_user_id,
            linked_group_id=linked_group_id,
        )
        logger.info("Created form %s (needs_approval=%s)", form.id, form.needs_approval)
        return form


async def run_closed_ticket_sweep(now: Optional[datetime] = None) -> int:
    """Periodic entry point: resolve stale closed tickets in its own session."""
    workflow = TicketWorkflowEngine()
    async with SessionLocal() as session:
        try:
            count = await workflow.resolve_stale_closed(session, now)
            await session.commit()
        except Exception:
            await session.rollback()
            raise
    return count
