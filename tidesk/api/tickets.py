from __future__ import annotations
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from tidesk.core.authorization import AuthorizationContext, require_any_permission, require_permission
from tidesk.core.exceptions import BusinessLogicError, business_exception_to_http
from tidesk.core.permissions import Action, Resource
from tidesk.db.session import get_db
from tidesk.schemas.tickets import (
    CreateTicketRequest,
    MessageResponse,
    ScheduleTicketRequest,
    SweepResponse,
    TicketListResponse,
    TicketResponse,
    UpdateTicketRequest,
)
from tidesk.services.ticket import TicketService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/tickets", tags=["tickets"])

can_schedule = require_any_permission(
    (Resource.AGENDA, Action.EDIT),
    (Resource.TICKETS, Action.EDIT),
)


def _response(svc: TicketService, ticket) -> TicketResponse:
    return TicketResponse(**svc.to_payload(ticket))


@router.post("/maintenance/resolve-closed", response_model=SweepResponse)
async def resolve_closed_tickets(
    session: AsyncSession = Depends(get_db),
    auth: AuthorizationContext = Depends(require_permission(Resource.CONFIG, Action.EDIT)),
) -> SweepResponse:
    """Run the closed -> resolved sweep now."""

    try:
        count = await TicketService().workflow.resolve_stale_closed(session)
        await session.commit()
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    logger.info("Manual closed ticket sweep by user %s resolved %d", auth.user_id, count)
    return SweepResponse(resolved=count)


@router.get("", response_model=TicketListResponse)
async def list_tickets(
    session: AsyncSession = Depends(get_db),
    auth: AuthorizationContext = Depends(require_permission(Resource.TICKETS, Action.VIEW)),
) -> TicketListResponse:
    """Newest first. Plain users only see the tickets they opened."""

    svc = TicketService()
    try:
        tickets = await svc.list_tickets(session, auth.principal)
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    items = [_response(svc, t) for t in tickets]
    return TicketListResponse(items=items, total=len(items))


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    payload: CreateTicketRequest,
    session: AsyncSession = Depends(get_db),
    auth: AuthorizationContext = Depends(require_permission(Resource.TICKETS, Action.CREATE)),
) -> TicketResponse:
    svc = TicketService()
    try:
        ticket = await svc.create_ticket(
            session,
            title=payload.title,
            description=payload.description,
            priority=payload.priority.value,
            user_id=auth.user_id,
        )
        await session.commit()
        return _response(svc, ticket)
    except BusinessLogicError as e:
        logger.warning("Business error creating ticket: %s", e)
        raise business_exception_to_http(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Unexpected error in create_ticket: %s", e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create ticket")


@router.get("/{ref}", response_model=TicketResponse)
async def get_ticket(
    ref: str,
    session: AsyncSession = Depends(get_db),
    auth: AuthorizationContext = Depends(require_permission(Resource.TICKETS, Action.VIEW)),
) -> TicketResponse:
    """``ref`` is a composite identifier (``20260122003``) or a raw id."""

    svc = TicketService()
    try:
        ticket = await svc.get_ticket(session, ref, auth.principal)
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    return _response(svc, ticket)


@router.put("/{ref}", response_model=TicketResponse)
async def update_ticket(
    ref: str,
    payload: UpdateTicketRequest,
    session: AsyncSession = Depends(get_db),
    auth: AuthorizationContext = Depends(require_permission(Resource.TICKETS, Action.EDIT)),
) -> TicketResponse:
    svc = TicketService()
    try:
        ticket = await svc.update_ticket(session, ref, auth.principal, payload.model_dump(exclude_none=True))
        await session.commit()
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    return _response(svc, ticket)


@router.delete("/{ref}", response_model=MessageResponse)
async def delete_ticket(
    ref: str,
    session: AsyncSession = Depends(get_db),
    auth: AuthorizationContext = Depends(require_permission(Resource.TICKETS, Action.DELETE)),
) -> MessageResponse:
    try:
        ticket_id = await TicketService().delete_ticket(session, ref)
        await session.commit()
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    return MessageResponse(message="Ticket deleted", details={"id": ticket_id})


@router.post("/{ref}/approve", response_model=TicketResponse)
async def approve_ticket(
    ref: str,
    session: AsyncSession = Depends(get_db),
    auth: AuthorizationContext = Depends(require_permission(Resource.APPROVE, Action.APPROVE)),
) -> TicketResponse:
    svc = TicketService()
    try:
        ticket = await svc.approve(session, ref)
        await session.commit()
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    logger.info("User %s approved ticket %s", auth.user_id, ticket.id)
    return _response(svc, ticket)


@router.post("/{ref}/reject", response_model=TicketResponse)
async def reject_ticket(
    ref: str,
    session: AsyncSession = Depends(get_db),
    auth: AuthorizationContext = Depends(require_permission(Resource.APPROVE, Action.REJECT)),
) -> TicketResponse:
    svc = TicketService()
    try:
        ticket = await svc.reject(session, ref)
        await session.commit()
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    logger.info("User %s rejected ticket %s", auth.user_id, ticket.id)
    return _response(svc, ticket)


@router.post("/{ref}/schedule", response_model=TicketResponse)
async def schedule_ticket(
    ref: str,
    payload: ScheduleTicketRequest,
    session: AsyncSession = Depends(get_db),
    _: AuthorizationContext = Depends(can_schedule),
) -> TicketResponse:
    svc = TicketService()
    try:
        ticket = await svc.schedule(session, ref, payload.scheduled_at)
        await session.commit()
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    return _response(svc, ticket)


@router.delete("/{ref}/schedule", response_model=TicketResponse)
async def unschedule_ticket(
    ref: str,
    session: AsyncSession = Depends(get_db),
    _: AuthorizationContext = Depends(can_schedule),
) -> TicketResponse:
    svc = TicketService()
    try:
        ticket = await svc.unschedule(session, ref)
        await session.commit()
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    return _response(svc, ticket)
