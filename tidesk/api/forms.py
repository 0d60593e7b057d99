from __future__ import annotations
import logging
from typing import List
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from tidesk.core.authorization import AuthorizationContext, require_permission
from tidesk.core.exceptions import BusinessLogicError, business_exception_to_http
from tidesk.core.permissions import Action, Resource
from tidesk.db.session import get_db
from tidesk.schemas.forms import (
    CreateFormRequest,
    FormResponse,
    FormSubmission,
    FormSubmissionResponse,
    PublicFormResponse,
)
from tidesk.services.ticket import FormService, TicketService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/forms", tags=["forms"])


@router.get("", response_model=List[FormResponse])
async def list_forms(
    session: AsyncSession = Depends(get_db),
    _: AuthorizationContext = Depends(require_permission(Resource.FORMS, Action.VIEW)),
) -> List[FormResponse]:
    forms = await FormService().list_forms(session)
    return [FormResponse.model_validate(f) for f in forms]


@router.post("", response_model=FormResponse, status_code=status.HTTP_201_CREATED)
async def create_form(
    payload: CreateFormRequest,
    session: AsyncSession = Depends(get_db),
    auth: AuthorizationContext = Depends(require_permission(Resource.FORMS, Action.CREATE)),
) -> FormResponse:
    try:
        form = await FormService().create_form(
            session,
            name=payload.name,
            created_by=auth.user_id,
            description=payload.description,
            linked_user_id=payload.linked_user_id,
            linked_group_id=payload.linked_group_id,
        )
        await session.commit()
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    return FormResponse.model_validate(form)


@router.get("/public/{public_url}", response_model=PublicFormResponse)
async def get_public_form(public_url: str, session: AsyncSession = Depends(get_db)) -> PublicFormResponse:
    """Anonymous lookup by public URL, or by numeric id."""
    try:
        form = await FormService().get_public_form(session, public_url)
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    return PublicFormResponse.model_validate(form)


@router.post(
    "/public/{public_url}/submit",
    response_model=FormSubmissionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_public_form(
    public_url: str,
    payload: FormSubmission,
    session: AsyncSession = Depends(get_db),
) -> FormSubmissionResponse:
    """Anonymous submission; opens a ticket, pending approval when the form is routed."""

    svc = TicketService()
    try:
        ticket = await svc.submit_form(session, public_url, payload.data)
        await session.commit()
    except BusinessLogicError as e:
        raise business_exception_to_http(e)
    body = svc.to_payload(ticket)
    return FormSubmissionResponse(
        message="Form submitted",
        id=ticket.id,
        ticket_id=body["ticket_id"],
        ticket_number=ticket.ticket_number,
        status=ticket.status,
        needs_approval=ticket.needs_approval,
        created_at=ticket.created_at,
    )
