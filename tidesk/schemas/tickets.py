"""
Pydantic schemas for ticket endpoints.
Every ticket payload carries the internal id, the daily number and the
composite identifier shown to people.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, constr

from tidesk.core.ticket_workflow import TicketPriority, TicketStatus


class CreateTicketRequest(BaseModel):
    title: constr(min_length=1, max_length=255) = Field(  # type: ignore[valid-type]
        ..., description="Ticket title", examples=["Impressora não imprime"]
    )
    description: constr(min_length=1) = Field(  # type: ignore[valid-type]
        ..., description="Problem description"
    )
    priority: TicketPriority = Field(TicketPriority.MEDIUM, description="low | medium | high | urgent")


class UpdateTicketRequest(BaseModel):
    """Partial update. ``status`` and ``assigned_to`` are ignored for plain users."""

    title: Optional[constr(min_length=1, max_length=255)] = None  # type: ignore[valid-type]
    description: Optional[str] = None
    priority: Optional[TicketPriority] = None
    status: Optional[TicketStatus] = None
    assigned_to: Optional[int] = Field(None, gt=0)


class ScheduleTicketRequest(BaseModel):
    scheduled_at: datetime = Field(
        ..., description="Scheduled time; naive values are read in the civil timezone"
    )


class TicketResponse(BaseModel):
    id: int = Field(..., description="Internal ticket id", examples=[42])
    ticket_number: Optional[int] = Field(None, description="Daily ticket number", examples=[3])
    ticket_id: Optional[str] = Field(None, description="Composite identifier YYYYMMDDNNN", examples=["20260122003"])
    title: str
    description: str
    status: str
    priority: str
    user_id: Optional[int] = None
    assigned_to: Optional[int] = None
    assigned_at: Optional[datetime] = None
    form_id: Optional[int] = None
    needs_approval: bool = False
    scheduled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class TicketListResponse(BaseModel):
    items: List[TicketResponse]
    total: int


class SweepResponse(BaseModel):
    resolved: int


class MessageResponse(BaseModel):
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
