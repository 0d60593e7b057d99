from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field, constr


class CreateFormRequest(BaseModel):
    """A linked user or group routes submissions through approval."""

    name: constr(min_length=1, max_length=255)  # type: ignore[valid-type]
    description: Optional[str] = None
    linked_user_id: Optional[int] = Field(None, gt=0)
    linked_group_id: Optional[int] = Field(None, gt=0)


class FormResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    public_url: str
    linked_user_id: Optional[int] = None
    linked_group_id: Optional[int] = None
    needs_approval: bool
    created_by: int
    created_at: datetime


class PublicFormResponse(BaseModel):
    """What an anonymous client sees before submitting."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    public_url: str
    needs_approval: bool


class FormSubmission(BaseModel):
    """Field label -> submitted value."""

    data: Dict[str, Any] = Field(default_factory=dict)


class FormSubmissionResponse(BaseModel):
    message: str
    id: int
    ticket_id: str
    ticket_number: int
    status: str
    needs_approval: bool
    created_at: datetime
