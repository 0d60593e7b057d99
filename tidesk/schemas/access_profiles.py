"""
Pydantic schemas for access profile administration.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, constr


class AccessProfileCreate(BaseModel):
    """Create payload. Permissions are ``"resource:action"`` strings."""

    name: constr(min_length=1, max_length=120)  # type: ignore[valid-type]
    description: Optional[str] = None
    permissions: List[str] = Field(default_factory=list, examples=[["tickets:view", "tickets:create"]])
    pages: List[str] = Field(default_factory=list, examples=[["/tickets", "/tickets/new"]])


class AccessProfileUpdate(BaseModel):
    """Partial update; lists, when given, replace the stored ones."""

    name: Optional[constr(min_length=1, max_length=120)] = None  # type: ignore[valid-type]
    description: Optional[str] = None
    permissions: Optional[List[str]] = None
    pages: Optional[List[str]] = None


class AccessProfileSummary(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    permission_count: int = 0
    user_count: int = 0
    created_at: Optional[datetime] = None


class LinkedUser(BaseModel):
    id: int
    name: str
    email: str
    role: str


class AccessProfileDetail(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    permissions: List[str] = Field(default_factory=list)
    pages: List[str] = Field(default_factory=list)
    users: List[LinkedUser] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LinkUserRequest(BaseModel):
    user_id: int = Field(..., gt=0)


class MembershipResponse(BaseModel):
    message: str
    user_id: int
    role: str


class MyPermissionsResponse(BaseModel):
    """Effective permission keys and allowed page paths of the caller."""

    user_id: int
    permissions: List[str]
    pages: List[str]
