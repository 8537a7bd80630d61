"""
Ticket Pydantic schemas.
"""

import uuid
from datetime import datetime
from typing import List, Literal, Optional
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, Field, ValidationError, field_validator

from api.apps.attachments.schemas import AttachmentResponse, FailedUpload
from api.apps.comments.schemas import CommentResponse

Priority = Literal["low", "medium", "high", "urgent"]
Status = Literal["open", "reserved", "in_progress", "pending", "resolved", "closed"]
Visibility = Literal["public", "private"]
Scope = Literal["all", "mine", "assigned", "department"]


# ── Request Schemas ───────────────────────────────────────────────────────────

class TicketCreate(BaseModel):
    title: str = Field(..., min_length=3, max_length=255)
    description: str = Field(..., min_length=1, max_length=20000)
    department_id: uuid.UUID
    category_id: Optional[uuid.UUID] = None
    priority: Priority = "medium"
    visibility: Visibility = "private"
    due_date: Optional[datetime] = None

    @field_validator("title", "description")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Must not be blank")
        return v


class TicketUpdate(BaseModel):
    """Content edits. Status, assignment, priority and visibility have their own routes."""
    title: Optional[str] = Field(None, min_length=3, max_length=255)
    description: Optional[str] = Field(None, min_length=1, max_length=20000)
    category_id: Optional[uuid.UUID] = None
    due_date: Optional[datetime] = None


class StatusChange(BaseModel):
    status: Status


class AssignRequest(BaseModel):
    assigned_to: uuid.UUID


class PriorityChange(BaseModel):
    priority: Priority


class AdminTicketAction(BaseModel):
    """Body of /api/admin/tickets/{id}/{action}; each action reads its own field."""
    assigned_to: Optional[uuid.UUID] = None
    priority: Optional[Priority] = None
    status: Optional[Status] = None


# ── Response Schemas ──────────────────────────────────────────────────────────

class TicketResponse(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    ticket_number: str
    title: str
    description: str
    department_id: uuid.UUID
    category_id: Optional[uuid.UUID] = None
    priority: str
    status: str
    visibility: str
    created_by: uuid.UUID
    assigned_to: Optional[uuid.UUID] = None
    assigned_by: Optional[uuid.UUID] = None
    due_date: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ActivityResponse(BaseModel):
    id: uuid.UUID
    user_id: Optional[uuid.UUID] = None
    action: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    description: str
    created_at: datetime

    model_config = {"from_attributes": True}


class TicketPermissions(BaseModel):
    """What the caller may do with this ticket, for clients to drive controls."""
    can_mutate: bool
    can_edit_content: bool
    can_delete: bool
    can_see_internal: bool


class TicketDetail(BaseModel):
    ticket: TicketResponse
    comments: List[CommentResponse]
    activities: List[ActivityResponse]
    attachments: List[AttachmentResponse]
    watchers: List[uuid.UUID]
    permissions: TicketPermissions


class TicketCreated(BaseModel):
    ticket: TicketResponse
    attachments: List[AttachmentResponse] = []
    failed_uploads: List[FailedUpload] = []


class TicketPage(BaseModel):
    items: List[TicketResponse]
    total: int
    page: int
    per_page: int
    pages: int
    has_next: bool
    has_prev: bool


def ticket_create_from_form(**fields) -> TicketCreate:
    """
    Build a TicketCreate from multipart fields.

    Empty form strings mean "not given". Errors surface as a normal 422.
    """
    cleaned = {k: v for k, v in fields.items() if v not in (None, "")}
    try:
        return TicketCreate(**cleaned)
    except ValidationError as e:
        raise RequestValidationError(e.errors())
