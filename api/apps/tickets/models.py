"""
Ticket ORM models.

Ticket, its append-only activity log and its watchers.
"""

import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import (
    String,
    Text,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from api.db.base_model import BaseModel

TICKET_PRIORITIES = ("low", "medium", "high", "urgent")
TICKET_STATUSES = ("open", "reserved", "in_progress", "pending", "resolved", "closed")
TICKET_VISIBILITIES = ("public", "private")


class Ticket(BaseModel):
    """
    A complaint raised by a user against one department.

    resolved_at/closed_at are owned by the workflow module; nothing else
    writes them.
    """

    __tablename__ = "tickets"

    organization_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    department_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("departments.id"), nullable=False, index=True
    )
    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("ticket_categories.id", ondelete="SET NULL"), nullable=True
    )
    ticket_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[str] = mapped_column(
        SAEnum(*TICKET_PRIORITIES, name="ticket_priority_enum"),
        nullable=False,
        default="medium",
        index=True,
    )
    status: Mapped[str] = mapped_column(
        SAEnum(*TICKET_STATUSES, name="ticket_status_enum"),
        nullable=False,
        default="open",
        index=True,
    )
    visibility: Mapped[str] = mapped_column(
        SAEnum(*TICKET_VISIBILITIES, name="ticket_visibility_enum"),
        nullable=False,
        default="private",
    )
    created_by: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    assigned_to: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("users.id"), nullable=True, index=True
    )
    assigned_by: Mapped[Optional[uuid.UUID]] = mapped_column(ForeignKey("users.id"), nullable=True)
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_ticket_org_status", "organization_id", "status"),
        Index("idx_ticket_org_dept", "organization_id", "department_id"),
    )


class TicketActivity(BaseModel):
    """Audit trail entry. Append-only; removed only with its ticket."""

    __tablename__ = "ticket_activities"

    ticket_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(ForeignKey("users.id"), nullable=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    old_value: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    new_value: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")


class TicketWatcher(BaseModel):
    __tablename__ = "ticket_watchers"

    ticket_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("ticket_id", "user_id", name="uq_ticket_watcher"),
    )
