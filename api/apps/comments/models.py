"""
Comment ORM model.
"""

import uuid
from sqlalchemy import Text, Boolean, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from api.db.base_model import BaseModel


class TicketComment(BaseModel):
    """
    A message on a ticket thread.

    is_internal: admin/supervisor-only channel, never shown to plain users.
    is_system_message: written by the workflow ("Ticket assigned to ...").
    """

    __tablename__ = "ticket_comments"

    ticket_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_internal: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_system_message: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        Index("idx_comment_ticket_created", "ticket_id", "created_at"),
    )
