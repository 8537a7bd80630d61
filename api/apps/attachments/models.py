"""
Attachment ORM model.

Metadata only; the bytes live in the object store under `storage_path`.
"""

import uuid
from sqlalchemy import String, Integer, Enum as SAEnum, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from api.db.base_model import BaseModel

ATTACHMENT_TARGETS = ("ticket", "comment")


class Attachment(BaseModel):
    """
    File attached to a ticket or to one of its comments.

    `related_to`/`related_id` name the owner; `ticket_id` is always the
    enclosing ticket so a ticket delete can sweep everything in one query.
    """

    __tablename__ = "attachments"

    organization_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    ticket_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    related_to: Mapped[str] = mapped_column(
        SAEnum(*ATTACHMENT_TARGETS, name="attachment_target_enum"), nullable=False
    )
    related_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    uploaded_by: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    original_filename: Mapped[str] = mapped_column(String(255), nullable=False)
    storage_path: Mapped[str] = mapped_column(String(1000), nullable=False, unique=True)
    public_url: Mapped[str] = mapped_column(String(2000), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        Index("idx_attachment_owner", "related_to", "related_id"),
    )
