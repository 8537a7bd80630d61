"""
Notification ORM model.
"""

import uuid
from typing import Any, Optional
from sqlalchemy import String, Text, Boolean, ForeignKey, Index, JSON
from sqlalchemy.orm import Mapped, mapped_column

from api.db.base_model import BaseModel


class Notification(BaseModel):
    """
    In-app notification for one user.

    Written by the workflow as a side effect; read and deleted only by its
    owner. Delivery beyond this row is someone else's job.
    """

    __tablename__ = "notifications"

    organization_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        Index("idx_notification_user_read", "user_id", "is_read"),
    )
