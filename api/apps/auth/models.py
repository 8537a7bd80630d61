"""
Auth ORM models.

User accounts and their department memberships. Role is global per user;
supervisor authority is scoped per department through UserDepartment.
"""

import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import (
    String,
    Boolean,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from api.db.base_model import BaseModel, utcnow

USER_ROLES = ("admin", "supervisor", "user")
USER_STATUSES = ("pending", "approved", "suspended")


class User(BaseModel):
    """
    User account.

    Only `approved` users get past verify_user.
    """

    __tablename__ = "users"

    organization_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    hashed_password: Mapped[str] = mapped_column(String(512), nullable=False)
    role: Mapped[str] = mapped_column(
        SAEnum(*USER_ROLES, name="role_enum"),
        nullable=False,
        default="user",
    )
    status: Mapped[str] = mapped_column(
        SAEnum(*USER_STATUSES, name="user_status_enum"),
        nullable=False,
        default="pending",
        index=True,
    )
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    memberships: Mapped[list["UserDepartment"]] = relationship(
        "UserDepartment",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class UserDepartment(BaseModel):
    """
    Department membership.

    `is_supervisor` grants authority over the department's tickets when the
    user's role is supervisor.
    """

    __tablename__ = "user_departments"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    department_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("departments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    is_supervisor: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_assign_tickets: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    user: Mapped["User"] = relationship("User", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("user_id", "department_id", name="uq_user_department"),
    )
