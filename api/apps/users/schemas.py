"""
User administration and profile schemas.
"""

import uuid
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, model_validator

from api.apps.auth.schemas import UserResponse

Role = Literal["admin", "supervisor", "user"]
UserStatus = Literal["pending", "approved", "suspended"]
UserAction = Literal["approve", "reject", "suspend", "reactivate"]


class RoleChange(BaseModel):
    role: Role


class MembershipInput(BaseModel):
    department_id: uuid.UUID
    is_supervisor: bool = False
    can_assign_tickets: bool = False


class DepartmentsChange(BaseModel):
    """The complete new set of memberships; anything not listed is removed."""
    memberships: List[MembershipInput] = []

    @model_validator(mode="after")
    def unique_departments(self) -> "DepartmentsChange":
        ids = [m.department_id for m in self.memberships]
        if len(ids) != len(set(ids)):
            raise ValueError("Each department may appear only once")
        return self


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=2, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    avatar_url: Optional[str] = Field(None, max_length=1000)
    current_password: Optional[str] = None
    new_password: Optional[str] = Field(None, min_length=8, max_length=128)

    @model_validator(mode="after")
    def password_pair(self) -> "ProfileUpdate":
        if self.new_password and not self.current_password:
            raise ValueError("current_password is required to set a new password")
        return self


class UserPage(BaseModel):
    items: List[UserResponse]
    total: int
    page: int
    per_page: int
    pages: int
