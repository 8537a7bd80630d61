"""
Auth Pydantic schemas.

Input validation and output serialization for auth routes.
"""

import re
import uuid
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, EmailStr, Field, field_validator

_SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


# ── Request Schemas ───────────────────────────────────────────────────────────

class LoginRequest(BaseModel):
    """Login with email + password."""
    email: EmailStr
    password: str = Field(..., min_length=8)


class RegisterOrganizationRequest(BaseModel):
    """Create a tenant together with its first administrator."""
    organization_name: str = Field(..., min_length=2, max_length=255)
    slug: Optional[str] = Field(None, max_length=255)
    admin_email: EmailStr
    admin_name: str = Field(..., min_length=2, max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    phone: Optional[str] = Field(None, max_length=50)

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not _SLUG_RE.match(v):
            raise ValueError("Slug may contain lowercase letters, digits and single hyphens")
        return v


class RegisterRequest(BaseModel):
    """Join an existing organization. The account starts as pending."""
    organization_slug: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    full_name: str = Field(..., min_length=2, max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    department_id: Optional[uuid.UUID] = None


class RefreshRequest(BaseModel):
    """Refresh access token using refresh token."""
    refresh_token: str


# ── Response Schemas ──────────────────────────────────────────────────────────

class MembershipResponse(BaseModel):
    department_id: uuid.UUID
    is_supervisor: bool
    can_assign_tickets: bool

    model_config = {"from_attributes": True}


class UserResponse(BaseModel):
    """Public user data (no sensitive fields)."""
    id: uuid.UUID
    organization_id: uuid.UUID
    email: str
    full_name: str
    phone: Optional[str] = None
    avatar_url: Optional[str] = None
    role: str
    status: str
    last_login: Optional[datetime] = None
    created_at: datetime
    memberships: List[MembershipResponse] = []

    model_config = {"from_attributes": True}


class TokenPair(BaseModel):
    """Access + refresh token pair."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class LoginResponse(BaseModel):
    """Login response with tokens and user data."""
    user: UserResponse
    tokens: TokenPair


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug or "org"
