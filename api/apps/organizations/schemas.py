"""
Organization Pydantic schemas.

Organization profile, departments, categories and system settings.
"""

import re
import uuid
from datetime import datetime
from typing import Annotated, Any, Dict, Optional
from pydantic import AfterValidator, BaseModel, EmailStr, Field

_HEX_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")


def _check_color(v: str) -> str:
    if not _HEX_COLOR_RE.match(v):
        raise ValueError("Color must be a hex value like #3B82F6")
    return v


HexColor = Annotated[str, AfterValidator(_check_color)]


# ── Organization ──────────────────────────────────────────────────────────────

class OrganizationResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    admin_email: str
    admin_name: str
    phone: Optional[str] = None
    address: Optional[str] = None
    logo_url: Optional[str] = None
    primary_color: str
    secondary_color: str
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class OrganizationUpdate(BaseModel):
    """Partial update; omitted fields are left alone."""
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    admin_email: Optional[EmailStr] = None
    admin_name: Optional[str] = Field(None, min_length=2, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = None
    logo_url: Optional[str] = Field(None, max_length=1000)
    primary_color: Optional[HexColor] = None
    secondary_color: Optional[HexColor] = None


# ── Departments ───────────────────────────────────────────────────────────────

class DepartmentCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    description: Optional[str] = None
    color: HexColor = "#6B7280"


class DepartmentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    description: Optional[str] = None
    color: Optional[HexColor] = None
    is_active: Optional[bool] = None


class DepartmentResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    color: str
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class DepartmentDetail(DepartmentResponse):
    """Admin listing with head counts."""
    member_count: int = 0
    supervisor_count: int = 0
    ticket_count: int = 0
    open_ticket_count: int = 0


# ── Categories ────────────────────────────────────────────────────────────────

class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    description: Optional[str] = None
    color: HexColor = "#6B7280"


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    description: Optional[str] = None
    color: Optional[HexColor] = None
    is_active: Optional[bool] = None


class CategoryResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    color: str
    is_active: bool

    model_config = {"from_attributes": True}


# ── System settings ───────────────────────────────────────────────────────────

class SettingResponse(BaseModel):
    setting_key: str
    setting_value: str
    setting_type: str
    description: Optional[str] = None
    is_public: bool

    model_config = {"from_attributes": True}


class SettingsUpdate(BaseModel):
    """Map of setting_key -> new value. Values are stored as strings."""
    settings: Dict[str, Any] = Field(..., min_length=1)
