"""
Organization business logic.

Tenant profile, departments, categories and system settings. All queries
are scoped by the caller's organization; rows of another tenant behave as
missing.
"""

import uuid
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from api.apps.auth.models import UserDepartment
from api.apps.organizations.models import Category, Department, Organization, SystemSetting
from api.apps.organizations.schemas import (
    CategoryCreate,
    CategoryResponse,
    CategoryUpdate,
    DepartmentCreate,
    DepartmentDetail,
    DepartmentResponse,
    DepartmentUpdate,
    OrganizationResponse,
    OrganizationUpdate,
    SettingResponse,
    SettingsUpdate,
)
from api.apps.tickets.models import Ticket
from api.core.permissions import Caller
from api.utils.exceptions import (
    ConflictException,
    InvalidFieldException,
    ResourceNotFoundException,
)
from api.utils.logger import get_logger

logger = get_logger(__name__)

OPEN_TICKET_STATUSES = ("open", "reserved", "in_progress", "pending")

# (key, value, type, description, is_public)
DEFAULT_SETTINGS = [
    # General
    ("system_name", "Support Ticket System", "string", "Name of the system", True),
    ("system_description", "Internal support ticket management system", "string", "System description", True),
    ("default_language", "en", "string", "Default system language", True),
    ("default_timezone", "UTC", "string", "Default timezone", True),
    # Email
    ("email_notifications_enabled", "true", "boolean", "Enable email notifications", False),
    ("smtp_host", "", "string", "SMTP server host", False),
    ("smtp_port", "587", "number", "SMTP server port", False),
    ("smtp_encryption", "tls", "string", "SMTP encryption method", False),
    ("smtp_username", "", "string", "SMTP username", False),
    ("from_email", "", "string", "From email address", False),
    # Security
    ("session_timeout", "60", "number", "Session timeout in minutes", False),
    ("password_min_length", "8", "number", "Minimum password length", False),
    ("require_password_complexity", "false", "boolean", "Require complex passwords", False),
    ("require_email_verification", "true", "boolean", "Require email verification", False),
    ("auto_approve_users", "false", "boolean", "Auto-approve new users", False),
    # Tickets
    ("default_ticket_priority", "medium", "string", "Default ticket priority", True),
    ("ticket_number_prefix", "TKT", "string", "Ticket number prefix", True),
    ("auto_close_resolved_after", "7", "number", "Auto-close resolved tickets after days", True),
    ("allow_public_ticket_creation", "false", "boolean", "Allow public ticket creation", True),
    ("require_category_selection", "false", "boolean", "Require category selection", True),
    # Notifications
    ("notify_on_ticket_created", "true", "boolean", "Notify on ticket creation", False),
    ("notify_on_ticket_assigned", "true", "boolean", "Notify on ticket assignment", False),
    ("notify_on_status_change", "true", "boolean", "Notify on status change", False),
    ("notify_on_comment_added", "true", "boolean", "Notify on comment added", False),
    ("notification_digest_frequency", "daily", "string", "Notification digest frequency", False),
    # Uploads
    ("max_file_size", "10", "number", "Maximum file size in MB", True),
    ("max_files_per_ticket", "5", "number", "Maximum files per ticket", True),
    ("allowed_file_types", "jpg,jpeg,png,gif,pdf,doc,docx,txt", "string", "Allowed file types", True),
    ("scan_uploaded_files", "false", "boolean", "Scan uploaded files for viruses", False),
]


# ── Organization ──────────────────────────────────────────────────────────────

async def _get_organization(session: AsyncSession, organization_id: uuid.UUID) -> Organization:
    organization = await Organization.get_by_id(session, organization_id)
    if not organization:
        raise ResourceNotFoundException(detail="Organization not found.")
    return organization


async def get_organization(session: AsyncSession, caller: Caller) -> OrganizationResponse:
    organization = await _get_organization(session, caller.organization_id)
    return OrganizationResponse.model_validate(organization)


async def update_organization(
    session: AsyncSession, caller: Caller, data: OrganizationUpdate
) -> OrganizationResponse:
    organization = await _get_organization(session, caller.organization_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(organization, field, value)
    await organization.save(session)

    logger.info(f"Organization {organization.slug} updated by {caller.id}")
    return OrganizationResponse.model_validate(organization)


# ── Departments ───────────────────────────────────────────────────────────────

async def get_department(
    session: AsyncSession, organization_id: uuid.UUID, department_id: uuid.UUID
) -> Department:
    department = await Department.get_in_org(session, department_id, organization_id)
    if not department:
        raise ResourceNotFoundException(detail="Department not found.")
    return department


async def list_departments(
    session: AsyncSession, caller: Caller, include_inactive: bool = False
) -> List[DepartmentResponse]:
    filters = {"organization_id": caller.organization_id}
    if not include_inactive:
        filters["is_active"] = True
    departments = await Department.find_many(session, filters=filters, order_by="name")
    return [DepartmentResponse.model_validate(d) for d in departments]


async def list_departments_detailed(session: AsyncSession, caller: Caller) -> List[DepartmentDetail]:
    """Every department of the tenant with member and ticket counts."""
    departments = await Department.find_many(
        session, filters={"organization_id": caller.organization_id}, order_by="name"
    )
    if not departments:
        return []
    ids = [d.id for d in departments]

    members = await session.execute(
        select(
            UserDepartment.department_id,
            func.count(UserDepartment.id),
            func.count(UserDepartment.id).filter(UserDepartment.is_supervisor.is_(True)),
        )
        .where(UserDepartment.department_id.in_(ids))
        .group_by(UserDepartment.department_id)
    )
    member_counts = {row[0]: (row[1], row[2]) for row in members.all()}

    tickets = await session.execute(
        select(
            Ticket.department_id,
            func.count(Ticket.id),
            func.count(Ticket.id).filter(Ticket.status.in_(OPEN_TICKET_STATUSES)),
        )
        .where(Ticket.organization_id == caller.organization_id)
        .group_by(Ticket.department_id)
    )
    ticket_counts = {row[0]: (row[1], row[2]) for row in tickets.all()}

    result = []
    for department in departments:
        members_total, supervisors = member_counts.get(department.id, (0, 0))
        tickets_total, open_total = ticket_counts.get(department.id, (0, 0))
        detail = DepartmentDetail.model_validate(department)
        detail.member_count = members_total
        detail.supervisor_count = supervisors
        detail.ticket_count = tickets_total
        detail.open_ticket_count = open_total
        result.append(detail)
    return result


async def _ensure_department_name_free(
    session: AsyncSession,
    organization_id: uuid.UUID,
    name: str,
    exclude_id: Optional[uuid.UUID] = None,
) -> None:
    existing = await Department.find_one(session, organization_id=organization_id, name=name)
    if existing and existing.id != exclude_id:
        raise ConflictException(detail="A department with this name already exists.")


async def create_department(
    session: AsyncSession, caller: Caller, data: DepartmentCreate
) -> DepartmentResponse:
    await _ensure_department_name_free(session, caller.organization_id, data.name)
    department = await Department.create(
        db=session,
        organization_id=caller.organization_id,
        name=data.name,
        description=data.description,
        color=data.color,
    )
    logger.info(f"Department {department.name} created in org {caller.organization_id}")
    return DepartmentResponse.model_validate(department)


async def update_department(
    session: AsyncSession, caller: Caller, department_id: uuid.UUID, data: DepartmentUpdate
) -> DepartmentResponse:
    department = await get_department(session, caller.organization_id, department_id)
    changes = data.model_dump(exclude_unset=True)
    if "name" in changes and changes["name"] != department.name:
        await _ensure_department_name_free(
            session, caller.organization_id, changes["name"], exclude_id=department.id
        )
    for field, value in changes.items():
        setattr(department, field, value)
    await department.save(session)
    return DepartmentResponse.model_validate(department)


async def delete_department(session: AsyncSession, caller: Caller, department_id: uuid.UUID) -> None:
    """
    Delete a department that no ticket references.

    Tickets keep their department for life; departments still in use must be
    deactivated instead.
    """
    department = await get_department(session, caller.organization_id, department_id)
    if await Ticket.exists(session, department_id=department.id):
        raise ConflictException(
            detail="Department has tickets. Deactivate it instead of deleting."
        )
    await UserDepartment.delete_many(
        session, where=[UserDepartment.department_id == department.id], commit=False
    )
    await department.delete(session)
    logger.info(f"Department {department.name} deleted by {caller.id}")


# ── Categories ────────────────────────────────────────────────────────────────

async def get_category(
    session: AsyncSession, organization_id: uuid.UUID, category_id: uuid.UUID
) -> Category:
    category = await Category.get_in_org(session, category_id, organization_id)
    if not category:
        raise ResourceNotFoundException(detail="Category not found.")
    return category


async def list_categories(
    session: AsyncSession, caller: Caller, include_inactive: bool = False
) -> List[CategoryResponse]:
    filters = {"organization_id": caller.organization_id}
    if not include_inactive:
        filters["is_active"] = True
    categories = await Category.find_many(session, filters=filters, order_by="name")
    return [CategoryResponse.model_validate(c) for c in categories]


async def create_category(
    session: AsyncSession, caller: Caller, data: CategoryCreate
) -> CategoryResponse:
    if await Category.exists(session, organization_id=caller.organization_id, name=data.name):
        raise ConflictException(detail="A category with this name already exists.")
    category = await Category.create(
        db=session,
        organization_id=caller.organization_id,
        name=data.name,
        description=data.description,
        color=data.color,
    )
    return CategoryResponse.model_validate(category)


async def update_category(
    session: AsyncSession, caller: Caller, category_id: uuid.UUID, data: CategoryUpdate
) -> CategoryResponse:
    category = await get_category(session, caller.organization_id, category_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(category, field, value)
    await category.save(session)
    return CategoryResponse.model_validate(category)


async def delete_category(session: AsyncSession, caller: Caller, category_id: uuid.UUID) -> None:
    """Delete a category; tickets that used it become uncategorized."""
    category = await get_category(session, caller.organization_id, category_id)
    await session.execute(
        update(Ticket).where(Ticket.category_id == category.id).values(category_id=None)
    )
    await category.delete(session)
    logger.info(f"Category {category.name} deleted by {caller.id}")


# ── System settings ───────────────────────────────────────────────────────────

async def seed_default_settings(session: AsyncSession, organization_id: uuid.UUID) -> None:
    """Insert the default settings rows. Flushes; the caller commits."""
    await SystemSetting.create_many(
        session,
        [
            {
                "organization_id": organization_id,
                "setting_key": key,
                "setting_value": value,
                "setting_type": setting_type,
                "description": description,
                "is_public": is_public,
            }
            for key, value, setting_type, description, is_public in DEFAULT_SETTINGS
        ],
        commit=False,
    )


async def list_settings(session: AsyncSession, caller: Caller) -> List[SettingResponse]:
    rows = await SystemSetting.find_many(
        session,
        filters={"organization_id": caller.organization_id},
        order_by="setting_key",
    )
    return [SettingResponse.model_validate(r) for r in rows]


def _coerce_setting(key: str, setting_type: str, value) -> str:
    """Validate a raw value against the setting's type and render it as text."""
    if setting_type == "boolean":
        if isinstance(value, bool):
            return "true" if value else "false"
        if str(value).lower() in ("true", "false"):
            return str(value).lower()
        raise InvalidFieldException(key, f"Setting '{key}' must be true or false.")
    if setting_type == "number":
        if isinstance(value, bool):
            raise InvalidFieldException(key, f"Setting '{key}' must be a number.")
        try:
            float(value)
        except (TypeError, ValueError):
            raise InvalidFieldException(key, f"Setting '{key}' must be a number.")
        return str(value)
    return "" if value is None else str(value)


async def update_settings(
    session: AsyncSession, caller: Caller, data: SettingsUpdate
) -> List[SettingResponse]:
    """
    Update several settings at once. All values are validated before any
    row changes; an unknown key rejects the whole request.
    """
    rows = await SystemSetting.find_many(
        session, filters={"organization_id": caller.organization_id}, limit=1000
    )
    by_key = {row.setting_key: row for row in rows}

    coerced = {}
    for key, value in data.settings.items():
        row = by_key.get(key)
        if row is None:
            raise InvalidFieldException(key, f"Unknown setting '{key}'.")
        coerced[key] = _coerce_setting(key, row.setting_type, value)

    for key, value in coerced.items():
        by_key[key].setting_value = value
    await session.commit()

    logger.info(f"{len(coerced)} settings updated in org {caller.organization_id}")
    return await list_settings(session, caller)


async def reset_settings(session: AsyncSession, caller: Caller) -> List[SettingResponse]:
    await SystemSetting.delete_many(
        session, where=[SystemSetting.organization_id == caller.organization_id], commit=False
    )
    await seed_default_settings(session, caller.organization_id)
    await session.commit()

    logger.info(f"Settings reset to defaults in org {caller.organization_id}")
    return await list_settings(session, caller)


async def public_settings(session: AsyncSession, organization_slug: str) -> dict:
    """Branding and public settings for unauthenticated pages."""
    organization = await Organization.find_one(session, slug=organization_slug)
    if not organization or not organization.is_active:
        raise ResourceNotFoundException(detail="Organization not found.")

    rows = await SystemSetting.find_many(
        session,
        filters={"organization_id": organization.id, "is_public": True},
        limit=1000,
    )
    return {
        "organization": {
            "name": organization.name,
            "slug": organization.slug,
            "logo_url": organization.logo_url,
            "primary_color": organization.primary_color,
            "secondary_color": organization.secondary_color,
        },
        "settings": {row.setting_key: row.setting_value for row in rows},
    }
