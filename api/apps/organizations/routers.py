"""
Organization router.

Tenant profile, departments, categories and system settings.
Entry/exit only, no logic here.
"""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.apps.auth.services import require_admin, verify_user
from api.apps.organizations import services
from api.apps.organizations.schemas import (
    CategoryCreate,
    CategoryUpdate,
    DepartmentCreate,
    DepartmentUpdate,
    OrganizationUpdate,
    SettingsUpdate,
)
from api.core.permissions import Caller
from api.db.session import get_session
from api.utils.responses import success_response

router = APIRouter(prefix="/api", tags=["Organization"])


# ── Organization ──────────────────────────────────────────────────────────────

@router.get("/admin/organization")
async def get_organization(
    caller: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    organization = await services.get_organization(session=session, caller=caller)
    return success_response(message="Organization", data=organization.model_dump())


@router.put("/admin/organization")
async def update_organization(
    data: OrganizationUpdate,
    caller: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    organization = await services.update_organization(session=session, caller=caller, data=data)
    return success_response(message="Organization updated", data=organization.model_dump())


# ── Departments ───────────────────────────────────────────────────────────────

@router.get("/departments")
async def list_departments(
    caller: Caller = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    """Active departments of the caller's organization."""
    departments = await services.list_departments(session=session, caller=caller)
    return success_response(message="Departments", data=[d.model_dump() for d in departments])


@router.get("/admin/departments")
async def admin_list_departments(
    caller: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    """All departments, including inactive ones, with member and ticket counts."""
    departments = await services.list_departments_detailed(session=session, caller=caller)
    return success_response(message="Departments", data=[d.model_dump() for d in departments])


@router.post("/admin/departments", status_code=201)
async def create_department(
    data: DepartmentCreate,
    caller: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    department = await services.create_department(session=session, caller=caller, data=data)
    return success_response(status_code=201, message="Department created", data=department.model_dump())


@router.put("/admin/departments/{department_id}")
async def update_department(
    department_id: uuid.UUID,
    data: DepartmentUpdate,
    caller: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    department = await services.update_department(
        session=session, caller=caller, department_id=department_id, data=data
    )
    return success_response(message="Department updated", data=department.model_dump())


@router.delete("/admin/departments/{department_id}")
async def delete_department(
    department_id: uuid.UUID,
    caller: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    await services.delete_department(session=session, caller=caller, department_id=department_id)
    return success_response(message="Department deleted")


# ── Categories ────────────────────────────────────────────────────────────────

@router.get("/categories")
async def list_categories(
    caller: Caller = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    categories = await services.list_categories(session=session, caller=caller)
    return success_response(message="Categories", data=[c.model_dump() for c in categories])


@router.post("/admin/categories", status_code=201)
async def create_category(
    data: CategoryCreate,
    caller: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    category = await services.create_category(session=session, caller=caller, data=data)
    return success_response(status_code=201, message="Category created", data=category.model_dump())


@router.put("/admin/categories/{category_id}")
async def update_category(
    category_id: uuid.UUID,
    data: CategoryUpdate,
    caller: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    category = await services.update_category(
        session=session, caller=caller, category_id=category_id, data=data
    )
    return success_response(message="Category updated", data=category.model_dump())


@router.delete("/admin/categories/{category_id}")
async def delete_category(
    category_id: uuid.UUID,
    caller: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    await services.delete_category(session=session, caller=caller, category_id=category_id)
    return success_response(message="Category deleted")


# ── System settings ───────────────────────────────────────────────────────────

@router.get("/admin/settings")
async def list_settings(
    caller: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    rows = await services.list_settings(session=session, caller=caller)
    return success_response(message="Settings", data=[r.model_dump() for r in rows])


@router.put("/admin/settings")
async def update_settings(
    data: SettingsUpdate,
    caller: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    rows = await services.update_settings(session=session, caller=caller, data=data)
    return success_response(message="Settings updated", data=[r.model_dump() for r in rows])


@router.post("/admin/settings/reset")
async def reset_settings(
    caller: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    rows = await services.reset_settings(session=session, caller=caller)
    return success_response(
        message="Settings reset to defaults successfully",
        data=[r.model_dump() for r in rows],
    )


@router.get("/settings/public")
async def public_settings(
    organization_slug: str = Query(..., min_length=1),
    session: AsyncSession = Depends(get_session),
):
    """Public settings and branding; no authentication."""
    payload = await services.public_settings(session=session, organization_slug=organization_slug)
    return success_response(message="Public settings", data=payload)
