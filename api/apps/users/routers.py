"""
User routers.

Admin account management under /api/admin/users, self-service profile
under /api/user. Entry/exit only.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.apps.auth.services import require_admin, require_supervisor, verify_user
from api.apps.users import services
from api.apps.users.schemas import (
    DepartmentsChange,
    ProfileUpdate,
    Role,
    RoleChange,
    UserAction,
    UserStatus,
)
from api.core.dependencies import get_change_feed
from api.core.permissions import Caller
from api.core.realtime import ChangeFeed
from api.db.session import get_session
from api.utils.responses import success_response

admin_router = APIRouter(prefix="/api/admin/users", tags=["Admin"])
router = APIRouter(prefix="/api", tags=["Users"])


@admin_router.get("")
async def list_users(
    status: Optional[UserStatus] = Query(None),
    role: Optional[Role] = Query(None),
    department_id: Optional[uuid.UUID] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    caller: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    result = await services.list_users(
        session=session,
        caller=caller,
        status=status,
        role=role,
        department_id=department_id,
        search=search,
        page=page,
        per_page=per_page,
    )
    return success_response(message="Users", data=result.model_dump())


@admin_router.post("/{user_id}/{action}")
async def user_action(
    user_id: uuid.UUID,
    action: UserAction,
    caller: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """approve | reject | suspend | reactivate"""
    user = await services.user_action(
        session=session, feed=feed, caller=caller, user_id=user_id, action=action
    )
    if user is None:
        return success_response(message="User rejected successfully")
    return success_response(message=f"User {action} completed successfully", data=user.model_dump())


@admin_router.put("/{user_id}/role")
async def change_role(
    user_id: uuid.UUID,
    data: RoleChange,
    caller: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    user = await services.change_role(session=session, caller=caller, user_id=user_id, role=data.role)
    return success_response(message="Role updated", data=user.model_dump())


@admin_router.put("/{user_id}/departments")
async def set_departments(
    user_id: uuid.UUID,
    data: DepartmentsChange,
    caller: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    user = await services.set_departments(session=session, caller=caller, user_id=user_id, data=data)
    return success_response(message="Departments updated", data=user.model_dump())


@router.get("/users/assignable")
async def assignable_users(
    department_id: Optional[uuid.UUID] = Query(None),
    caller: Caller = Depends(require_supervisor),
    session: AsyncSession = Depends(get_session),
):
    """Candidates for the assignment picker."""
    users = await services.list_assignable_users(
        session=session, caller=caller, department_id=department_id
    )
    return success_response(message="Assignable users", data=[u.model_dump() for u in users])


@router.get("/user/profile")
async def get_profile(
    caller: Caller = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    user = await services.get_profile(session=session, caller=caller)
    return success_response(message="Profile", data=user.model_dump())


@router.put("/user/profile")
async def update_profile(
    data: ProfileUpdate,
    caller: Caller = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    user = await services.update_profile(session=session, caller=caller, data=data)
    return success_response(message="Profile updated", data=user.model_dump())
