"""
Dashboard router.

Entry/exit only, no logic here.
"""

import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.apps.auth.services import require_admin, require_supervisor, verify_user
from api.apps.dashboard import services
from api.core.cache import CacheManager
from api.core.dependencies import get_cache
from api.core.permissions import Caller
from api.db.session import get_session
from api.utils.responses import success_response

router = APIRouter(prefix="/api", tags=["Dashboard"])


@router.get("/admin/stats")
async def admin_stats(
    caller: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    cache: CacheManager = Depends(get_cache),
):
    stats = await services.admin_stats(session=session, cache=cache, caller=caller)
    return success_response(message="Statistics", data=stats)


@router.get("/admin/analytics")
async def admin_analytics(
    time_range: Literal["7d", "30d", "90d", "1y"] = Query("30d"),
    department_id: Optional[uuid.UUID] = Query(None),
    caller: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    cache: CacheManager = Depends(get_cache),
):
    result = await services.analytics(
        session=session, cache=cache, caller=caller, time_range=time_range, department_id=department_id
    )
    return success_response(message="Analytics", data=result)


@router.get("/supervisor/dashboard")
async def supervisor_dashboard(
    caller: Caller = Depends(require_supervisor),
    session: AsyncSession = Depends(get_session),
):
    result = await services.supervisor_dashboard(session=session, caller=caller)
    return success_response(message="Supervisor dashboard", data=result)


@router.get("/user/stats")
async def user_stats(
    caller: Caller = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    result = await services.user_stats(session=session, caller=caller)
    return success_response(message="User statistics", data=result)
