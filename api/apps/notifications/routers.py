"""
Notification inbox router.

Entry/exit only, no logic here.
"""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.apps.auth.services import verify_user
from api.apps.notifications import services
from api.core.permissions import Caller
from api.db.session import get_session
from api.utils.responses import success_response

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


@router.get("")
async def list_notifications(
    unread_only: bool = Query(False),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    caller: Caller = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    result = await services.list_notifications(
        session=session, caller=caller, unread_only=unread_only, page=page, per_page=per_page
    )
    return success_response(message="Notifications", data=result.model_dump())


@router.get("/unread-count")
async def unread_count(
    caller: Caller = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    count = await services.unread_count(session=session, caller=caller)
    return success_response(message="Unread notifications", data={"unread": count})


@router.post("/read-all")
async def mark_all_read(
    caller: Caller = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    updated = await services.mark_all_read(session=session, caller=caller)
    return success_response(message="All notifications marked as read", data={"updated": updated})


@router.post("/{notification_id}/read")
async def mark_read(
    notification_id: uuid.UUID,
    caller: Caller = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    notification = await services.mark_read(
        session=session, caller=caller, notification_id=notification_id
    )
    return success_response(message="Notification marked as read", data=notification.model_dump())


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: uuid.UUID,
    caller: Caller = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    await services.delete_notification(
        session=session, caller=caller, notification_id=notification_id
    )
    return success_response(message="Notification deleted")
