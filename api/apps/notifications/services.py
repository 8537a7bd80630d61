"""
Notification business logic.

Writers (ticket and comment workflows) call `create_notification` inside
their own transaction and `announce` after commit. The inbox functions are
owner-only: another user's notification is reported as missing.
"""

import uuid
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from api.apps.notifications.models import Notification
from api.apps.notifications.schemas import NotificationPage, NotificationResponse
from api.core.permissions import Caller
from api.core.realtime import ChangeFeed
from api.utils.exceptions import ResourceNotFoundException
from api.utils.logger import get_logger
from api.utils.metrics import notifications_created

logger = get_logger(__name__)


async def create_notification(
    session: AsyncSession,
    organization_id: uuid.UUID,
    user_id: uuid.UUID,
    type: str,
    title: str,
    message: str,
    data: Optional[Dict[str, Any]] = None,
) -> Notification:
    """Add a notification to the current transaction. Flushes, never commits."""
    notification = await Notification.create(
        db=session,
        commit=False,
        organization_id=organization_id,
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        data=data,
    )
    notifications_created.labels(type=type).inc()
    return notification


async def announce(feed: ChangeFeed, notifications: Iterable[Notification]) -> None:
    """Signal each recipient's inbox. Call after the writing transaction commits."""
    for notification in notifications:
        await feed.notification_created(notification.user_id, notification.id)


# ── Inbox ─────────────────────────────────────────────────────────────────────

async def list_notifications(
    session: AsyncSession,
    caller: Caller,
    unread_only: bool = False,
    page: int = 1,
    per_page: int = 20,
) -> NotificationPage:
    filters: Dict[str, Any] = {"user_id": caller.id}
    if unread_only:
        filters["is_read"] = False

    result = await Notification.paginate(
        session,
        page=page,
        per_page=per_page,
        filters=filters,
        order_by="created_at",
        order_desc=True,
    )
    unread = await Notification.count(session, user_id=caller.id, is_read=False)

    return NotificationPage(
        items=[NotificationResponse.model_validate(n) for n in result["items"]],
        total=result["total"],
        unread=unread,
        page=result["page"],
        per_page=result["per_page"],
        pages=result["pages"],
    )


async def unread_count(session: AsyncSession, caller: Caller) -> int:
    return await Notification.count(session, user_id=caller.id, is_read=False)


async def _get_owned(
    session: AsyncSession, caller: Caller, notification_id: uuid.UUID
) -> Notification:
    notification = await Notification.find_one(session, id=notification_id, user_id=caller.id)
    if not notification:
        raise ResourceNotFoundException(detail="Notification not found.")
    return notification


async def mark_read(
    session: AsyncSession, caller: Caller, notification_id: uuid.UUID
) -> NotificationResponse:
    notification = await _get_owned(session, caller, notification_id)
    if not notification.is_read:
        notification.is_read = True
        await notification.save(session)
    return NotificationResponse.model_validate(notification)


async def mark_all_read(session: AsyncSession, caller: Caller) -> int:
    result = await session.execute(
        update(Notification)
        .where(Notification.user_id == caller.id, Notification.is_read.is_(False))
        .values(is_read=True)
    )
    await session.commit()
    updated = result.rowcount or 0
    logger.debug(f"Marked {updated} notifications read for {caller.id}")
    return updated


async def delete_notification(
    session: AsyncSession, caller: Caller, notification_id: uuid.UUID
) -> None:
    notification = await _get_owned(session, caller, notification_id)
    await notification.delete(session)
