"""
Realtime router (Server-Sent Events).
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.apps.auth.services import verify_user
from api.apps.realtime.services import event_stream
from api.apps.tickets.services import get_viewable_ticket
from api.core.dependencies import get_change_feed
from api.core.permissions import Caller
from api.core.realtime import ChangeFeed, notifications_channel, ticket_channel
from api.db.session import get_session

router = APIRouter(prefix="/api/realtime", tags=["Realtime"])

_SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


@router.get("/notifications")
async def notification_events(
    request: Request,
    caller: Caller = Depends(verify_user),
    feed: ChangeFeed = Depends(get_change_feed),
) -> StreamingResponse:
    """Signals whenever the caller's inbox changes."""
    return StreamingResponse(
        event_stream(feed, request, notifications_channel(caller.id)),
        media_type="text/event-stream",
        headers=_SSE_HEADERS,
    )


@router.get("/tickets/{ticket_ref}")
async def ticket_events(
    ticket_ref: str,
    request: Request,
    caller: Caller = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
    feed: ChangeFeed = Depends(get_change_feed),
) -> StreamingResponse:
    """Signals whenever the ticket, its comments or its activity change."""
    ticket = await get_viewable_ticket(session, caller, ticket_ref)
    return StreamingResponse(
        event_stream(feed, request, ticket_channel(ticket.id)),
        media_type="text/event-stream",
        headers=_SSE_HEADERS,
    )
