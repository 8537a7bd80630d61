"""
Ticket routers.

`router` serves everyone under /api/tickets; `admin_router` serves the admin
panel under /api/admin/tickets. Entry/exit only; permission decisions live
in core.permissions, reached through the services.
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from api.apps.auth.services import require_admin, verify_user
from api.apps.tickets import services
from api.apps.tickets.schemas import (
    AdminTicketAction,
    AssignRequest,
    Priority,
    PriorityChange,
    Scope,
    Status,
    StatusChange,
    TicketCreate,
    TicketUpdate,
    ticket_create_from_form,
)
from api.config.settings import settings
from api.core.dependencies import get_change_feed, get_storage
from api.core.permissions import Caller
from api.core.rate_limit import limiter
from api.core.realtime import ChangeFeed
from api.core.storage import ObjectStorage
from api.db.session import get_session
from api.utils.responses import success_response

router = APIRouter(prefix="/api/tickets", tags=["Tickets"])
admin_router = APIRouter(prefix="/api/admin/tickets", tags=["Admin"])


def _upload_message(base: str, failed: list) -> str:
    if failed:
        return f"{base}; {len(failed)} file(s) failed to upload"
    return base


@router.get("")
async def list_tickets(
    status: Optional[Status] = Query(None),
    priority: Optional[Priority] = Query(None),
    department_id: Optional[uuid.UUID] = Query(None),
    scope: Scope = Query("all"),
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    caller: Caller = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    """Tickets visible to the caller, newest first."""
    result = await services.list_tickets(
        session=session,
        caller=caller,
        status=status,
        priority=priority,
        department_id=department_id,
        scope=scope,
        search=search,
        page=page,
        per_page=per_page,
    )
    return success_response(message="Tickets", data=result.model_dump())


@router.post("", status_code=201)
@limiter.limit(settings.TICKET_CREATE_RATE_LIMIT)
async def create_ticket(
    request: Request,
    data: TicketCreate,
    caller: Caller = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
    feed: ChangeFeed = Depends(get_change_feed),
    storage: ObjectStorage = Depends(get_storage),
):
    result = await services.create_ticket(
        session=session, feed=feed, storage=storage, caller=caller, data=data
    )
    return success_response(status_code=201, message="Ticket created successfully", data=result.model_dump())


@router.post("/create", status_code=201)
@limiter.limit(settings.TICKET_CREATE_RATE_LIMIT)
async def create_ticket_with_files(
    request: Request,
    title: str = Form(...),
    description: str = Form(...),
    department_id: str = Form(...),
    category_id: Optional[str] = Form(None),
    priority: Optional[str] = Form(None),
    visibility: Optional[str] = Form(None),
    due_date: Optional[str] = Form(None),
    files: Optional[List[UploadFile]] = File(None),
    caller: Caller = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
    feed: ChangeFeed = Depends(get_change_feed),
    storage: ObjectStorage = Depends(get_storage),
):
    """Multipart variant of ticket creation. Bad files are reported, not fatal."""
    data = ticket_create_from_form(
        title=title,
        description=description,
        department_id=department_id,
        category_id=category_id,
        priority=priority,
        visibility=visibility,
        due_date=due_date,
    )
    result = await services.create_ticket(
        session=session, feed=feed, storage=storage, caller=caller, data=data, files=files or []
    )
    return success_response(
        status_code=201,
        message=_upload_message("Ticket created successfully", result.failed_uploads),
        data=result.model_dump(),
    )


@router.get("/{ticket_ref}")
async def get_ticket(
    ticket_ref: str,
    caller: Caller = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    """
    Full ticket view by id or ticket number.

    Returns 404 both for missing tickets and for tickets the caller may not see.
    """
    detail = await services.get_ticket_detail(session=session, caller=caller, ticket_ref=ticket_ref)
    return success_response(message="Ticket", data=detail.model_dump())


@router.patch("/{ticket_ref}")
async def update_ticket(
    ticket_ref: str,
    data: TicketUpdate,
    caller: Caller = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
    feed: ChangeFeed = Depends(get_change_feed),
):
    ticket = await services.update_ticket(
        session=session, feed=feed, caller=caller, ticket_ref=ticket_ref, data=data
    )
    return success_response(message="Ticket updated", data=ticket.model_dump())


@router.post("/{ticket_ref}/status")
async def change_status(
    ticket_ref: str,
    data: StatusChange,
    caller: Caller = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
    feed: ChangeFeed = Depends(get_change_feed),
):
    ticket = await services.change_status(
        session=session, feed=feed, caller=caller, ticket_ref=ticket_ref, target=data.status
    )
    return success_response(message="Status updated", data=ticket.model_dump())


@router.post("/{ticket_ref}/assign")
async def assign_ticket(
    ticket_ref: str,
    data: AssignRequest,
    caller: Caller = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
    feed: ChangeFeed = Depends(get_change_feed),
):
    ticket = await services.assign_ticket(
        session=session, feed=feed, caller=caller, ticket_ref=ticket_ref, assignee_id=data.assigned_to
    )
    return success_response(message="Ticket assigned", data=ticket.model_dump())


@router.post("/{ticket_ref}/priority")
async def change_priority(
    ticket_ref: str,
    data: PriorityChange,
    caller: Caller = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
    feed: ChangeFeed = Depends(get_change_feed),
):
    ticket = await services.change_priority(
        session=session, feed=feed, caller=caller, ticket_ref=ticket_ref, priority=data.priority
    )
    return success_response(message="Priority updated", data=ticket.model_dump())


@router.post("/{ticket_ref}/visibility")
async def toggle_visibility(
    ticket_ref: str,
    caller: Caller = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
    feed: ChangeFeed = Depends(get_change_feed),
):
    ticket = await services.toggle_visibility(
        session=session, feed=feed, caller=caller, ticket_ref=ticket_ref
    )
    return success_response(message="Visibility updated", data=ticket.model_dump())


@router.post("/{ticket_ref}/attachments", status_code=201)
async def add_attachments(
    ticket_ref: str,
    files: List[UploadFile] = File(...),
    caller: Caller = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
    feed: ChangeFeed = Depends(get_change_feed),
    storage: ObjectStorage = Depends(get_storage),
):
    result = await services.add_ticket_attachments(
        session=session, feed=feed, storage=storage, caller=caller, ticket_ref=ticket_ref, files=files
    )
    return success_response(
        status_code=201,
        message=_upload_message("Files attached", result.failed_uploads),
        data=result.model_dump(),
    )


# ── Admin panel ───────────────────────────────────────────────────────────────

@admin_router.get("")
async def admin_list_tickets(
    status: Optional[Status] = Query(None),
    priority: Optional[Priority] = Query(None),
    department_id: Optional[uuid.UUID] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    caller: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    """Every ticket of the organization."""
    result = await services.list_tickets(
        session=session,
        caller=caller,
        status=status,
        priority=priority,
        department_id=department_id,
        search=search,
        page=page,
        per_page=per_page,
    )
    return success_response(message="Tickets", data=result.model_dump())


@admin_router.post("/{ticket_ref}/{action}")
async def admin_ticket_action(
    ticket_ref: str,
    action: str,
    data: Optional[AdminTicketAction] = None,
    caller: Caller = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    feed: ChangeFeed = Depends(get_change_feed),
    storage: ObjectStorage = Depends(get_storage),
):
    """assign | change-priority | toggle-visibility | change-status | delete"""
    data = data or AdminTicketAction()
    ticket = await services.run_admin_action(
        session=session,
        feed=feed,
        storage=storage,
        caller=caller,
        ticket_ref=ticket_ref,
        action=action,
        assigned_to=data.assigned_to,
        priority=data.priority,
        status=data.status,
    )
    if ticket is None:
        return success_response(message="Ticket deleted successfully")
    return success_response(message=f"Ticket {action} completed successfully", data=ticket.model_dump())
