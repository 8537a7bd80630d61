"""
Ticket business logic.

Every operation follows the same shape:
1. Load the ticket inside the caller's organization
2. Ask core.permissions whether the caller may view / mutate it
3. Apply the change (workflow.py for status)
4. Write the activity entry and notifications in the same transaction
5. Commit, then publish the realtime signal

A ticket the caller may not view raises TicketNotFoundException, identical to
a missing one. A visible ticket the caller may not change raises
PermissionDeniedException.
"""

import uuid
from typing import List, Optional, Sequence

from fastapi import UploadFile
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from api.apps.attachments.models import Attachment
from api.apps.attachments.schemas import AttachmentResponse
from api.apps.attachments.services import hidden_comment_ids, remove_objects, store_uploads
from api.apps.auth.models import User, UserDepartment
from api.apps.comments.models import TicketComment
from api.apps.comments.schemas import CommentResponse
from api.apps.notifications.models import Notification
from api.apps.notifications.services import announce, create_notification
from api.apps.organizations.models import Category, Department
from api.apps.tickets import workflow
from api.apps.tickets.models import Ticket, TicketActivity, TicketWatcher
from api.apps.tickets.schemas import (
    ActivityResponse,
    TicketCreate,
    TicketCreated,
    TicketDetail,
    TicketPage,
    TicketPermissions,
    TicketResponse,
    TicketUpdate,
)
from api.core.permissions import (
    Caller,
    can_delete,
    can_edit_content,
    can_mutate,
    can_see_internal_comments,
    can_view,
    visible_comments,
    visible_tickets_clause,
)
from api.core.realtime import ChangeFeed
from api.core.storage import ObjectStorage
from api.db.base_model import utcnow
from api.utils.exceptions import (
    InvalidFieldException,
    PermissionDeniedException,
    TicketNotFoundException,
)
from api.utils.logger import get_logger
from api.utils.metrics import ticket_events
from api.utils.security import generate_ticket_number

logger = get_logger(__name__)

MAX_TICKET_NUMBER_ATTEMPTS = 5


def escape_like(term: str) -> str:
    """Make `%` and `_` literal in an ILIKE pattern (escape char `\\`)."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# ── Loading ───────────────────────────────────────────────────────────────────

async def _find_ticket(
    session: AsyncSession, organization_id: uuid.UUID, ticket_ref: str
) -> Optional[Ticket]:
    """Look a ticket up by UUID or by its TKT- number, inside one organization."""
    try:
        ticket_id = uuid.UUID(str(ticket_ref))
    except ValueError:
        return await Ticket.find_one(
            session, organization_id=organization_id, ticket_number=str(ticket_ref).upper()
        )
    return await Ticket.get_in_org(session, ticket_id, organization_id)


async def get_viewable_ticket(session: AsyncSession, caller: Caller, ticket_ref) -> Ticket:
    ticket = await _find_ticket(session, caller.organization_id, ticket_ref)
    if not ticket or not can_view(caller, ticket):
        raise TicketNotFoundException()
    return ticket


async def get_mutable_ticket(session: AsyncSession, caller: Caller, ticket_ref) -> Ticket:
    ticket = await get_viewable_ticket(session, caller, ticket_ref)
    if not can_mutate(caller, ticket):
        logger.warning(f"Mutation of {ticket.ticket_number} denied for {caller.id}")
        raise PermissionDeniedException()
    return ticket


# ── Side effects ──────────────────────────────────────────────────────────────

async def log_activity(
    session: AsyncSession,
    ticket: Ticket,
    caller: Caller,
    action: str,
    description: str,
    old_value: Optional[str] = None,
    new_value: Optional[str] = None,
) -> TicketActivity:
    activity = await TicketActivity.create(
        db=session,
        commit=False,
        ticket_id=ticket.id,
        organization_id=ticket.organization_id,
        user_id=caller.id,
        action=action,
        old_value=old_value,
        new_value=new_value,
        description=description,
    )
    ticket_events.labels(action=action).inc()
    return activity


async def _notify(
    session: AsyncSession,
    ticket: Ticket,
    user_id: uuid.UUID,
    type: str,
    title: str,
    message: str,
) -> Notification:
    return await create_notification(
        session,
        organization_id=ticket.organization_id,
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        data={"ticket_id": str(ticket.id), "ticket_number": ticket.ticket_number},
    )


async def _notify_creator(
    session: AsyncSession,
    ticket: Ticket,
    caller: Caller,
    type: str,
    title: str,
    message: str,
) -> List[Notification]:
    """Tell the creator about a change they did not make themselves."""
    if ticket.created_by == caller.id:
        return []
    return [await _notify(session, ticket, ticket.created_by, type, title, message)]


async def _watch(session: AsyncSession, ticket: Ticket, user_id: uuid.UUID) -> None:
    if not await TicketWatcher.exists(session, ticket_id=ticket.id, user_id=user_id):
        await TicketWatcher.create(db=session, commit=False, ticket_id=ticket.id, user_id=user_id)


async def _department_supervisor_ids(
    session: AsyncSession, organization_id: uuid.UUID, department_id: uuid.UUID
) -> List[uuid.UUID]:
    result = await session.execute(
        select(User.id)
        .join(UserDepartment, UserDepartment.user_id == User.id)
        .where(
            User.organization_id == organization_id,
            User.role == "supervisor",
            User.status == "approved",
            UserDepartment.department_id == department_id,
            UserDepartment.is_supervisor.is_(True),
        )
    )
    return list(result.scalars().all())


async def _transition(
    session: AsyncSession, ticket: Ticket, caller: Caller, target: str
) -> List[Notification]:
    """Validate and apply one status change with its activity and notification."""
    workflow.check_transition(caller, ticket.status, target)
    previous = workflow.apply_status(ticket, target)
    ticket.updated_at = utcnow()

    await log_activity(
        session,
        ticket,
        caller,
        action="status_changed",
        description=f"Status changed from {previous} to {target}",
        old_value=previous,
        new_value=target,
    )
    return await _notify_creator(
        session,
        ticket,
        caller,
        type="status_changed",
        title=f"Ticket {ticket.ticket_number} is now {target.replace('_', ' ')}",
        message=f"Status changed from {previous} to {target}.",
    )


async def _finish(
    session: AsyncSession,
    feed: ChangeFeed,
    ticket: Ticket,
    event: str,
    notifications: Sequence[Notification] = (),
) -> TicketResponse:
    """Commit the change, then announce it."""
    await session.commit()
    await feed.ticket_changed(ticket.organization_id, ticket.id, event)
    await announce(feed, notifications)
    return TicketResponse.model_validate(ticket)


# ── Create ────────────────────────────────────────────────────────────────────

async def _unique_ticket_number(session: AsyncSession) -> str:
    for _ in range(MAX_TICKET_NUMBER_ATTEMPTS):
        number = generate_ticket_number()
        if not await Ticket.exists(session, ticket_number=number):
            return number
    raise RuntimeError("Could not allocate a unique ticket number")


async def _validate_refs(
    session: AsyncSession,
    caller: Caller,
    department_id: Optional[uuid.UUID] = None,
    category_id: Optional[uuid.UUID] = None,
) -> None:
    if department_id is not None:
        department = await Department.get_in_org(session, department_id, caller.organization_id)
        if not department or not department.is_active:
            raise InvalidFieldException("department_id", "Unknown department.")
    if category_id is not None:
        category = await Category.get_in_org(session, category_id, caller.organization_id)
        if not category or not category.is_active:
            raise InvalidFieldException("category_id", "Unknown category.")


async def create_ticket(
    session: AsyncSession,
    feed: ChangeFeed,
    storage: ObjectStorage,
    caller: Caller,
    data: TicketCreate,
    files: Sequence[UploadFile] = (),
) -> TicketCreated:
    """
    Open a ticket in one of the organization's departments.

    The creator watches it from the start and the department's supervisors
    are notified. Files are stored after the ticket commits; a failed file
    is reported, never fatal.
    """
    await _validate_refs(session, caller, data.department_id, data.category_id)

    ticket = await Ticket.create(
        db=session,
        commit=False,
        organization_id=caller.organization_id,
        department_id=data.department_id,
        category_id=data.category_id,
        ticket_number=await _unique_ticket_number(session),
        title=data.title,
        description=data.description,
        priority=data.priority,
        status="open",
        visibility=data.visibility,
        created_by=caller.id,
        due_date=data.due_date,
    )
    await TicketComment.create(
        db=session,
        commit=False,
        ticket_id=ticket.id,
        organization_id=ticket.organization_id,
        user_id=caller.id,
        content=f"Ticket created with priority: {ticket.priority}",
        is_system_message=True,
    )
    await _watch(session, ticket, caller.id)
    await log_activity(session, ticket, caller, action="created", description="Ticket created")

    notifications = []
    for supervisor_id in await _department_supervisor_ids(
        session, ticket.organization_id, ticket.department_id
    ):
        if supervisor_id == caller.id:
            continue
        notifications.append(
            await _notify(
                session,
                ticket,
                supervisor_id,
                type="ticket_created",
                title=f"New ticket {ticket.ticket_number}",
                message=ticket.title,
            )
        )

    response = await _finish(session, feed, ticket, "created", notifications)
    logger.info(f"Ticket {ticket.ticket_number} created by {caller.id}")

    attachments, failed = [], []
    if files:
        attachments, failed = await store_uploads(
            session, storage, caller, ticket, files, related_to="ticket", related_id=ticket.id
        )
        if attachments:
            await feed.ticket_changed(
                ticket.organization_id, ticket.id, "created", resource="attachment"
            )

    return TicketCreated(ticket=response, attachments=attachments, failed_uploads=failed)


# ── Read ──────────────────────────────────────────────────────────────────────

async def list_tickets(
    session: AsyncSession,
    caller: Caller,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    department_id: Optional[uuid.UUID] = None,
    scope: str = "all",
    search: Optional[str] = None,
    page: int = 1,
    per_page: int = 20,
) -> TicketPage:
    """Tickets the caller may view, newest first. Filters only narrow the set."""
    where = [visible_tickets_clause(caller, Ticket)]

    if scope == "mine":
        where.append(Ticket.created_by == caller.id)
    elif scope == "assigned":
        where.append(Ticket.assigned_to == caller.id)
    elif scope == "department":
        where.append(Ticket.department_id.in_(list(caller.department_ids)))

    if search:
        pattern = f"%{escape_like(search.strip())}%"
        where.append(
            or_(
                Ticket.title.ilike(pattern, escape="\\"),
                Ticket.ticket_number.ilike(pattern, escape="\\"),
            )
        )

    filters = {}
    if status:
        filters["status"] = status
    if priority:
        filters["priority"] = priority
    if department_id:
        filters["department_id"] = department_id

    result = await Ticket.paginate(
        session,
        page=page,
        per_page=per_page,
        filters=filters,
        where=where,
        order_by="created_at",
        order_desc=True,
    )
    return TicketPage(
        items=[TicketResponse.model_validate(t) for t in result["items"]],
        total=result["total"],
        page=result["page"],
        per_page=result["per_page"],
        pages=result["pages"],
        has_next=result["has_next"],
        has_prev=result["has_prev"],
    )


async def get_ticket_detail(session: AsyncSession, caller: Caller, ticket_ref) -> TicketDetail:
    ticket = await get_viewable_ticket(session, caller, ticket_ref)

    children = {"ticket_id": ticket.id}
    comments = await TicketComment.find_all(session, filters=children)
    activities = await TicketActivity.find_all(session, filters=children, order_desc=True)
    attachments = await Attachment.find_all(session, filters=children)
    watchers = await TicketWatcher.find_all(session, filters=children)

    hidden = await hidden_comment_ids(session, caller, ticket)
    shown_attachments = [
        a for a in attachments if not (a.related_to == "comment" and a.related_id in hidden)
    ]

    return TicketDetail(
        ticket=TicketResponse.model_validate(ticket),
        comments=[CommentResponse.model_validate(c) for c in visible_comments(caller, ticket, comments)],
        activities=[ActivityResponse.model_validate(a) for a in activities],
        attachments=[AttachmentResponse.model_validate(a) for a in shown_attachments],
        watchers=[w.user_id for w in watchers],
        permissions=TicketPermissions(
            can_mutate=can_mutate(caller, ticket),
            can_edit_content=can_edit_content(caller, ticket),
            can_delete=can_delete(caller, ticket),
            can_see_internal=can_see_internal_comments(caller, ticket),
        ),
    )


# ── Content edits ─────────────────────────────────────────────────────────────

async def update_ticket(
    session: AsyncSession,
    feed: ChangeFeed,
    caller: Caller,
    ticket_ref,
    data: TicketUpdate,
) -> TicketResponse:
    """Title, description, category and due date; creators only while open."""
    ticket = await get_viewable_ticket(session, caller, ticket_ref)
    if not can_edit_content(caller, ticket):
        logger.warning(f"Content edit of {ticket.ticket_number} denied for {caller.id}")
        raise PermissionDeniedException(detail="This ticket can no longer be edited.")

    changes = data.model_dump(exclude_unset=True)
    if not changes:
        raise InvalidFieldException("body", "No changes supplied.")
    for field in ("title", "description"):
        if field in changes and changes[field] is None:
            raise InvalidFieldException(field, f"{field.capitalize()} cannot be empty.")
    if changes.get("category_id") is not None:
        await _validate_refs(session, caller, category_id=changes["category_id"])

    for field, value in changes.items():
        setattr(ticket, field, value)
    ticket.updated_at = utcnow()

    await log_activity(
        session,
        ticket,
        caller,
        action="updated",
        description=f"Ticket updated: {', '.join(sorted(changes))}",
    )
    return await _finish(session, feed, ticket, "updated")


async def add_ticket_attachments(
    session: AsyncSession,
    feed: ChangeFeed,
    storage: ObjectStorage,
    caller: Caller,
    ticket_ref,
    files: Sequence[UploadFile],
) -> TicketCreated:
    ticket = await get_viewable_ticket(session, caller, ticket_ref)
    if not can_edit_content(caller, ticket):
        raise PermissionDeniedException(detail="This ticket can no longer be edited.")
    if not files:
        raise InvalidFieldException("files", "No files supplied.")

    attachments, failed = await store_uploads(
        session, storage, caller, ticket, files, related_to="ticket", related_id=ticket.id
    )
    if attachments:
        await log_activity(
            session,
            ticket,
            caller,
            action="attachment_added",
            description=f"{len(attachments)} file(s) attached",
        )
        await session.commit()
        await feed.ticket_changed(ticket.organization_id, ticket.id, "created", resource="attachment")

    return TicketCreated(
        ticket=TicketResponse.model_validate(ticket), attachments=attachments, failed_uploads=failed
    )


# ── Workflow ──────────────────────────────────────────────────────────────────

async def change_status(
    session: AsyncSession, feed: ChangeFeed, caller: Caller, ticket_ref, target: str
) -> TicketResponse:
    ticket = await get_mutable_ticket(session, caller, ticket_ref)
    notifications = await _transition(session, ticket, caller, target)
    logger.info(f"Ticket {ticket.ticket_number} -> {target} by {caller.id}")
    return await _finish(session, feed, ticket, "status_changed", notifications)


async def assign_ticket(
    session: AsyncSession,
    feed: ChangeFeed,
    caller: Caller,
    ticket_ref,
    assignee_id: uuid.UUID,
) -> TicketResponse:
    """
    Assign to an approved user of the same organization.

    An open ticket moves to in_progress as part of the same change.
    """
    ticket = await get_mutable_ticket(session, caller, ticket_ref)

    assignee = await User.get_in_org(session, assignee_id, caller.organization_id)
    if not assignee or assignee.status != "approved":
        raise InvalidFieldException("assigned_to", "Invalid assignee.")

    previous = ticket.assigned_to
    ticket.assigned_to = assignee.id
    ticket.assigned_by = caller.id
    ticket.updated_at = utcnow()

    await log_activity(
        session,
        ticket,
        caller,
        action="assigned",
        description=f"Ticket assigned to {assignee.full_name}",
        old_value=str(previous) if previous else None,
        new_value=str(assignee.id),
    )
    await _watch(session, ticket, assignee.id)

    notifications = await _notify_creator(
        session,
        ticket,
        caller,
        type="ticket_assigned",
        title=f"Ticket {ticket.ticket_number} was assigned",
        message=f"Your ticket was assigned to {assignee.full_name}.",
    )
    if assignee.id != caller.id:
        notifications.append(
            await _notify(
                session,
                ticket,
                assignee.id,
                type="ticket_assigned",
                title=f"Ticket {ticket.ticket_number} assigned to you",
                message=ticket.title,
            )
        )

    target = workflow.status_after_assignment(ticket.status)
    if target != ticket.status:
        notifications += await _transition(session, ticket, caller, target)

    logger.info(f"Ticket {ticket.ticket_number} assigned to {assignee.id} by {caller.id}")
    return await _finish(session, feed, ticket, "assigned", notifications)


async def change_priority(
    session: AsyncSession, feed: ChangeFeed, caller: Caller, ticket_ref, priority: str
) -> TicketResponse:
    ticket = await get_mutable_ticket(session, caller, ticket_ref)
    if ticket.priority == priority:
        raise InvalidFieldException("priority", f"Ticket priority is already {priority}.")

    previous = ticket.priority
    ticket.priority = priority
    ticket.updated_at = utcnow()

    await log_activity(
        session,
        ticket,
        caller,
        action="priority_changed",
        description=f"Priority changed from {previous} to {priority}",
        old_value=previous,
        new_value=priority,
    )
    notifications = await _notify_creator(
        session,
        ticket,
        caller,
        type="priority_changed",
        title=f"Ticket {ticket.ticket_number} priority changed",
        message=f"Priority changed from {previous} to {priority}.",
    )
    return await _finish(session, feed, ticket, "priority_changed", notifications)


async def toggle_visibility(
    session: AsyncSession, feed: ChangeFeed, caller: Caller, ticket_ref
) -> TicketResponse:
    ticket = await get_mutable_ticket(session, caller, ticket_ref)

    previous = ticket.visibility
    ticket.visibility = "private" if previous == "public" else "public"
    ticket.updated_at = utcnow()

    await log_activity(
        session,
        ticket,
        caller,
        action="visibility_changed",
        description=f"Ticket visibility changed to {ticket.visibility}",
        old_value=previous,
        new_value=ticket.visibility,
    )
    notifications = await _notify_creator(
        session,
        ticket,
        caller,
        type="visibility_changed",
        title=f"Ticket {ticket.ticket_number} is now {ticket.visibility}",
        message=f"Visibility changed from {previous} to {ticket.visibility}.",
    )
    return await _finish(session, feed, ticket, "visibility_changed", notifications)


async def delete_ticket(
    session: AsyncSession,
    feed: ChangeFeed,
    storage: ObjectStorage,
    caller: Caller,
    ticket_ref,
) -> None:
    """
    Remove a ticket with its comments, attachments, watchers and activity.

    Rows go in one transaction; stored objects are deleted afterwards and a
    storage failure only leaves an orphaned object behind.
    """
    ticket = await get_viewable_ticket(session, caller, ticket_ref)
    if not can_delete(caller, ticket):
        logger.warning(f"Delete of {ticket.ticket_number} denied for {caller.id}")
        raise PermissionDeniedException(detail="Only an administrator can delete tickets.")

    result = await session.execute(
        select(Attachment.storage_path).where(Attachment.ticket_id == ticket.id)
    )
    keys = list(result.scalars().all())

    for model in (TicketComment, Attachment, TicketWatcher, TicketActivity):
        await model.delete_many(session, where=[model.ticket_id == ticket.id], commit=False)
    await ticket.delete(session)

    ticket_events.labels(action="deleted").inc()
    logger.info(f"Ticket {ticket.ticket_number} deleted by {caller.id}")

    await remove_objects(storage, keys)
    await feed.ticket_changed(ticket.organization_id, ticket.id, "deleted")


async def run_admin_action(
    session: AsyncSession,
    feed: ChangeFeed,
    storage: ObjectStorage,
    caller: Caller,
    ticket_ref,
    action: str,
    assigned_to: Optional[uuid.UUID] = None,
    priority: Optional[str] = None,
    status: Optional[str] = None,
) -> Optional[TicketResponse]:
    """Dispatch one of the admin panel's ticket actions."""
    if action == "assign":
        if assigned_to is None:
            raise InvalidFieldException("assigned_to", "Assignee ID required.")
        return await assign_ticket(session, feed, caller, ticket_ref, assigned_to)
    if action == "change-priority":
        if priority is None:
            raise InvalidFieldException("priority", "Invalid priority.")
        return await change_priority(session, feed, caller, ticket_ref, priority)
    if action == "change-status":
        if status is None:
            raise InvalidFieldException("status", "Invalid status.")
        return await change_status(session, feed, caller, ticket_ref, status)
    if action == "toggle-visibility":
        return await toggle_visibility(session, feed, caller, ticket_ref)
    if action == "delete":
        await delete_ticket(session, feed, storage, caller, ticket_ref)
        return None
    raise InvalidFieldException("action", f"Invalid action '{action}'.")
