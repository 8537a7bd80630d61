"""
Comment business logic.

Posting a comment notifies the people already in the conversation: the
ticket's creator plus everyone who has written a public comment on it,
minus the author, limited to users who can still see the ticket. Internal
comments notify nobody.
"""

import uuid
from typing import Dict, Iterable, List, Sequence, Set

from fastapi import UploadFile
from sqlalchemy import distinct, select
from sqlalchemy.ext.asyncio import AsyncSession

from api.apps.auth.services import load_callers
from api.apps.attachments.services import store_uploads
from api.apps.comments.models import TicketComment
from api.apps.comments.schemas import CommentCreated, CommentResponse
from api.apps.notifications.services import announce, create_notification
from api.apps.tickets.models import Ticket
from api.apps.tickets.services import get_viewable_ticket, log_activity
from api.core.permissions import Caller, can_post_internal, can_view, visible_comments
from api.core.realtime import ChangeFeed
from api.core.storage import ObjectStorage
from api.db.base_model import utcnow
from api.utils.exceptions import InvalidFieldException
from api.utils.logger import get_logger

logger = get_logger(__name__)

MAX_COMMENT_LENGTH = 10000


def fanout_candidates(
    ticket: Ticket, author_id: uuid.UUID, prior_authors: Iterable[uuid.UUID]
) -> Set[uuid.UUID]:
    """
    {creator} ∪ {authors of earlier public, non-system comments} − {author}.

    `prior_authors` comes from `public_comment_authors`; visibility filtering
    happens separately in `comment_recipients`.
    """
    candidates = {ticket.created_by, *prior_authors}
    candidates.discard(author_id)
    return candidates


def comment_recipients(
    ticket: Ticket,
    author_id: uuid.UUID,
    prior_authors: Iterable[uuid.UUID],
    callers: Dict[uuid.UUID, Caller],
) -> List[uuid.UUID]:
    """Fan-out candidates who can still view the ticket, in a stable order."""
    return sorted(
        (
            user_id
            for user_id in fanout_candidates(ticket, author_id, prior_authors)
            if user_id in callers and can_view(callers[user_id], ticket)
        ),
        key=str,
    )


async def public_comment_authors(session: AsyncSession, ticket_id: uuid.UUID) -> Set[uuid.UUID]:
    """Distinct authors of the ticket's public, non-system comments."""
    result = await session.execute(
        select(distinct(TicketComment.user_id)).where(
            TicketComment.ticket_id == ticket_id,
            TicketComment.is_internal.is_(False),
            TicketComment.is_system_message.is_(False),
        )
    )
    return set(result.scalars().all())


async def list_comments(
    session: AsyncSession, caller: Caller, ticket_ref
) -> List[CommentResponse]:
    ticket = await get_viewable_ticket(session, caller, ticket_ref)
    comments = await TicketComment.find_all(session, filters={"ticket_id": ticket.id})
    return [CommentResponse.model_validate(c) for c in visible_comments(caller, ticket, comments)]


async def add_comment(
    session: AsyncSession,
    feed: ChangeFeed,
    storage: ObjectStorage,
    caller: Caller,
    ticket_ref,
    content: str,
    is_internal: bool = False,
    files: Sequence[UploadFile] = (),
) -> CommentCreated:
    """
    Post a comment on a ticket the caller can view.

    `is_internal` is ignored for callers without internal-channel authority.
    The comment and its notifications commit together; files follow and
    their failures are reported without touching the comment.
    """
    ticket = await get_viewable_ticket(session, caller, ticket_ref)

    content = (content or "").strip()
    if not content:
        raise InvalidFieldException("content", "Comment cannot be empty.")
    if len(content) > MAX_COMMENT_LENGTH:
        raise InvalidFieldException("content", "Comment is too long.")

    internal = bool(is_internal) and can_post_internal(caller, ticket)
    if is_internal and not internal:
        logger.debug(f"Internal flag dropped for {caller.id} on {ticket.ticket_number}")

    prior = await public_comment_authors(session, ticket.id)

    comment = await TicketComment.create(
        db=session,
        commit=False,
        ticket_id=ticket.id,
        organization_id=ticket.organization_id,
        user_id=caller.id,
        content=content,
        is_internal=internal,
    )
    ticket.updated_at = utcnow()
    await log_activity(
        session,
        ticket,
        caller,
        action="commented",
        description="Internal note added" if internal else "Comment added",
    )

    notifications = []
    if not internal:
        candidates = fanout_candidates(ticket, caller.id, prior)
        callers = await load_callers(session, candidates)
        for user_id in comment_recipients(ticket, caller.id, prior, callers):
            notifications.append(
                await create_notification(
                    session,
                    organization_id=ticket.organization_id,
                    user_id=user_id,
                    type="comment_added",
                    title=f"New comment on {ticket.ticket_number}",
                    message=f"{caller.full_name or 'Someone'} commented on \"{ticket.title}\".",
                    data={"ticket_id": str(ticket.id), "comment_id": str(comment.id)},
                )
            )

    await session.commit()
    logger.info(
        f"Comment {comment.id} on {ticket.ticket_number} by {caller.id} "
        f"(internal={internal}, notified={len(notifications)})"
    )
    if internal:
        # Internal notes surface only as a plain ticket update.
        await feed.ticket_changed(ticket.organization_id, ticket.id, "updated")
    else:
        await feed.ticket_changed(
            ticket.organization_id, ticket.id, "created", resource="comment", resource_id=comment.id
        )
    await announce(feed, notifications)

    attachments, failed = [], []
    if files:
        attachments, failed = await store_uploads(
            session, storage, caller, ticket, files, related_to="comment", related_id=comment.id
        )

    return CommentCreated(
        comment=CommentResponse.model_validate(comment),
        notified=[n.user_id for n in notifications],
        attachments=attachments,
        failed_uploads=failed,
    )
