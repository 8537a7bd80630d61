"""
Attachment business logic.

Bytes go to object storage, metadata to the attachments table. Uploads are
per-file: one rejected or failed file is reported and the rest proceed.
Storage calls are blocking and run in the threadpool.
"""

import uuid
from typing import Iterable, List, Sequence, Tuple

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.apps.attachments.models import Attachment
from api.apps.attachments.schemas import AttachmentResponse, FailedUpload
from api.apps.comments.models import TicketComment
from api.apps.tickets.models import Ticket
from api.core.permissions import Caller, can_see_internal_comments, can_view
from api.core.storage import ObjectStorage, build_storage_key, validate_file
from api.utils.exceptions import ResourceNotFoundException, StorageException
from api.utils.logger import get_logger
from api.utils.metrics import attachment_uploads

logger = get_logger(__name__)


async def store_uploads(
    session: AsyncSession,
    storage: ObjectStorage,
    caller: Caller,
    ticket: Ticket,
    files: Sequence[UploadFile],
    related_to: str,
    related_id: uuid.UUID,
) -> Tuple[List[AttachmentResponse], List[FailedUpload]]:
    """
    Store each file and record its metadata, then commit.

    Never raises for a single bad file; the failure lands in the second list.
    """
    uploaded: List[Attachment] = []
    failed: List[FailedUpload] = []

    for upload in files:
        filename = upload.filename or ""
        content_type = upload.content_type or "application/octet-stream"
        data = await upload.read()

        error = validate_file(filename, content_type, len(data))
        if error:
            logger.warning(f"Rejected upload {filename!r} on ticket {ticket.id}: {error}")
            attachment_uploads.labels(status="rejected").inc()
            failed.append(FailedUpload(filename=filename, reason=error))
            continue

        key = build_storage_key(ticket.organization_id, ticket.id, filename)
        try:
            await run_in_threadpool(storage.put, key, data, content_type)
        except StorageException as e:
            attachment_uploads.labels(status="failed").inc()
            failed.append(FailedUpload(filename=filename, reason=e.detail))
            continue

        attachment = await Attachment.create(
            db=session,
            commit=False,
            organization_id=ticket.organization_id,
            ticket_id=ticket.id,
            related_to=related_to,
            related_id=related_id,
            uploaded_by=caller.id,
            original_filename=filename,
            storage_path=key,
            public_url=storage.public_url(key),
            mime_type=content_type,
            file_size=len(data),
        )
        attachment_uploads.labels(status="stored").inc()
        uploaded.append(attachment)

    if uploaded:
        await session.commit()
        logger.info(f"Stored {len(uploaded)} attachment(s) on ticket {ticket.id}")

    return [AttachmentResponse.model_validate(a) for a in uploaded], failed


async def remove_objects(storage: ObjectStorage, keys: Iterable[str]) -> List[str]:
    """
    Best-effort delete of stored objects after their rows are gone.

    Returns the keys that could not be deleted; they are logged for cleanup.
    """
    leftovers = []
    for key in keys:
        try:
            await run_in_threadpool(storage.delete, key)
        except StorageException:
            leftovers.append(key)
    if leftovers:
        logger.error(f"Orphaned {len(leftovers)} stored object(s): {leftovers}")
    return leftovers


async def hidden_comment_ids(
    session: AsyncSession, caller: Caller, ticket: Ticket
) -> set:
    """Ids of internal comments on this ticket the caller may not read."""
    if can_see_internal_comments(caller, ticket):
        return set()
    result = await session.execute(
        select(TicketComment.id).where(
            TicketComment.ticket_id == ticket.id, TicketComment.is_internal.is_(True)
        )
    )
    return set(result.scalars().all())


async def get_viewable_attachment(
    session: AsyncSession, caller: Caller, attachment_id: uuid.UUID
) -> Attachment:
    """
    An attachment is visible exactly when its ticket is, and, for files on
    internal comments, when the internal channel is. Anything else is 404.
    """
    attachment = await Attachment.get_in_org(session, attachment_id, caller.organization_id)
    if not attachment:
        raise ResourceNotFoundException(detail="Attachment not found.")

    ticket = await Ticket.get_in_org(session, attachment.ticket_id, caller.organization_id)
    if not ticket or not can_view(caller, ticket):
        raise ResourceNotFoundException(detail="Attachment not found.")

    if attachment.related_to == "comment":
        if attachment.related_id in await hidden_comment_ids(session, caller, ticket):
            raise ResourceNotFoundException(detail="Attachment not found.")

    return attachment


async def get_attachment(
    session: AsyncSession, caller: Caller, attachment_id: uuid.UUID
) -> AttachmentResponse:
    attachment = await get_viewable_attachment(session, caller, attachment_id)
    return AttachmentResponse.model_validate(attachment)


async def read_attachment(
    session: AsyncSession,
    storage: ObjectStorage,
    caller: Caller,
    attachment_id: uuid.UUID,
) -> Tuple[Attachment, bytes]:
    attachment = await get_viewable_attachment(session, caller, attachment_id)
    data = await run_in_threadpool(storage.get, attachment.storage_path)
    return attachment, data
