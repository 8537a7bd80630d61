"""
Attachment router.

Metadata and authenticated downloads. Uploads arrive through the ticket
and comment routes.
"""

import uuid
from urllib.parse import quote

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from api.apps.attachments import services
from api.apps.auth.services import verify_user
from api.core.dependencies import get_storage
from api.core.permissions import Caller
from api.core.storage import ObjectStorage
from api.db.session import get_session
from api.utils.responses import success_response

router = APIRouter(prefix="/api/attachments", tags=["Attachments"])


@router.get("/{attachment_id}")
async def get_attachment(
    attachment_id: uuid.UUID,
    caller: Caller = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    attachment = await services.get_attachment(
        session=session, caller=caller, attachment_id=attachment_id
    )
    return success_response(message="Attachment", data=attachment.model_dump())


@router.get("/{attachment_id}/download")
async def download_attachment(
    attachment_id: uuid.UUID,
    caller: Caller = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
    storage: ObjectStorage = Depends(get_storage),
):
    """Stream the stored bytes with the original filename."""
    attachment, data = await services.read_attachment(
        session=session, storage=storage, caller=caller, attachment_id=attachment_id
    )
    return Response(
        content=data,
        media_type=attachment.mime_type,
        headers={
            "Content-Disposition": f"attachment; filename*=UTF-8''{quote(attachment.original_filename)}"
        },
    )
