"""
Comment router.

Entry/exit only, no logic here.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from api.apps.auth.services import verify_user
from api.apps.comments import services
from api.core.dependencies import get_change_feed, get_storage
from api.core.permissions import Caller
from api.core.realtime import ChangeFeed
from api.core.storage import ObjectStorage
from api.db.session import get_session
from api.utils.responses import success_response

router = APIRouter(prefix="/api/tickets", tags=["Comments"])


@router.get("/{ticket_ref}/comments")
async def list_comments(
    ticket_ref: str,
    caller: Caller = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
):
    """Comments in posting order; internal notes only for staff with authority."""
    comments = await services.list_comments(session=session, caller=caller, ticket_ref=ticket_ref)
    return success_response(message="Comments", data=[c.model_dump() for c in comments])


@router.post("/{ticket_ref}/comments", status_code=201)
async def add_comment(
    ticket_ref: str,
    content: str = Form(...),
    is_internal: bool = Form(False),
    files: Optional[List[UploadFile]] = File(None),
    caller: Caller = Depends(verify_user),
    session: AsyncSession = Depends(get_session),
    feed: ChangeFeed = Depends(get_change_feed),
    storage: ObjectStorage = Depends(get_storage),
):
    """
    Post a comment, optionally with files.

    Files that fail validation or storage come back in `failed_uploads`;
    the comment itself is kept.
    """
    result = await services.add_comment(
        session=session,
        feed=feed,
        storage=storage,
        caller=caller,
        ticket_ref=ticket_ref,
        content=content,
        is_internal=is_internal,
        files=files or [],
    )
    message = "Comment added"
    if result.failed_uploads:
        message = f"Comment added; {len(result.failed_uploads)} file(s) failed to upload"
    return success_response(status_code=201, message=message, data=result.model_dump())
