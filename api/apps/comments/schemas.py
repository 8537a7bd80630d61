"""
Comment Pydantic schemas.
"""

import uuid
from datetime import datetime
from typing import List
from pydantic import BaseModel

from api.apps.attachments.schemas import AttachmentResponse, FailedUpload


class CommentResponse(BaseModel):
    id: uuid.UUID
    ticket_id: uuid.UUID
    user_id: uuid.UUID
    content: str
    is_internal: bool
    is_system_message: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class CommentCreated(BaseModel):
    comment: CommentResponse
    notified: List[uuid.UUID] = []
    attachments: List[AttachmentResponse] = []
    failed_uploads: List[FailedUpload] = []
