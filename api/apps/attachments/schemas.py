"""
Attachment Pydantic schemas.
"""

import uuid
from datetime import datetime
from pydantic import BaseModel


class AttachmentResponse(BaseModel):
    id: uuid.UUID
    ticket_id: uuid.UUID
    related_to: str
    related_id: uuid.UUID
    uploaded_by: uuid.UUID
    original_filename: str
    public_url: str
    mime_type: str
    file_size: int
    created_at: datetime

    model_config = {"from_attributes": True}


class FailedUpload(BaseModel):
    """A file that was not stored. The owning ticket or comment is kept."""
    filename: str
    reason: str
