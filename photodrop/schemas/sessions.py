# photodrop/schemas/sessions.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class SessionCreate(BaseModel):
    guest_name: str = Field(min_length=2, max_length=100)
    guest_email: EmailStr


class UploadOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    session_id: str
    original_filename: str
    stored_filename: str
    file_url: str
    thumbnail_url: Optional[str] = None
    file_size: int
    content_type: str
    upload_order: int
    created_at: datetime


class SessionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    bucket_id: str
    guest_name: str
    guest_contact: str
    session_token: str
    total_images: int
    created_at: datetime


class SessionResultOut(BaseModel):
    session: SessionOut
    max_images: int
    existing_uploads: List[UploadOut]
    is_resuming: bool
