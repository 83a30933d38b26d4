# photodrop/schemas/buckets.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class BucketCreate(BaseModel):
    project_id: str
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    max_images_per_guest: Optional[int] = None
    max_file_size_bytes: Optional[int] = None
    expires_at: Optional[datetime] = None


class BucketUpdate(BaseModel):
    """Partial update; only fields present in the request are applied."""

    name: Optional[str] = None
    description: Optional[str] = None
    max_images_per_guest: Optional[int] = None
    max_file_size_bytes: Optional[int] = None
    expires_at: Optional[datetime] = None
    is_active: Optional[bool] = None


class BucketOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: str
    name: str
    description: Optional[str]
    max_images_per_guest: int
    max_file_size_bytes: int
    storage_path: str
    access_token: str
    is_active: bool
    expires_at: Optional[datetime]
    total_scans: int
    last_scanned_at: Optional[datetime]
    created_at: datetime


class BucketPublicOut(BaseModel):
    """What a guest sees on the landing page; no owner-side fields."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str]
    max_images_per_guest: int
    max_file_size_bytes: int
    expires_at: Optional[datetime]


class DeleteReportOut(BaseModel):
    bucket_id: str
    sessions_deleted: int
    uploads_deleted: int
    objects_deleted: int
    objects_failed: int
