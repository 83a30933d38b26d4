# photodrop/schemas/gallery.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from photodrop.schemas.sessions import UploadOut


class GalleryBucketOut(BaseModel):
    id: str
    name: str
    project_id: str
    is_active: bool
    expires_at: Optional[datetime]


class GalleryStatsOut(BaseModel):
    total_guests: int
    total_images: int
    total_size_bytes: int
    total_size_mb: float


class GuestGalleryOut(BaseModel):
    session_id: str
    guest_name: str
    guest_contact: str
    created_at: datetime
    total_images: int
    photos: List[UploadOut]


class GalleryOut(BaseModel):
    bucket: GalleryBucketOut
    stats: GalleryStatsOut
    guests: List[GuestGalleryOut]
