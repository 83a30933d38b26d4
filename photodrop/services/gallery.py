# photodrop/services/gallery.py
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from photodrop.models import GuestSession, Upload
from photodrop.services.buckets import get_bucket


@dataclass
class GalleryStats:
    total_guests: int
    total_images: int
    total_size_bytes: int
    total_size_mb: float


@dataclass
class GuestGallery:
    session_id: str
    guest_name: str
    guest_contact: str
    created_at: datetime
    photos: List[Upload] = field(default_factory=list)

    @property
    def total_images(self) -> int:
        return len(self.photos)


@dataclass
class Gallery:
    bucket_id: str
    name: str
    project_id: str
    is_active: bool
    expires_at: Optional[datetime]
    stats: GalleryStats
    guests: List[GuestGallery]


def build_gallery(db: Session, bucket_id: str) -> Gallery:
    """
    Owner view of everything collected in a bucket, grouped per guest.
    Counts are derived from the upload rows, not from the session counters.
    """
    bucket = get_bucket(db, bucket_id)

    sessions = list(
        db.scalars(
            select(GuestSession)
            .where(GuestSession.bucket_id == bucket_id)
            .order_by(GuestSession.created_at.desc(), GuestSession.id)
        )
    )
    uploads = db.scalars(
        select(Upload)
        .join(GuestSession, Upload.session_id == GuestSession.id)
        .where(GuestSession.bucket_id == bucket_id)
        .order_by(Upload.session_id, Upload.upload_order)
    )
    by_session: Dict[str, List[Upload]] = defaultdict(list)
    for upload in uploads:
        by_session[upload.session_id].append(upload)

    guests = [
        GuestGallery(
            session_id=s.id,
            guest_name=s.guest_name,
            guest_contact=s.guest_contact,
            created_at=s.created_at,
            photos=by_session[s.id],
        )
        for s in sessions
        if by_session.get(s.id)
    ]

    total_images = sum(g.total_images for g in guests)
    total_bytes = sum(p.file_size for g in guests for p in g.photos)
    stats = GalleryStats(
        total_guests=len(guests),
        total_images=total_images,
        total_size_bytes=total_bytes,
        total_size_mb=round(total_bytes / (1024 * 1024), 2),
    )

    return Gallery(
        bucket_id=bucket.id,
        name=bucket.name,
        project_id=bucket.project_id,
        is_active=bucket.is_active,
        expires_at=bucket.expires_at,
        stats=stats,
        guests=guests,
    )
