# photodrop/models/bucket.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, BigInteger, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from photodrop.db import Base
from photodrop.models.common import as_utc, new_id, utcnow


class Bucket(Base):
    __tablename__ = "guest_buckets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    project_id: Mapped[str] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), index=True, nullable=False
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # collection policy
    max_images_per_guest: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    max_file_size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    storage_path: Mapped[str] = mapped_column(String(255), nullable=False)

    access_token: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # scan counters, bumped by the scan tracker
    total_scans: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_scanned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=utcnow, nullable=True)

    project: Mapped["Project"] = relationship("Project", back_populates="buckets")
    sessions: Mapped[List["GuestSession"]] = relationship(
        "GuestSession",
        back_populates="bucket",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    scan_events: Mapped[List["ScanEvent"]] = relationship(
        "ScanEvent",
        back_populates="bucket",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        expires = as_utc(self.expires_at)
        return expires is not None and expires <= (now or utcnow())

    def is_usable(self, now: Optional[datetime] = None) -> bool:
        return bool(self.is_active) and not self.is_expired(now)

    def __repr__(self) -> str:
        return f"<Bucket id={self.id} name={self.name!r} active={self.is_active}>"
