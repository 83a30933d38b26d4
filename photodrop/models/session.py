# photodrop/models/session.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from photodrop.db import Base
from photodrop.models.common import new_id, utcnow


class GuestSession(Base):
    __tablename__ = "guest_sessions"
    __table_args__ = (
        UniqueConstraint("bucket_id", "guest_contact", name="uq_session_bucket_contact"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    bucket_id: Mapped[str] = mapped_column(
        ForeignKey("guest_buckets.id", ondelete="CASCADE"), index=True, nullable=False
    )

    guest_name: Mapped[str] = mapped_column(String(100), nullable=False)
    # normalised (trimmed, lower-case) e-mail; the resumption key
    guest_contact: Mapped[str] = mapped_column(String(255), nullable=False)
    session_token: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)

    # quota usage: reserved + recorded uploads
    total_images: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # highest upload_order handed out so far; never decreases
    upload_seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # client details at session creation
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    bucket: Mapped["Bucket"] = relationship("Bucket", back_populates="sessions")
    uploads: Mapped[List["Upload"]] = relationship(
        "Upload",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Upload.upload_order",
    )

    def __repr__(self) -> str:
        return f"<GuestSession id={self.id} bucket={self.bucket_id} images={self.total_images}>"
