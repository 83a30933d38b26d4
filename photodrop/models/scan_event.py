# photodrop/models/scan_event.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from photodrop.db import Base
from photodrop.models.common import new_id, utcnow


class ScanEvent(Base):
    """Append-only access record; never read back by the service."""

    __tablename__ = "scan_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    bucket_id: Mapped[str] = mapped_column(
        ForeignKey("guest_buckets.id", ondelete="CASCADE"), index=True, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    user_agent: Mapped[str] = mapped_column(Text, nullable=False, default="")
    referrer: Mapped[str] = mapped_column(Text, nullable=False, default="")
    source: Mapped[str] = mapped_column(String(32), nullable=False, default="qr_code")
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    device_type: Mapped[str] = mapped_column(String(16), nullable=False, default="unknown")
    browser_name: Mapped[str] = mapped_column(String(32), nullable=False, default="unknown")
    browser_version: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    os_name: Mapped[str] = mapped_column(String(32), nullable=False, default="unknown")
    os_version: Mapped[str] = mapped_column(String(32), nullable=False, default="")

    bucket: Mapped["Bucket"] = relationship("Bucket", back_populates="scan_events")
