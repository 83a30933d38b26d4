# photodrop/services/archive.py
"""
Archive exporter: zip downloads of a bucket's photos.

`prepare_export` resolves and names everything up front, so an empty
selection fails before a response is started. `ArchivePlan.iter_bytes`
then fetches and compresses one photo at a time and hands each finished
chunk to the caller, so memory never holds more than one photo.
"""
from __future__ import annotations

import os
import re
import zipfile
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Sequence, Set, Tuple, Union

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from photodrop.config import settings
from photodrop.errors import NoContent, SessionNotFound, StorageFailure, ValidationError
from photodrop.infra.retry import retry_on
from photodrop.models import GuestSession, Upload
from photodrop.models.common import as_utc
from photodrop.observability.metrics import archive_entry_counter
from photodrop.services.buckets import get_bucket
from photodrop.services.storage import ObjectStore
from photodrop.services.storage_keys import safe_filename, slugify

logger = structlog.get_logger(__name__)

EXPORT_MODES = ("all", "guest", "selected")

_GUEST_FOLDER_RE = re.compile(r"[^\w\s()-]+")
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)


@dataclass
class ArchiveEntry:
    upload_id: str
    storage_key: str
    arcname: str
    created_at: Optional[datetime] = None


class _ChunkSink:
    """Write-only, unseekable target for ZipFile; drained after every entry."""

    def __init__(self):
        self._buf = bytearray()

    def write(self, data) -> int:
        self._buf.extend(data)
        return len(data)

    def flush(self) -> None:
        pass

    def drain(self) -> bytes:
        chunk = bytes(self._buf)
        self._buf.clear()
        return chunk


@dataclass
class ArchivePlan:
    bucket_id: str
    mode: str
    filename: str
    entries: List[ArchiveEntry] = field(default_factory=list)
    content_type: str = "application/zip"

    def _fetch(self, storage: ObjectStore, entry: ArchiveEntry) -> Optional[bytes]:
        try:
            return retry_on(
                lambda: storage.get(entry.storage_key),
                attempts=settings.archive_fetch_attempts,
                base=0.1,
                is_retryable=lambda e: isinstance(e, StorageFailure) and not e.not_found,
            )
        except StorageFailure as e:
            archive_entry_counter.labels(result="skipped").inc()
            logger.warning(
                "archive_entry_skipped",
                bucket_id=self.bucket_id,
                upload_id=entry.upload_id,
                key=entry.storage_key,
                error=e.message,
            )
            return None

    def iter_bytes(self, storage: ObjectStore) -> Iterator[bytes]:
        sink = _ChunkSink()
        zf = zipfile.ZipFile(
            sink,
            mode="w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=settings.archive_compress_level,
        )
        written = skipped = 0
        try:
            for entry in self.entries:
                data = self._fetch(storage, entry)
                if data is None:
                    skipped += 1
                    continue
                zf.writestr(_zip_info(entry), data, compresslevel=settings.archive_compress_level)
                written += 1
                archive_entry_counter.labels(result="written").inc()
                chunk = sink.drain()
                if chunk:
                    yield chunk
        except GeneratorExit:
            # client went away; stop fetching
            logger.info("archive_stream_aborted", bucket_id=self.bucket_id, written=written)
            raise

        zf.close()
        tail = sink.drain()
        if tail:
            yield tail
        logger.info(
            "archive_streamed",
            bucket_id=self.bucket_id,
            mode=self.mode,
            written=written,
            skipped=skipped,
        )


def _zip_info(entry: ArchiveEntry) -> zipfile.ZipInfo:
    ts = as_utc(entry.created_at)
    date_time = ts.timetuple()[:6] if ts is not None and ts.year >= 1980 else _ZIP_EPOCH
    info = zipfile.ZipInfo(entry.arcname, date_time=date_time)
    info.compress_type = zipfile.ZIP_DEFLATED
    info.external_attr = 0o644 << 16
    return info


def guest_folder_name(guest_name: str) -> str:
    name = _GUEST_FOLDER_RE.sub("-", guest_name or "")
    name = " ".join(name.split()).strip(" .-")
    return name[:100] or "guest"


def _dedupe(name: str, taken: Set[str]) -> str:
    stem, ext = os.path.splitext(name)
    candidate = name
    n = 2
    while candidate.lower() in taken:
        candidate = f"{stem} ({n}){ext}"
        n += 1
    taken.add(candidate.lower())
    return candidate


def _layout(rows: Sequence[Tuple[Upload, GuestSession]], flat: bool) -> List[ArchiveEntry]:
    folders: Dict[str, str] = {}
    owners: Dict[str, str] = {}
    taken: Dict[str, Set[str]] = {}
    entries: List[ArchiveEntry] = []

    for upload, session in rows:
        if flat:
            folder = ""
        else:
            folder = folders.get(session.id)
            if folder is None:
                folder = guest_folder_name(session.guest_name)
                if owners.get(folder.lower(), session.id) != session.id:
                    folder = f"{folder} ({session.id[:8]})"
                owners[folder.lower()] = session.id
                folders[session.id] = folder

        name = _dedupe(safe_filename(upload.original_filename), taken.setdefault(folder, set()))
        entries.append(
            ArchiveEntry(
                upload_id=upload.id,
                storage_key=upload.storage_key,
                arcname=f"{folder}/{name}" if folder else name,
                created_at=upload.created_at,
            )
        )
    return entries


def prepare_export(
    db: Session,
    bucket_id: str,
    mode: str,
    selector: Union[str, Sequence[str], None] = None,
) -> ArchivePlan:
    if mode not in EXPORT_MODES:
        raise ValidationError(f"Unknown export mode: {mode}", field="mode")

    bucket = get_bucket(db, bucket_id)
    base = slugify(bucket.name)

    stmt = (
        select(Upload, GuestSession)
        .join(GuestSession, Upload.session_id == GuestSession.id)
        .where(GuestSession.bucket_id == bucket_id)
    )

    if mode == "guest":
        if not isinstance(selector, str) or not selector:
            raise ValidationError("session_id is required for a guest export", field="session_id")
        session = db.get(GuestSession, selector)
        if session is None or session.bucket_id != bucket_id:
            raise SessionNotFound("Guest session not found in this bucket", session_id=selector)
        stmt = stmt.where(Upload.session_id == session.id)
        filename = f"{base}-{slugify(session.guest_name)}-photos.zip"
    elif mode == "selected":
        ids = [selector] if isinstance(selector, str) else list(selector or [])
        ids = list(dict.fromkeys(i for i in ids if i))
        if not ids:
            raise ValidationError("Select at least one photo", field="upload_ids")
        stmt = stmt.where(Upload.id.in_(ids))
        filename = f"{base}-selected-photos.zip"
    else:
        filename = f"{base}-photos.zip"

    rows = db.execute(stmt.order_by(Upload.created_at, Upload.upload_order, Upload.id)).all()
    if not rows:
        raise NoContent("No photos to export", bucket_id=bucket_id, mode=mode)

    plan = ArchivePlan(
        bucket_id=bucket_id,
        mode=mode,
        filename=filename,
        entries=_layout([(r[0], r[1]) for r in rows], flat=(mode == "guest")),
    )
    logger.info("archive_prepared", bucket_id=bucket_id, mode=mode, entries=len(plan.entries))
    return plan
