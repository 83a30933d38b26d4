# photodrop/services/ingest.py
"""
Upload ingestor.

A batch goes through four phases:

1. validation per file (image content type, size within the bucket limit);
2. quota admission: one compare-and-swap on the session row reserves
   ``admitted`` slots on ``total_images`` and the matching block of
   ``upload_order`` values on ``upload_seq``;
3. concurrent object-store writes, each retried and time bounded;
4. one metadata transaction per stored file, re-checking the bucket inside it.

Every admitted file that is not recorded gives its slot back. ``upload_seq``
is never decremented, so order numbers stay unique even when slots are
released.
"""
from __future__ import annotations

import enum
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from functools import partial
from pathlib import PurePosixPath
from typing import List, Optional, Sequence, Tuple

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from photodrop.config import settings
from photodrop.errors import (
    BucketUnavailable,
    NotAuthorized,
    ReservationConflict,
    SessionNotFound,
    StorageFailure,
    UploadNotFound,
)
from photodrop.infra.retry import retry_on
from photodrop.models import Bucket, GuestSession, Upload
from photodrop.models.common import as_utc, utcnow
from photodrop.observability.metrics import upload_counter, upload_size_hist
from photodrop.services.buckets import ensure_usable
from photodrop.services.sessions import get_session_by_token
from photodrop.services.storage import ObjectStore
from photodrop.services.storage_keys import stored_filename, upload_key

logger = structlog.get_logger(__name__)

_RESERVE_ATTEMPTS = 50


class RejectReason(str, enum.Enum):
    TYPE = "type"
    SIZE = "size"
    QUOTA = "quota"
    STORAGE = "storage"
    BUCKET_UNAVAILABLE = "bucket_unavailable"


@dataclass
class IncomingFile:
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class FileOutcome:
    filename: str
    accepted: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    upload_id: Optional[str] = None
    upload_order: Optional[int] = None


@dataclass
class IngestResult:
    accepted_count: int
    uploads: List[Upload]
    outcomes: List[FileOutcome]
    total_images: int
    max_images: int

    @property
    def rejected_count(self) -> int:
        return len(self.outcomes) - self.accepted_count


@dataclass
class _Slot:
    index: int
    order: int
    key: str
    future: Optional[Future] = None
    url: Optional[str] = None
    error: Optional[str] = None
    recorded: bool = False


def _original_name(filename: str) -> str:
    return PurePosixPath((filename or "").replace("\\", "/")).name[:255] or "photo"


def _reject(outcomes: List[Optional[FileOutcome]], i: int, f: IncomingFile, reason: RejectReason, message: str) -> None:
    outcomes[i] = FileOutcome(filename=f.filename, accepted=False, reason=reason.value, message=message)
    upload_counter.labels(result=reason.value).inc()


# -----------------------------------------------------------------------------
# Quota counter
# -----------------------------------------------------------------------------
def _reserve_once(db: Session, session_id: str, wanted: int) -> Optional[Tuple[int, int, int]]:
    """One compare-and-swap round. Returns (admitted, first_order, cap) or None if we lost the race."""
    try:
        row = db.execute(
            select(
                GuestSession.total_images,
                GuestSession.upload_seq,
                Bucket.max_images_per_guest,
                Bucket.is_active,
                Bucket.expires_at,
            )
            .join(Bucket, GuestSession.bucket_id == Bucket.id)
            .where(GuestSession.id == session_id)
            .with_for_update(of=GuestSession)
        ).first()
        if row is None:
            db.rollback()
            raise SessionNotFound("Session no longer exists", session_id=session_id)

        expires = as_utc(row.expires_at)
        if not row.is_active or (expires is not None and expires <= utcnow()):
            db.rollback()
            raise BucketUnavailable("Upload bucket is no longer accepting photos", session_id=session_id)

        cap = row.max_images_per_guest
        admitted = min(wanted, max(cap - row.total_images, 0))
        if admitted == 0:
            db.rollback()
            return 0, row.upload_seq + 1, cap

        res = db.execute(
            update(GuestSession)
            .where(
                GuestSession.id == session_id,
                GuestSession.total_images == row.total_images,
                GuestSession.upload_seq == row.upload_seq,
            )
            .values(
                total_images=row.total_images + admitted,
                upload_seq=row.upload_seq + admitted,
            )
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            db.rollback()
            return None
        db.commit()
        return admitted, row.upload_seq + 1, cap
    except SQLAlchemyError:
        db.rollback()
        raise


def reserve_slots(db: Session, session_id: str, wanted: int) -> Tuple[int, int, int]:
    """
    Atomically admit up to ``wanted`` files against the session quota.
    Returns (admitted, first upload_order of the reserved block, cap).
    """
    for _ in range(_RESERVE_ATTEMPTS):
        result = retry_on(
            lambda: _reserve_once(db, session_id, wanted),
            attempts=5,
            base=0.05,
            is_retryable=lambda e: isinstance(e, OperationalError),
        )
        if result is not None:
            return result
    raise ReservationConflict("Could not reserve upload slots, please retry", session_id=session_id)


def release_slots(db: Session, session_id: str, count: int) -> None:
    """Give back ``count`` reserved slots; upload_seq is left alone."""
    if count <= 0:
        return

    def _release():
        try:
            db.execute(
                update(GuestSession)
                .where(GuestSession.id == session_id, GuestSession.total_images >= count)
                .values(total_images=GuestSession.total_images - count)
                .execution_options(synchronize_session=False)
            )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise

    retry_on(_release, attempts=settings.metadata_write_attempts, base=0.05,
             is_retryable=lambda e: isinstance(e, OperationalError))
    logger.info("upload_slots_released", session_id=session_id, count=count)


# -----------------------------------------------------------------------------
# Object store + metadata
# -----------------------------------------------------------------------------
def _store(storage: ObjectStore, key: str, f: IncomingFile) -> str:
    return retry_on(
        lambda: storage.put(key, f.data, f.content_type),
        attempts=settings.upload_store_attempts,
        base=0.1,
        is_retryable=lambda e: isinstance(e, StorageFailure),
    )


def _discard_late_object(storage: ObjectStore, key: str, fut: Future) -> None:
    # the write finished after we gave up on it
    if fut.cancelled() or fut.exception() is not None:
        return
    storage.delete(key)
    logger.warning("late_object_discarded", key=key)


def _record_once(db: Session, bucket_id: str, upload: Upload) -> Upload:
    db.add(upload)
    try:
        db.flush()
        # Re-check inside the transaction: the bucket may have been
        # deactivated or deleted while the bytes were being written.
        row = db.execute(
            select(Bucket.is_active, Bucket.expires_at).where(Bucket.id == bucket_id)
        ).first()
        expires = as_utc(row.expires_at) if row is not None else None
        if row is None or not row.is_active or (expires is not None and expires <= utcnow()):
            db.rollback()
            raise BucketUnavailable("Upload bucket is no longer accepting photos", bucket_id=bucket_id)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        # session row vanished with a bucket delete cascade
        raise BucketUnavailable("Upload bucket no longer exists", bucket_id=bucket_id) from e
    except SQLAlchemyError:
        db.rollback()
        raise
    return upload


def _record(db: Session, bucket_id: str, session_id: str, slot: _Slot, f: IncomingFile) -> Upload:
    def _attempt() -> Upload:
        upload = Upload(
            session_id=session_id,
            original_filename=_original_name(f.filename),
            stored_filename=stored_filename(slot.order, f.filename, f.content_type),
            storage_key=slot.key,
            file_url=slot.url,
            file_size=f.size,
            content_type=f.content_type,
            upload_order=slot.order,
        )
        return _record_once(db, bucket_id, upload)

    return retry_on(
        _attempt,
        attempts=settings.metadata_write_attempts,
        base=0.05,
        is_retryable=lambda e: isinstance(e, SQLAlchemyError),
    )


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------
def ingest_uploads(
    db: Session,
    storage: ObjectStore,
    session_token: str,
    files: Sequence[IncomingFile],
) -> IngestResult:
    session = get_session_by_token(db, session_token)
    bucket = db.get(Bucket, session.bucket_id)
    if bucket is None:
        raise SessionNotFound("Invalid or expired session")
    ensure_usable(bucket)

    session_id = session.id
    bucket_id = bucket.id
    prefix = bucket.storage_path
    max_size = bucket.max_file_size_bytes
    log = logger.bind(session_id=session_id, bucket_id=bucket_id)

    outcomes: List[Optional[FileOutcome]] = [None] * len(files)

    # 1) validation
    valid: List[int] = []
    for i, f in enumerate(files):
        ctype = (f.content_type or "").lower()
        if not ctype.startswith("image/"):
            _reject(outcomes, i, f, RejectReason.TYPE, f"{f.filename} is not an image")
        elif f.size == 0:
            _reject(outcomes, i, f, RejectReason.SIZE, f"{f.filename} is empty")
        elif f.size > max_size:
            _reject(outcomes, i, f, RejectReason.SIZE,
                    f"{f.filename} is too large (max {max_size} bytes)")
        else:
            valid.append(i)

    # 2) quota admission
    admitted, first_order, cap = reserve_slots(db, session_id, len(valid)) if valid else (0, 0, bucket.max_images_per_guest)
    for i in valid[admitted:]:
        _reject(outcomes, i, files[i], RejectReason.QUOTA,
                f"Maximum {cap} images allowed per guest")

    slots = [
        _Slot(index=i, order=first_order + n,
              key=upload_key(prefix, session_id, first_order + n, files[i].filename, files[i].content_type))
        for n, i in enumerate(valid[:admitted])
    ]

    uploads: List[Upload] = []
    try:
        # 3) object store writes, concurrently, in reserved order
        if slots:
            executor = ThreadPoolExecutor(max_workers=max(1, min(settings.upload_workers, len(slots))))
            try:
                for slot in slots:
                    slot.future = executor.submit(_store, storage, slot.key, files[slot.index])
                for slot in slots:
                    try:
                        slot.url = slot.future.result(timeout=settings.upload_store_timeout_seconds)
                    except FutureTimeout:
                        slot.future.cancel()
                        slot.future.add_done_callback(partial(_discard_late_object, storage, slot.key))
                        slot.error = "Timed out while storing the photo"
                    except Exception as e:
                        slot.error = f"Could not store the photo: {e}"
            finally:
                executor.shutdown(wait=False, cancel_futures=True)

        # 4) metadata, one transaction per photo
        for slot in slots:
            f = files[slot.index]
            if slot.error is not None:
                log.warning("upload_store_failed", key=slot.key, error=slot.error)
                _reject(outcomes, slot.index, f, RejectReason.STORAGE, slot.error)
                continue
            try:
                upload = _record(db, bucket_id, session_id, slot, f)
            except BucketUnavailable as e:
                storage.delete(slot.key)
                _reject(outcomes, slot.index, f, RejectReason.BUCKET_UNAVAILABLE, e.message)
                continue
            except SQLAlchemyError as e:
                # object stored but never recorded
                log.error("upload_orphaned", key=slot.key, error=str(e))
                storage.delete(slot.key)
                _reject(outcomes, slot.index, f, RejectReason.STORAGE, "Could not record the photo")
                continue

            slot.recorded = True
            uploads.append(upload)
            outcomes[slot.index] = FileOutcome(
                filename=f.filename,
                accepted=True,
                upload_id=upload.id,
                upload_order=upload.upload_order,
            )
            upload_counter.labels(result="accepted").inc()
            upload_size_hist.observe(f.size)
    finally:
        release_slots(db, session_id, sum(1 for s in slots if not s.recorded))

    total = db.execute(
        select(GuestSession.total_images).where(GuestSession.id == session_id)
    ).scalar()

    log.info(
        "upload_batch_ingested",
        files=len(files),
        accepted=len(uploads),
        rejected=len(files) - len(uploads),
        total_images=total,
    )
    return IngestResult(
        accepted_count=len(uploads),
        uploads=uploads,
        outcomes=[o for o in outcomes if o is not None],
        total_images=total or 0,
        max_images=cap,
    )


def delete_upload(db: Session, storage: ObjectStore, owner_id: str, upload_id: str) -> None:
    """Moderation: remove one photo and give its slot back to the guest."""
    upload = db.get(Upload, upload_id)
    if upload is None:
        raise UploadNotFound("Upload not found", upload_id=upload_id)
    session = upload.session
    if session.bucket.project.owner_id != owner_id:
        raise NotAuthorized("Upload belongs to another owner", upload_id=upload_id)

    key = upload.storage_key
    session_id = session.id
    try:
        db.delete(upload)
        db.execute(
            update(GuestSession)
            .where(GuestSession.id == session_id, GuestSession.total_images > 0)
            .values(total_images=GuestSession.total_images - 1)
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    if not storage.delete(key):
        logger.warning("upload_object_orphaned", upload_id=upload_id, key=key)
    logger.info("upload_deleted", upload_id=upload_id, session_id=session_id)
