# photodrop/services/buckets.py
"""
Bucket manager: collection policy, access tokens and bucket lifecycle.

Only the owner of the bucket's project may create, change or delete a bucket.
Guests reach a bucket through its access token; `resolve_by_token` only looks
the row up, `resolve_upload_entry` additionally insists that it is usable.
"""
from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from photodrop.config import settings
from photodrop.errors import BucketNotFound, BucketUnavailable, NotAuthorized, ValidationError
from photodrop.models import Bucket, GuestSession, Project, Upload
from photodrop.models.common import as_utc, new_id, utcnow
from photodrop.services.storage import ObjectStore
from photodrop.services.storage_keys import bucket_prefix, placeholder_key

logger = structlog.get_logger(__name__)

_PATCHABLE = ("name", "description", "max_images_per_guest", "max_file_size_bytes", "expires_at", "is_active")


@dataclass
class DeleteReport:
    bucket_id: str
    sessions_deleted: int
    uploads_deleted: int
    objects_deleted: int
    objects_failed: int


def new_access_token() -> str:
    return secrets.token_hex(32)


# -----------------------------------------------------------------------------
# Validation helpers
# -----------------------------------------------------------------------------
def _validate_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Bucket name is required", field="name")
    if len(name) > 100:
        raise ValidationError("Bucket name is too long (max 100 characters)", field="name")
    return name


def _validate_max_images(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("max_images_per_guest must be an integer", field="max_images_per_guest")
    limit = settings.max_images_per_guest_limit
    if value < 1 or value > limit:
        raise ValidationError(
            f"max_images_per_guest must be between 1 and {limit}", field="max_images_per_guest"
        )
    return value


def _validate_max_file_size(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("max_file_size_bytes must be an integer", field="max_file_size_bytes")
    limit = settings.max_file_size_limit_bytes
    if value <= 0 or value > limit:
        raise ValidationError(
            f"max_file_size_bytes must be between 1 and {limit}", field="max_file_size_bytes"
        )
    return value


def _assert_project_owner(db: Session, owner_id: str, project_id: str) -> Project:
    project = db.get(Project, project_id)
    if project is None or project.owner_id != owner_id:
        # same answer for "missing" and "not yours"
        raise NotAuthorized("Project not found or access denied", project_id=project_id)
    return project


# -----------------------------------------------------------------------------
# Operations
# -----------------------------------------------------------------------------
def create_bucket(
    db: Session,
    storage: ObjectStore,
    owner_id: str,
    project_id: str,
    name: str,
    description: Optional[str] = None,
    max_images_per_guest: Optional[int] = None,
    max_file_size_bytes: Optional[int] = None,
    expires_at: Optional[datetime] = None,
) -> Bucket:
    _assert_project_owner(db, owner_id, project_id)

    name = _validate_name(name)
    max_images = _validate_max_images(
        settings.default_max_images_per_guest if max_images_per_guest is None else max_images_per_guest
    )
    max_size = _validate_max_file_size(
        settings.default_max_file_size_bytes if max_file_size_bytes is None else max_file_size_bytes
    )

    bucket_id = new_id()
    bucket = Bucket(
        id=bucket_id,
        project_id=project_id,
        name=name,
        description=description,
        max_images_per_guest=max_images,
        max_file_size_bytes=max_size,
        storage_path=bucket_prefix(project_id, name, bucket_id),
        access_token=new_access_token(),
        is_active=True,
        expires_at=as_utc(expires_at),
    )
    db.add(bucket)
    db.commit()
    db.refresh(bucket)

    # Establish the folder; a missing placeholder does not affect uploads.
    try:
        storage.put(placeholder_key(bucket.storage_path), b"guest photo uploads\n", "text/plain")
    except Exception as e:
        logger.warning("bucket_prefix_provision_failed", bucket_id=bucket.id, error=str(e))

    logger.info("bucket_created", bucket_id=bucket.id, project_id=project_id, owner_id=owner_id)
    return bucket


def list_buckets(db: Session, owner_id: str, project_id: str) -> List[Bucket]:
    _assert_project_owner(db, owner_id, project_id)
    stmt = (
        select(Bucket)
        .where(Bucket.project_id == project_id)
        .order_by(Bucket.created_at.desc())
    )
    return list(db.scalars(stmt))


def get_bucket(db: Session, bucket_id: str) -> Bucket:
    bucket = db.get(Bucket, bucket_id)
    if bucket is None:
        raise BucketNotFound("Bucket not found", bucket_id=bucket_id)
    return bucket


def get_owned_bucket(db: Session, owner_id: str, bucket_id: str) -> Bucket:
    bucket = get_bucket(db, bucket_id)
    if bucket.project is None or bucket.project.owner_id != owner_id:
        raise NotAuthorized("Bucket belongs to another owner", bucket_id=bucket_id)
    return bucket


def resolve_by_token(db: Session, access_token: str) -> Bucket:
    """Look a bucket up by access token without judging whether it is usable."""
    if not access_token:
        raise BucketNotFound("Bucket not found")
    bucket = db.scalars(select(Bucket).where(Bucket.access_token == access_token)).first()
    if bucket is None:
        raise BucketNotFound("Bucket not found")
    return bucket


def ensure_usable(bucket: Bucket, now: Optional[datetime] = None) -> Bucket:
    if not bucket.is_active:
        raise BucketUnavailable("Upload bucket is not active", bucket_id=bucket.id, reason="inactive")
    if bucket.is_expired(now):
        raise BucketUnavailable("Upload bucket has expired", bucket_id=bucket.id, reason="expired")
    return bucket


def resolve_upload_entry(db: Session, access_token: str) -> Bucket:
    """Guest landing flow: the bucket behind a shared link, if it accepts uploads."""
    return ensure_usable(resolve_by_token(db, access_token))


def update_policy(db: Session, owner_id: str, bucket_id: str, patch: Dict[str, Any]) -> Bucket:
    bucket = get_owned_bucket(db, owner_id, bucket_id)

    unknown = set(patch) - set(_PATCHABLE)
    if unknown:
        raise ValidationError(f"Unknown bucket fields: {', '.join(sorted(unknown))}")

    if "name" in patch:
        bucket.name = _validate_name(patch["name"])
    if "description" in patch:
        bucket.description = patch["description"]
    if "max_images_per_guest" in patch:
        bucket.max_images_per_guest = _validate_max_images(patch["max_images_per_guest"])
    if "max_file_size_bytes" in patch:
        bucket.max_file_size_bytes = _validate_max_file_size(patch["max_file_size_bytes"])
    if "expires_at" in patch:
        bucket.expires_at = as_utc(patch["expires_at"])
    if "is_active" in patch:
        if not isinstance(patch["is_active"], bool):
            raise ValidationError("is_active must be a boolean", field="is_active")
        bucket.is_active = patch["is_active"]

    bucket.updated_at = utcnow()
    db.commit()
    db.refresh(bucket)
    logger.info("bucket_updated", bucket_id=bucket.id, fields=sorted(patch))
    return bucket


def deactivate(db: Session, owner_id: str, bucket_id: str) -> Bucket:
    return update_policy(db, owner_id, bucket_id, {"is_active": False})


def delete_bucket(db: Session, storage: ObjectStore, owner_id: str, bucket_id: str) -> DeleteReport:
    """
    Delete the bucket with its sessions, uploads and scan events, then remove
    the stored objects. Object deletion is best-effort: the metadata delete has
    already committed and leftover objects are only logged.
    """
    bucket = get_owned_bucket(db, owner_id, bucket_id)
    prefix = bucket.storage_path

    keys = list(
        db.scalars(
            select(Upload.storage_key)
            .join(GuestSession, Upload.session_id == GuestSession.id)
            .where(GuestSession.bucket_id == bucket_id)
        )
    )
    sessions_count = db.scalar(
        select(func.count()).select_from(GuestSession).where(GuestSession.bucket_id == bucket_id)
    ) or 0

    db.delete(bucket)
    db.commit()
    logger.info("bucket_deleted", bucket_id=bucket_id, sessions=sessions_count, uploads=len(keys))

    deleted = failed = 0
    for key in keys + [placeholder_key(prefix)]:
        if storage.delete(key):
            deleted += 1
        else:
            failed += 1
    if failed:
        logger.warning("bucket_objects_orphaned", bucket_id=bucket_id, failed=failed)

    return DeleteReport(
        bucket_id=bucket_id,
        sessions_deleted=sessions_count,
        uploads_deleted=len(keys),
        objects_deleted=deleted,
        objects_failed=failed,
    )
