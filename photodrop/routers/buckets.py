# photodrop/routers/buckets.py
from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from photodrop.core.security import Owner, current_owner
from photodrop.dependencies import get_db, get_storage_service
from photodrop.schemas.buckets import BucketCreate, BucketOut, BucketUpdate, DeleteReportOut
from photodrop.services import buckets as bucket_service
from photodrop.services.storage import ObjectStore

router = APIRouter(prefix="/buckets", tags=["buckets"])


@router.post("", response_model=BucketOut, status_code=status.HTTP_201_CREATED)
def create_bucket(
    body: BucketCreate,
    owner: Owner = Depends(current_owner),
    db: Session = Depends(get_db),
    storage: ObjectStore = Depends(get_storage_service),
):
    bucket = bucket_service.create_bucket(
        db,
        storage,
        owner.id,
        body.project_id,
        name=body.name,
        description=body.description,
        max_images_per_guest=body.max_images_per_guest,
        max_file_size_bytes=body.max_file_size_bytes,
        expires_at=body.expires_at,
    )
    return BucketOut.model_validate(bucket)


@router.get("", response_model=List[BucketOut])
def list_buckets(
    project_id: str = Query(...),
    owner: Owner = Depends(current_owner),
    db: Session = Depends(get_db),
):
    return [BucketOut.model_validate(b) for b in bucket_service.list_buckets(db, owner.id, project_id)]


@router.get("/{bucket_id}", response_model=BucketOut)
def get_bucket(bucket_id: str, owner: Owner = Depends(current_owner), db: Session = Depends(get_db)):
    return BucketOut.model_validate(bucket_service.get_owned_bucket(db, owner.id, bucket_id))


@router.patch("/{bucket_id}", response_model=BucketOut)
def update_bucket(
    bucket_id: str,
    body: BucketUpdate,
    owner: Owner = Depends(current_owner),
    db: Session = Depends(get_db),
):
    # only the fields the client actually sent; explicit null clears expires_at
    patch = body.model_dump(exclude_unset=True)
    bucket = bucket_service.update_policy(db, owner.id, bucket_id, patch)
    return BucketOut.model_validate(bucket)


@router.post("/{bucket_id}/deactivate", response_model=BucketOut)
def deactivate_bucket(bucket_id: str, owner: Owner = Depends(current_owner), db: Session = Depends(get_db)):
    return BucketOut.model_validate(bucket_service.deactivate(db, owner.id, bucket_id))


@router.delete("/{bucket_id}", response_model=DeleteReportOut)
def delete_bucket(
    bucket_id: str,
    owner: Owner = Depends(current_owner),
    db: Session = Depends(get_db),
    storage: ObjectStore = Depends(get_storage_service),
):
    report = bucket_service.delete_bucket(db, storage, owner.id, bucket_id)
    return DeleteReportOut(**report.__dict__)
