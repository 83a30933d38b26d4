# photodrop/routers/gallery.py
from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from photodrop.core.security import Owner, current_owner
from photodrop.dependencies import get_db, get_storage_service
from photodrop.schemas.gallery import GalleryBucketOut, GalleryOut, GalleryStatsOut, GuestGalleryOut
from photodrop.schemas.sessions import UploadOut
from photodrop.schemas.uploads import ExportRequest
from photodrop.services.archive import prepare_export
from photodrop.services.buckets import get_owned_bucket
from photodrop.services.gallery import build_gallery
from photodrop.services.ingest import delete_upload
from photodrop.services.storage import ObjectStore

router = APIRouter(tags=["gallery"])


@router.get("/buckets/{bucket_id}/gallery", response_model=GalleryOut)
def get_gallery(bucket_id: str, owner: Owner = Depends(current_owner), db: Session = Depends(get_db)):
    get_owned_bucket(db, owner.id, bucket_id)
    gallery = build_gallery(db, bucket_id)
    return GalleryOut(
        bucket=GalleryBucketOut(
            id=gallery.bucket_id,
            name=gallery.name,
            project_id=gallery.project_id,
            is_active=gallery.is_active,
            expires_at=gallery.expires_at,
        ),
        stats=GalleryStatsOut(**gallery.stats.__dict__),
        guests=[
            GuestGalleryOut(
                session_id=g.session_id,
                guest_name=g.guest_name,
                guest_contact=g.guest_contact,
                created_at=g.created_at,
                total_images=g.total_images,
                photos=[UploadOut.model_validate(p) for p in g.photos],
            )
            for g in gallery.guests
        ],
    )


@router.post("/buckets/{bucket_id}/export")
def export_archive(
    bucket_id: str,
    body: ExportRequest,
    owner: Owner = Depends(current_owner),
    db: Session = Depends(get_db),
    storage: ObjectStore = Depends(get_storage_service),
):
    get_owned_bucket(db, owner.id, bucket_id)
    selector = body.session_id if body.mode == "guest" else body.upload_ids
    plan = prepare_export(db, bucket_id, body.mode, selector)

    return StreamingResponse(
        plan.iter_bytes(storage),
        media_type=plan.content_type,
        headers={
            "Content-Disposition": f'attachment; filename="{plan.filename}"',
            "Cache-Control": "no-cache",
        },
    )


@router.delete("/uploads/{upload_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_upload(
    upload_id: str,
    owner: Owner = Depends(current_owner),
    db: Session = Depends(get_db),
    storage: ObjectStore = Depends(get_storage_service),
):
    delete_upload(db, storage, owner.id, upload_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
