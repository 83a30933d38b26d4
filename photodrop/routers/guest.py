# photodrop/routers/guest.py
"""Public endpoints reached through a bucket's shared link (QR code)."""
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Request, UploadFile, status
from sqlalchemy.orm import Session

from photodrop.config import settings
from photodrop.dependencies import get_db, get_session_factory, get_storage_service
from photodrop.schemas.buckets import BucketPublicOut
from photodrop.schemas.sessions import SessionCreate, SessionOut, SessionResultOut, UploadOut
from photodrop.schemas.uploads import FileOutcomeOut, IngestResultOut, ScanIn
from photodrop.services.buckets import resolve_by_token, resolve_upload_entry
from photodrop.services.ingest import IncomingFile, ingest_uploads
from photodrop.services.scans import ScanSignal, record_scan
from photodrop.services.sessions import get_or_create_session
from photodrop.services.storage import ObjectStore

router = APIRouter(prefix="/guest", tags=["guest"])


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("x-real-ip") or (request.client.host if request.client else "0.0.0.0")


@router.get("/{access_token}", response_model=BucketPublicOut)
def landing(access_token: str, db: Session = Depends(get_db)):
    return BucketPublicOut.model_validate(resolve_upload_entry(db, access_token))


@router.post("/{access_token}/sessions", response_model=SessionResultOut)
def open_session(access_token: str, body: SessionCreate, request: Request, db: Session = Depends(get_db)):
    bucket = resolve_upload_entry(db, access_token)
    result = get_or_create_session(
        db,
        bucket,
        body.guest_name,
        body.guest_email,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return SessionResultOut(
        session=SessionOut.model_validate(result.session),
        max_images=bucket.max_images_per_guest,
        existing_uploads=[UploadOut.model_validate(u) for u in result.existing_uploads],
        is_resuming=result.is_resuming,
    )


@router.post("/sessions/{session_token}/uploads", response_model=IngestResultOut)
def upload_photos(
    session_token: str,
    files: List[UploadFile] = File(...),
    db: Session = Depends(get_db),
    storage: ObjectStore = Depends(get_storage_service),
):
    # read at most one byte past the hard limit; the ingestor rejects oversize files
    read_limit = settings.max_file_size_limit_bytes + 1
    incoming = [
        IncomingFile(
            filename=f.filename or "photo",
            content_type=f.content_type or "",
            data=f.file.read(read_limit),
        )
        for f in files
    ]
    result = ingest_uploads(db, storage, session_token, incoming)
    return IngestResultOut(
        accepted_count=result.accepted_count,
        rejected_count=result.rejected_count,
        total_images=result.total_images,
        max_images=result.max_images,
        uploads=[UploadOut.model_validate(u) for u in result.uploads],
        outcomes=[FileOutcomeOut(**o.__dict__) for o in result.outcomes],
    )


@router.post("/{access_token}/scans", status_code=status.HTTP_202_ACCEPTED)
def track_scan(
    access_token: str,
    request: Request,
    background: BackgroundTasks,
    body: Optional[ScanIn] = None,
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
):
    bucket = resolve_by_token(db, access_token)
    body = body or ScanIn()
    signal = ScanSignal(
        user_agent=body.user_agent or request.headers.get("user-agent", ""),
        referrer=body.referrer or request.headers.get("referer", ""),
        source=body.source,
        ip_address=_client_ip(request),
    )
    background.add_task(record_scan, session_factory, bucket.id, signal)
    return {"accepted": True}
