# photodrop/services/sessions.py
from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import List, Optional

import structlog
from email_validator import EmailNotValidError, validate_email
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from photodrop.errors import SessionNotFound, ValidationError
from photodrop.models import Bucket, GuestSession, Upload
from photodrop.observability.metrics import session_counter
from photodrop.services.buckets import ensure_usable

logger = structlog.get_logger(__name__)


@dataclass
class SessionResult:
    session: GuestSession
    existing_uploads: List[Upload]
    is_resuming: bool


def normalize_contact(contact: Optional[str]) -> str:
    try:
        checked = validate_email((contact or "").strip(), check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError("A valid e-mail address is required", field="guest_contact", reason=str(e)) from e
    return checked.normalized.lower()


def _clean_guest_name(name: Optional[str]) -> str:
    name = " ".join((name or "").split())
    if len(name) < 2:
        raise ValidationError("Guest name must be at least 2 characters", field="guest_name")
    if len(name) > 100:
        raise ValidationError("Guest name is too long (max 100 characters)", field="guest_name")
    return name


def _find_session(db: Session, bucket_id: str, contact: str) -> Optional[GuestSession]:
    stmt = select(GuestSession).where(
        GuestSession.bucket_id == bucket_id,
        GuestSession.guest_contact == contact,
    )
    return db.scalars(stmt).first()


def _uploads_for(db: Session, session_id: str) -> List[Upload]:
    stmt = select(Upload).where(Upload.session_id == session_id).order_by(Upload.upload_order)
    return list(db.scalars(stmt))


def get_or_create_session(
    db: Session,
    bucket: Bucket,
    guest_name: str,
    guest_contact: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> SessionResult:
    """
    Resume the guest's session in this bucket, or open a new one.

    The contact (e-mail) is the identity key; the name is only stored, so a
    guest who fixes a typo in their name still gets their session back.
    Concurrent first requests for the same contact race on the unique
    (bucket_id, guest_contact) constraint and the loser returns the winner's row.
    Client details are kept from the first request only.
    """
    ensure_usable(bucket)
    name = _clean_guest_name(guest_name)
    contact = normalize_contact(guest_contact)

    existing = _find_session(db, bucket.id, contact)
    if existing is not None:
        session_counter.labels(result="resumed").inc()
        logger.info("session_resumed", bucket_id=bucket.id, session_id=existing.id)
        return SessionResult(existing, _uploads_for(db, existing.id), True)

    session = GuestSession(
        bucket_id=bucket.id,
        guest_name=name,
        guest_contact=contact,
        session_token=secrets.token_hex(32),
        total_images=0,
        upload_seq=0,
        ip_address=ip_address[:64] if ip_address else None,
        user_agent=user_agent[:2000] if user_agent else None,
    )
    db.add(session)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        winner = _find_session(db, bucket.id, contact)
        if winner is None:
            # constraint tripped for another reason (e.g. bucket deleted meanwhile)
            raise
        session_counter.labels(result="resumed").inc()
        logger.info("session_create_raced", bucket_id=bucket.id, session_id=winner.id)
        return SessionResult(winner, _uploads_for(db, winner.id), True)

    db.refresh(session)
    session_counter.labels(result="created").inc()
    logger.info("session_created", bucket_id=bucket.id, session_id=session.id)
    return SessionResult(session, [], False)


def get_session_by_token(db: Session, session_token: str) -> GuestSession:
    if not session_token:
        raise SessionNotFound("Invalid or expired session")
    session = db.scalars(select(GuestSession).where(GuestSession.session_token == session_token)).first()
    if session is None:
        raise SessionNotFound("Invalid or expired session")
    return session
