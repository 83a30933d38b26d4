from datetime import timedelta

import pytest

from photodrop.errors import BucketNotFound
from photodrop.models import GuestSession
from photodrop.services.gallery import build_gallery
from photodrop.services.ingest import IncomingFile, delete_upload, ingest_uploads
from photodrop.services.sessions import get_or_create_session

from conftest import OWNER


def _guest(db, bucket, name, email, minutes_ago):
    s = get_or_create_session(db, bucket, name, email).session
    s.created_at = s.created_at - timedelta(minutes=minutes_ago)
    db.commit()
    return s


def test_gallery_groups_per_guest_with_derived_stats(db, storage, bucket):
    alice = _guest(db, bucket, "Alice", "alice@example.com", minutes_ago=30)
    bob = _guest(db, bucket, "Bob", "bob@example.com", minutes_ago=10)
    _guest(db, bucket, "Lurker", "lurker@example.com", minutes_ago=5)  # no photos

    ingest_uploads(db, storage, alice.session_token, [
        IncomingFile("a1.jpg", "image/jpeg", b"x" * 100),
        IncomingFile("a2.jpg", "image/jpeg", b"x" * 200),
    ])
    ingest_uploads(db, storage, bob.session_token, [IncomingFile("b1.png", "image/png", b"x" * 300)])

    g = build_gallery(db, bucket.id)

    assert g.bucket_id == bucket.id
    assert g.name == "Wedding Guests"
    assert [guest.guest_name for guest in g.guests] == ["Bob", "Alice"]
    assert [p.original_filename for p in g.guests[1].photos] == ["a1.jpg", "a2.jpg"]
    assert g.guests[1].total_images == 2

    assert g.stats.total_guests == 2
    assert g.stats.total_images == 3
    assert g.stats.total_size_bytes == 600
    assert g.stats.total_size_mb == 0.0


def test_gallery_size_in_mb_is_rounded(db, storage, make_bucket):
    b = make_bucket(name="Big", max_file_size_bytes=3 * 1024 * 1024)
    s = get_or_create_session(db, b, "Carol", "carol@example.com").session
    ingest_uploads(db, storage, s.session_token, [IncomingFile("big.jpg", "image/jpeg", b"x" * 1_500_000)])

    g = build_gallery(db, b.id)
    assert g.stats.total_size_mb == 1.43


def test_gallery_reflects_deletes(db, storage, bucket):
    s = get_or_create_session(db, bucket, "Alice", "alice@example.com").session
    r = ingest_uploads(db, storage, s.session_token, [IncomingFile("a.jpg", "image/jpeg", b"a")])
    delete_upload(db, storage, OWNER, r.uploads[0].id)

    g = build_gallery(db, bucket.id)
    assert g.guests == []
    assert g.stats.total_images == 0
    assert db.query(GuestSession).count() == 1


def test_gallery_unknown_bucket(db):
    with pytest.raises(BucketNotFound):
        build_gallery(db, "missing")
