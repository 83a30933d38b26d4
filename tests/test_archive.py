import io
import zipfile

import pytest

from photodrop.errors import NoContent, SessionNotFound, ValidationError
from photodrop.services.archive import guest_folder_name, prepare_export
from photodrop.services.ingest import IncomingFile, ingest_uploads
from photodrop.services.sessions import get_or_create_session


def _upload(db, storage, bucket, name, email, files):
    s = get_or_create_session(db, bucket, name, email).session
    r = ingest_uploads(db, storage, s.session_token, [IncomingFile(f, "image/jpeg", f.encode()) for f in files])
    return s, r


def _zip(plan, storage):
    return zipfile.ZipFile(io.BytesIO(b"".join(plan.iter_bytes(storage))))


def test_export_guest_uses_bare_filenames(db, storage, bucket):
    alice, _ = _upload(db, storage, bucket, "Alice Smith", "alice@example.com", ["a.jpg", "b.jpg"])
    _upload(db, storage, bucket, "Bob", "bob@example.com", ["c.jpg"])

    plan = prepare_export(db, bucket.id, "guest", alice.id)
    assert plan.filename == "wedding-guests-alice-smith-photos.zip"
    assert plan.content_type == "application/zip"

    zf = _zip(plan, storage)
    assert zf.namelist() == ["a.jpg", "b.jpg"]
    assert zf.read("b.jpg") == b"b.jpg"
    assert zf.testzip() is None


def test_export_all_partitions_by_guest(db, storage, bucket):
    _upload(db, storage, bucket, "Alice", "alice@example.com", ["IMG_1.jpg", "IMG_1.jpg"])
    _upload(db, storage, bucket, "Bob/../Evil", "bob@example.com", ["IMG_1.jpg"])

    plan = prepare_export(db, bucket.id, "all")
    assert plan.filename == "wedding-guests-photos.zip"

    zf = _zip(plan, storage)
    assert zf.namelist() == ["Alice/IMG_1.jpg", "Alice/IMG_1 (2).jpg", "Bob-Evil/IMG_1.jpg"]


def test_guests_with_same_folder_name_are_kept_apart(db, storage, bucket):
    first, _ = _upload(db, storage, bucket, "Sam", "sam1@example.com", ["x.jpg"])
    second, _ = _upload(db, storage, bucket, "Sam", "sam2@example.com", ["x.jpg"])

    names = _zip(prepare_export(db, bucket.id, "all"), storage).namelist()
    assert names == ["Sam/x.jpg", f"Sam ({second.id[:8]})/x.jpg"]


def test_export_selected_ignores_foreign_ids(db, storage, bucket, make_bucket):
    _, r = _upload(db, storage, bucket, "Alice", "alice@example.com", ["a.jpg", "b.jpg", "c.jpg"])
    other = make_bucket(name="Other")
    _, foreign = _upload(db, storage, other, "Eve", "eve@example.com", ["e.jpg"])

    ids = [r.uploads[2].id, r.uploads[0].id, foreign.uploads[0].id]
    plan = prepare_export(db, bucket.id, "selected", ids)

    assert plan.filename == "wedding-guests-selected-photos.zip"
    assert [e.arcname for e in plan.entries] == ["Alice/a.jpg", "Alice/c.jpg"]


def test_missing_object_is_skipped_and_archive_finalised(db, storage, bucket):
    _, r = _upload(db, storage, bucket, "Alice", "alice@example.com", ["a.jpg", "b.jpg", "c.jpg"])
    del storage.objects[r.uploads[1].storage_key]

    zf = _zip(prepare_export(db, bucket.id, "all"), storage)
    assert zf.namelist() == ["Alice/a.jpg", "Alice/c.jpg"]
    assert zf.testzip() is None


def test_transient_fetch_failure_is_retried(db, storage, bucket):
    _, r = _upload(db, storage, bucket, "Alice", "alice@example.com", ["a.jpg"])
    flaky = {"left": 1}

    def fail_once(key):
        if flaky["left"]:
            flaky["left"] -= 1
            return True
        return False

    storage.fail_get = fail_once
    zf = _zip(prepare_export(db, bucket.id, "all"), storage)
    assert zf.namelist() == ["Alice/a.jpg"]


def test_stream_yields_per_entry_and_stops_on_close(db, storage, bucket):
    _upload(db, storage, bucket, "Alice", "alice@example.com", ["a.jpg", "b.jpg", "c.jpg"])
    plan = prepare_export(db, bucket.id, "all")

    stream = plan.iter_bytes(storage)
    first = next(stream)
    assert first.startswith(b"PK\x03\x04")
    assert storage.get_calls == 1

    stream.close()
    assert storage.get_calls == 1


def test_export_errors(db, storage, bucket, make_bucket):
    with pytest.raises(NoContent):
        prepare_export(db, bucket.id, "all")

    other = make_bucket(name="Other")
    stranger, _ = _upload(db, storage, other, "Eve", "eve@example.com", ["e.jpg"])
    with pytest.raises(SessionNotFound):
        prepare_export(db, bucket.id, "guest", stranger.id)
    with pytest.raises(ValidationError):
        prepare_export(db, bucket.id, "selected", [])
    with pytest.raises(ValidationError):
        prepare_export(db, bucket.id, "everything")

    # a guest without photos has nothing to export
    quiet = get_or_create_session(db, bucket, "Quiet", "quiet@example.com").session
    with pytest.raises(NoContent):
        prepare_export(db, bucket.id, "guest", quiet.id)


def test_guest_folder_name():
    assert guest_folder_name("  Anna   Maria ") == "Anna Maria"
    assert guest_folder_name("a/b\\c") == "a-b-c"
    assert guest_folder_name("...") == "guest"
