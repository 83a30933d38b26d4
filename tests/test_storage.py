import io

import boto3
import pytest
from botocore.response import StreamingBody
from botocore.stub import Stubber

from photodrop.errors import StorageFailure
from photodrop.services.storage import LocalStorage, S3Storage
from photodrop.services.storage_keys import bucket_prefix, safe_filename, slugify, upload_key


def test_local_storage_roundtrip(tmp_path):
    store = LocalStorage(base_path=str(tmp_path), base_url="http://files.test/")
    url = store.put("p/b/session-1/00001.jpg", b"data", "image/jpeg")

    assert url == "http://files.test/p/b/session-1/00001.jpg"
    assert store.get("p/b/session-1/00001.jpg") == b"data"
    assert store.delete("p/b/session-1/00001.jpg") is True
    assert store.delete("p/b/session-1/00001.jpg") is False

    with pytest.raises(StorageFailure) as exc:
        store.get("p/b/session-1/00001.jpg")
    assert exc.value.not_found is True


def test_local_storage_rejects_traversal(tmp_path):
    store = LocalStorage(base_path=str(tmp_path / "root"))
    with pytest.raises(StorageFailure):
        store.put("../escape.jpg", b"x", "image/jpeg")
    assert store.delete("../escape.jpg") is False


@pytest.fixture
def s3():
    client = boto3.client(
        "s3",
        region_name="eu-west-1",
        aws_access_key_id="test",
        aws_secret_access_key="test",
    )
    with Stubber(client) as stubber:
        yield client, stubber


def test_s3_put_and_get(s3):
    client, stubber = s3
    store = S3Storage(bucket="photos", client=client, region="eu-west-1")

    stubber.add_response(
        "put_object",
        {},
        {"Bucket": "photos", "Key": "k/1.jpg", "Body": b"abc", "ContentType": "image/jpeg"},
    )
    stubber.add_response(
        "get_object",
        {"Body": StreamingBody(io.BytesIO(b"abc"), 3)},
        {"Bucket": "photos", "Key": "k/1.jpg"},
    )

    assert store.put("k/1.jpg", b"abc", "image/jpeg") == "https://photos.s3.eu-west-1.amazonaws.com/k/1.jpg"
    assert store.get("k/1.jpg") == b"abc"
    stubber.assert_no_pending_responses()


def test_s3_errors_are_translated(s3):
    client, stubber = s3
    store = S3Storage(bucket="photos", client=client, public_base_url="https://cdn.test/")

    stubber.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)
    stubber.add_client_error("put_object", service_error_code="SlowDown", http_status_code=503)
    stubber.add_client_error("delete_object", service_error_code="AccessDenied", http_status_code=403)

    with pytest.raises(StorageFailure) as exc:
        store.get("missing.jpg")
    assert exc.value.not_found is True

    with pytest.raises(StorageFailure) as exc:
        store.put("k.jpg", b"x", "image/jpeg")
    assert exc.value.not_found is False

    assert store.delete("k.jpg") is False
    assert store.public_url("a/b.jpg") == "https://cdn.test/a/b.jpg"


def test_key_helpers():
    assert slugify("Anna & Tom's Wedding!") == "anna-tom-s-wedding"
    assert slugify("***") == "na"
    assert bucket_prefix("p1", "My Bucket", "abcdef1234") == "project-p1/my-bucket-abcdef12/"
    assert upload_key("project-p1/my-bucket-abcdef12/", "s1", 7, "IMG.HEIC", "image/heic") == (
        "project-p1/my-bucket-abcdef12/session-s1/00007.heic"
    )
    assert upload_key("pre/", "s1", 1, "raw.cr2", "application/octet-stream").endswith("00001.cr2")
    assert safe_filename("C:\\Users\\me\\Été 2024.jpg") == "Été 2024.jpg"
    assert safe_filename("../../etc/passwd") == "passwd"
    assert safe_filename("") == "photo"
