# photodrop/services/storage.py
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import structlog
from botocore.exceptions import BotoCoreError, ClientError

from photodrop.config import settings
from photodrop.errors import StorageFailure

logger = structlog.get_logger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "NotFound", "404"}


# =========================
# Abstract object store
# =========================
class ObjectStore(ABC):
    """Durable binary storage keyed by path."""

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store bytes under key and return a retrievable URL."""

    @abstractmethod
    def get(self, key: str) -> bytes:
        """Return the stored bytes; raises StorageFailure."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Best-effort delete; never raises."""

    @abstractmethod
    def public_url(self, key: str) -> str:
        """URL under which the object can be retrieved."""


# =========================
# Local storage
# =========================
class LocalStorage(ObjectStore):
    """Filesystem backed store for development and tests."""

    def __init__(self, base_path: str = "data/guest_uploads", base_url: str = "/files"):
        self.base_path = Path(base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.base_url = base_url.rstrip("/")

    def _full_path(self, key: str) -> Path:
        path = (self.base_path / key.lstrip("/")).resolve()
        if self.base_path not in path.parents:
            raise StorageFailure(f"key escapes storage root: {key}")
        return path

    def put(self, key: str, data: bytes, content_type: str) -> str:
        path = self._full_path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            raise StorageFailure(f"local write failed: {e}", key=key) from e
        logger.debug("object_stored", backend="local", key=key, size=len(data))
        return self.public_url(key)

    def get(self, key: str) -> bytes:
        path = self._full_path(key)
        if not path.is_file():
            raise StorageFailure(f"object not found: {key}", not_found=True, key=key)
        try:
            return path.read_bytes()
        except OSError as e:
            raise StorageFailure(f"local read failed: {e}", key=key) from e

    def delete(self, key: str) -> bool:
        try:
            path = self._full_path(key)
            if path.exists():
                path.unlink()
                return True
            return False
        except (OSError, StorageFailure) as e:
            logger.warning("object_delete_failed", backend="local", key=key, error=str(e))
            return False

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/{key.lstrip('/')}"


# =========================
# S3 storage
# =========================
class S3Storage(ObjectStore):
    """Amazon S3 (or S3 compatible) object store."""

    def __init__(self, bucket: str, client=None, region: str = "eu-west-1", public_base_url: Optional[str] = None):
        if client is None:
            from photodrop.infra.s3_client import get_s3
            client = get_s3()
        self.bucket = bucket
        self.region = region
        self.s3_client = client
        self._public_base_url = (public_base_url or "").rstrip("/")

    def _failure(self, op: str, key: str, e: Exception) -> StorageFailure:
        if isinstance(e, ClientError):
            code = str(e.response.get("Error", {}).get("Code", ""))
            return StorageFailure(
                f"S3 {op} failed: {code or e}",
                not_found=code in _NOT_FOUND_CODES,
                key=key,
                aws_code=code,
            )
        return StorageFailure(f"S3 {op} failed: {e}", key=key)

    def put(self, key: str, data: bytes, content_type: str) -> str:
        try:
            self.s3_client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        except (ClientError, BotoCoreError) as e:
            raise self._failure("put", key, e) from e
        logger.debug("object_stored", backend="s3", key=key, size=len(data))
        return self.public_url(key)

    def get(self, key: str) -> bytes:
        try:
            resp = self.s3_client.get_object(Bucket=self.bucket, Key=key)
            return resp["Body"].read()
        except (ClientError, BotoCoreError) as e:
            raise self._failure("get", key, e) from e

    def delete(self, key: str) -> bool:
        try:
            self.s3_client.delete_object(Bucket=self.bucket, Key=key)
            return True
        except (ClientError, BotoCoreError) as e:
            logger.warning("object_delete_failed", backend="s3", key=key, error=str(e))
            return False

    def public_url(self, key: str) -> str:
        if self._public_base_url:
            return f"{self._public_base_url}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"


# =========================
# Factory
# =========================
def get_storage() -> ObjectStore:
    """Return the storage backend configured in settings."""
    backend = settings.storage_backend.lower()

    if backend == "s3":
        if not settings.S3_BUCKET:
            raise ValueError("S3_BUCKET is required for the s3 storage backend")
        return S3Storage(bucket=settings.S3_BUCKET, region=settings.AWS_REGION)

    if backend == "local":
        return LocalStorage(
            base_path=settings.local_storage_path,
            base_url=f"{settings.public_base_url.rstrip('/')}/files",
        )

    raise ValueError(f"Unknown storage backend: {backend}")
