import os
import tempfile

# settings are read at import time; keep tests away from the dev database and data dir
_TMP = tempfile.mkdtemp(prefix="photodrop-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TMP}/app.db")
os.environ.setdefault("LOCAL_STORAGE_PATH", f"{_TMP}/objects")
os.environ.setdefault("STORAGE_BACKEND", "local")
# Dummy env so boto3 does not go looking for credentials
os.environ.setdefault("AWS_ACCESS_KEY_ID", "test")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "test")
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")

import threading
import time
from typing import Callable, Dict, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from photodrop.db import Base, make_engine
from photodrop import models  # noqa: F401  (registers tables on Base)
from photodrop.errors import StorageFailure
from photodrop.models import Project
from photodrop.services import buckets as bucket_service
from photodrop.services.storage import ObjectStore

OWNER = "owner-1"
OTHER_OWNER = "owner-2"


class MemoryStorage(ObjectStore):
    """In-memory object store with failure injection."""

    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.content_types: Dict[str, str] = {}
        self.put_calls = 0
        self.get_calls = 0
        self.fail_put: Optional[Callable[[str], bool]] = None
        self.fail_get: Optional[Callable[[str], bool]] = None
        self.put_delay: float = 0.0
        self.before_put: Optional[Callable[[str], None]] = None
        self._lock = threading.Lock()

    def put(self, key: str, data: bytes, content_type: str) -> str:
        with self._lock:
            self.put_calls += 1
        if self.before_put:
            self.before_put(key)
        if self.put_delay:
            time.sleep(self.put_delay)
        if self.fail_put and self.fail_put(key):
            raise StorageFailure("injected put failure", key=key)
        with self._lock:
            self.objects[key] = data
            self.content_types[key] = content_type
        return self.public_url(key)

    def get(self, key: str) -> bytes:
        with self._lock:
            self.get_calls += 1
        if self.fail_get and self.fail_get(key):
            raise StorageFailure("injected get failure", key=key)
        with self._lock:
            if key not in self.objects:
                raise StorageFailure(f"object not found: {key}", not_found=True, key=key)
            return self.objects[key]

    def delete(self, key: str) -> bool:
        with self._lock:
            return self.objects.pop(key, None) is not None

    def public_url(self, key: str) -> str:
        return f"memory://{key}"

    def photo_keys(self):
        return sorted(k for k in self.objects if not k.endswith(".keep"))


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    s = session_factory()
    yield s
    s.close()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def project(db):
    p = Project(owner_id=OWNER, name="Anna & Tom wedding")
    db.add(p)
    db.commit()
    db.refresh(p)
    return p


@pytest.fixture
def make_bucket(db, storage, project):
    def _make(**kwargs):
        kwargs.setdefault("name", "Wedding Guests")
        return bucket_service.create_bucket(db, storage, OWNER, project.id, **kwargs)

    return _make


@pytest.fixture
def bucket(make_bucket):
    return make_bucket(max_images_per_guest=3, max_file_size_bytes=1024)


@pytest.fixture
def client(session_factory, storage):
    from photodrop.dependencies import get_db, get_session_factory, get_storage_service
    from photodrop.main import app

    def _get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_storage_service] = lambda: storage
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def owner_headers():
    return {"X-Owner-Id": OWNER}
