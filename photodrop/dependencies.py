# photodrop/dependencies.py
from __future__ import annotations

from functools import lru_cache

from photodrop.db import SessionLocal, get_db  # noqa: F401  (re-exported for routers)
from photodrop.services.storage import ObjectStore, get_storage


@lru_cache(maxsize=1)
def get_storage_service() -> ObjectStore:
    """Process-wide storage backend (S3/local) chosen from settings."""
    return get_storage()


def get_session_factory():
    """Factory handed to background tasks, which outlive the request session."""
    return SessionLocal
