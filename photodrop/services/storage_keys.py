# photodrop/services/storage_keys.py
import os
import re
from pathlib import PurePosixPath
from typing import Optional

# MIME -> safe extension
_MIME_EXT = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/heic": "heic",
    "image/heif": "heif",
    "image/bmp": "bmp",
    "image/tiff": "tiff",
}

_SLUG_RE = re.compile(r"[^a-z0-9_-]+")
_FILENAME_RE = re.compile(r"[^\w.() -]+")


def slugify(value: str, max_len: int = 64) -> str:
    value = (value or "").lower().strip()
    value = _SLUG_RE.sub("-", value)
    value = value.strip("-")[:max_len].strip("-")
    return value or "na"


def s3_key_join(*parts: str) -> str:
    cleaned = [str(p).strip("/ ") for p in parts if p is not None and str(p).strip("/ ")]
    return "/".join(cleaned)


def safe_filename(filename: str, fallback: str = "photo") -> str:
    """Strip directories and unsafe characters from a client supplied filename."""
    name = PurePosixPath((filename or "").replace("\\", "/")).name
    name = _FILENAME_RE.sub("_", name).strip(" .")
    return name[:255] or fallback


def ext_for(filename: str, content_type: Optional[str]) -> str:
    # 1) from the MIME type
    if content_type in _MIME_EXT:
        return _MIME_EXT[content_type]
    # 2) fallback: from the filename
    _, ext = os.path.splitext(filename or "")
    ext = slugify(ext.lstrip("."), max_len=8)
    return ext if ext != "na" else "bin"


def bucket_prefix(project_id: str, bucket_name: str, bucket_id: str) -> str:
    # project-{project_id}/{bucket-name}-{id8}/
    return s3_key_join(f"project-{project_id}", f"{slugify(bucket_name)}-{bucket_id[:8]}") + "/"


def placeholder_key(prefix: str) -> str:
    return s3_key_join(prefix, ".keep")


def stored_filename(upload_order: int, filename: str, content_type: Optional[str]) -> str:
    return f"{upload_order:05d}.{ext_for(filename, content_type)}"


def upload_key(prefix: str, session_id: str, upload_order: int, filename: str, content_type: Optional[str]) -> str:
    """
    Deterministic object key for one admitted photo:
    {bucket prefix}/session-{session_id}/{upload_order:05d}.{ext}
    """
    key = s3_key_join(prefix, f"session-{session_id}", stored_filename(upload_order, filename, content_type))
    if len(key) > 1024:
        raise ValueError("Object key too long")
    return key
