# photodrop/errors.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from photodrop.core.logging_config import logger


class PhotoDropError(Exception):
    """Base class; every subclass maps to one HTTP status and error code."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str = "", **details: Any):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return {"ok": False, "error": body}


class ValidationError(PhotoDropError):
    status_code = 400
    code = "validation_error"


class NotAuthorized(PhotoDropError):
    status_code = 403
    code = "not_authorized"


class NotFound(PhotoDropError):
    status_code = 404
    code = "not_found"


class BucketNotFound(NotFound):
    code = "bucket_not_found"


class SessionNotFound(NotFound):
    code = "session_not_found"


class UploadNotFound(NotFound):
    code = "upload_not_found"


class BucketUnavailable(PhotoDropError):
    """Bucket exists but is inactive or expired."""

    status_code = 410
    code = "bucket_unavailable"


class NoContent(PhotoDropError):
    status_code = 404
    code = "no_content"


class StorageFailure(PhotoDropError):
    status_code = 502
    code = "storage_failure"

    def __init__(self, message: str = "", *, not_found: bool = False, **details: Any):
        super().__init__(message, **details)
        self.not_found = not_found


class ReservationConflict(PhotoDropError):
    """Quota reservation kept losing the compare-and-swap race."""

    status_code = 409
    code = "reservation_conflict"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(PhotoDropError)
    async def _photodrop_error_handler(request: Request, exc: PhotoDropError):
        log = logger.bind(path=str(request.url.path), code=exc.code)
        if exc.status_code >= 500:
            log.error("request_error", message=exc.message)
        else:
            log.info("request_rejected", message=exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())
