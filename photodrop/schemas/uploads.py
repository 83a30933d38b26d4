# photodrop/schemas/uploads.py
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from photodrop.schemas.sessions import UploadOut


class FileOutcomeOut(BaseModel):
    filename: str
    accepted: bool
    reason: Optional[str] = None  # type|size|quota|storage|bucket_unavailable
    message: Optional[str] = None
    upload_id: Optional[str] = None
    upload_order: Optional[int] = None


class IngestResultOut(BaseModel):
    accepted_count: int
    rejected_count: int
    total_images: int
    max_images: int
    uploads: List[UploadOut]
    outcomes: List[FileOutcomeOut]


class ExportRequest(BaseModel):
    mode: Literal["all", "guest", "selected"] = "all"
    session_id: Optional[str] = None
    upload_ids: List[str] = Field(default_factory=list)


class ScanIn(BaseModel):
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    source: str = Field("qr_code", max_length=32)
