# photodrop/observability/metrics.py
from fastapi import APIRouter
from starlette.responses import Response

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

router = APIRouter(tags=["observability"])

upload_counter = Counter(
    "photodrop_uploads_total",
    "Per-file ingestion outcomes",
    ["result"],  # accepted|type|size|quota|storage|bucket_unavailable
)

upload_size_hist = Histogram(
    "photodrop_upload_size_bytes",
    "Sizes of accepted guest photos",
    buckets=(1e5, 3e5, 1e6, 3e6, 1e7, 3e7, 5e7),
)

session_counter = Counter(
    "photodrop_sessions_total",
    "Guest sessions resolved",
    ["result"],  # created|resumed
)

archive_entry_counter = Counter(
    "photodrop_archive_entries_total",
    "Archive entries written or skipped",
    ["result"],  # written|skipped
)

scan_counter = Counter(
    "photodrop_scans_total",
    "Scan tracking writes",
    ["result"],  # recorded|error
)


@router.get("/metrics", include_in_schema=True)
def metrics() -> Response:
    # Prometheus expects text/plain; version=0.0.4
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
