# photodrop/infra/s3_client.py
from typing import Optional

import boto3
import structlog
from botocore.config import Config

from photodrop.config import settings

logger = structlog.get_logger(__name__)

_s3_client = None


def build_s3_client(region: Optional[str] = None, endpoint_url: Optional[str] = None):
    cfg = Config(
        region_name=region or settings.AWS_REGION,
        retries={"max_attempts": 5, "mode": "standard"},
        connect_timeout=3,
        read_timeout=10,
    )
    return boto3.client("s3", endpoint_url=endpoint_url or settings.S3_ENDPOINT_URL, config=cfg)


def get_s3():
    """Lazy singleton S3 client with the default config."""
    global _s3_client
    if _s3_client is None:
        _s3_client = build_s3_client()
        logger.info("s3_client_initialized", region=settings.AWS_REGION, bucket=settings.S3_BUCKET)
    return _s3_client
