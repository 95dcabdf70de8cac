# bulkexport/infra/s3_client.py

import logging
import boto3
from botocore.config import Config

from bulkexport.core.settings import settings

logger = logging.getLogger(__name__)

_s3_client = None


def build_s3_client(max_pool_connections: int = 10):
    """Nieuwe S3 client; pool groot genoeg voor het aantal upload-workers."""
    cfg = Config(
        region_name=settings.S3_REGION,
        retries={"max_attempts": settings.s3_max_attempts, "mode": "standard"},
        connect_timeout=settings.s3_connect_timeout,
        read_timeout=settings.s3_read_timeout,
        max_pool_connections=max_pool_connections,
    )
    return boto3.client("s3", endpoint_url=settings.S3_ENDPOINT_URL, config=cfg)


def get_s3():
    """Lazy singleton S3 client met standaardconfig."""
    global _s3_client
    if _s3_client is None:
        _s3_client = build_s3_client()
        logger.info(
            "S3 client initialized region=%s bucket=%s endpoint=%s",
            settings.S3_REGION, settings.S3_BUCKET, settings.S3_ENDPOINT_URL,
        )
    return _s3_client


def get_bucket() -> str:
    if not settings.S3_BUCKET:
        raise RuntimeError("S3_BUCKET ontbreekt in de environment variables")
    return settings.S3_BUCKET
