import base64
import logging
from typing import Optional
from urllib.parse import urlparse

import boto3
from quiz_pipeline.core.config import settings

logger = logging.getLogger(__name__)

# Local: uses access key from .env
# Production (EC2): uses IAM role attached to instance
if settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
    s3_client = boto3.client(
        "s3",
        region_name=settings.AWS_REGION,
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
    )
else:
    s3_client = boto3.client(
        "s3",
        region_name=settings.AWS_REGION,
    )


def object_url(key: str) -> str:
    return f"https://{settings.AWS_S3_BUCKET}.s3.{settings.AWS_REGION}.amazonaws.com/{key}"


def key_from_url(url: str) -> Optional[str]:
    """Object key for a URL produced by object_url, None for foreign URLs"""
    parsed = urlparse(url)
    if parsed.netloc != f"{settings.AWS_S3_BUCKET}.s3.{settings.AWS_REGION}.amazonaws.com":
        return None
    return parsed.path.lstrip("/") or None


def upload_bytes_to_s3(data: bytes, key: str, content_type: str) -> str:
    """
    Uploads raw bytes to S3 and returns an HTTPS URL.
    """
    try:
        s3_client.put_object(
            Bucket=settings.AWS_S3_BUCKET,
            Key=key,
            Body=data,
            ContentType=content_type,
        )
        return object_url(key)
    except Exception as e:
        print(f"❌ S3 Upload Error: {str(e)}")
        raise


def upload_data_url_to_s3(data_url: str, key: str) -> str:
    """Decode a base64 data URL (data:image/png;base64,...) and upload it"""
    header, _, encoded = data_url.partition(",")
    content_type = header[len("data:"):].split(";")[0] or "application/octet-stream"
    return upload_bytes_to_s3(base64.b64decode(encoded), key, content_type)


def delete_s3_objects(urls: list[str]) -> int:
    """Best-effort delete of pipeline-owned objects. Returns how many were removed."""
    keys = [key for key in (key_from_url(url) for url in urls) if key]
    if not keys:
        return 0

    try:
        response = s3_client.delete_objects(
            Bucket=settings.AWS_S3_BUCKET,
            Delete={"Objects": [{"Key": key} for key in keys], "Quiet": True},
        )
    except Exception as e:
        logger.warning("S3 cleanup failed for %s objects: %s", len(keys), e)
        return 0

    errors = response.get("Errors", [])
    for error in errors:
        logger.warning("S3 cleanup failed for %s: %s", error.get("Key"), error.get("Message"))
    return len(keys) - len(errors)
