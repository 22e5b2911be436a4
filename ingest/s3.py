from pathlib import Path
import logging
import boto3
from botocore.config import Config as BotoConfig
from django.conf import settings

logger = logging.getLogger(__name__)

# Minimal content-type hints for HLS and artwork
CONTENT_TYPES = {
    ".m3u8": "application/vnd.apple.mpegurl",
    ".ts": "video/MP2T",
    ".m2ts": "video/MP2T",
    ".mp4": "video/mp4",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
}


def get_s3_client():
    """
    SDK client for server-side uploads.
    """
    session = boto3.session.Session(
        aws_access_key_id=settings.S3_ACCESS_KEY,
        aws_secret_access_key=settings.S3_SECRET_KEY,
        region_name=settings.S3_REGION,
    )
    return session.client(
        "s3",
        endpoint_url=settings.S3_ENDPOINT_URL,  # e.g. http://127.0.0.1:9000
        config=BotoConfig(
            s3={"addressing_style": "path"},
            signature_version="s3v4",
        ),
    )


def public_base_url(prefix: str) -> str:
    """
    Direct object URL root against the PUBLIC endpoint, e.g.
    http://127.0.0.1:9000/media-local/content
    """
    base = f"{settings.S3_PUBLIC_ENDPOINT.rstrip('/')}/{settings.S3_BUCKET}"
    return f"{base}/{prefix}" if prefix else base


def upload_file(local_path, key: str, s3=None):
    """
    Upload a single file to S3/MinIO with a Content-Type guessed from its suffix.
    """
    s3 = s3 or get_s3_client()
    content_type = CONTENT_TYPES.get(Path(local_path).suffix.lower())
    extra = {"ContentType": content_type} if content_type else None
    s3.upload_file(str(local_path), settings.S3_BUCKET, key, ExtraArgs=extra)


def upload_dir(local_dir, key_prefix: str, skip=()) -> int:
    """
    Recursively upload all files under local_dir to bucket with prefix key_prefix.
    Relative paths listed in ``skip`` (e.g. raw source videos) are left out.
    Returns the number of uploaded objects.
    """
    s3 = get_s3_client()
    base = Path(local_dir)
    count = 0

    for p in sorted(base.rglob("*")):
        if not p.is_file():
            continue

        rel = p.relative_to(base).as_posix()
        if rel in skip:
            continue
        key = f"{key_prefix}/{rel}" if key_prefix else rel

        upload_file(p, key, s3=s3)
        count += 1

    logger.info("Uploaded %d objects from %s to s3://%s/%s", count, base, settings.S3_BUCKET, key_prefix)
    return count
