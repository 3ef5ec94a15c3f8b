"""Image uploads to S3 (staff avatars, deal media)."""
from __future__ import annotations

import logging
import uuid

import boto3
from werkzeug.datastructures import FileStorage

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp"}


class InvalidImage(ValueError):
    pass


def _extension(filename: str) -> str:
    if "." not in filename:
        return ""
    return filename.rsplit(".", 1)[-1].lower()


def upload_image(file: FileStorage, bucket: str, prefix: str) -> tuple[str, str]:
    """Upload ``file`` under ``prefix`` and return ``(key, public_url)``."""
    if not file or not file.filename:
        raise InvalidImage("empty filename")

    extension = _extension(file.filename)
    if extension not in ALLOWED_EXTENSIONS:
        raise InvalidImage(f"unsupported image type: {extension or 'none'}")

    key = f"{prefix.strip('/')}/{uuid.uuid4()}.{extension}"
    s3_client = boto3.client("s3")
    s3_client.upload_fileobj(
        file,
        bucket,
        key,
        ExtraArgs={"ContentType": file.content_type or "image/jpeg"},
    )
    logger.info("Uploaded image to s3://%s/%s", bucket, key)
    return key, f"https://{bucket}.s3.amazonaws.com/{key}"


def delete_image(bucket: str, url: str | None) -> None:
    """Best-effort removal of a previously uploaded image."""
    marker = f"https://{bucket}.s3.amazonaws.com/"
    if not url or not url.startswith(marker):
        return
    try:
        boto3.client("s3").delete_object(Bucket=bucket, Key=url[len(marker):])
    except Exception as exc:
        logger.warning("Failed to delete S3 object %s: %s", url, exc)
