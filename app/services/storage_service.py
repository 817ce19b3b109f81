"""
S3 (or S3-compatible) object storage for bill pages. Uses global config; no
per-call reconfiguration. boto3 is blocking, so every call runs in a thread.
"""
import asyncio
from functools import lru_cache
from io import BytesIO
from typing import Optional
from uuid import uuid4

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.config import settings
from app.core.exceptions import StorageError
from app.core.logging import get_logger
from app.utils.files import extension_for

logger = get_logger(__name__)


@lru_cache(maxsize=1)
def _s3_client():
    kwargs = {
        "service_name": "s3",
        "region_name": settings.AWS_REGION,
        "config": Config(signature_version="s3v4", s3={"addressing_style": "path"}),
    }
    if settings.S3_ENDPOINT_URL:
        kwargs["endpoint_url"] = settings.S3_ENDPOINT_URL
    # Without explicit keys boto3 falls back to its default credential chain
    if settings.S3_ACCESS_KEY_ID and settings.S3_SECRET_ACCESS_KEY:
        kwargs["aws_access_key_id"] = settings.S3_ACCESS_KEY_ID
        kwargs["aws_secret_access_key"] = settings.S3_SECRET_ACCESS_KEY
    return boto3.client(**kwargs)


def user_prefix(user_id) -> str:
    """Key prefix under which a user's uploads live"""
    return f"{settings.S3_KEY_PREFIX}/{user_id}"


def build_key(key_prefix: str, filename: str, content_type: Optional[str] = None) -> str:
    """Fresh UUID key; the extension follows the content type when it is a known one"""
    ext = extension_for(content_type) if content_type else ""
    if not ext and "." in filename:
        ext = "." + filename.rsplit(".", 1)[-1].lower()
    return f"{key_prefix}/{uuid4().hex}{ext}"


async def upload(
    key_prefix: str,
    filename: str,
    content: bytes,
    content_type: Optional[str] = None,
) -> str:
    """
    Upload bytes and return the new object key.
    key_prefix: e.g. user_prefix(user.id)
    filename: original filename (the key is a fresh UUID; the extension comes
        from content_type, or from the filename when the type is unknown).
    """
    object_name = build_key(key_prefix, filename, content_type)
    extra = {"ContentType": content_type} if content_type else {}

    def _put():
        try:
            _s3_client().upload_fileobj(
                BytesIO(content),
                settings.S3_BUCKET_NAME,
                object_name,
                ExtraArgs=extra,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Storage upload failed: {e}") from e

    await asyncio.to_thread(_put)
    logger.info("Stored object", extra={"storage_key": object_name, "size": len(content)})
    return object_name


async def get_content(key: str) -> bytes:
    """Fetch an object's bytes"""

    def _get() -> bytes:
        try:
            obj = _s3_client().get_object(Bucket=settings.S3_BUCKET_NAME, Key=key)
            return obj["Body"].read()
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                raise StorageError(f"Stored file not found: {key}") from e
            raise StorageError(f"Storage read failed: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Storage read failed: {e}") from e

    return await asyncio.to_thread(_get)


async def get_download_url(key: str) -> str:
    """Presigned GET URL valid for S3_PRESIGN_EXPIRES_SECONDS"""

    def _sign() -> str:
        try:
            return _s3_client().generate_presigned_url(
                "get_object",
                Params={"Bucket": settings.S3_BUCKET_NAME, "Key": key},
                ExpiresIn=settings.S3_PRESIGN_EXPIRES_SECONDS,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Could not sign download URL: {e}") from e

    return await asyncio.to_thread(_sign)


async def delete(key: str) -> bool:
    """
    Best-effort delete. Returns False (and logs) instead of raising, since
    the ledger row is already gone when this runs.
    """

    def _delete():
        _s3_client().delete_object(Bucket=settings.S3_BUCKET_NAME, Key=key)

    try:
        await asyncio.to_thread(_delete)
    except (ClientError, BotoCoreError) as e:
        logger.warning("Storage cleanup failed", extra={"storage_key": key, "error": str(e)})
        return False
    return True
