"""Upload constraints for bill pages.

Shared by the backend upload endpoints and the workflow stage store, so a
file the client accepts is never rejected by the server for type or size.
"""

import mimetypes
from typing import Optional

from app.config import settings
from app.core.exceptions import ValidationError

ALLOWED_BILL_MIME_TYPES = (
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "application/pdf",
)

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "application/pdf": ".pdf",
}


def guess_mime_type(filename: str, declared: Optional[str] = None) -> str:
    """Use the declared type unless it is missing or the generic octet-stream"""
    if declared and declared != "application/octet-stream":
        return declared.split(";", 1)[0].strip().lower()
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"


def extension_for(mime_type: str) -> str:
    return _EXTENSIONS.get(mime_type, "")


def format_file_size(size: int) -> str:
    if size <= 0:
        return "0 Bytes"
    value = float(size)
    for unit in ("Bytes", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            break
        value /= 1024
    return f"{value:.1f}".rstrip("0").rstrip(".") + f" {unit}"


def validate_bill_upload(filename: str, mime_type: str, size: int) -> None:
    """
    Raise ValidationError naming the failed constraint.

    Args:
        filename: Original filename (used in the message only)
        mime_type: Content type as declared or guessed
        size: Size in bytes
    """
    if mime_type not in ALLOWED_BILL_MIME_TYPES:
        raise ValidationError(
            f"{filename}: File type not allowed. Use JPG, PNG, GIF, WebP, or PDF."
        )
    if size > settings.BILL_MAX_UPLOAD_BYTES:
        raise ValidationError(
            f"{filename}: File too large. Maximum size is "
            f"{format_file_size(settings.BILL_MAX_UPLOAD_BYTES)}."
        )
    if size <= 0:
        raise ValidationError(f"{filename}: File is empty.")
