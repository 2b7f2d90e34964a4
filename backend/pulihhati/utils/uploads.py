"""Validation helpers for uploaded image files."""

from __future__ import annotations

import io

from PIL import Image, UnidentifiedImageError

ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp")

# Pillow format name -> canonical MIME type.
_FORMAT_MIME = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "WEBP": "image/webp",
}


class InvalidUpload(ValueError):
    """Uploaded file failed validation; `status_code` is the HTTP code to use."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


def validate_filename(filename: str | None) -> None:
    if not filename or len(filename) > 200:
        raise InvalidUpload("invalid filename")
    if "/" in filename or "\\" in filename:
        raise InvalidUpload("invalid filename path")


def check_content_type(content_type: str | None) -> None:
    if not content_type or not content_type.startswith("image/"):
        raise InvalidUpload("Only image files are allowed.")
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise InvalidUpload("Invalid file type. Only JPEG, PNG, GIF, and WebP images are allowed.")


def sniff_image(payload: bytes) -> str:
    """Verify `payload` decodes as an allowed image; return its MIME type."""
    try:
        img = Image.open(io.BytesIO(payload))
        fmt = img.format
        img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise InvalidUpload("unsupported file content; expected an image", status_code=415) from exc
    mime = _FORMAT_MIME.get(fmt or "")
    if mime is None:
        raise InvalidUpload("unsupported image format", status_code=415)
    return mime


def read_limited(stream, max_bytes: int) -> bytes:
    """Read at most `max_bytes` from `stream`, failing if there is more."""
    payload = stream.read(max_bytes + 1)
    if len(payload) > max_bytes:
        raise InvalidUpload(f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB.")
    if not payload:
        raise InvalidUpload("No file uploaded. Please select an image file.")
    return payload
