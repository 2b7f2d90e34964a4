"""Avatar storage on the Cloudinary image CDN.

Uploads and deletes go to Cloudinary's REST upload API over httpx.
Request signatures and delivery URLs come from the `cloudinary` SDK so
they follow its encoding rules exactly.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx
from cloudinary.utils import api_sign_request, cloudinary_url

from ..config import settings
from ..errors import ServiceNotConfiguredError, UpstreamServiceError

logger = logging.getLogger("pulihhati.image_host")

API_BASE = "https://api.cloudinary.com/v1_1"
AVATAR_FOLDER = "pulih-hati/avatars"

# Stored transformation applied on upload.
AVATAR_TRANSFORMATION = "c_fill,g_face,h_500,w_500,q_auto:good,f_auto"
# Derived sizes generated eagerly so the first request is fast.
AVATAR_EAGER = "c_fill,g_face,h_100,w_100,q_auto:good|c_fill,g_face,h_300,w_300,q_auto:good"

AVATAR_SIZES = {
    "small": 100,
    "medium": 300,
    "large": 500,
}

_TIMEOUT_S = 30.0


def _credentials() -> tuple[str, str, str]:
    if not settings.cloudinary_configured:
        raise ServiceNotConfiguredError("Image upload service is not configured")
    return settings.CLOUDINARY_CLOUD_NAME, settings.CLOUDINARY_API_KEY, settings.CLOUDINARY_API_SECRET


def sign_params(params: dict[str, Any], api_secret: str) -> str:
    """Return the SHA-1 request signature for `params`; empty values are not signed."""
    return api_sign_request({k: v for k, v in params.items() if v not in (None, "")}, api_secret)


def _signed_post(action: str, params: dict[str, Any], files: dict | None = None) -> dict[str, Any]:
    cloud_name, api_key, api_secret = _credentials()
    body = {k: v for k, v in params.items() if v not in (None, "")}
    body["timestamp"] = int(time.time())
    body["signature"] = sign_params(body, api_secret)
    body["api_key"] = api_key
    url = f"{API_BASE}/{cloud_name}/image/{action}"
    try:
        with httpx.Client(timeout=_TIMEOUT_S) as client:
            resp = client.post(url, data=body, files=files)
    except httpx.HTTPError as exc:
        raise UpstreamServiceError(f"Image service request failed: {exc}") from exc
    if resp.status_code >= 400:
        try:
            message = resp.json().get("error", {}).get("message") or resp.text
        except ValueError:
            message = resp.text
        raise UpstreamServiceError(f"Image service error ({resp.status_code}): {message}")
    return resp.json()


def upload_avatar(payload: bytes, filename: str, content_type: str, public_id: str) -> dict[str, Any]:
    """Upload avatar bytes and return the CDN's upload result."""
    result = _signed_post(
        "upload",
        {
            "public_id": public_id,
            "folder": AVATAR_FOLDER,
            "transformation": AVATAR_TRANSFORMATION,
            "eager": AVATAR_EAGER,
        },
        files={"file": (filename, payload, content_type)},
    )
    logger.info("image uploaded: %s", result.get("public_id"))
    return result


def delete_image(public_id: str) -> dict[str, Any]:
    result = _signed_post("destroy", {"public_id": public_id})
    logger.info("image deleted: %s (%s)", public_id, result.get("result"))
    return result


def avatar_url(public_id: str, size: str = "medium") -> str:
    """Build a face-cropped delivery URL for one of `AVATAR_SIZES`."""
    px = AVATAR_SIZES.get(size, AVATAR_SIZES["medium"])
    url, _ = cloudinary_url(
        public_id,
        cloud_name=settings.CLOUDINARY_CLOUD_NAME,
        secure=True,
        width=px,
        height=px,
        crop="fill",
        gravity="face",
        quality="auto",
        fetch_format="auto",
    )
    return url


def avatar_urls(public_id: str, original_url: str) -> dict[str, str]:
    urls = {size: avatar_url(public_id, size) for size in AVATAR_SIZES}
    urls["original"] = original_url
    return urls
