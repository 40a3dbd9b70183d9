"""
Media type detection and image probing for uploads.
"""

from __future__ import annotations

import io
import logging
import mimetypes
import os
from dataclasses import dataclass
from typing import Optional

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {
    ".jpeg", ".jpg", ".png", ".gif", ".webp", ".bmp", ".svg", ".heic", ".heif",
}
VIDEO_EXTENSIONS = {".mp4", ".mov", ".avi", ".wmv", ".flv", ".webm", ".mkv"}
MEDIA_EXTENSIONS = IMAGE_EXTENSIONS | VIDEO_EXTENSIONS


@dataclass(frozen=True)
class MediaInfo:
    resource_type: str
    format: Optional[str]
    width: Optional[int] = None
    height: Optional[int] = None
    content_type: str = "application/octet-stream"


def _extension(filename: str) -> str:
    return os.path.splitext(filename or "")[1].lower()


def is_allowed_media(filename: str, content_type: Optional[str] = None) -> bool:
    """Accept known image/video extensions, or any image/* or video/* MIME type."""
    if _extension(filename) in MEDIA_EXTENSIONS:
        return True
    content_type = (content_type or "").lower()
    return content_type.startswith("image/") or content_type.startswith("video/")


def probe_media(
    data: bytes, filename: str, content_type: Optional[str] = None
) -> MediaInfo:
    ext = _extension(filename)
    guessed = content_type or mimetypes.guess_type(filename)[0] or ""
    if ext in VIDEO_EXTENSIONS or guessed.startswith("video/"):
        return MediaInfo(
            resource_type="video",
            format=ext.lstrip(".") or None,
            content_type=guessed or "application/octet-stream",
        )

    try:
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
            fmt = (img.format or ext.lstrip(".") or "").lower() or None
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError):
        logger.info("Could not read image dimensions for %s", filename)
        width = height = None
        fmt = ext.lstrip(".") or None
    if fmt == "jpeg":
        fmt = "jpg"
    return MediaInfo(
        resource_type="image",
        format=fmt,
        width=width,
        height=height,
        content_type=guessed or "application/octet-stream",
    )
