"""Photo evidence storage under ``config.UPLOAD_DIR``."""

import io
import logging
import os
import time

from PIL import Image, UnidentifiedImageError

from dormguard.core import config

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".webp"})


class PhotoRejected(ValueError):
    """Raised when an uploaded file is not an acceptable photo."""


def photo_extension(filename: str) -> str:
    return os.path.splitext(filename or "")[1].lower()


def detect_image_mime(data: bytes) -> str:
    """Return the MIME type Pillow recognises in ``data``, or "" if none."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            return Image.MIME.get(image.format or "", "")
    except (UnidentifiedImageError, OSError):
        return ""


def validate_photo(filename: str, data: bytes, max_bytes: int | None = None) -> str:
    """Check size, extension and sniffed content. Returns the lowercased extension."""
    max_bytes = config.MAX_UPLOAD_BYTES if max_bytes is None else max_bytes
    if len(data) > max_bytes:
        raise PhotoRejected(f"照片大小不能超过 {max_bytes // (1024 * 1024)}MB")

    extension = photo_extension(filename)
    if extension not in ALLOWED_EXTENSIONS:
        raise PhotoRejected("仅支持 JPG/PNG/GIF/WebP 格式的图片")

    if not detect_image_mime(data).startswith("image/"):
        raise PhotoRejected("文件类型不合法")

    return extension


def build_photo_filename(user_id: int, extension: str) -> str:
    return f"{time.time_ns()}_{user_id}{extension}"


def photo_full_path(filename: str) -> str:
    # Stored names are bare filenames; basename() keeps lookups inside UPLOAD_DIR.
    return os.path.join(config.UPLOAD_DIR, os.path.basename(filename))


def save_photo(data: bytes, user_id: int, extension: str) -> str:
    os.makedirs(config.UPLOAD_DIR, exist_ok=True)
    filename = build_photo_filename(user_id, extension)
    with open(photo_full_path(filename), "xb") as destination:
        destination.write(data)
    return filename


def remove_photo(filename: str) -> bool:
    """Best-effort delete. Failures are logged, never raised."""
    if not filename:
        return False
    try:
        os.remove(photo_full_path(filename))
        return True
    except OSError:
        logger.warning("Could not remove photo %s", filename, exc_info=True)
        return False
