"""Media library file storage.

Uploads are stored on the local disk under MEDIA_LOCATION in a year/month
folder structure.

Example:
    An upload named "Team Photo.JPG" on 2026-10-19 is stored at
    MEDIA_LOCATION/media/2026/10/team-photo-1792368000-k3j9x2qa.jpg
    and served from MEDIA_URL_PREFIX/media/2026/10/team-photo-1792368000-k3j9x2qa.jpg
"""

from __future__ import annotations

import io
import logging
import secrets
import string
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

from PIL import Image, UnidentifiedImageError

from .enums import MediaType
from .settings import MEDIA_LOCATION, MEDIA_MAX_FILE_SIZE, MEDIA_URL_PREFIX
from .utils.clock import utcnow
from .utils.slugs import slugify

logger = logging.getLogger(__name__)

DISK = "local"

IMAGE_MIME_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
}

VIDEO_MIME_TYPES = {
    "video/mp4": "mp4",
    "video/mpeg": "mpeg",
    "video/quicktime": "mov",
    "video/x-msvideo": "avi",
    "video/webm": "webm",
}

DOCUMENT_MIME_TYPES = {
    "application/pdf": "pdf",
    "application/msword": "doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/vnd.ms-excel": "xls",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
    "text/plain": "txt",
}

ALLOWED_MIME_TYPES = {**IMAGE_MIME_TYPES, **VIDEO_MIME_TYPES, **DOCUMENT_MIME_TYPES}

_RANDOM_ALPHABET = string.ascii_lowercase + string.digits


def get_media_location() -> Path:
    return Path(MEDIA_LOCATION)


def normalize_mime_type(mime_type: str | None) -> str:
    value = (mime_type or "").split(";")[0].strip().lower()
    return "image/jpeg" if value == "image/jpg" else value


def classify(mime_type: str) -> MediaType:
    if mime_type in IMAGE_MIME_TYPES:
        return MediaType.IMAGE
    if mime_type in VIDEO_MIME_TYPES:
        return MediaType.VIDEO
    if mime_type in DOCUMENT_MIME_TYPES:
        return MediaType.DOCUMENT
    return MediaType.OTHER


def validate_upload(mime_type: str, file_size: int) -> None:
    """
    Raises:
        ValueError: If the MIME type is not allowed, the file is empty or too large
    """
    if mime_type not in ALLOWED_MIME_TYPES:
        raise ValueError(f"File type '{mime_type}' is not allowed.")
    if file_size == 0:
        raise ValueError("The uploaded file is empty.")
    if file_size > MEDIA_MAX_FILE_SIZE:
        max_mb = MEDIA_MAX_FILE_SIZE / (1024 * 1024)
        actual_mb = file_size / (1024 * 1024)
        raise ValueError(f"File size ({actual_mb:.2f} MB) exceeds maximum of {max_mb:g} MB")


def build_file_name(original_name: str, mime_type: str, now: datetime | None = None) -> str:
    """``<slug>-<timestamp>-<random8>.<ext>`` derived from the uploaded file's name."""
    now = now or utcnow()
    stem = slugify(PurePosixPath(original_name or "").stem) or "file"
    suffix = "".join(secrets.choice(_RANDOM_ALPHABET) for _ in range(8))
    timestamp = int(now.replace(tzinfo=timezone.utc).timestamp())
    return f"{stem}-{timestamp}-{suffix}.{ALLOWED_MIME_TYPES[mime_type]}"


def relative_path_for(file_name: str, now: datetime | None = None) -> str:
    """Storage path relative to the media root, e.g. ``media/2026/10/<file_name>``."""
    now = now or utcnow()
    return f"media/{now:%Y}/{now:%m}/{file_name}"


def public_url(relative_path: str) -> str:
    return f"{MEDIA_URL_PREFIX.rstrip('/')}/{relative_path}"


def image_metadata(file_content: bytes, mime_type: str) -> dict | None:
    """Width, height and ``WxH`` dimensions for raster images; None when unreadable."""
    if mime_type not in IMAGE_MIME_TYPES or mime_type == "image/svg+xml":
        return None
    try:
        with Image.open(io.BytesIO(file_content)) as img:
            width, height = img.size
    except (UnidentifiedImageError, OSError) as e:
        logger.warning(f"Could not read image dimensions: {e}")
        return None
    return {"width": width, "height": height, "dimensions": f"{width}x{height}"}


def save_file(relative_path: str, file_content: bytes) -> Path:
    """
    Write an upload below the media root.

    Returns:
        The absolute path where the file was saved

    Raises:
        OSError: If there's an error writing the file
    """
    file_path = get_media_location() / relative_path
    file_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with open(file_path, "wb") as f:
            f.write(file_content)
        logger.info(f"Saved media file to {file_path}")
        return file_path
    except OSError as e:
        logger.error(f"Failed to save media file {file_path}: {e}")
        raise


def delete_file(relative_path: str) -> bool:
    """
    Delete a stored upload.

    Returns:
        True if the file was deleted, False if it didn't exist
    """
    file_path = get_media_location() / relative_path
    try:
        if file_path.exists():
            file_path.unlink()
            logger.info(f"Deleted media file {file_path}")
            return True
        logger.warning(f"Media file not found at {file_path}")
        return False
    except OSError as e:
        logger.error(f"Failed to delete media file {file_path}: {e}")
        raise
