"""
Upload storage on local disk.

WHAT: Save product images, profile pictures and story media
WHY: Uploaded files are served back at /uploads/<name>
HOW: werkzeug secure_filename, "<epoch-ms>-<name>" naming, chunked size check
"""

import time
from pathlib import Path
from typing import Optional, Tuple

from fastapi import UploadFile
from werkzeug.utils import secure_filename

from ..core.config import settings
from .exceptions import ValidationError
from .logger import get_logger

logger = get_logger(__name__)

IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp"}
VIDEO_EXTENSIONS = {"mp4", "webm", "mov", "ogg"}
CHUNK_SIZE = 1024 * 1024

UPLOAD_URL_PREFIX = "/uploads"


def upload_root() -> Path:
    root = Path(settings.UPLOAD_DIR)
    root.mkdir(parents=True, exist_ok=True)
    return root


def detect_media_type(filename: str, content_type: Optional[str] = None) -> str:
    """
    Classify an upload as "image" or "video".

    MIME type wins when present; the extension is the fallback.

    Raises:
        ValidationError: If the file is neither
    """
    content_type = (content_type or "").lower()
    if content_type.startswith("image/"):
        return "image"
    if content_type.startswith("video/"):
        return "video"

    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if extension in IMAGE_EXTENSIONS:
        return "image"
    if extension in VIDEO_EXTENSIONS:
        return "video"
    raise ValidationError(f"Unsupported file type: {filename}")


def save_upload(upload: Optional[UploadFile], allow_video: bool = False) -> Tuple[str, str]:
    """
    Write an uploaded file under UPLOAD_DIR.

    Args:
        upload: Multipart file from the request (None when the field is missing)
        allow_video: Accept video files (stories only)

    Returns:
        (public URL, media type)

    Raises:
        ValidationError: No file, unsupported type, or over MAX_UPLOAD_MB
    """
    if upload is None or not upload.filename:
        raise ValidationError("No file provided")

    media_type = detect_media_type(upload.filename, upload.content_type)
    if media_type == "video" and not allow_video:
        raise ValidationError("Only image uploads are allowed here")

    safe_name = secure_filename(upload.filename) or f"upload.{'mp4' if media_type == 'video' else 'jpg'}"
    stored_name = f"{int(time.time() * 1000)}-{safe_name}"
    destination = upload_root() / stored_name

    max_bytes = int(settings.MAX_UPLOAD_MB * 1024 * 1024)
    written = 0
    with open(destination, "wb") as out:
        while True:
            chunk = upload.file.read(CHUNK_SIZE)
            if not chunk:
                break
            written += len(chunk)
            if written > max_bytes:
                out.close()
                destination.unlink(missing_ok=True)
                raise ValidationError(f"File exceeds {settings.MAX_UPLOAD_MB:g} MB limit")
            out.write(chunk)

    logger.info(f"Stored upload {stored_name} ({written} bytes, {media_type})")
    return f"{UPLOAD_URL_PREFIX}/{stored_name}", media_type
