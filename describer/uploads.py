"""Upload handling: store an image and hand back a URL the analyzer can use."""
from __future__ import annotations

import io
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from PIL import Image, UnidentifiedImageError

from .errors import UploadError

logger = logging.getLogger("describer.app")

FORMAT_EXTENSIONS = {
    "JPEG": ".jpg",
    "PNG": ".png",
    "GIF": ".gif",
    "WEBP": ".webp",
    "BMP": ".bmp",
    "TIFF": ".tiff",
}


def inspect_image(image_bytes: bytes) -> tuple[str, int, int]:
    """Return (format, width, height); raises UploadError when Pillow cannot read it."""
    try:
        with Image.open(io.BytesIO(image_bytes)) as image:
            image_format = image.format or ""
            width, height = image.size
            image.verify()
    except Image.DecompressionBombError as exc:
        raise UploadError("Image dimensions too large.") from exc
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise UploadError("Uploaded file is not a valid image.") from exc
    return image_format, width, height


def store_upload(
    image_bytes: bytes,
    filename: Optional[str],
    content_type: Optional[str],
    uploads_dir: Path,
    max_upload_mb: int,
) -> Dict[str, Any]:
    """Validate and persist an upload, returning its stored name and metadata."""
    if not image_bytes:
        raise UploadError("Uploaded file was empty.")
    size_mb = len(image_bytes) / (1024 * 1024)
    if size_mb > max_upload_mb:
        raise UploadError(f"Image too large ({size_mb:.1f} MB). Limit is {max_upload_mb} MB.")

    image_format, width, height = inspect_image(image_bytes)
    extension = FORMAT_EXTENSIONS.get(image_format.upper())
    if extension is None:
        raise UploadError(f"Unsupported image format: {image_format or 'unknown'}.")

    uploads_dir.mkdir(parents=True, exist_ok=True)
    stored_name = f"{uuid.uuid4().hex}{extension}"
    (uploads_dir / stored_name).write_bytes(image_bytes)
    logger.info("Stored upload %s (%d bytes, %dx%d)", stored_name, len(image_bytes), width, height)

    return {
        "stored_name": stored_name,
        "metadata": {
            "filename": filename or stored_name,
            "size": len(image_bytes),
            "type": content_type or Image.MIME.get(image_format.upper(), "application/octet-stream"),
            "dimensions": {"width": width, "height": height},
            "uploadedAt": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        },
    }


def build_upload_url(base_url: str, stored_name: str) -> str:
    return f"{base_url.rstrip('/')}/uploads/{stored_name}"
