"""
Uploaded files: menu images (optimized with Pillow) and staff photos.
"""

import logging
import re
import time
from io import BytesIO
from pathlib import Path
from uuid import uuid4

from PIL import Image, UnidentifiedImageError

from .settings import settings

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/webp"}
MAX_IMAGE_SIZE = 2 * 1024 * 1024  # 2MB

# Image optimization settings
MAX_IMAGE_WIDTH = 1920  # Maximum width in pixels
MAX_IMAGE_HEIGHT = 1920  # Maximum height in pixels
JPEG_QUALITY = 85  # JPEG quality (1-100, 85 is a good balance)
PNG_OPTIMIZE = True  # Enable PNG optimization
WEBP_QUALITY = 85  # WebP quality (1-100)

EXTENSIONS = {"image/jpeg": "jpg", "image/png": "png", "image/webp": "webp"}


def upload_dir(kind: str) -> Path:
    path = Path(settings.uploads_dir) / kind
    path.mkdir(parents=True, exist_ok=True)
    return path


def format_file_size(size_bytes: int | None) -> str:
    """Format file size in human-readable format."""
    if size_bytes is None:
        return "Unknown"
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    else:
        return f"{size_bytes / (1024 * 1024):.1f} MB"


def optimize_image(image_data: bytes, content_type: str) -> bytes:
    """
    Optimize image locally using Pillow.
    - Resizes if too large
    - Compresses JPEG/WebP with quality settings
    - Optimizes PNG files
    Returns optimized image data, or the original bytes when Pillow cannot read it.
    """
    try:
        image = Image.open(BytesIO(image_data))
        original_format = image.format
        original_size = len(image_data)

        is_jpeg = content_type == "image/jpeg" or original_format == "JPEG"

        # JPEG has no transparency: flatten onto white
        if is_jpeg and image.mode in ("RGBA", "LA", "P"):
            background = Image.new("RGB", image.size, (255, 255, 255))
            if image.mode == "P":
                image = image.convert("RGBA")
            background.paste(image, mask=image.split()[-1] if image.mode == "RGBA" else None)
            image = background
        elif is_jpeg and image.mode not in ("RGB", "L"):
            image = image.convert("RGB")

        width, height = image.size
        if width > MAX_IMAGE_WIDTH or height > MAX_IMAGE_HEIGHT:
            ratio = min(MAX_IMAGE_WIDTH / width, MAX_IMAGE_HEIGHT / height)
            new_width = int(width * ratio)
            new_height = int(height * ratio)
            image = image.resize((new_width, new_height), Image.Resampling.LANCZOS)
            logger.info(f"Image resized: {width}x{height} -> {new_width}x{new_height}")

        output = BytesIO()
        if is_jpeg:
            image.save(output, format="JPEG", quality=JPEG_QUALITY, optimize=True)
        elif content_type == "image/webp" or original_format == "WEBP":
            image.save(output, format="WEBP", quality=WEBP_QUALITY, method=6)
        else:
            image.save(output, format="PNG", optimize=PNG_OPTIMIZE)

        optimized_data = output.getvalue()
        logger.info(
            f"Image optimized: {format_file_size(original_size)} -> "
            f"{format_file_size(len(optimized_data))}"
        )
        return optimized_data

    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.warning(f"Error optimizing image: {e}, using original image")
        return image_data


def save_menu_image(image_data: bytes, content_type: str) -> str:
    """Store an optimized menu image; returns the stored filename."""
    filename = f"{uuid4().hex}.{EXTENSIONS.get(content_type, 'jpg')}"
    (upload_dir("menu") / filename).write_bytes(optimize_image(image_data, content_type))
    return filename


def staff_photo_filename(name: str) -> str:
    """`<ms timestamp>-<name>`, whitespace as underscores and only `[A-Za-z0-9_-]` kept."""
    safe_name = re.sub(r"\s+", "_", name.strip())
    safe_name = re.sub(r"[^A-Za-z0-9_-]", "", safe_name) or "staff"
    return f"{int(time.time() * 1000)}-{safe_name}"


def save_staff_photo(photo_data: bytes, name: str) -> str | None:
    """Store a staff photo. Returns None (and logs) when the file cannot be written."""
    filename = staff_photo_filename(name)
    try:
        (upload_dir("staff") / filename).write_bytes(photo_data)
    except OSError as e:
        logger.warning(f"Photo upload failed for {name}: {e}")
        return None
    return filename


def remove_upload(kind: str, filename: str | None) -> None:
    """Delete a stored file; missing files are fine, other failures are logged."""
    if not filename:
        return
    path = Path(settings.uploads_dir) / kind / filename
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not remove {path}: {e}")


def upload_url(kind: str, filename: str | None) -> str | None:
    return f"/uploads/{kind}/{filename}" if filename else None
