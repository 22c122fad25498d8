"""Turn image files and URLs into image content blocks."""

from __future__ import annotations

import base64
import io
import logging
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from .errors import UnsupportedFormatError
from .query import ImageBlock

logger = logging.getLogger(__name__)

# Formats every supported provider accepts for inline image bytes.
SUPPORTED_FORMATS = frozenset({"png", "jpeg", "gif", "webp"})

# Multi-picture JPEGs from phones and cameras open as MPO; the first frame is
# a baseline JPEG.
_FORMAT_ALIASES = {"mpo": "jpeg"}


def sniff_image_format(data: bytes) -> str:
    """Detect the image subtype (``png``, ``jpeg``...) from the bytes themselves."""
    if not data:
        raise UnsupportedFormatError("Unsupported file format: image data is empty.")
    try:
        with Image.open(io.BytesIO(data)) as image:
            detected = (image.format or "").lower()
    except UnidentifiedImageError as exc:
        raise UnsupportedFormatError("Unsupported file format: could not identify image data.") from exc
    detected = _FORMAT_ALIASES.get(detected, detected)
    if detected not in SUPPORTED_FORMATS:
        raise UnsupportedFormatError(f"Unsupported file format {detected or '(unknown)'}.")
    return detected


def image_from_url(url: str) -> ImageBlock:
    url = url.strip()
    if not url:
        raise ValueError("Image URL must not be empty.")
    return ImageBlock(url=url)


def image_from_file(path: Path | str) -> ImageBlock:
    path = Path(path).expanduser()
    data = path.read_bytes()
    fmt = sniff_image_format(data)
    logger.debug("Loaded %s image from %s (%d bytes)", fmt, path, len(data))
    return ImageBlock(data=data)


def to_data_url(data: bytes) -> str:
    fmt = sniff_image_format(data)
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:image/{fmt};base64,{encoded}"


def split_csv(value: str | None) -> list[str]:
    """Split a comma-separated option value, dropping blank entries."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]
