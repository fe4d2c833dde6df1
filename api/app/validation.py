from __future__ import annotations

import base64
import binascii
import io
import logging
import re
from dataclasses import dataclass
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from . import config
from .errors import ValidationError

logger = logging.getLogger(__name__)

_MIME_ALIASES = {"image/jpg": "image/jpeg", "image/pjpeg": "image/jpeg"}
_PIL_FORMAT_TO_MIME = {"JPEG": "image/jpeg", "PNG": "image/png"}
_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(;[^,]*)?,(?P<payload>.*)$", re.DOTALL)


@dataclass(frozen=True)
class ImageInput:
    data: bytes
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.data)


def normalize_mime_type(mime_type: Optional[str]) -> Optional[str]:
    if not mime_type:
        return None
    value = mime_type.split(";", 1)[0].strip().lower()
    return _MIME_ALIASES.get(value, value)


def sniff_mime_type(data: bytes) -> Optional[str]:
    """Detect JPEG/PNG payloads with Pillow; None for anything else."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            image_format = image.format
    except (UnidentifiedImageError, OSError) as exc:
        logger.debug("Could not identify image payload: %s", exc)
        return None
    return _PIL_FORMAT_TO_MIME.get(image_format or "")


def validate_image(
    image: Optional[ImageInput],
    *,
    field: str,
    max_bytes: Optional[int] = None,
) -> ImageInput:
    """Check presence, size and mime type; return the image with a normalized mime type."""
    limit = config.MAX_UPLOAD_BYTES if max_bytes is None else max_bytes
    if image is None or not image.data:
        raise ValidationError(f"{field} image is required")
    if image.size > limit:
        raise ValidationError(
            f"{field} image must be less than {limit // (1024 * 1024)}MB",
            details=f"received {image.size} bytes",
        )
    mime_type = normalize_mime_type(image.mime_type)
    if mime_type in (None, "application/octet-stream"):
        mime_type = sniff_mime_type(image.data)
    if mime_type not in config.ALLOWED_MIME_TYPES:
        raise ValidationError(
            "Only JPEG and PNG images are allowed",
            details=f"{field}: {image.mime_type or 'unknown type'}",
        )
    return ImageInput(data=image.data, mime_type=mime_type)


def split_data_url(value: str) -> Tuple[Optional[str], str]:
    """Return ``(mime_type, base64_payload)``; mime is None when no data URL prefix."""
    match = _DATA_URL_RE.match(value.strip())
    if not match:
        return None, value.strip()
    return normalize_mime_type(match.group("mime")), match.group("payload")


def decode_base64_image(value: Optional[str], *, field: str) -> ImageInput:
    """Decode plain base64 or a data URL into an :class:`ImageInput`.

    The mime type comes from the data URL prefix when present, otherwise it is
    sniffed from the decoded bytes.
    """
    if not value:
        raise ValidationError(f"{field} image is required")
    declared, payload = split_data_url(value)
    try:
        data = base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError(f"{field} image is not valid base64", details=str(exc)) from exc
    if not data:
        raise ValidationError(f"{field} image is required")
    mime_type = declared or sniff_mime_type(data) or "application/octet-stream"
    return ImageInput(data=data, mime_type=mime_type)


def to_data_url(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"
